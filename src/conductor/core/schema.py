"""
Schema definitions for engine <-> agent loop <-> tool provider messages.

These data models serve as the contract between the reasoning engine, the orchestration loop, the
tool providers and whoever observes a turn.  We keep them separate from runtime logic so they can be
imported anywhere without side-effects.

Conversation messages are kept as plain ``{"role": ..., "content": ...}`` dicts because they travel
unchanged between the caller, the engine API and the event stream.
"""

from typing import (
    Annotated,
    Any,
    Dict,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
)

from conductor.core.errors import EngineQueryError

Message = Dict[str, Any]
"""One conversation entry: ``{"role": "user" | "assistant", "content": str | list[block]}``."""


class ToolDescriptor(BaseModel):
    """A tool as announced by its provider during discovery."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Tool name, unique across all providers")
    description: str = ""
    input_schema: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def to_engine(self) -> Dict[str, Any]:
        """Return the tool declaration in the shape the engine API expects."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": dict(self.input_schema),
        }


class ToolInvocation(BaseModel):
    """A call that the engine wants the agent to execute."""

    id: str = Field(..., description="Correlation id tying the call to its result")
    name: str = Field(..., description="Registered tool name")
    arguments: Dict[str, Any] = Field(default_factory=dict)


class EngineReply(BaseModel):
    """One response from the reasoning engine."""

    stop_reason: Optional[str] = None
    content: List[Dict[str, Any]] = Field(default_factory=list)

    def tool_calls(self) -> List[ToolInvocation]:
        """
        Tool-use blocks, in the order the engine listed them.

        Raises ``EngineQueryError`` for a block without a usable id, name or input object.
        """
        calls: List[ToolInvocation] = []
        for block in self.content:
            if block.get("type") != "tool_use":
                continue
            try:
                calls.append(
                    ToolInvocation(
                        id=block["id"], name=block["name"], arguments=block.get("input") or {}
                    )
                )
            except (KeyError, ValidationError) as exc:
                raise EngineQueryError(f"Malformed tool_use block from engine: {block!r}") from exc
        return calls

    def text(self) -> str:
        """First text block, or an empty string."""
        for block in self.content:
            if block.get("type") == "text":
                return str(block.get("text") or "")
        return ""


# ---------------------------------------------------------------------------
# Progress events
# ---------------------------------------------------------------------------
class ToolCallEvent(BaseModel):
    """The loop is about to run a tool."""

    type: Literal["tool_call"] = "tool_call"
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolResultEvent(BaseModel):
    """A tool returned (or its failure was turned into text)."""

    type: Literal["tool_result"] = "tool_result"
    name: str
    result: str


class FinalResponseEvent(BaseModel):
    """The engine produced its answer for this turn."""

    type: Literal["final_response"] = "final_response"
    text: str


class TurnCompleteEvent(BaseModel):
    """Terminal success event carrying the full updated conversation."""

    type: Literal["turn_complete"] = "turn_complete"
    messages: List[Message]


class ErrorEvent(BaseModel):
    """Terminal failure event."""

    type: Literal["error"] = "error"
    message: str


ProgressEvent = Annotated[
    Union[ToolCallEvent, ToolResultEvent, FinalResponseEvent, TurnCompleteEvent, ErrorEvent],
    Field(discriminator="type"),
]

progress_event_adapter: TypeAdapter[ProgressEvent] = TypeAdapter(ProgressEvent)
"""Parses wire payloads back into event models (used by clients and tests)."""

TERMINAL_EVENT_TYPES = frozenset({"turn_complete", "error"})


class TurnOutcome(BaseModel):
    """What the agent loop hands back to its caller once a turn ends."""

    messages: List[Message] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        """True when the turn ended with ``turn_complete``."""
        return self.error is None
