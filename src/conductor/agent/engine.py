"""
Reasoning engine interface for conductor.

This module is the only place that *directly* calls the reasoning engine.  Everything else (agent
loop, registry, providers) stays model-agnostic and only sees :class:`EngineReply`.

The Anthropic Messages API is supported out of the box.  Additional back-ends can be added by
subclassing :class:`BaseEngine` and registering via :func:`register_engine`.
"""

import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Sequence,
    Type,
)

from conductor.config import settings
from conductor.core.errors import EngineQueryError
from conductor.core.schema import (
    EngineReply,
    Message,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_ENGINE_REGISTRY: dict[str, Type["BaseEngine"]] = {}


def register_engine(name: str) -> Callable:
    """Decorator to register an engine class under *name*."""

    def wrapper(cls: Type["BaseEngine"]) -> Type["BaseEngine"]:
        _ENGINE_REGISTRY[name] = cls
        return cls

    return wrapper


def load_engine(name: str | None = None) -> "BaseEngine":
    """
    Factory that returns an instantiated engine.

    Fallback order:
    1. *name* arg
    2. ``settings.ENGINE`` env option
    3. default: ``"anthropic"``
    """

    target = name or getattr(settings, "ENGINE", "anthropic")
    cls = _ENGINE_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Engine '{target}' is not registered.")
    return cls()


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseEngine(ABC):
    """Abstract engine: conversation and tool declarations in, tool calls or an answer out."""

    SYSTEM_PROMPT: ClassVar[
        str
    ] = """\
You are a helpful assistant for a personal task list, connected to two tool providers:

1. **record-store** (tools: create_item, list_items, update_item, complete_item, delete_item)
   -> Use for any create, read, update, or delete operation on items.

2. **analysis** (tools: prioritize_items, summarize_items, suggest_next_item, categorize_items)
   -> Use for AI-powered analysis: prioritization, summaries, recommendations, categorization.

Guidelines:
- When the user wants to add an item, call create_item immediately
- When they want to see their list, call list_items
- When they ask what to work on or what is important, use suggest_next_item or prioritize_items
- For overviews or stats, use summarize_items
- Be concise in your final reply; the UI already shows the item list
"""

    @abstractmethod
    async def query(
        self, messages: Sequence[Message], tools: Sequence[Dict[str, Any]]
    ) -> EngineReply:
        """
        Ask the engine for its next step.

        Raises
        ------
        EngineQueryError
            If the engine is unreachable or rejects the request.
        """


# ---------------------------------------------------------------------------
# Concrete engines
# ---------------------------------------------------------------------------
@register_engine("anthropic")
class AnthropicEngine(BaseEngine):
    """Anthropic Claude via the Messages API with native tool use."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        client: Any = None,
    ):
        self.model = model or settings.ANTHROPIC_MODEL
        self.max_tokens = max_tokens or settings.MAX_TOKENS
        self._api_key = api_key or settings.ANTHROPIC_API_KEY
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            import anthropic  # pylint: disable=import-outside-toplevel

            self._client = anthropic.AsyncAnthropic(api_key=self._api_key)
        return self._client

    async def query(
        self, messages: Sequence[Message], tools: Sequence[Dict[str, Any]]
    ) -> EngineReply:
        import anthropic  # pylint: disable=import-outside-toplevel

        try:
            response = await self._get_client().messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=self.SYSTEM_PROMPT,
                messages=list(messages),
                tools=list(tools),
            )
        except anthropic.AnthropicError as exc:
            logger.error("Anthropic request failed: %s", exc)
            raise EngineQueryError(f"Error calling Anthropic: {exc}") from exc

        content: List[Dict[str, Any]] = [
            block.model_dump(mode="json", exclude_none=True) for block in response.content
        ]
        logger.debug("Anthropic reply (stop_reason=%s): %s", response.stop_reason, content)
        return EngineReply(stop_reason=response.stop_reason, content=content)
