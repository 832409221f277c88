"""Main orchestration loop for conductor."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import (
    Any,
    Dict,
    List,
    Sequence,
    Tuple,
)

from conductor.agent.engine import BaseEngine
from conductor.agent.events import EventStream
from conductor.agent.tool_executor import execute_tool
from conductor.config import settings
from conductor.core.errors import (
    EngineQueryError,
    LoopBoundExceeded,
)
from conductor.core.schema import (
    EngineReply,
    ErrorEvent,
    FinalResponseEvent,
    Message,
    ToolCallEvent,
    ToolResultEvent,
    TurnCompleteEvent,
    TurnOutcome,
)
from conductor.tools import ToolRegistry

logger = logging.getLogger(__name__)


class LoopState(enum.Enum):
    """States of one turn."""

    AWAITING_ENGINE = "awaiting_engine"
    DISPATCHING_TOOLS = "dispatching_tools"
    DONE = "done"


# ---------------------------------------------------------------------------
# Agent Loop
# ---------------------------------------------------------------------------
class AgentLoop:
    """
    Alternates engine queries and tool dispatch until the engine answers.

    One instance can serve many concurrent turns: all per-turn state lives in :meth:`run_turn`.  The
    registry is only read, and provider clients serialize their own calls.
    """

    def __init__(self, engine: BaseEngine, registry: ToolRegistry, max_rounds: int | None = None):
        self.engine = engine
        self.registry = registry
        self.max_rounds = settings.MAX_ROUNDS if max_rounds is None else max_rounds
        if self.max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")

    async def run_turn(
        self,
        message: str,
        history: Sequence[Message] | None = None,
        stream: EventStream | None = None,
    ) -> TurnOutcome:
        """
        Run one turn to completion.

        The caller's *history* is copied, never mutated.  Every path closes *stream*; a successful
        turn ends with ``final_response`` + ``turn_complete``, a failed one with a single ``error``.
        """
        stream = stream if stream is not None else EventStream()
        messages: List[Message] = list(history or [])
        messages.append({"role": "user", "content": message})

        try:
            await self._drive(messages, stream)
        except (EngineQueryError, LoopBoundExceeded) as exc:
            logger.error("Turn aborted: %s", exc)
            stream.emit(ErrorEvent(message=str(exc)))
            return TurnOutcome(messages=messages, error=str(exc))
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Unexpected failure during turn")
            stream.emit(ErrorEvent(message=str(exc) or exc.__class__.__name__))
            return TurnOutcome(messages=messages, error=str(exc) or exc.__class__.__name__)
        finally:
            stream.close()

        return TurnOutcome(messages=messages)

    async def _drive(self, messages: List[Message], stream: EventStream) -> None:
        state = LoopState.AWAITING_ENGINE
        rounds = 0
        reply = EngineReply()

        while state is not LoopState.DONE:
            if state is LoopState.AWAITING_ENGINE:
                if rounds >= self.max_rounds:
                    raise LoopBoundExceeded(self.max_rounds)
                rounds += 1
                reply = await self.engine.query(messages, self.registry.snapshot())
                state = self._on_reply(reply, messages, stream)

            elif state is LoopState.DISPATCHING_TOOLS:
                results = await self._dispatch(reply, stream)
                messages.append({"role": "user", "content": results})
                state = LoopState.AWAITING_ENGINE

    def _on_reply(
        self, reply: EngineReply, messages: List[Message], stream: EventStream
    ) -> LoopState:
        calls = reply.tool_calls()
        if calls:
            logger.info("Engine requested %d tool call(s): %s", len(calls), [c.name for c in calls])
            messages.append({"role": "assistant", "content": reply.content})
            return LoopState.DISPATCHING_TOOLS

        if reply.stop_reason == "tool_use":
            raise EngineQueryError("Engine signalled tool use but supplied no tool calls")

        text = reply.text()
        messages.append({"role": "assistant", "content": reply.content})
        stream.emit(FinalResponseEvent(text=text))
        stream.emit(TurnCompleteEvent(messages=list(messages)))
        return LoopState.DONE

    async def _dispatch(self, reply: EngineReply, stream: EventStream) -> List[Dict[str, Any]]:
        # Event order must match the order the engine listed the calls.
        results: List[Dict[str, Any]] = []
        for call in reply.tool_calls():
            stream.emit(ToolCallEvent(name=call.name, input=call.arguments))
            result = await execute_tool(self.registry, call)
            stream.emit(ToolResultEvent(name=call.name, result=result))
            results.append({"type": "tool_result", "tool_use_id": call.id, "content": result})
        return results

    def start_turn(
        self, message: str, history: Sequence[Message] | None = None
    ) -> Tuple[EventStream, "asyncio.Task[TurnOutcome]"]:
        """Run a turn in the background and return its event stream and task."""
        stream = EventStream()
        task = asyncio.create_task(self.run_turn(message, history, stream), name="conductor-turn")
        return stream, task
