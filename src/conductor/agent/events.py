"""
Per-turn progress channel between the agent loop and one observer.

The loop is the only producer and the HTTP response (or a test) the only consumer.  ``emit`` never
blocks the loop: if the consumer goes away the loop keeps running and later events are dropped.
There is no replay; the final conversation returned by the loop is what callers reconcile against.
"""

import asyncio
import json
import logging
from typing import (
    AsyncIterator,
    List,
    Optional,
)

from conductor.core.schema import (
    TERMINAL_EVENT_TYPES,
    ProgressEvent,
)

logger = logging.getLogger(__name__)

_CLOSED = object()


class EventStream:
    """Ordered single-producer / single-consumer event channel for one turn."""

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[object]" = asyncio.Queue()
        self._closed = False
        self._detached = False
        self.emitted: List[ProgressEvent] = []

    @property
    def closed(self) -> bool:
        """True once the producer has finished."""
        return self._closed

    @property
    def detached(self) -> bool:
        """True once the consumer has gone away."""
        return self._detached

    def emit(self, event: ProgressEvent) -> None:
        """Publish *event*.  Never blocks; a no-op for delivery once the consumer is detached."""
        if self._closed:
            raise RuntimeError("Cannot emit on a closed event stream")
        self.emitted.append(event)
        logger.debug("event %s", event.type)
        if not self._detached:
            self._queue.put_nowait(event)

    def close(self) -> None:
        """Signal the end of the turn to the consumer."""
        if self._closed:
            return
        self._closed = True
        if not self._detached:
            self._queue.put_nowait(_CLOSED)

    def detach(self) -> None:
        """The consumer disconnected: drop anything queued and everything emitted later."""
        if self._detached:
            return
        self._detached = True
        while not self._queue.empty():
            self._queue.get_nowait()

    async def next(self) -> Optional[ProgressEvent]:
        """Wait for the next event; ``None`` once the stream is closed."""
        if self._detached:
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item  # type: ignore[return-value]

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ProgressEvent]:
        while True:
            event = await self.next()
            if event is None:
                return
            yield event
            if event.type in TERMINAL_EVENT_TYPES:
                return


def format_sse(event: ProgressEvent) -> str:
    """Render *event* as one Server-Sent Events frame."""
    return f"data: {json.dumps(event.model_dump(mode='json'), ensure_ascii=False)}\n\n"
