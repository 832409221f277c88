"""
JSON-RPC 2.0 request/response channel over a subprocess's stdin/stdout.

Framing follows the MCP stdio convention: every message is one JSON object on a single
newline-terminated line.  Requests carry an integer ``id`` and responses are matched back to their
request by that id, so several requests may be outstanding at once.  Whether a *provider* tolerates
that is not the channel's business; :class:`conductor.providers.client.ProviderClient` serializes
its own calls.

The channel never reconnects.  Once the process exits or its stream becomes unreadable every
pending and future request fails with :class:`TransportError`.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
from typing import (
    Any,
    Dict,
)

from conductor.core.errors import (
    ToolInvocationError,
    TransportError,
)

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
STREAM_LIMIT = 16 * 1024 * 1024
"""Largest single frame accepted from a provider (passed to the subprocess stream reader)."""


class StdioChannel:
    """Bidirectional request/response channel to one provider process."""

    def __init__(self, process: asyncio.subprocess.Process, name: str = "provider"):
        if process.stdin is None or process.stdout is None:
            raise ValueError("Provider process must be started with stdin and stdout pipes")
        self.name = name
        self._process = process
        self._ids = itertools.count(1)
        self._pending: Dict[int, asyncio.Future[Dict[str, Any]]] = {}
        self._write_lock = asyncio.Lock()
        self._closed_reason: str | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._stderr_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def start(self) -> "StdioChannel":
        """Start the background reader (and stderr relay, if stderr is piped)."""
        if self._reader_task is None:
            self._reader_task = asyncio.create_task(
                self._read_loop(), name=f"conductor-read-{self.name}"
            )
            if self._process.stderr is not None:
                self._stderr_task = asyncio.create_task(
                    self._relay_stderr(), name=f"conductor-stderr-{self.name}"
                )
        return self

    @property
    def closed(self) -> bool:
        """True once the channel can no longer carry requests."""
        return self._closed_reason is not None

    @property
    def closed_reason(self) -> str | None:
        """Why the channel closed, if it did."""
        return self._closed_reason

    def mark_exited(self, returncode: int | None) -> None:
        """Record that the process has exited; fails everything still in flight."""
        self._close(f"exited with code {returncode}")

    async def aclose(self) -> None:
        """Close stdin and stop the background tasks."""
        self._close("channel closed by orchestrator")
        stdin = self._process.stdin
        if stdin is not None and not stdin.is_closing():
            stdin.close()
        for task in (self._reader_task, self._stderr_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def send(self, method: str, params: Dict[str, Any] | None = None) -> int:
        """Write one request and return its id (pass it to :meth:`receive`)."""
        self._ensure_open()
        request_id = next(self._ids)
        future: asyncio.Future[Dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._write(
                {
                    "jsonrpc": JSONRPC_VERSION,
                    "id": request_id,
                    "method": method,
                    "params": params or {},
                }
            )
        except TransportError:
            self._pending.pop(request_id, None)
            raise
        return request_id

    async def receive(self, request_id: int, timeout: float | None = None) -> Dict[str, Any]:
        """
        Wait for the response to *request_id*.

        Returns
        -------
        dict
            The ``result`` member of the response.

        Raises
        ------
        ToolInvocationError
            If the provider answered with a JSON-RPC ``error`` object.
        TransportError
            If the channel closed, or no response arrived within *timeout* seconds.
        """
        future = self._pending.get(request_id)
        if future is None:
            self._ensure_open()
            raise TransportError(f"No request {request_id} is pending on provider '{self.name}'")
        try:
            message = await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError as exc:
            raise TransportError(
                f"Provider '{self.name}' did not answer request {request_id} within {timeout}s"
            ) from exc
        finally:
            self._pending.pop(request_id, None)

        error = message.get("error")
        if error is not None:
            if isinstance(error, dict):
                raise ToolInvocationError(
                    str(error.get("message") or "Unknown provider error"), code=error.get("code")
                )
            raise ToolInvocationError(str(error))
        result = message.get("result")
        return result if isinstance(result, dict) else {}

    async def request(
        self, method: str, params: Dict[str, Any] | None = None, timeout: float | None = None
    ) -> Dict[str, Any]:
        """Send a request and wait for its result."""
        request_id = await self.send(method, params)
        return await self.receive(request_id, timeout)

    async def notify(self, method: str, params: Dict[str, Any] | None = None) -> None:
        """Send a notification (no id, no response expected)."""
        self._ensure_open()
        frame: Dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": method}
        if params is not None:
            frame["params"] = params
        await self._write(frame)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _ensure_open(self) -> None:
        if self._closed_reason is not None:
            raise TransportError(f"Provider '{self.name}' is unavailable: {self._closed_reason}")

    async def _write(self, frame: Dict[str, Any]) -> None:
        stdin = self._process.stdin
        assert stdin is not None
        data = (json.dumps(frame) + "\n").encode("utf-8")
        try:
            async with self._write_lock:
                stdin.write(data)
                await stdin.drain()
        except (ConnectionError, RuntimeError) as exc:
            self._close(f"write failed: {exc}")
            raise TransportError(f"Provider '{self.name}' is unavailable: {exc}") from exc

    async def _read_loop(self) -> None:
        stdout = self._process.stdout
        assert stdout is not None
        reason = "closed its output stream"
        try:
            while True:
                line = await stdout.readline()
                if not line:
                    break
                self._dispatch(line)
        except (ConnectionError, ValueError) as exc:
            # ValueError: a single frame larger than the stream limit
            reason = f"output stream unreadable: {exc}"
        self._close(reason)

    def _dispatch(self, line: bytes) -> None:
        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("[%s] ignoring non-JSON output: %r", self.name, line[:200])
            return
        if not isinstance(message, dict):
            logger.warning("[%s] ignoring non-object frame: %r", self.name, message)
            return

        if "method" in message:
            # Server-initiated requests/notifications (logging, progress) are not used here.
            logger.debug("[%s] ignoring server message %s", self.name, message.get("method"))
            return

        future = self._pending.get(message.get("id"))  # type: ignore[arg-type]
        if future is None:
            logger.warning("[%s] response for unknown request id %r", self.name, message.get("id"))
            return
        if not future.done():
            future.set_result(message)

    async def _relay_stderr(self) -> None:
        stderr = self._process.stderr
        assert stderr is not None
        while True:
            try:
                line = await stderr.readline()
            except (ConnectionError, ValueError):
                return
            if not line:
                return
            logger.info("[%s] %s", self.name, line.decode("utf-8", errors="replace").rstrip())

    def _close(self, reason: str) -> None:
        if self._closed_reason is not None:
            return
        self._closed_reason = reason
        logger.warning("[%s] channel closed: %s", self.name, reason)
        # Futures already resolved keep their response; receive() still collects them.
        for future in list(self._pending.values()):
            if not future.done():
                future.set_exception(
                    TransportError(f"Provider '{self.name}' is unavailable: {reason}")
                )
