"""
Lifecycle of the tool-provider subprocesses.

Each provider is an owned resource: :meth:`ProcessSupervisor.start` acquires it (spawn, connect,
handshake, discover, register) and :meth:`ProcessSupervisor.shutdown` releases it.  Providers are
started once, strictly in order, and never restarted; a provider that dies later simply makes its
tools fail with :class:`TransportError`.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import sys
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
)

from conductor.config import settings
from conductor.core.errors import (
    ConductorError,
    StartupError,
)
from conductor.core.schema import ToolDescriptor
from conductor.providers.client import ProviderClient
from conductor.tools import ToolRegistry
from conductor.transport.channel import (
    STREAM_LIMIT,
    StdioChannel,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderSpec:
    """How to launch one provider."""

    name: str
    command: str
    args: Tuple[str, ...] = ()
    env: Optional[Mapping[str, str]] = None  # merged over the parent environment
    cwd: Optional[str] = None


@dataclass(eq=False)
class ProviderHandle:
    """A running, connected provider.  Compared by identity."""

    name: str
    process: asyncio.subprocess.Process
    channel: StdioChannel
    client: ProviderClient
    tools: List[ToolDescriptor] = field(default_factory=list)
    stopping: bool = False
    watcher: Optional["asyncio.Task[None]"] = None

    @property
    def pid(self) -> int:
        """Process id of the provider."""
        return self.process.pid

    @property
    def alive(self) -> bool:
        """True while the process runs and the channel is usable."""
        return self.process.returncode is None and not self.channel.closed

    async def invoke(self, tool: str, arguments: Dict[str, object] | None = None) -> str:
        """Call *tool* on this provider."""
        return await self.client.invoke(tool, dict(arguments or {}))


def default_provider_specs() -> List[ProviderSpec]:
    """The record-store and analysis providers, run with the current interpreter."""
    return [
        ProviderSpec(
            name="record-store",
            command=sys.executable,
            args=("-m", "conductor.providers.record_store"),
        ),
        ProviderSpec(
            name="analysis",
            command=sys.executable,
            args=("-m", "conductor.providers.analysis"),
        ),
    ]


class ProcessSupervisor:
    """Starts providers, registers their tools and stops them again."""

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        startup_timeout: float | None = None,
        call_timeout: float | None = None,
        shutdown_grace: float | None = None,
    ):
        self.registry = registry
        self.startup_timeout = startup_timeout
        self.call_timeout = call_timeout
        self.shutdown_grace = (
            settings.PROVIDER_SHUTDOWN_GRACE if shutdown_grace is None else shutdown_grace
        )
        self.handles: List[ProviderHandle] = []

    async def __aenter__(self) -> "ProcessSupervisor":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    # ------------------------------------------------------------------ #
    # Startup
    # ------------------------------------------------------------------ #
    async def start(self, spec: ProviderSpec) -> ProviderHandle:
        """
        Launch *spec*, discover its tools and register them.

        Raises
        ------
        StartupError
            If the process cannot be launched, the handshake or discovery fails, or one of its
            tool names is already taken (:class:`ToolNameConflict`).
        """
        logger.info("Starting provider '%s': %s %s", spec.name, spec.command, " ".join(spec.args))
        env = {**os.environ, **dict(spec.env or {})}
        try:
            process = await asyncio.create_subprocess_exec(
                spec.command,
                *spec.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                cwd=spec.cwd,
                limit=STREAM_LIMIT,
            )
        except OSError as exc:
            raise StartupError(f"Provider '{spec.name}' failed to launch: {exc}") from exc

        channel = StdioChannel(process, name=spec.name).start()
        client = ProviderClient(
            spec.name,
            channel,
            startup_timeout=self.startup_timeout,
            call_timeout=self.call_timeout,
        )
        handle = ProviderHandle(name=spec.name, process=process, channel=channel, client=client)
        handle.watcher = asyncio.create_task(
            self._watch(handle), name=f"conductor-watch-{spec.name}"
        )

        try:
            await client.initialize()
            descriptors = await client.discover()
            self.registry.register_provider(handle, descriptors)
        except ConductorError as exc:
            await self._stop(handle)
            if isinstance(exc, StartupError):
                raise
            raise StartupError(f"Provider '{spec.name}' failed to start: {exc}") from exc

        handle.tools = descriptors
        self.handles.append(handle)
        logger.info("Provider '%s' ready (pid %d)", spec.name, process.pid)
        return handle

    async def start_all(self, specs: Iterable[ProviderSpec]) -> List[ProviderHandle]:
        """Start *specs* one after another; on the first failure stop everything and re-raise."""
        for spec in specs:
            try:
                await self.start(spec)
            except StartupError:
                logger.error(
                    "Provider startup failed; stopping %d started provider(s)", len(self.handles)
                )
                await self.shutdown()
                raise
        return list(self.handles)

    # ------------------------------------------------------------------ #
    # Shutdown
    # ------------------------------------------------------------------ #
    async def shutdown(self) -> None:
        """Stop every provider, most recently started first."""
        while self.handles:
            await self._stop(self.handles.pop())

    async def _stop(self, handle: ProviderHandle) -> None:
        handle.stopping = True
        await handle.channel.aclose()
        process = handle.process
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.terminate()
            try:
                await asyncio.wait_for(process.wait(), self.shutdown_grace)
            except asyncio.TimeoutError:
                logger.warning("Provider '%s' ignored SIGTERM; killing it", handle.name)
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
        if handle.watcher is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await handle.watcher
        logger.info("Provider '%s' stopped", handle.name)

    async def _watch(self, handle: ProviderHandle) -> None:
        returncode = await handle.process.wait()
        if handle.stopping:
            logger.debug("Provider '%s' exited with code %s", handle.name, returncode)
        else:
            logger.error(
                "Provider '%s' exited unexpectedly with code %s; its tools are now unavailable",
                handle.name,
                returncode,
            )
        handle.channel.mark_exited(returncode)
