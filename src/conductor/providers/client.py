"""Protocol layer over a :class:`StdioChannel`: handshake, tool discovery and tool calls."""

from __future__ import annotations

import asyncio
import logging
from typing import (
    Any,
    Dict,
    List,
)

from pydantic import ValidationError

from conductor.config import settings
from conductor.core.errors import (
    ToolInvocationError,
    TransportError,
)
from conductor.core.schema import ToolDescriptor
from conductor.transport.channel import StdioChannel

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
CLIENT_INFO = {"name": "conductor", "version": "0.1.0"}


def first_text(content: Any) -> str:
    """
    Reduce a tool result's ``content`` list to its first text segment.

    Providers may return several blocks (text, images, resources); callers only ever see the first
    ``text`` block, and an empty string when there is none.
    """
    if not isinstance(content, list):
        return ""
    for block in content:
        if isinstance(block, dict) and block.get("type") == "text":
            return str(block.get("text") or "")
    return ""


class ProviderClient:
    """Client side of one tool provider."""

    def __init__(
        self,
        name: str,
        channel: StdioChannel,
        *,
        startup_timeout: float | None = None,
        call_timeout: float | None = None,
    ):
        self.name = name
        self.channel = channel
        self.startup_timeout = (
            settings.PROVIDER_STARTUP_TIMEOUT if startup_timeout is None else startup_timeout
        )
        self.call_timeout = settings.PROVIDER_CALL_TIMEOUT if call_timeout is None else call_timeout
        self.server_info: Dict[str, Any] = {}
        # One in-flight call per provider; concurrent turns queue here.
        self._call_lock = asyncio.Lock()

    async def initialize(self) -> Dict[str, Any]:
        """Perform the ``initialize`` handshake."""
        result = await self.channel.request(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": CLIENT_INFO,
            },
            timeout=self.startup_timeout,
        )
        self.server_info = result.get("serverInfo") or {}
        await self.channel.notify("notifications/initialized")
        logger.debug("Provider '%s' initialized: %s", self.name, self.server_info)
        return result

    async def discover(self) -> List[ToolDescriptor]:
        """
        List the provider's tools.

        Raises
        ------
        TransportError
            If the channel fails or the provider does not answer within the startup timeout.
        ToolInvocationError
            If the provider rejects the request or answers with a malformed tool list.
        """
        result = await self.channel.request("tools/list", {}, timeout=self.startup_timeout)
        raw_tools = result.get("tools")
        if not isinstance(raw_tools, list):
            raise ToolInvocationError(f"Provider '{self.name}' returned no tool list")

        descriptors: List[ToolDescriptor] = []
        for raw in raw_tools:
            try:
                descriptors.append(
                    ToolDescriptor(
                        name=raw["name"],
                        description=raw.get("description") or "",
                        input_schema=raw.get("inputSchema") or {"type": "object", "properties": {}},
                    )
                )
            except (KeyError, TypeError, AttributeError, ValidationError) as exc:
                raise ToolInvocationError(
                    f"Provider '{self.name}' declared a malformed tool: {raw!r}"
                ) from exc
        return descriptors

    async def invoke(self, name: str, arguments: Dict[str, Any] | None = None) -> str:
        """
        Call *name* with *arguments* and return the textual result.

        Raises
        ------
        ToolInvocationError
            If the provider reports a failure (``isError`` result or JSON-RPC error).
        TransportError
            If the channel is unusable.
        """
        async with self._call_lock:
            logger.debug("Calling '%s' on provider '%s' with %s", name, self.name, arguments)
            try:
                result = await self.channel.request(
                    "tools/call",
                    {"name": name, "arguments": arguments or {}},
                    timeout=self.call_timeout,
                )
            except ToolInvocationError as exc:
                raise ToolInvocationError(str(exc), tool=name, code=exc.code) from exc
            except TransportError:
                logger.error("Provider '%s' is unavailable for '%s'", self.name, name)
                raise

        text = first_text(result.get("content"))
        if result.get("isError"):
            raise ToolInvocationError(text or f"Tool '{name}' reported an error", tool=name)
        return text
