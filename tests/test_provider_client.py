"""Tests for the provider protocol client, using an in-memory channel."""

import asyncio
from typing import (
    Any,
    Dict,
    List,
    Tuple,
)

import pytest

from conductor.core.errors import (
    ToolInvocationError,
    TransportError,
)
from conductor.providers.client import (
    ProviderClient,
    first_text,
)


class FakeChannel:
    """Answers requests from a method -> result (or exception) table."""

    def __init__(self, answers: Dict[str, Any], delay: float = 0.0):
        self.answers = answers
        self.delay = delay
        self.requests: List[Tuple[str, Dict[str, Any]]] = []
        self.notifications: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def request(self, method, params=None, timeout=None):
        self.requests.append((method, params or {}))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            answer = self.answers[method]
            if isinstance(answer, Exception):
                raise answer
            return answer
        finally:
            self.in_flight -= 1

    async def notify(self, method, params=None):
        self.notifications.append(method)


def _text(text: str, is_error: bool = False) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": text}], "isError": is_error}


def test_first_text() -> None:
    assert first_text([{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]) == "a"
    assert first_text([{"type": "image", "data": "..."}, {"type": "text", "text": "b"}]) == "b"
    assert first_text([]) == ""
    assert first_text(None) == ""


async def test_initialize_handshake() -> None:
    channel = FakeChannel(
        {"initialize": {"protocolVersion": "2024-11-05", "serverInfo": {"name": "records"}}}
    )
    client = ProviderClient("records", channel, startup_timeout=1, call_timeout=1)

    await client.initialize()

    method, params = channel.requests[0]
    assert method == "initialize"
    assert params["clientInfo"]["name"] == "conductor"
    assert channel.notifications == ["notifications/initialized"]
    assert client.server_info == {"name": "records"}


async def test_discover_maps_declarations() -> None:
    schema = {"type": "object", "properties": {"title": {"type": "string"}}}
    channel = FakeChannel(
        {
            "tools/list": {
                "tools": [
                    {"name": "create_item", "description": "Create", "inputSchema": schema},
                    {"name": "list_items"},
                ]
            }
        }
    )
    client = ProviderClient("records", channel, startup_timeout=1, call_timeout=1)

    tools = await client.discover()

    assert [t.name for t in tools] == ["create_item", "list_items"]
    assert tools[0].input_schema == schema
    assert tools[1].description == ""
    assert tools[1].input_schema["type"] == "object"


@pytest.mark.parametrize(
    "listing",
    [{}, {"tools": "nope"}, {"tools": [{"description": "no name"}]}, {"tools": ["bare"]}],
)
async def test_discover_rejects_malformed_listing(listing) -> None:
    client = ProviderClient("bad", FakeChannel({"tools/list": listing}), startup_timeout=1)
    with pytest.raises(ToolInvocationError):
        await client.discover()


async def test_invoke_returns_first_text() -> None:
    channel = FakeChannel({"tools/call": _text('Created item "buy milk" with ID 1')})
    client = ProviderClient("records", channel, call_timeout=1)

    assert await client.invoke("create_item", {"title": "buy milk"}) == (
        'Created item "buy milk" with ID 1'
    )
    assert channel.requests == [
        ("tools/call", {"name": "create_item", "arguments": {"title": "buy milk"}})
    ]


async def test_invoke_empty_content_is_empty_text() -> None:
    client = ProviderClient("records", FakeChannel({"tools/call": {"content": []}}), call_timeout=1)
    assert await client.invoke("list_items") == ""


async def test_is_error_result_raises() -> None:
    channel = FakeChannel({"tools/call": _text("Unknown tool: nope", is_error=True)})
    client = ProviderClient("records", channel, call_timeout=1)

    with pytest.raises(ToolInvocationError) as excinfo:
        await client.invoke("nope")
    assert str(excinfo.value) == "Unknown tool: nope"
    assert excinfo.value.tool == "nope"


async def test_rpc_error_is_tagged_with_tool() -> None:
    channel = FakeChannel({"tools/call": ToolInvocationError("Method not found", code=-32601)})
    client = ProviderClient("records", channel, call_timeout=1)

    with pytest.raises(ToolInvocationError) as excinfo:
        await client.invoke("create_item")
    assert excinfo.value.tool == "create_item"
    assert excinfo.value.code == -32601


async def test_transport_error_propagates() -> None:
    channel = FakeChannel({"tools/call": TransportError("exited with code 1")})
    client = ProviderClient("records", channel, call_timeout=1)

    with pytest.raises(TransportError):
        await client.invoke("create_item")


async def test_calls_to_one_provider_are_serialized() -> None:
    """Concurrent invocations never overlap on the same provider."""
    channel = FakeChannel({"tools/call": _text("ok")}, delay=0.01)
    client = ProviderClient("records", channel, call_timeout=1)

    results = await asyncio.gather(*(client.invoke("list_items") for _ in range(5)))

    assert results == ["ok"] * 5
    assert channel.max_in_flight == 1
