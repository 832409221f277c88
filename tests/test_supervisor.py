"""Integration tests: real provider subprocesses under the supervisor."""

import asyncio
import json
import re
import sys
from dataclasses import replace

import pytest

from conductor.core.errors import (
    StartupError,
    ToolInvocationError,
    ToolNameConflict,
    TransportError,
)
from conductor.providers.supervisor import ProviderSpec

RECORD_TOOLS = ["create_item", "list_items", "update_item", "complete_item", "delete_item"]


async def _wait_closed(handle, timeout: float = 10.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not handle.channel.closed and loop.time() < deadline:
        await asyncio.sleep(0.02)


async def test_start_discovers_and_registers(supervisor, registry, record_store_spec) -> None:
    handle = await supervisor.start(record_store_spec)

    assert handle.alive
    assert [t.name for t in handle.tools] == RECORD_TOOLS
    assert registry.names() == RECORD_TOOLS
    assert registry.owner("create_item") == "record-store"
    assert handle.client.server_info["name"] == "record-store"


async def test_invoke_round_trip(supervisor, record_store_spec, tmp_path) -> None:
    """Tool calls reach the provider and persist to the shared data directory."""
    handle = await supervisor.start(record_store_spec)

    created = await handle.invoke("create_item", {"title": "buy milk", "priority": "high"})
    match = re.fullmatch(r'Created item "buy milk" with ID (\d+)', created)
    assert match, created
    record_id = match.group(1)

    listing = await handle.invoke("list_items", {"status": "pending"})
    assert f"[{record_id}] ○ buy milk | high priority" in listing

    assert await handle.invoke("complete_item", {"id": record_id}) == (
        'Marked "buy milk" as complete ✓'
    )
    stored = json.loads((tmp_path / "records.json").read_text(encoding="utf-8"))
    assert stored[0]["completed"] is True


async def test_tool_failure_is_invocation_error(supervisor, record_store_spec) -> None:
    handle = await supervisor.start(record_store_spec)

    with pytest.raises(ToolInvocationError) as excinfo:
        await handle.invoke("create_item", {"title": "x", "priority": "urgent"})
    assert "priority must be one of" in str(excinfo.value)

    with pytest.raises(ToolInvocationError) as excinfo:
        await handle.invoke("create_item", {})
    assert "Invalid arguments" in str(excinfo.value)

    # A failed call does not poison the provider.
    assert (await handle.invoke("list_items")) == "No items match the filter."


async def test_dead_provider_raises_transport_error(supervisor, record_store_spec) -> None:
    handle = await supervisor.start(record_store_spec)

    handle.process.kill()
    await handle.process.wait()
    await _wait_closed(handle)

    assert not handle.alive
    with pytest.raises(TransportError):
        await handle.invoke("list_items")


async def test_missing_executable_is_startup_error(supervisor) -> None:
    spec = ProviderSpec(name="ghost", command="/nonexistent/conductor-provider")
    with pytest.raises(StartupError):
        await supervisor.start(spec)
    assert supervisor.handles == []


async def test_provider_exiting_during_handshake(supervisor, registry) -> None:
    spec = ProviderSpec(
        name="quitter", command=sys.executable, args=("-c", "import sys; sys.exit(3)")
    )
    with pytest.raises(StartupError) as excinfo:
        await supervisor.start(spec)
    assert "quitter" in str(excinfo.value)
    assert supervisor.handles == []
    assert len(registry) == 0


async def test_duplicate_tool_names_abort_startup(supervisor, registry, record_store_spec) -> None:
    """A second provider declaring the same names is stopped and nothing of it is registered."""
    first = await supervisor.start(record_store_spec)

    with pytest.raises(ToolNameConflict) as excinfo:
        await supervisor.start(replace(record_store_spec, name="record-store-copy"))

    assert excinfo.value.owner == "record-store"
    assert excinfo.value.challenger == "record-store-copy"
    assert supervisor.handles == [first]
    assert all(registry.owner(name) == "record-store" for name in RECORD_TOOLS)


async def test_start_all_stops_started_providers_on_failure(supervisor, record_store_spec) -> None:
    bad = ProviderSpec(name="ghost", command="/nonexistent/conductor-provider")

    with pytest.raises(StartupError):
        await supervisor.start_all([record_store_spec, bad])

    assert supervisor.handles == []


async def test_shutdown_stops_processes(supervisor, record_store_spec) -> None:
    handle = await supervisor.start(record_store_spec)

    await supervisor.shutdown()

    assert handle.process.returncode is not None
    assert handle.channel.closed
    assert supervisor.handles == []
