"""Tests for the merged tool namespace."""

import pytest
from fakes import FakeProvider

from conductor.core.errors import (
    StartupError,
    ToolNameConflict,
    UnknownToolError,
)
from conductor.core.schema import ToolDescriptor
from conductor.tools import ToolRegistry


def _noop(args: dict) -> str:
    return ""


@pytest.fixture
def providers():
    storage = FakeProvider("storage", {"create": _noop, "list": _noop})
    analysis = FakeProvider("analysis", {"summarize": _noop})
    return storage, analysis


def test_resolve_returns_owner(providers) -> None:
    """Every registered name resolves to the handle that declared it."""
    storage, analysis = providers
    registry = ToolRegistry()
    registry.register_provider(storage, storage.descriptors())
    registry.register_provider(analysis, analysis.descriptors())

    handle, descriptor = registry.resolve("summarize")
    assert handle is analysis
    assert descriptor.name == "summarize"
    assert registry.owner("create") == "storage"
    assert "list" in registry
    assert len(registry) == 3


def test_unknown_tool_raises(registry) -> None:
    """Resolving a name nobody declared raises UnknownToolError."""
    with pytest.raises(UnknownToolError) as excinfo:
        registry.resolve("missing")
    assert excinfo.value.name == "missing"
    assert "missing" in str(excinfo.value)


def test_conflict_is_rejected_without_side_effects(providers) -> None:
    """A clash leaves the registry exactly as it was before the failing batch."""
    storage, _ = providers
    registry = ToolRegistry()
    registry.register_provider(storage, storage.descriptors())

    intruder = FakeProvider("intruder", {"fresh": _noop, "create": _noop})
    with pytest.raises(ToolNameConflict) as excinfo:
        registry.register_provider(intruder, intruder.descriptors())

    assert isinstance(excinfo.value, StartupError)
    assert excinfo.value.owner == "storage"
    assert excinfo.value.challenger == "intruder"
    assert registry.names() == ["create", "list"]
    assert "fresh" not in registry
    assert registry.resolve("create")[0] is storage


def test_duplicate_within_one_batch_is_rejected(registry) -> None:
    """A provider cannot declare the same name twice."""
    provider = FakeProvider("dup", {})
    batch = [ToolDescriptor(name="same"), ToolDescriptor(name="same")]
    with pytest.raises(ToolNameConflict):
        registry.register_provider(provider, batch)
    assert len(registry) == 0


def test_snapshot_order_and_shape(providers) -> None:
    """Snapshot follows provider order, then each provider's declaration order."""
    storage, analysis = providers
    registry = ToolRegistry()
    registry.register_provider(storage, storage.descriptors())
    registry.register_provider(analysis, analysis.descriptors())

    snapshot = registry.snapshot()
    assert [tool["name"] for tool in snapshot] == ["create", "list", "summarize"]
    assert set(snapshot[0]) == {"name", "description", "input_schema"}
    assert snapshot[0]["input_schema"]["type"] == "object"
    # Taken twice without changes, the snapshot is identical.
    assert registry.snapshot() == snapshot
