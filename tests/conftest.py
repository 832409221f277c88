import os
import sys
from pathlib import Path

import pytest

from conductor.providers.records import RecordStore
from conductor.providers.supervisor import (
    ProcessSupervisor,
    ProviderSpec,
)
from conductor.tools import ToolRegistry

SRC_DIR = Path(__file__).resolve().parents[1] / "src"


@pytest.fixture
def provider_env(tmp_path: Path) -> dict:
    """Environment for provider subprocesses: importable package, isolated data dir."""
    pythonpath = os.pathsep.join(p for p in (str(SRC_DIR), os.environ.get("PYTHONPATH")) if p)
    return {"PYTHONPATH": pythonpath, "DATA_DIR": str(tmp_path), "LOG_LEVEL": "warning"}


@pytest.fixture
def record_store_spec(provider_env: dict) -> ProviderSpec:
    return ProviderSpec(
        name="record-store",
        command=sys.executable,
        args=("-m", "conductor.providers.record_store"),
        env=provider_env,
    )


@pytest.fixture
def store(tmp_path: Path) -> RecordStore:
    return RecordStore(tmp_path / "records.json")


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry()


@pytest.fixture
async def supervisor(registry: ToolRegistry):
    sup = ProcessSupervisor(registry, startup_timeout=20, call_timeout=20, shutdown_grace=2)
    yield sup
    await sup.shutdown()
