"""
JSON-file record store shared by the record-store provider and the HTTP quick actions.

All records live in one file (``DATA_DIR/records.json``) that is read and rewritten on every
operation.  Writers in different processes are not coordinated.
"""

import json
import logging
import os
import tempfile
import time
from datetime import (
    datetime,
    timezone,
)
from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from conductor.config import settings

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "medium", "high")
STATUSES = ("all", "pending", "completed")
UPDATABLE_FIELDS = ("title", "description", "priority", "due_date")
CLEARABLE_FIELDS = {"description": "", "due_date": None}

Record = Dict[str, Any]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def default_path() -> Path:
    """Location of the record file under ``settings.DATA_DIR``."""
    return Path(settings.DATA_DIR) / "records.json"


def format_record(record: Record) -> str:
    """One-line human summary used in tool results."""
    line = (
        f"[{record['id']}] {'✓' if record.get('completed') else '○'} {record.get('title', '')}"
        f" | {record.get('priority', 'medium')} priority"
    )
    if record.get("due_date"):
        line += f" | due {record['due_date']}"
    if record.get("description"):
        line += f" | {record['description']}"
    return line


class RecordStore:
    """Read/modify/write access to the record file."""

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path is not None else default_path()

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #
    def all(self) -> List[Record]:
        """Every record; an absent or unreadable file counts as empty."""
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not read %s: %s", self.path, exc)
            return []
        return data if isinstance(data, list) else []

    def _write(self, records: List[Record]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".records-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    @staticmethod
    def _index(records: List[Record], record_id: str) -> int:
        for i, record in enumerate(records):
            if str(record.get("id")) == str(record_id):
                return i
        return -1

    # ------------------------------------------------------------------ #
    # Operations
    # ------------------------------------------------------------------ #
    def get(self, record_id: str) -> Optional[Record]:
        """Return the record with *record_id*, if any."""
        records = self.all()
        idx = self._index(records, record_id)
        return records[idx] if idx >= 0 else None

    def create(
        self,
        title: str,
        description: str = "",
        priority: str = "medium",
        due_date: Optional[str] = None,
    ) -> Record:
        """Append a new pending record and return it.  Empty optional fields take their defaults."""
        priority = priority or "medium"
        description = description or ""
        if priority not in PRIORITIES:
            raise ValueError(f"priority must be one of {', '.join(PRIORITIES)}")
        records = self.all()
        existing = {str(r.get("id")) for r in records}
        stamp = int(time.time() * 1000)
        while str(stamp) in existing:
            stamp += 1
        record: Record = {
            "id": str(stamp),
            "title": title,
            "description": description,
            "priority": priority,
            "due_date": due_date or None,
            "completed": False,
            "created_at": _now(),
        }
        records.append(record)
        self._write(records)
        return record

    def list(self, status: str = "all", priority: Optional[str] = None) -> List[Record]:
        """Records filtered by completion *status* and optionally *priority*."""
        records = self.all()
        if status == "pending":
            records = [r for r in records if not r.get("completed")]
        elif status == "completed":
            records = [r for r in records if r.get("completed")]
        if priority:
            records = [r for r in records if r.get("priority") == priority]
        return records

    def update(self, record_id: str, **fields: Any) -> Optional[Record]:
        """
        Apply the given fields; ``None`` when no such record exists.

        Only fields passed are touched.  Passing ``None`` clears ``description`` and ``due_date``;
        ``title`` and ``priority`` cannot be cleared, so ``None`` leaves them unchanged.
        """
        records = self.all()
        idx = self._index(records, record_id)
        if idx < 0:
            return None
        if fields.get("priority") is not None and fields["priority"] not in PRIORITIES:
            raise ValueError(f"priority must be one of {', '.join(PRIORITIES)}")
        for key in UPDATABLE_FIELDS:
            if key not in fields:
                continue
            value = fields[key]
            if value is None:
                if key not in CLEARABLE_FIELDS:
                    continue
                value = CLEARABLE_FIELDS[key]
            records[idx][key] = value
        records[idx]["updated_at"] = _now()
        self._write(records)
        return records[idx]

    def complete(self, record_id: str) -> Optional[Record]:
        """Mark a record completed; ``None`` when no such record exists."""
        records = self.all()
        idx = self._index(records, record_id)
        if idx < 0:
            return None
        records[idx]["completed"] = True
        records[idx]["completed_at"] = _now()
        self._write(records)
        return records[idx]

    def delete(self, record_id: str) -> Optional[Record]:
        """Remove a record and return it; ``None`` when no such record exists."""
        records = self.all()
        idx = self._index(records, record_id)
        if idx < 0:
            return None
        removed = records.pop(idx)
        self._write(records)
        return removed
