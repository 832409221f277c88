"""
Record-store tool provider.

Owns every create/read/update/delete operation on the record file.  It knows nothing about the
reasoning engine and is spawned by the orchestrator as::

    python -m conductor.providers.record_store

Tools: ``create_item``, ``list_items``, ``update_item``, ``complete_item``, ``delete_item``.
"""

from typing import (
    Any,
    Optional,
)

from conductor.config import settings
from conductor.providers.records import (
    PRIORITIES,
    STATUSES,
    RecordStore,
    format_record,
)
from conductor.providers.server import (
    ToolServer,
    init_provider_logging,
)

server = ToolServer("record-store")

_UNSET: Any = object()


def _store() -> RecordStore:
    return RecordStore()


@server.tool(
    "create_item",
    "Create a new item and save it to storage",
    {
        "type": "object",
        "properties": {
            "title": {"type": "string", "description": "Short title for the item"},
            "description": {"type": "string", "description": "Optional longer description"},
            "priority": {
                "type": "string",
                "enum": list(PRIORITIES),
                "description": "Priority level (default: medium)",
            },
            "due_date": {"type": "string", "description": "Optional due date in YYYY-MM-DD format"},
        },
        "required": ["title"],
    },
)
def create_item(
    title: str,
    description: str = "",
    priority: str = "medium",
    due_date: Optional[str] = None,
) -> str:
    """Add an item."""
    record = _store().create(title, description=description, priority=priority, due_date=due_date)
    return f'Created item "{record["title"]}" with ID {record["id"]}'


@server.tool(
    "list_items",
    "List items, optionally filtered by status or priority",
    {
        "type": "object",
        "properties": {
            "status": {
                "type": "string",
                "enum": list(STATUSES),
                "description": "Filter by completion status (default: all)",
            },
            "priority": {
                "type": "string",
                "enum": list(PRIORITIES),
                "description": "Filter by priority level",
            },
        },
    },
)
def list_items(status: str = "all", priority: Optional[str] = None) -> str:
    """List items matching the filters, one per line."""
    records = _store().list(status=status, priority=priority)
    if not records:
        return "No items match the filter."
    return "\n".join(format_record(r) for r in records)


@server.tool(
    "update_item",
    "Update fields on an existing item by its ID",
    {
        "type": "object",
        "properties": {
            "id": {"type": "string", "description": "The item ID to update"},
            "title": {"type": "string"},
            "description": {"type": "string"},
            "priority": {"type": "string", "enum": list(PRIORITIES)},
            "due_date": {"type": "string"},
        },
        "required": ["id"],
    },
)
def update_item(
    id: str,  # pylint: disable=redefined-builtin
    title: Optional[str] = _UNSET,
    description: Optional[str] = _UNSET,
    priority: Optional[str] = _UNSET,
    due_date: Optional[str] = _UNSET,
) -> str:
    """Edit an item in place.  Only arguments actually sent are applied; null clears a field."""
    given = {"title": title, "description": description, "priority": priority, "due_date": due_date}
    record = _store().update(id, **{k: v for k, v in given.items() if v is not _UNSET})
    if record is None:
        return f"No item found with ID {id}"
    return f'Updated item "{record["title"]}"'


@server.tool(
    "complete_item",
    "Mark an item as completed",
    {
        "type": "object",
        "properties": {"id": {"type": "string", "description": "The item ID to mark complete"}},
        "required": ["id"],
    },
)
def complete_item(id: str) -> str:  # pylint: disable=redefined-builtin
    """Mark an item done."""
    record = _store().complete(id)
    if record is None:
        return f"No item found with ID {id}"
    return f'Marked "{record["title"]}" as complete ✓'


@server.tool(
    "delete_item",
    "Permanently delete an item by its ID",
    {
        "type": "object",
        "properties": {"id": {"type": "string", "description": "The item ID to delete"}},
        "required": ["id"],
    },
)
def delete_item(id: str) -> str:  # pylint: disable=redefined-builtin
    """Remove an item."""
    record = _store().delete(id)
    if record is None:
        return f"No item found with ID {id}"
    return f'Deleted "{record["title"]}"'


def main() -> None:
    """Serve the record-store tools over stdio."""
    init_provider_logging(settings.LOG_LEVEL)
    server.serve()


if __name__ == "__main__":
    main()
