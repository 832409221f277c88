"""Common console helpers for the project."""

import json
from enum import Enum
from typing import (
    Any,
    Dict,
)


class AnsiColors(Enum):
    """
    ANSI color codes for terminal output.
    """

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"
    GREY = "\033[90m"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color.

    Args:
        text: The text to print
        color: The color to use (AnsiColors enum)
        args: Additional positional arguments for print
        kwargs: Additional keyword arguments for print
    """
    print(f"{color.value}{text}\033[0m", *args, **kwargs)  # ANSI reset at the end


def describe_event(event: Dict[str, Any]) -> str:
    """One-line rendering of a progress event payload as received over SSE."""
    kind = event.get("type")
    if kind == "tool_call":
        arguments = json.dumps(event.get("input") or {}, ensure_ascii=False)
        return f"🔧 {event.get('name')} {arguments}"
    if kind == "tool_result":
        return f"   ↳ {event.get('result', '')}"
    if kind == "final_response":
        return str(event.get("text", ""))
    if kind == "turn_complete":
        return f"({len(event.get('messages') or [])} messages in conversation)"
    if kind == "error":
        return f"⚠️ {event.get('message', 'Unknown error')}"
    return json.dumps(event, ensure_ascii=False)


EVENT_COLORS = {
    "tool_call": AnsiColors.BLUE,
    "tool_result": AnsiColors.GREEN,
    "final_response": AnsiColors.YELLOW,
    "turn_complete": AnsiColors.GREY,
    "error": AnsiColors.RED,
}


def print_event(event: Dict[str, Any]) -> None:
    """Print a progress event in its color."""
    colored_print(describe_event(event), EVENT_COLORS.get(str(event.get("type")), AnsiColors.GREY))
