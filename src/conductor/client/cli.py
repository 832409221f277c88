"""CLI client for the conductor API."""

from __future__ import annotations

import json
import logging
import time
from typing import (
    Any,
    Dict,
    Iterator,
    List,
    Tuple,
)

import httpx

from conductor.common import (
    AnsiColors,
    colored_print,
    print_event,
)
from conductor.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """Read one line from stdin; the flag is False on EOF or Ctrl+C."""
    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def parse_sse(lines: Iterator[str]) -> Iterator[Dict[str, Any]]:
    """Decode ``data:`` frames from a Server-Sent Events line iterator."""
    for line in lines:
        if not line.startswith("data:"):
            continue
        payload = line[len("data:") :].strip()
        if not payload:
            continue
        try:
            yield json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Skipping malformed event: %s", payload)


def wait_for_api(base_url: str, max_retries: int = 5) -> bool:
    """Poll ``/health`` with exponential backoff until the API answers."""
    for attempt in range(max_retries):
        try:
            httpx.get(f"{base_url}/health", timeout=5.0).raise_for_status()
            return True
        except httpx.HTTPError:
            if attempt == max_retries - 1:
                break
            retry_delay = 0.5 * (2**attempt)
            logger.info(
                "Waiting for the API at %s, next check in %.1fs (%d/%d)",
                base_url,
                retry_delay,
                attempt + 1,
                max_retries,
            )
            time.sleep(retry_delay)
    return False


def send_turn(
    client: httpx.Client, message: str, history: List[Dict[str, Any]]
) -> Tuple[List[Dict[str, Any]], bool]:
    """
    Submit one turn and print its events as they arrive.

    Returns the conversation to carry into the next turn and whether the turn completed.  On failure
    the previous history is kept.
    """
    with client.stream("POST", "/api/chat", json={"message": message, "history": history}) as resp:
        resp.raise_for_status()
        for event in parse_sse(resp.iter_lines()):
            print_event(event)
            if event.get("type") == "turn_complete":
                return list(event.get("messages") or []), True
            if event.get("type") == "error":
                return history, False
    colored_print("⚠️ Stream ended without a terminal event", AnsiColors.RED)
    return history, False


def run_cli(base_url: str | None = None) -> None:
    """Interactive shell: one turn per line until `exit`, `quit`, EOF or Ctrl+C."""
    base_url = base_url or f"http://localhost:{settings.API_PORT}"
    if not wait_for_api(base_url):
        colored_print(f"⚠️ Could not reach the API at {base_url}", AnsiColors.RED)
        return

    history: List[Dict[str, Any]] = []
    colored_print("\n🤖 Conductor shell - type 'exit' or 'quit' to leave", AnsiColors.GREEN)
    with httpx.Client(base_url=base_url, timeout=httpx.Timeout(30.0, read=None)) as client:
        while True:
            colored_print("\n🧑 You: ", AnsiColors.BLUE, end="")
            user_msg, ok = get_user_message()
            if not ok:
                break
            if not user_msg:
                continue
            if user_msg.lower() in {"exit", "quit"}:
                break
            try:
                history, _ = send_turn(client, user_msg, history)
            except httpx.HTTPError as exc:
                logger.error("API request error: %s", exc)
                colored_print(f"Error connecting to API: {exc}", AnsiColors.RED)


if __name__ == "__main__":
    run_cli()
