"""
Analysis tool provider.

Reads the record file (never writes it), builds a focused prompt for the requested analysis and
forwards it to a small text model.  Spawned by the orchestrator as::

    python -m conductor.providers.analysis

Tools: ``prioritize_items``, ``summarize_items``, ``suggest_next_item``, ``categorize_items``.
"""

import json
import logging
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
)

from conductor.config import settings
from conductor.providers.records import RecordStore
from conductor.providers.server import (
    ToolServer,
    init_provider_logging,
)

logger = logging.getLogger(__name__)

server = ToolServer("analysis")

Record = Dict[str, Any]
NEEDS_PENDING = {"prioritize_items", "suggest_next_item"}


# ---------------------------------------------------------------------------
# Prompt builders
# ---------------------------------------------------------------------------
def _dump(records: List[Record]) -> str:
    return json.dumps(records, indent=2, ensure_ascii=False)


def _prioritize_prompt(records: List[Record], pending: List[Record]) -> str:
    return f"""You are a productivity coach. Here are the user's pending items:

{_dump(pending)}

Rank them from most to least urgent/important. For each, give:
1. Rank number
2. Title
3. One sentence explaining why it has this rank

Be concise. Consider due dates, priority labels, and implied urgency from the title."""


def _summarize_prompt(records: List[Record], pending: List[Record]) -> str:
    completed = [r for r in records if r.get("completed")]
    rate = round(len(completed) / len(records) * 100) if records else 0
    return f"""You are a productivity assistant. Here is the user's item list:

{_dump(records)}

Stats: {len(records)} total, {len(completed)} completed ({rate}%), {len(pending)} pending.

Give a short productivity summary covering:
- Overall completion status
- Any overdue or urgent items
- One actionable insight or encouragement

Keep it under 5 sentences."""


def _suggest_prompt(records: List[Record], pending: List[Record]) -> str:
    return f"""You are a productivity coach. Here are the user's pending items:

{_dump(pending)}

Which SINGLE item should the user work on RIGHT NOW?
Reply with:
- The item title (bold)
- 2 sentences explaining why this is the best next action

Consider: due dates, high priority labels, and what's most impactful."""


def _categorize_prompt(records: List[Record], pending: List[Record]) -> str:
    return f"""You are an organizer. Here are all the user's items:

{_dump(records)}

Group them into 2-4 logical categories. For each category:
- Category name (e.g. "Work", "Personal", "Health")
- List the item titles under it

Use the actual content to determine categories, not the priority field."""


PROMPTS: Dict[str, Callable[[List[Record], List[Record]], str]] = {
    "prioritize_items": _prioritize_prompt,
    "summarize_items": _summarize_prompt,
    "suggest_next_item": _suggest_prompt,
    "categorize_items": _categorize_prompt,
}


# ---------------------------------------------------------------------------
# Model call
# ---------------------------------------------------------------------------
def ask_model(prompt: str) -> str:
    """Send *prompt* to the analysis model and return its first text block."""
    import anthropic  # pylint: disable=import-outside-toplevel

    client = anthropic.Anthropic(api_key=settings.ANTHROPIC_API_KEY)
    response = client.messages.create(
        model=settings.ANALYSIS_MODEL,
        max_tokens=settings.ANALYSIS_MAX_TOKENS,
        messages=[{"role": "user", "content": prompt}],
    )
    for block in response.content:
        if block.type == "text":
            return block.text
    return ""


def analyze(
    tool: str, records: List[Record], ask: Optional[Callable[[str], str]] = None
) -> str:
    """
    Run analysis *tool* over *records*.

    Guard messages are returned without calling the model when there is nothing to analyze.
    """
    if tool not in PROMPTS:
        raise ValueError(f"Unknown analysis: {tool}")
    if not records:
        return "No items found. Add some first!"
    pending = [r for r in records if not r.get("completed")]
    if tool in NEEDS_PENDING and not pending:
        return "All items are completed, nothing left to analyze!"

    prompt = PROMPTS[tool](records, pending)
    logger.debug("%s prompt:\n%s", tool, prompt)
    return (ask or ask_model)(prompt)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------
@server.tool(
    "prioritize_items",
    "AI-powered: analyze and rank all pending items by urgency and importance, "
    "with reasoning for each rank",
)
def prioritize_items() -> str:
    """Rank pending items."""
    return analyze("prioritize_items", RecordStore().all())


@server.tool(
    "summarize_items",
    "AI-powered: generate a concise productivity summary (completion rate, deadlines, "
    "workload, key insights)",
)
def summarize_items() -> str:
    """Summarize the whole list."""
    return analyze("summarize_items", RecordStore().all())


@server.tool(
    "suggest_next_item",
    "AI-powered: recommend the single best item to work on right now, with reasoning",
)
def suggest_next_item() -> str:
    """Pick one item to do next."""
    return analyze("suggest_next_item", RecordStore().all())


@server.tool(
    "categorize_items",
    "AI-powered: group items into 2-4 logical themes or categories",
)
def categorize_items() -> str:
    """Group items into themes."""
    return analyze("categorize_items", RecordStore().all())


def main() -> None:
    """Serve the analysis tools over stdio."""
    init_provider_logging(settings.LOG_LEVEL)
    server.serve()


if __name__ == "__main__":
    main()
