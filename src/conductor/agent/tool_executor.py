"""Dispatches tool calls through the :class:`ToolRegistry` and turns failures into text."""

import logging

from conductor.core.errors import (
    ToolInvocationError,
    TransportError,
    UnknownToolError,
)
from conductor.core.schema import ToolInvocation
from conductor.tools import ToolRegistry

logger = logging.getLogger(__name__)


async def execute_tool(registry: ToolRegistry, call: ToolInvocation) -> str:
    """
    Route *call* to its provider and return the textual result.

    Parameters
    ----------
    registry:
        The merged tool namespace.
    call:
        The tool call requested by the engine.

    Returns
    -------
    str
        The provider's text result, or a description of why the call failed.  A failed call is data
        for the engine to reason about, so this function never raises for per-call failures.
    """
    try:
        handle, _ = registry.resolve(call.name)
    except UnknownToolError:
        logger.warning("Engine requested unknown tool '%s'", call.name)
        return f"Error: tool '{call.name}' is not registered with any provider."

    try:
        logger.debug(
            "Executing tool '%s' on '%s' with args=%s", call.name, handle.name, call.arguments
        )
        return await handle.invoke(call.name, call.arguments)
    except ToolInvocationError as exc:
        logger.warning("Tool '%s' failed: %s", call.name, exc)
        return f"Error: tool '{call.name}' failed: {exc}"
    except TransportError as exc:
        logger.error("Tool '%s' is unavailable: %s", call.name, exc)
        return f"Error: tool '{call.name}' is unavailable: {exc}"
