"""
Pydantic models for conductor API requests and responses.
This module defines the request and response schemas used by the conductor API.
"""

from typing import (
    Any,
    Dict,
    List,
)

from pydantic import (
    BaseModel,
    Field,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class ChatRequest(BaseModel):
    """One turn: the new user message plus the conversation so far."""

    message: str = Field(..., min_length=1, description="New user message")
    history: List[Dict[str, Any]] = Field(
        default_factory=list,
        description="Conversation returned by the previous turn_complete event",
    )


class ToolInfo(BaseModel):
    """A tool in the merged namespace, with the provider that serves it."""

    name: str
    description: str
    provider: str
    input_schema: Dict[str, Any]


class OkResponse(BaseModel):
    """Acknowledgement for quick actions."""

    ok: bool = True
