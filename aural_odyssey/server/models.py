"""Pydantic request/response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for request validation,
response serialization, and automatic OpenAPI documentation.

HOW: One model per request or response body. All fields carry
Field(description=...) so the /docs UI is self-explanatory.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
- Job status and kind strings come from server.jobs enums
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class ChatMessageModel(BaseModel):
    """One prior turn of the conversation."""

    role: str = Field(
        description="Who sent the message: 'user' or 'model'.",
        pattern="^(user|model)$",
    )
    content: str = Field(description="Message text.")


class ChatRequest(BaseModel):
    """A new chat message plus the conversation so far."""

    user_message: str = Field(
        min_length=1,
        description="The latest message from the user.",
    )
    history: List[ChatMessageModel] = Field(
        default_factory=list,
        description="The conversation history, oldest first.",
    )


class ChunkRequest(BaseModel):
    """Text to split into narration sections."""

    text: str = Field(description="Narrative text; paragraphs separated by blank lines.")


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class JobResponse(BaseModel):
    """Book job status response.

    RULES:
    - error is only set when status is 'failed'
    - result is only set when status is 'completed'
    """

    id: str = Field(description="Unique job identifier.")
    kind: str = Field(description="Job kind: 'storyteller' or 'analysis'.")
    status: str = Field(description="Current job status.")
    filename: str = Field(description="Uploaded book filename.")
    created_at: float = Field(description="Job creation timestamp (Unix epoch seconds).")
    config: Dict[str, Any] = Field(description="Request parameters used for this job.")
    error: Optional[str] = Field(
        default=None,
        description="Error message, only present when status is 'failed'.",
    )
    result: Optional[Dict[str, Any]] = Field(
        default=None,
        description=(
            "Job output, only present when status is 'completed'. Storyteller jobs "
            "return firstChapterText and chunks; analysis jobs return answer."
        ),
    )

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "id": "550e8400e29b41d4a716446655440000",
                "kind": "storyteller",
                "status": "completed",
                "filename": "novel.pdf",
                "created_at": 1739959200.0,
                "config": {},
                "error": None,
                "result": {
                    "firstChapterText": "It was a dark night.\n\nThe wind howled.",
                    "chunks": ["It was a dark night.", "The wind howled."],
                },
            }
        ]
    }}


class JobCreatedResponse(BaseModel):
    """Response returned when a new book job is submitted."""

    id: str = Field(description="Unique job identifier for polling status.")
    kind: str = Field(description="Job kind: 'storyteller' or 'analysis'.")
    status: str = Field(description="Initial job status (always 'pending').")
    filename: str = Field(description="Uploaded book filename.")


class ChatResponse(BaseModel):
    response: str = Field(description="The assistant's reply (Hindi unless asked otherwise).")


class ChunkResponse(BaseModel):
    chunks: List[str] = Field(description="Trimmed, non-empty narration sections in order.")
    labels: List[str] = Field(description="Display label for each section.")


class ErrorResponse(BaseModel):
    """Standard error response body."""

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
