"""Pydantic request/response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for request validation,
response serialization and the generated OpenAPI docs.

HOW: One model per request body and per response shape. The ConditionSpec
itself is not modelled here. Config import/export passes the raw JSON
document through the normalizer, which is the single source of truth for
its shape.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Python 3.9+ compatible (Optional/List/Dict from typing)
- Invalid intent values are accepted here and handled by the session's
  fallback rules, not rejected with 422
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class CreateSessionRequest(BaseModel):
    """Body for POST /sessions."""

    text: str = Field(default="", description="Source text to read.")
    config: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Optional ConditionSpec document; normalized before use.",
    )


class TextUpdate(BaseModel):
    text: str = Field(description="Replacement source text. Rewinds playback to the start.")


class AutoplayRequest(BaseModel):
    enabled: bool = Field(description="Start (true) or pause (false) automatic playback.")


class ModeRequest(BaseModel):
    mode: str = Field(description="Display mode: 'rsvp' or 'continuous'. Unknown values fall back to 'rsvp'.")


class ViewportStepRequest(BaseModel):
    step: str = Field(
        description="One of letter-1, letter-2, letter-3, word-1, word-2, word-3, sentence.",
    )


class PointerSample(BaseModel):
    position: float = Field(
        description="Pointer position along the rate-control axis, normalized to [0, 1].",
    )


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SessionResponse(BaseModel):
    """Current state of a reader session.

    RULES:
    - window is the text shown at the current index ("" when empty)
    - offset_px / cycle_length describe continuous progression
    """

    id: str = Field(description="Session identifier.")
    text: str = Field(description="Current source text.")
    token_count: int = Field(description="Number of tokens in the current sequence.")
    index: int = Field(description="Current playback index.")
    window: str = Field(description="Text displayed at the current index.")
    position: str = Field(description="Human-readable position, e.g. '3/12'.")
    running: bool = Field(description="True while timed step playback is running.")
    animating: bool = Field(description="True while continuous scrolling is running.")
    offset_px: float = Field(description="Continuous scroll offset in pixels.")
    cycle_length: float = Field(description="Scroll distance before the loop restarts.")
    viewport_step: Optional[str] = Field(default=None, description="Matching viewport step, if any.")
    mode: str = Field(description="Display mode.")
    progression: str = Field(description="'step' or 'continuous'.")
    autoplay: bool = Field(description="Whether automatic playback is enabled.")
    speed: Dict[str, Any] = Field(description="Current speed {unit, value}.")


class AdvanceResponse(BaseModel):
    advanced: bool = Field(description="False when manual stepping is not allowed right now.")
    index: int = Field(description="Playback index after the request.")
    window: str = Field(description="Text displayed after the request.")


class TokensResponse(BaseModel):
    unit: str = Field(description="Tokenization unit.")
    chunk_size: int = Field(description="Base tokens per token.")
    tokens: List[str] = Field(description="The token sequence in source order.")


class EventEntry(BaseModel):
    event: str = Field(description="start, stop, tick, manual or reset.")
    index: int = Field(description="Index after the event.")
    timestamp: str = Field(description="ISO-8601 UTC timestamp.")


class EventsResponse(BaseModel):
    events: List[EventEntry] = Field(description="Most recent events, oldest first.")


class ErrorResponse(BaseModel):
    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
    sessions: int = Field(description="Number of live sessions.")
