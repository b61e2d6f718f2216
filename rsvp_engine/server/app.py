"""FastAPI application exposing reader sessions over HTTP.

WHY: Browser pages, kiosks and experiment runners need to drive a reading
session without embedding the engine. The API turns each user intent into
one request and returns the session state the surface should render.

HOW: A module-level SessionStore holds ReaderSession objects. Endpoints are
``async def`` so every session mutation happens on the event loop thread,
which is also where the sessions' timers and frames fire. A lifespan task
periodically closes idle sessions.

RULES:
- Unknown session IDs -> 404; store full -> 429
- Config import (POST /sessions with config, PUT /sessions/{id}/config)
  goes through the normalizer; MalformedConfig -> 422 with its reason
- Config export returns the canonical ConditionSpec JSON verbatim
- Intent endpoints never fail on odd values; the session's fallback rules
  apply instead
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import Response

from rsvp_engine import __version__, config
from rsvp_engine.core.normalizer import normalize, parse_config
from rsvp_engine.errors import MalformedConfig
from rsvp_engine.server.models import (
    AdvanceResponse,
    AutoplayRequest,
    CreateSessionRequest,
    ErrorResponse,
    EventEntry,
    EventsResponse,
    HealthResponse,
    ModeRequest,
    PointerSample,
    SessionResponse,
    TextUpdate,
    TokensResponse,
    ViewportStepRequest,
)
from rsvp_engine.server.sessions import SessionRecord, SessionStore

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 300

# ---------------------------------------------------------------------------
# App and store setup
# ---------------------------------------------------------------------------

session_store = SessionStore()


async def _periodic_cleanup() -> None:
    """Close idle sessions every few minutes."""
    while True:
        await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
        session_store.cleanup_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start periodic cleanup on startup; close every session on shutdown."""
    task = asyncio.create_task(_periodic_cleanup())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    session_store.clear()


app = FastAPI(
    lifespan=lifespan,
    title="RSVP Reading Engine API",
    description=(
        "Create reading sessions from text and a ConditionSpec, drive playback "
        "(autoplay, manual steps, reset, pointer rate control) and read back "
        "the text or scroll offset to display."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Session not found"}}
_MALFORMED = {422: {"model": ErrorResponse, "description": "Malformed configuration"}}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_record(session_id: str) -> SessionRecord:
    record = session_store.get(session_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Session not found: {}".format(session_id))
    return record


def _to_response(record: SessionRecord) -> SessionResponse:
    return SessionResponse(id=record.id, **record.session.snapshot())


def _decode_body(raw: bytes) -> str:
    """Strict UTF-8 decode of an uploaded config document.

    Raises:
        MalformedConfig: If the body is not valid UTF-8.
    """
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedConfig("Invalid JSON: body is not valid UTF-8 ({})".format(exc.reason)) from exc


# ---------------------------------------------------------------------------
# Endpoints: Sessions
# ---------------------------------------------------------------------------


@app.post(
    "/sessions",
    response_model=SessionResponse,
    status_code=201,
    tags=["sessions"],
    summary="Create a reading session",
    description="Tokenizes the text with the given (or default) configuration and starts playback if autoplay is on.",
    responses={**_MALFORMED, 429: {"model": ErrorResponse, "description": "Too many sessions"}},
)
async def create_session(body: CreateSessionRequest) -> SessionResponse:
    spec = None
    if body.config is not None:
        try:
            spec = normalize(body.config)
        except MalformedConfig as exc:
            logger.warning("Rejected session config: %s", exc.reason)
            raise HTTPException(status_code=422, detail=exc.reason)
    try:
        record = session_store.create(text=body.text, spec=spec)
    except ValueError as exc:
        raise HTTPException(status_code=429, detail=str(exc))
    return _to_response(record)


@app.get(
    "/sessions/{session_id}",
    response_model=SessionResponse,
    tags=["sessions"],
    summary="Get session state",
    responses=_NOT_FOUND,
)
async def get_session(session_id: str) -> SessionResponse:
    return _to_response(_get_record(session_id))


@app.delete(
    "/sessions/{session_id}",
    status_code=204,
    tags=["sessions"],
    summary="Close and delete a session",
    responses=_NOT_FOUND,
)
async def delete_session(session_id: str) -> Response:
    if not session_store.delete(session_id):
        raise HTTPException(status_code=404, detail="Session not found: {}".format(session_id))
    return Response(status_code=204)


@app.put(
    "/sessions/{session_id}/text",
    response_model=SessionResponse,
    tags=["sessions"],
    summary="Replace the source text",
    responses=_NOT_FOUND,
)
async def update_text(session_id: str, body: TextUpdate) -> SessionResponse:
    record = _get_record(session_id)
    record.session.set_text(body.text)
    return _to_response(record)


@app.get(
    "/sessions/{session_id}/tokens",
    response_model=TokensResponse,
    tags=["sessions"],
    summary="List the current token sequence",
    responses=_NOT_FOUND,
)
async def get_tokens(session_id: str) -> TokensResponse:
    session = _get_record(session_id).session
    tokenization = session.spec.tokenization
    return TokensResponse(
        unit=tokenization.unit,
        chunk_size=tokenization.chunk_size,
        tokens=session.tokens,
    )


@app.get(
    "/sessions/{session_id}/events",
    response_model=EventsResponse,
    tags=["sessions"],
    summary="Recent playback events",
    responses=_NOT_FOUND,
)
async def get_events(session_id: str) -> EventsResponse:
    session = _get_record(session_id).session
    events: List[EventEntry] = [EventEntry(**entry.to_dict()) for entry in session.events]
    return EventsResponse(events=events)


# ---------------------------------------------------------------------------
# Endpoints: Configuration
# ---------------------------------------------------------------------------


@app.get(
    "/sessions/{session_id}/config",
    tags=["config"],
    summary="Export the session's ConditionSpec",
    responses=_NOT_FOUND,
)
async def export_session_config(session_id: str) -> Dict[str, Any]:
    return _get_record(session_id).session.spec.to_dict()


@app.put(
    "/sessions/{session_id}/config",
    response_model=SessionResponse,
    tags=["config"],
    summary="Import a ConditionSpec",
    description="The raw JSON body is validated and normalized before it replaces the session's configuration.",
    responses={**_NOT_FOUND, **_MALFORMED},
)
async def import_session_config(session_id: str, request: Request) -> SessionResponse:
    record = _get_record(session_id)
    raw = await request.body()
    try:
        spec = parse_config(_decode_body(raw))
    except MalformedConfig as exc:
        logger.warning("Rejected config import for %s: %s", session_id, exc.reason)
        raise HTTPException(status_code=422, detail=exc.reason)
    record.session.replace_spec(spec)
    return _to_response(record)


# ---------------------------------------------------------------------------
# Endpoints: Playback intents
# ---------------------------------------------------------------------------


@app.post(
    "/sessions/{session_id}/autoplay",
    response_model=SessionResponse,
    tags=["playback"],
    summary="Start or pause automatic playback",
    responses=_NOT_FOUND,
)
async def set_autoplay(session_id: str, body: AutoplayRequest) -> SessionResponse:
    record = _get_record(session_id)
    record.session.set_autoplay(body.enabled)
    return _to_response(record)


@app.post(
    "/sessions/{session_id}/mode",
    response_model=SessionResponse,
    tags=["playback"],
    summary="Switch display mode",
    responses=_NOT_FOUND,
)
async def set_mode(session_id: str, body: ModeRequest) -> SessionResponse:
    record = _get_record(session_id)
    record.session.set_mode(body.mode)
    return _to_response(record)


@app.post(
    "/sessions/{session_id}/viewport-step",
    response_model=SessionResponse,
    tags=["playback"],
    summary="Choose how much text each step shows",
    responses=_NOT_FOUND,
)
async def set_viewport_step(session_id: str, body: ViewportStepRequest) -> SessionResponse:
    record = _get_record(session_id)
    record.session.set_viewport_step(body.step)
    return _to_response(record)


@app.post(
    "/sessions/{session_id}/advance",
    response_model=AdvanceResponse,
    tags=["playback"],
    summary="Step forward by hand",
    description="Only moves while autoplay is off and step progression is selected.",
    responses=_NOT_FOUND,
)
async def manual_advance(session_id: str) -> AdvanceResponse:
    session = _get_record(session_id).session
    advanced = session.manual_advance()
    return AdvanceResponse(advanced=advanced, index=session.index, window=session.current_window())


@app.post(
    "/sessions/{session_id}/reset",
    response_model=SessionResponse,
    tags=["playback"],
    summary="Rewind to the first token",
    responses=_NOT_FOUND,
)
async def reset_session(session_id: str) -> SessionResponse:
    record = _get_record(session_id)
    record.session.reset()
    return _to_response(record)


@app.post(
    "/sessions/{session_id}/pointer",
    response_model=SessionResponse,
    tags=["playback"],
    summary="Report a rate-control pointer sample",
    responses=_NOT_FOUND,
)
async def pointer_move(session_id: str, body: PointerSample) -> SessionResponse:
    record = _get_record(session_id)
    record.session.pointer_move(body.position)
    return _to_response(record)


@app.delete(
    "/sessions/{session_id}/pointer",
    response_model=SessionResponse,
    tags=["playback"],
    summary="Report that the pointer left the control surface",
    responses=_NOT_FOUND,
)
async def pointer_leave(session_id: str) -> SessionResponse:
    record = _get_record(session_id)
    record.session.pointer_leave()
    return _to_response(record)


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__, sessions=len(session_store))


def run_api() -> None:
    """Entry point for the rsvp-api console script."""
    import uvicorn
    uvicorn.run(app, host=config.API_HOST, port=config.API_PORT)
