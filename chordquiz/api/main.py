"""FastAPI application for the chord quiz.

Endpoints:
- POST /events: Append a raw event
- POST /session/{session_id}/parameters: Change parameters (start a new session)
- POST /session/{session_id}/input: Report held notes (empty = release)
- GET /session/{session_id}/state: Get derived state
- GET /session/{session_id}/events: Get raw events
- GET /sessions: List all sessions
- GET /event/{event_id}: Get a single event
- GET /chord-types: The chord-type catalog

Security:
- Set CHORDQUIZ_API_KEY env var to require authentication
- Payload size limited to 1MB by default (CHORDQUIZ_MAX_PAYLOAD_SIZE)
- Session IDs validated (alphanumeric + underscore/hyphen, max 128 chars)
"""

import logging
import os
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import ulid
from fastapi import FastAPI, HTTPException, Query, Request, Depends
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, ValidationError, field_validator

from chordquiz.models.events import QuizEvent, QuizEventType
from chordquiz.models.derived import QuizSessionState, SessionSummary
from chordquiz.models.quiz import Parameters
from chordquiz.models.theory import CHORD_TYPES, Chord
from chordquiz.store.sqlite_store import EventStore
from chordquiz.reducers.session import reduce_session_state
from chordquiz.service import make_event, resolve_chords


logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Security configuration
# -----------------------------------------------------------------------------

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)
MAX_PAYLOAD_SIZE = int(os.environ.get("CHORDQUIZ_MAX_PAYLOAD_SIZE", 1024 * 1024))  # 1MB default
SESSION_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,128}$")


# -----------------------------------------------------------------------------
# Request/Response models
# -----------------------------------------------------------------------------


def validate_session_id(session_id: str) -> str:
    """Validate session_id format to prevent injection attacks."""
    if not SESSION_ID_PATTERN.match(session_id):
        raise HTTPException(
            status_code=400,
            detail="Invalid session_id: must be 1-128 alphanumeric characters, underscores, or hyphens",
        )
    return session_id


class EventRequest(BaseModel):
    """Request body for creating an event.

    event_id, seq, and ts are optional - server will generate if missing.
    """

    event_id: str | None = None
    session_id: str
    seq: int | None = None
    ts: datetime | None = None
    type: QuizEventType
    payload: dict[str, Any] = {}

    @field_validator("session_id")
    @classmethod
    def validate_session_id_format(cls, v: str) -> str:
        if not SESSION_ID_PATTERN.match(v):
            raise ValueError(
                "session_id must be 1-128 alphanumeric characters, underscores, or hyphens"
            )
        return v


class EventResponse(BaseModel):
    """Response after creating an event."""

    event_id: str
    seq: int
    ts: datetime


class InputRequest(BaseModel):
    """Notes currently held. An empty list releases them.

    chords may be given when the client resolved them itself; otherwise
    the server detects them from pitch_classes.
    """

    pitch_classes: list[str] = []
    chords: list[Chord | None] | None = None


class TransitionResponse(BaseModel):
    """State after a transition.

    game_available is False when the parameters could not produce a Game
    and the session was left as it was.
    """

    game_available: bool
    state: QuizSessionState


class ChordTypeItem(BaseModel):
    """One entry of the chord-type catalog."""

    symbol: str
    name: str
    intervals: list[str]
    aliases: list[str]


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------


def create_app(
    db_path: str | Path = "chordquiz.db",
    require_api_key: bool | None = None,
    max_payload_size: int | None = None,
) -> FastAPI:
    """Create a FastAPI app with the given database.

    Args:
        db_path: Path to SQLite database, or ":memory:" for in-memory.
        require_api_key: If True, require X-API-Key header. If None, uses
                         CHORDQUIZ_API_KEY env var (enabled if set).
        max_payload_size: Maximum request payload size in bytes. Defaults to
                         CHORDQUIZ_MAX_PAYLOAD_SIZE env var or 1MB.

    Returns:
        Configured FastAPI application.
    """
    store = EventStore(db_path)

    api_key = os.environ.get("CHORDQUIZ_API_KEY")
    if require_api_key is None:
        require_api_key = api_key is not None

    if max_payload_size is None:
        max_payload_size = MAX_PAYLOAD_SIZE

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        store.close()

    app = FastAPI(
        title="Chord Quiz API",
        description="Chord training sessions driven by held notes",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.store = store
    app.state.require_api_key = require_api_key
    app.state.api_key = api_key

    # -------------------------------------------------------------------------
    # Middleware for payload size limit
    # -------------------------------------------------------------------------

    @app.middleware("http")
    async def limit_payload_size(request: Request, call_next):
        """Reject requests with payload larger than max_payload_size."""
        content_length = request.headers.get("content-length")
        if content_length and int(content_length) > max_payload_size:
            return JSONResponse(
                status_code=413,
                content={"detail": f"Payload too large. Maximum size is {max_payload_size} bytes."},
            )
        return await call_next(request)

    # -------------------------------------------------------------------------
    # Dependency for API key verification
    # -------------------------------------------------------------------------

    async def verify_api_key(api_key_header: str | None = Depends(API_KEY_HEADER)):
        """Verify API key if required."""
        if not app.state.require_api_key:
            return
        if not api_key_header or api_key_header != app.state.api_key:
            raise HTTPException(
                status_code=401,
                detail="Invalid or missing API key. Set X-API-Key header.",
            )

    def append_and_reduce(event: QuizEvent) -> TransitionResponse:
        """Append an event and return the replayed state."""
        try:
            store.append(event, auto_seq=True)
        except ValueError as e:
            raise HTTPException(status_code=409, detail=str(e))

        state = reduce_session_state(event.session_id, store.get_events(event.session_id))
        return TransitionResponse(
            game_available=state.game_available,
            state=state,
        )

    # ---------------------------------------------------------------------
    # Endpoints
    # ---------------------------------------------------------------------

    @app.post("/events", response_model=EventResponse, dependencies=[Depends(verify_api_key)])
    async def create_event(request: EventRequest) -> EventResponse:
        """Append an event to the store.

        Auto-generates event_id (ULID) and seq if not provided.
        Auto-sets ts to now if not provided.
        """
        event_id = request.event_id or str(ulid.new())
        ts = request.ts or datetime.now(timezone.utc)
        auto_seq = request.seq is None
        seq = request.seq if request.seq is not None else 0

        event = QuizEvent(
            event_id=event_id,
            session_id=request.session_id,
            seq=seq,
            ts=ts,
            type=request.type,
            payload=request.payload,
        )

        try:
            event.get_payload_model()
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=f"Invalid payload: {e}")

        try:
            result = store.append(event, auto_seq=auto_seq)
        except ValueError as e:
            raise HTTPException(status_code=409, detail=str(e))

        return EventResponse(
            event_id=result.event_id,
            seq=result.seq,
            ts=result.ts,
        )

    @app.post(
        "/session/{session_id}/parameters",
        response_model=TransitionResponse,
        dependencies=[Depends(verify_api_key)],
    )
    async def change_parameters(session_id: str, parameters: Parameters) -> TransitionResponse:
        """Start a new session from these parameters.

        If they cannot produce a Game, the previous session stays playable
        and game_available is False.
        """
        validate_session_id(session_id)
        event = make_event(
            session_id,
            QuizEventType.PARAMETERS_CHANGED,
            {"parameters": parameters.model_dump(mode="json")},
        )
        response = append_and_reduce(event)
        if not response.game_available:
            logger.info("Session %s: no game for the requested parameters", session_id)
        return response

    @app.post(
        "/session/{session_id}/input",
        response_model=TransitionResponse,
        dependencies=[Depends(verify_api_key)],
    )
    async def change_input(session_id: str, request: InputRequest) -> TransitionResponse:
        """Report the notes currently held. An empty list releases them."""
        validate_session_id(session_id)

        if not request.pitch_classes:
            event = make_event(session_id, QuizEventType.NOTES_RELEASED, {})
        else:
            try:
                chords = request.chords
                if chords is None:
                    chords = resolve_chords(request.pitch_classes)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            payload = {
                "pitch_classes": request.pitch_classes,
                "chords": [c.model_dump(mode="json") if c is not None else None for c in chords],
            }
            event = make_event(session_id, QuizEventType.NOTES_HELD, payload)

        try:
            event.get_payload_model()
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=f"Invalid input: {e}")

        return append_and_reduce(event)

    @app.get("/session/{session_id}/state", response_model=QuizSessionState)
    async def get_session_state(session_id: str) -> QuizSessionState:
        """Get the derived state for a session.

        Returns the live Session snapshot and totals.
        """
        validate_session_id(session_id)
        if not store.session_exists(session_id):
            raise HTTPException(status_code=404, detail="Session not found")

        events = store.get_events(session_id)
        return reduce_session_state(session_id, events)

    @app.get("/session/{session_id}/events", response_model=list[QuizEvent])
    async def get_session_events(
        session_id: str,
        from_seq: int | None = Query(None, description="Start from this seq"),
        to_seq: int | None = Query(None, description="End at this seq"),
        event_type: QuizEventType | None = Query(None, description="Filter by event type"),
    ) -> list[QuizEvent]:
        """Get raw events for a session with optional filters."""
        validate_session_id(session_id)
        if not store.session_exists(session_id):
            raise HTTPException(status_code=404, detail="Session not found")

        return store.get_events(
            session_id,
            from_seq=from_seq,
            to_seq=to_seq,
            event_type=event_type,
        )

    @app.get("/sessions", response_model=list[SessionSummary])
    async def list_sessions() -> list[SessionSummary]:
        """List all sessions in the store."""
        return store.session_summaries()

    @app.get("/event/{event_id}", response_model=QuizEvent)
    async def get_event(event_id: str) -> QuizEvent:
        """Get a single event by ID."""
        event = store.get_event(event_id)
        if not event:
            raise HTTPException(status_code=404, detail="Event not found")
        return event

    @app.get("/chord-types", response_model=list[ChordTypeItem])
    async def list_chord_types() -> list[ChordTypeItem]:
        """List the chord-type catalog."""
        return [
            ChordTypeItem(
                symbol=t.symbol,
                name=t.name,
                intervals=list(t.intervals),
                aliases=list(t.aliases),
            )
            for t in CHORD_TYPES
        ]

    return app


# Default app instance
app = create_app(os.environ.get("CHORDQUIZ_DB", "chordquiz.db"))
