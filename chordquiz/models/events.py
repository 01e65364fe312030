"""Event models for the quiz's append-only input log.

Every input a session receives is one event. Replaying the events of a
session through the reducer reproduces its state.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from chordquiz.models.quiz import Parameters
from chordquiz.models.theory import Chord, pitch_class


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------


class QuizEventType(str, Enum):
    """All event types in a quiz session."""

    PARAMETERS_CHANGED = "ParametersChanged"
    NOTES_HELD = "NotesHeld"
    NOTES_RELEASED = "NotesReleased"


# -----------------------------------------------------------------------------
# Payload types for each event
# -----------------------------------------------------------------------------


class ParametersChangedPayload(BaseModel):
    """Payload for ParametersChanged event."""

    parameters: Parameters


class NotesHeldPayload(BaseModel):
    """Payload for NotesHeld event.

    chords are the interpretations of the held pitch classes, resolved
    upstream. A None entry means the notes form no known chord; an empty
    list offers nothing to grade and leaves the session as it is.
    """

    pitch_classes: list[str] = Field(min_length=1)
    chords: list[Chord | None]

    @field_validator("pitch_classes")
    @classmethod
    def validate_pitch_classes(cls, v: list[str]) -> list[str]:
        return [pitch_class(pc) for pc in v]


class NotesReleasedPayload(BaseModel):
    """Payload for NotesReleased event."""


# -----------------------------------------------------------------------------
# Event envelope
# -----------------------------------------------------------------------------


class QuizEvent(BaseModel):
    """The common envelope for all quiz events.

    ts is the wall-clock moment the input arrived; replay uses it as the
    transition time.
    """

    event_id: str
    session_id: str
    seq: int = Field(ge=0)
    ts: datetime
    type: QuizEventType

    # Event-specific data
    payload: dict[str, Any]

    @field_validator("ts")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Timestamps without a zone are taken as UTC."""
        return v if v.tzinfo is not None else v.replace(tzinfo=timezone.utc)

    def get_payload_model(self) -> BaseModel:
        """Parse payload into the appropriate typed model."""
        payload_types: dict[QuizEventType, type[BaseModel]] = {
            QuizEventType.PARAMETERS_CHANGED: ParametersChangedPayload,
            QuizEventType.NOTES_HELD: NotesHeldPayload,
            QuizEventType.NOTES_RELEASED: NotesReleasedPayload,
        }
        return payload_types[self.type].model_validate(self.payload)
