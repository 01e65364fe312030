"""Derived view models computed from the event log.

These are the read-side projections the presentation layer consumes:
- Session: the live quiz snapshot
- SessionStats: totals across every Game played so far
- SessionSummary: a session's size and last activity, for listings
"""

from datetime import datetime

from pydantic import BaseModel

from chordquiz.models.quiz import Session


class SessionStats(BaseModel):
    """Totals across all Games of a session."""

    games_generated: int = 0
    games_completed: int = 0
    attempts: int = 0
    succeeded: int = 0
    total_score: int = 0

    @property
    def success_rate(self) -> float | None:
        """Share of attempts that succeeded, None before the first attempt."""
        if not self.attempts:
            return None
        return self.succeeded / self.attempts


class QuizSessionState(BaseModel):
    """Complete derived state for a session.

    This is what the API returns and what the CLI prints.
    """

    session_id: str
    session: Session
    stats: SessionStats

    # False when the last parameter change produced no Game, or the cursor
    # has run past the last generated Game
    game_available: bool = False

    # Metadata
    event_count: int = 0
    last_event_seq: int = -1
    last_event_ts: datetime | None = None


class SessionSummary(BaseModel):
    """One line of a session listing."""

    session_id: str
    event_count: int
    last_event_seq: int
    last_event_ts: datetime
