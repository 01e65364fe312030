"""QuizSession - the single owner of one live quiz session.

Hosts (the CLI, tests, a UI) drive a session through two entry points,
parameters_changed() and input_changed(). Each call reads the clock once,
records the input as an event when a store is attached, and replaces the
snapshot with the reducer's result.
"""

import logging
import threading
import time
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Any

import ulid

from chordquiz.models.events import (
    QuizEvent,
    QuizEventType,
    ParametersChangedPayload,
    NotesHeldPayload,
    NotesReleasedPayload,
)
from chordquiz.models.quiz import Parameters, Session
from chordquiz.models.theory import Chord, detect_chords
from chordquiz.reducers.quiz import (
    QuizAction,
    reduce_quiz,
    replay_session,
    session_generator,
)
from chordquiz.store.sqlite_store import EventStore


logger = logging.getLogger(__name__)


def resolve_chords(pitch_classes: Sequence[str]) -> list[Chord | None]:
    """Interpret held pitch classes as chord candidates.

    Returns [None] when the notes form no known chord, so the attempt is
    still graded.
    """
    return list(detect_chords(pitch_classes)) or [None]


def make_event(
    session_id: str,
    event_type: QuizEventType,
    payload: dict[str, Any],
    ts: datetime | None = None,
) -> QuizEvent:
    """Build an event ready for EventStore.append(auto_seq=True)."""
    return QuizEvent(
        event_id=str(ulid.new()),
        session_id=session_id,
        seq=0,
        ts=ts or datetime.now(timezone.utc),
        type=event_type,
        payload=payload,
    )


class QuizSession:
    """A live session, optionally persisted to an EventStore.

    Attaching a store to an existing session id resumes it by replaying
    its events.
    """

    def __init__(
        self,
        session_id: str,
        store: EventStore | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Create or resume a session.

        Args:
            session_id: The session ID (also seeds game generation).
            store: Where to record input events (optional).
            clock: Wall-clock source in seconds.
        """
        self.session_id = session_id
        self.store = store
        self._clock = clock
        self._lock = threading.Lock()
        self._generate = session_generator(session_id)
        self._session = Session()
        self._parameters_applied = True

        if store is not None and store.session_exists(session_id):
            events = store.get_events(session_id)
            # Replay through our own generator so its draws stay in step
            self._session, self._parameters_applied = replay_session(
                session_id, events, generate=self._generate
            )
            logger.info("Resumed session %s from %d events", session_id, len(events))

    @property
    def state(self) -> Session:
        """The current snapshot (immutable)."""
        return self._session

    def parameters_changed(self, parameters: Parameters) -> Session:
        """Start over with new parameters.

        If no Game can be generated the session is left as it was; check
        game_available() to tell the user.
        """
        return self._dispatch(
            QuizEventType.PARAMETERS_CHANGED,
            ParametersChangedPayload(parameters=parameters),
        )

    def input_changed(
        self,
        pitch_classes: Sequence[str],
        chords: Sequence[Chord | None] | None = None,
    ) -> Session:
        """Report the notes currently held; an empty set is a release.

        Args:
            pitch_classes: Held pitch-class names, bass first.
            chords: Their chord interpretations (detected if omitted).
        """
        if not pitch_classes:
            return self._dispatch(QuizEventType.NOTES_RELEASED, NotesReleasedPayload())

        if chords is None:
            chords = resolve_chords(pitch_classes)
        return self._dispatch(
            QuizEventType.NOTES_HELD,
            NotesHeldPayload(pitch_classes=list(pitch_classes), chords=list(chords)),
        )

    def press(self, pitch_classes: Sequence[str]) -> Session:
        """Hold notes, detecting their chords."""
        return self.input_changed(pitch_classes)

    def release(self) -> Session:
        """Release all notes."""
        return self.input_changed([])

    def game_available(self) -> bool:
        """Whether the last parameter change produced a Game that is still in play."""
        return self._parameters_applied and not self._session.ended

    def _dispatch(self, event_type: QuizEventType, action: QuizAction) -> Session:
        with self._lock:
            ts = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
            # Use the recorded instant so replay sees the same time
            now = ts.timestamp()
            if self.store is not None:
                event = make_event(
                    self.session_id,
                    event_type,
                    action.model_dump(mode="json"),
                    ts=ts,
                )
                self.store.append(event, auto_seq=True)

            previous = self._session
            self._session = reduce_quiz(
                previous, action, now, generate=self._generate
            )
            if event_type == QuizEventType.PARAMETERS_CHANGED:
                self._parameters_applied = self._session is not previous
            return self._session
