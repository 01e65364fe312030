"""Session reducer - combines the quiz and stats reducers into one state.

This is the main entry point for computing derived state from events.
The event log is the source of truth: the snapshot is rebuilt by
replaying it, so a stored session always comes back the same.
"""

from chordquiz.models.events import QuizEvent
from chordquiz.models.derived import QuizSessionState
from chordquiz.reducers.quiz import replay_session
from chordquiz.reducers.stats import reduce_stats


def reduce_session_state(
    session_id: str,
    events: list[QuizEvent],
) -> QuizSessionState:
    """Reduce all events to a complete QuizSessionState.

    Args:
        session_id: The session ID.
        events: All events for the session, ordered by seq.

    Returns:
        The complete QuizSessionState.
    """
    session, parameters_applied = replay_session(session_id, events)
    last_event = events[-1] if events else None

    return QuizSessionState(
        session_id=session_id,
        session=session,
        stats=reduce_stats(session),
        game_available=parameters_applied and not session.ended,
        event_count=len(events),
        last_event_seq=last_event.seq if last_event else -1,
        last_event_ts=last_event.ts if last_event else None,
    )
