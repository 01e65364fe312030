"""Stats reducer - totals across every Game of a session."""

from chordquiz.models.derived import SessionStats
from chordquiz.models.quiz import Session


def reduce_stats(session: Session) -> SessionStats:
    """Compute SessionStats from a snapshot.

    Args:
        session: The session to summarize.

    Returns:
        The computed SessionStats.
    """
    stats = SessionStats(games_generated=len(session.games))
    for game in session.games:
        stats.attempts += len(game.played)
        stats.succeeded += game.succeeded
        stats.total_score += game.score
        if game.completed:
            stats.games_completed += 1
    return stats
