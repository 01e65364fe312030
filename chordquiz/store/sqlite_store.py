"""SQLite store for the quiz input log.

One row per input event. Rows are only ever inserted: a session's log
is replayed in seq order to rebuild its snapshot, so seq is gap-free and
unique per session. The transition time is kept as epoch seconds (the
value the reducer is fed) rather than as text.
"""

import json
import logging
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path

from chordquiz.models.derived import SessionSummary
from chordquiz.models.events import QuizEvent, QuizEventType


logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS quiz_events (
    event_id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    seq INTEGER NOT NULL,
    at REAL NOT NULL,
    type TEXT NOT NULL,
    payload_json TEXT NOT NULL,
    UNIQUE (session_id, seq)
);

CREATE INDEX IF NOT EXISTS idx_quiz_events_type
    ON quiz_events(session_id, type);
"""

# seq is taken from the row when given, else the session's next one
_INSERT = """
INSERT INTO quiz_events (event_id, session_id, seq, at, type, payload_json)
VALUES (
    ?, ?,
    COALESCE(?, (SELECT MAX(seq) + 1 FROM quiz_events WHERE session_id = ?), 0),
    ?, ?, ?
)
RETURNING seq
"""


class EventStore:
    """Quiz event log backed by SQLite.

    Connections are per thread; writes are serialised by a lock. An
    in-memory store gets its own shared-cache URI so that its threads see
    one database and separate stores stay apart.
    """

    def __init__(self, db_path: str | Path = ":memory:"):
        """Open (and if needed create) the log.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory.
        """
        if str(db_path) == ":memory:":
            self.db_path = f"file:chordquiz_{uuid.uuid4().hex[:8]}?mode=memory&cache=shared"
            self._uri = True
        else:
            self.db_path = str(db_path)
            self._uri = False

        self._local = threading.local()
        self._write_lock = threading.Lock()
        conn = self._get_conn()
        with conn:
            conn.executescript(_SCHEMA)

    def _get_conn(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(
                self.db_path,
                uri=self._uri,
                check_same_thread=False,
                timeout=30.0,
            )
            conn.row_factory = sqlite3.Row
            if not self._uri:
                conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn = conn
        return conn

    @staticmethod
    def _row_values(event: QuizEvent, seq: int | None) -> tuple:
        return (
            event.event_id,
            event.session_id,
            seq,
            event.session_id,
            event.ts.timestamp(),
            event.type.value,
            json.dumps(event.payload),
        )

    def append(self, event: QuizEvent, auto_seq: bool = False) -> QuizEvent:
        """Record one input event.

        Args:
            event: The event to record.
            auto_seq: Ignore event.seq and give the event the session's next seq.

        Returns:
            The event as stored (with its seq).

        Raises:
            ValueError: If the event_id or the (session, seq) pair is taken.
        """
        with self._write_lock:
            conn = self._get_conn()
            try:
                with conn:
                    (row,) = conn.execute(
                        _INSERT, self._row_values(event, None if auto_seq else event.seq)
                    ).fetchall()
            except sqlite3.IntegrityError as e:
                raise ValueError(f"Event already exists or seq conflict: {e}") from e

        logger.debug("Appended %s to %s at seq %d", event.type.value, event.session_id, row[0])
        return event if row[0] == event.seq else event.model_copy(update={"seq": row[0]})

    def append_many(self, events: list[QuizEvent]) -> int:
        """Record events with their own seqs, all or none.

        Raises:
            ValueError: If any event_id or (session, seq) pair is taken; nothing is stored.
        """
        with self._write_lock:
            conn = self._get_conn()
            try:
                with conn:
                    for event in events:
                        conn.execute(_INSERT, self._row_values(event, event.seq)).fetchall()
            except sqlite3.IntegrityError as e:
                raise ValueError(f"Event already exists or seq conflict: {e}") from e

        logger.debug("Appended %d events", len(events))
        return len(events)

    def get_events(
        self,
        session_id: str,
        from_seq: int | None = None,
        to_seq: int | None = None,
        event_type: QuizEventType | None = None,
    ) -> list[QuizEvent]:
        """A session's events in seq order, optionally narrowed.

        Args:
            session_id: The session to query.
            from_seq: Start from this seq (inclusive, optional).
            to_seq: End at this seq (inclusive, optional).
            event_type: Only events of this type (optional).
        """
        query = "SELECT * FROM quiz_events WHERE session_id = ?"
        params: list = [session_id]

        if from_seq is not None:
            query += " AND seq >= ?"
            params.append(from_seq)
        if to_seq is not None:
            query += " AND seq <= ?"
            params.append(to_seq)
        if event_type is not None:
            query += " AND type = ?"
            params.append(event_type.value)

        rows = self._get_conn().execute(query + " ORDER BY seq", params).fetchall()
        return [self._row_to_event(row) for row in rows]

    def get_event(self, event_id: str) -> QuizEvent | None:
        """Get a single event by ID, or None if not found."""
        row = self._get_conn().execute(
            "SELECT * FROM quiz_events WHERE event_id = ?", (event_id,)
        ).fetchone()
        return self._row_to_event(row) if row else None

    def session_exists(self, session_id: str) -> bool:
        """Check if a session has any events."""
        row = self._get_conn().execute(
            "SELECT 1 FROM quiz_events WHERE session_id = ? LIMIT 1", (session_id,)
        ).fetchone()
        return row is not None

    def session_summaries(self) -> list[SessionSummary]:
        """Event count and last event of every session, ordered by session id."""
        rows = self._get_conn().execute(
            """
            SELECT e.session_id, s.event_count, e.seq, e.at
            FROM quiz_events e
            JOIN (
                SELECT session_id, COUNT(*) AS event_count, MAX(seq) AS last_seq
                FROM quiz_events
                GROUP BY session_id
            ) s ON e.session_id = s.session_id AND e.seq = s.last_seq
            ORDER BY e.session_id
            """
        ).fetchall()
        return [
            SessionSummary(
                session_id=row["session_id"],
                event_count=row["event_count"],
                last_event_seq=row["seq"],
                last_event_ts=datetime.fromtimestamp(row["at"], tz=timezone.utc),
            )
            for row in rows
        ]

    def close(self) -> None:
        """Close this thread's connection."""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None

    def _row_to_event(self, row: sqlite3.Row) -> QuizEvent:
        return QuizEvent(
            event_id=row["event_id"],
            session_id=row["session_id"],
            seq=row["seq"],
            ts=datetime.fromtimestamp(row["at"], tz=timezone.utc),
            type=QuizEventType(row["type"]),
            payload=json.loads(row["payload_json"]),
        )

    def __enter__(self) -> "EventStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
