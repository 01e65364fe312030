"""JSONL exchange of quiz logs, one event per line.

An exported log replays to the same session elsewhere as long as it is
imported under the same session id (the id seeds game generation).
"""

from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from chordquiz.models.events import QuizEvent

if TYPE_CHECKING:
    from chordquiz.store.sqlite_store import EventStore


def export_session_jsonl(
    store: "EventStore",
    session_id: str,
    output_path: str | Path,
) -> int:
    """Write a session's log to a JSONL file. Returns the number of events."""
    events = store.get_events(session_id)
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w", encoding="utf-8") as f:
        f.writelines(event.model_dump_json() + "\n" for event in events)

    return len(events)


def read_events_jsonl(
    input_path: str | Path,
    session_id_override: str | None = None,
) -> list[QuizEvent]:
    """Parse a JSONL log, checking that every payload can be replayed.

    Raises:
        ValueError: On the first line that is not a valid event.
    """
    events = []
    with open(input_path, "r", encoding="utf-8") as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue

            try:
                event = QuizEvent.model_validate_json(line)
                event.get_payload_model()
            except ValidationError as e:
                raise ValueError(f"Invalid event on line {line_num}: {e}") from e

            if session_id_override:
                event = event.model_copy(update={"session_id": session_id_override})
            events.append(event)

    return events


def import_session_jsonl(
    store: "EventStore",
    input_path: str | Path,
    session_id_override: str | None = None,
) -> int:
    """Load a JSONL log into the store, keeping its seqs.

    Nothing is stored unless every line is valid and no seq is taken.

    Args:
        store: The event store to write to.
        input_path: Path to the JSONL file.
        session_id_override: If provided, file the events under this session.

    Returns:
        Number of events imported.

    Raises:
        ValueError: If a line is invalid or an event conflicts with the store.
    """
    return store.append_many(read_events_jsonl(input_path, session_id_override))
