"""Event storage for quiz sessions."""

from chordquiz.store.sqlite_store import EventStore
from chordquiz.store.jsonl_io import (
    export_session_jsonl,
    import_session_jsonl,
    read_events_jsonl,
)

__all__ = [
    "EventStore",
    "export_session_jsonl",
    "import_session_jsonl",
    "read_events_jsonl",
]
