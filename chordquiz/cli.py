"""CLI tools for the chord quiz.

Commands:
- init: Initialize a new database
- import: Import events from JSONL
- export: Export events to JSONL
- state: Print derived state for a session
- events: List events for a session
- sessions: List all sessions
- play: Practice interactively by typing note names
- chord-types: List the chord-type catalog
- serve: Start the API server
- doctor: Run health checks on the database
"""

import argparse
import logging
import sys
from multiprocessing import freeze_support
from pathlib import Path

import ulid
from pydantic import ValidationError

from chordquiz.models.derived import QuizSessionState
from chordquiz.models.quiz import MatchStatus, Parameters, Session
from chordquiz.models.theory import CHORD_TYPES
from chordquiz.reducers.session import reduce_session_state
from chordquiz.service import QuizSession
from chordquiz.store.sqlite_store import EventStore
from chordquiz.store.jsonl_io import import_session_jsonl, export_session_jsonl


DEFAULT_DB = "chordquiz.db"


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize a new database."""
    db_path = Path(args.db)

    if db_path.exists() and not args.force:
        print(f"Database already exists: {db_path}")
        print("Use --force to overwrite.")
        return 1

    if db_path.exists():
        db_path.unlink()

    store = EventStore(db_path)
    store.close()
    print(f"Initialized database: {db_path}")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    """Import events from JSONL."""
    db_path = Path(args.db)
    input_path = Path(args.input)

    if not input_path.exists():
        print(f"Input file not found: {input_path}")
        return 1

    store = EventStore(db_path)
    try:
        count = import_session_jsonl(
            store,
            input_path,
            session_id_override=args.session_id,
        )
        print(f"Imported {count} events from {input_path}")
        return 0
    except ValueError as e:
        print(f"Import error: {e}")
        return 1
    finally:
        store.close()


def cmd_export(args: argparse.Namespace) -> int:
    """Export events to JSONL."""
    db_path = Path(args.db)
    output_path = Path(args.output)

    store = EventStore(db_path)
    try:
        if not store.session_exists(args.session_id):
            print(f"Session not found: {args.session_id}")
            return 1

        count = export_session_jsonl(store, args.session_id, output_path)
        print(f"Exported {count} events to {output_path}")
        return 0
    finally:
        store.close()


def cmd_state(args: argparse.Namespace) -> int:
    """Print derived state for a session."""
    db_path = Path(args.db)

    store = EventStore(db_path)
    try:
        if not store.session_exists(args.session_id):
            print(f"Session not found: {args.session_id}")
            return 1

        events = store.get_events(args.session_id)
        state = reduce_session_state(args.session_id, events)

        if args.json:
            print(state.model_dump_json(indent=2))
        else:
            _print_state_summary(state)

        return 0
    finally:
        store.close()


def _format_seconds(value: float | None) -> str:
    return "n/a" if value is None else f"{value:.2f}s"


def _print_state_summary(state: QuizSessionState) -> None:
    """Print a human-readable state summary."""
    print(f"Session: {state.session_id}")
    print(f"Events: {state.event_count}")
    print(f"Last seq: {state.last_event_seq}")
    print()

    p = state.session.parameters
    print("=== Parameters ===")
    print(f"  Key: {p.key} ({p.accidentals})")
    print(f"  Chord types: {', '.join(p.chord_types)}")
    print(f"  Game length: {p.game_length}")
    print(f"  Diatonic: {p.diatonic}")
    print()

    gs = state.session.game_state
    print("=== Cursor ===")
    if state.session.ended:
        print("  (no game to play)")
    else:
        print(f"  Game {gs.game_index + 1}, chord {gs.index + 1}")
        print(f"  Expected: {state.session.expected_chord}")
    print(f"  Status: {gs.status.name} (score {gs.score})")
    print(f"  Timer: {gs.timer.kind}")
    print()

    print("=== Games ===")
    for i, game in enumerate(state.session.games):
        played = " ".join(str(c) if c else "?" for c in game.played)
        print(f"  [{i}] {' '.join(str(c) for c in game.chords)}")
        print(f"      played: {played or '(none)'}")
        print(
            f"      score={game.score} succeeded={game.succeeded}/{len(game.played)}"
            f" avg={_format_seconds(game.time_per_chord_seconds)}"
        )
    print()

    s = state.stats
    print("=== Totals ===")
    print(f"  Games: {s.games_completed} completed / {s.games_generated} generated")
    print(f"  Attempts: {s.attempts}, succeeded: {s.succeeded}")
    print(f"  Score: {s.total_score}")


def cmd_events(args: argparse.Namespace) -> int:
    """List events for a session."""
    db_path = Path(args.db)

    store = EventStore(db_path)
    try:
        if not store.session_exists(args.session_id):
            print(f"Session not found: {args.session_id}")
            return 1

        events = store.get_events(
            args.session_id,
            from_seq=args.from_seq,
            to_seq=args.to_seq,
        )

        if args.json:
            print("[")
            for i, event in enumerate(events):
                comma = "," if i < len(events) - 1 else ""
                print(f"  {event.model_dump_json()}{comma}")
            print("]")
        else:
            for event in events:
                print(f"[{event.seq:04d}] {event.type.value}")
                print(f"       id: {event.event_id}")
                print(f"       ts: {event.ts}")
                if "pitch_classes" in event.payload:
                    print(f"       notes: {' '.join(event.payload['pitch_classes'])}")
                print()

        return 0
    finally:
        store.close()


def cmd_sessions(args: argparse.Namespace) -> int:
    """List all sessions."""
    db_path = Path(args.db)

    store = EventStore(db_path)
    try:
        summaries = store.session_summaries()

        if not summaries:
            print("No sessions found.")
            return 0

        for summary in summaries:
            print(f"{summary.session_id}")
            print(f"  Events: {summary.event_count}")
            print(f"  Last: {summary.last_event_ts}")
            print()

        return 0
    finally:
        store.close()


def cmd_chord_types(args: argparse.Namespace) -> int:
    """List the chord-type catalog."""
    for chord_type in CHORD_TYPES:
        print(f"{chord_type.symbol:<10} {chord_type.name:<32} {' '.join(chord_type.intervals)}")
    return 0


def _print_prompt(session: Session) -> None:
    gs = session.game_state
    print(f"Game {gs.game_index + 1}, chord {gs.index + 1}: play {session.expected_chord}")


def _print_attempt(session: Session) -> None:
    gs = session.game_state
    chord = gs.chord or "no chord"
    print(f"  {chord}: {gs.status.name} ({gs.score})")


def _print_game_result(session: Session, game_index: int) -> None:
    game = session.games[game_index]
    print(
        f"Game {game_index + 1} done: score {game.score},"
        f" {game.succeeded}/{game.length} correct,"
        f" {_format_seconds(game.time_per_chord_seconds)} per chord"
    )


def cmd_play(args: argparse.Namespace) -> int:
    """Practice interactively.

    Type note names separated by spaces to hold them, an empty line to
    release, q to quit.
    """
    try:
        parameters = Parameters(
            key=args.key,
            accidentals=args.accidentals,
            chord_types=tuple(args.chord_types.split(",")),
            game_length=args.length,
            diatonic=args.diatonic,
        )
    except ValidationError as e:
        print(f"Invalid settings: {e}")
        return 1

    store = EventStore(Path(args.db)) if args.record else None
    try:
        session_id = args.session_id or str(ulid.new())
        quiz = QuizSession(session_id, store=store)
        session = quiz.parameters_changed(parameters)
        if not quiz.game_available():
            print("No exercises available for these settings.")
            return 1

        print(f"Session: {session_id}")
        print("Hold notes by typing them (e.g. 'C E G'), empty line to release, q to quit.")
        _print_prompt(session)

        for line in sys.stdin:
            line = line.strip()
            if line.lower() in ("q", "quit", "exit"):
                break

            if line:
                try:
                    session = quiz.press(line.split())
                except ValueError as e:
                    print(f"  {e}")
                    continue
                _print_attempt(session)
                continue

            finished = session.game_state
            session = quiz.release()
            if finished.status == MatchStatus.NONE:
                continue
            if session.game_state.game_index != finished.game_index:
                _print_game_result(session, finished.game_index)
            if quiz.game_available():
                _print_prompt(session)
            else:
                print("No more games.")
                break

        return 0
    finally:
        if store is not None:
            store.close()


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn
        from chordquiz.api.main import create_app
    except ImportError:
        print("uvicorn not installed. Run: pip install uvicorn")
        return 1

    app = create_app(args.db)
    print(f"Starting Chord Quiz API server on http://{args.host}:{args.port}")
    print(f"Database: {args.db}")

    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def cmd_doctor(args: argparse.Namespace) -> int:
    """Run health checks on the database.

    Checks:
    1. Seq monotonicity (no gaps or duplicates per session)
    2. Event validation (all payloads parse correctly)
    3. Reducer replay (no crashes)
    """
    db_path = Path(args.db)

    if not db_path.exists():
        print(f"ERROR: Database not found: {db_path}")
        return 1

    print(f"Checking database: {db_path}")
    print("=" * 50)

    issues = []
    warnings = []

    store = EventStore(db_path)
    try:
        summaries = store.session_summaries()
        print(f"Sessions found: {len(summaries)}")

        total_events = 0
        for summary in summaries:
            session_id = summary.session_id
            events = store.get_events(session_id)
            total_events += len(events)

            # Check 1: Seq monotonicity
            seqs = [e.seq for e in events]
            if seqs != sorted(seqs):
                issues.append(f"[{session_id}] Seqs not in order")
            if len(seqs) != len(set(seqs)):
                issues.append(f"[{session_id}] Duplicate seqs detected")

            expected_seqs = list(range(len(events)))
            if seqs != expected_seqs:
                warnings.append(f"[{session_id}] Seq gaps: expected {expected_seqs}, got {seqs}")

            # Check 2: Event validation (payload parsing)
            valid = True
            for event in events:
                try:
                    event.get_payload_model()
                except ValidationError as e:
                    valid = False
                    issues.append(f"[{session_id}] Invalid payload in {event.event_id}: {e}")

            # Check 3: Reducer replay
            if valid:
                try:
                    state = reduce_session_state(session_id, events)
                    print(
                        f"  {session_id}: {len(events)} events,"
                        f" {state.stats.games_generated} games, score={state.stats.total_score}"
                    )
                except Exception as e:
                    issues.append(f"[{session_id}] Reducer crash: {e}")

        print(f"Total events: {total_events}")
        print("=" * 50)

        if warnings:
            print(f"\nWarnings ({len(warnings)}):")
            for w in warnings:
                print(f"  [WARN] {w}")

        if issues:
            print(f"\nIssues ({len(issues)}):")
            for issue in issues:
                print(f"  [FAIL] {issue}")
            print("\nDiagnosis: UNHEALTHY")
            return 1
        else:
            print("\n[OK] All checks passed")
            print("Diagnosis: HEALTHY")
            return 0

    finally:
        store.close()


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Chord Quiz CLI - chord training sessions driven by held notes",
        prog="chordquiz",
    )
    parser.add_argument(
        "--db",
        default=DEFAULT_DB,
        help=f"Database path (default: {DEFAULT_DB})",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # init
    init_parser = subparsers.add_parser("init", help="Initialize database")
    init_parser.add_argument("--force", action="store_true", help="Overwrite existing")

    # import
    import_parser = subparsers.add_parser("import", help="Import from JSONL")
    import_parser.add_argument("input", help="Input JSONL file")
    import_parser.add_argument("--session-id", help="Override session ID")

    # export
    export_parser = subparsers.add_parser("export", help="Export to JSONL")
    export_parser.add_argument("session_id", help="Session to export")
    export_parser.add_argument("--output", "-o", required=True, help="Output file")

    # state
    state_parser = subparsers.add_parser("state", help="Print derived state")
    state_parser.add_argument("session_id", help="Session to show")
    state_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # events
    events_parser = subparsers.add_parser("events", help="List events")
    events_parser.add_argument("session_id", help="Session to show")
    events_parser.add_argument("--from-seq", type=int, help="Start seq")
    events_parser.add_argument("--to-seq", type=int, help="End seq")
    events_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # sessions
    subparsers.add_parser("sessions", help="List all sessions")

    # play
    play_parser = subparsers.add_parser("play", help="Practice interactively")
    play_parser.add_argument("--session-id", help="Session ID (default: a new ULID)")
    play_parser.add_argument("--key", default="C", help="Key (default: C)")
    play_parser.add_argument("--accidentals", default="flat", choices=["flat", "sharp"])
    play_parser.add_argument(
        "--chord-types",
        default="M,m,7,maj7,m7",
        help="Comma-separated chord types (default: M,m,7,maj7,m7)",
    )
    play_parser.add_argument("--length", type=int, default=8, help="Chords per game (default: 8)")
    play_parser.add_argument("--diatonic", action="store_true", help="Only tonics from the key")
    play_parser.add_argument("--record", action="store_true", help="Record input events to the database")

    # chord-types
    subparsers.add_parser("chord-types", help="List chord types")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")

    # doctor
    subparsers.add_parser("doctor", help="Run health checks on database")

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    commands = {
        "init": cmd_init,
        "import": cmd_import,
        "export": cmd_export,
        "state": cmd_state,
        "events": cmd_events,
        "sessions": cmd_sessions,
        "play": cmd_play,
        "chord-types": cmd_chord_types,
        "serve": cmd_serve,
        "doctor": cmd_doctor,
    }

    return commands[args.command](args)


if __name__ == "__main__":
    freeze_support()
    sys.exit(main())
