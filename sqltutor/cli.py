"""
SQL Tutor CLI.

Commands:
    web        Start the web notebook
    sessions   List sessions, most recent first
    new        Create a session bound to a database
    show       Print a session page by page
    note       Append a note to a session
    exec       Run SQL in a session and record the result
    rm         Delete a session, or one entry of it

Examples:
    sqltutor new "Joins practice" --database learning_db
    sqltutor exec 1718000000000_joins_practice "SELECT 1"
    sqltutor show 1718000000000_joins_practice --page 2
    sqltutor rm 1718000000000_joins_practice --index 3
"""

from __future__ import annotations

import argparse
import sys
import time
from datetime import datetime


def _config(args: argparse.Namespace):
    from sqltutor.runtime import get_runtime_config, set_global_config

    config = get_runtime_config(
        history_dir=args.history_dir,
        verbose=args.verbose,
    )
    set_global_config(config)
    return config


def _store(args: argparse.Namespace):
    from sqltutor.transcript import TranscriptStore

    config = _config(args)
    return TranscriptStore(
        config.history_dir,
        page_size=config.page_size,
        default_database=config.default_database,
    )


def format_relative_time(timestamp: float, now: float | None = None) -> str:
    """Describe how long ago a timestamp (seconds since epoch) was."""
    if now is None:
        now = time.time()
    seconds = int(now - timestamp)

    if seconds < 60:
        return "just now"

    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes} min ago"

    hours = minutes // 60
    if hours < 24:
        return f"{hours} {'hour' if hours == 1 else 'hours'} ago"

    days = hours // 24
    if days < 7:
        return f"{days} {'day' if days == 1 else 'days'} ago"

    if days < 30:
        weeks = days // 7
        return f"{weeks} {'week' if weeks == 1 else 'weeks'} ago"

    # Older sessions get an absolute date
    return datetime.fromtimestamp(timestamp).date().isoformat()


def cmd_sessions(args: argparse.Namespace) -> int:
    """Handle sessions command."""
    store = _store(args)
    sessions = store.list_sessions()

    if not sessions:
        print("No sessions yet.")
        return 0

    for session in sessions:
        print(f"{session.id}  {session.name}  ({format_relative_time(session.timestamp)})")
    return 0


def cmd_new(args: argparse.Namespace) -> int:
    """Handle new command."""
    from sqltutor.transcript import TranscriptError

    store = _store(args)
    try:
        session_id = store.create(args.name, args.database)
    except TranscriptError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Created: {session_id}")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    """Handle show command."""
    from sqltutor.transcript import (
        EntryKind,
        NotFoundError,
        paginate,
        parse,
        parse_database,
        parse_title,
    )

    store = _store(args)
    try:
        document = store.read(args.session)
    except NotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    pages = paginate(parse(document))

    print(f"Session: {parse_title(document) or args.session}")
    print(f"Database: {parse_database(document) or store.default_database}")
    print(f"Pages: {len(pages)}")

    if args.page is not None:
        if not 1 <= args.page <= len(pages):
            print(f"Error: page must be between 1 and {len(pages)}", file=sys.stderr)
            return 1
        selected = [(args.page, pages[args.page - 1])]
    else:
        selected = list(enumerate(pages, 1))

    for number, page in selected:
        print()
        print(f"=== Page {number} " + "=" * 40)
        if not page:
            print("No messages yet.")
            continue
        for entry in page:
            label = entry.kind.value
            if entry.kind is EntryKind.SAVED_QUERY:
                label = f"{label}: {entry.name}"
            print(f"\n[{entry.index}] {label}")
            print("-" * 60)
            print(entry.content)

    return 0


def cmd_note(args: argparse.Namespace) -> int:
    """Handle note command."""
    from sqltutor.transcript import EntryKind, TranscriptError

    store = _store(args)
    kind = EntryKind.DIAGRAM if args.diagram else EntryKind.NOTE
    try:
        store.append(args.session, kind, args.text)
    except TranscriptError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def cmd_exec(args: argparse.Namespace) -> int:
    """Handle exec command - run SQL and record it like the web notebook does."""
    import asyncio

    from sqltutor.executor import PoolRegistry, QueryExecutor, make_pool_factory, render_outcome
    from sqltutor.runtime import get_global_config
    from sqltutor.transcript import EntryKind, TranscriptError

    store = _store(args)
    config = get_global_config()

    try:
        store.append(args.session, EntryKind.QUERY, args.sql)
    except TranscriptError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    async def run():
        registry = PoolRegistry(make_pool_factory(config))
        executor = QueryExecutor(
            registry,
            default_database=config.default_database,
            timeout=config.query_timeout,
        )
        try:
            return await executor.execute(args.sql, store.get_database(args.session))
        finally:
            await registry.close_all()

    outcome = asyncio.run(run())

    if not outcome.ok:
        store.append(args.session, EntryKind.ERROR, outcome.error)
        print(f"Error: {outcome.error}", file=sys.stderr)
        return 1

    markdown = render_outcome(outcome)
    store.append(args.session, EntryKind.RESULT, markdown)
    print(markdown)
    return 0


def cmd_rm(args: argparse.Namespace) -> int:
    """Handle rm command."""
    from sqltutor.transcript import TranscriptError

    store = _store(args)
    try:
        if args.index is not None:
            removed = store.delete_entry(args.session, args.index)
            print(f"Deleted {removed.kind.value.lower()} at index {args.index}")
        elif store.delete(args.session):
            print(f"Deleted session {args.session}")
        else:
            print(f"No session {args.session}")
    except TranscriptError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def cmd_web(args: argparse.Namespace) -> int:
    """Handle web command - start the web server."""
    from pathlib import Path

    from sqltutor.web import run_server

    config = _config(args)

    static_dir = args.static_dir
    if static_dir and not Path(static_dir).exists():
        print(f"Warning: Static directory not found: {static_dir}", file=sys.stderr)
        static_dir = None

    try:
        run_server(
            config,
            host=args.host,
            port=args.port,
            static_dir=static_dir,
            open_browser=not args.no_browser,
        )
        return 0
    except KeyboardInterrupt:
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="sqltutor",
        description="Run SQL against Postgres and keep a replayable notebook of it.",
    )
    parser.add_argument(
        "--history-dir",
        default=None,
        help="Directory holding session documents (default: $SQLTUTOR_HISTORY_DIR or ./conversations)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug logging",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # web
    web_parser = subparsers.add_parser(
        "web",
        help="Start the web notebook",
    )
    web_parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    web_parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)",
    )
    web_parser.add_argument(
        "--static-dir",
        help="Path to the frontend build directory",
    )
    web_parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Don't open browser automatically",
    )

    # sessions
    subparsers.add_parser("sessions", help="List sessions, most recent first")

    # new
    new_parser = subparsers.add_parser("new", help="Create a session")
    new_parser.add_argument(
        "name",
        help="Session title",
    )
    new_parser.add_argument(
        "-d",
        "--database",
        default=None,
        help="Database the session runs queries against (default: $POSTGRES_DB or learning_db)",
    )

    # show
    show_parser = subparsers.add_parser("show", help="Print a session page by page")
    show_parser.add_argument(
        "session",
        help="Session id",
    )
    show_parser.add_argument(
        "--page",
        type=int,
        default=None,
        help="Only print this page (1-based)",
    )

    # note
    note_parser = subparsers.add_parser("note", help="Append a note to a session")
    note_parser.add_argument(
        "session",
        help="Session id",
    )
    note_parser.add_argument(
        "text",
        help="Markdown text (or diagram source with --diagram)",
    )
    note_parser.add_argument(
        "--diagram",
        action="store_true",
        help="Append as a diagram instead of a note",
    )

    # exec
    exec_parser = subparsers.add_parser("exec", help="Run SQL in a session")
    exec_parser.add_argument(
        "session",
        help="Session id",
    )
    exec_parser.add_argument(
        "sql",
        help="SQL statement to run",
    )

    # rm
    rm_parser = subparsers.add_parser("rm", help="Delete a session or one of its entries")
    rm_parser.add_argument(
        "session",
        help="Session id",
    )
    rm_parser.add_argument(
        "--index",
        type=int,
        default=None,
        help="Delete only the entry at this index",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entrypoint."""
    from sqltutor.runtime import setup_logging

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    setup_logging(args.verbose)

    if args.command == "web":
        return cmd_web(args)
    elif args.command == "sessions":
        return cmd_sessions(args)
    elif args.command == "new":
        return cmd_new(args)
    elif args.command == "show":
        return cmd_show(args)
    elif args.command == "note":
        return cmd_note(args)
    elif args.command == "exec":
        return cmd_exec(args)
    elif args.command == "rm":
        return cmd_rm(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
