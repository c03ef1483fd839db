#!/usr/bin/env python
"""Command-line entry point for avisos."""
import argparse
import logging
import os
import sys
from pathlib import Path

from avisos import __version__
from avisos.config import config
from avisos.exceptions import AvisosError
from avisos.models.schema import Category, DeletionType, millis_to_datetime
from avisos.observability import configure_logging, metrics
from avisos.services.lifecycle import DeletionLifecycleManager
from avisos.services.query_service import NoteQueryService
from avisos.services.sweeper import CleanupExpiredNotesJob, SweepOutcome, SweepScheduler
from avisos.storage.store import NoteStore


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="avisos note organizer")
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("AVISOS_DATABASE_PATH")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("AVISOS_LOG_LEVEL", "WARNING")
    )
    sub = parser.add_subparsers(dest="command", required=True)

    list_cmd = sub.add_parser("list", help="List active notes")
    list_cmd.add_argument("--category", choices=[c.value for c in Category])
    list_cmd.add_argument("--subcategory")

    history_cmd = sub.add_parser("history", help="Show a note's edit history")
    history_cmd.add_argument("note_id", type=int)

    editions_cmd = sub.add_parser("editions", help="Show a note's editions")
    editions_cmd.add_argument("note_id", type=int)

    bin_cmd = sub.add_parser("bin", help="List the recycle bin")
    bin_cmd.add_argument("--type", choices=[t.value for t in DeletionType])

    sub.add_parser("sweep", help="Purge expired notes once")
    sub.add_parser("run-sweeper", help="Run the expiry sweep periodically")
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)


def _fmt(millis) -> str:
    return millis_to_datetime(millis).strftime("%Y-%m-%d %H:%M") if millis else "-"


def _cmd_list(store: NoteStore, args) -> int:
    queries = NoteQueryService(store)
    category = Category(args.category) if args.category else None
    for note in queries.list_active_notes(category, args.subcategory):
        urgent = "!" if note.is_urgent else " "
        sub = f"/{note.subcategory}" if note.subcategory else ""
        print(f"{urgent} {note.id:>5}  {note.category.value}{sub:<14} {note.name}")
    return 0


def _cmd_history(store: NoteStore, args) -> int:
    for entry in NoteQueryService(store).get_edit_history(args.note_id):
        print(
            f"{_fmt(entry.timestamp)}  #{entry.edition_number:<3} "
            f"{entry.modified_by or '-':<8} {entry.field_name}: "
            f"{entry.old_value!r} -> {entry.new_value!r}"
        )
    return 0


def _cmd_editions(store: NoteStore, args) -> int:
    for edition in NoteQueryService(store).get_editions(args.note_id):
        print(
            f"#{edition.edition_number:<3} {_fmt(edition.timestamp)}  "
            f"{edition.modified_by or '-':<8} {edition.change_count} change(s)"
        )
    return 0


def _cmd_bin(store: NoteStore, args) -> int:
    lifecycle = DeletionLifecycleManager(store)
    deletion_type = DeletionType(args.type) if args.type else None
    for note in NoteQueryService(store).list_deleted_notes(deletion_type):
        days = lifecycle.days_until_purge(note)
        print(
            f"{note.id:>5}  {note.deletion_type.value:<12} "
            f"{_fmt(note.deleted_date)}  {days}d left  {note.name}"
        )
    return 0


def _cmd_sweep(store: NoteStore, args) -> int:
    job = CleanupExpiredNotesJob(DeletionLifecycleManager(store))
    outcome = job.run()
    if outcome is SweepOutcome.SUCCESS:
        print(f"Purged {job.last_purged} note(s)")
        return 0
    print(f"Sweep failed: {job.last_error}", file=sys.stderr)
    return 1


def _cmd_run_sweeper(store: NoteStore, args) -> int:
    scheduler = SweepScheduler(CleanupExpiredNotesJob(DeletionLifecycleManager(store)))
    scheduler.start()
    try:
        scheduler.wait()
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()
    logging.getLogger(__name__).info(f"Sweeper metrics: {metrics.get_summary()}")
    return 0


COMMANDS = {
    "list": _cmd_list,
    "history": _cmd_history,
    "editions": _cmd_editions,
    "bin": _cmd_bin,
    "sweep": _cmd_sweep,
    "run-sweeper": _cmd_run_sweeper,
}


def main(argv=None) -> int:
    """Run an avisos command."""
    args = parse_args(argv)
    update_config(args)

    log_level = getattr(logging, args.log_level.upper(), logging.WARNING)
    try:
        configure_logging(log_dir=config.log_dir, level=log_level, console=True)
    except Exception as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")

    logger = logging.getLogger(__name__)
    try:
        store = NoteStore.open()
    except Exception as e:
        logger.error(f"Failed to open database: {e}")
        return 1

    try:
        return COMMANDS[args.command](store, args)
    except AvisosError as e:
        logger.error(str(e))
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
