"""
CLI (Command Line Interface).

    coursefeed sync
    coursefeed agenda [--week | --from 2026-01-19 --to 2026-01-25]
    coursefeed changes
    coursefeed status
    coursefeed set-url <url>
    coursefeed reset-changes

Each command runs at most one sync cycle, so cycles never overlap within a process.
"""

from __future__ import annotations

import argparse
import logging
from datetime import datetime, time, timezone
from pathlib import Path
from typing import Optional

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from coursefeed.agenda import current_week_events, filter_events_by_date_range, group_events_by_day
from coursefeed.config import Config, get_feed_url, load_config, set_feed_url
from coursefeed.errors import StorageError
from coursefeed.ledger import ChangeLedger, format_time_remaining
from coursefeed.model import ChangeRecord, Event, utcnow
from coursefeed.storage import FileStorage
from coursefeed.store import EventStore
from coursefeed.sync import SyncEngine


console = Console()

CHANGE_STYLES = {"created": "green", "modified": "yellow", "cancelled": "red"}


class App:
    """
    Wires storage, store, ledger and sync engine for one CLI invocation.
    """

    def __init__(self, config: Config, data_dir: Optional[Path] = None) -> None:
        self.config = config
        self.storage = FileStorage(data_dir if data_dir is not None else config.data_dir)
        self.store = EventStore(self.storage)
        self.ledger = ChangeLedger(self.storage)
        self.engine = SyncEngine(
            store=self.store,
            ledger=self.ledger,
            feed_url=lambda: get_feed_url(self.storage, self.config),
        )


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _fmt_dt(value: Optional[datetime]) -> str:
    if value is None:
        return "never"
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def _print_changes(changes: list[ChangeRecord], ledger: Optional[ChangeLedger] = None) -> None:
    table = Table(box=box.SIMPLE)
    table.add_column("Change")
    table.add_column("Event")
    table.add_column("Details")
    if ledger is not None:
        table.add_column("Expires in", justify="right")

    for change in changes:
        style = CHANGE_STYLES.get(change.change_kind, "")
        row = [f"[{style}]{change.change_kind}[/]", escape(change.title), escape(change.change_details)]
        if ledger is not None:
            remaining = ledger.time_remaining(change.event_id)
            row.append(format_time_remaining(remaining))
        table.add_row(*row)
    console.print(table)


def _print_agenda(events: list[Event], ledger: ChangeLedger) -> None:
    for day, day_events in group_events_by_day(events).items():
        table = Table(title=day.strftime("%Y-%m-%d (%a)"), title_justify="left", box=box.SIMPLE)
        table.add_column("Time")
        table.add_column("Course")
        table.add_column("Type")
        table.add_column("Location")
        table.add_column("Teacher")
        table.add_column("")
        for ev in day_events:
            flag = ""
            if ledger.is_active(ev.id):
                flag = f"[yellow]changed ({format_time_remaining(ledger.time_remaining(ev.id))})[/]"
            elif ev.status == "modified":
                flag = "[yellow]modified[/]"
            table.add_row(
                f"{ev.start_time:%H:%M}-{ev.end_time:%H:%M}",
                escape(ev.title),
                ev.type,
                escape(ev.location),
                escape(ev.teacher),
                flag,
            )
        console.print(table)


def _parse_day(text: str) -> datetime:
    return datetime.strptime(text.strip(), "%Y-%m-%d").replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_sync(args: argparse.Namespace, app: App) -> int:
    outcome = app.engine.synchronize()

    if not outcome.success:
        console.print(f"[red]Sync failed:[/] {escape(outcome.error or '')}")
        console.print(f"Showing cached schedule: {len(outcome.events)} events (last sync: {_fmt_dt(outcome.last_sync)})")
        return 1

    console.print(f"Synchronized {len(outcome.events)} events at {_fmt_dt(outcome.last_sync)}.")
    if outcome.skipped:
        console.print(f"Skipped {outcome.skipped} malformed entries.")
    if outcome.warning:
        console.print(f"[yellow]Warning:[/] {escape(outcome.warning)}")

    if outcome.changes:
        _print_changes(outcome.changes)
    else:
        console.print("No changes.")
    return 0


def _cmd_agenda(args: argparse.Namespace, app: App) -> int:
    events = app.store.load_events()
    if not events:
        console.print("No cached events. Run 'coursefeed sync' first.")
        return 0

    if args.week:
        events = current_week_events(events, utcnow())
    elif args.date_from or args.date_to:
        try:
            start = _parse_day(args.date_from) if args.date_from else datetime.min.replace(tzinfo=timezone.utc)
            end = (
                datetime.combine(_parse_day(args.date_to).date(), time.max, tzinfo=timezone.utc)
                if args.date_to
                else datetime.max.replace(tzinfo=timezone.utc)
            )
        except ValueError:
            console.print("Dates must use the format YYYY-MM-DD.")
            return 1
        events = filter_events_by_date_range(events, start, end)

    if not events:
        console.print("No events in that range.")
        return 0

    _print_agenda(events, app.ledger)
    return 0


def _cmd_changes(args: argparse.Namespace, app: App) -> int:
    changes = app.ledger.active_changes()
    if not changes:
        console.print("No recent changes.")
        return 0
    _print_changes(changes, ledger=app.ledger)
    return 0


def _cmd_status(args: argparse.Namespace, app: App) -> int:
    events = app.store.load_events()
    console.print(f"Feed URL : {escape(get_feed_url(app.storage, app.config))}")
    console.print(f"Last sync: {_fmt_dt(app.store.last_sync())}")
    console.print(f"Events   : {len(events)}")
    console.print(f"Changes  : {len(app.ledger.active_changes())} active")
    return 0


def _cmd_set_url(args: argparse.Namespace, app: App) -> int:
    try:
        set_feed_url(app.storage, args.url)
    except StorageError as exc:
        console.print(f"[red]Could not save the feed URL:[/] {exc}")
        return 1
    console.print(f"Feed URL: {escape(get_feed_url(app.storage, app.config))}")
    return 0


def _cmd_reset_changes(args: argparse.Namespace, app: App) -> int:
    try:
        app.ledger.reset()
    except StorageError as exc:
        console.print(f"[red]Could not clear recent changes:[/] {exc}")
        return 1
    console.print("Recent changes cleared.")
    return 0


COMMANDS = {
    "sync": _cmd_sync,
    "agenda": _cmd_agenda,
    "changes": _cmd_changes,
    "status": _cmd_status,
    "set-url": _cmd_set_url,
    "reset-changes": _cmd_reset_changes,
}


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="coursefeed", description="Course schedule feed sync")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logging")
    parser.add_argument("--data-dir", type=Path, default=None, help="Directory for cached schedule data")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("sync", help="Download the feed and detect changes")

    p_agenda = sub.add_parser("agenda", help="Show the cached schedule by day")
    p_agenda.add_argument("--week", action="store_true", help="Only the current week")
    p_agenda.add_argument("--from", dest="date_from", type=str, default=None, help="First day (YYYY-MM-DD)")
    p_agenda.add_argument("--to", dest="date_to", type=str, default=None, help="Last day (YYYY-MM-DD)")

    sub.add_parser("changes", help="Show changes from the last hour")
    sub.add_parser("status", help="Show feed URL and last sync")

    p_url = sub.add_parser("set-url", help="Set the feed URL ('' restores the default)")
    p_url.add_argument("url", type=str, help="Feed URL")

    sub.add_parser("reset-changes", help="Forget all recent changes")

    return parser


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)

    app = App(load_config(), data_dir=args.data_dir)
    handler = COMMANDS.get(args.command)
    if handler is None:
        raise SystemExit(2)
    raise SystemExit(handler(args, app))
