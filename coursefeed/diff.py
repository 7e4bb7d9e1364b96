"""
Change detection between two snapshots.

An event is matched across syncs by its id only. The watched fields decide
whether a matched event counts as modified; every other field (description,
teacher, ...) may change silently.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Tuple

from coursefeed.model import ChangeRecord, Event


logger = logging.getLogger(__name__)

DETAILS_SEPARATOR = " | "


def _format_time(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC")


def _format_text(value: str) -> str:
    return value if value else "(none)"


# (label, accessor, formatter); the order is the order of change_details
WATCHED_FIELDS: Tuple[Tuple[str, Callable[[Event], Any], Callable[[Any], str]], ...] = (
    ("location", lambda ev: ev.location, _format_text),
    ("start time", lambda ev: ev.start_time, _format_time),
    ("end time", lambda ev: ev.end_time, _format_time),
    ("title", lambda ev: ev.title, _format_text),
    ("last modified", lambda ev: ev.last_modified, _format_time),
)


@dataclass
class DiffResult:
    events: List[Event] = field(default_factory=list)
    changes: List[ChangeRecord] = field(default_factory=list)

    def count(self, kind: str) -> int:
        return sum(1 for c in self.changes if c.change_kind == kind)


def snapshot_fingerprint(events: List[Event]) -> str:
    """
    SHA-256 over every field except status, events sorted by id, so the
    fingerprint does not depend on feed order.
    """
    canonical = []
    for ev in sorted(events, key=lambda e: e.id):
        data = ev.to_dict()
        data.pop("status", None)
        canonical.append(data)
    normalized = json.dumps(canonical, sort_keys=True, ensure_ascii=False)
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def describe_changes(old: Event, new: Event) -> List[str]:
    """
    List the watched fields that differ as '<field>: <old> → <new>'.
    """
    details: List[str] = []
    for label, accessor, formatter in WATCHED_FIELDS:
        before = accessor(old)
        after = accessor(new)
        if before != after:
            details.append(f"{label}: {formatter(before)} → {formatter(after)}")
    return details


def diff_events(previous: List[Event], current: List[Event], now: datetime) -> DiffResult:
    """
    Annotate `current` against `previous` and collect one ChangeRecord per
    created, modified or cancelled event.

    Returned events are copies; the input lists are not mutated.
    """
    if previous and snapshot_fingerprint(previous) == snapshot_fingerprint(current):
        logger.debug("Snapshot fingerprint unchanged, skipping per-event comparison")
        return DiffResult(events=[replace(ev, status="normal") for ev in current])

    # Later duplicates overwrite earlier ones, like the parser does
    previous_by_id: Dict[str, Event] = {ev.id: ev for ev in previous}
    current_ids = set()

    result = DiffResult()
    for ev in current:
        current_ids.add(ev.id)
        old = previous_by_id.get(ev.id)

        if old is None:
            result.events.append(replace(ev, status="normal"))
            result.changes.append(
                ChangeRecord(
                    event_id=ev.id,
                    title=ev.title,
                    change_kind="created",
                    change_details=f"new event: {_format_time(ev.start_time)}",
                    recorded_at=now,
                )
            )
            continue

        details = describe_changes(old, ev)
        if not details:
            result.events.append(replace(ev, status="normal"))
            continue

        result.events.append(replace(ev, status="modified"))
        result.changes.append(
            ChangeRecord(
                event_id=ev.id,
                title=ev.title,
                change_kind="modified",
                change_details=DETAILS_SEPARATOR.join(details),
                recorded_at=now,
            )
        )

    for event_id, old in previous_by_id.items():
        if event_id in current_ids:
            continue
        result.changes.append(
            ChangeRecord(
                event_id=event_id,
                title=old.title,
                change_kind="cancelled",
                change_details=f"removed from the feed: {_format_time(old.start_time)}",
                recorded_at=now,
            )
        )

    logger.info(
        "Diff: %d created, %d modified, %d cancelled",
        result.count("created"),
        result.count("modified"),
        result.count("cancelled"),
    )
    return result
