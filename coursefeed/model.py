"""
Central data model definitions used across the project.

This module defines the canonical structure of Event and ChangeRecord objects so that:
- parser, diff, store and ledger share the same field names
- JSON written to disk always has the same shape
- every timestamp is an aware UTC datetime
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional


EVENT_TYPES = ("lecture", "tutorial", "lab", "project", "exam", "break", "other")
EVENT_STATUSES = ("normal", "modified", "cancelled")
CHANGE_KINDS = ("created", "modified", "cancelled")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def from_iso(text: str) -> datetime:
    """
    Parse an ISO-8601 timestamp written by to_iso().

    Naive values are interpreted as UTC.
    """
    raw = text.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    value = datetime.fromisoformat(raw)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class Event:
    """
    One scheduled activity (class, exam, break) extracted from the feed.

    `id` is assigned upstream and is the only key used to match events
    across syncs. `status` is owned by the diff, never by the parser.
    """

    id: str
    title: str
    start_time: datetime
    end_time: datetime
    location: str = ""
    description: str = ""
    teacher: str = ""
    group: str = ""
    type: str = "other"
    status: str = "normal"
    last_modified: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "start_time": to_iso(self.start_time),
            "end_time": to_iso(self.end_time),
            "location": self.location,
            "description": self.description,
            "teacher": self.teacher,
            "group": self.group,
            "type": self.type,
            "status": self.status,
            "last_modified": to_iso(self.last_modified),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Event":
        """
        Rebuild an Event from its JSON form.

        Raises KeyError/ValueError/TypeError for records that cannot be restored;
        callers decide whether to skip them.
        """
        event_type = str(data.get("type") or "other")
        status = str(data.get("status") or "normal")
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            start_time=from_iso(data["start_time"]),
            end_time=from_iso(data["end_time"]),
            location=str(data.get("location") or ""),
            description=str(data.get("description") or ""),
            teacher=str(data.get("teacher") or ""),
            group=str(data.get("group") or ""),
            type=event_type if event_type in EVENT_TYPES else "other",
            status=status if status in EVENT_STATUSES else "normal",
            last_modified=from_iso(data["last_modified"]) if data.get("last_modified") else utcnow(),
        )


@dataclass
class ChangeRecord:
    """
    A time-stamped note that one event was created, modified or cancelled.
    """

    event_id: str
    title: str
    change_kind: str
    change_details: str
    recorded_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "title": self.title,
            "change_kind": self.change_kind,
            "change_details": self.change_details,
            "recorded_at": to_iso(self.recorded_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChangeRecord":
        kind = str(data["change_kind"])
        if kind not in CHANGE_KINDS:
            raise ValueError(f"Unknown change kind: {kind!r}")
        return cls(
            event_id=str(data["event_id"]),
            title=str(data.get("title") or ""),
            change_kind=kind,
            change_details=str(data.get("change_details") or ""),
            recorded_at=from_iso(data["recorded_at"]),
        )


@dataclass
class SyncOutcome:
    """
    Result of one synchronization cycle.

    On failure `events` holds the previous snapshot, never an empty list
    substituted for the cache.
    """

    success: bool
    events: List[Event]
    last_sync: Optional[datetime]
    error: Optional[str] = None
    error_kind: Optional[str] = None
    changes: List[ChangeRecord] = field(default_factory=list)
    skipped: int = 0
    warning: Optional[str] = None
