"""
coursefeed: offline copy of a course schedule feed, with change tracking.
"""

from coursefeed.diff import diff_events, snapshot_fingerprint
from coursefeed.ledger import ChangeLedger
from coursefeed.model import ChangeRecord, Event, SyncOutcome
from coursefeed.parse import parse_feed
from coursefeed.store import EventStore
from coursefeed.sync import SyncEngine

__all__ = [
    "ChangeLedger",
    "ChangeRecord",
    "Event",
    "EventStore",
    "SyncEngine",
    "SyncOutcome",
    "diff_events",
    "parse_feed",
    "snapshot_fingerprint",
]
