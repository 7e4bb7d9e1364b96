"""
Unit tests for the change ledger.

Ledger contract:
- a record is active for one hour after recorded_at
- expiry is decided at read time, pruning only compacts storage
- per event, the most recent live record wins
"""

import json
import unittest
from datetime import datetime, timedelta, timezone

from coursefeed.errors import StorageError
from coursefeed.ledger import LEDGER_KEY, ChangeLedger, format_time_remaining
from coursefeed.model import ChangeRecord
from coursefeed.storage import MemoryStorage


NOW = datetime(2026, 1, 20, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def make_change(event_id: str, minutes_ago: int, kind: str = "modified") -> ChangeRecord:
    return ChangeRecord(
        event_id=event_id,
        title=f"Course {event_id}",
        change_kind=kind,
        change_details="location: A → B",
        recorded_at=NOW - timedelta(minutes=minutes_ago),
    )


class FlakyStorage(MemoryStorage):
    def __init__(self) -> None:
        super().__init__()
        self.fail_reads = 0

    def get(self, key):
        if self.fail_reads:
            self.fail_reads -= 1
            raise StorageError("I/O error")
        return super().get(key)


class TestChangeLedger(unittest.TestCase):
    def setUp(self) -> None:
        self.storage = MemoryStorage()
        self.clock = FakeClock(NOW)
        self.ledger = ChangeLedger(self.storage, clock=self.clock)

    def test_expiry_window(self) -> None:
        self.ledger.record(make_change("old", 61))
        self.ledger.record(make_change("recent", 59))

        active = [c.event_id for c in self.ledger.active_changes()]
        self.assertEqual(active, ["recent"])
        self.assertFalse(self.ledger.is_active("old"))
        self.assertTrue(self.ledger.is_active("recent"))

    def test_exactly_one_hour_is_expired(self) -> None:
        self.ledger.record(make_change("A", 60))
        self.assertFalse(self.ledger.is_active("A"))

    def test_expiry_without_pruning(self) -> None:
        self.ledger.record(make_change("A", 0))
        self.assertTrue(self.ledger.is_active("A"))

        self.clock.now = NOW + timedelta(minutes=61)
        self.assertFalse(self.ledger.is_active("A"))
        self.assertEqual(self.ledger.active_changes(), [])

    def test_time_remaining_uses_most_recent_record(self) -> None:
        self.ledger.record(make_change("A", 50))
        self.ledger.record(make_change("A", 5))
        self.ledger.record(make_change("A", 30))

        self.assertEqual(self.ledger.time_remaining("A"), timedelta(minutes=55))

    def test_expired_older_record_does_not_hide_newer_one(self) -> None:
        self.ledger.record(make_change("A", 70))
        self.ledger.record(make_change("A", 10))

        self.assertTrue(self.ledger.is_active("A"))
        self.assertEqual(self.ledger.time_remaining("A"), timedelta(minutes=50))

    def test_time_remaining_zero_when_unknown_or_expired(self) -> None:
        self.ledger.record(make_change("A", 90))
        self.assertEqual(self.ledger.time_remaining("A"), timedelta(0))
        self.assertEqual(self.ledger.time_remaining("missing"), timedelta(0))

    def test_prune_expired(self) -> None:
        self.ledger.record_many([make_change("A", 120), make_change("B", 61), make_change("C", 1)])

        self.assertEqual(self.ledger.prune_expired(), 2)
        stored = json.loads(self.storage.get(LEDGER_KEY))
        self.assertEqual([item["event_id"] for item in stored], ["C"])
        self.assertEqual(self.ledger.prune_expired(), 0)

    def test_records_persist_across_instances(self) -> None:
        self.ledger.record(make_change("A", 1, kind="cancelled"))

        other = ChangeLedger(self.storage, clock=self.clock)
        records = other.active_changes()
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].change_kind, "cancelled")
        self.assertEqual(records[0].recorded_at, NOW - timedelta(minutes=1))

    def test_corrupted_storage_reads_as_empty(self) -> None:
        self.storage.set(LEDGER_KEY, "{not json")
        self.assertEqual(self.ledger.active_changes(), [])
        self.assertFalse(self.ledger.is_active("A"))

    def test_unreadable_entries_are_dropped(self) -> None:
        good = make_change("A", 1).to_dict()
        self.storage.set(LEDGER_KEY, json.dumps([good, {"event_id": "B"}, "junk"]))
        self.assertEqual([c.event_id for c in self.ledger.active_changes()], ["A"])

    def test_failed_read_does_not_wipe_records(self) -> None:
        storage = FlakyStorage()
        ledger = ChangeLedger(storage, clock=self.clock)
        ledger.record_many([make_change("A", 2), make_change("B", 1)])

        storage.fail_reads = 1
        with self.assertRaises(StorageError):
            ledger.record(make_change("C", 0))

        ledger.record(make_change("C", 0))
        self.assertEqual([c.event_id for c in ledger.active_changes()], ["A", "B", "C"])

    def test_failed_read_skips_pruning(self) -> None:
        storage = FlakyStorage()
        ledger = ChangeLedger(storage, clock=self.clock)
        ledger.record_many([make_change("A", 90), make_change("B", 1)])

        storage.fail_reads = 1
        with self.assertRaises(StorageError):
            ledger.prune_expired()
        self.assertEqual(len(json.loads(storage.get(LEDGER_KEY))), 2)

    def test_failed_read_is_empty_for_queries(self) -> None:
        storage = FlakyStorage()
        ledger = ChangeLedger(storage, clock=self.clock)
        ledger.record(make_change("A", 1))

        storage.fail_reads = 1
        self.assertEqual(ledger.active_changes(), [])
        self.assertTrue(ledger.is_active("A"))

    def test_reset(self) -> None:
        self.ledger.record(make_change("A", 1))
        self.ledger.reset()
        self.assertIsNone(self.storage.get(LEDGER_KEY))
        self.assertEqual(self.ledger.active_changes(), [])


class TestFormatTimeRemaining(unittest.TestCase):
    def test_minutes_and_seconds(self) -> None:
        self.assertEqual(format_time_remaining(timedelta(minutes=12, seconds=5)), "12m 5s")

    def test_seconds_only(self) -> None:
        self.assertEqual(format_time_remaining(timedelta(seconds=40)), "40s")

    def test_negative_is_zero(self) -> None:
        self.assertEqual(format_time_remaining(timedelta(seconds=-3)), "0s")


if __name__ == "__main__":
    unittest.main()
