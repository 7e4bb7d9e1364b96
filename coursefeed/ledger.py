"""
Change Ledger: which events were recently created, modified or cancelled.

Every record expires EXPIRY_WINDOW after it was recorded. Expiry is decided
when the ledger is read, so nothing has to run in the background;
prune_expired() only keeps the stored list small.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, List, Optional

from coursefeed.errors import StorageError
from coursefeed.model import ChangeRecord, utcnow


logger = logging.getLogger(__name__)

LEDGER_KEY = "change_ledger"
EXPIRY_WINDOW = timedelta(hours=1)


def format_time_remaining(remaining: timedelta) -> str:
    """
    Render a remaining duration as '12m 5s' (or '40s' under a minute).
    """
    total = max(0, int(remaining.total_seconds()))
    minutes, seconds = divmod(total, 60)
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


class ChangeLedger:
    def __init__(self, storage: Any, clock: Callable[[], datetime] = utcnow) -> None:
        self.storage = storage
        self.clock = clock

    # -----------------------------------------------------------------------
    # Persistence
    # -----------------------------------------------------------------------

    def _load(self, strict: bool = False) -> List[ChangeRecord]:
        """
        With strict=True a failed read raises StorageError instead of reading as
        empty, so a write never replaces records it could not see.
        """
        try:
            raw = self.storage.get(LEDGER_KEY)
        except StorageError as exc:
            if strict:
                raise
            logger.warning("Could not read change ledger: %s", exc)
            return []
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Change ledger is corrupted, treating it as empty")
            return []
        if not isinstance(data, list):
            return []

        records: List[ChangeRecord] = []
        for item in data:
            if not isinstance(item, dict):
                continue
            try:
                records.append(ChangeRecord.from_dict(item))
            except (KeyError, ValueError, TypeError):
                logger.debug("Dropping unreadable ledger entry: %r", item)
        return records

    def _save(self, records: List[ChangeRecord]) -> None:
        self.storage.set(LEDGER_KEY, json.dumps([r.to_dict() for r in records], ensure_ascii=False, indent=2))

    def _is_live(self, record: ChangeRecord, now: datetime) -> bool:
        return now - record.recorded_at < EXPIRY_WINDOW

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    def record(self, change: ChangeRecord) -> None:
        self.record_many([change])

    def record_many(self, changes: Iterable[ChangeRecord]) -> None:
        new = list(changes)
        if not new:
            return
        records = self._load(strict=True)
        records.extend(new)
        self._save(records)
        logger.debug("Recorded %d changes", len(new))

    def active_changes(self) -> List[ChangeRecord]:
        """
        Return all records that have not expired yet, oldest first.
        """
        now = self.clock()
        return [r for r in self._load() if self._is_live(r, now)]

    def _latest_active(self, event_id: str) -> Optional[ChangeRecord]:
        latest: Optional[ChangeRecord] = None
        for record in self.active_changes():
            if record.event_id != event_id:
                continue
            if latest is None or record.recorded_at >= latest.recorded_at:
                latest = record
        return latest

    def is_active(self, event_id: str) -> bool:
        return self._latest_active(event_id) is not None

    def time_remaining(self, event_id: str) -> timedelta:
        """
        Time until the most recent live record for `event_id` expires (zero if none).
        """
        latest = self._latest_active(event_id)
        if latest is None:
            return timedelta(0)
        remaining = EXPIRY_WINDOW - (self.clock() - latest.recorded_at)
        return max(timedelta(0), remaining)

    def prune_expired(self) -> int:
        """
        Drop expired records from storage. Returns how many were removed.
        """
        records = self._load(strict=True)
        now = self.clock()
        live = [r for r in records if self._is_live(r, now)]
        removed = len(records) - len(live)
        if removed:
            self._save(live)
            logger.info("Pruned %d expired change records", removed)
        return removed

    def reset(self) -> None:
        self.storage.remove(LEDGER_KEY)
        logger.info("Change ledger cleared")
