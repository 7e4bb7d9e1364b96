"""
Event Store: the last known schedule snapshot and the time of the last sync.

Reads are defensive (a missing or corrupted snapshot means "no cache");
writes raise StorageError so the sync engine can report that fresh data
was not saved.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, List, Optional

from coursefeed.errors import StorageError
from coursefeed.model import Event, from_iso, to_iso


logger = logging.getLogger(__name__)

EVENTS_KEY = "events"
LAST_SYNC_KEY = "last_sync"


class EventStore:
    def __init__(self, storage: Any) -> None:
        self.storage = storage

    def load_events(self) -> List[Event]:
        """
        Load the cached snapshot.

        Returns an empty list if nothing is stored or the stored value is unreadable.
        Single records that cannot be restored are skipped.
        """
        try:
            raw = self.storage.get(EVENTS_KEY)
        except StorageError as exc:
            logger.warning("Could not read cached events, starting without cache: %s", exc)
            return []

        if not raw:
            return []

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Cached events are corrupted, starting without cache")
            return []

        if not isinstance(data, list):
            return []

        events: List[Event] = []
        for item in data:
            if not isinstance(item, dict):
                continue
            try:
                events.append(Event.from_dict(item))
            except (KeyError, ValueError, TypeError):
                logger.debug("Dropping unreadable cached event: %r", item.get("id"))
        return events

    def last_sync(self) -> Optional[datetime]:
        try:
            raw = self.storage.get(LAST_SYNC_KEY)
        except StorageError as exc:
            logger.warning("Could not read last sync time: %s", exc)
            return None
        if not raw or not raw.strip():
            return None
        try:
            return from_iso(raw)
        except ValueError:
            logger.warning("Stored last sync time %r is invalid", raw)
            return None

    def save_snapshot(self, events: List[Event], last_sync: datetime) -> None:
        """
        Replace the snapshot with `events` and record `last_sync`.

        The full event list is serialized before anything is written, and written
        in one operation.
        """
        payload = json.dumps([ev.to_dict() for ev in events], ensure_ascii=False, indent=2)
        self.storage.set(EVENTS_KEY, payload)
        self.storage.set(LAST_SYNC_KEY, to_iso(last_sync))
        logger.info("Saved %d events to the snapshot", len(events))

    def clear(self) -> None:
        self.storage.remove(EVENTS_KEY)
        self.storage.remove(LAST_SYNC_KEY)
