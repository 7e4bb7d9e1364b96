"""
Synchronization: fetch -> parse -> diff -> persist.

One call to SyncEngine.synchronize() is one attempt. There is no retry and no
locking here: callers must not run two cycles at the same time, otherwise an
older cycle could overwrite a newer snapshot.

A failed cycle never touches the stored state and returns the previous
snapshot so the schedule stays available offline.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from bs4 import BeautifulSoup

from coursefeed.config import DEFAULT_FEED_URL
from coursefeed.diff import diff_events
from coursefeed.errors import EmptyFeedError, FetchError, StorageError
from coursefeed.ledger import ChangeLedger
from coursefeed.model import ChangeRecord, SyncOutcome, utcnow
from coursefeed.parse import ParseReport, parse_feed_report
from coursefeed.store import EventStore
from coursefeed.transport import fetch_text


logger = logging.getLogger(__name__)


def looks_like_markup(text: str) -> bool:
    """
    True if the body starts with a markup tag (an HTML error page instead of a calendar).
    """
    return text.lstrip().startswith("<")


def _error_page_title(text: str) -> str:
    soup = BeautifulSoup(text, "html.parser")
    if soup.title and soup.title.string:
        return " ".join(soup.title.string.split())
    return ""


def check_feed_body(text: str) -> None:
    """
    Reject bodies that cannot be calendar data. Raises FetchError.
    """
    if not text or not text.strip():
        raise FetchError("The server returned an empty response. Check the feed URL.")

    if looks_like_markup(text):
        title = _error_page_title(text)
        message = "The server returned an HTML page instead of calendar data"
        if title:
            message += f" ({title})"
        raise FetchError(message + ". The feed URL may be invalid or the server may be under maintenance.")


class SyncEngine:
    def __init__(
        self,
        store: EventStore,
        ledger: ChangeLedger,
        feed_url: Callable[[], str],
        fetch: Callable[[str], str] = fetch_text,
        clock: Callable[[], datetime] = utcnow,
        on_change: Optional[Callable[[ChangeRecord], None]] = None,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.feed_url = feed_url
        self.fetch = fetch
        self.clock = clock
        self.on_change = on_change

    def cached_outcome(self) -> SyncOutcome:
        """
        The stored snapshot, without contacting the server.
        """
        return SyncOutcome(success=True, events=self.store.load_events(), last_sync=self.store.last_sync())

    def initialize(self) -> Optional[SyncOutcome]:
        """
        Sync right away on first use (no cached events). Returns None when a cache exists.
        """
        cached = self.store.load_events()
        if cached:
            logger.info("Cache found: %d events", len(cached))
            return None
        logger.info("No cached events, synchronizing now")
        return self.synchronize()

    def _failure(self, error: str, kind: str) -> SyncOutcome:
        logger.error("Sync failed (%s): %s", kind, error)
        return SyncOutcome(
            success=False,
            events=self.store.load_events(),
            last_sync=self.store.last_sync(),
            error=error,
            error_kind=kind,
        )

    def _download(self) -> str:
        url = (self.feed_url() or "").strip() or DEFAULT_FEED_URL
        text = self.fetch(url)
        check_feed_body(text)
        return text

    def _parse(self, text: str, now: datetime) -> ParseReport:
        report = parse_feed_report(text, now=now)
        logger.info("Parsed %d events (%d skipped)", len(report.events), report.skipped)
        if not report.events:
            raise EmptyFeedError("No events found in the feed. Check that the feed URL is correct.")
        return report

    def _notify(self, changes: List[ChangeRecord]) -> None:
        if self.on_change is None:
            return
        for change in changes:
            try:
                self.on_change(change)
            except Exception:
                logger.exception("Change notification failed for event %s", change.event_id)

    def synchronize(self) -> SyncOutcome:
        logger.info("Starting synchronization")
        now = self.clock()

        try:
            report = self._parse(self._download(), now)
        except FetchError as exc:
            return self._failure(str(exc), "fetch")
        except EmptyFeedError as exc:
            return self._failure(str(exc), "empty_feed")

        previous = self.store.load_events()
        result = diff_events(previous, report.events, now)

        problems: List[str] = []
        try:
            self.store.save_snapshot(result.events, now)
        except StorageError as exc:
            logger.error("Fresh schedule could not be saved: %s", exc)
            problems.append(f"The schedule was updated but could not be saved, it may not persist: {exc}")

        # Recorded even when the snapshot failed, the next diff may no longer see these changes
        try:
            self.ledger.record_many(result.changes)
            self.ledger.prune_expired()
        except StorageError as exc:
            logger.error("Change ledger could not be updated: %s", exc)
            problems.append(f"Recent changes could not be recorded: {exc}")

        warning = " ".join(problems) or None

        self._notify(result.changes)
        logger.info("Synchronization finished: %d events, %d changes", len(result.events), len(result.changes))

        return SyncOutcome(
            success=True,
            events=result.events,
            last_sync=now,
            changes=result.changes,
            skipped=report.skipped,
            warning=warning,
        )
