"""
Agenda queries over a list of events.

Days and weeks are computed on UTC start times.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List

from coursefeed.model import Event


def group_events_by_day(events: List[Event]) -> Dict[date, List[Event]]:
    """
    Group events by the UTC date of their start time. Days come out in
    ascending order; events keep their input order within a day.
    """
    grouped: Dict[date, List[Event]] = defaultdict(list)
    for ev in events:
        grouped[ev.start_time.astimezone(timezone.utc).date()].append(ev)
    return {day: grouped[day] for day in sorted(grouped)}


def filter_events_by_date_range(events: List[Event], start: datetime, end: datetime) -> List[Event]:
    """
    Events whose start time lies in [start, end], both ends included.
    """
    return [ev for ev in events if start <= ev.start_time <= end]


def week_bounds(now: datetime) -> tuple[datetime, datetime]:
    """
    Monday 00:00 to Sunday 23:59:59.999999 (UTC) of the week containing `now`.
    """
    today = now.astimezone(timezone.utc).date()
    monday = today - timedelta(days=today.weekday())
    start = datetime.combine(monday, time.min, tzinfo=timezone.utc)
    end = datetime.combine(monday + timedelta(days=6), time.max, tzinfo=timezone.utc)
    return start, end


def current_week_events(events: List[Event], now: datetime) -> List[Event]:
    start, end = week_bounds(now)
    return filter_events_by_date_range(events, start, end)
