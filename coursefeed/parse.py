"""
Parsing (iCalendar text -> Event objects).

- Splits the feed on BEGIN:VEVENT, one candidate entry per block
- Extracts UID / SUMMARY / DTSTART / DTEND (required) and
  LOCATION / DESCRIPTION / LAST-MODIFIED (optional)
- Derives teacher, group and type from the text fields
- Returns the events sorted by start time

Important rules (DO NOT CHANGE):
- A malformed entry is skipped, never raised
- Timestamps are read as UTC, there is no timezone lookup
- No recurrence / RRULE logic
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from coursefeed.model import Event, utcnow


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Format constants
# ---------------------------------------------------------------------------

EVENT_BEGIN = "BEGIN:VEVENT"
EVENT_END = "END:VEVENT"

ICS_DATETIME_FORMAT = "%Y%m%dT%H%M%SZ"

# Group codes look like "RT11", "RT112"
GROUP_PREFIX = "RT"
GROUP_PATTERN = re.compile(GROUP_PREFIX + r"\d+")

# Line appended by the feed exporter, e.g. "(Exporté le:03/01/2026 15:11)"
EXPORT_MARKER = "Exporté"

# (type, keywords, match_as_prefix) checked top to bottom, first match wins.
# Prefix keywords match at the start of the title or followed by a space.
TYPE_RULES = (
    ("break", ("VACANCES",), False),
    ("exam", ("EXAMEN", "EXAM"), False),
    ("project", ("SAE",), False),
    ("lab", ("TP",), True),
    ("tutorial", ("TD",), True),
    ("lecture", ("CM",), True),
)

_NESTED_COMPONENT = re.compile(r"^BEGIN:(\w+)$.*?^END:\1$\n?", re.MULTILINE | re.DOTALL)
_FOLDED_LINE = re.compile(r"\n[ \t]")
_ESCAPED_CHAR = re.compile(r"\\([\\,;nN])")
_PROPERTIES = {
    name: re.compile(r"^" + re.escape(name) + r"(?:;[^:\n]*)?:(.*)$", re.MULTILINE)
    for name in ("UID", "SUMMARY", "DTSTART", "DTEND", "LOCATION", "DESCRIPTION", "LAST-MODIFIED")
}


@dataclass
class ParseReport:
    events: List[Event] = field(default_factory=list)
    skipped: int = 0


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def unfold_lines(text: str) -> str:
    """
    Normalize line endings and join folded lines.

    A line break followed by a single space (or tab) continues the previous line;
    both the break and that one whitespace character are removed.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return _FOLDED_LINE.sub("", text)


def unescape_text(value: str) -> str:
    """
    Undo iCalendar text escaping: \\, \\; \\\\ and \\n (or \\N) for a newline.
    """

    def _replace(match: re.Match) -> str:
        ch = match.group(1)
        return "\n" if ch in "nN" else ch

    return _ESCAPED_CHAR.sub(_replace, value)


def parse_ics_datetime(value: str) -> datetime:
    """
    Parse a compact UTC timestamp 'YYYYMMDDTHHMMSSZ'.

    Raises ValueError for any other form.
    """
    return datetime.strptime(value.strip(), ICS_DATETIME_FORMAT).replace(tzinfo=timezone.utc)


def extract_teacher(description: str) -> str:
    """
    Best-effort teacher name from an event description.

    The exporter writes the group code, then the teacher, then an export stamp:

        RT112
        DROUHIN Frederic
        (Exporté le:03/01/2026 15:11)

    The first line that is not a group code, not the export stamp, longer than
    three characters and written in mixed case is taken as the name.
    """
    for line in description.splitlines():
        candidate = line.strip()
        if not candidate:
            continue
        if candidate.startswith(GROUP_PREFIX) or EXPORT_MARKER in candidate:
            continue
        if len(candidate) <= 3:
            continue
        has_upper = any(c.isupper() for c in candidate)
        has_lower = any(c.islower() for c in candidate)
        if has_upper and has_lower:
            return candidate
    return ""


def extract_group(description: str) -> str:
    match = GROUP_PATTERN.search(description)
    return match.group(0) if match else ""


def classify_type(title: str) -> str:
    """
    Map a title to one of the event types using TYPE_RULES.
    """
    upper = title.upper()
    for event_type, keywords, as_prefix in TYPE_RULES:
        for keyword in keywords:
            if as_prefix:
                if upper.startswith(keyword) or f"{keyword} " in upper:
                    return event_type
            elif keyword in upper:
                return event_type
    return "other"


def _property(block: str, name: str) -> Optional[str]:
    match = _PROPERTIES[name].search(block)
    if not match:
        return None
    return match.group(1).strip()


# ---------------------------------------------------------------------------
# Block parsing (CORE LOGIC)
# ---------------------------------------------------------------------------


def _split_blocks(text: str) -> List[str]:
    # First fragment is the calendar header
    fragments = text.split(EVENT_BEGIN)[1:]
    blocks: List[str] = []
    for fragment in fragments:
        end = fragment.find(EVENT_END)
        body = fragment if end == -1 else fragment[:end]
        # Drop VALARM and other sub-components, they carry their own DESCRIPTION
        blocks.append(_NESTED_COMPONENT.sub("", body))
    return blocks


def parse_event_block(block: str, now: datetime) -> Optional[Event]:
    """
    Parse one VEVENT body into an Event, or return None if a required field
    is missing or unreadable.
    """
    uid = _property(block, "UID")
    summary = _property(block, "SUMMARY")
    dtstart = _property(block, "DTSTART")
    dtend = _property(block, "DTEND")

    if not uid or summary is None or not dtstart or not dtend:
        return None

    try:
        start_time = parse_ics_datetime(dtstart)
        end_time = parse_ics_datetime(dtend)
    except ValueError:
        return None

    title = unescape_text(summary).strip()
    location = unescape_text(_property(block, "LOCATION") or "").strip()
    description = unescape_text(_property(block, "DESCRIPTION") or "").strip()

    last_modified = now
    raw_last_modified = _property(block, "LAST-MODIFIED")
    if raw_last_modified:
        try:
            last_modified = parse_ics_datetime(raw_last_modified)
        except ValueError:
            logger.debug("Unreadable LAST-MODIFIED %r on %s, using current time", raw_last_modified, uid)

    return Event(
        id=uid,
        title=title,
        start_time=start_time,
        end_time=end_time,
        location=location,
        description=description,
        teacher=extract_teacher(description),
        group=extract_group(description),
        type=classify_type(title),
        status="normal",
        last_modified=last_modified,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_feed_report(raw_text: str, now: Optional[datetime] = None) -> ParseReport:
    """
    Parse feed text and report how many entries were skipped.

    Duplicate ids keep the last occurrence, placed where that occurrence appears.
    """
    report = ParseReport()
    if not raw_text or not raw_text.strip():
        return report

    stamp = now if now is not None else utcnow()
    by_id: Dict[str, Event] = {}

    for block in _split_blocks(unfold_lines(raw_text)):
        event = parse_event_block(block, stamp)
        if event is None:
            report.skipped += 1
            continue
        if event.id in by_id:
            logger.debug("Duplicate UID %s in feed, keeping the last occurrence", event.id)
            del by_id[event.id]
        by_id[event.id] = event

    # sorted() is stable: equal start times keep feed order
    report.events = sorted(by_id.values(), key=lambda ev: ev.start_time)

    if report.skipped:
        logger.debug("Skipped %d malformed feed entries", report.skipped)
    logger.debug("Parsed %d events", len(report.events))
    return report


def parse_feed(raw_text: str, now: Optional[datetime] = None) -> List[Event]:
    return parse_feed_report(raw_text, now=now).events
