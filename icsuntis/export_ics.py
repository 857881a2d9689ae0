"""
iCalendar (.ics) export.

We convert merged timetable events into a calendar file that can be subscribed to from:
- Google Calendar
- Outlook
- Apple Calendar

DTSTART/DTEND are written as UTC date-times ('...Z'), so clients need no VTIMEZONE block.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Optional

from icsuntis.errors import EncodeError
from icsuntis.model import NormalizedEvent

PRODID = "-//ICSUntis//WebUntis Timetable//EN"
CALENDAR_NAME = "Stundenplan"


@dataclass(frozen=True)
class EncodeResult:
    """
    Outcome of encoding: either `payload` or `error` is set.
    """

    payload: Optional[bytes] = None
    error: Optional[EncodeError] = None
    count: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def _ics_escape(text: str) -> str:
    """
    Escape text for ICS TEXT values (RFC 5545 3.3.11).
    """
    return (
        text.replace("\\", "\\\\")
        .replace("\r\n", "\\n")
        .replace("\r", "\\n")
        .replace("\n", "\\n")
        .replace(";", "\\;")
        .replace(",", "\\,")
    )


def _fold(line: str) -> str:
    """
    Fold a content line to at most 75 octets per physical line.
    """
    raw = line.encode("utf-8")
    if len(raw) <= 75:
        return line

    parts: list[str] = []
    current = ""
    limit = 75
    for ch in line:
        if len((current + ch).encode("utf-8")) > limit:
            parts.append(current)
            current = ch
            # continuation lines start with a space, which counts towards the limit
            limit = 74
        else:
            current += ch
    parts.append(current)
    return "\r\n ".join(parts)


def _dt_utc(value: datetime) -> str:
    """
    Convert an aware datetime to ICS UTC form 'YYYYMMDDTHHMMSSZ'.
    """
    if value.tzinfo is None or value.utcoffset() is None:
        raise EncodeError(f"Naive datetime cannot be encoded: {value!r}")
    return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _uid(ev: NormalizedEvent) -> str:
    hasher = hashlib.sha1()
    hasher.update("|".join([_dt_utc(ev.start), _dt_utc(ev.end), ev.title, ev.location]).encode("utf-8"))
    return f"{hasher.hexdigest()}@icsuntis"


def _event_lines(ev: NormalizedEvent, dtstamp: str) -> list[str]:
    if ev.end < ev.start:
        raise EncodeError(f"Event ends before it starts: {ev.title!r} {ev.start} > {ev.end}")
    if not ev.title:
        raise EncodeError("Event without title")

    lines = [
        "BEGIN:VEVENT",
        f"UID:{_uid(ev)}",
        f"DTSTAMP:{dtstamp}",
        f"DTSTART:{_dt_utc(ev.start)}",
        f"DTEND:{_dt_utc(ev.end)}",
        f"SUMMARY:{_ics_escape(ev.title)}",
    ]
    if ev.location:
        lines.append(f"LOCATION:{_ics_escape(ev.location)}")
    if ev.description:
        lines.append(f"DESCRIPTION:{_ics_escape(ev.description)}")
    lines.append("END:VEVENT")
    return lines


def encode_calendar(
    events: Iterable[NormalizedEvent],
    now: Optional[datetime] = None,
    refresh_interval: Optional[timedelta] = None,
) -> EncodeResult:
    """
    Serialize events into one VCALENDAR. Never raises; failures come back as EncodeResult.error.
    """
    stamp_time = now if now is not None else datetime.now(timezone.utc)

    lines: list[str] = []
    lines.append("BEGIN:VCALENDAR")
    lines.append("VERSION:2.0")
    lines.append(f"PRODID:{PRODID}")
    lines.append("CALSCALE:GREGORIAN")
    lines.append("METHOD:PUBLISH")
    lines.append(f"X-WR-CALNAME:{CALENDAR_NAME}")
    if refresh_interval is not None:
        minutes = max(1, int(refresh_interval.total_seconds() // 60))
        lines.append(f"REFRESH-INTERVAL;VALUE=DURATION:PT{minutes}M")
        lines.append(f"X-PUBLISHED-TTL:PT{minutes}M")

    count = 0
    try:
        dtstamp = _dt_utc(stamp_time)
        for ev in events:
            lines.extend(_event_lines(ev, dtstamp))
            count += 1
    except EncodeError as exc:
        return EncodeResult(error=exc)
    except (AttributeError, TypeError, ValueError) as exc:
        return EncodeResult(error=EncodeError(f"Malformed event data: {exc}"))

    lines.append("END:VCALENDAR")

    # ICS standard uses CRLF
    text = "\r\n".join(_fold(line) for line in lines) + "\r\n"
    return EncodeResult(payload=text.encode("utf-8"), count=count)


def write_ics_file(payload: bytes, out_path: str | Path) -> Path:
    """
    Write an encoded calendar to an .ics file. Creates parent directories if needed.
    """
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(payload)
    return out
