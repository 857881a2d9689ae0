"""
Lesson normalization (RawLesson -> NormalizedEvent).

Rules:
- cancelled lessons and lessons ending before they start produce no event
- title / location / description are never empty (placeholders apply)
- display name chain: remap table -> long name -> raw code
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence
from zoneinfo import ZoneInfo

from icsuntis.model import Element, NormalizedEvent, RawLesson
from icsuntis.remap import RemapSnapshot
from icsuntis.tz import local_datetime_to_utc

logger = logging.getLogger(__name__)

TITLE_PLACEHOLDER = "Stunde"
NO_ROOM = "No room specified"
NO_TEACHER = "No teacher specified"
SEPARATOR = ", "


def decode_date(value: int | str) -> tuple[int, int, int]:
    """
    Split an 8-digit YYYYMMDD numeral into (year, month, day).

    The value is zero-padded first so a leading zero cannot shift the slices.
    """
    s = str(value).strip().zfill(8)
    return int(s[0:4]), int(s[4:6]), int(s[6:8])


def decode_time(value: int) -> tuple[int, int]:
    """
    Split an HHMM integer into (hour, minute).
    """
    return value // 100, value % 100


def _display_name(element: Element, kind: str, remap: RemapSnapshot, use_longname: bool = True) -> str:
    mapped = remap.lookup(kind, element.name)
    if mapped:
        return mapped
    if use_longname and element.longname:
        return element.longname
    return element.name


def _join(names: Iterable[str]) -> str:
    return SEPARATOR.join(n for n in names if n)


def build_title(subjects: Sequence[Element], remap: RemapSnapshot) -> str:
    return _join(_display_name(su, "subjects", remap) for su in subjects) or TITLE_PLACEHOLDER


def build_location(rooms: Sequence[Element], remap: RemapSnapshot) -> str:
    # rooms show their short code unless remapped
    return _join(_display_name(ro, "rooms", remap, use_longname=False) for ro in rooms) or NO_ROOM


def build_description(teachers: Sequence[Element], info: Optional[str], remap: RemapSnapshot) -> str:
    teacher_text = _join(_display_name(te, "teachers", remap) for te in teachers) or NO_TEACHER
    text = f"Teacher: {teacher_text}"
    if info and info.strip():
        text += f"\n\nInfo: {info.strip()}"
    return text


def normalize_lesson(lesson: RawLesson, tz: ZoneInfo, remap: RemapSnapshot | None = None) -> NormalizedEvent | None:
    """
    Convert one lesson into a calendar event.

    Returns None if the lesson is cancelled or ends before it starts (e.g. a
    period inside the spring-forward gap). Raises ValueError for dates/times
    that do not form a valid calendar value.
    """
    if lesson.is_cancelled:
        return None

    table = remap if remap is not None else RemapSnapshot()

    year, month, day = decode_date(lesson.date)
    start_h, start_m = decode_time(lesson.start_time)
    end_h, end_m = decode_time(lesson.end_time)

    start = local_datetime_to_utc(year, month, day, start_h, start_m, tz)
    end = local_datetime_to_utc(year, month, day, end_h, end_m, tz)
    if end < start:
        logger.warning(
            "Skipping lesson on %s %04d-%04d: ends before it starts", lesson.date, lesson.start_time, lesson.end_time
        )
        return None

    return NormalizedEvent(
        start=start,
        end=end,
        title=build_title(lesson.subjects, table),
        location=build_location(lesson.rooms, table),
        description=build_description(lesson.teachers, lesson.info, table),
    )


def normalize_lessons(
    lessons: Iterable[RawLesson], tz: ZoneInfo, remap: RemapSnapshot | None = None
) -> list[NormalizedEvent]:
    """
    Normalize every lesson, dropping cancelled and inverted ones. Input order is kept.
    """
    out: list[NormalizedEvent] = []
    for lesson in lessons:
        ev = normalize_lesson(lesson, tz, remap)
        if ev is not None:
            out.append(ev)
    return out
