"""
Central data model definitions used across the project.

This module defines the canonical structure of lessons and calendar events so that:
- the WebUntis client, the normalizer, the merger and the encoder share the same field names
- events stay immutable once built (the merger produces extended copies)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

CANCELLED = "cancelled"


@dataclass(frozen=True)
class Element:
    """
    One subject, room or teacher reference attached to a lesson.

    `name` is the raw code (e.g. "mat_GK_11"), `longname` the optional full name.
    """

    name: str
    longname: Optional[str] = None


@dataclass(frozen=True)
class RawLesson:
    """
    One scheduled period exactly as reported by WebUntis.

    date is an 8-digit numeral YYYYMMDD, start_time/end_time are local HHMM integers.
    """

    date: int
    start_time: int
    end_time: int
    code: Optional[str] = None
    subjects: Tuple[Element, ...] = field(default_factory=tuple)
    rooms: Tuple[Element, ...] = field(default_factory=tuple)
    teachers: Tuple[Element, ...] = field(default_factory=tuple)
    info: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self.code == CANCELLED


@dataclass(frozen=True)
class NormalizedEvent:
    """
    One calendar entry. start/end are timezone-aware UTC datetimes.

    A merged event is simply a NormalizedEvent whose end was moved later by the merger.
    """

    start: datetime
    end: datetime
    title: str
    location: str
    description: str

    @property
    def start_tuple(self) -> tuple[int, int, int, int, int]:
        return (self.start.year, self.start.month, self.start.day, self.start.hour, self.start.minute)

    @property
    def end_tuple(self) -> tuple[int, int, int, int, int]:
        return (self.end.year, self.end.month, self.end.day, self.end.hour, self.end.minute)
