"""
Timezone resolution between the school's civil time and UTC.

WebUntis reports wall-clock times of the school's locale. Offsets change twice a
year (CET/CEST for Europe/Berlin), so every conversion goes through the zone's
full rules for the specific date instead of a fixed offset.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/Berlin"

CivilTime = tuple[int, int, int, int, int]


def get_zone(name: str | None) -> ZoneInfo:
    """
    Resolve an IANA zone name. Unknown names fall back to Europe/Berlin with a warning.
    """
    tz_name = (name or "").strip() or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Invalid TIMEZONE %s, falling back to %s", tz_name, DEFAULT_TIMEZONE)
        return ZoneInfo(DEFAULT_TIMEZONE)


def local_datetime_to_utc(
    year: int, month: int, day: int, hour: int, minute: int, tz: ZoneInfo
) -> datetime:
    """
    Interpret the civil date+time in `tz` and return the aware UTC datetime.

    Ambiguous times (the repeated hour in autumn) resolve to the first occurrence.
    """
    local = datetime(year, month, day, hour, minute, tzinfo=tz)
    return local.astimezone(timezone.utc)


def local_to_utc(year: int, month: int, day: int, hour: int, minute: int, tz: ZoneInfo) -> CivilTime:
    utc = local_datetime_to_utc(year, month, day, hour, minute, tz)
    return (utc.year, utc.month, utc.day, utc.hour, utc.minute)


def utc_to_local(year: int, month: int, day: int, hour: int, minute: int, tz: ZoneInfo) -> CivilTime:
    local = datetime(year, month, day, hour, minute, tzinfo=timezone.utc).astimezone(tz)
    return (local.year, local.month, local.day, local.hour, local.minute)
