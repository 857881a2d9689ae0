"""
Configuration.

Settings come from environment variables (optionally loaded from a .env file).
WebUntis credentials may additionally be passed per request as query parameters,
which take precedence over the environment defaults.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Mapping, Optional
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta
from dotenv import load_dotenv

from icsuntis.cache import DEFAULT_TTL_SECONDS
from icsuntis.errors import ConfigurationError
from icsuntis.tz import get_zone

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3979

# query parameter -> environment variable
CREDENTIAL_KEYS = {
    "server": "WEBUNTIS_SERVER",
    "school": "WEBUNTIS_SCHOOL",
    "username": "WEBUNTIS_USERNAME",
    "password": "WEBUNTIS_PASSWORD",
}


@dataclass(frozen=True)
class Credentials:
    server: str
    school: str
    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(server={self.server!r}, school={self.school!r}, username={self.username!r})"


@dataclass
class Settings:
    timezone: ZoneInfo
    cache_ttl: float = DEFAULT_TTL_SECONDS
    months_back: int = 2
    months_ahead: int = 2
    remap_file: Optional[Path] = None
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT

    def date_range(self, today: Optional[date] = None) -> tuple[date, date]:
        """
        Return (start, end) of the fetched window around `today`.
        """
        base = today if today is not None else date.today()
        return base - relativedelta(months=self.months_back), base + relativedelta(months=self.months_ahead)


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using %d", key, raw, default)
        return default


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using %s", key, raw, default)
        return default


def get_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    source = os.environ if env is None else env
    remap_file = (source.get("REMAP_FILE") or "").strip()
    return Settings(
        timezone=get_zone(source.get("TIMEZONE")),
        cache_ttl=_env_float(source, "CACHE_TTL_SECONDS", DEFAULT_TTL_SECONDS),
        months_back=_env_int(source, "RANGE_MONTHS_BACK", 2),
        months_ahead=_env_int(source, "RANGE_MONTHS_AHEAD", 2),
        remap_file=Path(remap_file) if remap_file else None,
        host=(source.get("HOST") or "0.0.0.0").strip(),
        port=_env_int(source, "PORT", DEFAULT_PORT),
    )


def resolve_credentials(
    query: Optional[Mapping[str, str]] = None, env: Optional[Mapping[str, str]] = None
) -> Credentials:
    """
    Merge query parameters over environment defaults.

    Raises ConfigurationError naming every missing value.
    """
    params = query or {}
    source = os.environ if env is None else env

    values: dict[str, str] = {}
    missing: list[str] = []
    for key, env_key in CREDENTIAL_KEYS.items():
        value = (params.get(key) or "").strip() or (source.get(env_key) or "").strip()
        if not value:
            missing.append(key)
        values[key] = value

    if missing:
        raise ConfigurationError("Missing WebUntis credentials: " + ", ".join(missing))
    return Credentials(**values)
