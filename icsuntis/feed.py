"""
Feed assembly: cache check -> login -> fetch -> normalize + merge -> encode -> cache.

Every failure of the WebUntis client or the encoder is caught here and turned
into a FeedResult with a user-safe message. Details only go to the log.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Iterable, Optional, Protocol

from icsuntis.cache import CalendarCache
from icsuntis.config import Credentials, Settings
from icsuntis.errors import UpstreamAuthError, UpstreamError
from icsuntis.export_ics import encode_calendar
from icsuntis.merge import merge_events
from icsuntis.model import RawLesson
from icsuntis.normalize import normalize_lessons
from icsuntis.remap import RemapTable
from icsuntis.untis import WebUntisClient

logger = logging.getLogger(__name__)

FETCH_ERROR_MESSAGE = "Error while fetching the timetable."
ENCODE_ERROR_MESSAGE = "Error while creating the calendar."


class FeedState(enum.Enum):
    CACHE_CHECK = "cache_check"
    AUTHENTICATE = "authenticate"
    FETCH = "fetch"
    TRANSFORM = "transform"
    ENCODE = "encode"
    SERVE = "serve"
    FAILED = "failed"


class TimetableClient(Protocol):
    def login(self) -> None: ...

    def get_own_timetable(self, start: date, end: date) -> Iterable[RawLesson]: ...

    def logout(self) -> None: ...


ClientFactory = Callable[[Credentials], TimetableClient]


@dataclass(frozen=True)
class FeedResult:
    state: FeedState
    status: int
    payload: Optional[bytes] = None
    message: str = ""
    cache_hit: bool = False
    event_count: int = 0
    # the state the pipeline was in when it failed
    failed_in: Optional[FeedState] = None

    @property
    def ok(self) -> bool:
        return self.state is FeedState.SERVE


class FeedAssembler:
    """
    Owns the calendar cache and the remap table and runs the pipeline for the HTTP layer.
    """

    def __init__(
        self,
        settings: Settings,
        cache: Optional[CalendarCache] = None,
        remap: Optional[RemapTable] = None,
        client_factory: ClientFactory = WebUntisClient,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.settings = settings
        self.cache = cache if cache is not None else CalendarCache(ttl=settings.cache_ttl)
        self.remap = remap if remap is not None else RemapTable()
        self.client_factory = client_factory
        self.today = today

    def update_remap(self, updates: Iterable[tuple[str, str, str]]) -> int:
        """
        Apply remap updates and invalidate the cache so the next request sees them.
        """
        changed = self.remap.apply(updates)
        self.cache.invalidate()
        logger.info("Remap table updated (%d changes)", changed)
        return changed

    def get_calendar(self, credentials: Credentials) -> FeedResult:
        cached = self.cache.get()
        if cached is not None:
            logger.debug("Calendar cache hit")
            return FeedResult(FeedState.SERVE, 200, payload=cached, cache_hit=True)

        with self.cache.single_flight():
            cached = self.cache.get()
            if cached is not None:
                logger.debug("Calendar cache hit after waiting for a concurrent build")
                return FeedResult(FeedState.SERVE, 200, payload=cached, cache_hit=True)
            logger.debug("Calendar cache miss, regenerating")
            return self._build(credentials, self.cache.generation)

    def _failed(self, state: FeedState, message: str) -> FeedResult:
        return FeedResult(FeedState.FAILED, 500, message=message, failed_in=state)

    def _build(self, credentials: Credentials, generation: int) -> FeedResult:
        # the remap table is read once, before anything else of this pass runs
        snapshot = self.remap.snapshot()
        start, end = self.settings.date_range(self.today())

        state = FeedState.AUTHENTICATE
        client = self.client_factory(credentials)
        try:
            client.login()
            state = FeedState.FETCH
            lessons = list(client.get_own_timetable(start, end))
        except UpstreamAuthError as exc:
            logger.error("WebUntis login failed for %r: %s", credentials, exc)
            return self._failed(state, FETCH_ERROR_MESSAGE)
        except UpstreamError as exc:
            logger.error("Fetching timetable failed in state %s: %s", state.value, exc)
            return self._failed(state, FETCH_ERROR_MESSAGE)
        finally:
            client.logout()

        state = FeedState.TRANSFORM
        try:
            events = normalize_lessons(lessons, self.settings.timezone, snapshot)
        except ValueError as exc:
            logger.error("Invalid lesson data from WebUntis: %s", exc)
            return self._failed(state, FETCH_ERROR_MESSAGE)
        # WebUntis does not return lessons in order; the sort is stable so equal starts keep fetch order
        events.sort(key=lambda ev: (ev.start, ev.end))
        merged = merge_events(events)
        if not merged:
            logger.info("No lessons between %s and %s", start, end)

        state = FeedState.ENCODE
        result = encode_calendar(merged, refresh_interval=timedelta(seconds=self.cache.ttl))
        if result.error is not None or result.payload is None:
            logger.error("Encoding calendar failed: %s", result.error)
            return self._failed(state, ENCODE_ERROR_MESSAGE)

        self.cache.put(result.payload, generation=generation)
        logger.info("Calendar generated: %d lessons -> %d events", len(lessons), result.count)
        return FeedResult(FeedState.SERVE, 200, payload=result.payload, event_count=result.count)
