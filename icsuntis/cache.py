"""
In-memory cache for the generated calendar.

The service serves a single configured identity, so there is exactly one
entry. get/put/invalidate are the only mutation points.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 600.0


class CalendarCache:
    """
    Holds the last encoded calendar, the instant it was produced and a fixed TTL.

    Every invalidate() bumps `generation`. A put() carrying an older generation
    is dropped, so output built from a superseded remap table is never stored.
    """

    def __init__(self, ttl: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = float(ttl)
        self._clock = clock
        self._payload: Optional[bytes] = None
        self._stored_at = 0.0
        self._generation = 0
        self._lock = threading.Lock()
        self._build_lock = threading.Lock()

    @property
    def generation(self) -> int:
        return self._generation

    def get(self) -> Optional[bytes]:
        """
        Return the cached payload if it is younger than the TTL, else None.
        """
        with self._lock:
            if self._payload is None:
                return None
            if self._clock() - self._stored_at < self.ttl:
                return self._payload
            return None

    def put(self, payload: bytes, generation: Optional[int] = None) -> bool:
        """
        Store `payload` as produced now. Returns False if it was built before the last invalidation.
        """
        with self._lock:
            if generation is not None and generation != self._generation:
                logger.debug("Dropping calendar built for generation %d (now %d)", generation, self._generation)
                return False
            self._payload = payload
            self._stored_at = self._clock()
            return True

    def invalidate(self) -> None:
        with self._lock:
            self._payload = None
            self._generation += 1
        logger.info("Calendar cache invalidated")

    @contextmanager
    def single_flight(self) -> Iterator[None]:
        """
        Serialize rebuilds after a miss. Callers re-check get() inside the block,
        so concurrent requests share the one calendar the first caller stored.
        """
        with self._build_lock:
            yield
