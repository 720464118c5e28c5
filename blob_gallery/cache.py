from __future__ import annotations
"""Time-boxed cache of the full blob listing."""
import logging
import threading
import time
from typing import Callable, Optional, Sequence

from .models import CacheInfo, ObjectRecord
from .services import STORE_ERRORS

LOGGER = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30.0

FetchFn = Callable[[], Sequence[ObjectRecord]]
ClockFn = Callable[[], float]


class ListingCache:
    """Holds one snapshot of the remote listing.

    The snapshot is replaced wholesale on every successful fetch and cleared
    by :meth:`invalidate`. Store errors raised by ``fetch`` never reach the
    caller: the previous snapshot is served instead, or an empty listing when
    there is none.

    The freshness check and the fetch run under one lock, so concurrent misses
    result in a single call to ``fetch``.
    """

    def __init__(
        self,
        fetch: FetchFn,
        *,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: ClockFn | None = None,
    ):
        self._fetch = fetch
        self._ttl = float(ttl)
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._snapshot: Optional[tuple[ObjectRecord, ...]] = None
        self._fetched_at: Optional[float] = None
        self._serving_stale = False

    @property
    def ttl(self) -> float:
        return self._ttl

    def get_listing(self, force_refresh: bool = False) -> tuple[ObjectRecord, ...]:
        with self._lock:
            if not force_refresh and self._is_fresh():
                LOGGER.debug("Serving cached listing (%d object(s))", len(self._snapshot))
                return self._snapshot

            LOGGER.debug("Fetching listing from store (forced=%s)", force_refresh)
            try:
                records = tuple(self._fetch())
            except STORE_ERRORS as exc:
                if self._snapshot is not None:
                    LOGGER.warning("Listing fetch failed, serving stale snapshot: %s", exc)
                    self._serving_stale = True
                    return self._snapshot
                LOGGER.warning("Listing fetch failed with nothing cached, serving empty listing: %s", exc)
                return ()

            self._snapshot = records
            self._fetched_at = self._clock()
            self._serving_stale = False
            LOGGER.debug("Fetched %d object(s) from store", len(records))
            return records

    def invalidate(self) -> None:
        with self._lock:
            LOGGER.debug("Invalidating listing cache")
            self._snapshot = None
            self._fetched_at = None
            self._serving_stale = False

    def diagnostics(self) -> CacheInfo:
        snapshot = self._snapshot
        fetched_at = self._fetched_at
        age = None if fetched_at is None else self._clock() - fetched_at
        return CacheInfo(
            has_data=snapshot is not None,
            last_fetch_age=age,
            is_stale=age is None or age >= self._ttl,
            count=len(snapshot) if snapshot is not None else 0,
            serving_stale=self._serving_stale,
        )

    def _is_fresh(self) -> bool:
        if self._snapshot is None or self._fetched_at is None:
            return False
        return self._clock() - self._fetched_at < self._ttl
