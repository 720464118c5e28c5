from __future__ import annotations
"""Read-side views over the cached blob listing."""
from datetime import date, datetime, time, timedelta, tzinfo
import logging
import math
from typing import Callable, Iterable, Optional, Sequence

from .cache import ListingCache
from .models import (
    CacheInfo,
    ObjectRecord,
    PageInfo,
    PageView,
    StatsAvailable,
    StatsResult,
    StatsSummary,
    StatsUnavailable,
    UploadDates,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_RECENT_LIMIT = 6
DEFAULT_PAGE_SIZE = 20
UNKNOWN_FILE_TYPE = "unknown"
RECENT_WINDOW = timedelta(hours=24)
WEEK_WINDOW = timedelta(days=7)

NowFn = Callable[[], datetime]


def _local_now() -> datetime:
    return datetime.now().astimezone()


def _start_of_day(day: date, tz: tzinfo | None) -> datetime:
    """Midnight of ``day`` in ``tz``, or in the system zone when ``tz`` is None.

    The offset is resolved for midnight itself, which is not the offset of
    "now" on a daylight saving transition day.
    """
    midnight = datetime.combine(day, time.min)
    if tz is None:
        return midnight.astimezone()
    return midnight.replace(tzinfo=tz)


def sort_by_recency(records: Iterable[ObjectRecord]) -> list[ObjectRecord]:
    """Newest first; records with equal timestamps keep their listing order."""
    return sorted(records, key=lambda record: record.uploaded_at, reverse=True)


def file_type_of(pathname: str) -> str:
    _, dot, extension = pathname.rpartition(".")
    if not dot or not extension:
        return UNKNOWN_FILE_TYPE
    return extension.lower()


class ImageCatalog:
    """Derives pages, lookups and statistics from a :class:`ListingCache`.

    Callers that mutate the store must call :meth:`invalidate` once the
    mutation succeeds so the next read refetches the listing.
    Upload date buckets follow the calendar of ``tz``, or of the system
    time zone when it is omitted.
    """

    def __init__(
        self,
        cache: ListingCache,
        *,
        now: NowFn | None = None,
        tz: tzinfo | None = None,
    ):
        self._cache = cache
        self._now = now or _local_now
        self._tz = tz

    def list_all(self, force_refresh: bool = False) -> Sequence[ObjectRecord]:
        return self._cache.get_listing(force_refresh)

    def exists(self, pathname: str, force_refresh: bool = False) -> bool:
        return any(record.pathname == pathname for record in self.list_all(force_refresh))

    def recent(self, limit: int = DEFAULT_RECENT_LIMIT, force_refresh: bool = False) -> list[ObjectRecord]:
        return sort_by_recency(self.list_all(force_refresh))[: max(limit, 0)]

    def find_by_url(self, url: str, force_refresh: bool = False) -> Optional[ObjectRecord]:
        return next((record for record in self.list_all(force_refresh) if record.url == url), None)

    def find_by_pathname(self, pathname: str, force_refresh: bool = False) -> Optional[ObjectRecord]:
        return next(
            (record for record in self.list_all(force_refresh) if record.pathname == pathname),
            None,
        )

    def paginate(
        self,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        force_refresh: bool = False,
    ) -> PageView:
        """Return one page of the recency-sorted listing.

        Pages past the end are empty rather than an error.

        Raises:
            ValueError: if ``page`` or ``limit`` is lower than one.
        """
        if page < 1:
            raise ValueError("page must be at least 1")
        if limit < 1:
            raise ValueError("limit must be at least 1")

        records = sort_by_recency(self.list_all(force_refresh))
        total_count = len(records)
        offset = (page - 1) * limit
        return PageView(
            images=records[offset : offset + limit],
            pagination=PageInfo(
                page=page,
                limit=limit,
                total_count=total_count,
                has_more=offset + limit < total_count,
                total_pages=math.ceil(total_count / limit),
            ),
        )

    def statistics(self, force_refresh: bool = False) -> StatsResult:
        """Summarise the current listing.

        An empty store yields a zeroed summary. A failure while computing the
        figures yields :class:`StatsUnavailable` instead of raising.
        """
        records = self.list_all(force_refresh)
        try:
            summary = self._summarise(records)
        except Exception as exc:
            LOGGER.exception("Failed to compute statistics")
            return StatsUnavailable(reason=str(exc) or exc.__class__.__name__)
        return StatsAvailable(summary=summary)

    def invalidate(self) -> None:
        self._cache.invalidate()

    def cache_info(self) -> CacheInfo:
        return self._cache.diagnostics()

    def _summarise(self, records: Sequence[ObjectRecord]) -> StatsSummary:
        if not records:
            return StatsSummary()

        now = self._now()
        local_day = now.astimezone(self._tz).date()
        today = _start_of_day(local_day, self._tz)
        week_start = now - WEEK_WINDOW
        month_start = _start_of_day(local_day.replace(day=1), self._tz)

        sizes = [record.size for record in records]
        total_storage = sum(sizes)
        file_types: dict[str, int] = {}
        for record in records:
            extension = file_type_of(record.pathname)
            file_types[extension] = file_types.get(extension, 0) + 1

        return StatsSummary(
            total_files=len(records),
            total_storage=total_storage,
            average_file_size=total_storage / len(records),
            largest_file=max(sizes),
            smallest_file=min(sizes),
            recent_uploads=sum(1 for record in records if now - record.uploaded_at < RECENT_WINDOW),
            file_types=file_types,
            upload_dates=UploadDates(
                today=sum(1 for record in records if record.uploaded_at >= today),
                this_week=sum(1 for record in records if record.uploaded_at >= week_start),
                this_month=sum(1 for record in records if record.uploaded_at >= month_start),
            ),
        )
