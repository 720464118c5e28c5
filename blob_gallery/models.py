from __future__ import annotations
"""Data models for blob listings and the views derived from them."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union


@dataclass(frozen=True)
class ObjectRecord:
    """A single stored object as reported by the remote listing."""

    url: str
    pathname: str
    size: int
    uploaded_at: datetime
    download_url: str


@dataclass
class PageInfo:
    """Pagination metadata for a :class:`PageView`."""

    page: int
    limit: int
    total_count: int
    has_more: bool
    total_pages: int


@dataclass
class PageView:
    """A slice of the recency-sorted listing."""

    images: list[ObjectRecord]
    pagination: PageInfo


@dataclass
class UploadDates:
    today: int = 0
    this_week: int = 0
    this_month: int = 0


@dataclass
class StatsSummary:
    """Aggregate figures computed from one listing snapshot."""

    total_files: int = 0
    total_storage: int = 0
    average_file_size: float = 0.0
    largest_file: int = 0
    smallest_file: int = 0
    recent_uploads: int = 0
    file_types: dict[str, int] = field(default_factory=dict)
    upload_dates: UploadDates = field(default_factory=UploadDates)


@dataclass(frozen=True)
class StatsAvailable:
    summary: StatsSummary
    available: bool = field(default=True, init=False)


@dataclass(frozen=True)
class StatsUnavailable:
    reason: str
    available: bool = field(default=False, init=False)


StatsResult = Union[StatsAvailable, StatsUnavailable]


@dataclass(frozen=True)
class CacheInfo:
    """Read-only view of the listing cache state."""

    has_data: bool
    last_fetch_age: Optional[float]
    is_stale: bool
    count: int
    serving_stale: bool = False


@dataclass
class ActionResult:
    """Outcome of a mutating gallery action."""

    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    url: Optional[str] = None
    pathname: Optional[str] = None
    existing_url: Optional[str] = None
