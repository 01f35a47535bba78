"""
Pydantic models for analytics data.

Dashboard models serialize with camelCase keys (``pageViews``,
``operatingSystems``) for the admin panel; Python code uses the snake_case
attribute names.
"""
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class AnalyticsRange(str, Enum):
    """Dashboard window selector."""
    LAST_24H = "24h"
    LAST_7D = "7d"
    LAST_30D = "30d"

    @property
    def hours(self) -> int:
        return RANGE_HOURS[self]

    @classmethod
    def parse(cls, value: "str | AnalyticsRange | None") -> "AnalyticsRange":
        """Selector for a query-string value; anything unrecognised means 24h."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.LAST_24H


RANGE_HOURS = {
    AnalyticsRange.LAST_24H: 24,
    AnalyticsRange.LAST_7D: 24 * 7,
    AnalyticsRange.LAST_30D: 24 * 30,
}


# =============================================================================
# Raw Data Models
# =============================================================================

class RawEvent(BaseModel):
    """A page-view row as stored by the drain.

    ``occurred_at`` stays unparsed; a malformed value only drops this row
    during aggregation.
    """
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    event_id: str | None = None
    visit_id: str | None = None
    session_id: str | None = None
    occurred_at: Any = None

    url: str | None = None
    path: str | None = None

    # Geography
    country: str | None = None
    city: str | None = None
    region: str | None = None

    referrer: str | None = None
    user_agent: str | None = None


# =============================================================================
# Dashboard Response Models
# =============================================================================

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BreakdownEntry(CamelModel):
    """One row of a breakdown list."""
    label: str
    value: int  # distinct visitors
    percent: float  # value / total visitors, 0-1


class TrendPoint(CamelModel):
    """Distinct visitors for one bucket of the trend chart."""
    label: str  # "3 PM" or "Oct 19"
    value: int
    start: datetime


class AnalyticsSummary(CamelModel):
    """Headline numbers. Nullable fields are None only when loading failed."""
    visitors: int | None = None
    page_views: int | None = None
    active_visitors: int = 0
    bounce_rate: float | None = None  # 0-1
    last_event_at: datetime | None = None


class AnalyticsBreakdowns(CamelModel):
    """Top-6 lists per dimension."""
    pages: list[BreakdownEntry] = []
    referrers: list[BreakdownEntry] = []
    countries: list[BreakdownEntry] = []
    devices: list[BreakdownEntry] = []
    operating_systems: list[BreakdownEntry] = []
    browsers: list[BreakdownEntry] = []
    hostnames: list[BreakdownEntry] = []
    utm_sources: list[BreakdownEntry] = []


class AnalyticsDashboard(CamelModel):
    """Complete dashboard response."""
    range: AnalyticsRange
    summary: AnalyticsSummary
    trend: list[TrendPoint]
    breakdowns: AnalyticsBreakdowns
    error: str | None = None

    def to_json(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys; ``error`` omitted when unset."""
        data = self.model_dump(mode="json", by_alias=True)
        if data.get("error") is None:
            data.pop("error", None)
        return data


class LatestEvent(CamelModel):
    """Answer to the admin panel's "anything new?" poll."""
    last_event_at: datetime | None = None
    has_new: bool = False
