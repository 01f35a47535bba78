"""
Dashboard aggregation over raw page-view rows.

One pass over an already-fetched batch: every row is resolved to a visitor
key and counted into a global visitor set, a time bucket and one visitor set
per breakdown dimension. Breakdowns therefore count distinct visitors, never
raw events, and every percentage is taken against the window's total
distinct visitors.

The aggregator does not filter by time; the fetch boundary already limited
rows to the window. Timestamps outside the bucket range land in the first or
last bucket.
"""
import math
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Iterable, Mapping
from urllib.parse import urlparse

from ..referrer import hostname_label, referrer_label
from ..user_agent import classify_browser, classify_device, classify_os
from ..utm import utm_label
from .models import (
    AnalyticsBreakdowns,
    AnalyticsDashboard,
    AnalyticsRange,
    AnalyticsSummary,
    BreakdownEntry,
    RawEvent,
    TrendPoint,
)

BREAKDOWN_LIMIT = 6
ACTIVE_WINDOW = timedelta(minutes=5)
HOURLY_BUCKET_MAX_HOURS = 24

UNKNOWN_LABEL = "Unknown"

# Identity preference for anonymous visitors
VISITOR_KEY_FIELDS = ("visit_id", "session_id", "event_id")


@dataclass(frozen=True)
class BucketLayout:
    """Fixed-width buckets whose last one ends at ``end``."""
    width: timedelta
    count: int
    end: datetime

    @property
    def first_start(self) -> datetime:
        return self.end - self.width * self.count

    @property
    def hourly(self) -> bool:
        return self.width < timedelta(days=1)

    def starts(self) -> list[datetime]:
        first = self.first_start
        return [first + self.width * i for i in range(self.count)]

    def index_for(self, moment: datetime) -> int:
        """Bucket index of ``moment``, clamped to the layout."""
        offset = (moment - self.first_start) // self.width
        return min(max(offset, 0), self.count - 1)


def bucket_layout(hours: int, now: datetime) -> BucketLayout:
    """Hourly buckets for windows up to 24h, daily buckets otherwise."""
    bucket_minutes = 60 if hours <= HOURLY_BUCKET_MAX_HOURS else 1440
    count = max(1, math.ceil(hours * 60 / bucket_minutes))
    return BucketLayout(width=timedelta(minutes=bucket_minutes), count=count, end=now)


def parse_timestamp(value: Any) -> datetime | None:
    """Aware UTC datetime for an ISO string or datetime, None if unparsable.

    Naive values are taken as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _present(value: str | None) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def resolve_visitor_key(event: RawEvent) -> str | None:
    """First present identifier among visit id, session id and event id."""
    for field in VISITOR_KEY_FIELDS:
        value = _present(getattr(event, field))
        if value:
            return value
    return None


def page_label(path: str | None, url: str | None) -> str:
    """Stored path, else the path of the URL, else ``/``."""
    stored = _present(path)
    if stored:
        return stored

    if url:
        try:
            parsed = urlparse(url.strip())
        except ValueError:
            parsed = None
        if parsed is not None and parsed.scheme and parsed.netloc and parsed.path:
            return parsed.path

    return "/"


def country_label(country: str | None) -> str:
    return _present(country) or UNKNOWN_LABEL


def format_bucket_label(start: datetime, hourly: bool, tz: tzinfo) -> str:
    """``3 PM`` for hourly buckets, ``Oct 19`` for daily ones, in ``tz``."""
    local = start.astimezone(tz)
    if hourly:
        hour = local.hour % 12 or 12
        return f"{hour} {'AM' if local.hour < 12 else 'PM'}"
    return f"{local:%b} {local.day}"


def _to_breakdown(visitor_sets: Mapping[str, set[str]], total_visitors: int) -> list[BreakdownEntry]:
    if total_visitors == 0:
        return []

    ranked = sorted(visitor_sets.items(), key=lambda item: len(item[1]), reverse=True)
    return [
        BreakdownEntry(label=label, value=len(keys), percent=len(keys) / total_visitors)
        for label, keys in ranked[:BREAKDOWN_LIMIT]
    ]


def _coerce_event(row: RawEvent | Mapping[str, Any]) -> RawEvent:
    if isinstance(row, RawEvent):
        return row
    return RawEvent.model_validate(row)


def aggregate_events(
    rows: Iterable[RawEvent | Mapping[str, Any]],
    range_: AnalyticsRange,
    now: datetime,
    tz: tzinfo = timezone.utc,
    active_window: timedelta = ACTIVE_WINDOW,
) -> AnalyticsDashboard:
    """Build the dashboard for ``range_`` from rows already limited to that window.

    Args:
        rows: Raw event rows (models or store dicts), in any order
        range_: Dashboard window; decides bucket width and count
        now: End of the window
        tz: Timezone for trend labels
        active_window: Look-back from ``now`` for the active-visitor count

    Rows whose timestamp does not parse, or that carry no identifier at all,
    are skipped and counted nowhere.
    """
    now = parse_timestamp(now)
    layout = bucket_layout(range_.hours, now)
    active_since = now - active_window

    visitor_ids: set[str] = set()
    occurrences: Counter[str] = Counter()
    active: set[str] = set()
    buckets: list[set[str]] = [set() for _ in range(layout.count)]
    dimensions: dict[str, defaultdict[str, set[str]]] = {
        name: defaultdict(set) for name in AnalyticsBreakdowns.model_fields
    }
    page_views = 0
    last_event_at: datetime | None = None

    for row in rows:
        event = _coerce_event(row)
        occurred = parse_timestamp(event.occurred_at)
        if occurred is None:
            continue
        key = resolve_visitor_key(event)
        if key is None:
            continue

        page_views += 1
        visitor_ids.add(key)
        occurrences[key] += 1
        if last_event_at is None or occurred > last_event_at:
            last_event_at = occurred
        if occurred >= active_since:
            active.add(key)
        buckets[layout.index_for(occurred)].add(key)

        dimensions["pages"][page_label(event.path, event.url)].add(key)
        dimensions["hostnames"][hostname_label(event.url)].add(key)
        dimensions["referrers"][referrer_label(event.referrer)].add(key)
        dimensions["countries"][country_label(event.country)].add(key)
        dimensions["devices"][classify_device(event.user_agent)].add(key)
        dimensions["operating_systems"][classify_os(event.user_agent)].add(key)
        dimensions["browsers"][classify_browser(event.user_agent)].add(key)

        campaign = utm_label(event.url)
        if campaign:
            dimensions["utm_sources"][campaign].add(key)

    visitors = len(visitor_ids)
    bounces = sum(1 for count in occurrences.values() if count == 1)

    summary = AnalyticsSummary(
        visitors=visitors,
        page_views=page_views,
        active_visitors=len(active),
        bounce_rate=bounces / visitors if visitors else 0.0,
        last_event_at=last_event_at,
    )

    trend = [
        TrendPoint(
            label=format_bucket_label(start, layout.hourly, tz),
            value=len(keys),
            start=start,
        )
        for start, keys in zip(layout.starts(), buckets)
    ]

    breakdowns = AnalyticsBreakdowns(**{
        name: _to_breakdown(visitor_sets, visitors)
        for name, visitor_sets in dimensions.items()
    })

    return AnalyticsDashboard(range=range_, summary=summary, trend=trend, breakdowns=breakdowns)


def empty_dashboard(
    range_: AnalyticsRange,
    now: datetime,
    error: str | None = None,
    tz: tzinfo = timezone.utc,
) -> AnalyticsDashboard:
    """Dashboard shape used when rows could not be loaded.

    Summary numbers are null, the trend keeps its zero-valued buckets so the
    chart still renders, every breakdown is empty.
    """
    now = parse_timestamp(now)
    layout = bucket_layout(range_.hours, now)
    trend = [
        TrendPoint(label=format_bucket_label(start, layout.hourly, tz), value=0, start=start)
        for start in layout.starts()
    ]
    return AnalyticsDashboard(
        range=range_,
        summary=AnalyticsSummary(),
        trend=trend,
        breakdowns=AnalyticsBreakdowns(),
        error=error,
    )
