"""
Dashboard queries: fetch the window's rows, then aggregate them.
"""
import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable

import httpx

from .aggregator import ACTIVE_WINDOW, aggregate_events, empty_dashboard, parse_timestamp
from .client import EventStoreClient, EventStoreError
from .models import AnalyticsDashboard, AnalyticsRange, LatestEvent

logger = logging.getLogger(__name__)

LOAD_ERROR_MESSAGE = "Unable to load analytics data right now."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnalyticsService:
    """Dashboard and "latest event" queries over an event store.

    ``clock`` supplies "now"; tests pass a fixed one.
    """

    def __init__(
        self,
        store: EventStoreClient,
        tz: tzinfo = timezone.utc,
        max_events: int = 10_000,
        active_window: timedelta = ACTIVE_WINDOW,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.tz = tz
        self.max_events = max_events
        self.active_window = active_window
        self.clock = clock

    def _window_start(self, range_: AnalyticsRange, now: datetime) -> datetime:
        return now - timedelta(hours=range_.hours)

    async def get_dashboard(self, range_: AnalyticsRange | str | None = None) -> AnalyticsDashboard:
        """Dashboard for the selected window.

        Store failures come back as a dashboard with an ``error`` message and
        null summary numbers; this method does not raise for them.
        """
        range_ = AnalyticsRange.parse(range_)
        now = self.clock()
        since = self._window_start(range_, now)

        try:
            rows = await self.store.fetch_events(since, self.max_events)
        except (EventStoreError, httpx.HTTPError) as exc:
            logger.error(f"Failed to load analytics events for {range_.value}: {exc}")
            return empty_dashboard(range_, now, error=LOAD_ERROR_MESSAGE, tz=self.tz)

        if len(rows) >= self.max_events:
            logger.info(f"Analytics window {range_.value} hit the {self.max_events} row cap")

        return aggregate_events(rows, range_, now, tz=self.tz, active_window=self.active_window)

    async def get_latest_event_at(self, range_: AnalyticsRange | str | None = None) -> datetime | None:
        """Timestamp of the newest event in the window, None when empty or on failure."""
        range_ = AnalyticsRange.parse(range_)
        since = self._window_start(range_, self.clock())

        try:
            latest = await self.store.fetch_latest_event_at(since)
        except (EventStoreError, httpx.HTTPError) as exc:
            logger.error(f"Failed to load latest analytics event: {exc}")
            return None

        return parse_timestamp(latest)

    async def has_new_events(
        self,
        range_: AnalyticsRange | str | None = None,
        since: str | None = None,
    ) -> LatestEvent:
        """Whether the window has an event newer than ``since``.

        A missing or unparsable ``since`` counts as "new" whenever the window
        has any event at all.
        """
        last_event_at = await self.get_latest_event_at(range_)
        if last_event_at is None:
            return LatestEvent()

        since_at = parse_timestamp(since)
        has_new = since_at is None or last_event_at > since_at
        return LatestEvent(last_event_at=last_event_at, has_new=has_new)
