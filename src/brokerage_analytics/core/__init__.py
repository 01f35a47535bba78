"""
Core analytics module.

Contains the data models, the aggregation pass, the event store client and
the query service built on them.
"""

from .aggregator import aggregate_events, empty_dashboard
from .client import EventStoreClient, EventStoreError
from .models import (
    AnalyticsBreakdowns,
    AnalyticsDashboard,
    AnalyticsRange,
    AnalyticsSummary,
    BreakdownEntry,
    LatestEvent,
    RawEvent,
    TrendPoint,
)
from .service import AnalyticsService

__all__ = [
    "RawEvent",
    "AnalyticsRange", "AnalyticsSummary", "AnalyticsBreakdowns", "AnalyticsDashboard",
    "BreakdownEntry", "TrendPoint", "LatestEvent",
    "aggregate_events", "empty_dashboard",
    "EventStoreClient", "EventStoreError",
    "AnalyticsService",
]
