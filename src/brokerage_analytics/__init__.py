"""
Web analytics for the brokerage marketing site and admin panel.

Usage:
    from brokerage_analytics import setup_analytics

    analytics = setup_analytics(
        store_url="https://your-project.supabase.co",
        store_api_key="service-role-key",
        drain_secret="drain-secret",
    )

    # Dashboard API for the admin panel
    app.include_router(analytics.dashboard_router, prefix="/admin/analytics")

    # Drain webhook, registered with the hosting provider
    app.include_router(analytics.drain_router, prefix="/api")

Or run it standalone: ``uvicorn brokerage_analytics:create_app --factory``
with the settings in the environment (see ``AnalyticsConfig.from_env``).
"""

from fastapi import FastAPI

from .config import AnalyticsConfig
from .core.client import EventStoreClient
from .core.models import AnalyticsDashboard, AnalyticsRange
from .core.service import AnalyticsService
from .routes import create_dashboard_router, create_drain_router

__version__ = "0.1.0"
__all__ = [
    "setup_analytics",
    "create_app",
    "Analytics",
    "AnalyticsConfig",
    "AnalyticsDashboard",
    "AnalyticsRange",
    "AnalyticsService",
]


class Analytics:
    """Main analytics interface: service plus the routers to mount."""

    def __init__(self, config: AnalyticsConfig):
        self.config = config
        self.store = EventStoreClient(
            store_url=config.store_url,
            api_key=config.store_api_key,
            table=config.events_table,
            timeout=config.request_timeout_seconds,
        )
        self.service = AnalyticsService(
            store=self.store,
            tz=config.zone,
            max_events=config.max_events,
            active_window=config.active_window,
        )
        self.dashboard_router = create_dashboard_router(config, service=self.service)
        self.drain_router = create_drain_router(config, store=self.store)

    async def get_dashboard(self, range_: AnalyticsRange | str | None = None) -> AnalyticsDashboard:
        """Dashboard for a window; see ``AnalyticsService.get_dashboard``."""
        return await self.service.get_dashboard(range_)


def setup_analytics(
    store_url: str,
    store_api_key: str,
    drain_secret: str | None = None,
    passkey: str | None = None,
    **options,
) -> Analytics:
    """
    Set up analytics for a site.

    Args:
        store_url: Base URL of the PostgREST event store
        store_api_key: Service key for the event store
        drain_secret: Shared secret the drain signs deliveries with
        passkey: Optional passkey protecting the dashboard API (plaintext or
                 the output of ``config.hash_passkey``)
        **options: Any other ``AnalyticsConfig`` field (timezone, max_events, ...)

    Returns:
        Analytics instance with dashboard_router and drain_router
    """
    config = AnalyticsConfig(
        store_url=store_url,
        store_api_key=store_api_key,
        drain_secret=drain_secret,
        passkey=passkey,
        **options,
    )
    return Analytics(config)


def create_app(config: AnalyticsConfig | None = None) -> FastAPI:
    """Standalone application serving both routers; config defaults to the environment."""
    analytics = Analytics(config or AnalyticsConfig.from_env())

    app = FastAPI(title=f"{analytics.config.site_name} analytics", version=__version__)
    app.include_router(analytics.dashboard_router, prefix="/admin/analytics")
    app.include_router(analytics.drain_router, prefix="/api")
    app.state.analytics = analytics
    return app
