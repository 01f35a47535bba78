"""
Analytics HTTP routes: the admin dashboard API and the drain webhook.
"""

from .dashboard import create_dashboard_router
from .drain import create_drain_router

__all__ = ["create_dashboard_router", "create_drain_router"]
