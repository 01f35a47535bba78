"""
Dashboard API routes.

JSON endpoints consumed by the admin panel: the dashboard for a range
selector, and a cheap "latest event" check the panel polls to decide when to
refresh. When a passkey is configured the endpoints sit behind a cookie
issued by ``POST /login``.
"""

import hashlib
import logging
import secrets
import time
from collections import defaultdict
from threading import Lock

from fastapi import APIRouter, Cookie, Form, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from ..config import AnalyticsConfig, verify_passkey
from ..core.client import EventStoreClient
from ..core.models import AnalyticsRange
from ..core.service import AnalyticsService

logger = logging.getLogger(__name__)

# Auth constants
AUTH_COOKIE_NAME = "analytics_auth"
AUTH_COOKIE_MAX_AGE = 60 * 60 * 24 * 30  # 30 days

# Rate limiting constants
RATE_LIMIT_MAX_ATTEMPTS = 5
RATE_LIMIT_WINDOW_SEC = 15 * 60  # 15 minutes


class LoginRateLimiter:
    """In-memory rate limiter for login attempts, keyed by hashed client IP."""

    def __init__(self, max_attempts: int = RATE_LIMIT_MAX_ATTEMPTS, window_sec: int = RATE_LIMIT_WINDOW_SEC):
        self.max_attempts = max_attempts
        self.window_sec = window_sec
        self._attempts: dict[str, list[float]] = defaultdict(list)
        self._lock = Lock()

    def _key(self, ip: str, salt: str) -> str:
        return hashlib.sha256(f"{salt}:{ip}".encode()).hexdigest()[:16]

    def _prune(self, key: str, now: float) -> list[float]:
        cutoff = now - self.window_sec
        attempts = [t for t in self._attempts[key] if t > cutoff]
        self._attempts[key] = attempts
        return attempts

    def is_rate_limited(self, ip: str, salt: str) -> bool:
        key = self._key(ip, salt)
        with self._lock:
            return len(self._prune(key, time.time())) >= self.max_attempts

    def record_attempt(self, ip: str, salt: str) -> None:
        key = self._key(ip, salt)
        now = time.time()
        with self._lock:
            self._prune(key, now).append(now)

    def clear(self, ip: str, salt: str) -> None:
        """Forget attempts for an IP after a successful login."""
        with self._lock:
            self._attempts.pop(self._key(ip, salt), None)


def _session_token(configured_passkey: str, site_name: str) -> str:
    """Cookie value for an authenticated browser, derived from the configured passkey."""
    return hashlib.sha256(f"{site_name}:{configured_passkey}".encode()).hexdigest()


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if forwarded:
        return forwarded
    return request.client.host if request.client else "unknown"


def create_dashboard_router(
    config: AnalyticsConfig,
    service: AnalyticsService | None = None,
    rate_limiter: LoginRateLimiter | None = None,
) -> APIRouter:
    """Create the dashboard API router.

    Args:
        config: Analytics configuration
        service: Query service; built from ``config`` when omitted
        rate_limiter: Login limiter; a fresh one per router when omitted
    """
    router = APIRouter(tags=["analytics"])

    if service is None:
        service = AnalyticsService(
            store=EventStoreClient(
                store_url=config.store_url,
                api_key=config.store_api_key,
                table=config.events_table,
                timeout=config.request_timeout_seconds,
            ),
            tz=config.zone,
            max_events=config.max_events,
            active_window=config.active_window,
        )
    limiter = rate_limiter or LoginRateLimiter()

    expected_token = _session_token(config.passkey, config.site_name) if config.passkey else None

    def _check_auth(auth_cookie: str | None) -> bool:
        if expected_token is None:
            return True
        if not auth_cookie:
            return False
        return secrets.compare_digest(auth_cookie, expected_token)

    def _require_auth(auth_cookie: str | None) -> None:
        if not _check_auth(auth_cookie):
            raise HTTPException(status_code=401, detail="Unauthorized")

    # -------------------------------------------------------------------------
    # Auth Routes
    # -------------------------------------------------------------------------

    @router.post("/login")
    async def login_submit(request: Request, passkey: str = Form(...)):
        """Exchange the dashboard passkey for an auth cookie."""
        if not config.passkey:
            return JSONResponse({"status": "ok"})

        client_ip = _client_ip(request)
        if limiter.is_rate_limited(client_ip, config.site_name):
            raise HTTPException(
                status_code=429,
                detail="Too many login attempts. Please try again in 15 minutes."
            )
        limiter.record_attempt(client_ip, config.site_name)

        if not verify_passkey(config.passkey, passkey):
            logger.info(f"Rejected dashboard login from {client_ip}")
            return JSONResponse({"error": "Invalid passkey"}, status_code=401)

        limiter.clear(client_ip, config.site_name)
        response = JSONResponse({"status": "ok"})
        response.set_cookie(
            AUTH_COOKIE_NAME,
            expected_token,
            max_age=AUTH_COOKIE_MAX_AGE,
            httponly=True,
            secure=request.url.scheme == "https",
            samesite="lax",
        )
        return response

    @router.get("/logout")
    async def logout():
        """Clear the auth cookie."""
        response = JSONResponse({"status": "ok"})
        response.delete_cookie(AUTH_COOKIE_NAME)
        return response

    # -------------------------------------------------------------------------
    # Dashboard Routes
    # -------------------------------------------------------------------------

    @router.get("/api/dashboard")
    async def dashboard(
        range: str | None = Query(None, description="24h, 7d or 30d; anything else means 24h"),
        auth: str | None = Cookie(None, alias=AUTH_COOKIE_NAME),
    ):
        """Visitors, page views, trend and breakdowns for the selected window."""
        _require_auth(auth)
        result = await service.get_dashboard(AnalyticsRange.parse(range))
        return JSONResponse(result.to_json())

    @router.get("/api/latest")
    async def latest(
        range: str | None = Query(None),
        since: str | None = Query(None, description="lastEventAt the client already has"),
        auth: str | None = Cookie(None, alias=AUTH_COOKIE_NAME),
    ):
        """Newest event in the window and whether it is newer than ``since``."""
        _require_auth(auth)
        result = await service.has_new_events(AnalyticsRange.parse(range), since)
        return JSONResponse(result.model_dump(mode="json", by_alias=True))

    return router
