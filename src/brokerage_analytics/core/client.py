"""
HTTP client for the analytics event store.

The drain writes rows into a PostgREST table (Supabase in production); the
dashboard reads them back. All access goes through the REST endpoint with
the service key, so this module needs nothing beyond httpx.
"""
import logging
from datetime import datetime
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

EVENT_COLUMNS = (
    "event_id",
    "visit_id",
    "session_id",
    "occurred_at",
    "url",
    "path",
    "country",
    "city",
    "region",
    "referrer",
    "user_agent",
)


class EventStoreError(Exception):
    """Raised when the event store rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None, details: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class EventStoreClient:
    """Client for reading and writing analytics rows over PostgREST."""

    def __init__(
        self,
        store_url: str,
        api_key: str,
        table: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store_url = store_url.rstrip("/")
        self.api_key = api_key
        self.table = table
        self.timeout = timeout
        self.transport = transport
        self.base_url = f"{self.store_url}/rest/v1/{table}"

    def _headers(self, **extra: str) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            **extra,
        }

    async def _request(
        self,
        method: str,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """Send one request to the table endpoint and return the decoded body."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(
                    method,
                    self.base_url,
                    params=params,
                    json=json,
                    headers=self._headers(**(headers or {})),
                )
        except httpx.HTTPError as exc:
            raise EventStoreError(f"Event store unreachable: {exc}") from exc

        if response.is_error:
            details = _error_details(response)
            raise EventStoreError(
                f"Event store returned {response.status_code}",
                status_code=response.status_code,
                details=details,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise EventStoreError(
                "Event store returned an unreadable body",
                status_code=response.status_code,
                details=response.text[:200] or None,
            ) from exc

    async def fetch_events(self, since: datetime, limit: int) -> list[dict]:
        """Rows with ``occurred_at >= since``, newest first, at most ``limit``.

        Windows holding more than ``limit`` rows are truncated to the newest
        ones; callers get no signal that this happened.
        """
        rows = await self._request(
            "GET",
            params={
                "select": ",".join(EVENT_COLUMNS),
                "occurred_at": f"gte.{since.isoformat()}",
                "order": "occurred_at.desc",
                "limit": str(limit),
            },
        )
        return _rows(rows)

    async def fetch_latest_event_at(self, since: datetime) -> str | None:
        """``occurred_at`` of the newest row at or after ``since``."""
        rows = await self._request(
            "GET",
            params={
                "select": "occurred_at",
                "occurred_at": f"gte.{since.isoformat()}",
                "order": "occurred_at.desc",
                "limit": "1",
            },
        )
        rows = _rows(rows)
        if not rows:
            return None
        return rows[0].get("occurred_at")

    async def upsert_events(self, rows: list[dict]) -> None:
        """Insert rows, merging into existing rows with the same ``event_id``."""
        if not rows:
            return
        await self._request(
            "POST",
            params={"on_conflict": "event_id"},
            json=rows,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )


def _rows(body: Any) -> list[dict]:
    """Row list from a read response; anything but a list of objects is an error."""
    if body is None:
        return []
    if not isinstance(body, list) or not all(isinstance(row, dict) for row in body):
        raise EventStoreError(f"Event store returned {type(body).__name__} instead of rows")
    return body


def _error_details(response: httpx.Response) -> str | None:
    """PostgREST puts the reason in ``message`` (or ``code``); fall back to the body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or None

    if isinstance(body, dict):
        return body.get("message") or body.get("code") or None
    return None
