"""
Analytics drain webhook.

Receives signed batches of page-view events, normalises them and upserts
them into the event store keyed by ``event_id``, so redelivered batches do
not double count.
"""

import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..config import AnalyticsConfig
from ..core.client import EventStoreClient, EventStoreError
from ..ingest import SIGNATURE_HEADER, normalize_events, verify_signature

logger = logging.getLogger(__name__)


def create_drain_router(config: AnalyticsConfig, store: EventStoreClient | None = None) -> APIRouter:
    """Create the drain router.

    Args:
        config: Analytics configuration; ``drain_secret`` must be set for the
            endpoint to accept anything
        store: Event store; built from ``config`` when omitted
    """
    router = APIRouter(tags=["analytics-drain"])

    if store is None:
        store = EventStoreClient(
            store_url=config.store_url,
            api_key=config.store_api_key,
            table=config.events_table,
            timeout=config.request_timeout_seconds,
        )

    @router.post("/analytics-drain")
    async def receive_drain(request: Request):
        """Verify, normalise and store one drain delivery."""
        secret = config.drain_secret
        if not secret:
            logger.error("Analytics drain called but no drain secret is configured")
            return JSONResponse({"error": "Server configuration error"}, status_code=500)

        signature = request.headers.get(SIGNATURE_HEADER)
        if not signature:
            return JSONResponse({"error": "Missing signature header"}, status_code=401)

        body = await request.body()

        if not verify_signature(secret, body, signature):
            return JSONResponse(
                {"error": "Invalid signature", "code": "invalid_signature"},
                status_code=403,
            )

        try:
            payload = json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning(f"Failed to parse analytics drain payload: {exc}")
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        rows = normalize_events(payload)
        if not rows:
            return JSONResponse({"processed": 0})

        try:
            await store.upsert_events(rows)
        except EventStoreError as exc:
            logger.error(f"Failed to upsert {len(rows)} analytics events: {exc} ({exc.details})")
            return JSONResponse(
                {"error": "Failed to store events", "details": exc.details or str(exc)},
                status_code=500,
            )

        logger.debug(f"Stored {len(rows)} analytics events")
        return JSONResponse({"processed": len(rows)})

    return router
