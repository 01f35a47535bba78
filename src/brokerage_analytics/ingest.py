"""
Analytics drain payload handling.

The hosting provider POSTs batches of page-view events to the drain
endpoint, signed with HMAC-SHA1 of the raw body. Event shapes vary between
drain versions (ids may be numbers, geo data may sit under ``location``,
``geo``, ``context`` or ``properties``, the user-agent may be a string, an
object or only present in a header map), so each event is flattened into a
fixed row before it is stored.
"""

import base64
import hashlib
import hmac
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Iterable
from urllib.parse import urljoin, urlparse

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-vercel-signature"

NESTED_EVENT_KEYS = ("events", "data", "payload", "body")
TIMESTAMP_KEYS = ("timestamp", "occurredAt", "occurred_at", "receivedAt")

# Numeric timestamps above this are milliseconds, below it seconds
MILLISECONDS_THRESHOLD = 9_999_999_999

MAX_NESTING_DEPTH = 10

COUNTRY_NAMES = {
    'US': 'United States', 'CA': 'Canada', 'MX': 'Mexico', 'GB': 'United Kingdom',
    'IE': 'Ireland', 'FR': 'France', 'DE': 'Germany', 'NL': 'Netherlands',
    'BE': 'Belgium', 'ES': 'Spain', 'PT': 'Portugal', 'IT': 'Italy',
    'CH': 'Switzerland', 'AT': 'Austria', 'SE': 'Sweden', 'NO': 'Norway',
    'DK': 'Denmark', 'FI': 'Finland', 'PL': 'Poland', 'CZ': 'Czechia',
    'RO': 'Romania', 'GR': 'Greece', 'UA': 'Ukraine', 'TR': 'Türkiye',
    'IL': 'Israel', 'AE': 'United Arab Emirates', 'SA': 'Saudi Arabia',
    'IN': 'India', 'PK': 'Pakistan', 'BD': 'Bangladesh', 'CN': 'China',
    'HK': 'Hong Kong SAR China', 'TW': 'Taiwan', 'JP': 'Japan', 'KR': 'South Korea',
    'SG': 'Singapore', 'MY': 'Malaysia', 'TH': 'Thailand', 'VN': 'Vietnam',
    'ID': 'Indonesia', 'PH': 'Philippines', 'AU': 'Australia', 'NZ': 'New Zealand',
    'BR': 'Brazil', 'AR': 'Argentina', 'CL': 'Chile', 'CO': 'Colombia',
    'PE': 'Peru', 'ZA': 'South Africa', 'NG': 'Nigeria', 'KE': 'Kenya',
    'EG': 'Egypt',
}

_COUNTRY_CODE = re.compile(r"^[A-Za-z]{2}$")
_NON_LETTERS = re.compile(r"[^a-z]")


# =============================================================================
# SIGNATURE
# =============================================================================

def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Check a drain signature header against HMAC-SHA1 of the raw body.

    Accepts the digest as hex or base64, each with or without a ``sha1=``
    prefix.
    """
    if not signature:
        return False

    digest = hmac.new(secret.encode(), body, hashlib.sha1).digest()
    expected_hex = digest.hex()
    expected_b64 = base64.b64encode(digest).decode()
    provided = signature.strip().encode()

    candidates = (expected_hex, f"sha1={expected_hex}", expected_b64, f"sha1={expected_b64}")
    return any(hmac.compare_digest(candidate.encode(), provided) for candidate in candidates)


# =============================================================================
# VALUE HELPERS
# =============================================================================

def _to_text(value: Any) -> str | None:
    """First non-blank string found in ``value``.

    Numbers are stringified, lists are searched in order, and objects such
    as ``{"ua": "..."}`` are searched under their usual value keys.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (int, float)):
        return str(value) if value == value and abs(value) != float("inf") else None
    if isinstance(value, list):
        return _first_text(*value)
    if isinstance(value, dict):
        return _first_text(*(value[key] for key in ("ua", "raw", "value", "name", "label") if key in value))
    return None


def _first_text(*values: Any) -> str | None:
    for value in values:
        text = _to_text(value)
        if text:
            return text
    return None


def _identifier(value: Any) -> str | None:
    """Ids may arrive as strings or numbers; nothing else counts."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and math.isfinite(value):
        return str(int(value)) if value.is_integer() else str(value)
    return None


def _dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _header(headers: Any, name: str) -> str | None:
    """Case-insensitive lookup in a header map."""
    target = name.lower()
    for key, value in _dict(headers).items():
        if isinstance(key, str) and key.lower() == target:
            return _to_text(value)
    return None


def _normalize_key(key: str) -> str:
    return _NON_LETTERS.sub("", key.lower())


def _find_nested_text(value: Any, keys: Iterable[str], depth: int = 0) -> str | None:
    """Depth-first search for the first non-blank value under any of ``keys``."""
    if depth > MAX_NESTING_DEPTH:
        return None

    wanted = {_normalize_key(key) for key in keys}

    if isinstance(value, list):
        for item in value:
            found = _find_nested_text(item, wanted, depth + 1)
            if found:
                return found
        return None

    if not isinstance(value, dict):
        return None

    for key, candidate in value.items():
        if isinstance(key, str) and _normalize_key(key) in wanted:
            text = _to_text(candidate)
            if text:
                return text
        found = _find_nested_text(candidate, wanted, depth + 1)
        if found:
            return found
    return None


# =============================================================================
# FIELD EXTRACTION
# =============================================================================

def extract_events(payload: Any) -> list[dict]:
    """Event objects from a drain payload.

    The payload is either a JSON array of events or an object holding that
    array (possibly nested) under ``events``, ``data``, ``payload`` or
    ``body``.
    """
    if isinstance(payload, list):
        return [event for event in payload if isinstance(event, dict)]

    if not isinstance(payload, dict):
        return []

    for key in NESTED_EVENT_KEYS:
        candidate = payload.get(key)
        if not candidate:
            continue
        if isinstance(candidate, list):
            return [event for event in candidate if isinstance(event, dict)]
        if isinstance(candidate, dict):
            nested = extract_events(candidate)
            if nested:
                return nested

    return []


def parse_event_timestamp(value: Any) -> datetime | None:
    """UTC datetime for a drain timestamp (epoch seconds/ms or ISO string)."""
    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > MILLISECONDS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    return None


def normalize_country(value: str | None) -> str | None:
    """Two-letter codes become English names where known; ``unknown`` is capitalised."""
    if not value:
        return None

    trimmed = value.strip()
    if _COUNTRY_CODE.match(trimmed):
        return COUNTRY_NAMES.get(trimmed.upper(), trimmed.upper())
    if trimmed.lower() == "unknown":
        return "Unknown"
    return trimmed


def _location_sources(event: dict) -> list[dict]:
    context = _dict(event.get("context"))
    properties = _dict(event.get("properties"))
    return [
        _dict(event.get("location")),
        _dict(event.get("geo")),
        _dict(context.get("location")),
        _dict(context.get("geo")),
        _dict(properties.get("location")),
        _dict(properties.get("geo")),
    ]


def extract_location_field(event: dict, field: str) -> str | None:
    """``country``, ``city`` or ``region`` from any of the drain's geo blocks."""
    variants = [field, f"{field}Name", f"{field}_name"]
    if field == "country":
        variants += ["countryCode", "country_code", "code"]
    elif field == "region":
        variants += ["regionCode", "region_code", "state", "stateCode", "state_code"]

    for source in _location_sources(event):
        for key in variants:
            if key not in source:
                continue
            value = _to_text(source[key])
            if value:
                return normalize_country(value) if field == "country" else value

    return None


def _resolve_url_and_path(event: dict) -> tuple[str | None, str | None, str | None]:
    properties = _dict(event.get("properties"))

    origin = _to_text(event.get("origin")) if isinstance(event.get("origin"), str) else None
    url = _first_text(
        event.get("url") if isinstance(event.get("url"), str) else None,
        properties.get("url") if isinstance(properties.get("url"), str) else None,
    )
    path = _identifier(event.get("path")) or _first_text(
        properties.get("path") if isinstance(properties.get("path"), str) else None,
        properties.get("pathname") if isinstance(properties.get("pathname"), str) else None,
    )

    if not url and origin and path:
        candidate = path if path.startswith("/") else f"/{path}"
        try:
            if urlparse(origin).scheme:
                url = urljoin(origin, candidate)
        except ValueError:
            logger.debug(f"Ignoring unparsable drain origin {origin!r}")

    if not url and origin:
        url = origin

    if url and path is None:
        try:
            parsed = urlparse(url)
        except ValueError:
            parsed = None
        if parsed is not None and parsed.scheme and parsed.netloc:
            path = parsed.path or "/"

    return url, path, origin


def normalize_event(event: dict) -> dict | None:
    """Flatten one drain event into an event-store row.

    Returns None when the event has no usable timestamp, or when no event id
    is delivered and none can be derived from its identifying fields.
    """
    occurred_at = None
    for key in TIMESTAMP_KEYS:
        if event.get(key) is not None:
            occurred_at = parse_event_timestamp(event[key])
            break
    if occurred_at is None:
        return None

    session_id = _identifier(event.get("sessionId"))
    visit_id = (
        _identifier(event.get("visitId"))
        or _identifier(event.get("visitorId"))
        or _identifier(event.get("deviceId"))
    )
    url, path, origin = _resolve_url_and_path(event)

    event_id = next(
        (value for value in (event.get("id"), event.get("eventId")) if isinstance(value, str) and value),
        None,
    )
    if not event_id:
        parts = [
            str(int(occurred_at.timestamp() * 1000)),
            session_id or "",
            visit_id or "",
            url or "",
            path or "",
            origin or "",
            event.get("eventType") if isinstance(event.get("eventType"), str) else "",
            event.get("eventName") if isinstance(event.get("eventName"), str) else "",
        ]
        parts = [part.strip() for part in parts if part and part.strip()]
        # The timestamp alone always yields a part, so an id is always derived
        event_id = hashlib.sha1("|".join(parts).encode()).hexdigest()

    properties = _dict(event.get("properties"))
    client = _dict(event.get("client"))

    referrer = _first_text(
        event.get("referrer"),
        properties.get("referrer"),
        _header(event.get("headers"), "referer"),
        _header(event.get("headers"), "referrer"),
        _header(properties.get("headers"), "referer"),
        _header(properties.get("headers"), "referrer"),
    )

    user_agent = _first_text(
        client.get("ua"),
        client.get("userAgent"),
        event.get("userAgent"),
        event.get("user_agent"),
        client.get("user_agent"),
        _header(client.get("headers"), "user-agent"),
        _header(event.get("headers"), "user-agent"),
        _header(properties.get("headers"), "user-agent"),
    )
    if not user_agent:
        ua_keys = ("userAgent", "user_agent", "ua")
        user_agent = (
            _find_nested_text(event.get("context"), ua_keys)
            or _find_nested_text(properties, ua_keys)
            or _find_nested_text(event, ua_keys)
        )

    client_ip = _first_text(
        client.get("ip"),
        event.get("ip"),
        event.get("clientIp"),
        _header(client.get("headers"), "x-forwarded-for"),
        _header(event.get("headers"), "x-forwarded-for"),
        _header(properties.get("headers"), "x-forwarded-for"),
    )

    return {
        "event_id": event_id,
        "occurred_at": occurred_at.isoformat(),
        "session_id": session_id,
        "visit_id": visit_id,
        "url": url,
        "path": path,
        "country": extract_location_field(event, "country"),
        "city": extract_location_field(event, "city"),
        "region": extract_location_field(event, "region"),
        "referrer": referrer,
        "user_agent": user_agent,
        "client_ip": client_ip,
    }


def normalize_events(payload: Any) -> list[dict]:
    """Rows for every usable event in a drain payload."""
    events = extract_events(payload)
    rows = [row for row in map(normalize_event, events) if row is not None]
    if len(rows) < len(events):
        logger.warning(f"Dropped {len(events) - len(rows)} of {len(events)} drain events without a usable timestamp")
    return rows
