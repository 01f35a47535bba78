"""Tests for drain payload handling."""

import base64
import hashlib
import hmac
from datetime import datetime, timezone

from brokerage_analytics.ingest import (
    extract_events,
    extract_location_field,
    normalize_country,
    normalize_event,
    normalize_events,
    parse_event_timestamp,
    verify_signature,
)

SECRET = "drain-secret"
BODY = b'[{"timestamp": 1792411200000, "sessionId": 1}]'
OCCURRED = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
OCCURRED_MS = int(OCCURRED.timestamp() * 1000)


def _digest(body: bytes = BODY) -> bytes:
    return hmac.new(SECRET.encode(), body, hashlib.sha1).digest()


class TestVerifySignature:
    """Test drain signature checks."""

    def test_hex_signature(self):
        assert verify_signature(SECRET, BODY, _digest().hex()) is True

    def test_prefixed_hex_signature(self):
        assert verify_signature(SECRET, BODY, f"sha1={_digest().hex()}") is True

    def test_base64_signature(self):
        encoded = base64.b64encode(_digest()).decode()
        assert verify_signature(SECRET, BODY, encoded) is True
        assert verify_signature(SECRET, BODY, f"sha1={encoded}") is True

    def test_surrounding_whitespace_ignored(self):
        assert verify_signature(SECRET, BODY, f"  {_digest().hex()}\n") is True

    def test_wrong_secret_rejected(self):
        wrong = hmac.new(b"other-secret", BODY, hashlib.sha1).hexdigest()
        assert verify_signature(SECRET, BODY, wrong) is False

    def test_tampered_body_rejected(self):
        assert verify_signature(SECRET, BODY + b" ", _digest().hex()) is False

    def test_missing_signature_rejected(self):
        assert verify_signature(SECRET, BODY, None) is False
        assert verify_signature(SECRET, BODY, "") is False


class TestExtractEvents:
    """Test locating the event list inside a payload."""

    def test_top_level_array(self):
        assert extract_events([{"a": 1}, "junk", {"b": 2}]) == [{"a": 1}, {"b": 2}]

    def test_wrapped_array(self):
        assert extract_events({"events": [{"a": 1}]}) == [{"a": 1}]
        assert extract_events({"payload": [{"a": 1}]}) == [{"a": 1}]

    def test_nested_wrapper(self):
        assert extract_events({"data": {"body": {"events": [{"a": 1}]}}}) == [{"a": 1}]

    def test_unusable_payloads(self):
        assert extract_events({"events": []}) == []
        assert extract_events({"payload": "text"}) == []
        assert extract_events("text") == []
        assert extract_events(None) == []


class TestTimestamps:
    """Test drain timestamp parsing."""

    def test_milliseconds_and_seconds_agree(self):
        assert parse_event_timestamp(OCCURRED_MS) == OCCURRED
        assert parse_event_timestamp(OCCURRED_MS // 1000) == OCCURRED

    def test_iso_string(self):
        assert parse_event_timestamp("2026-10-19T12:00:00Z") == OCCURRED
        assert parse_event_timestamp("2026-10-19T08:00:00-04:00") == OCCURRED

    def test_unusable_values(self):
        assert parse_event_timestamp("soon") is None
        assert parse_event_timestamp(True) is None
        assert parse_event_timestamp(None) is None


class TestCountries:
    """Test country normalisation."""

    def test_known_code_becomes_name(self):
        assert normalize_country("CA") == "Canada"
        assert normalize_country("de") == "Germany"

    def test_unknown_code_upper_cased(self):
        assert normalize_country("zz") == "ZZ"

    def test_names_pass_through(self):
        assert normalize_country(" Canada ") == "Canada"
        assert normalize_country("unknown") == "Unknown"
        assert normalize_country(None) is None

    def test_location_blocks(self):
        event = {"geo": {"country": "CA", "city": "Toronto", "regionCode": "ON"}}
        assert extract_location_field(event, "country") == "Canada"
        assert extract_location_field(event, "city") == "Toronto"
        assert extract_location_field(event, "region") == "ON"

    def test_context_location(self):
        event = {"context": {"location": {"countryCode": "GB", "cityName": "Leeds"}}}
        assert extract_location_field(event, "country") == "United Kingdom"
        assert extract_location_field(event, "city") == "Leeds"
        assert extract_location_field(event, "region") is None


class TestNormalizeEvent:
    """Test flattening drain events into rows."""

    def test_full_event(self):
        row = normalize_event({
            "id": "evt_1",
            "timestamp": OCCURRED_MS,
            "sessionId": 123,
            "visitorId": "vis_9",
            "url": "https://www.example-broker.com/quote?utm_source=google",
            "referrer": "https://www.google.com/",
            "location": {"country": "US", "city": "Austin", "region": "TX"},
            "client": {"ua": "Mozilla/5.0", "ip": "203.0.113.7"},
        })

        assert row == {
            "event_id": "evt_1",
            "occurred_at": OCCURRED.isoformat(),
            "session_id": "123",
            "visit_id": "vis_9",
            "url": "https://www.example-broker.com/quote?utm_source=google",
            "path": "/quote",
            "country": "United States",
            "city": "Austin",
            "region": "TX",
            "referrer": "https://www.google.com/",
            "user_agent": "Mozilla/5.0",
            "client_ip": "203.0.113.7",
        }

    def test_missing_timestamp_dropped(self):
        assert normalize_event({"id": "evt_1", "url": "https://example.com/"}) is None
        assert normalize_event({"id": "evt_1", "timestamp": "later"}) is None

    def test_derived_event_id_is_stable(self):
        event = {"timestamp": OCCURRED_MS, "sessionId": "s1", "path": "/a"}
        first = normalize_event(event)
        second = normalize_event(dict(event))
        other = normalize_event({**event, "path": "/b"})

        expected = hashlib.sha1(f"{OCCURRED_MS}|s1|/a".encode()).hexdigest()
        assert first["event_id"] == expected
        assert second["event_id"] == first["event_id"]
        assert other["event_id"] != first["event_id"]

    def test_timestamp_alone_derives_id(self):
        row = normalize_event({"timestamp": OCCURRED_MS})
        assert row["event_id"] == hashlib.sha1(str(OCCURRED_MS).encode()).hexdigest()

    def test_url_built_from_origin_and_path(self):
        row = normalize_event({"timestamp": OCCURRED_MS, "origin": "https://example-broker.com", "path": "quote"})
        assert row["url"] == "https://example-broker.com/quote"

    def test_properties_fallbacks(self):
        row = normalize_event({
            "timestamp": OCCURRED_MS,
            "properties": {
                "url": "https://example-broker.com/claims",
                "headers": {"Referer": "https://news.example.org/story"},
            },
        })
        assert row["url"] == "https://example-broker.com/claims"
        assert row["path"] == "/claims"
        assert row["referrer"] == "https://news.example.org/story"

    def test_user_agent_from_headers(self):
        row = normalize_event({"timestamp": OCCURRED_MS, "headers": {"User-Agent": "curl/8.4.0"}})
        assert row["user_agent"] == "curl/8.4.0"

    def test_user_agent_from_nested_context(self):
        row = normalize_event({
            "timestamp": OCCURRED_MS,
            "context": {"device": {"user_agent": {"raw": "Mozilla/5.0 (X11; Linux x86_64)"}}},
        })
        assert row["user_agent"] == "Mozilla/5.0 (X11; Linux x86_64)"

    def test_normalize_events_drops_unusable(self, caplog):
        payload = {"events": [{"timestamp": OCCURRED_MS, "id": "a"}, {"id": "b"}]}

        with caplog.at_level("WARNING", logger="brokerage_analytics.ingest"):
            rows = normalize_events(payload)

        assert [row["event_id"] for row in rows] == ["a"]
        assert "Dropped 1 of 2" in caplog.text

    def test_unparsable_url_kept_raw(self):
        row = normalize_event({"timestamp": OCCURRED_MS, "url": "http://[::1"})

        assert row["url"] == "http://[::1"
        assert row["path"] is None

    def test_unparsable_origin_ignored_for_join(self):
        row = normalize_event({"timestamp": OCCURRED_MS, "origin": "http://[::1", "path": "/quote"})

        assert row["url"] == "http://[::1"
        assert row["path"] == "/quote"

    def test_bad_url_does_not_sink_batch(self):
        rows = normalize_events([
            {"timestamp": OCCURRED_MS, "id": "bad", "url": "http://[::1"},
            {"timestamp": OCCURRED_MS, "id": "good", "url": "https://example-broker.com/"},
        ])

        assert [row["event_id"] for row in rows] == ["bad", "good"]

    def test_numeric_identifiers(self):
        row = normalize_event({"timestamp": OCCURRED_MS, "sessionId": 1.5, "visitId": 42.0})

        assert row["session_id"] == "1.5"
        assert row["visit_id"] == "42"

    def test_non_finite_identifier_dropped(self):
        row = normalize_event({"timestamp": OCCURRED_MS, "sessionId": float("nan")})

        assert row["session_id"] is None
