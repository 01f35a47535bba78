"""
Configuration for brokerage analytics.
"""
import hashlib
import logging
import os
import secrets
import warnings
from dataclasses import dataclass
from datetime import timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_EVENTS_TABLE = "vercel_analytics_events"
DEFAULT_MAX_EVENTS = 10_000
DEFAULT_ACTIVE_WINDOW_MINUTES = 5

# Passkey security constants
MIN_PASSKEY_LENGTH = 16
PBKDF2_ITERATIONS = 100_000


class ConfigError(ValueError):
    """Raised when the analytics configuration is unusable."""


class PasskeyTooShortError(ConfigError):
    """Raised when a passkey doesn't meet minimum length requirements."""


def validate_passkey_strength(passkey: str) -> None:
    """Raise PasskeyTooShortError if passkey is shorter than MIN_PASSKEY_LENGTH."""
    if len(passkey) < MIN_PASSKEY_LENGTH:
        raise PasskeyTooShortError(
            f"Passkey must be at least {MIN_PASSKEY_LENGTH} characters. "
            f"Got {len(passkey)} characters."
        )


def hash_passkey(passkey: str, validate: bool = True) -> str:
    """Hash a dashboard passkey using PBKDF2-SHA256.

    Returns a string in format: pbkdf2:iterations:salt_hex:hash_hex

    Store the output in ANALYTICS_PASSKEY instead of the plaintext:

        from brokerage_analytics.config import hash_passkey
        print(hash_passkey("your-secret-passkey"))
    """
    if validate:
        validate_passkey_strength(passkey)

    salt = os.urandom(16)
    dk = hashlib.pbkdf2_hmac("sha256", passkey.encode(), salt, PBKDF2_ITERATIONS)
    return f"pbkdf2:{PBKDF2_ITERATIONS}:{salt.hex()}:{dk.hex()}"


def verify_passkey(stored: str, provided: str) -> bool:
    """Timing-safe check of ``provided`` against a hashed or plaintext passkey."""
    if stored.startswith("pbkdf2:"):
        try:
            _, iterations_str, salt_hex, hash_hex = stored.split(":")
            iterations = int(iterations_str)
            salt = bytes.fromhex(salt_hex)
            expected_hash = bytes.fromhex(hash_hex)
        except (ValueError, TypeError):
            return False

        dk = hashlib.pbkdf2_hmac("sha256", provided.encode(), salt, iterations)
        return secrets.compare_digest(dk, expected_hash)

    return secrets.compare_digest(stored.encode(), provided.encode())


def resolve_timezone(name: str) -> tzinfo:
    """tzinfo for an IANA name; raises ConfigError for unknown names."""
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Unknown timezone: {name!r}") from exc


def _int_env(env, name: str, default: int) -> int:
    value = env.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


@dataclass
class AnalyticsConfig:
    """Configuration for a single analytics instance."""

    # Event store (PostgREST endpoint, e.g. https://<project>.supabase.co)
    store_url: str
    store_api_key: str
    events_table: str = DEFAULT_EVENTS_TABLE

    # Display settings
    site_name: str = "analytics"
    timezone: str = "UTC"  # Timezone for trend labels

    # Drain webhook shared secret; the drain endpoint refuses requests without it
    drain_secret: str | None = None

    # Optional dashboard protection
    passkey: str | None = None

    # Limits
    max_events: int = DEFAULT_MAX_EVENTS
    active_window_minutes: int = DEFAULT_ACTIVE_WINDOW_MINUTES  # "active visitors" look-back
    request_timeout_seconds: float = 30.0

    @property
    def has_auth(self) -> bool:
        return bool(self.passkey)

    @property
    def is_passkey_hashed(self) -> bool:
        return bool(self.passkey and self.passkey.startswith("pbkdf2:"))

    @property
    def active_window(self) -> timedelta:
        return timedelta(minutes=self.active_window_minutes)

    @property
    def zone(self) -> tzinfo:
        return resolve_timezone(self.timezone)

    def __post_init__(self):
        if not self.store_url:
            raise ConfigError("store_url is required")
        self.store_url = self.store_url.rstrip("/")
        if self.max_events < 1:
            raise ConfigError(f"max_events must be positive, got {self.max_events}")
        if self.active_window_minutes < 1:
            raise ConfigError(f"active_window_minutes must be positive, got {self.active_window_minutes}")
        if self.request_timeout_seconds <= 0:
            raise ConfigError("request_timeout_seconds must be positive")
        resolve_timezone(self.timezone)
        self._validate_passkey()

    def _validate_passkey(self) -> None:
        """Warn about plaintext or short passkeys."""
        if not self.passkey:
            return

        if self.is_passkey_hashed:
            logger.debug(f"Site {self.site_name}: Using hashed passkey")
            return

        warnings.warn(
            f"Site {self.site_name}: Using plaintext passkey is deprecated. "
            f"Use hash_passkey() to generate a hashed passkey.",
            DeprecationWarning,
            stacklevel=3,
        )
        if len(self.passkey) < MIN_PASSKEY_LENGTH:
            logger.warning(
                f"Site {self.site_name}: Passkey is shorter than "
                f"recommended {MIN_PASSKEY_LENGTH} characters"
            )

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "AnalyticsConfig":
        """Build a config from environment variables.

        Reads SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY, VERCEL_ANALYTICS_DRAIN_SECRET
        and the optional ANALYTICS_* settings.
        """
        env = os.environ if environ is None else environ

        store_url = env.get("SUPABASE_URL", "")
        store_api_key = env.get("SUPABASE_SERVICE_ROLE_KEY", "")
        if not store_url or not store_api_key:
            raise ConfigError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        max_events = _int_env(env, "ANALYTICS_MAX_EVENTS", DEFAULT_MAX_EVENTS)
        active_window_minutes = _int_env(env, "ANALYTICS_ACTIVE_WINDOW_MINUTES", DEFAULT_ACTIVE_WINDOW_MINUTES)

        return cls(
            store_url=store_url,
            store_api_key=store_api_key,
            events_table=env.get("ANALYTICS_EVENTS_TABLE") or DEFAULT_EVENTS_TABLE,
            site_name=env.get("ANALYTICS_SITE_NAME") or "analytics",
            timezone=env.get("ANALYTICS_TIMEZONE") or "UTC",
            drain_secret=env.get("VERCEL_ANALYTICS_DRAIN_SECRET") or None,
            passkey=env.get("ANALYTICS_PASSKEY") or None,
            max_events=max_events,
            active_window_minutes=active_window_minutes,
        )
