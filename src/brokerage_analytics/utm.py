"""
UTM parameter parsing for the campaign breakdown.

Only the three parameters the marketing team tags links with are read:
``utm_source``, ``utm_campaign`` and ``utm_medium``. A page view without any
of them has no campaign label at all; it is left out of the UTM breakdown
rather than grouped under a placeholder.
"""

from dataclasses import dataclass
from urllib.parse import parse_qs, urlparse

# Maximum length for UTM parameter values (sanity limit)
MAX_UTM_LENGTH = 200

LABEL_SEPARATOR = " / "


@dataclass(frozen=True)
class UTMParams:
    """
    UTM parameters found on a landing URL.

    Attributes:
        source: utm_source
        campaign: utm_campaign
        medium: utm_medium
    """
    source: str | None = None
    campaign: str | None = None
    medium: str | None = None

    @property
    def has_utm(self) -> bool:
        return any([self.source, self.campaign, self.medium])

    @property
    def label(self) -> str | None:
        """Present values joined as ``source / campaign / medium``, or None."""
        parts = [p for p in (self.source, self.campaign, self.medium) if p]
        if not parts:
            return None
        return LABEL_SEPARATOR.join(parts)


def _clean_param(value: str | None) -> str | None:
    """
    Clean a UTM parameter value.

    - Strip whitespace
    - Truncate to max length
    - Return None for empty strings
    """
    if not value:
        return None

    cleaned = value.strip()[:MAX_UTM_LENGTH].strip()
    return cleaned if cleaned else None


def _get_param(params: dict[str, list[str]], key: str) -> str | None:
    for value in params.get(key, []):
        cleaned = _clean_param(value)
        if cleaned:
            return cleaned
    return None


def parse_utm(url: str | None) -> UTMParams:
    """
    Extract UTM parameters from a URL.

    Args:
        url: Full URL, path with query string, or None

    Examples:
        >>> parse_utm("https://example.com/?utm_source=google&utm_medium=cpc").label
        'google / cpc'

        >>> parse_utm("https://example.com/quote").has_utm
        False
    """
    if not url:
        return UTMParams()

    try:
        query = urlparse(url).query
    except ValueError:
        return UTMParams()

    if not query:
        return UTMParams()

    params = parse_qs(query, keep_blank_values=False)

    return UTMParams(
        source=_get_param(params, "utm_source"),
        campaign=_get_param(params, "utm_campaign"),
        medium=_get_param(params, "utm_medium"),
    )


def utm_label(url: str | None) -> str | None:
    """Campaign label for a landing URL, None when it carries no UTM tags."""
    return parse_utm(url).label
