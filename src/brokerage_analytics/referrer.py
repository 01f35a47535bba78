"""
Host extraction for the referrer and hostname breakdowns.

Drains deliver referrers in whatever shape the browser sent them: full URLs,
bare hostnames, sometimes junk. Values that parse as an absolute URL are
reduced to their host (without a leading ``www.``); anything else is shown as
delivered so nothing silently disappears from the breakdown.
"""

from urllib.parse import urlparse

DIRECT_LABEL = "Direct / None"
UNKNOWN_HOST = "Unknown"


def _normalize_domain(domain: str) -> str:
    """Remove www. prefix and lowercase."""
    domain = domain.lower().strip()
    if domain.startswith("www."):
        domain = domain[4:]
    return domain


def extract_host(value: str | None) -> str | None:
    """
    Host of an absolute URL, normalized, or None when ``value`` is not one.

    Unlike a browser's address bar, a scheme is required: ``example.com/page``
    is not treated as a URL.
    """
    if not value or not value.strip():
        return None

    try:
        parsed = urlparse(value.strip())
        host = parsed.hostname
    except ValueError:
        return None

    if not parsed.scheme or not host:
        return None

    return _normalize_domain(host)


def referrer_label(referrer: str | None) -> str:
    """
    Breakdown label for a referrer.

    Examples:
        >>> referrer_label("https://www.google.com/search?q=insurance")
        'google.com'
        >>> referrer_label("android-app://com.slack")
        'com.slack'
        >>> referrer_label("newsletter")
        'newsletter'
        >>> referrer_label(None)
        'Direct / None'
    """
    if not referrer or not referrer.strip():
        return DIRECT_LABEL

    host = extract_host(referrer)
    if host:
        return host
    return referrer.strip()


def hostname_label(url: str | None) -> str:
    """Breakdown label for the host a page view landed on."""
    return extract_host(url) or UNKNOWN_HOST
