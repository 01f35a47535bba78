"""
User-Agent classification for the device, OS and browser breakdowns.

User-Agents are messy: Chromium forks claim to be Chrome and Safari at the
same time, tablets sometimes say "Mobile", crawlers pretend to be browsers.
Every classifier here walks an ordered pattern table and stops at the first
hit, so the order of each table is the classification policy:

- Bots are detected before anything else and reported as their own device.
- Edge and Opera (and other forks) come before Chrome; Chrome before Safari.
- Android comes before Linux, iPad before the generic Mac check.

Only families are reported (no versions), which is all the dashboard needs.
"""

import re
from enum import Enum

from .bots import is_bot

UNKNOWN = "Unknown"


class DeviceType(str, Enum):
    """Device category, valued by its dashboard label."""
    DESKTOP = "Desktop"
    MOBILE = "Mobile"
    TABLET = "Tablet"
    TV = "TV"
    BOT = "Bot"
    UNKNOWN = "Unknown"


# =============================================================================
# BROWSER PATTERNS
# =============================================================================
# Order matters. Each tuple: (regex, browser_name)

BROWSER_PATTERNS = [
    # Chromium forks advertise "Chrome/" too
    (r"Edg(?:e|A|iOS)?/", "Edge"),
    (r"OPR/|OPiOS/", "Opera"),
    (r"Opera", "Opera"),
    (r"SamsungBrowser/", "Samsung Internet"),
    (r"Vivaldi/", "Vivaldi"),
    (r"Brave", "Brave"),
    (r"YaBrowser/", "Yandex"),
    (r"UCBrowser/", "UC Browser"),
    (r"DuckDuckGo/", "DuckDuckGo"),

    # In-app browsers wrap WebKit/Chromium and would read as Safari/Chrome
    (r"FBAN|FBAV", "Facebook"),
    (r"Instagram", "Instagram"),
    (r"LinkedInApp", "LinkedIn"),

    (r"Firefox/|FxiOS/", "Firefox"),
    (r"CriOS/|Chrome/", "Chrome"),
    (r"Chromium/", "Chromium"),

    # Safari last among WebKit browsers
    (r"Version/[\d.]+.*Safari/", "Safari"),
    (r"Safari/", "Safari"),

    (r"MSIE |Trident/", "Internet Explorer"),
]

# =============================================================================
# OS PATTERNS
# =============================================================================

OS_PATTERNS = [
    (r"Windows Phone", "Windows Phone"),
    (r"iPhone|iPod", "iOS"),
    (r"iPad", "iPadOS"),
    (r"Android", "Android"),
    (r"CrOS", "Chrome OS"),
    (r"Macintosh|Mac OS X", "macOS"),
    (r"Windows", "Windows"),
    (r"Ubuntu|Fedora|Debian|Linux", "Linux"),
    (r"PlayStation", "PlayStation"),
    (r"Xbox", "Xbox"),
]

# =============================================================================
# DEVICE PATTERNS
# =============================================================================

TV_INDICATORS = [
    r"SmartTV",
    r"Smart-TV",
    r"Web0S",
    r"Tizen.*TV",
    r"Roku",
    r"BRAVIA",
    r"AppleTV",
    r"CrKey",
    r"PlayStation",
    r"Xbox",
]

TABLET_INDICATORS = [
    r"iPad",
    r"Android(?!.*Mobile)",  # Android without Mobile is a tablet
    r"Tablet",
    r"Kindle",
    r"Silk",
]

MOBILE_INDICATORS = [
    r"Mobi",
    r"iPhone",
    r"iPod",
    r"BlackBerry",
    r"Opera Mini",
    r"Windows Phone",
]

_BROWSER_REGEXES = [(re.compile(p, re.IGNORECASE), name) for p, name in BROWSER_PATTERNS]
_OS_REGEXES = [(re.compile(p, re.IGNORECASE), name) for p, name in OS_PATTERNS]
_TV_REGEX = re.compile("|".join(TV_INDICATORS), re.IGNORECASE)
_TABLET_REGEX = re.compile("|".join(TABLET_INDICATORS), re.IGNORECASE)
_MOBILE_REGEX = re.compile("|".join(MOBILE_INDICATORS), re.IGNORECASE)


def _clean(user_agent: str | None) -> str | None:
    if not user_agent:
        return None
    cleaned = user_agent.strip()
    return cleaned or None


def classify_device(user_agent: str | None) -> str:
    """Device label for a user-agent: Bot, TV, Tablet, Mobile, Desktop or Unknown."""
    ua = _clean(user_agent)
    if ua is None:
        return DeviceType.UNKNOWN.value

    # Crawlers often copy a mobile browser UA, so this check goes first
    if is_bot(ua):
        return DeviceType.BOT.value

    if _TV_REGEX.search(ua):
        return DeviceType.TV.value
    if _TABLET_REGEX.search(ua):
        return DeviceType.TABLET.value
    if _MOBILE_REGEX.search(ua):
        return DeviceType.MOBILE.value

    if classify_os(ua) != UNKNOWN or classify_browser(ua) != UNKNOWN:
        return DeviceType.DESKTOP.value

    return DeviceType.UNKNOWN.value


def classify_os(user_agent: str | None) -> str:
    """Operating system family for a user-agent, ``Unknown`` when nothing matches."""
    ua = _clean(user_agent)
    if ua is None:
        return UNKNOWN

    for regex, name in _OS_REGEXES:
        if regex.search(ua):
            return name
    return UNKNOWN


def classify_browser(user_agent: str | None) -> str:
    """Browser family for a user-agent, ``Unknown`` when nothing matches."""
    ua = _clean(user_agent)
    if ua is None:
        return UNKNOWN

    for regex, name in _BROWSER_REGEXES:
        if regex.search(ua):
            return name
    return UNKNOWN
