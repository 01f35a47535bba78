"""
Crawler detection for the device breakdown.

A crawler that copies a phone browser's User-Agent would otherwise show up
as a mobile visitor, so the device classifier asks this module first.
Known crawlers are matched by lowercase substring, grouped by kind;
anything else that looks automated is caught by a generic regex.
"""

import re

SEARCH_ENGINE_BOTS = (
    "googlebot",
    "google-inspectiontool",
    "adsbot-google",
    "mediapartners-google",
    "bingbot",
    "bingpreview",
    "msnbot",
    "yandexbot",
    "duckduckbot",
    "baiduspider",
    "applebot",
    "petalbot",
    "seznambot",
)

AI_CRAWLER_BOTS = (
    "gptbot",
    "chatgpt-user",
    "oai-searchbot",
    "claudebot",
    "anthropic-ai",
    "perplexitybot",
    "bytespider",
    "amazonbot",
    "ccbot",
    "meta-externalagent",
)

SEO_TOOL_BOTS = (
    "ahrefsbot",
    "semrushbot",
    "mj12bot",
    "dotbot",
    "screaming frog",
    "dataforseobot",
)

SOCIAL_PREVIEW_BOTS = (
    "facebookexternalhit",
    "twitterbot",
    "linkedinbot",
    "slackbot",
    "telegrambot",
    "discordbot",
    "whatsapp/",
    "redditbot",
)

MONITORING_BOTS = (
    "uptimerobot",
    "pingdom",
    "statuscake",
    "datadog",
    "vercel-screenshot",
    "vercelbot",
    "lighthouse",
)

HEADLESS_BROWSER_BOTS = (
    "headlesschrome",
    "phantomjs",
    "puppeteer",
    "playwright",
    "selenium",
)

HTTP_LIBRARY_BOTS = (
    "curl/",
    "wget/",
    "python-requests",
    "python-httpx",
    "python-urllib",
    "aiohttp",
    "go-http-client",
    "okhttp",
    "node-fetch",
    "axios/",
    "undici",
)

KNOWN_BOT_SUBSTRINGS = (
    SEARCH_ENGINE_BOTS
    + SOCIAL_PREVIEW_BOTS
    + AI_CRAWLER_BOTS
    + SEO_TOOL_BOTS
    + MONITORING_BOTS
    + HTTP_LIBRARY_BOTS
    + HEADLESS_BROWSER_BOTS
)

# Fallback for crawlers not listed above
GENERIC_BOT_PATTERNS = [
    r"\bbot\b",
    r"bot/",
    r"\bcrawl",
    r"\bspider",
    r"\bscrape",
    r"\bslurp",
    r"https?://",  # crawlers put their info page in the UA
]

_GENERIC_BOT_REGEX = re.compile("|".join(GENERIC_BOT_PATTERNS), re.IGNORECASE)


def is_bot(user_agent: str | None) -> bool:
    """
    Whether a user-agent string belongs to automated traffic.

    A missing user-agent is not treated as a bot here; callers decide how to
    label it.

    Examples:
        >>> is_bot("Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)")
        True

        >>> is_bot("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7)")
        False
    """
    if not user_agent or not user_agent.strip():
        return False

    ua_lower = user_agent.lower()
    if any(pattern in ua_lower for pattern in KNOWN_BOT_SUBSTRINGS):
        return True
    return bool(_GENERIC_BOT_REGEX.search(ua_lower))
