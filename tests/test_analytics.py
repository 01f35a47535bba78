"""Tests for the breakdown classifiers."""

import pytest
from brokerage_analytics.bots import is_bot
from brokerage_analytics.referrer import extract_host, hostname_label, referrer_label
from brokerage_analytics.utm import parse_utm, utm_label
from brokerage_analytics.user_agent import (
    DeviceType,
    classify_browser,
    classify_device,
    classify_os,
)

CHROME_MAC = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
SAFARI_IPHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
SAFARI_IPAD = "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
EDGE_WINDOWS = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36 Edg/119.0.0.0"
OPERA_WINDOWS = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 OPR/106.0.0.0"
FIREFOX_WINDOWS = "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0"
CHROME_ANDROID = "Mozilla/5.0 (Linux; Android 13; Pixel 7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.6099.43 Mobile Safari/537.36"
CHROME_ANDROID_TABLET = "Mozilla/5.0 (Linux; Android 13; SM-X700) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.6099.43 Safari/537.36"
SAMSUNG_ANDROID = "Mozilla/5.0 (Linux; Android 14; SM-S918B) AppleWebKit/537.36 (KHTML, like Gecko) SamsungBrowser/23.0 Chrome/115.0.0.0 Mobile Safari/537.36"
GOOGLEBOT_SMARTPHONE = (
    "Mozilla/5.0 (Linux; Android 6.0.1; Nexus 5X Build/MMB29P) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.6099.71 Mobile Safari/537.36 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"
)


class TestBotDetection:
    """Test crawler detection from user-agents."""

    def test_googlebot_detected(self):
        assert is_bot("Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)") is True

    def test_gptbot_detected(self):
        ua = "Mozilla/5.0 AppleWebKit/537.36 (KHTML, like Gecko; compatible; GPTBot/1.0; +https://openai.com/gptbot)"
        assert is_bot(ua) is True

    def test_curl_detected(self):
        assert is_bot("curl/7.88.1") is True

    def test_generic_crawler_detected(self):
        assert is_bot("AcmeBot/1.0 (+https://acme.example/bot)") is True

    def test_browsers_not_bots(self):
        for ua in (CHROME_MAC, SAFARI_IPHONE, EDGE_WINDOWS, FIREFOX_WINDOWS, SAMSUNG_ANDROID):
            assert is_bot(ua) is False, ua

    def test_empty_ua_not_flagged(self):
        assert is_bot("") is False
        assert is_bot(None) is False


class TestUserAgentParsing:
    """Test browser, OS and device classification."""

    def test_chrome_macos(self):
        assert classify_browser(CHROME_MAC) == "Chrome"
        assert classify_os(CHROME_MAC) == "macOS"
        assert classify_device(CHROME_MAC) == DeviceType.DESKTOP

    def test_safari_ios(self):
        assert classify_browser(SAFARI_IPHONE) == "Safari"
        assert classify_os(SAFARI_IPHONE) == "iOS"
        assert classify_device(SAFARI_IPHONE) == DeviceType.MOBILE

    def test_ipad_is_tablet(self):
        assert classify_os(SAFARI_IPAD) == "iPadOS"
        assert classify_device(SAFARI_IPAD) == DeviceType.TABLET

    def test_edge_before_chrome(self):
        assert classify_browser(EDGE_WINDOWS) == "Edge"
        assert classify_os(EDGE_WINDOWS) == "Windows"

    def test_opera_before_chrome(self):
        assert classify_browser(OPERA_WINDOWS) == "Opera"

    def test_samsung_before_chrome(self):
        assert classify_browser(SAMSUNG_ANDROID) == "Samsung Internet"

    def test_firefox_windows(self):
        assert classify_browser(FIREFOX_WINDOWS) == "Firefox"
        assert classify_os(FIREFOX_WINDOWS) == "Windows"
        assert classify_device(FIREFOX_WINDOWS) == DeviceType.DESKTOP

    def test_android_phone_and_tablet(self):
        assert classify_os(CHROME_ANDROID) == "Android"
        assert classify_device(CHROME_ANDROID) == "Mobile"
        assert classify_device(CHROME_ANDROID_TABLET) == "Tablet"

    def test_bot_wins_over_device(self):
        """A crawler with a phone UA is a Bot, not Mobile."""
        assert classify_device(GOOGLEBOT_SMARTPHONE) == "Bot"
        assert is_bot(GOOGLEBOT_SMARTPHONE) is True

    def test_empty_ua(self):
        assert classify_browser("") == "Unknown"
        assert classify_os("") == "Unknown"
        assert classify_device("") == DeviceType.UNKNOWN
        assert classify_device(None) == "Unknown"

    def test_unrecognised_ua(self):
        assert classify_browser("SomethingElse/1.0") == "Unknown"
        assert classify_device("SomethingElse/1.0") == "Unknown"


class TestReferrerLabels:
    """Test referrer and hostname labels."""

    def test_url_reduced_to_host(self):
        assert referrer_label("https://www.google.com/search?q=home+insurance") == "google.com"

    def test_subdomain_kept(self):
        assert referrer_label("https://l.facebook.com/l.php?u=x") == "l.facebook.com"

    def test_non_url_kept_raw(self):
        assert referrer_label("  newsletter ") == "newsletter"
        assert referrer_label("google.com") == "google.com"

    def test_missing_is_direct(self):
        assert referrer_label(None) == "Direct / None"
        assert referrer_label("") == "Direct / None"
        assert referrer_label("   ") == "Direct / None"

    def test_hostname_strips_www(self):
        assert hostname_label("https://www.example-broker.com/quote") == "example-broker.com"

    def test_hostname_unknown(self):
        assert hostname_label(None) == "Unknown"
        assert hostname_label("/quote") == "Unknown"

    def test_extract_host_requires_scheme(self):
        assert extract_host("example.com/page") is None
        assert extract_host("HTTPS://WWW.Example.com") == "example.com"


class TestUTMParsing:
    """Test UTM parameter extraction."""

    def test_basic_utm_params(self):
        url = "https://example.com/?utm_source=google&utm_medium=cpc&utm_campaign=spring_sale"
        params = parse_utm(url)
        assert params.source == "google"
        assert params.medium == "cpc"
        assert params.campaign == "spring_sale"
        assert params.has_utm is True

    def test_label_order_source_campaign_medium(self):
        url = "https://example.com/?utm_medium=cpc&utm_source=google&utm_campaign=renewals"
        assert utm_label(url) == "google / renewals / cpc"

    def test_partial_params(self):
        assert utm_label("https://example.com/?utm_campaign=launch") == "launch"

    def test_no_utm_params(self):
        params = parse_utm("https://example.com/page?id=123")
        assert params.has_utm is False
        assert params.label is None

    def test_other_aliases_ignored(self):
        assert utm_label("https://example.com/?ref=partner_site") is None

    def test_blank_values_ignored(self):
        assert utm_label("https://example.com/?utm_source=&utm_medium=%20") is None

    def test_empty_url(self):
        assert parse_utm("").has_utm is False
        assert utm_label(None) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
