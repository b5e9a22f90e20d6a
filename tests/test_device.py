"""
Tests for user-agent classification.
"""

import pytest

from sanctuary.services.device import DeviceInfo, classify_user_agent

IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
IPAD = (
    "Mozilla/5.0 (iPad; CPU OS 16_6 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/16.6 Mobile/15E148 Safari/604.1"
)
FIREFOX_LINUX = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"


class TestClassifyUserAgent:
    def test_mobile(self):
        info = classify_user_agent(IPHONE)
        assert info.device_type == "mobile"
        assert info.os == "iOS"

    def test_tablet(self):
        assert classify_user_agent(IPAD).device_type == "tablet"

    def test_desktop(self):
        info = classify_user_agent(FIREFOX_LINUX)
        assert info.device_type == "desktop"
        assert info.browser == "Firefox"
        assert info.os == "Linux"

    @pytest.mark.parametrize("value", [None, ""])
    def test_missing_user_agent(self, value):
        assert classify_user_agent(value) == DeviceInfo()

    def test_unrecognised_families_are_unknown(self):
        info = classify_user_agent("totally-made-up-client")
        assert info.browser == "Unknown"
        assert info.os == "Unknown"
        assert info.device_type == "desktop"
