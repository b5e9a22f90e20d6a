"""
User-agent classification for sessions and page views.

Derivation happens server-side only; clients send the raw user-agent string.
"""

from dataclasses import dataclass
from typing import Optional

from user_agents import parse as parse_ua

from sanctuary.core.logging_config import get_logger
from sanctuary.models.analytics import UNKNOWN

logger = get_logger(__name__)

# user_agents reports unrecognised families as "Other"
_UNRECOGNISED = {"", "Other"}


@dataclass(frozen=True)
class DeviceInfo:
    device_type: str = "desktop"
    browser: str = UNKNOWN
    os: str = UNKNOWN


def _family(value: Optional[str]) -> str:
    if not value or value in _UNRECOGNISED:
        return UNKNOWN
    return value


def classify_user_agent(user_agent_string: Optional[str]) -> DeviceInfo:
    """Parse user agent into device type (desktop/mobile/tablet), browser and OS."""
    if not user_agent_string:
        return DeviceInfo()

    try:
        ua = parse_ua(user_agent_string)
    except Exception as e:
        logger.debug("User agent parse failed", error=str(e))
        return DeviceInfo()

    if ua.is_tablet:
        device_type = "tablet"
    elif ua.is_mobile:
        device_type = "mobile"
    else:
        device_type = "desktop"

    return DeviceInfo(
        device_type=device_type,
        browser=_family(ua.browser.family),
        os=_family(ua.os.family),
    )
