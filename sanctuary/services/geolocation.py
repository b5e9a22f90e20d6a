"""
Best-effort IP geolocation.

Lookups go to a configurable JSON endpoint (ipapi.co / ipinfo.io style) with a
short timeout and a TTL cache. With no endpoint configured, or for private and
loopback addresses, every lookup resolves to "Unknown" without network I/O.
"""

import ipaddress
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from cachetools import TTLCache

from sanctuary.core.config import settings
from sanctuary.core.logging_config import get_logger
from sanctuary.models.analytics import UNKNOWN

logger = get_logger(__name__)


@dataclass(frozen=True)
class Location:
    country: str = UNKNOWN
    city: str = UNKNOWN


UNKNOWN_LOCATION = Location()


def _is_public_ip(ip: Optional[str]) -> bool:
    if not ip:
        return False
    try:
        address = ipaddress.ip_address(ip.strip())
    except ValueError:
        return False
    return address.is_global


def _parse_location(data: Dict[str, Any]) -> Location:
    """Accept both ipapi.co (country_code) and ipinfo.io (country) payloads."""
    country = data.get("country_code") or data.get("country") or UNKNOWN
    city = data.get("city") or UNKNOWN
    return Location(country=str(country), city=str(city))


class GeolocationService:
    """Resolve country/city for an IP address, never raising."""

    def __init__(
        self,
        lookup_url: str = "",
        timeout: float = 1.5,
        cache_size: int = 4096,
        cache_ttl: int = 86400,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.lookup_url = lookup_url
        self.timeout = timeout
        self._cache: TTLCache = TTLCache(maxsize=cache_size, ttl=cache_ttl)
        self._lock = threading.Lock()
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.lookup_url)

    def lookup(self, ip: Optional[str]) -> Location:
        if not self.enabled or not _is_public_ip(ip):
            return UNKNOWN_LOCATION

        with self._lock:
            cached = self._cache.get(ip)
        if cached is not None:
            return cached

        location = self._fetch(ip)
        # Only successful resolutions are cached so outages don't stick
        if location != UNKNOWN_LOCATION:
            with self._lock:
                self._cache[ip] = location
        return location

    def _fetch(self, ip: str) -> Location:
        try:
            url = self.lookup_url.format(ip=ip)
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.get(url)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError, KeyError, IndexError) as e:
            logger.warning("Geolocation lookup failed", ip=ip, error=str(e))
            return UNKNOWN_LOCATION

        if not isinstance(data, dict):
            return UNKNOWN_LOCATION
        return _parse_location(data)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()


geolocation_service = GeolocationService(
    lookup_url=settings.GEOIP_LOOKUP_URL,
    timeout=settings.GEOIP_TIMEOUT_SECONDS,
    cache_size=settings.GEOIP_CACHE_SIZE,
    cache_ttl=settings.GEOIP_CACHE_TTL_SECONDS,
)
