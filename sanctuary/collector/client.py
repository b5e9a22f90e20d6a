"""
Async client that reports a visitor's session to the analytics API.

One collector per visitor context:

    collector = AnalyticsCollector(CollectorConfig(base_url="https://example.org/api"), MemoryStore())
    await collector.start("/", "Home", user_agent=ua)
    await collector.navigate("/about", "About")
    await collector.unload()

Delivery is best effort. Failed requests are logged and dropped, never raised.
"""

import asyncio
import math
import random
import string
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx

from sanctuary.collector.storage import KeyValueStore
from sanctuary.core.logging_config import get_logger

logger = get_logger(__name__)

SESSION_KEY = "analytics_session_id"

_BASE36 = string.digits + string.ascii_lowercase

Clock = Callable[[], float]


@dataclass
class CollectorConfig:
    base_url: str
    enabled: bool = True
    timeout: float = 5.0
    initial_page_view_delay: float = 1.0
    sync_interval: float = 300.0


def _random_suffix(length: int = 9) -> str:
    return "".join(random.choice(_BASE36) for _ in range(length))


def new_id(prefix: str, clock: Clock = time.time) -> str:
    """``<prefix>_<epoch-ms>_<9 base36 chars>``"""
    return f"{prefix}_{int(clock() * 1000)}_{_random_suffix()}"


def new_session_id(clock: Clock = time.time) -> str:
    return new_id("session", clock)


def get_or_create_session_id(storage: KeyValueStore, clock: Clock = time.time) -> str:
    session_id = storage.get(SESSION_KEY)
    if not session_id:
        session_id = new_session_id(clock)
        storage.set(SESSION_KEY, session_id)
    return session_id


async def post_json(
    config: CollectorConfig,
    path: str,
    payload: Any,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """POST ``payload`` to ``base_url/path``; True on a 2xx, False on any failure."""
    try:
        async with httpx.AsyncClient(
            base_url=config.base_url, timeout=config.timeout, transport=transport
        ) as client:
            response = await client.post(path, json=payload)
            response.raise_for_status()
        return True
    except httpx.HTTPError as e:
        logger.warning("Analytics request failed", path=path, error=str(e))
        return False


class AnalyticsCollector:
    """Tracks one visitor session: start, page navigation and unload."""

    def __init__(
        self,
        config: CollectorConfig,
        storage: KeyValueStore,
        *,
        clock: Clock = time.time,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.storage = storage
        self.clock = clock
        self.transport = transport

        self.current_path: Optional[str] = None
        self.current_title: Optional[str] = None
        self.page_started_at: Optional[float] = None
        self._context: Dict[str, Optional[str]] = {}

    @property
    def session_id(self) -> str:
        return get_or_create_session_id(self.storage, self.clock)

    def _elapsed_seconds(self) -> int:
        if self.page_started_at is None:
            return 0
        return max(0, math.floor(self.clock() - self.page_started_at))

    async def _send(self, path: str, payload: Dict[str, Any]) -> bool:
        body = {key: value for key, value in payload.items() if value is not None}
        return await post_json(self.config, path, body, transport=self.transport)

    async def _send_page_view(self, page_path: str, page_title: Optional[str], time_on_page: int) -> bool:
        return await self._send(
            "analytics/track-page-view",
            {
                "sessionId": self.session_id,
                "pagePath": page_path,
                "pageTitle": page_title,
                "referrer": self._context.get("referrer"),
                "userAgent": self._context.get("user_agent"),
                "screenResolution": self._context.get("screen_resolution"),
                "timeOnPage": time_on_page,
            },
        )

    async def start(
        self,
        path: str,
        title: Optional[str] = None,
        *,
        referrer: Optional[str] = None,
        user_agent: Optional[str] = None,
        screen_resolution: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> None:
        """Announce the session, then record the landing page view after the initial delay."""
        if not self.config.enabled:
            return

        self._context = {
            "referrer": referrer,
            "user_agent": user_agent,
            "screen_resolution": screen_resolution,
        }
        self.current_path = path
        self.current_title = title
        self.page_started_at = self.clock()

        await self._send(
            "analytics/track-session",
            {
                "sessionId": self.session_id,
                "userId": user_id,
                "userAgent": user_agent,
                "screenResolution": screen_resolution,
                "referrer": referrer,
                "landingPage": path,
            },
        )

        if self.config.initial_page_view_delay > 0:
            await asyncio.sleep(self.config.initial_page_view_delay)
        await self._send_page_view(path, title, 0)

    async def navigate(self, new_path: str, title: Optional[str] = None) -> None:
        """Close out the previous page with its dwell time and start timing ``new_path``."""
        if not self.config.enabled or new_path == self.current_path:
            return

        if self.current_path is not None:
            await self._send_page_view(self.current_path, self.current_title, self._elapsed_seconds())

        self.current_path = new_path
        self.current_title = title
        self.page_started_at = self.clock()

    async def unload(self) -> None:
        if not self.config.enabled or self.current_path is None:
            return

        await self._send_page_view(self.current_path, self.current_title, self._elapsed_seconds())
        await self._send(
            "analytics/end-session",
            {"sessionId": self.session_id, "exitPage": self.current_path},
        )
        self.page_started_at = None
