"""
Tests for the analytics collector client and its key/value stores.
"""

import json
import re

import httpx
import pytest

from sanctuary.collector import AnalyticsCollector, CollectorConfig, JsonFileStore, MemoryStore, new_session_id
from sanctuary.collector.client import SESSION_KEY


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Recorder:
    """MockTransport handler that records (path, json body) pairs."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.url.path, json.loads(request.content)))
        return httpx.Response(self.status_code, json={"success": self.status_code < 400})

    @property
    def paths(self):
        return [path for path, _ in self.calls]


def _collector(recorder: Recorder, clock: FakeClock, enabled: bool = True, storage=None) -> AnalyticsCollector:
    config = CollectorConfig(base_url="http://test/api", enabled=enabled, initial_page_view_delay=0)
    return AnalyticsCollector(
        config, storage or MemoryStore(), clock=clock, transport=httpx.MockTransport(recorder)
    )


class TestSessionId:
    def test_format(self):
        assert re.fullmatch(r"session_1700000000123_[0-9a-z]{9}", new_session_id(lambda: 1_700_000_000.123))

    def test_persisted_across_collectors(self):
        storage = MemoryStore()
        first = _collector(Recorder(), FakeClock(), storage=storage)
        second = _collector(Recorder(), FakeClock(), storage=storage)
        assert first.session_id == second.session_id == storage.get(SESSION_KEY)


class TestCollector:
    @pytest.mark.asyncio
    async def test_visit_lifecycle(self):
        """Start, one navigation and unload emit the expected requests."""
        recorder, clock = Recorder(), FakeClock()
        collector = _collector(recorder, clock)

        await collector.start("/", "Home", user_agent="UA", screen_resolution="1920x1080")
        clock.advance(12.6)
        await collector.navigate("/about", "About")
        clock.advance(8.2)
        await collector.unload()

        assert recorder.paths == [
            "/api/analytics/track-session",
            "/api/analytics/track-page-view",
            "/api/analytics/track-page-view",
            "/api/analytics/track-page-view",
            "/api/analytics/end-session",
        ]
        session_body = recorder.calls[0][1]
        assert session_body["landingPage"] == "/"
        assert session_body["sessionId"] == collector.session_id
        assert "userId" not in session_body

        views = [body for path, body in recorder.calls if path.endswith("track-page-view")]
        assert [(v["pagePath"], v["timeOnPage"]) for v in views] == [("/", 0), ("/", 12), ("/about", 8)]
        assert views[0]["screenResolution"] == "1920x1080"
        assert recorder.calls[-1][1] == {"sessionId": collector.session_id, "exitPage": "/about"}

    @pytest.mark.asyncio
    async def test_same_path_navigation_is_ignored(self):
        recorder, clock = Recorder(), FakeClock()
        collector = _collector(recorder, clock)

        await collector.start("/", "Home")
        await collector.navigate("/", "Home")
        assert len(recorder.calls) == 2

    @pytest.mark.asyncio
    async def test_disabled_collector_sends_nothing(self):
        recorder = Recorder()
        collector = _collector(recorder, FakeClock(), enabled=False)

        await collector.start("/")
        await collector.navigate("/about")
        await collector.unload()
        assert recorder.calls == []

    @pytest.mark.asyncio
    async def test_server_errors_are_swallowed(self):
        collector = _collector(Recorder(status_code=500), FakeClock())

        await collector.start("/")
        await collector.unload()

    @pytest.mark.asyncio
    async def test_network_errors_are_swallowed(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        config = CollectorConfig(base_url="http://test/api", initial_page_view_delay=0)
        collector = AnalyticsCollector(config, MemoryStore(), transport=httpx.MockTransport(handler))

        await collector.start("/")
        await collector.navigate("/next")

    @pytest.mark.asyncio
    async def test_unload_before_start_is_noop(self):
        recorder = Recorder()
        await _collector(recorder, FakeClock()).unload()
        assert recorder.calls == []


class TestJsonFileStore:
    def test_persists_to_disk(self, tmp_path):
        path = tmp_path / "collector.json"
        store = JsonFileStore(path)
        store.set("a", [1, 2])
        store.set("b", "x")
        store.delete("b")

        assert JsonFileStore(path).get("a") == [1, 2]
        assert JsonFileStore(path).get("b", "default") == "default"

    def test_corrupt_file_reads_as_empty(self, tmp_path):
        path = tmp_path / "collector.json"
        path.write_text("{not json", encoding="utf-8")

        store = JsonFileStore(path)
        assert store.get("a") is None
        store.set("a", 1)
        assert store.get("a") == 1
