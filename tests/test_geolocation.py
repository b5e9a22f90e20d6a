"""
Tests for best-effort IP geolocation.
"""

import httpx

from sanctuary.services.geolocation import UNKNOWN_LOCATION, GeolocationService, Location

LOOKUP_URL = "https://geo.example.org/{ip}/json"


def _service(handler) -> GeolocationService:
    return GeolocationService(lookup_url=LOOKUP_URL, transport=httpx.MockTransport(handler))


class TestGeolocation:
    def test_resolves_country_and_city(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/8.8.8.8/json"
            return httpx.Response(200, json={"country_code": "US", "city": "Mountain View"})

        assert _service(handler).lookup("8.8.8.8") == Location(country="US", city="Mountain View")

    def test_accepts_country_field(self):
        service = _service(lambda request: httpx.Response(200, json={"country": "NG", "city": "Lagos"}))
        assert service.lookup("8.8.4.4") == Location(country="NG", city="Lagos")

    def test_disabled_without_url(self):
        calls = []
        service = GeolocationService(transport=httpx.MockTransport(lambda r: calls.append(r)))
        assert service.lookup("8.8.8.8") == UNKNOWN_LOCATION
        assert calls == []

    def test_private_addresses_skip_lookup(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"country_code": "US"})

        service = _service(handler)
        for ip in ["10.0.0.1", "127.0.0.1", "192.168.1.4", "garbage", None]:
            assert service.lookup(ip) == UNKNOWN_LOCATION
        assert calls == []

    def test_errors_fall_back_to_unknown(self):
        service = _service(lambda request: httpx.Response(503))
        assert service.lookup("8.8.8.8") == UNKNOWN_LOCATION

    def test_non_json_falls_back_to_unknown(self):
        service = _service(lambda request: httpx.Response(200, text="<html>rate limited</html>"))
        assert service.lookup("8.8.8.8") == UNKNOWN_LOCATION

    def test_successes_are_cached(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"country_code": "GB", "city": "London"})

        service = _service(handler)
        service.lookup("8.8.8.8")
        service.lookup("8.8.8.8")
        assert len(calls) == 1

        service.clear()
        service.lookup("8.8.8.8")
        assert len(calls) == 2

    def test_failures_are_not_cached(self):
        responses = iter([httpx.Response(500), httpx.Response(200, json={"country_code": "FR", "city": "Paris"})])
        service = _service(lambda request: next(responses))

        assert service.lookup("8.8.8.8") == UNKNOWN_LOCATION
        assert service.lookup("8.8.8.8") == Location(country="FR", city="Paris")

    def test_malformed_lookup_url_falls_back_to_unknown(self):
        calls = []
        for url in ["https://geo.example.org/{ip}/{fields}", "https://geo.example.org/{}/json"]:
            service = GeolocationService(lookup_url=url, transport=httpx.MockTransport(lambda r: calls.append(r)))
            assert service.lookup("8.8.8.8") == UNKNOWN_LOCATION
        assert calls == []
