import httpx
import pytest

from dnp.config import Settings
from dnp.ingestion.geocoding import (
    SOFIA_BBOX,
    GeocodingError,
    NominatimGeocoder,
    geocode_with_fallback,
    is_retryable,
    is_retryable_error,
    is_within_sofia,
)
from dnp.models import Address, GeoPoint


class FakeProvider:
    def __init__(self, name: str, results=None, error: Exception | None = None) -> None:
        self.name = name
        self.results = results or []
        self.error = error
        self.calls = 0

    def geocode(self, text: str) -> list[Address]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.results)


def _address(lat: float, lng: float, text: str = "ул. Шипка 6") -> Address:
    return Address(original_text=text, coordinates=GeoPoint(lat=lat, lng=lng))


def _settings() -> Settings:
    return Settings(
        _env_file=None,
        GEOCODER_BASE_URL="https://geo.test",
        GEOCODER_USER_AGENT="dnp-tests/1.0",
    )


@pytest.mark.parametrize(
    "message, status, expected",
    [
        ("HTTP 500: upstream failure", 500, True),
        ("HTTP 503", 503, True),
        ("HTTP 429: rate limited", 429, True),
        ("request timed out", None, True),
        ("network error: connection reset", None, True),
        ("HTTP 404", 404, False),
        ("HTTP 400", 400, False),
        ("Syntax error in query", 500, False),
        ("Invalid request", None, False),
        ("Parse error near line 1", None, False),
    ],
)
def test_is_retryable_error_table(message, status, expected):
    assert is_retryable_error(message, status) is expected


def test_is_retryable_reads_status_from_exception():
    assert is_retryable(GeocodingError("HTTP 502", status_code=502)) is True
    assert is_retryable(GeocodingError("HTTP 403", status_code=403)) is False


def test_is_within_sofia_bounds_are_inclusive():
    assert SOFIA_BBOX == "42.605,23.188,42.83,23.528"
    assert is_within_sofia(42.6977, 23.3219) is True
    assert is_within_sofia(42.605, 23.188) is True
    assert is_within_sofia(42.83, 23.528) is True
    assert is_within_sofia(42.6, 23.3) is False
    assert is_within_sofia(42.7, 24.7) is False


def test_fallback_stops_on_non_retryable_error():
    first = FakeProvider("primary", error=GeocodingError("Invalid query", status_code=400))
    second = FakeProvider("secondary", results=[_address(42.69, 23.32)])

    assert geocode_with_fallback("ул. Шипка", [first, second]) == []
    assert second.calls == 0


def test_fallback_moves_on_after_retryable_error():
    first = FakeProvider("primary", error=GeocodingError("HTTP 503", status_code=503))
    second = FakeProvider("secondary", results=[_address(42.69, 23.32)])

    results = geocode_with_fallback("ул. Шипка", [first, second])
    assert len(results) == 1
    assert first.calls == 1
    assert second.calls == 1


def test_fallback_moves_on_after_empty_result():
    first = FakeProvider("primary")
    second = FakeProvider("secondary", results=[_address(42.69, 23.32)])
    assert len(geocode_with_fallback("ул. Шипка", [first, second])) == 1


def test_fallback_respects_max_attempts():
    first = FakeProvider("primary", error=GeocodingError("HTTP 503", status_code=503))
    second = FakeProvider("secondary", results=[_address(42.69, 23.32)])

    assert geocode_with_fallback("ул. Шипка", [first, second], max_attempts=1) == []
    assert second.calls == 0


def test_fallback_drops_results_outside_sofia():
    first = FakeProvider("primary", results=[_address(42.14, 24.75, "Plovdiv")])
    second = FakeProvider("secondary", results=[_address(42.69, 23.32), _address(43.2, 27.9)])

    results = geocode_with_fallback("ул. Шипка", [first, second])
    assert [(a.coordinates.lat, a.coordinates.lng) for a in results] == [(42.69, 23.32)]

    unrestricted = geocode_with_fallback("ул. Шипка", [first], restrict_to_sofia=False)
    assert len(unrestricted) == 1


def test_nominatim_geocoder_parses_results():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = request.url
        seen["agent"] = request.headers.get("user-agent")
        return httpx.Response(
            200,
            json=[
                {"lat": "42.6936", "lon": "23.3258", "display_name": "ул. Шипка 6, София"},
                {"display_name": "no coordinates"},
            ],
        )

    client = httpx.Client(transport=httpx.MockTransport(handler))
    geocoder = NominatimGeocoder(_settings(), client=client)
    results = geocoder.geocode("ул. Шипка 6")

    assert len(results) == 1
    assert results[0].coordinates == GeoPoint(lat=42.6936, lng=23.3258)
    assert results[0].formatted_address == "ул. Шипка 6, София"
    assert results[0].original_text == "ул. Шипка 6"
    assert seen["url"].host == "geo.test"
    assert seen["url"].path == "/search"
    assert seen["url"].params["viewbox"] == "23.188,42.83,23.528,42.605"
    assert seen["agent"] == "dnp-tests/1.0"


def test_nominatim_geocoder_raises_on_http_error():
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    geocoder = NominatimGeocoder(_settings(), client=client)

    with pytest.raises(GeocodingError) as excinfo:
        geocoder.geocode("ул. Шипка 6")
    assert excinfo.value.status_code == 503
    assert is_retryable(excinfo.value) is True


def test_nominatim_geocoder_wraps_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    geocoder = NominatimGeocoder(_settings(), client=client)

    with pytest.raises(GeocodingError) as excinfo:
        geocoder.geocode("ул. Шипка 6")
    assert excinfo.value.status_code is None
    assert is_retryable(excinfo.value) is True
