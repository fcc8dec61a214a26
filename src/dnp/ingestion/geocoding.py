"""Geocoding client, error classification and provider fallback."""

from __future__ import annotations

from typing import Iterable, List, Optional, Protocol

import httpx

from dnp.config import Settings
from dnp.models import Address, GeoPoint
from dnp.utils.logging import get_logger


logger = get_logger(__name__)


SOFIA_BOUNDS = {
    "south": 42.605,
    "west": 23.188,
    "north": 42.83,
    "east": 23.528,
}
SOFIA_CENTER = GeoPoint(lat=42.6977, lng=23.3219)
SOFIA_BBOX = (
    f"{SOFIA_BOUNDS['south']},{SOFIA_BOUNDS['west']},"
    f"{SOFIA_BOUNDS['north']},{SOFIA_BOUNDS['east']}"
)

# Messages containing any of these are query problems, never worth retrying.
NON_RETRYABLE_TERMS = ("syntax", "parse error", "expected", "unexpected", "invalid")


class GeocodingError(RuntimeError):
    """Geocoding request failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider


def is_within_sofia(lat: float, lng: float) -> bool:
    """Inclusive bounding-box check against the Sofia bounds."""
    return (
        SOFIA_BOUNDS["south"] <= lat <= SOFIA_BOUNDS["north"]
        and SOFIA_BOUNDS["west"] <= lng <= SOFIA_BOUNDS["east"]
    )


def is_retryable_error(message: str, status_code: Optional[int] = None) -> bool:
    """Classify a geocoding failure.

    Query problems (syntax, parse, invalid input) are never retried, whatever the
    status. Otherwise 4xx other than 429 is a client error and everything else
    (timeouts, 5xx, 429, network errors) may be retried.
    """
    lowered = (message or "").lower()
    if any(term in lowered for term in NON_RETRYABLE_TERMS):
        return False
    if status_code is not None and 400 <= status_code < 500 and status_code != 429:
        return False
    return True


def is_retryable(exc: BaseException) -> bool:
    return is_retryable_error(str(exc), getattr(exc, "status_code", None))


class GeocodingProvider(Protocol):
    """A geocoder returning candidate addresses for free text."""

    name: str

    def geocode(self, text: str) -> List[Address]:
        ...


class NominatimGeocoder:
    """Nominatim-compatible search client biased to Sofia."""

    name = "nominatim"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.Client] = None,
        limit: int = 3,
    ) -> None:
        self.settings = settings or Settings()
        self._client = client
        self.limit = limit

    def _params(self, text: str) -> dict[str, str | int]:
        return {
            "q": text,
            "format": "jsonv2",
            "limit": self.limit,
            "bounded": 1,
            "viewbox": (
                f"{SOFIA_BOUNDS['west']},{SOFIA_BOUNDS['north']},"
                f"{SOFIA_BOUNDS['east']},{SOFIA_BOUNDS['south']}"
            ),
        }

    def _get(self, client: httpx.Client, text: str) -> httpx.Response:
        return client.get(
            f"{self.settings.geocoder_base_url}/search",
            params=self._params(text),
            headers={"User-Agent": self.settings.geocoder_user_agent},
        )

    def geocode(self, text: str) -> List[Address]:
        try:
            if self._client is not None:
                response = self._get(self._client, text)
            else:
                with httpx.Client(timeout=self.settings.geocoder_timeout_seconds) as client:
                    response = self._get(client, text)
        except httpx.RequestError as exc:
            raise GeocodingError(f"network error: {exc}", provider=self.name) from exc

        if response.status_code >= 400:
            raise GeocodingError(
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                provider=self.name,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise GeocodingError(f"unexpected response body: {exc}", provider=self.name) from exc

        return [_to_address(text, item) for item in payload if _has_coordinates(item)]


def _has_coordinates(item: dict) -> bool:
    return isinstance(item, dict) and "lat" in item and "lon" in item


def _to_address(text: str, item: dict) -> Address:
    return Address(
        original_text=text,
        coordinates=GeoPoint(lat=float(item["lat"]), lng=float(item["lon"])),
        formatted_address=item.get("display_name") or text,
    )


def geocode_with_fallback(
    text: str,
    providers: Iterable[GeocodingProvider],
    max_attempts: int = 2,
    restrict_to_sofia: bool = True,
) -> List[Address]:
    """Geocode through providers in order.

    A non-retryable error ends the chain at once. Retryable errors and empty
    results move on to the next provider, up to ``max_attempts`` providers.
    Returns an empty list when nothing usable was found.
    """
    attempts = 0
    for provider in providers:
        if attempts >= max_attempts:
            break
        attempts += 1

        try:
            results = provider.geocode(text)
        except GeocodingError as exc:
            if not is_retryable(exc):
                logger.warning(
                    "geocode.non_retryable provider=%s status=%s error=%s",
                    provider.name,
                    exc.status_code,
                    exc,
                )
                return []
            logger.warning(
                "geocode.retryable provider=%s status=%s error=%s",
                provider.name,
                exc.status_code,
                exc,
            )
            continue

        if restrict_to_sofia:
            results = [
                address
                for address in results
                if is_within_sofia(address.coordinates.lat, address.coordinates.lng)
            ]
        if results:
            return results

        logger.info("geocode.no_results provider=%s text=%r", provider.name, text[:80])

    return []
