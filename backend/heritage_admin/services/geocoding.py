from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Optional, Protocol

import httpx

from heritage_admin.core.errors import GeocodingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeocodeResult:
    lat: float
    lng: float
    display_name: Optional[str] = None


class Geocoder(Protocol):
    async def geocode(self, address: str) -> GeocodeResult:
        ...


def _parse_coordinate(raw, lower: float, upper: float) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise GeocodingError("Geocoder returned an invalid coordinate") from exc
    if not math.isfinite(value) or not lower <= value <= upper:
        raise GeocodingError("Geocoder returned an invalid coordinate")
    return value


class NominatimGeocoder:
    """
    OpenStreetMap Nominatim search API (or any compatible endpoint).
    Usage policy requires an identifying User-Agent.
    """

    def __init__(self, url: str, user_agent: str, timeout: float = 10.0):
        self._url = url
        self._user_agent = user_agent
        self._timeout = timeout

    async def geocode(self, address: str) -> GeocodeResult:
        params = {"q": address, "format": "json", "limit": 1}
        headers = {"User-Agent": self._user_agent}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(self._url, params=params, headers=headers)
                resp.raise_for_status()
                results = resp.json()
        except httpx.HTTPError as exc:
            logger.warning("Geocoder request failed for %r: %s", address, exc)
            raise GeocodingError(f"Geocoder request failed: {exc}") from exc
        except ValueError as exc:
            raise GeocodingError("Geocoder returned malformed JSON") from exc

        if not isinstance(results, list) or not results:
            raise GeocodingError("No results for address")

        first = results[0]
        return GeocodeResult(
            lat=_parse_coordinate(first.get("lat"), -90.0, 90.0),
            lng=_parse_coordinate(first.get("lon"), -180.0, 180.0),
            display_name=first.get("display_name"),
        )


@dataclass
class InMemoryGeocoder:
    """Lookup table geocoder for tests and offline development."""

    known: dict = field(default_factory=dict)  # normalized address -> (lat, lng)

    @staticmethod
    def _key(address: str) -> str:
        return " ".join(address.lower().split())

    def add(self, address: str, lat: float, lng: float) -> None:
        self.known[self._key(address)] = (lat, lng)

    async def geocode(self, address: str) -> GeocodeResult:
        hit = self.known.get(self._key(address))
        if hit is None:
            raise GeocodingError("No results for address")
        return GeocodeResult(lat=hit[0], lng=hit[1], display_name=address)
