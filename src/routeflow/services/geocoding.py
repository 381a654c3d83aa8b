"""Reverse geocoding for the start/end locations picked on the map."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

import httpx

from ..config import settings
from ..models.domain import GeoPoint
from .geospatial import clean_coordinate, format_coordinates

logger = logging.getLogger(__name__)


class AddressSource(str, Enum):
    GEOCODER = "geocoder"
    COORDINATES = "coordinates"


@dataclass(frozen=True, slots=True)
class ResolvedLocation:
    point: GeoPoint
    source: AddressSource


class LocationResolver:
    """Turns a clicked coordinate into a ``GeoPoint`` with an address.

    Reverse geocoding is attempted once; if it fails for any reason the
    address becomes the formatted coordinate pair. ``source`` records which
    path produced the address.
    """

    def __init__(
        self,
        base_url: str | None = None,
        user_agent: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url or settings.geocoder_base_url
        self.user_agent = user_agent or settings.geocoder_user_agent
        self.timeout = timeout if timeout is not None else settings.geocoder_timeout_seconds
        self._client = client

    async def _reverse(self, lat: float, lng: float) -> str | None:
        params = {"format": "json", "lat": lat, "lon": lng, "addressdetails": 1}
        headers = {"User-Agent": self.user_agent}
        url = f"{self.base_url}/reverse"
        if self._client is not None:
            response = await self._client.get(url, params=params, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, params=params, headers=headers)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            return None
        name = data.get("display_name")
        return name.strip() if isinstance(name, str) and name.strip() else None

    async def resolve(self, lat: float, lng: float) -> ResolvedLocation:
        """Raises ``ValueError`` for coordinates outside the valid range."""

        lat, lng = clean_coordinate(lat, lng)
        try:
            address = await self._reverse(lat, lng)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(f"Reverse geocoding failed for ({lat}, {lng}): {exc}")
            address = None

        if address:
            logger.info(f"Resolved ({lat}, {lng}) via geocoder")
            return ResolvedLocation(GeoPoint(lat=lat, lng=lng, address=address), AddressSource.GEOCODER)

        logger.info(f"Using coordinate fallback address for ({lat}, {lng})")
        return ResolvedLocation(
            GeoPoint(lat=lat, lng=lng, address=format_coordinates(lat, lng)),
            AddressSource.COORDINATES,
        )
