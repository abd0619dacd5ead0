"""
Reverse geocoding against a Nominatim-compatible ``/reverse`` endpoint.
"""

import logging
from typing import Any, Optional

import httpx

from wanderlens.config.settings import get_settings
from wanderlens.core.exceptions import (
    LocationTimeoutError,
    NetworkError,
    ProviderParseError,
    WanderlensException,
)
from wanderlens.schemas.location import Coordinate, PlaceInfo

logger = logging.getLogger(__name__)

SERVICE_NAME = "reverse-geocoding"

# Most specific first; the first present component names the place.
LOCALITY_FIELDS = ("neighbourhood", "suburb", "town", "city")


class ReverseGeocoder:
    """Turns a coordinate into a display name and ISO country."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        zoom: Optional[int] = None,
        user_agent: Optional[str] = None,
    ):
        geo = get_settings().geolocation
        self.http = http_client
        self.url = url or geo.reverse_geocode_url
        self.timeout = timeout_seconds or geo.reverse_geocode_timeout_seconds
        self.zoom = geo.reverse_geocode_zoom if zoom is None else zoom
        self.user_agent = user_agent or geo.user_agent

    async def lookup(self, coordinate: Coordinate) -> PlaceInfo:
        """
        Query the geocoder.

        Raises:
            LocationTimeoutError, NetworkError, ProviderParseError
        """
        params = {
            "format": "json",
            "lat": coordinate.latitude,
            "lon": coordinate.longitude,
            "zoom": self.zoom,
            "addressdetails": 1,
        }
        try:
            response = await self.http.get(
                self.url,
                params=params,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
            )
        except httpx.TimeoutException:
            raise LocationTimeoutError(self.timeout, details={"service_name": SERVICE_NAME})
        except httpx.HTTPError as e:
            raise NetworkError(SERVICE_NAME, details={"service_name": SERVICE_NAME, "error": str(e)})

        if response.status_code != 200:
            raise NetworkError(
                SERVICE_NAME,
                details={"service_name": SERVICE_NAME, "status_code": response.status_code},
            )

        try:
            data = response.json()
        except ValueError:
            raise ProviderParseError(SERVICE_NAME)
        if not isinstance(data, dict):
            raise ProviderParseError(SERVICE_NAME)

        return build_place_info(data)

    async def describe(self, coordinate: Coordinate) -> PlaceInfo:
        """Like ``lookup`` but never fails: errors give an empty ``PlaceInfo``."""
        try:
            return await self.lookup(coordinate)
        except WanderlensException as e:
            logger.warning(
                f"Reverse geocoding failed: {e.message}",
                extra={"error_code": e.error_code.value, "details": e.details},
            )
            return PlaceInfo()


def build_place_info(data: dict[str, Any]) -> PlaceInfo:
    address = data.get("address")
    if not isinstance(address, dict) or not address:
        return PlaceInfo()

    parts = []
    locality = next((address[f] for f in LOCALITY_FIELDS if address.get(f)), None)
    if locality:
        parts.append(locality)
    if address.get("country"):
        parts.append(address["country"])

    place_name = ", ".join(parts)
    if not place_name and isinstance(data.get("display_name"), str):
        place_name = ",".join(data["display_name"].split(",")[:2])

    country_code = address.get("country_code")
    return PlaceInfo(
        place_name=place_name or None,
        country_code=country_code.upper() if isinstance(country_code, str) and country_code else None,
        country_name=address.get("country") or None,
    )
