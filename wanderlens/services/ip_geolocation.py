"""
IP-based position estimate, used when the device cannot (or may not) report one.
"""

import ipaddress
import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from wanderlens.config.settings import get_settings
from wanderlens.core.exceptions import LocationTimeoutError, NetworkError, ProviderParseError
from wanderlens.schemas.location import Coordinate

logger = logging.getLogger(__name__)

SERVICE_NAME = "ip-geolocation"


class IpGeolocationClient:
    """Best-effort, unauthenticated lookup returning ``{latitude, longitude, ...}`` JSON."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        geo = get_settings().geolocation
        self.http = http_client
        self.url = url or geo.ip_lookup_url
        self.url_template = geo.ip_lookup_url_template
        self.timeout = timeout_seconds or geo.ip_lookup_timeout_seconds

    def lookup_url(self, ip: Optional[str] = None) -> str:
        """Per-address URL for a public ``ip``, else the lookup of our own address."""
        if ip and is_public_address(ip):
            return self.url_template.format(ip=ip)
        return self.url

    async def locate(self, ip: Optional[str] = None) -> Coordinate:
        """
        Estimate a coordinate from an IP address.

        With no usable public ``ip`` the service geolocates the address the
        request comes from, which is only right when this code runs on the
        user's side.

        Raises:
            LocationTimeoutError, NetworkError, ProviderParseError
        """
        try:
            response = await self.http.get(self.lookup_url(ip), timeout=self.timeout)
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

        latitude = data.get("latitude") if isinstance(data, dict) else None
        longitude = data.get("longitude") if isinstance(data, dict) else None
        if not _is_number(latitude) or not _is_number(longitude):
            raise ProviderParseError(SERVICE_NAME, details={"service_name": SERVICE_NAME, "reason": "no coordinates"})

        try:
            coordinate = Coordinate(latitude=latitude, longitude=longitude)
        except ValidationError as e:
            raise ProviderParseError(SERVICE_NAME, details={"service_name": SERVICE_NAME, "reason": str(e)})

        logger.info(
            "IP geolocation estimate obtained",
            extra={"latitude": coordinate.latitude, "longitude": coordinate.longitude},
        )
        return coordinate


def is_public_address(value: str) -> bool:
    try:
        return ipaddress.ip_address(value.strip()).is_global
    except ValueError:
        return False


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
