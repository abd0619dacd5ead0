"""
Point-of-interest backends for the nearby-place search.

- OpenStreetMap Overpass API, tried mirror by mirror
- TomTom Search API (nearby and free-text search), only with an API key

Backends return ``RawPlace`` records; classification and distance ranking
happen in the search layer.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import quote

import httpx

from wanderlens.config.settings import get_settings
from wanderlens.core.exceptions import (
    GeolocationUnsupportedError,
    LocationTimeoutError,
    NetworkError,
    ProviderParseError,
    WanderlensException,
)
from wanderlens.schemas.place import PlaceCategory, RawPlace

logger = logging.getLogger(__name__)


# =============================================================================
# Category filters
# =============================================================================

# Overpass tag filters per category, as (key, value regex) pairs; value None
# matches any value of the key.
OSM_CATEGORY_FILTERS: dict[PlaceCategory, list[tuple[str, Optional[str]]]] = {
    PlaceCategory.ATTRACTION: [
        ("tourism", "museum|attraction|monument|artwork|viewpoint|gallery"),
        ("historic", None),
    ],
    PlaceCategory.FOOD: [("amenity", "restaurant|cafe|fast_food|bar")],
    PlaceCategory.FREE: [("leisure", "park|garden")],
    PlaceCategory.SERVICE: [("amenity", "toilets|atm|pharmacy|police|hospital")],
    PlaceCategory.TRANSIT: [("public_transport", "station"), ("railway", "station")],
}

# TomTom POI category ids per category (categorySet allows at most 10).
TOMTOM_CATEGORY_SETS: dict[PlaceCategory, str] = {
    PlaceCategory.ATTRACTION: "7376,7317,9902",
    PlaceCategory.FOOD: "7315,9376,9379,7372",
    PlaceCategory.FREE: "9362",
    PlaceCategory.SERVICE: "7397,7326,7322,7321",
    PlaceCategory.TRANSIT: "7380,7380002,7380003,7380004,7380005,9942",
}

# Abbreviations in TomTom names that read badly to travellers
TOMTOM_NAME_EXPANSIONS = [
    (re.compile(r"\bPRS\b", re.IGNORECASE), "PRS (Rail Ticket Reservation)"),
    (re.compile(r"\bSO\b"), "Sub Office"),
    (re.compile(r"\bSA\b"), "Station Area"),
]


class PlacesBackend(ABC):
    """
    Abstract base class for POI search providers.

    Implementations raise ``WanderlensException`` subclasses on failure and
    return an empty list only for a genuinely empty area.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the backend is configured and usable."""
        pass

    @abstractmethod
    async def search_category(
        self,
        latitude: float,
        longitude: float,
        radius_meters: int,
        category: PlaceCategory,
    ) -> list[RawPlace]:
        pass


def is_valid_position(lat: Any, lon: Any) -> bool:
    """Numeric and on the globe; provider rows failing this are dropped."""
    if isinstance(lat, bool) or isinstance(lon, bool):
        return False
    if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


# =============================================================================
# Overpass
# =============================================================================

def build_overpass_query(
    latitude: float,
    longitude: float,
    radius_meters: int,
    category: PlaceCategory,
    timeout_seconds: int = 25,
) -> str:
    """Overpass QL union of node/way/relation matches around the point."""
    around = f"(around:{radius_meters},{latitude},{longitude})"
    parts = []
    for key, pattern in OSM_CATEGORY_FILTERS[category]:
        selector = f'["{key}"]' if pattern is None else f'["{key}"~"{pattern}"]'
        parts.append(f"nwr{selector}{around};")
    union = "\n  ".join(parts)
    return f"""
[out:json][timeout:{timeout_seconds}];
(
  {union}
);
out center tags;
"""


def parse_overpass_response(data: Any) -> list[RawPlace]:
    """Nodes carry lat/lon, ways and relations a ``center``; others are skipped."""
    if not isinstance(data, dict) or not isinstance(data.get("elements"), list):
        raise ProviderParseError("overpass", details={"reason": "missing elements"})

    places = []
    for element in data["elements"]:
        if not isinstance(element, dict):
            continue
        if element.get("type") == "node":
            lat, lon = element.get("lat"), element.get("lon")
        else:
            center = element.get("center")
            if not isinstance(center, dict):
                continue
            lat, lon = center.get("lat"), center.get("lon")
        if not is_valid_position(lat, lon):
            continue

        raw_tags = element.get("tags")
        tags = {str(k): str(v) for k, v in raw_tags.items()} if isinstance(raw_tags, dict) else {}
        places.append(RawPlace(
            provider="overpass",
            provider_id=f"{element.get('type', 'node')}/{element.get('id')}",
            latitude=lat,
            longitude=lon,
            tags=tags,
        ))
    return places


class OverpassBackend(PlacesBackend):
    """OpenStreetMap Overpass API; each mirror is tried in order until one answers."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        mirrors: Optional[list[str]] = None,
        mirror_timeout_seconds: Optional[float] = None,
    ):
        places = get_settings().places
        self.http = http_client
        self.mirrors = list(mirrors or places.overpass_mirrors)
        self.mirror_timeout = mirror_timeout_seconds or places.mirror_timeout_seconds
        self.user_agent = get_settings().geolocation.user_agent

    @property
    def provider_name(self) -> str:
        return "overpass"

    def is_available(self) -> bool:
        return bool(self.mirrors)

    async def search_category(self, latitude, longitude, radius_meters, category) -> list[RawPlace]:
        query = build_overpass_query(
            latitude, longitude, radius_meters, category,
            timeout_seconds=max(1, int(self.mirror_timeout)),
        )
        errors = []
        for mirror in self.mirrors:
            try:
                return await self._query_mirror(mirror, query)
            except WanderlensException as e:
                logger.warning(
                    f"Overpass mirror failed: {mirror}",
                    extra={"mirror": mirror, "category": category.value, "error_code": e.error_code.value},
                )
                errors.append({"mirror": mirror, "error": e.error_code.value})

        raise NetworkError("overpass", details={"mirrors": errors})

    async def _query_mirror(self, mirror: str, query: str) -> list[RawPlace]:
        try:
            response = await self.http.post(
                mirror,
                data={"data": query},
                headers={"User-Agent": self.user_agent},
                timeout=self.mirror_timeout,
            )
        except httpx.TimeoutException:
            raise LocationTimeoutError(self.mirror_timeout, details={"mirror": mirror})
        except httpx.HTTPError as e:
            raise NetworkError("overpass", details={"mirror": mirror, "error": str(e)})

        if response.status_code != 200:
            raise NetworkError("overpass", details={"mirror": mirror, "status_code": response.status_code})

        try:
            data = response.json()
        except ValueError:
            raise ProviderParseError("overpass", details={"mirror": mirror})
        return parse_overpass_response(data)


# =============================================================================
# TomTom
# =============================================================================

def clean_tomtom_name(name: str) -> str:
    for pattern, replacement in TOMTOM_NAME_EXPANSIONS:
        name = pattern.sub(replacement, name)
    return name


def parse_tomtom_response(data: Any, fallback_name: Optional[str] = None) -> list[RawPlace]:
    if not isinstance(data, dict):
        raise ProviderParseError("tomtom", details={"reason": "not an object"})

    results = data.get("results") or []
    if not isinstance(results, list):
        raise ProviderParseError("tomtom", details={"reason": "results is not a list"})

    places = []
    for item in results:
        if not isinstance(item, dict):
            raise ProviderParseError("tomtom", details={"reason": "malformed result"})
        position = item.get("position")
        if not isinstance(position, dict):
            continue
        lat, lon = position.get("lat"), position.get("lon")
        # Zero counts as missing
        if not lat or not lon or not is_valid_position(lat, lon):
            continue

        poi = item.get("poi") if isinstance(item.get("poi"), dict) else {}
        address = item.get("address") if isinstance(item.get("address"), dict) else {}
        raw_name = poi.get("name") or address.get("freeformAddress") or fallback_name
        categories = poi.get("categories") if isinstance(poi.get("categories"), list) else []
        codes = [
            c.get("code") for c in (poi.get("classifications") or [])
            if isinstance(c, dict) and c.get("code")
        ]
        distance = item.get("dist")

        places.append(RawPlace(
            provider="tomtom",
            provider_id=str(item.get("id") or f"{lat},{lon}"),
            latitude=lat,
            longitude=lon,
            name=clean_tomtom_name(raw_name) if isinstance(raw_name, str) else None,
            categories=[str(c) for c in categories],
            classification_codes=[str(c) for c in codes],
            distance_meters=distance if isinstance(distance, (int, float)) else None,
        ))
    return places


class TomTomBackend(PlacesBackend):
    """
    TomTom Search API.

    ``nearby`` is the general entry point: with ``category_set`` it calls
    ``nearbySearch``, otherwise free-text ``search/{query}`` restricted to POIs.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        limit: Optional[int] = None,
    ):
        places = get_settings().places
        self.http = http_client
        self.api_key = api_key if api_key is not None else places.tomtom_api_key
        self.base_url = (base_url or places.tomtom_base_url).rstrip("/")
        self.timeout = timeout_seconds or places.mirror_timeout_seconds
        self.limit = limit or places.max_results_per_category
        if not self.api_key:
            logger.debug("TomTom API key not configured")

    @property
    def provider_name(self) -> str:
        return "tomtom"

    def is_available(self) -> bool:
        return bool(self.api_key)

    async def search_category(self, latitude, longitude, radius_meters, category) -> list[RawPlace]:
        return await self.nearby(
            latitude, longitude, radius_meters,
            limit=self.limit,
            category_set=TOMTOM_CATEGORY_SETS[category],
        )

    async def nearby(
        self,
        latitude: float,
        longitude: float,
        radius_meters: int,
        limit: int = 10,
        category_set: Optional[str] = None,
        query: Optional[str] = None,
    ) -> list[RawPlace]:
        if not self.is_available():
            raise GeolocationUnsupportedError(
                "TomTom search is not configured",
                details={"service_name": "tomtom"},
            )

        params: dict[str, Any] = {
            "key": self.api_key,
            "lat": latitude,
            "lon": longitude,
            "radius": radius_meters,
            "limit": limit,
        }
        if category_set:
            url = f"{self.base_url}/nearbySearch/.json"
            params["categorySet"] = category_set
        else:
            url = f"{self.base_url}/search/{quote(query or '', safe='')}.json"
            params["idxSet"] = "POI"

        try:
            response = await self.http.get(url, params=params, timeout=self.timeout)
        except httpx.TimeoutException:
            raise LocationTimeoutError(self.timeout, details={"service_name": "tomtom"})
        except httpx.HTTPError as e:
            raise NetworkError("tomtom", details={"service_name": "tomtom", "error": str(e)})

        if response.status_code != 200:
            raise NetworkError("tomtom", details={"service_name": "tomtom", "status_code": response.status_code})

        try:
            data = response.json()
        except ValueError:
            raise ProviderParseError("tomtom")
        return parse_tomtom_response(data, fallback_name=query or "Nearby place")


def create_backends(http_client: httpx.AsyncClient, order: Optional[list[str]] = None) -> list[PlacesBackend]:
    """Instantiate backends in priority order, skipping unknown or unconfigured ones."""
    registry = {"overpass": OverpassBackend, "tomtom": TomTomBackend}
    backends: list[PlacesBackend] = []
    for name in order or get_settings().places.provider_order:
        backend_cls = registry.get(name.lower())
        if backend_cls is None:
            logger.warning(f"Unknown places provider '{name}' ignored")
            continue
        backend = backend_cls(http_client)
        if backend.is_available():
            backends.append(backend)
    return backends
