"""
Essential-needs search: the nearest toilet, ATM, pharmacy, police station,
hospital, grocery, public transport or exit route.

Backed by TomTom only. Same cache TTL, total timeout and per-consumer
supersession as the nearby-place search; top five results.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from wanderlens.config.settings import get_settings
from wanderlens.core.cancellation import CancellableOperation, OperationRegistry, OperationToken
from wanderlens.core.exceptions import ErrorCode, LocationTimeoutError, WanderlensException
from wanderlens.core.metrics import record_latency
from wanderlens.schemas.location import Coordinate
from wanderlens.schemas.place import (
    NeedResult,
    NeedType,
    Place,
    PlaceCategory,
    RawPlace,
    ResultSource,
    SearchStatus,
)
from wanderlens.services.place_backends import TomTomBackend
from wanderlens.services.place_cache import SearchCache, make_cache_key
from wanderlens.services.place_classifier import normalize_place

logger = logging.getLogger(__name__)

RESULT_LIMIT = 5
TRANSPORT_FETCH_LIMIT = 50
DEDUP_PRECISION = 4


@dataclass(frozen=True)
class NeedConfig:
    label: str
    icon: str
    category: PlaceCategory
    category_set: Optional[str] = None
    query_text: Optional[str] = None


NEEDS: dict[NeedType, NeedConfig] = {
    NeedType.TOILET: NeedConfig("Toilet", "🚻", PlaceCategory.SERVICE, query_text="public toilet"),
    NeedType.GROCERY: NeedConfig("Grocery", "🛒", PlaceCategory.SERVICE, query_text="supermarket grocery"),
    NeedType.ATM: NeedConfig("ATM", "🏧", PlaceCategory.SERVICE, category_set="7397"),
    NeedType.PHARMACY: NeedConfig("Pharmacy", "💊", PlaceCategory.SERVICE, category_set="7326"),
    NeedType.POLICE: NeedConfig("Police", "👮", PlaceCategory.SERVICE, category_set="7322"),
    NeedType.HOSPITAL: NeedConfig("Hospital", "🏥", PlaceCategory.SERVICE, category_set="7321"),
    NeedType.TRANSPORT: NeedConfig(
        "Public Transport", "🚉", PlaceCategory.TRANSIT,
        category_set="7380,7380002,7380003,7380004,7380005,9942",
        query_text="metro subway underground mrt tube monorail railway train station tram lrt",
    ),
    NeedType.EXIT: NeedConfig(
        "Exit Route", "🚪", PlaceCategory.TRANSIT,
        category_set="7380,7380004,7380005,9942,7324",
    ),
}

RAIL_KEYWORDS = ["rail", "railway", "train", "metro", "subway", "monorail", "station",
                 "underground", "mrt", "tube", "tram", "lrt"]
BUS_KEYWORDS = ["bus", "bus stop", "bus station", "bus terminus"]
NEGATIVE_KEYWORDS = ["post office", "postal", "india post", "courier", "sub office", "prs", "prs centre"]
RAIL_CODES = {"7380002", "7380003", "7380004", "7380005", "9942"}
BUS_CODES = {"7380001"}


def need_radius(need: NeedType) -> int:
    if need in (NeedType.HOSPITAL, NeedType.POLICE):
        return 5000
    if need == NeedType.TRANSPORT:
        return 8000
    return 2000


def dedupe_raw(items: list[RawPlace]) -> list[RawPlace]:
    seen = set()
    unique = []
    for item in items:
        key = (
            round(item.latitude, DEDUP_PRECISION),
            round(item.longitude, DEDUP_PRECISION),
            (item.name or "").lower(),
        )
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def transport_score(place: Place, raw: RawPlace) -> tuple[float, bool]:
    """Rail beats bus beats anything else; distance costs up to 400 points."""
    hay = f"{place.name} {' '.join(raw.categories)}".lower()
    codes = set(raw.classification_codes)

    is_negative = any(k in hay for k in NEGATIVE_KEYWORDS)
    is_rail = bool(codes & RAIL_CODES) or any(k in hay for k in RAIL_KEYWORDS)
    is_bus = bool(codes & BUS_CODES) or any(k in hay for k in BUS_KEYWORDS)

    base = 500
    if is_rail:
        base = 1100
    elif is_bus:
        base = 650
    score = base - min(place.distance_meters / 5, 400) - (1500 if is_negative else 0)
    return score, is_negative


def rank_transport(pairs: list[tuple[Place, RawPlace]]) -> list[Place]:
    scored = [(place, *transport_score(place, raw)) for place, raw in pairs]
    kept = [s for s in scored if not s[2]] or scored
    kept.sort(key=lambda s: (-s[1], s[0].distance_meters))
    return [s[0] for s in kept]


class NeedsSearch:
    def __init__(
        self,
        tomtom: TomTomBackend,
        cache: Optional[SearchCache[NeedResult]] = None,
        total_timeout_seconds: Optional[float] = None,
    ):
        self.tomtom = tomtom
        self.cache: SearchCache[NeedResult] = cache if cache is not None else SearchCache("needs")
        self.total_timeout = total_timeout_seconds or get_settings().places.total_timeout_seconds
        self._operations = OperationRegistry("needs-search")

    async def search(
        self,
        coordinate: Coordinate,
        need: NeedType,
        consumer: Optional[str] = None,
    ) -> Optional[NeedResult]:
        radius = need_radius(need)
        if not self.tomtom.is_available():
            return NeedResult(
                need=need,
                radius_meters=radius,
                status=SearchStatus.FAILED,
                source=ResultSource.NETWORK,
                error=ErrorCode.UNSUPPORTED,
                message="Essential-needs search is not configured",
            )

        key = make_cache_key(coordinate.latitude, coordinate.longitude, radius, f"need:{need.value}")
        cached = self.cache.get(key)
        if cached is not None:
            if consumer:
                self._operations.cancel(consumer)
            return cached.model_copy(update={"source": ResultSource.CACHE})

        with record_latency("needs.search"):
            if consumer:
                return await self._operations.run(
                    consumer,
                    lambda operation, token: self._fetch(coordinate, need, radius, key, operation, token),
                )
            operation = CancellableOperation("needs-search")
            return await operation.run(
                lambda token: self._fetch(coordinate, need, radius, key, operation, token)
            )

    def reset(self) -> None:
        self._operations.reset()
        self.cache.reset()

    async def _fetch(
        self,
        coordinate: Coordinate,
        need: NeedType,
        radius: int,
        key: str,
        operation: CancellableOperation,
        token: OperationToken,
    ) -> NeedResult:
        config = NEEDS[need]
        try:
            places = await asyncio.wait_for(
                self._query(coordinate, need, radius), timeout=self.total_timeout
            )
        except asyncio.TimeoutError:
            return self._failure(need, radius, LocationTimeoutError(self.total_timeout))
        except WanderlensException as e:
            return self._failure(need, radius, e)

        result = NeedResult(
            need=need,
            radius_meters=radius,
            status=SearchStatus.SUCCESS,
            source=ResultSource.NETWORK,
            places=places,
            message=None if places else f"No {config.label.lower()} found within {radius / 1000:g}km",
        )
        if operation.is_current(token):
            self.cache.put(key, result)
        return result

    def _failure(self, need: NeedType, radius: int, error: WanderlensException) -> NeedResult:
        logger.warning(
            f"Needs search failed: {error.message}",
            extra={"need": need.value, "error_code": error.error_code.value},
        )
        return NeedResult(
            need=need,
            radius_meters=radius,
            status=SearchStatus.FAILED,
            source=ResultSource.NETWORK,
            error=error.error_code,
            message="Search service is busy. Please try again.",
        )

    async def _query(self, coordinate: Coordinate, need: NeedType, radius: int) -> list[Place]:
        config = NEEDS[need]
        lat, lon = coordinate.latitude, coordinate.longitude

        if need == NeedType.TRANSPORT:
            outcomes = await asyncio.gather(
                self.tomtom.nearby(lat, lon, radius, limit=TRANSPORT_FETCH_LIMIT, category_set=config.category_set),
                self.tomtom.nearby(lat, lon, radius, limit=TRANSPORT_FETCH_LIMIT, query=config.query_text),
                return_exceptions=True,
            )
            errors = [o for o in outcomes if isinstance(o, BaseException)]
            if len(errors) == len(outcomes):
                raise errors[0]
            for error in errors:
                if not isinstance(error, WanderlensException):
                    raise error
            raws = dedupe_raw([raw for o in outcomes if not isinstance(o, BaseException) for raw in o])
        else:
            raws = await self.tomtom.nearby(
                lat, lon, radius,
                limit=10,
                category_set=config.category_set,
                query=config.query_text,
            )

        pairs = [(self._to_place(raw, config, coordinate), raw) for raw in raws]
        if need == NeedType.TRANSPORT:
            ranked = rank_transport(pairs)
        else:
            ranked = sorted((p for p, _ in pairs), key=lambda p: p.distance_meters)
        return ranked[:RESULT_LIMIT]

    @staticmethod
    def _to_place(raw: RawPlace, config: NeedConfig, origin: Coordinate) -> Place:
        place = normalize_place(raw, config.category, origin, use_provider_distance=True)
        return place.model_copy(update={"kind": config.label, "icon": config.icon})
