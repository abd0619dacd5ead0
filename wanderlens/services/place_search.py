"""
Nearby-place search.

Flow for one call:

1. cache lookup on the quantized key (a hit returns without network I/O);
2. one sub-query per category of the mode, run concurrently, each trying the
   backends in priority order;
3. after all settle or the total timeout expires: normalize, de-duplicate,
   sort by distance and truncate per category;
4. failures degrade to ``partial``, ``stale`` (last good result) or ``failed``.

Searches are superseded per consumer: a newer call cancels the older one,
whose caller gets ``None``.
"""

import asyncio
import logging
from typing import Optional

from wanderlens.config.settings import get_settings
from wanderlens.core.cancellation import CancellableOperation, OperationRegistry, OperationToken
from wanderlens.core.exceptions import ErrorCode, SearchFailedError, WanderlensException
from wanderlens.core.metrics import record_latency
from wanderlens.schemas.location import Coordinate
from wanderlens.schemas.place import (
    MODE_CATEGORIES,
    NearbyPlacesResult,
    Place,
    PlaceCategory,
    RawPlace,
    ResultSource,
    SearchMode,
    SearchStatus,
)
from wanderlens.services.place_backends import PlacesBackend
from wanderlens.services.place_cache import SearchCache, make_cache_key
from wanderlens.services.place_classifier import normalize_place

logger = logging.getLogger(__name__)

DEFAULT_CONSUMER = "default"
DEDUP_PRECISION = 5


def dedupe_places(places: list[Place], precision: int = DEDUP_PRECISION) -> list[Place]:
    """First occurrence of each (category, rounded coordinate, lowercased name) wins."""
    seen = set()
    unique = []
    for place in places:
        key = (
            place.category,
            round(place.coordinate.latitude, precision),
            round(place.coordinate.longitude, precision),
            place.name.lower(),
        )
        if key in seen:
            continue
        seen.add(key)
        unique.append(place)
    return unique


def rank_by_category(
    places: list[Place],
    categories: tuple[PlaceCategory, ...],
    limit: int,
) -> dict[PlaceCategory, list[Place]]:
    ranked: dict[PlaceCategory, list[Place]] = {category: [] for category in categories}
    for place in places:
        ranked.setdefault(place.category, []).append(place)
    for category, items in ranked.items():
        items.sort(key=lambda p: p.distance_meters)
        ranked[category] = items[:limit]
    return ranked


class NearbyPlaceSearch:
    def __init__(
        self,
        backends: list[PlacesBackend],
        cache: Optional[SearchCache[NearbyPlacesResult]] = None,
        total_timeout_seconds: Optional[float] = None,
        max_results_per_category: Optional[int] = None,
    ):
        places = get_settings().places
        self.backends = backends
        self.cache: SearchCache[NearbyPlacesResult] = cache if cache is not None else SearchCache("places")
        self.total_timeout = total_timeout_seconds or places.total_timeout_seconds
        self.max_results = max_results_per_category or places.max_results_per_category
        self.default_radius = places.default_radius_m
        self.max_radius = places.max_radius_m
        self._operations = OperationRegistry("place-search")

    async def search(
        self,
        coordinate: Coordinate,
        mode: SearchMode = SearchMode.TOURIST,
        radius_meters: Optional[int] = None,
        consumer: Optional[str] = None,
    ) -> Optional[NearbyPlacesResult]:
        """
        Find places around ``coordinate``.

        Returns ``None`` only when a newer search for the same consumer
        superseded this one. Never raises for backend failures.
        """
        radius = min(radius_meters or self.default_radius, self.max_radius)
        key = make_cache_key(coordinate.latitude, coordinate.longitude, radius, mode.value)

        cached = self.cache.get(key)
        if cached is not None:
            if consumer:
                self._operations.cancel(consumer)
            logger.debug("Place search served from cache", extra={"cache_key": key})
            return cached.model_copy(update={"source": ResultSource.CACHE})

        with record_latency("places.search"):
            if consumer:
                return await self._operations.run(
                    consumer,
                    lambda operation, token: self._fetch(coordinate, mode, radius, key, consumer, operation, token),
                )
            operation = CancellableOperation("place-search")
            return await operation.run(
                lambda token: self._fetch(coordinate, mode, radius, key, consumer, operation, token)
            )

    def release(self, consumer: str) -> None:
        """Cancel and forget a consumer's in-flight search."""
        self._operations.release(consumer)

    def reset(self) -> None:
        self._operations.reset()
        self.cache.reset()

    async def _fetch(
        self,
        coordinate: Coordinate,
        mode: SearchMode,
        radius: int,
        key: str,
        consumer: Optional[str],
        operation: CancellableOperation,
        token: OperationToken,
    ) -> NearbyPlacesResult:
        categories = MODE_CATEGORIES[mode]
        settled = await self._run_sub_queries(coordinate, radius, categories)

        failed = [c for c in categories if c not in settled]
        normalized = [
            normalize_place(raw, category, coordinate)
            for category in categories if category in settled
            for raw in settled[category]
        ]
        by_category = rank_by_category(dedupe_places(normalized), categories, self.max_results)
        places = sorted(
            (place for items in by_category.values() for place in items),
            key=lambda p: p.distance_meters,
        )

        last_good_key = consumer or DEFAULT_CONSUMER
        if failed and len(failed) == len(categories):
            result = self._total_failure(last_good_key, failed)
        else:
            result = NearbyPlacesResult(
                status=SearchStatus.PARTIAL if failed else SearchStatus.SUCCESS,
                source=ResultSource.NETWORK,
                places=places,
                by_category=by_category,
                failed_categories=failed,
            )

        if not operation.is_current(token):
            return result

        if result.source == ResultSource.NETWORK:
            if result.status == SearchStatus.SUCCESS:
                self.cache.put(key, result)
            if result.places:
                self.cache.set_last_good(last_good_key, result)

        logger.info(
            "Place search finished",
            extra={
                "mode": mode.value,
                "status": result.status.value,
                "places": len(result.places),
                "failed_categories": [c.value for c in failed],
            },
        )
        return result

    def _total_failure(self, consumer: str, failed: list[PlaceCategory]) -> NearbyPlacesResult:
        last_good = self.cache.get_last_good(consumer)
        if last_good is not None:
            return last_good.model_copy(update={
                "status": SearchStatus.STALE,
                "source": ResultSource.LAST_GOOD,
                "failed_categories": failed,
                "message": "Showing last known places",
            })
        error = SearchFailedError()
        return NearbyPlacesResult(
            status=SearchStatus.FAILED,
            source=ResultSource.NETWORK,
            failed_categories=failed,
            error=error.error_code,
            message=error.message,
        )

    async def _run_sub_queries(
        self,
        coordinate: Coordinate,
        radius: int,
        categories: tuple[PlaceCategory, ...],
    ) -> dict[PlaceCategory, list[RawPlace]]:
        """Results of the sub-queries that succeeded within the total timeout."""
        tasks = {
            category: asyncio.ensure_future(self._query_category(coordinate, radius, category))
            for category in categories
        }
        try:
            done, pending = await asyncio.wait(tasks.values(), timeout=self.total_timeout)
        finally:
            for task in tasks.values():
                if not task.done():
                    task.cancel()

        settled: dict[PlaceCategory, list[RawPlace]] = {}
        for category, task in tasks.items():
            if task not in done:
                logger.warning(
                    f"Place sub-query timed out after {self.total_timeout:g}s",
                    extra={"category": category.value, "error_code": ErrorCode.TIMEOUT.value},
                )
                continue
            error = task.exception()
            if error is None:
                settled[category] = task.result()
            elif isinstance(error, WanderlensException):
                logger.warning(
                    f"Place sub-query failed: {error.message}",
                    extra={"category": category.value, "error_code": error.error_code.value},
                )
            else:
                logger.error(
                    f"Unexpected error in place sub-query: {error}",
                    extra={"category": category.value},
                    exc_info=error,
                )
        return settled

    async def _query_category(
        self,
        coordinate: Coordinate,
        radius: int,
        category: PlaceCategory,
    ) -> list[RawPlace]:
        if not self.backends:
            raise SearchFailedError("No place search backend is configured")

        last_error: Optional[WanderlensException] = None
        for backend in self.backends:
            try:
                return await backend.search_category(
                    coordinate.latitude, coordinate.longitude, radius, category
                )
            except WanderlensException as e:
                logger.info(
                    f"Backend {backend.provider_name} failed for {category.value}",
                    extra={"provider": backend.provider_name, "error_code": e.error_code.value},
                )
                last_error = e
        raise last_error
