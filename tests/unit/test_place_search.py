import asyncio

import httpx
import pytest

from tests.support import OVERPASS_HOSTS, TOKYO, TOMTOM_HOST, osm_node, overpass_category, overpass_query
from wanderlens.core.exceptions import ErrorCode
from wanderlens.schemas.location import Coordinate
from wanderlens.schemas.place import (
    PlaceCategory,
    ResultSource,
    SearchMode,
    SearchStatus,
)
from wanderlens.services.place_backends import OverpassBackend, TomTomBackend, parse_overpass_response
from wanderlens.services.place_cache import SearchCache
from wanderlens.services.place_classifier import normalize_place
from wanderlens.services.place_search import NearbyPlaceSearch, dedupe_places

OSAKA = Coordinate(latitude=34.7025, longitude=135.4959)

FOOD = [
    osm_node(100 + i, round(35.6812 + 0.0002 * (i + 1), 4), 139.7671, amenity="restaurant", cuisine="ramen", name=f"Ramen {i}")
    for i in range(12)
] + [
    # The same shop mapped twice
    {"type": "way", "id": 199, "center": {"lat": 35.6814, "lon": 139.7671}, "tags": {"name": "Ramen 0"}},
]

ELEMENTS = {
    "attraction": [
        osm_node(1, 35.6830, 139.7671, tourism="museum", name="Intermediatheque"),
        {"type": "way", "id": 2, "center": {"lat": 35.6850, "lon": 139.7671}, "tags": {"historic": "castle", "name": "Edo Castle"}},
    ],
    "food": FOOD,
    "free": [osm_node(301, 35.6800, 139.7671, leisure="park", name="Wadakura Fountain Park")],
    "transit": [osm_node(401, 35.6813, 139.7670, railway="station", name="Tokyo")],
    "service": [osm_node(501, 35.6815, 139.7672, amenity="toilets")],
}


def overpass_ok(request):
    return {"elements": ELEMENTS[overpass_category(request)]}


def route_all_mirrors(router, handler):
    for host in OVERPASS_HOSTS:
        router.add(host, handler)


def make_search(http_client, **kwargs) -> NearbyPlaceSearch:
    kwargs.setdefault("cache", SearchCache("places", ttl_seconds=60))
    return NearbyPlaceSearch([OverpassBackend(http_client)], **kwargs)


class TestNearbySearch:
    """Fan-out, normalization and ranking."""

    @pytest.mark.asyncio
    async def test_tourist_mode_ranked_and_capped(self, router, http_client):
        route_all_mirrors(router, overpass_ok)
        search = make_search(http_client)

        result = await search.search(TOKYO, SearchMode.TOURIST)

        assert result.status == SearchStatus.SUCCESS
        assert result.source == ResultSource.NETWORK
        assert result.failed_categories == []
        assert set(result.by_category) == {
            PlaceCategory.ATTRACTION, PlaceCategory.FOOD, PlaceCategory.FREE, PlaceCategory.TRANSIT,
        }
        food = result.by_category[PlaceCategory.FOOD]
        assert [p.name for p in food] == [f"Ramen {i}" for i in range(10)]
        assert all(p.kind == "Ramen" for p in food)
        assert len(result.places) == 14

        distances = [p.distance_meters for p in result.places]
        assert distances == sorted(distances)
        assert result.places[0].name == "Tokyo"
        assert len(router.calls) == 4

    @pytest.mark.asyncio
    async def test_essentials_mode_queries_services(self, router, http_client):
        route_all_mirrors(router, overpass_ok)
        result = await make_search(http_client).search(TOKYO, SearchMode.ESSENTIALS)

        assert set(result.by_category) == {PlaceCategory.SERVICE, PlaceCategory.TRANSIT}
        toilet = result.by_category[PlaceCategory.SERVICE][0]
        assert toilet.name == "Toilet"
        assert toilet.icon == "🚻"

    @pytest.mark.asyncio
    async def test_radius_is_clamped(self, router, http_client):
        route_all_mirrors(router, overpass_ok)
        await make_search(http_client).search(TOKYO, SearchMode.ESSENTIALS, radius_meters=50000)
        assert "(around:10000," in overpass_query(router.calls[0])

    @pytest.mark.asyncio
    async def test_cache_hit_skips_network(self, router, http_client):
        route_all_mirrors(router, overpass_ok)
        search = make_search(http_client)

        first = await search.search(TOKYO, SearchMode.TOURIST)
        calls = len(router.calls)
        nearby = Coordinate(latitude=35.68135, longitude=139.76705)
        second = await search.search(nearby, SearchMode.TOURIST)

        assert len(router.calls) == calls
        assert second.source == ResultSource.CACHE
        assert second.places == first.places

    @pytest.mark.asyncio
    async def test_expired_cache_refetches(self, router, http_client):
        route_all_mirrors(router, overpass_ok)
        now = [0.0]
        search = make_search(http_client, cache=SearchCache("places", ttl_seconds=60, clock=lambda: now[0]))

        await search.search(TOKYO, SearchMode.ESSENTIALS)
        now[0] = 60.0
        result = await search.search(TOKYO, SearchMode.ESSENTIALS)

        assert result.source == ResultSource.NETWORK
        assert len(router.calls) == 4

    def test_injected_cache_is_kept_while_empty(self, http_client):
        cache = SearchCache("places", ttl_seconds=5, clock=lambda: 0.0)
        search = make_search(http_client, cache=cache)
        assert search.cache is cache
        assert search.cache.ttl == 5


class TestDegradation:
    """Partial, stale and failed results."""

    @pytest.mark.asyncio
    async def test_partial_when_one_category_fails(self, router, http_client):
        def food_down(request):
            if overpass_category(request) == "food":
                return httpx.Response(503)
            return overpass_ok(request)

        route_all_mirrors(router, food_down)
        search = make_search(http_client)

        result = await search.search(TOKYO, SearchMode.TOURIST)

        assert result.status == SearchStatus.PARTIAL
        assert result.failed_categories == [PlaceCategory.FOOD]
        assert result.by_category[PlaceCategory.FOOD] == []
        assert len(result.places) == 4
        # Partial results are not cached
        again = await search.search(TOKYO, SearchMode.TOURIST)
        assert again.source == ResultSource.NETWORK

    @pytest.mark.asyncio
    async def test_failed_without_earlier_result(self, router, http_client):
        route_all_mirrors(router, lambda request: httpx.Response(503))

        result = await make_search(http_client).search(TOKYO, SearchMode.TOURIST)

        assert result.status == SearchStatus.FAILED
        assert result.error == ErrorCode.SEARCH_FAILED
        assert result.places == []
        assert len(result.failed_categories) == 4

    @pytest.mark.asyncio
    async def test_stale_last_good_when_everything_fails(self, router, http_client):
        state = {"down": False}

        def flaky(request):
            if state["down"]:
                return httpx.Response(503)
            return overpass_ok(request)

        route_all_mirrors(router, flaky)
        search = make_search(http_client)

        good = await search.search(TOKYO, SearchMode.TOURIST, consumer="alice")
        state["down"] = True
        stale = await search.search(OSAKA, SearchMode.TOURIST, consumer="alice")

        assert stale.status == SearchStatus.STALE
        assert stale.source == ResultSource.LAST_GOOD
        assert stale.places == good.places

        other = await search.search(OSAKA, SearchMode.TOURIST, consumer="bob")
        assert other.status == SearchStatus.FAILED

    @pytest.mark.asyncio
    async def test_total_timeout_fails_slow_categories(self, router, http_client):
        async def transit_hangs(request):
            if overpass_category(request) == "transit":
                await asyncio.sleep(5)
            return overpass_ok(request)

        route_all_mirrors(router, transit_hangs)
        search = make_search(http_client, total_timeout_seconds=0.2)

        result = await search.search(TOKYO, SearchMode.TOURIST)

        assert result.status == SearchStatus.PARTIAL
        assert result.failed_categories == [PlaceCategory.TRANSIT]

    @pytest.mark.asyncio
    async def test_out_of_range_provider_coordinates_are_dropped(self, router, http_client):
        def bad_food(request):
            if overpass_category(request) == "food":
                return {"elements": [
                    osm_node(901, 95.0, 139.7671, amenity="cafe", name="Nowhere Cafe"),
                    osm_node(902, 35.6815, 139.7671, amenity="cafe", name="Blue Bottle"),
                ]}
            return overpass_ok(request)

        route_all_mirrors(router, bad_food)
        result = await make_search(http_client).search(TOKYO, SearchMode.TOURIST)

        assert result.status == SearchStatus.SUCCESS
        assert [p.name for p in result.by_category[PlaceCategory.FOOD]] == ["Blue Bottle"]

    @pytest.mark.asyncio
    async def test_malformed_backend_rows_fall_through_to_next_backend(self, router, http_client):
        router.add(TOMTOM_HOST, lambda request: {"results": ["not a place"]})
        route_all_mirrors(router, overpass_ok)
        search = NearbyPlaceSearch(
            [TomTomBackend(http_client, api_key="test-key"), OverpassBackend(http_client)],
            cache=SearchCache("places", ttl_seconds=60),
        )

        result = await search.search(TOKYO, SearchMode.ESSENTIALS)

        assert result.status == SearchStatus.SUCCESS
        assert len(router.calls_to(TOMTOM_HOST)) == 2
        assert result.by_category[PlaceCategory.TRANSIT][0].name == "Tokyo"

    @pytest.mark.asyncio
    async def test_no_backends(self):
        search = NearbyPlaceSearch([], cache=SearchCache("places", ttl_seconds=60))
        result = await search.search(TOKYO, SearchMode.ESSENTIALS)
        assert result.status == SearchStatus.FAILED


class TestSupersession:
    """Per-consumer cancellation of in-flight searches."""

    @pytest.mark.asyncio
    async def test_newer_search_wins(self, router, http_client):
        entered = asyncio.Event()
        release = asyncio.Event()

        async def tokyo_blocks(request):
            if "35.6812" in overpass_query(request):
                entered.set()
                await release.wait()
            return overpass_ok(request)

        route_all_mirrors(router, tokyo_blocks)
        search = make_search(http_client)

        older = asyncio.create_task(search.search(TOKYO, SearchMode.TOURIST, consumer="alice"))
        await entered.wait()
        newer = await search.search(OSAKA, SearchMode.TOURIST, consumer="alice")

        assert await older is None
        assert newer.status == SearchStatus.SUCCESS

        # The superseded search cached nothing
        release.set()
        calls = len(router.calls)
        again = await search.search(TOKYO, SearchMode.TOURIST, consumer="alice")
        assert again.source == ResultSource.NETWORK
        assert len(router.calls) == calls + 4

    @pytest.mark.asyncio
    async def test_consumers_are_independent(self, router, http_client):
        entered = asyncio.Event()

        async def slow_tokyo(request):
            if "35.6812" in overpass_query(request):
                entered.set()
                await asyncio.sleep(0.05)
            return overpass_ok(request)

        route_all_mirrors(router, slow_tokyo)
        search = make_search(http_client)

        alice = asyncio.create_task(search.search(TOKYO, SearchMode.TOURIST, consumer="alice"))
        await entered.wait()
        bob = await search.search(OSAKA, SearchMode.TOURIST, consumer="bob")

        assert bob is not None
        assert (await alice).status == SearchStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_release_cancels_consumer(self, router, http_client):
        entered = asyncio.Event()

        async def hang(request):
            entered.set()
            await asyncio.sleep(5)

        route_all_mirrors(router, hang)
        search = make_search(http_client)

        pending = asyncio.create_task(search.search(TOKYO, SearchMode.TOURIST, consumer="alice"))
        await entered.wait()
        search.release("alice")

        assert await pending is None

    @pytest.mark.asyncio
    async def test_idle_consumers_hold_no_state(self, router, http_client):
        route_all_mirrors(router, overpass_ok)
        now = [0.0]
        search = make_search(http_client, cache=SearchCache("places", ttl_seconds=60, clock=lambda: now[0]))

        for i in range(50):
            origin = Coordinate(latitude=35.0 + i * 0.01, longitude=139.0)
            await search.search(origin, SearchMode.ESSENTIALS, consumer=f"client-{i}")
        assert len(search._operations) == 0
        assert len(search.cache) == 50

        now[0] = 61.0
        await search.search(OSAKA, SearchMode.ESSENTIALS, consumer="late")

        assert len(search._operations) == 0
        assert len(search.cache) == 1


def test_dedupe_keeps_first_occurrence():
    raw = [
        osm_node(1, 35.68001, 139.76001, amenity="cafe", name="Doutor"),
        osm_node(2, 35.680012, 139.760008, amenity="cafe", name="DOUTOR"),
        osm_node(3, 35.68001, 139.76001, amenity="cafe", name="Tully's"),
    ]
    places = [
        normalize_place(r, PlaceCategory.FOOD, TOKYO)
        for r in parse_overpass_response({"elements": raw})
    ]
    unique = dedupe_places(places)
    assert [p.id for p in unique] == ["osm:node/1", "osm:node/3"]


@pytest.mark.asyncio
async def test_tokyo_tourist_scenario(router, http_client):
    origin = Coordinate(latitude=35.6762, longitude=139.6503)
    scenario = {
        "attraction": [
            osm_node(11, 35.6764, 139.6503, tourism="museum", name="Suginami Animation Museum"),
            osm_node(12, 35.6790, 139.6503, tourism="viewpoint", name="Hill View"),
            osm_node(13, 35.6770, 139.6503, historic="memorial", name="Old Gate"),
        ],
        "food": [
            osm_node(21, 35.6765, 139.6504, amenity="restaurant", cuisine="ramen", name="Menya Kaijin"),
            osm_node(22, 35.6765, 139.6504, amenity="restaurant", cuisine="ramen", name="Menya Kaijin"),
        ],
        "free": [],
        "transit": [osm_node(41, 35.6775, 139.6503, railway="station", name="Koenji")],
    }
    route_all_mirrors(router, lambda request: {"elements": scenario[overpass_category(request)]})

    result = await make_search(http_client).search(origin, SearchMode.TOURIST)

    assert len(result.by_category[PlaceCategory.ATTRACTION]) == 3
    assert len(result.by_category[PlaceCategory.FOOD]) == 1
    assert len(result.by_category[PlaceCategory.TRANSIT]) == 1
    assert [p.name for p in result.places] == [
        "Suginami Animation Museum", "Menya Kaijin", "Old Gate", "Koenji", "Hill View",
    ]
