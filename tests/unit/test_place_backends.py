import httpx
import pytest

from tests.support import OVERPASS_HOSTS, TOMTOM_HOST, osm_node, overpass_query
from wanderlens.core.exceptions import (
    GeolocationUnsupportedError,
    NetworkError,
    ProviderParseError,
)
from wanderlens.schemas.place import PlaceCategory
from wanderlens.services.place_backends import (
    OverpassBackend,
    TomTomBackend,
    build_overpass_query,
    clean_tomtom_name,
    create_backends,
    parse_overpass_response,
    parse_tomtom_response,
)


def test_overpass_query_covers_all_element_types():
    query = build_overpass_query(35.68, 139.76, 1000, PlaceCategory.ATTRACTION)
    assert '[out:json]' in query
    assert 'nwr["tourism"~"museum|attraction|monument|artwork|viewpoint|gallery"](around:1000,35.68,139.76);' in query
    assert 'nwr["historic"](around:1000,35.68,139.76);' in query
    assert "out center tags;" in query


def test_parse_overpass_nodes_and_way_centers():
    places = parse_overpass_response({"elements": [
        osm_node(1, 35.1, 139.1, name="Shrine"),
        {"type": "way", "id": 2, "center": {"lat": 35.2, "lon": 139.2}, "tags": {"name": "Park"}},
        {"type": "relation", "id": 3, "tags": {"name": "No center"}},
    ]})
    assert [p.provider_id for p in places] == ["node/1", "way/2"]
    assert places[1].latitude == 35.2
    assert places[0].tags == {"name": "Shrine"}


def test_parse_overpass_requires_elements():
    with pytest.raises(ProviderParseError):
        parse_overpass_response({"remark": "runtime error"})


def test_parse_overpass_skips_unusable_elements():
    places = parse_overpass_response({"elements": [
        osm_node(1, 95.0, 139.76, amenity="cafe"),
        osm_node(2, 35.68, 181.0, amenity="cafe"),
        osm_node(3, True, 139.76, amenity="cafe"),
        {"type": "way", "id": 4, "center": [35.68, 139.76]},
        {"type": "node", "id": 5, "lat": 35.68, "lon": 139.76, "tags": ["bad"]},
    ]})
    assert [p.provider_id for p in places] == ["node/5"]
    assert places[0].tags == {}


@pytest.mark.parametrize("body", [
    {"results": ["not a place"]},
    {"results": [None]},
    {"results": {"lat": 1}},
])
def test_parse_tomtom_rejects_malformed_results(body):
    with pytest.raises(ProviderParseError):
        parse_tomtom_response(body)


def test_parse_tomtom_skips_out_of_range_positions():
    places = parse_tomtom_response({"results": [
        {"id": "x", "position": {"lat": -91.0, "lon": 10.0}, "poi": {"name": "Off the map"}},
        {"id": "y", "position": "35.68,139.76", "poi": {"name": "String position"}},
        {"id": "z", "position": {"lat": 35.68, "lon": 139.76}, "poi": "not an object"},
    ]}, fallback_name="Nearby place")
    assert [(p.provider_id, p.name) for p in places] == [("z", "Nearby place")]


def test_parse_tomtom_results():
    places = parse_tomtom_response({"results": [
        {
            "id": "abc",
            "dist": 120.5,
            "position": {"lat": 28.61, "lon": 77.21},
            "poi": {
                "name": "Connaught Place SO",
                "categories": ["post office"],
                "classifications": [{"code": "POST_OFFICE"}],
            },
        },
        {"id": "zero", "position": {"lat": 0, "lon": 77.2}, "poi": {"name": "Null island"}},
        {"id": "addr", "position": {"lat": 28.62, "lon": 77.22}, "address": {"freeformAddress": "Janpath 1"}},
    ]}, fallback_name="ATM")
    assert [p.provider_id for p in places] == ["abc", "addr"]
    assert places[0].name == "Connaught Place Sub Office"
    assert places[0].distance_meters == 120.5
    assert places[0].classification_codes == ["POST_OFFICE"]
    assert places[1].name == "Janpath 1"


def test_clean_tomtom_name():
    assert clean_tomtom_name("New Delhi PRS") == "New Delhi PRS (Rail Ticket Reservation)"
    assert clean_tomtom_name("Kashmere Gate SA") == "Kashmere Gate Station Area"
    assert clean_tomtom_name("SOHO House") == "SOHO House"


@pytest.mark.asyncio
async def test_overpass_tries_mirrors_in_order(router, http_client):
    router.add(OVERPASS_HOSTS[0], lambda request: httpx.Response(504))
    router.add(OVERPASS_HOSTS[1], lambda request: {"elements": [osm_node(7, 35.0, 139.0, amenity="cafe")]})
    backend = OverpassBackend(http_client)

    places = await backend.search_category(35.0, 139.0, 500, PlaceCategory.FOOD)

    assert [p.provider_id for p in places] == ["node/7"]
    assert len(router.calls_to(OVERPASS_HOSTS[0])) == 1
    assert len(router.calls_to(OVERPASS_HOSTS[1])) == 1
    assert router.calls_to(OVERPASS_HOSTS[2]) == []
    assert '"amenity"~"restaurant|cafe|fast_food|bar"' in overpass_query(router.calls[0])


@pytest.mark.asyncio
async def test_overpass_all_mirrors_failing(router, http_client):
    for host in OVERPASS_HOSTS:
        router.add(host, lambda request: httpx.Response(429))
    backend = OverpassBackend(http_client)

    with pytest.raises(NetworkError) as exc_info:
        await backend.search_category(35.0, 139.0, 500, PlaceCategory.FOOD)
    assert len(exc_info.value.details["mirrors"]) == 3


@pytest.mark.asyncio
async def test_overpass_malformed_mirror_is_skipped(router, http_client):
    router.add(OVERPASS_HOSTS[0], lambda request: httpx.Response(200, text="<html>busy</html>"))
    router.add(OVERPASS_HOSTS[1], lambda request: {"elements": []})
    places = await OverpassBackend(http_client).search_category(35.0, 139.0, 500, PlaceCategory.FREE)
    assert places == []


@pytest.mark.asyncio
async def test_tomtom_nearby_search_request(router, http_client):
    router.add(TOMTOM_HOST, lambda request: {"results": []})
    backend = TomTomBackend(http_client, api_key="secret")

    await backend.search_category(35.0, 139.0, 800, PlaceCategory.SERVICE)

    request = router.calls[0]
    assert request.url.path == "/search/2/nearbySearch/.json"
    assert request.url.params["categorySet"] == "7397,7326,7322,7321"
    assert request.url.params["radius"] == "800"
    assert request.url.params["key"] == "secret"


@pytest.mark.asyncio
async def test_tomtom_text_search_request(router, http_client):
    router.add(TOMTOM_HOST, lambda request: {"results": []})
    backend = TomTomBackend(http_client, api_key="secret")

    await backend.nearby(35.0, 139.0, 2000, limit=10, query="public toilet")

    request = router.calls[0]
    assert request.url.raw_path.startswith(b"/search/2/search/public%20toilet.json")
    assert request.url.params["idxSet"] == "POI"


@pytest.mark.asyncio
async def test_tomtom_without_key_is_unsupported(http_client):
    backend = TomTomBackend(http_client, api_key="")
    assert not backend.is_available()
    with pytest.raises(GeolocationUnsupportedError):
        await backend.nearby(35.0, 139.0, 500, category_set="7397")


def test_create_backends_skips_unconfigured(http_client):
    backends = create_backends(http_client, order=["tomtom", "overpass", "bogus"])
    assert [b.provider_name for b in backends] == ["overpass"]
