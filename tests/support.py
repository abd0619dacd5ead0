"""Test doubles shared by the unit and integration suites."""
import inspect
from typing import Callable, Optional
from urllib.parse import parse_qs

import httpx

from wanderlens.schemas.location import Coordinate
from wanderlens.services.geolocation import (
    GeolocationDevice,
    GeolocationPositionError,
    PositionErrorCode,
)

TOKYO = Coordinate(latitude=35.6812, longitude=139.7671, accuracy_meters=12.0)

NOMINATIM_TOKYO = {
    "display_name": "Marunouchi, Chiyoda, Tokyo, 100-0005, Japan",
    "address": {
        "suburb": "Marunouchi",
        "city": "Tokyo",
        "country": "Japan",
        "country_code": "jp",
    },
}

NOMINATIM_HOST = "nominatim.openstreetmap.org"
IPAPI_HOST = "ipapi.co"
OVERPASS_HOSTS = ["overpass-api.de", "overpass.kumi.systems", "overpass.private.coffee"]
TOMTOM_HOST = "api.tomtom.com"


class FakeDevice(GeolocationDevice):
    """Scriptable device: answers with a position, an error code, or not at all."""

    def __init__(
        self,
        position: Optional[Coordinate] = None,
        error_code: Optional[PositionErrorCode] = None,
        respond: bool = True,
    ):
        self.position = position
        self.error_code = error_code
        self.respond = respond
        self.requests = 0
        self.watches: dict[int, tuple] = {}
        self.cleared: list[int] = []
        self._next_id = 1

    def get_current_position(self, on_success, on_error, options):
        self.requests += 1
        if not self.respond:
            return
        if self.error_code is not None:
            on_error(GeolocationPositionError(self.error_code))
        else:
            on_success(self.position)

    def watch_position(self, on_success, on_error, options):
        watch_id = self._next_id
        self._next_id += 1
        self.watches[watch_id] = (on_success, on_error)
        return watch_id

    def clear_watch(self, watch_id):
        self.cleared.append(watch_id)
        self.watches.pop(watch_id, None)

    def emit(self, coordinate: Coordinate) -> None:
        for on_success, _ in list(self.watches.values()):
            on_success(coordinate)

    def emit_error(self, code: PositionErrorCode) -> None:
        for _, on_error in list(self.watches.values()):
            on_error(GeolocationPositionError(code))


class Router:
    """
    ``httpx.MockTransport`` handler dispatching on host.

    Handlers take the request and return a ``Response``, a JSON-able value,
    or an awaitable of either. Unrouted hosts fail with ``ConnectError``.
    """

    def __init__(self):
        self.handlers: dict[str, Callable] = {}
        self.calls: list[httpx.Request] = []

    def add(self, host: str, handler: Callable) -> "Router":
        self.handlers[host] = handler
        return self

    def calls_to(self, host: str) -> list[httpx.Request]:
        return [r for r in self.calls if r.url.host == host]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        handler = self.handlers.get(request.url.host)
        if handler is None:
            raise httpx.ConnectError(f"no route to {request.url.host}", request=request)
        result = handler(request)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json=result)


def overpass_query(request: httpx.Request) -> str:
    return parse_qs(request.content.decode())["data"][0]


def overpass_category(request: httpx.Request) -> str:
    query = overpass_query(request)
    if '"tourism"' in query:
        return "attraction"
    if '"leisure"' in query:
        return "free"
    if '"public_transport"' in query:
        return "transit"
    if "toilets" in query:
        return "service"
    return "food"


def osm_node(node_id: int, lat: float, lon: float, **tags) -> dict:
    return {"type": "node", "id": node_id, "lat": lat, "lon": lon, "tags": tags}

