"""Location endpoints: resolve, refresh and last-known."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from wanderlens.config.settings import get_settings
from wanderlens.core.dependencies import ServiceContainer, get_service_container
from wanderlens.core.exceptions import NotFoundError, SupersededError
from wanderlens.schemas.base import Envelope
from wanderlens.schemas.location import (
    LocationFailure,
    LocationRead,
    Resolution,
    ResolvedLocation,
    ResolveRequest,
)
from wanderlens.services.geolocation import device_from_report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/location", tags=["location"])


def caller_ip(http_request: Request) -> Optional[str]:
    """First X-Forwarded-For hop when behind a trusted proxy, else the peer address."""
    if get_settings().geolocation.trust_forwarded_for:
        forwarded = http_request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return http_request.client.host if http_request.client else None


def to_location_read(location: ResolvedLocation) -> LocationRead:
    coordinate = location.coordinate
    return LocationRead(
        latitude=coordinate.latitude,
        longitude=coordinate.longitude,
        accuracy_meters=coordinate.accuracy_meters,
        place_name=location.place_name,
        country_code=location.country_code,
        country_name=location.country_name,
        currency_code=location.currency_code,
        source=location.source,
        stale=location.stale,
        resolved_at=location.resolved_at,
    )


def to_envelope(resolution: Optional[Resolution], operation: str) -> Envelope[LocationRead]:
    if resolution is None:
        raise SupersededError(operation)
    if isinstance(resolution, LocationFailure):
        return Envelope[LocationRead](
            status="error",
            data=None,
            error=resolution.kind.value,
            message=resolution.message,
        )
    return Envelope[LocationRead](status="ok", data=to_location_read(resolution))


@router.post("/resolve", response_model=Envelope[LocationRead])
async def resolve_location(
    request: ResolveRequest,
    http_request: Request,
    container: ServiceContainer = Depends(get_service_container),
):
    """
    Resolve the caller's location.

    The client posts what its own geolocation API produced (a position or an
    error code); the server falls back to an estimate from the caller's IP
    address and then to the last-known location for that client.
    """
    resolver = container.get_resolver(
        request.client_id,
        device_from_report(request.device),
        client_ip=caller_ip(http_request),
    )
    # No live device behind an HTTP request, so no watch either
    options = request.options.model_copy(update={"watch": False})
    resolution = await resolver.resolve(options)
    return to_envelope(resolution, "location resolve")


@router.post("/refresh", response_model=Envelope[LocationRead])
async def refresh_location(
    request: ResolveRequest,
    http_request: Request,
    container: ServiceContainer = Depends(get_service_container),
):
    """Force a new acquisition, ignoring any session value."""
    resolver = container.get_resolver(
        request.client_id,
        device_from_report(request.device),
        client_ip=caller_ip(http_request),
    )
    options = request.options.model_copy(update={"watch": False})
    resolution = await resolver.refresh(options)
    return to_envelope(resolution, "location refresh")


@router.get("/last-known", response_model=Envelope[LocationRead])
async def get_last_known(
    client_id: Optional[str] = Query(None),
    container: ServiceContainer = Depends(get_service_container),
):
    location = await container.get_store(client_id).load_last_known()
    if location is None:
        raise NotFoundError("No last-known location stored", details={"client_id": client_id})
    return Envelope[LocationRead](status="ok", data=to_location_read(location))
