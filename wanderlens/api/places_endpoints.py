"""Nearby-place and essential-needs endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from wanderlens.core.dependencies import get_needs_search, get_place_search
from wanderlens.core.exceptions import SupersededError
from wanderlens.schemas.base import Envelope
from wanderlens.schemas.location import Coordinate
from wanderlens.schemas.place import (
    NearbyPlacesResult,
    NeedResult,
    NeedType,
    SearchMode,
    SearchStatus,
)
from wanderlens.services.needs_search import NeedsSearch
from wanderlens.services.place_search import NearbyPlaceSearch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/places", tags=["places"])


@router.get("/nearby", response_model=Envelope[NearbyPlacesResult])
async def get_nearby_places(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    mode: SearchMode = Query(SearchMode.TOURIST),
    radius_m: Optional[int] = Query(None, ge=50, le=50000),
    client_id: Optional[str] = Query(None),
    search: NearbyPlaceSearch = Depends(get_place_search),
):
    """
    Places around a coordinate, nearest first.

    A newer request with the same ``client_id`` supersedes one still running;
    the older request gets 409.
    """
    result = await search.search(
        Coordinate(latitude=latitude, longitude=longitude),
        mode=mode,
        radius_meters=radius_m,
        consumer=client_id,
    )
    if result is None:
        raise SupersededError("place search", details={"client_id": client_id})

    if result.status == SearchStatus.FAILED:
        return Envelope[NearbyPlacesResult](
            status="error",
            data=result,
            error=result.error.value if result.error else None,
            message=result.message,
        )
    return Envelope[NearbyPlacesResult](status="ok", data=result, message=result.message)


@router.get("/needs/{need}", response_model=Envelope[NeedResult])
async def get_nearest_need(
    need: NeedType,
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    client_id: Optional[str] = Query(None),
    search: NeedsSearch = Depends(get_needs_search),
):
    result = await search.search(
        Coordinate(latitude=latitude, longitude=longitude),
        need,
        consumer=client_id,
    )
    if result is None:
        raise SupersededError("needs search", details={"client_id": client_id})

    if result.status == SearchStatus.FAILED:
        return Envelope[NeedResult](
            status="error",
            data=result,
            error=result.error.value if result.error else None,
            message=result.message,
        )
    return Envelope[NeedResult](status="ok", data=result, message=result.message)
