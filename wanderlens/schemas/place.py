from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from wanderlens.core.exceptions import ErrorCode
from wanderlens.schemas.location import Coordinate


class PlaceCategory(str, Enum):
    ATTRACTION = "attraction"
    FOOD = "food"
    FREE = "free"
    SERVICE = "service"
    TRANSIT = "transit"


class SearchMode(str, Enum):
    TOURIST = "tourist"
    ESSENTIALS = "essentials"
    ALL = "all"


MODE_CATEGORIES: dict[SearchMode, tuple[PlaceCategory, ...]] = {
    SearchMode.TOURIST: (
        PlaceCategory.ATTRACTION,
        PlaceCategory.FOOD,
        PlaceCategory.FREE,
        PlaceCategory.TRANSIT,
    ),
    SearchMode.ESSENTIALS: (PlaceCategory.SERVICE, PlaceCategory.TRANSIT),
    SearchMode.ALL: tuple(PlaceCategory),
}


class NeedType(str, Enum):
    TOILET = "toilet"
    GROCERY = "grocery"
    ATM = "atm"
    PHARMACY = "pharmacy"
    POLICE = "police"
    HOSPITAL = "hospital"
    TRANSPORT = "transport"
    EXIT = "exit"


class SearchStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    STALE = "stale"
    FAILED = "failed"


class ResultSource(str, Enum):
    NETWORK = "network"
    CACHE = "cache"
    LAST_GOOD = "last_good"


class RawPlace(BaseModel):
    """A provider result before normalization."""
    provider: str
    provider_id: str
    latitude: float
    longitude: float
    tags: dict[str, str] = Field(default_factory=dict)
    name: Optional[str] = None
    categories: list[str] = Field(default_factory=list)
    classification_codes: list[str] = Field(default_factory=list)
    distance_meters: Optional[float] = None


class Place(BaseModel):
    id: str
    name: str
    category: PlaceCategory
    coordinate: Coordinate
    distance_meters: float
    distance_label: str
    icon: str
    kind: str
    provider: str


class NearbyPlacesResult(BaseModel):
    status: SearchStatus
    source: ResultSource
    places: list[Place] = Field(default_factory=list)
    by_category: dict[PlaceCategory, list[Place]] = Field(default_factory=dict)
    failed_categories: list[PlaceCategory] = Field(default_factory=list)
    error: Optional[ErrorCode] = None
    message: Optional[str] = None
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class NeedResult(BaseModel):
    need: NeedType
    radius_meters: int
    status: SearchStatus
    source: ResultSource
    places: list[Place] = Field(default_factory=list)
    error: Optional[ErrorCode] = None
    message: Optional[str] = None
