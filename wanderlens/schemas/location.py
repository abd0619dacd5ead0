from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from wanderlens.config.settings import get_settings
from wanderlens.core.exceptions import ErrorCode
from wanderlens.services.currency import currency_for_country


class Coordinate(BaseModel):
    """A single position reading. Immutable; a new reading replaces the old one."""
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    accuracy_meters: Optional[float] = Field(default=None, ge=0.0)


class LocationSource(str, Enum):
    GPS = "gps"
    IP = "ip"
    LAST_KNOWN = "last_known"


class AutoRequestPolicy(str, Enum):
    ALWAYS = "always"
    ONCE_PER_SESSION = "once_per_session"
    NEVER = "never"


class ResolveOptions(BaseModel):
    enable_high_accuracy: bool = Field(default_factory=lambda: get_settings().geolocation.enable_high_accuracy)
    timeout_ms: int = Field(default_factory=lambda: get_settings().geolocation.device_timeout_ms, ge=1)
    max_cache_age_ms: int = Field(default_factory=lambda: get_settings().geolocation.max_cache_age_ms, ge=0)
    auto_request_policy: AutoRequestPolicy = AutoRequestPolicy.ALWAYS
    watch: bool = False


class ResolvedLocation(BaseModel):
    coordinate: Coordinate
    place_name: Optional[str] = None
    country_code: Optional[str] = None
    country_name: Optional[str] = None
    resolved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: LocationSource = LocationSource.GPS
    stale: bool = False

    @property
    def currency_code(self) -> str:
        return currency_for_country(self.country_code)

    def age_ms(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.resolved_at).total_seconds() * 1000.0


class LocationFailure(BaseModel):
    kind: ErrorCode
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


Resolution = Union[ResolvedLocation, LocationFailure]


class PlaceInfo(BaseModel):
    """Reverse geocoding outcome for one coordinate."""
    place_name: Optional[str] = None
    country_code: Optional[str] = None
    country_name: Optional[str] = None


# ---------------------------------------------------------------------------
# HTTP request/response bodies
# ---------------------------------------------------------------------------

class DeviceReport(BaseModel):
    """What the client's own geolocation API produced: a position or an error code."""
    position: Optional[Coordinate] = None
    error: Optional[ErrorCode] = None


class ResolveRequest(BaseModel):
    client_id: Optional[str] = None
    device: Optional[DeviceReport] = None
    options: ResolveOptions = Field(default_factory=ResolveOptions)


class LocationRead(BaseModel):
    latitude: float
    longitude: float
    accuracy_meters: Optional[float] = None
    place_name: Optional[str] = None
    country_code: Optional[str] = None
    country_name: Optional[str] = None
    currency_code: str
    source: LocationSource
    stale: bool
    resolved_at: datetime
