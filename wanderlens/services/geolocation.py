"""
Device geolocation capability.

The device contract mirrors the standard geolocation API: callback based
``get_current_position`` / ``watch_position`` / ``clear_watch`` with error
codes PERMISSION_DENIED, POSITION_UNAVAILABLE and TIMEOUT. ``request_position``
turns one callback round trip into an awaitable with a hard timeout.

Callbacks are expected on the event loop thread.
"""

import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Optional

from wanderlens.core.exceptions import (
    ErrorCode,
    GeolocationUnsupportedError,
    LocationTimeoutError,
    PermissionDeniedError,
    PositionUnavailableError,
    WanderlensException,
)
from wanderlens.schemas.location import Coordinate, DeviceReport

logger = logging.getLogger(__name__)


class PositionErrorCode(IntEnum):
    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3


class GeolocationPositionError(Exception):
    def __init__(self, code: PositionErrorCode, message: str = ""):
        super().__init__(message or code.name)
        self.code = code
        self.message = message or code.name


@dataclass(frozen=True)
class PositionOptions:
    enable_high_accuracy: bool = True
    timeout_ms: int = 10000
    maximum_age_ms: int = 0


PositionCallback = Callable[[Coordinate], None]
PositionErrorCallback = Callable[[GeolocationPositionError], None]


class GeolocationDevice(ABC):
    """A source of position readings (phone GPS, browser, test double)."""

    @abstractmethod
    def get_current_position(
        self,
        on_success: PositionCallback,
        on_error: PositionErrorCallback,
        options: PositionOptions,
    ) -> None:
        pass

    @abstractmethod
    def watch_position(
        self,
        on_success: PositionCallback,
        on_error: PositionErrorCallback,
        options: PositionOptions,
    ) -> int:
        """Start continuous updates; returns a handle for ``clear_watch``."""
        pass

    @abstractmethod
    def clear_watch(self, watch_id: int) -> None:
        pass


def to_exception(error: GeolocationPositionError, timeout_seconds: float = 0.0) -> WanderlensException:
    details = {"device_code": int(error.code)}
    if error.code == PositionErrorCode.PERMISSION_DENIED:
        return PermissionDeniedError(details=details)
    if error.code == PositionErrorCode.TIMEOUT:
        return LocationTimeoutError(timeout_seconds, details=details)
    return PositionUnavailableError(details=details)


async def request_position(device: Optional[GeolocationDevice], options: PositionOptions) -> Coordinate:
    """
    Await a single reading from the device.

    Raises:
        GeolocationUnsupportedError: no device
        PermissionDeniedError / PositionUnavailableError / LocationTimeoutError
    """
    if device is None:
        raise GeolocationUnsupportedError()

    loop = asyncio.get_running_loop()
    future: asyncio.Future = loop.create_future()

    def on_success(coordinate: Coordinate) -> None:
        if not future.done():
            future.set_result(coordinate)

    def on_error(error: GeolocationPositionError) -> None:
        if not future.done():
            future.set_exception(to_exception(error, options.timeout_ms / 1000.0))

    device.get_current_position(on_success, on_error, options)

    timeout_seconds = options.timeout_ms / 1000.0
    try:
        return await asyncio.wait_for(future, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        raise LocationTimeoutError(timeout_seconds)


_REPORTED_ERRORS = {
    ErrorCode.PERMISSION_DENIED: PositionErrorCode.PERMISSION_DENIED,
    ErrorCode.TIMEOUT: PositionErrorCode.TIMEOUT,
}


class ClientReportedGeolocation(GeolocationDevice):
    """
    Device backed by what an HTTP client reported from its own geolocation API.

    The reading (or error) is replayed to every request; a watch reports it
    once since there is no live hardware behind it.
    """

    def __init__(self, report: DeviceReport):
        self.report = report
        self._watch_ids = itertools.count(1)
        self._watches: set[int] = set()

    def _deliver(self, on_success: PositionCallback, on_error: PositionErrorCallback) -> None:
        if self.report.position is not None:
            on_success(self.report.position)
            return
        code = _REPORTED_ERRORS.get(self.report.error, PositionErrorCode.POSITION_UNAVAILABLE)
        on_error(GeolocationPositionError(code, f"client reported {self.report.error}"))

    def get_current_position(self, on_success, on_error, options) -> None:
        self._deliver(on_success, on_error)

    def watch_position(self, on_success, on_error, options) -> int:
        watch_id = next(self._watch_ids)
        self._watches.add(watch_id)
        self._deliver(on_success, on_error)
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        self._watches.discard(watch_id)


def device_from_report(report: Optional[DeviceReport]) -> Optional[GeolocationDevice]:
    """No report, or an explicit ``unsupported`` report, means no device."""
    if report is None or (report.position is None and report.error in (None, ErrorCode.UNSUPPORTED)):
        return None
    return ClientReportedGeolocation(report)
