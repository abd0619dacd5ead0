"""
Location resolver: device GPS, then IP estimate, then the persisted last-known
location.

One pass per call, strictly sequential:

1. ask the device (bounded by ``timeout_ms``), reverse geocode, persist;
2. on any device failure, or with no device at all, estimate from the IP
   address, reverse geocode, persist;
3. on IP failure, serve the last-known record marked ``stale``;
4. otherwise return a ``LocationFailure``.

A newer ``resolve``/``refresh`` supersedes an older one still running; the
older call returns ``None`` and its result is never committed.
"""

import asyncio
import logging
from typing import Callable, Optional

from wanderlens.core.cancellation import CancellableOperation, OperationToken
from wanderlens.core.exceptions import (
    ErrorCode,
    GeolocationUnsupportedError,
    WanderlensException,
)
from wanderlens.core.metrics import record_latency, record_resolution
from wanderlens.schemas.location import (
    AutoRequestPolicy,
    Coordinate,
    LocationFailure,
    LocationSource,
    Resolution,
    ResolvedLocation,
    ResolveOptions,
)
from wanderlens.services.geolocation import (
    GeolocationDevice,
    GeolocationPositionError,
    PositionOptions,
    request_position,
    to_exception,
)
from wanderlens.services.ip_geolocation import IpGeolocationClient
from wanderlens.services.location_store import LocationStore
from wanderlens.services.reverse_geocoder import ReverseGeocoder

logger = logging.getLogger(__name__)

LocationListener = Callable[[Resolution], None]


def position_options(options: ResolveOptions) -> PositionOptions:
    return PositionOptions(
        enable_high_accuracy=options.enable_high_accuracy,
        timeout_ms=options.timeout_ms,
        maximum_age_ms=options.max_cache_age_ms,
    )


class LocationWatch:
    """
    Continuous updates from ``watch_position``.

    Each new reading supersedes geocoding still pending for the previous one.
    ``cancel`` releases the device handle exactly once.
    """

    def __init__(self, resolver: "LocationResolver", listener: Optional[LocationListener], options: ResolveOptions):
        self.resolver = resolver
        self.listener = listener
        self.options = options
        self.device: Optional[GeolocationDevice] = None
        self.client_ip: Optional[str] = None
        self.watch_id: Optional[int] = None
        self.cancelled = False
        self._operation = CancellableOperation("location-watch")
        self._tasks: set[asyncio.Task] = set()

    def start(self) -> None:
        device = self.resolver.device
        if device is None:
            raise GeolocationUnsupportedError()
        self.device = device
        self.client_ip = self.resolver.client_ip
        self.watch_id = device.watch_position(self._on_position, self._on_error, position_options(self.options))
        logger.debug(f"Started location watch {self.watch_id}")

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_position(self, coordinate: Coordinate) -> None:
        if self.cancelled:
            return
        self._spawn(self._handle(
            lambda token: self.resolver._complete(coordinate, LocationSource.GPS, self._operation, token)
        ))

    def _on_error(self, error: GeolocationPositionError) -> None:
        if self.cancelled:
            return
        device_error = to_exception(error, self.options.timeout_ms / 1000.0)
        logger.info(
            f"Location watch reported an error: {device_error.message}",
            extra={"error_code": device_error.error_code.value},
        )
        self._spawn(self._handle(
            lambda token: self.resolver._fallback(device_error, self._operation, token, self.client_ip)
        ))

    async def _handle(self, step) -> None:
        resolution = await self._operation.run(step)
        if resolution is None or self.cancelled:
            return
        if self.listener is not None:
            self.resolver._notify(self.listener, resolution)

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        self._operation.cancel()
        for task in list(self._tasks):
            task.cancel()
        # The handle belongs to the device that issued it, even if the resolver moved on
        if self.watch_id is not None and self.device is not None:
            self.device.clear_watch(self.watch_id)
            logger.debug(f"Cleared location watch {self.watch_id}")
        self.resolver._forget_watch(self)


class LocationResolver:
    """Resolves "where is the user" for one client."""

    def __init__(
        self,
        device: Optional[GeolocationDevice],
        ip_locator: IpGeolocationClient,
        geocoder: ReverseGeocoder,
        store: Optional[LocationStore] = None,
        client_ip: Optional[str] = None,
    ):
        self.device = device
        self.client_ip = client_ip
        self.ip_locator = ip_locator
        self.geocoder = geocoder
        self.store = store or LocationStore()
        self._operation = CancellableOperation("location-resolve")
        self._listeners: list[LocationListener] = []
        self._watches: set[LocationWatch] = set()
        self._owned_watch: Optional[LocationWatch] = None
        self.current: Optional[ResolvedLocation] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve(self, options: Optional[ResolveOptions] = None) -> Optional[Resolution]:
        options = options or ResolveOptions()
        policy = options.auto_request_policy
        session = self.store.session_location

        if policy == AutoRequestPolicy.ONCE_PER_SESSION and session is not None:
            return session
        if (
            policy == AutoRequestPolicy.ALWAYS
            and session is not None
            and options.max_cache_age_ms > 0
            and session.age_ms() < options.max_cache_age_ms
        ):
            return session
        if policy == AutoRequestPolicy.NEVER:
            return await self._without_acquisition(session)

        result = await self._run(options)
        if result is None:
            return None
        if options.watch and self.device is not None and self._owned_watch is None:
            self._owned_watch = self.watch(None, options)
        return result

    async def refresh(self, options: Optional[ResolveOptions] = None) -> Optional[Resolution]:
        """Force a new acquisition, ignoring the session gate and policy."""
        return await self._run(options or ResolveOptions())

    def subscribe(self, listener: LocationListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def watch(self, listener: Optional[LocationListener], options: Optional[ResolveOptions] = None) -> LocationWatch:
        watch = LocationWatch(self, listener, options or ResolveOptions())
        watch.start()
        self._watches.add(watch)
        return watch

    def close(self) -> None:
        self._operation.cancel()
        for watch in list(self._watches):
            watch.cancel()
        self._owned_watch = None
        self._listeners.clear()

    # ------------------------------------------------------------------
    # Resolution chain
    # ------------------------------------------------------------------

    async def _run(self, options: ResolveOptions) -> Optional[Resolution]:
        with record_latency("location.resolve"):
            client_ip = self.client_ip
            return await self._operation.run(lambda token: self._acquire(options, token, client_ip))

    async def _without_acquisition(self, session: Optional[ResolvedLocation]) -> Resolution:
        if session is not None:
            return session
        last_known = await self.store.load_last_known()
        if last_known is not None:
            record_resolution(LocationSource.LAST_KNOWN.value)
            return last_known
        return LocationFailure(
            kind=ErrorCode.UNSUPPORTED,
            message="Automatic location requests are disabled",
            details={"auto_request_policy": AutoRequestPolicy.NEVER.value},
        )

    async def _acquire(
        self,
        options: ResolveOptions,
        token: OperationToken,
        client_ip: Optional[str] = None,
    ) -> Resolution:
        try:
            coordinate = await request_position(self.device, position_options(options))
        except WanderlensException as device_error:
            logger.info(
                f"Device position unavailable: {device_error.message}",
                extra={"error_code": device_error.error_code.value},
            )
            return await self._fallback(device_error, self._operation, token, client_ip)
        return await self._complete(coordinate, LocationSource.GPS, self._operation, token)

    async def _fallback(
        self,
        device_error: WanderlensException,
        operation: CancellableOperation,
        token: OperationToken,
        client_ip: Optional[str] = None,
    ) -> Resolution:
        try:
            coordinate = await self.ip_locator.locate(client_ip)
        except WanderlensException as ip_error:
            logger.warning(
                f"IP geolocation failed: {ip_error.message}",
                extra={"error_code": ip_error.error_code.value},
            )
        else:
            return await self._complete(coordinate, LocationSource.IP, operation, token)

        last_known = await self.store.load_last_known()
        if last_known is not None:
            if operation.is_current(token):
                record_resolution(LocationSource.LAST_KNOWN.value)
                self.current = last_known
                self._publish(last_known)
            return last_known

        kind = ErrorCode.UNSUPPORTED if device_error.error_code == ErrorCode.UNSUPPORTED else ErrorCode.NETWORK_ERROR
        failure = LocationFailure(
            kind=kind,
            message="Location unavailable",
            details={"device_error": device_error.error_code.value, **device_error.details},
        )
        if operation.is_current(token):
            self._publish(failure)
        return failure

    async def _complete(
        self,
        coordinate: Coordinate,
        source: LocationSource,
        operation: CancellableOperation,
        token: OperationToken,
    ) -> ResolvedLocation:
        info = await self.geocoder.describe(coordinate)
        if source == LocationSource.IP:
            coordinate = Coordinate(latitude=coordinate.latitude, longitude=coordinate.longitude)
        location = ResolvedLocation(
            coordinate=coordinate,
            place_name=info.place_name,
            country_code=info.country_code,
            country_name=info.country_name,
            source=source,
        )
        if not operation.is_current(token):
            return location

        self.current = location
        self.store.set_session_location(location)
        record_resolution(source.value)
        logger.info(
            "Location resolved",
            extra={"source": source.value, "place_name": location.place_name, "country_code": location.country_code},
        )
        await self.store.save_last_known(location)
        self._publish(location)
        return location

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def _publish(self, resolution: Resolution) -> None:
        for listener in list(self._listeners):
            self._notify(listener, resolution)

    @staticmethod
    def _notify(listener: LocationListener, resolution: Resolution) -> None:
        try:
            listener(resolution)
        except Exception as e:
            logger.error(f"Location listener failed: {e}", exc_info=True)

    def _forget_watch(self, watch: LocationWatch) -> None:
        self._watches.discard(watch)
        if self._owned_watch is watch:
            self._owned_watch = None
