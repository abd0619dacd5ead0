"""
Dependency injection setup for FastAPI.
Provides dependency providers for the location and place services with
lifecycle management.
"""

import asyncio
import logging
from collections import OrderedDict
from typing import Any, Optional

import httpx
from fastapi import Depends, HTTPException, Request

from wanderlens.config.settings import get_settings
from wanderlens.services.geolocation import GeolocationDevice
from wanderlens.services.ip_geolocation import IpGeolocationClient
from wanderlens.services.location_resolver import LocationResolver
from wanderlens.services.location_store import (
    KeyValueStore,
    LocationStore,
    RedisKeyValueStore,
    create_key_value_store,
)
from wanderlens.services.needs_search import NeedsSearch
from wanderlens.services.place_backends import TomTomBackend, create_backends
from wanderlens.services.place_search import NearbyPlaceSearch
from wanderlens.services.reverse_geocoder import ReverseGeocoder

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_ID = "default"


class ServiceContainer:
    """
    Container for managing application services with lifecycle management.

    Search services and the HTTP client are shared; resolvers and their
    location stores are kept per client id so that the session slot and
    supersession apply per client.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        key_value_store: Optional[KeyValueStore] = None,
    ):
        self._transport = transport
        self._key_value_store = key_value_store
        self._http_client: Optional[httpx.AsyncClient] = None
        self._place_search: Optional[NearbyPlaceSearch] = None
        self._needs_search: Optional[NeedsSearch] = None
        self._resolvers: "OrderedDict[str, LocationResolver]" = OrderedDict()
        self._initialized = False
        self._initialization_lock = asyncio.Lock()

    async def initialize_services(self) -> None:
        async with self._initialization_lock:
            if self._initialized:
                return

            logger.info("Initializing service container")

            try:
                settings = get_settings()
                self._http_client = httpx.AsyncClient(
                    transport=self._transport,
                    headers={"User-Agent": settings.geolocation.user_agent},
                    follow_redirects=True,
                )
                if self._key_value_store is None:
                    self._key_value_store = create_key_value_store()

                self._place_search = NearbyPlaceSearch(create_backends(self._http_client))
                self._needs_search = NeedsSearch(TomTomBackend(self._http_client))

                self._initialized = True
                logger.info(
                    "Service container initialization completed",
                    extra={
                        "storage_backend": settings.storage.backend.value,
                        "place_backends": [b.provider_name for b in self._place_search.backends],
                    },
                )

            except Exception as e:
                logger.error(f"Service container initialization failed: {e}", exc_info=True)
                raise

    async def cleanup_services(self) -> None:
        """Cleanup all services in reverse dependency order."""
        logger.info("Cleaning up service container")

        try:
            for resolver in self._resolvers.values():
                resolver.close()
            self._resolvers.clear()

            if self._place_search:
                self._place_search.reset()
            if self._needs_search:
                self._needs_search.reset()

            if isinstance(self._key_value_store, RedisKeyValueStore):
                await self._key_value_store.client.disconnect()

            if self._http_client:
                await self._http_client.aclose()

            self._place_search = None
            self._needs_search = None
            self._http_client = None

            logger.info("Service container cleanup completed")

        except Exception as e:
            logger.error(f"Service container cleanup failed: {e}", exc_info=True)
        finally:
            self._initialized = False

    def _require(self, service: Any, name: str) -> Any:
        if not self._initialized or service is None:
            raise RuntimeError(f"Service container not initialized ({name})")
        return service

    def get_place_search(self) -> NearbyPlaceSearch:
        return self._require(self._place_search, "place search")

    def get_needs_search(self) -> NeedsSearch:
        return self._require(self._needs_search, "needs search")

    def get_http_client(self) -> httpx.AsyncClient:
        return self._require(self._http_client, "http client")

    def get_resolver(
        self,
        client_id: Optional[str],
        device: Optional[GeolocationDevice],
        client_ip: Optional[str] = None,
    ) -> LocationResolver:
        """
        Resolver for ``client_id`` with this request's device and address.

        The device is replaced on every call; calls already in flight keep the
        reading they asked for. Only the most recently used clients keep a
        resolver; an evicted client still has its persisted last-known record.
        """
        http = self.get_http_client()
        client_id = client_id or DEFAULT_CLIENT_ID
        resolver = self._resolvers.get(client_id)
        if resolver is None:
            resolver = LocationResolver(
                device=device,
                ip_locator=IpGeolocationClient(http),
                geocoder=ReverseGeocoder(http),
                store=LocationStore(self._key_value_store, namespace=client_id),
            )
            self._resolvers[client_id] = resolver
            self._evict_idle_resolvers()
        else:
            self._resolvers.move_to_end(client_id)
        resolver.device = device
        resolver.client_ip = client_ip
        return resolver

    def _evict_idle_resolvers(self) -> None:
        limit = get_settings().geolocation.max_tracked_clients
        while len(self._resolvers) > limit:
            client_id, resolver = self._resolvers.popitem(last=False)
            resolver.close()
            logger.debug("Evicted location resolver", extra={"client_id": client_id})

    def get_store(self, client_id: Optional[str]) -> LocationStore:
        client_id = client_id or DEFAULT_CLIENT_ID
        resolver = self._resolvers.get(client_id)
        if resolver is not None:
            return resolver.store
        return LocationStore(self._require(self._key_value_store, "key-value store"), namespace=client_id)

    @property
    def is_initialized(self) -> bool:
        return self._initialized


def get_service_container(request: Request) -> ServiceContainer:
    """
    Get the service container from application state.

    Raises:
        HTTPException: If service container is not available
    """
    if not hasattr(request.app.state, 'service_container'):
        logger.error("Service container not initialized")
        raise HTTPException(
            status_code=500,
            detail="Service container not available"
        )

    return request.app.state.service_container


def get_place_search(
    container: ServiceContainer = Depends(get_service_container)
) -> NearbyPlaceSearch:
    try:
        return container.get_place_search()
    except RuntimeError as e:
        logger.error(f"Place search not available: {e}")
        raise HTTPException(
            status_code=500,
            detail="Place search not available"
        )


def get_needs_search(
    container: ServiceContainer = Depends(get_service_container)
) -> NeedsSearch:
    try:
        return container.get_needs_search()
    except RuntimeError as e:
        logger.error(f"Needs search not available: {e}")
        raise HTTPException(
            status_code=500,
            detail="Needs search not available"
        )
