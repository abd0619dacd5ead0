"""
Persistence for the resolver: the last-known location record and the
per-session slot used by the ``once_per_session`` policy.

The last-known record survives restarts through a key-value backend (memory,
JSON file or Redis). The session slot lives only in process memory.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from wanderlens.config.settings import StorageBackend, get_settings
from wanderlens.core.cache_client import CacheClient
from wanderlens.schemas.location import Coordinate, LocationSource, ResolvedLocation

logger = logging.getLogger(__name__)

LAST_KNOWN_KEY = "last_known_location"


class KeyValueStore(ABC):
    """Minimal async string store; the shape ``CacheClient`` already has."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> bool:
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        pass


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self):
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> bool:
        self._data[key] = value
        return True

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None


class FileKeyValueStore(KeyValueStore):
    """
    All keys in one JSON object on disk, rewritten on every change.

    Reads and writes run in a worker thread, off the event loop.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable store file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data), encoding="utf-8")
        tmp.replace(self.path)

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            return data.get(key)

    async def set(self, key: str, value: str) -> bool:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            data[key] = value
            try:
                await asyncio.to_thread(self._write, data)
            except OSError as e:
                logger.error(f"Failed to write store file {self.path}: {e}")
                return False
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            if data.pop(key, None) is None:
                return False
            try:
                await asyncio.to_thread(self._write, data)
            except OSError as e:
                logger.error(f"Failed to write store file {self.path}: {e}")
                return False
            return True


class RedisKeyValueStore(KeyValueStore):
    """Adapter over ``CacheClient``; no TTL, the record is kept until replaced."""

    def __init__(self, client: CacheClient):
        self.client = client

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def set(self, key: str, value: str) -> bool:
        return await self.client.set(key, value)

    async def delete(self, key: str) -> bool:
        return await self.client.delete(key)


def create_key_value_store(backend: Optional[StorageBackend] = None) -> KeyValueStore:
    storage = get_settings().storage
    backend = backend or storage.backend
    if backend == StorageBackend.MEMORY:
        return MemoryKeyValueStore()
    if backend == StorageBackend.REDIS:
        return RedisKeyValueStore(CacheClient())
    return FileKeyValueStore(get_settings().get_storage_path())


def serialize_last_known(location: ResolvedLocation) -> str:
    return json.dumps({
        "lat": location.coordinate.latitude,
        "lng": location.coordinate.longitude,
        "accuracy": location.coordinate.accuracy_meters,
        "place_name": location.place_name,
        "country_code": location.country_code,
        "country_name": location.country_name,
        "ts": int(location.resolved_at.timestamp() * 1000),
    })


def deserialize_last_known(raw: str) -> Optional[ResolvedLocation]:
    """Parse a stored record; anything malformed is treated as absent."""
    try:
        record = json.loads(raw)
        coordinate = Coordinate(
            latitude=record["lat"],
            longitude=record["lng"],
            accuracy_meters=record.get("accuracy"),
        )
        return ResolvedLocation(
            coordinate=coordinate,
            place_name=record.get("place_name"),
            country_code=record.get("country_code"),
            country_name=record.get("country_name"),
            resolved_at=datetime.fromtimestamp(record["ts"] / 1000.0, tz=timezone.utc),
            source=LocationSource.LAST_KNOWN,
            stale=True,
        )
    except (ValueError, TypeError, KeyError) as e:
        logger.warning(f"Discarding malformed last-known record: {e}")
        return None


class LocationStore:
    """
    Last-known location plus session slot for one namespace (usually a client id).

    Backend failures never raise out of here: a failed save is logged and a
    failed load reads as "nothing stored".
    """

    def __init__(self, backend: Optional[KeyValueStore] = None, namespace: str = "default"):
        self.backend = backend or MemoryKeyValueStore()
        self.namespace = namespace
        self._session: Optional[ResolvedLocation] = None

    @property
    def last_known_key(self) -> str:
        prefix = get_settings().storage.key_prefix
        return f"{prefix}:{self.namespace}:{LAST_KNOWN_KEY}"

    async def save_last_known(self, location: ResolvedLocation) -> bool:
        saved = await self.backend.set(self.last_known_key, serialize_last_known(location))
        if not saved:
            logger.warning("Could not persist last-known location", extra={"namespace": self.namespace})
        return saved

    async def load_last_known(self) -> Optional[ResolvedLocation]:
        raw = await self.backend.get(self.last_known_key)
        if raw is None:
            return None
        return deserialize_last_known(raw)

    async def clear_last_known(self) -> bool:
        return await self.backend.delete(self.last_known_key)

    @property
    def session_location(self) -> Optional[ResolvedLocation]:
        return self._session

    def set_session_location(self, location: ResolvedLocation) -> None:
        self._session = location

    def clear_session(self) -> None:
        self._session = None

    async def reset(self) -> None:
        self.clear_session()
        await self.clear_last_known()
