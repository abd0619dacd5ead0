import asyncio
import json
from datetime import datetime, timezone

import pytest

from wanderlens.config.settings import StorageBackend
from wanderlens.schemas.location import Coordinate, LocationSource, ResolvedLocation
from wanderlens.services.location_store import (
    FileKeyValueStore,
    LocationStore,
    MemoryKeyValueStore,
    create_key_value_store,
    deserialize_last_known,
    serialize_last_known,
)


def make_location(**overrides) -> ResolvedLocation:
    values = dict(
        coordinate=Coordinate(latitude=35.6812, longitude=139.7671, accuracy_meters=15.0),
        place_name="Marunouchi, Japan",
        country_code="JP",
        country_name="Japan",
        resolved_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        source=LocationSource.GPS,
    )
    values.update(overrides)
    return ResolvedLocation(**values)


def test_serialized_record_fields():
    record = json.loads(serialize_last_known(make_location()))
    assert record == {
        "lat": 35.6812,
        "lng": 139.7671,
        "accuracy": 15.0,
        "place_name": "Marunouchi, Japan",
        "country_code": "JP",
        "country_name": "Japan",
        "ts": 1714564800000,
    }


def test_loaded_record_is_stale_last_known():
    loaded = deserialize_last_known(serialize_last_known(make_location()))
    assert loaded.source == LocationSource.LAST_KNOWN
    assert loaded.stale is True
    assert loaded.coordinate.latitude == 35.6812
    assert loaded.place_name == "Marunouchi, Japan"
    assert loaded.resolved_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert loaded.currency_code == "JPY"


@pytest.mark.parametrize("raw", [
    "not json",
    "[]",
    json.dumps({"lat": 35.0}),
    json.dumps({"lat": 135.0, "lng": 10.0, "ts": 0}),
    json.dumps({"lat": "north", "lng": 10.0, "ts": 0}),
])
def test_malformed_record_reads_as_absent(raw):
    assert deserialize_last_known(raw) is None


@pytest.mark.asyncio
async def test_memory_store_round_trip():
    store = LocationStore(MemoryKeyValueStore(), namespace="alice")
    assert await store.load_last_known() is None

    assert await store.save_last_known(make_location())
    loaded = await store.load_last_known()
    assert loaded.country_code == "JP"

    assert await store.clear_last_known()
    assert await store.load_last_known() is None


@pytest.mark.asyncio
async def test_namespaces_do_not_share_records():
    backend = MemoryKeyValueStore()
    await LocationStore(backend, namespace="alice").save_last_known(make_location())
    assert await LocationStore(backend, namespace="bob").load_last_known() is None


@pytest.mark.asyncio
async def test_file_store_survives_new_instance(tmp_path):
    path = tmp_path / "store" / "wanderlens.json"
    await LocationStore(FileKeyValueStore(path)).save_last_known(make_location())
    assert path.exists()

    reopened = LocationStore(FileKeyValueStore(path))
    loaded = await reopened.load_last_known()
    assert loaded is not None
    assert loaded.place_name == "Marunouchi, Japan"


@pytest.mark.asyncio
async def test_file_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / "wanderlens.json"
    path.write_text("{oops", encoding="utf-8")
    backend = FileKeyValueStore(path)
    assert await backend.get("anything") is None
    assert await backend.set("k", "v")
    assert await backend.get("k") == "v"


@pytest.mark.asyncio
async def test_file_store_does_disk_io_off_the_event_loop(tmp_path, monkeypatch):
    offloaded = []
    original = asyncio.to_thread

    async def recording_to_thread(func, *args, **kwargs):
        offloaded.append(func.__name__)
        return await original(func, *args, **kwargs)

    monkeypatch.setattr(asyncio, "to_thread", recording_to_thread)
    backend = FileKeyValueStore(tmp_path / "wanderlens.json")

    await backend.set("k", "v")
    await backend.get("k")
    await backend.delete("k")

    assert offloaded == ["_read", "_write", "_read", "_read", "_write"]


@pytest.mark.asyncio
async def test_file_store_delete_missing_key(tmp_path):
    backend = FileKeyValueStore(tmp_path / "wanderlens.json")
    assert await backend.delete("missing") is False


@pytest.mark.asyncio
async def test_reset_clears_session_and_record():
    store = LocationStore(MemoryKeyValueStore())
    location = make_location()
    store.set_session_location(location)
    await store.save_last_known(location)

    await store.reset()
    assert store.session_location is None
    assert await store.load_last_known() is None


def test_create_memory_backend():
    assert isinstance(create_key_value_store(StorageBackend.MEMORY), MemoryKeyValueStore)
