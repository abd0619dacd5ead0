import json
import logging

from wanderlens.config.loader import ConfigLoader
from wanderlens.config.settings import PlacesSettings, SecuritySettings, Settings, StorageBackend
from wanderlens.core.logging import JsonFormatter


def test_defaults():
    settings = Settings()
    assert settings.places.cache_ttl_seconds == 60.0
    assert settings.places.total_timeout_seconds == 12.0
    assert settings.places.max_results_per_category == 10
    assert settings.places.provider_order == ["overpass", "tomtom"]
    assert len(settings.places.overpass_mirrors) == 3
    assert settings.geolocation.device_timeout_ms == 10000
    assert settings.geolocation.reverse_geocode_zoom == 16


def test_comma_separated_lists_from_environment(monkeypatch):
    monkeypatch.setenv("PLACES_PROVIDER_ORDER", "tomtom, overpass")
    monkeypatch.setenv("PLACES_OVERPASS_MIRRORS", "https://a.example/api,https://b.example/api")
    monkeypatch.setenv("SECURITY_CORS_ORIGINS", "https://app.example, https://admin.example")

    places = PlacesSettings()
    assert places.provider_order == ["tomtom", "overpass"]
    assert places.overpass_mirrors == ["https://a.example/api", "https://b.example/api"]
    assert SecuritySettings().cors_origins == ["https://app.example", "https://admin.example"]


def test_storage_backend_from_environment(monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "redis")
    monkeypatch.setenv("REDIS_HOST", "localhost")
    settings = Settings()
    assert settings.storage.backend == StorageBackend.REDIS
    assert settings.redis.url == "redis://localhost:6379/0"


def test_sample_env_file(tmp_path):
    output = tmp_path / ".env.staging.sample"
    ConfigLoader.create_sample_env_file("staging", str(output))
    content = output.read_text()
    assert "ENVIRONMENT=staging" in content
    assert "PLACES_CACHE_TTL_SECONDS=60.0" in content
    assert "STORAGE_BACKEND=file" in content


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("wanderlens.test", logging.INFO, __file__, 1, "Place search finished", None, None)
    record.mode = "tourist"
    record.places = 3
    payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "Place search finished"
    assert payload["level"] == "INFO"
    assert payload["mode"] == "tourist"
    assert payload["places"] == 3
    assert "msg" not in payload
