"""
Configuration management system using Pydantic Settings.
Supports environment-based configuration for different deployment environments.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode
from typing import Annotated, Optional, Dict, Any, List
from enum import Enum
from pathlib import Path


class Environment(str, Enum):
    """Supported deployment environments"""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Supported log levels"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StorageBackend(str, Enum):
    """Where the last-known location record is persisted"""
    MEMORY = "memory"
    FILE = "file"
    REDIS = "redis"


class GeolocationSettings(BaseSettings):
    """Location resolver configuration"""

    device_timeout_ms: int = Field(default=10000, ge=500, le=120000)
    enable_high_accuracy: bool = Field(default=True)
    max_cache_age_ms: int = Field(default=0, ge=0)

    ip_lookup_url: str = Field(default="https://ipapi.co/json/")
    # Used when the caller's public address is known; {ip} is substituted
    ip_lookup_url_template: str = Field(default="https://ipapi.co/{ip}/json/")
    trust_forwarded_for: bool = Field(default=True)
    ip_lookup_timeout_seconds: float = Field(default=6.0, gt=0, le=60)

    reverse_geocode_url: str = Field(default="https://nominatim.openstreetmap.org/reverse")
    reverse_geocode_zoom: int = Field(default=16, ge=0, le=18)
    reverse_geocode_timeout_seconds: float = Field(default=8.0, gt=0, le=60)
    user_agent: str = Field(default="WanderLens Travel App")
    max_tracked_clients: int = Field(default=1000, ge=1)

    model_config = {"env_prefix": "GEO_"}


class PlacesSettings(BaseSettings):
    """Nearby-place search configuration"""

    default_radius_m: int = Field(default=1000, ge=50, le=10000)
    max_radius_m: int = Field(default=10000, ge=100, le=50000)
    max_results_per_category: int = Field(default=10, ge=1, le=100)
    cache_ttl_seconds: float = Field(default=60.0, gt=0, le=3600)
    cache_precision: int = Field(default=3, ge=1, le=6)
    total_timeout_seconds: float = Field(default=12.0, gt=0, le=120)
    mirror_timeout_seconds: float = Field(default=8.0, gt=0, le=120)
    max_tracked_consumers: int = Field(default=1000, ge=1)

    provider_order: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["overpass", "tomtom"])
    overpass_mirrors: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: [
            "https://overpass-api.de/api/interpreter",
            "https://overpass.kumi.systems/api/interpreter",
            "https://overpass.private.coffee/api/interpreter",
        ]
    )

    tomtom_api_key: Optional[str] = Field(default=None)
    tomtom_base_url: str = Field(default="https://api.tomtom.com/search/2")

    @field_validator('provider_order', 'overpass_mirrors', mode='before')
    @classmethod
    def parse_comma_list(cls, v):
        """Parse comma separated lists from environment variables"""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    model_config = {"env_prefix": "PLACES_"}


class StorageSettings(BaseSettings):
    """Persistent key-value storage configuration"""

    backend: StorageBackend = Field(default=StorageBackend.FILE)
    file_path: str = Field(default="data/wanderlens_store.json")
    key_prefix: str = Field(default="wanderlens")

    model_config = {"env_prefix": "STORAGE_"}


class RedisSettings(BaseSettings):
    """Redis connection configuration"""

    host: str = Field(default="redis")  # Default to docker service name
    port: int = Field(default=6379, ge=1, le=65535)
    password: Optional[str] = Field(default=None)
    db: int = Field(default=0, ge=0, le=15)
    socket_timeout: int = Field(default=5, ge=1, le=30)

    @property
    def url(self) -> str:
        """Generate Redis URL from configuration"""
        auth = f":{self.password}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"

    model_config = {"env_prefix": "REDIS_"}


class SecuritySettings(BaseSettings):
    """CORS configuration"""

    cors_origins: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["*"])
    cors_allow_credentials: bool = Field(default=True)
    cors_allow_methods: List[str] = Field(
        default_factory=lambda: ["GET", "POST"]
    )
    cors_allow_headers: List[str] = Field(default_factory=lambda: ["*"])

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from environment variable or list"""
        if isinstance(v, str):
            origin_list = v.split(",")
            return [origin.strip() for origin in origin_list if origin.strip()]
        return v or ["*"]

    model_config = {"env_prefix": "SECURITY_"}


class Settings(BaseSettings):
    """Main application settings"""

    # Application Configuration
    app_name: str = Field(default="WanderLens Location Service")
    app_version: str = Field(default="1.0.0")
    environment: Environment = Field(default=Environment.DEVELOPMENT)
    debug: bool = Field(default=False)

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1, le=65535)
    reload: bool = Field(default=False)
    workers: int = Field(default=1, ge=1, le=16)

    # Logging Configuration
    log_level: LogLevel = Field(default=LogLevel.INFO)
    log_format: str = Field(default="json")

    # Nested Settings
    geolocation: GeolocationSettings = Field(default_factory=GeolocationSettings)
    places: PlacesSettings = Field(default_factory=PlacesSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    @field_validator('environment', mode='before')
    @classmethod
    def validate_environment(cls, v):
        """Validate and normalize environment setting"""
        if isinstance(v, str):
            return Environment(v.lower())
        return v

    def get_storage_path(self) -> Path:
        """Get absolute path of the file-backed key-value store"""
        return Path(self.storage.file_path).resolve()

    def is_production(self) -> bool:
        """Check if running in production environment"""
        return self.environment == Environment.PRODUCTION

    def is_development(self) -> bool:
        """Check if running in development environment"""
        return self.environment == Environment.DEVELOPMENT

    def get_cors_config(self) -> Dict[str, Any]:
        """Get CORS configuration for FastAPI"""
        return {
            "allow_origins": self.security.cors_origins,
            "allow_credentials": self.security.cors_allow_credentials,
            "allow_methods": self.security.cors_allow_methods,
            "allow_headers": self.security.cors_allow_headers,
        }

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance"""
    return settings


def reload_settings() -> Settings:
    """Reload settings from environment and files"""
    global settings
    settings = Settings()
    return settings
