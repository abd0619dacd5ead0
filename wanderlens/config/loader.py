"""
Configuration loader utility for environment-specific settings.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .settings import Environment, Settings

logger = logging.getLogger(__name__)


class ConfigLoader:
    """Utility class for loading environment-specific configurations"""

    @staticmethod
    def env_file_for(environment: str) -> Path:
        env = Environment(environment.lower())
        return Path(f".env.{env.value}")

    @staticmethod
    def load_environment_config(environment: Optional[str] = None) -> Settings:
        """
        Load configuration for the specified environment.

        Args:
            environment: Target environment (development, staging, production, testing)
                        If None, uses ENVIRONMENT env var or defaults to development

        Returns:
            Settings instance with environment-specific configuration
        """
        if environment is None:
            environment = os.getenv("ENVIRONMENT", "development")

        env_file_path = ConfigLoader.env_file_for(environment)

        if env_file_path.exists():
            return Settings(_env_file=str(env_file_path))

        logger.warning(f"Environment file {env_file_path} not found, using default settings")
        return Settings(environment=Environment(environment.lower()))

    @staticmethod
    def get_available_environments() -> list[str]:
        """Get list of available environment configurations"""
        env_files = []
        for env_file in Path(".").glob(".env.*"):
            env_name = env_file.name.replace(".env.", "", 1)
            if not env_name.endswith(".sample"):
                env_files.append(env_name)
        return sorted(env_files)

    @staticmethod
    def validate_environment_config(environment: str) -> bool:
        """
        Validate that an environment configuration exists and is valid.

        Args:
            environment: Environment name to validate

        Returns:
            True if configuration is valid, False otherwise
        """
        try:
            if not ConfigLoader.env_file_for(environment).exists():
                return False
            ConfigLoader.load_environment_config(environment)
            return True
        except (ValueError, ValidationError) as e:
            logger.error(f"Invalid configuration for {environment}: {e}")
            return False

    @staticmethod
    def create_sample_env_file(environment: str, output_path: Optional[str] = None) -> str:
        """
        Create a sample .env file for the specified environment.

        Args:
            environment: Target environment
            output_path: Optional custom output path

        Returns:
            Path to the created sample file
        """
        env = Environment(environment.lower())

        if output_path is None:
            output_path = f".env.{env.value}.sample"

        defaults = Settings()
        geo = defaults.geolocation
        places = defaults.places

        sample_content = f"""# Sample configuration for {env.value} environment
# Copy this file to .env.{env.value} and modify as needed

# Application Configuration
APP_NAME={defaults.app_name}
APP_VERSION={defaults.app_version}
ENVIRONMENT={env.value}
DEBUG={'true' if env == Environment.DEVELOPMENT else 'false'}

# Server Configuration
HOST={defaults.host}
PORT={defaults.port}
RELOAD={'true' if env == Environment.DEVELOPMENT else 'false'}
WORKERS={1 if env == Environment.DEVELOPMENT else 4}

# Logging Configuration
LOG_LEVEL={defaults.log_level.value}
LOG_FORMAT={defaults.log_format}

# Geolocation Configuration
GEO_DEVICE_TIMEOUT_MS={geo.device_timeout_ms}
GEO_IP_LOOKUP_URL={geo.ip_lookup_url}
GEO_IP_LOOKUP_URL_TEMPLATE={geo.ip_lookup_url_template}
GEO_TRUST_FORWARDED_FOR={str(geo.trust_forwarded_for).lower()}
GEO_IP_LOOKUP_TIMEOUT_SECONDS={geo.ip_lookup_timeout_seconds}
GEO_REVERSE_GEOCODE_URL={geo.reverse_geocode_url}
GEO_REVERSE_GEOCODE_TIMEOUT_SECONDS={geo.reverse_geocode_timeout_seconds}
GEO_USER_AGENT={geo.user_agent}
GEO_MAX_TRACKED_CLIENTS={geo.max_tracked_clients}

# Place Search Configuration
PLACES_DEFAULT_RADIUS_M={places.default_radius_m}
PLACES_MAX_RESULTS_PER_CATEGORY={places.max_results_per_category}
PLACES_CACHE_TTL_SECONDS={places.cache_ttl_seconds}
PLACES_TOTAL_TIMEOUT_SECONDS={places.total_timeout_seconds}
PLACES_MAX_TRACKED_CONSUMERS={places.max_tracked_consumers}
PLACES_PROVIDER_ORDER={','.join(places.provider_order)}
PLACES_OVERPASS_MIRRORS={','.join(places.overpass_mirrors)}
PLACES_TOMTOM_API_KEY=your-tomtom-api-key

# Storage Configuration (memory, file or redis)
STORAGE_BACKEND={defaults.storage.backend.value}
STORAGE_FILE_PATH={defaults.storage.file_path}

# Redis Configuration
REDIS_HOST={defaults.redis.host}
REDIS_PORT={defaults.redis.port}
REDIS_DB={defaults.redis.db}

# Security Configuration
SECURITY_CORS_ORIGINS=*
"""

        with open(output_path, "w") as f:
            f.write(sample_content)

        return output_path


def load_config_for_environment(environment: Optional[str] = None) -> Settings:
    """Convenience function to load configuration for an environment"""
    return ConfigLoader.load_environment_config(environment)
