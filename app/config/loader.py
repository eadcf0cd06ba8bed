"""
Configuration loader utility for environment-specific settings.
"""

import logging
from pathlib import Path
from typing import Optional
import os

from .settings import Settings, Environment

logger = logging.getLogger(__name__)


class ConfigLoader:
    """Utility class for loading environment-specific configurations"""

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

        env = Environment(environment.lower())
        env_file_path = Path(f".env.{env.value}")

        if env_file_path.exists():
            return Settings(_env_file=str(env_file_path))

        logger.warning(
            f"Environment file {env_file_path} not found, using default settings"
        )
        return Settings()

    @staticmethod
    def get_available_environments() -> list[str]:
        """Get list of available environment configurations"""
        env_files = []
        for env_file in Path(".").glob(".env.*"):
            if env_file.name.endswith(".sample"):
                continue
            env_files.append(env_file.name.replace(".env.", ""))
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
            env = Environment(environment.lower())
            if not Path(f".env.{env.value}").exists():
                return False

            settings = ConfigLoader.load_environment_config(environment)
        except ValueError:
            # Unknown environment name or a value pydantic rejected
            return False

        if settings.is_production() and settings.security.jwt_secret == "please-change-me":
            logger.error("SECURITY_JWT_SECRET must be set in production")
            return False

        return all(
            value is not None
            for value in (settings.app_name, settings.host, settings.port, settings.database.url)
        )

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
LOG_JSON={'false' if env == Environment.DEVELOPMENT else 'true'}

# Shared Store
DATABASE_URL={defaults.database.url}

# Proximity Configuration
PROXIMITY_STALENESS_MINUTES={defaults.proximity.staleness_minutes}
PROXIMITY_FETCH_BATCH_SIZE={defaults.proximity.fetch_batch_size}
PROXIMITY_DEFAULT_MAX_DISTANCE_KM={defaults.proximity.default_max_distance_km}
PROXIMITY_DEFAULT_MAX_RESULTS={defaults.proximity.default_max_results}
PROXIMITY_PLACE_COUNT_RADIUS_KM={defaults.proximity.place_count_radius_km}
PROXIMITY_EXCLUDE_SELF_FROM_PLACE_COUNT=false
PROXIMITY_POLL_INTERVAL_SECONDS={defaults.proximity.poll_interval_seconds}

# Location Tracking
TRACKING_FIX_TIMEOUT_SECONDS={defaults.tracking.fix_timeout_seconds}
TRACKING_MAXIMUM_AGE_SECONDS={defaults.tracking.maximum_age_seconds}
TRACKING_CLOCK_SKEW_SECONDS={defaults.tracking.clock_skew_seconds}
TRACKING_IDLE_TIMEOUTS_BEFORE_STOP={defaults.tracking.idle_timeouts_before_stop}

# Places Provider
PLACES_API_KEY=your-google-places-api-key
PLACES_DEFAULT_RADIUS_M={defaults.places.default_radius_m}
PLACES_CACHE_TTL_SECONDS={defaults.places.cache_ttl_seconds}

# Redis Configuration
REDIS_ENABLED=false
REDIS_HOST={defaults.redis.host}
REDIS_PORT={defaults.redis.port}

# Security Configuration
SECURITY_JWT_SECRET=change-me
SECURITY_CORS_ORIGINS=*
"""

        with open(output_path, "w") as f:
            f.write(sample_content)

        return output_path


def load_config_for_environment(environment: Optional[str] = None) -> Settings:
    """Convenience function to load configuration for an environment"""
    return ConfigLoader.load_environment_config(environment)
