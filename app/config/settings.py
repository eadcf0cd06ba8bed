"""
Configuration management system using Pydantic Settings.
Supports environment-based configuration for different deployment environments.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings
from typing import Optional, Dict, Any, List
from enum import Enum


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


class DatabaseSettings(BaseSettings):
    """Shared store (user location records) configuration"""

    url: str = Field(
        default="sqlite+aiosqlite:///./travlrhub.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(default=False)
    pool_pre_ping: bool = Field(default=True)

    model_config = {"env_prefix": "DATABASE_"}


class ProximitySettings(BaseSettings):
    """Nearby-traveler resolution and refresh configuration"""

    staleness_minutes: int = Field(default=30, ge=1, le=1440)
    fetch_batch_size: int = Field(default=100, ge=1, le=1000)
    default_max_distance_km: float = Field(default=10.0, gt=0)
    default_max_results: int = Field(default=20, ge=1, le=100)
    place_count_radius_km: float = Field(default=0.1, gt=0)
    place_count_max_results: int = Field(default=100, ge=100)
    exclude_self_from_place_count: bool = Field(default=False)
    poll_interval_seconds: float = Field(default=30.0, gt=0)

    model_config = {"env_prefix": "PROXIMITY_"}


class TrackingSettings(BaseSettings):
    """Device location watch configuration"""

    enable_high_accuracy: bool = Field(default=True)
    fix_timeout_seconds: float = Field(default=20.0, gt=0)
    maximum_age_seconds: float = Field(default=10.0, ge=0)
    clock_skew_seconds: float = Field(
        default=60.0, ge=0,
        description="How far a device clock may lag the server before its fixes count as old"
    )
    idle_timeouts_before_stop: int = Field(
        default=3, ge=1,
        description="Fix timeouts without any device report before a tracker is torn down"
    )

    model_config = {"env_prefix": "TRACKING_"}


class PlacesSettings(BaseSettings):
    """Maps/places provider configuration"""

    api_key: Optional[str] = Field(
        default=None,
        description="Google Places API key; mock data is served when unset"
    )
    api_url: str = Field(default="https://maps.googleapis.com/maps/api/place")
    timeout_seconds: int = Field(default=10, ge=1, le=60)
    default_radius_m: int = Field(default=1500, ge=1, le=50000)
    default_category: Optional[str] = Field(default="tourist_attraction")
    cache_ttl_seconds: int = Field(default=300, ge=0, le=86400)

    model_config = {
        "env_prefix": "PLACES_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


class RedisSettings(BaseSettings):
    """Redis cache configuration"""

    enabled: bool = Field(default=False)
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
    """Token verification and CORS configuration"""

    jwt_secret: str = Field(default="please-change-me")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60, ge=1)
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_credentials: bool = Field(default=True)
    cors_allow_methods: List[str] = Field(
        default_factory=lambda: ["GET", "POST", "PUT", "DELETE"]
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
    app_name: str = Field(default="TravlrHub Proximity Service")
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
    log_json: bool = Field(default=True)

    # Nested Settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    proximity: ProximitySettings = Field(default_factory=ProximitySettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    places: PlacesSettings = Field(default_factory=PlacesSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    @field_validator('environment', mode='before')
    @classmethod
    def validate_environment(cls, v):
        """Validate and normalize environment setting"""
        if isinstance(v, str):
            return Environment(v.lower())
        return v

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
