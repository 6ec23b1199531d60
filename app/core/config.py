"""Application configuration."""

import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ZTM_STOPS_URL = (
    "https://ckan.multimediagdansk.pl/dataset/c24aa637-3619-4dc2-a171-a23eec8f2172"
    "/resource/d3e96eb6-25ad-4d6c-8651-b1eb39155945/download/stopsingdansk.json"
)
DEFAULT_ZTM_DEPARTURES_URL = "https://ckan2.multimediagdansk.pl/departures"


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # API Settings
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "Stopboard"
    DEBUG: bool = False
    ALLOWED_ORIGINS: str

    @field_validator("ALLOWED_ORIGINS", mode="after")
    @classmethod
    def parse_cors(cls, v: str | list[str]) -> list[str]:
        """Parse comma-separated CORS origins or pass through list."""
        return v if isinstance(v, list) else [origin.strip() for origin in v.split(",")]

    # Database Settings
    DATABASE_URL: str = Field(validation_alias="SECRET_DATABASE_URL")
    DATABASE_ECHO: bool = False
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10

    # Auth0 Settings
    AUTH0_DOMAIN: str
    AUTH0_API_AUDIENCE: str
    AUTH0_ALGORITHMS: str

    @field_validator("AUTH0_ALGORITHMS", mode="after")
    @classmethod
    def parse_auth0_algorithms(cls, v: str | list[str]) -> list[str]:
        """Parse comma-separated Auth0 algorithms or pass through list."""
        return v if isinstance(v, list) else [algo.strip() for algo in v.split(",")]

    # ZTM Gdansk open data feed
    ZTM_STOPS_URL: str = DEFAULT_ZTM_STOPS_URL
    ZTM_DEPARTURES_URL: str = DEFAULT_ZTM_DEPARTURES_URL
    ZTM_STOPS_CACHE_TTL_SECONDS: float = 6 * 60 * 60  # Stop directory changes at most daily
    ZTM_STOPS_TIMEOUT_SECONDS: float = 10.0
    ZTM_DEPARTURES_CACHE_TTL_SECONDS: float = 20.0
    ZTM_DEPARTURES_TIMEOUT_SECONDS: float = 8.0
    ZTM_ALL_DEPARTURES_CACHE_TTL_SECONDS: float = 20.0
    ZTM_ALL_DEPARTURES_TIMEOUT_SECONDS: float = 15.0  # Whole-city payload is large

    @field_validator(
        "ZTM_STOPS_CACHE_TTL_SECONDS",
        "ZTM_STOPS_TIMEOUT_SECONDS",
        "ZTM_DEPARTURES_CACHE_TTL_SECONDS",
        "ZTM_DEPARTURES_TIMEOUT_SECONDS",
        "ZTM_ALL_DEPARTURES_CACHE_TTL_SECONDS",
        "ZTM_ALL_DEPARTURES_TIMEOUT_SECONDS",
        mode="after",
    )
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        """Reject zero or negative TTLs and timeouts."""
        if v <= 0:
            msg = f"Value must be greater than 0 seconds, got {v}"
            raise ValueError(msg)
        return v

    # Alembic Settings
    ALEMBIC_INI_PATH: str = "alembic.ini"

    # OpenTelemetry Settings (for observability)
    OTEL_ENABLED: bool = True
    OTEL_SERVICE_NAME: str = "stopboard-backend"
    OTEL_ENVIRONMENT: str = "production"
    OTEL_EXPORTER_OTLP_TRACES_ENDPOINT: str | None = None
    OTEL_EXPORTER_OTLP_HEADERS: str | None = Field(default=None, validation_alias="SECRET_OTEL_HEADERS")
    OTEL_EXCLUDED_URLS: str = "/health,/ready"

    @field_validator("OTEL_EXCLUDED_URLS", mode="after")
    @classmethod
    def parse_otel_excluded_urls(cls, v: str | list[str]) -> list[str]:
        """Parse comma-separated excluded URLs or pass through list, filtering out empty strings."""
        if isinstance(v, list):
            return [url for url in v if url]
        return [url.strip() for url in v.split(",") if url.strip()]

    # Logging Settings
    LOG_LEVEL: str = "INFO"

    @field_validator("LOG_LEVEL", mode="after")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        normalized = v.upper()
        valid_levels = logging.getLevelNamesMapping()
        if normalized not in valid_levels:
            msg = f"Invalid LOG_LEVEL '{v}'. Must be one of: {', '.join(sorted(valid_levels.keys()))}"
            raise ValueError(msg)
        return normalized


settings = Settings()


def require_config(*field_names: str) -> None:
    """
    Validate that required configuration fields are set.

    Args:
        *field_names: Names of required configuration fields

    Raises:
        ValueError: If any required field is missing or None

    Example:
        from app.core.config import require_config, settings
        require_config("AUTH0_DOMAIN", "AUTH0_API_AUDIENCE")
    """
    missing = []
    for field in field_names:
        value = getattr(settings, field, None)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field)

    if missing:
        msg = f"Required configuration missing: {', '.join(missing)}"
        raise ValueError(msg)
