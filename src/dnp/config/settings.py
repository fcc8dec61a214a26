"""Application settings loaded from environment."""

from typing import Iterable, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MissingEnvironmentError(ValueError):
    """Raised when required configuration keys are absent at startup."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(
            f"Missing required environment variables: {', '.join(missing)}. "
            "These must be set in environment to run this command."
        )


class Settings(BaseSettings):
    """Strongly typed settings for the pipeline."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")
    pghost: Optional[str] = Field(default=None, alias="PGHOST")
    pgport: int = Field(default=5432, alias="PGPORT")
    pguser: Optional[str] = Field(default=None, alias="PGUSER")
    pgpassword: Optional[str] = Field(default=None, alias="PGPASSWORD")
    pgdatabase: Optional[str] = Field(default=None, alias="PGDATABASE")

    # Push delivery
    push_api_url: Optional[str] = Field(default=None, alias="PUSH_API_URL")
    push_api_key: Optional[str] = Field(default=None, alias="PUSH_API_KEY")
    push_timeout_seconds: int = Field(default=10, alias="PUSH_TIMEOUT_SECONDS")
    push_max_retries: int = Field(default=2, alias="PUSH_MAX_RETRIES")

    # Geocoding
    geocoder_base_url: str = Field(
        default="https://nominatim.openstreetmap.org",
        alias="GEOCODER_BASE_URL",
    )
    geocoder_timeout_seconds: int = Field(default=15, alias="GEOCODER_TIMEOUT_SECONDS")
    geocoder_max_attempts: int = Field(default=2, alias="GEOCODER_MAX_ATTEMPTS")
    geocoder_user_agent: str = Field(
        default="disruption-notice-pipeline/0.1", alias="GEOCODER_USER_AGENT"
    )

    # Ingestion
    outlier_max_distance_meters: float = Field(
        default=1000.0, alias="OUTLIER_MAX_DISTANCE_METERS"
    )
    boundary_path: Optional[str] = Field(default=None, alias="BOUNDARY_PATH")

    # Matching
    interest_min_radius_meters: float = Field(default=100.0, alias="INTEREST_MIN_RADIUS_METERS")
    interest_max_radius_meters: float = Field(default=1000.0, alias="INTEREST_MAX_RADIUS_METERS")
    notify_max_workers: int = Field(default=4, alias="NOTIFY_MAX_WORKERS")
    notify_message_limit: Optional[int] = Field(default=None, alias="NOTIFY_MESSAGE_LIMIT")

    # Runtime
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    run_env: str = Field(default="local", alias="RUN_ENV")
    timezone: str = Field(default="Europe/Sofia", alias="TIMEZONE")

    def get_database_url(self) -> str:
        """Return a usable database URL or raise."""
        if self.database_url:
            return self.database_url

        if all([self.pghost, self.pguser, self.pgpassword, self.pgdatabase]):
            return (
                "postgresql://"
                f"{self.pguser}:{self.pgpassword}@{self.pghost}:{self.pgport}/"
                f"{self.pgdatabase}"
            )

        raise ValueError("DATABASE_URL or PG* env vars must be set")

    def missing_keys(self, keys: Iterable[str]) -> list[str]:
        """Return the env aliases from ``keys`` that have no usable value."""
        by_alias = {
            (field.alias or name): name for name, field in type(self).model_fields.items()
        }
        missing: list[str] = []
        for key in keys:
            name = by_alias.get(key)
            value = getattr(self, name) if name else None
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(key)
        return missing

    def require(self, keys: Iterable[str]) -> None:
        """Raise MissingEnvironmentError listing every missing key."""
        missing = self.missing_keys(keys)
        if missing:
            raise MissingEnvironmentError(missing)
