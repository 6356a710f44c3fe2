"""Configuration for the partner dashboard sync library."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Partner client settings, read from PARTNER_* environment variables."""

    api_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL of the booking API"
    )

    api_token: str = Field(
        default="",
        description="Bearer token of the signed-in staff member"
    )

    hotel_id: str = Field(
        default="",
        description="Hotel whose bookings are cached on this device"
    )

    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for one API call; a timeout counts as a transient failure"
    )

    local_db_url: str = Field(
        default="sqlite+aiosqlite:///partner_offline.db",
        description="SQLAlchemy URL of the durable on-device store"
    )

    sync_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Interval of the fallback sync loop"
    )

    synced_retention_hours: float = Field(
        default=24.0,
        ge=0,
        description="How long synced actions are kept before they are pruned"
    )

    cache_max_age_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Age after which the booking cache is reported as stale"
    )

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so paths can be appended."""
        return v.rstrip("/")

    model_config = SettingsConfigDict(
        env_prefix="PARTNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )
