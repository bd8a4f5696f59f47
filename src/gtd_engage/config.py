"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    supabase_url: AnyHttpUrl = Field(
        ...,
        validation_alias=AliasChoices("SUPABASE_URL", "VITE_SUPABASE_URL", "supabase_url"),
    )
    supabase_anon_key: SecretStr = Field(
        ...,
        validation_alias=AliasChoices(
            "SUPABASE_ANON_KEY",
            "VITE_SUPABASE_ANON_KEY",
            "supabase_anon_key",
        ),
    )
    # User JWT; falls back to the anon key when unset.
    supabase_access_token: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_ACCESS_TOKEN", "supabase_access_token"),
    )
    user_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("GTD_USER_ID", "user_id"),
    )

    local_storage_path: Path = Field(
        default_factory=lambda: Path("data/local_storage.json"),
        validation_alias=AliasChoices("LOCAL_STORAGE_PATH", "local_storage_path"),
    )
    local_storage_backend: Literal["json", "sqlite"] = Field(
        default="json",
        validation_alias=AliasChoices("LOCAL_STORAGE_BACKEND", "local_storage_backend"),
    )

    offline_max_retries: int = Field(
        default=3,
        ge=1,
        validation_alias=AliasChoices("OFFLINE_MAX_RETRIES", "offline_max_retries"),
    )
    sync_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        validation_alias=AliasChoices("SYNC_INTERVAL_SECONDS", "sync_interval_seconds"),
    )
    max_suggestions: int = Field(
        default=10,
        ge=1,
        validation_alias=AliasChoices("MAX_SUGGESTIONS", "max_suggestions"),
    )
    request_timeout: float = Field(
        default=10.0,
        validation_alias=AliasChoices("SUPABASE_TIMEOUT", "timeout"),
        ge=1,
    )
    realtime_heartbeat_seconds: float = Field(
        default=30.0,
        gt=0,
        validation_alias=AliasChoices(
            "REALTIME_HEARTBEAT_SECONDS",
            "realtime_heartbeat_seconds",
        ),
    )
    timezone: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GTD_TIMEZONE", "TZ", "timezone"),
        description="IANA zone used to decide which tasks are due today.",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["Settings", "get_settings"]
