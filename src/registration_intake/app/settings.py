from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    name: str = "Registration Intake"
    version: str = "0.1.0"
    public_base_url: str | None = Field(
        default=None, description="Absolute base used when building file view URLs"
    )
    cors_origins: str = Field(default="http://localhost:3000")

    model_config = SettingsConfigDict(
        env_prefix="APP_",            # APP_NAME, APP_VERSION, APP_PUBLIC_BASE_URL
        env_file=".env",
        extra="ignore",
    )

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


class UploadSettings(BaseSettings):
    """
    Where uploaded documents live and how big a registration request may be.

    Env:
      UPLOAD_PATH, UPLOAD_MAX_REQUEST_BYTES, UPLOAD_RECONCILE_INTERVAL_SECONDS
    """

    path: Path = Field(default=Path("./uploads"))
    max_request_bytes: int = Field(default=10 * 1024 * 1024)
    reconcile_interval_seconds: int = Field(default=0)  # 0 disables the background sweep

    model_config = SettingsConfigDict(
        env_prefix="UPLOAD_",
        env_file=".env",
        extra="ignore",
    )


class RateLimitSettings(BaseSettings):
    enabled: bool = True
    window_seconds: int = 15 * 60
    limit: int = 100
    registration_window_seconds: int = 15 * 60
    registration_limit: int = 3
    max_keys: int = 10_000

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        env_file=".env",
        extra="ignore",
    )


@lru_cache
def get_app_settings(**kwargs) -> AppSettings:
    # Only include kwargs that are not None, so defaults in AppSettings are used
    filtered_kwargs = {k: v for k, v in kwargs.items() if v is not None}
    return AppSettings(**filtered_kwargs)


@lru_cache
def get_upload_settings(**kwargs) -> UploadSettings:
    filtered_kwargs = {k: v for k, v in kwargs.items() if v is not None}
    return UploadSettings(**filtered_kwargs)


@lru_cache
def get_rate_limit_settings(**kwargs) -> RateLimitSettings:
    filtered_kwargs = {k: v for k, v in kwargs.items() if v is not None}
    return RateLimitSettings(**filtered_kwargs)
