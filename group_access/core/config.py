"""Application configuration using Pydantic settings."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Bot configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    slack_app_token: str = Field(...)
    slack_bot_token: str = Field(...)
    org_customer_id: str = Field(..., min_length=1)
    approver_group_id: str = Field(..., min_length=1)

    service_name: str = Field(default="group-access-bot")
    port: int = Field(default=8080)
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True)

    directory_api_url: str = Field(default="https://cloudidentity.googleapis.com/v1beta1")
    snapshot_refresh_seconds: float = Field(default=60.0, gt=0)
    grant_tick_seconds: float = Field(default=1.0, gt=0)
    revocation_workers: int = Field(default=4, ge=1)
    operation_initial_interval: float = Field(default=0.5, gt=0)
    operation_max_interval: float = Field(default=8.0, gt=0)
    operation_backoff_multiplier: float = Field(default=2.0, ge=1)
    operation_timeout_seconds: float = Field(default=300.0, gt=0)
    request_ttl_hours: int = Field(default=72, ge=1)

    @field_validator("slack_app_token")
    @classmethod
    def validate_app_token(cls, value: str) -> str:
        if not value.startswith("xapp-"):
            raise ValueError('SLACK_APP_TOKEN must have the prefix "xapp-".')
        return value

    @field_validator("slack_bot_token")
    @classmethod
    def validate_bot_token(cls, value: str) -> str:
        if not value:
            raise ValueError("SLACK_BOT_TOKEN must be set.")
        if not value.startswith("xoxb-"):
            raise ValueError('SLACK_BOT_TOKEN must have the prefix "xoxb-".')
        return value

    @field_validator("org_customer_id", "approver_group_id", mode="before")
    @classmethod
    def strip_identifiers(cls, value: str | None) -> str | None:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.upper()

    @field_validator("directory_api_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


@lru_cache
def get_settings() -> AppSettings:
    """Return cached application settings instance."""

    return AppSettings()
