"""
Configuration and settings for the Daily Moments service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    # Calendar day boundaries and choice weekdays are evaluated in this zone.
    timezone: str = Field(default="Europe/Amsterdam", env="TIMEZONE")

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, env="USE_IN_MEMORY_BACKENDS"
    )
    dev_login_password: Optional[str] = Field(
        default=None, env="DEV_LOGIN_PASSWORD"
    )

    # Firebase (Auth REST + Firestore)
    firebase_project_id: Optional[str] = Field(
        default=None, env="FIREBASE_PROJECT_ID"
    )
    google_application_credentials: Optional[str] = Field(
        default=None, env="GOOGLE_APPLICATION_CREDENTIALS"
    )
    firebase_web_api_key: Optional[str] = Field(
        default=None, env="FIREBASE_WEB_API_KEY"
    )

    # Image providers; a missing key disables that provider.
    pexels_api_key: Optional[str] = Field(default=None, env="PEXELS_API_KEY")
    pixabay_api_key: Optional[str] = Field(default=None, env="PIXABAY_API_KEY")
    gemini_api_key: Optional[str] = Field(default=None, env="GEMINI_API_KEY")
    provider_timeout_seconds: float = Field(
        default=30.0, env="PROVIDER_TIMEOUT_SECONDS"
    )
    image_max_dimension: int = Field(default=768, env="IMAGE_MAX_DIMENSION")
    image_quality: int = Field(default=80, ge=1, le=100, env="IMAGE_QUALITY")

    # S3-compatible image storage (Tencent COS); inline data URLs when unset.
    cos_endpoint: Optional[str] = Field(default=None, env="COS_ENDPOINT")
    cos_region: Optional[str] = Field(default=None, env="COS_REGION")
    cos_bucket: Optional[str] = Field(default=None, env="COS_BUCKET")
    cos_public_base_url: Optional[str] = Field(
        default=None, env="COS_PUBLIC_BASE_URL"
    )
    aws_access_key_id: Optional[str] = Field(
        default=None, env="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, env="AWS_SECRET_ACCESS_KEY"
    )

    creation_timeout_seconds: float = Field(
        default=30.0, env="CREATION_TIMEOUT_SECONDS"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
