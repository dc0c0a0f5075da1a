"""
Configuration and settings for the practice-management API.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")
    environment: Literal["development", "test", "production"] = Field(
        default="development", validation_alias="APP_ENV"
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    cors_origin: str = Field(
        default="http://localhost:8080", validation_alias="CORS_ORIGIN"
    )

    # Auth
    jwt_secret: str = Field(default="dev_secret", validation_alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256")
    jwt_expires_days: int = Field(default=7, validation_alias="JWT_EXPIRES_DAYS")

    # Document store selection: "memory", "firestore" or "mongo"
    store_backend: Literal["memory", "firestore", "mongo"] = Field(
        default="memory", validation_alias="STORE_BACKEND"
    )

    # MongoDB
    mongodb_uri: str = Field(
        default="mongodb://127.0.0.1:27017", validation_alias="MONGODB_URI"
    )
    mongodb_database: str = Field(
        default="lawyer_zen", validation_alias="MONGODB_DATABASE"
    )
    mongodb_ensure_indexes: bool = Field(
        default=True, validation_alias="MONGODB_ENSURE_INDEXES"
    )

    # Firestore
    firebase_project_id: Optional[str] = Field(
        default=None, validation_alias="FIREBASE_PROJECT_ID"
    )
    firebase_credentials_path: Optional[str] = Field(
        default=None, validation_alias="GOOGLE_APPLICATION_CREDENTIALS"
    )

    # Activity trail
    activity_ttl_days: int = Field(default=90, validation_alias="ACTIVITY_TTL_DAYS")

    # S3-compatible storage for uploaded case documents
    storage_bucket: Optional[str] = Field(default=None, validation_alias="STORAGE_BUCKET")
    storage_region: Optional[str] = Field(default=None, validation_alias="STORAGE_REGION")
    storage_endpoint: Optional[str] = Field(
        default=None, validation_alias="STORAGE_ENDPOINT"
    )
    aws_access_key_id: Optional[str] = Field(
        default=None, validation_alias="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, validation_alias="AWS_SECRET_ACCESS_KEY"
    )
    max_upload_bytes: int = Field(
        default=25 * 1024 * 1024, validation_alias="MAX_UPLOAD_BYTES"
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
