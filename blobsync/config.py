"""Configuration settings for the blobsync server."""

import re
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

# Database and collection names double as file names and URL segments
_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")

DEFAULT_DATABASES: dict[str, list[str]] = {
    "statements": ["statements", "standingorders", "standingorders_statements"],
    "categories": ["categories"],
}


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Shared secret clients send as `Authorization: Bearer <api_key>`
    api_key: str  # Required - no default for security

    # Server
    host: str = "0.0.0.0"
    port: int = 3000

    # Storage: one JSON file per database under data_dir
    data_dir: Path = Path("./db")
    databases: dict[str, list[str]] = DEFAULT_DATABASES

    # Requests
    max_body_bytes: int = 5 * 1024 * 1024  # 5 MB
    cors_origins: list[str] = []

    # App
    log_level: str = "INFO"
    debug: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model
        frozen = True

    @field_validator("api_key")
    @classmethod
    def api_key_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("API_KEY must not be empty")
        return v

    @field_validator("databases")
    @classmethod
    def validate_databases(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        if not v:
            raise ValueError("At least one database must be declared")
        for db_name, collections in v.items():
            if not _NAME_PATTERN.match(db_name):
                raise ValueError(f"Invalid database name: {db_name!r}")
            if not collections:
                raise ValueError(f"Database {db_name!r} declares no collections")
            for collection in collections:
                if not _NAME_PATTERN.match(collection):
                    raise ValueError(f"Invalid collection name: {db_name}/{collection!r}")
            if len(set(collections)) != len(collections):
                raise ValueError(f"Database {db_name!r} declares a collection twice")
        return v

    @field_validator("max_body_bytes")
    @classmethod
    def positive_body_limit(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("MAX_BODY_BYTES must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}")
        return level


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
