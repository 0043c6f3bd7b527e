from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Blue+Me settings, read from the environment with .env as a fallback.
    Only SESSION_SECRET has no default.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Signs session tokens; rotating it signs everyone out
    SESSION_SECRET: str
    SESSION_MAX_AGE: int = 60 * 60 * 24 * 30
    SESSION_COOKIE_NAME: str = "session"

    LOG_LEVEL: str = "INFO"

    # json: one file per collection in DATA_DIR; sql: one row per collection
    STORAGE_BACKEND: Literal["json", "sql"] = "json"
    DATA_DIR: str = "data"
    DATABASE_URL: str = "sqlite:///./data/blueme.db"

    UPLOAD_DIR: str = "public/uploads/profile-pictures"
    UPLOAD_URL_PREFIX: str = "/uploads/profile-pictures"
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024


@lru_cache()
def get_settings() -> Settings:
    """Cached so .env is read once per process."""
    return Settings()


settings = get_settings()
