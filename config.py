"""Service configuration loaded from environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_title: str = Field(default="Bitespeed Contact Reconciliation API")

    # SQLite
    database_path: str = Field(default="contacts.db")
    database_timeout: float = Field(default=5.0)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="text")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)


@lru_cache
def get_settings() -> Settings:
    return Settings()
