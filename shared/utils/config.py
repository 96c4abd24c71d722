from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CoreSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    log_level: str = Field("INFO")
    redis_url: Optional[str] = Field(None)
    database_url: str = Field("sqlite+aiosqlite:///./data/app.db")

    frontend_url: str = Field("http://localhost:3000")

    weather_api_url: str = Field("https://archive-api.open-meteo.com/v1/archive")
    weather_timezone: str = Field("Europe/Berlin")
    weather_timeout: float = Field(10.0, description="Seconds per weather request")
    weather_cache_ttl: int = Field(6 * 3600, description="Seconds, 0 disables the cache")

    reimport_existing: bool = Field(False)


@lru_cache()
def get_settings() -> CoreSettings:
    # Ensure data directory exists when using default SQLite path
    db_url = os.environ.get("DATABASE_URL")
    if not db_url:
        os.makedirs("data", exist_ok=True)
    return CoreSettings()
