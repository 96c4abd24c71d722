from __future__ import annotations

import json
import time
from typing import Any, Dict, Optional, Tuple

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from .config import get_settings
from .logging import configure_logging

logger = configure_logging("weather_cache")


def weather_cache_key(session_id: str, date_str: str) -> str:
    return f"weather:{session_id}:{date_str}"


class WeatherCache:
    """Keyed store for fetched hourly weather, Redis-backed when configured."""

    def __init__(self, redis_url: Optional[str] = None, ttl_seconds: Optional[int] = None) -> None:
        settings = get_settings()
        self.redis_url = redis_url if redis_url is not None else settings.redis_url
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.weather_cache_ttl
        self._redis: Optional[aioredis.Redis] = None
        self._entries: Dict[str, Tuple[float, str]] = {}

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    async def connect(self) -> None:
        if self.redis_url:
            self._redis = aioredis.from_url(self.redis_url)
            logger.info("Connected to Redis at %s", self.redis_url)
        else:
            logger.info("Using in-memory weather cache")

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def get(self, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        if self._redis:
            try:
                raw = await self._redis.get(key)
            except RedisError as exc:
                logger.warning("Weather cache read failed for %s, fetching instead: %s", key, exc)
                return None
        else:
            entry = self._entries.get(key)
            raw = None
            if entry:
                expires_at, raw = entry
                if expires_at < time.monotonic():
                    del self._entries[key]
                    raw = None
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        if not self.enabled:
            return
        data = json.dumps(value)
        if self._redis:
            try:
                await self._redis.set(key, data, ex=self.ttl_seconds)
            except RedisError as exc:
                logger.warning("Weather cache write failed for %s: %s", key, exc)
        else:
            self._entries[key] = (time.monotonic() + self.ttl_seconds, data)

    async def invalidate_session(self, session_id: str) -> int:
        """Drop every cached date for one session. Returns the number of keys removed."""
        prefix = weather_cache_key(session_id, "")
        if self._redis:
            keys = [key async for key in self._redis.scan_iter(match=f"{prefix}*")]
            if not keys:
                return 0
            removed = await self._redis.delete(*keys)
        else:
            keys = [key for key in self._entries if key.startswith(prefix)]
            for key in keys:
                del self._entries[key]
            removed = len(keys)
        logger.info("Invalidated %s cached weather entries for session %s", removed, session_id)
        return removed
