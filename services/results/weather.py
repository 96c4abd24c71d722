from __future__ import annotations

import asyncio
from typing import Iterable, List, Optional, Sequence

import httpx
from pydantic import ValidationError

from shared.schemas.weather import HourlySeries, SessionWeather, WeatherPoint
from shared.utils.cache import WeatherCache, weather_cache_key
from shared.utils.errors import UpstreamError
from shared.utils.logging import configure_logging

from .engine import TimedLap, align_laps, session_start_minutes, to_time_only
from .models import Session

logger = configure_logging("results.weather")

LOCATION = "Nürburgring"

# Nürburgring area points (north, east, south, west)
NURBURGRING_POINTS = [
    WeatherPoint(name="Nord", latitude=50.3700, longitude=7.2678),
    WeatherPoint(name="Ost", latitude=50.3395, longitude=7.3200),
    WeatherPoint(name="Sued", latitude=50.3100, longitude=7.2678),
    WeatherPoint(name="West", latitude=50.3395, longitude=7.2200),
]

HOURLY_FIELDS = "temperature_2m,precipitation,weather_code"


class OpenMeteoClient:
    """Historical hourly weather from the Open-Meteo archive API."""

    def __init__(self, http_client: httpx.AsyncClient, base_url: str, timezone: str) -> None:
        self._http = http_client
        self.base_url = base_url
        self.timezone = timezone

    async def fetch_hourly(self, point: WeatherPoint, date_str: str) -> HourlySeries:
        params = {
            "latitude": point.latitude,
            "longitude": point.longitude,
            "start_date": date_str,
            "end_date": date_str,
            "hourly": HOURLY_FIELDS,
            "timezone": self.timezone,
        }
        try:
            response = await self._http.get(self.base_url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Weather request failed for point {point.name}: {exc}") from exc
        except ValueError as exc:
            raise UpstreamError(f"Weather response for point {point.name} is not JSON") from exc

        hourly = payload.get("hourly") if isinstance(payload, dict) else None
        if not isinstance(hourly, dict) or not isinstance(hourly.get("time"), list):
            raise UpstreamError(f"Weather response for point {point.name} has no hourly data")

        try:
            return HourlySeries(
                time=[to_time_only(str(value)) for value in hourly["time"]],
                temperature_2m=hourly.get("temperature_2m") or [],
                precipitation=hourly.get("precipitation") or [],
                weather_code=hourly.get("weather_code") or [],
            )
        except ValidationError as exc:
            raise UpstreamError(f"Weather response for point {point.name} is malformed") from exc


def _mean(values: Iterable[Optional[float]]) -> Optional[float]:
    numbers = [value for value in values if isinstance(value, (int, float))]
    return sum(numbers) / len(numbers) if numbers else None


def _value_at(values: Sequence, index: int):
    return values[index] if index < len(values) else None


def average_hourly(by_point: Sequence[HourlySeries]) -> HourlySeries:
    """Average temperature and precipitation across points, hour by hour.

    Times and weather codes come from the first point.
    """
    if not by_point:
        return HourlySeries()
    base = by_point[0]
    hours = range(len(base.time))
    return HourlySeries(
        time=list(base.time),
        temperature_2m=[_mean(_value_at(s.temperature_2m, i) for s in by_point) for i in hours],
        precipitation=[_mean(_value_at(s.precipitation, i) for s in by_point) for i in hours],
        weather_code=list(base.weather_code),
    )


class WeatherService:
    def __init__(
        self,
        client: OpenMeteoClient,
        cache: Optional[WeatherCache] = None,
        points: Sequence[WeatherPoint] = tuple(NURBURGRING_POINTS),
        location: str = LOCATION,
    ) -> None:
        self.client = client
        self.cache = cache
        self.points = list(points)
        self.location = location

    async def hourly_by_point(self, session_id: str, date_str: str) -> List[HourlySeries]:
        key = weather_cache_key(session_id, date_str)
        if self.cache:
            cached = await self.cache.get(key)
            if cached is not None:
                logger.debug("Weather cache hit %s", key)
                return [HourlySeries.model_validate(item) for item in cached]

        series = await asyncio.gather(
            *(self.client.fetch_hourly(point, date_str) for point in self.points)
        )
        if self.cache:
            await self.cache.set(key, [item.model_dump() for item in series])
        return list(series)

    async def session_weather(self, session: Session, laps: Iterable[TimedLap]) -> SessionWeather:
        date_str = session.date.strftime("%Y-%m-%d")
        by_point = await self.hourly_by_point(session.id, date_str)
        averaged = average_hourly(by_point)
        per_point = [(point.name, series.samples()) for point, series in zip(self.points, by_point)]
        lap_weather = align_laps(
            laps,
            averaged.samples(),
            session_start_minutes(session.type),
            per_point=per_point,
        )
        logger.info(
            "Aligned %s lap numbers to %s hourly samples for session %s",
            len(lap_weather),
            len(averaged.time),
            session.id,
        )
        return SessionWeather(
            date=date_str,
            location=self.location,
            points=self.points,
            hourly=averaged,
            lap_weather=lap_weather,
        )
