from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class WeatherPoint(BaseModel):
    name: str
    latitude: float
    longitude: float


class HourlySample(BaseModel):
    time: str = Field(..., description="HH:MM, local to the session date")
    temperature: Optional[float] = None
    precipitation: Optional[float] = None
    weather_code: Optional[int] = None


class HourlySeries(BaseModel):
    """Hourly arrays as the archive API returns them, times already trimmed to HH:MM."""

    time: List[str] = Field(default_factory=list)
    temperature_2m: List[Optional[float]] = Field(default_factory=list)
    precipitation: List[Optional[float]] = Field(default_factory=list)
    weather_code: List[Optional[int]] = Field(default_factory=list)

    def samples(self) -> List[HourlySample]:
        return [
            HourlySample(
                time=time,
                temperature=_at(self.temperature_2m, idx),
                precipitation=_at(self.precipitation, idx),
                weather_code=_at(self.weather_code, idx),
            )
            for idx, time in enumerate(self.time)
        ]


class PointWeather(BaseModel):
    name: str
    temperature: Optional[float] = None
    precipitation: Optional[float] = None
    weather_code: Optional[int] = None


class LapWeather(BaseModel):
    lap_number: int
    estimated_clock_minutes: float
    matched_sample_index: Optional[int] = None
    time: Optional[str] = None
    temperature: Optional[float] = None
    precipitation: Optional[float] = None
    weather_code: Optional[int] = None
    per_point: List[PointWeather] = Field(default_factory=list)


class SessionWeather(BaseModel):
    date: str
    location: str
    points: List[WeatherPoint]
    hourly: HourlySeries
    lap_weather: List[LapWeather] = Field(default_factory=list)


def _at(values: list, index: int):
    return values[index] if index < len(values) else None
