from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from shared.schemas.driver import BucketAverage, DriverLapStats
from shared.schemas.session import ClassificationStatus, LapPosition, SessionType
from shared.schemas.weather import HourlySample, LapWeather, PointWeather

QUALI_START_HOUR = 9
RACE_START_HOUR = 12

WET_THRESHOLD_MM = 0.1
DEFAULT_TOP_PERCENT = 3
MIN_TOP_PERCENT = 1
MAX_TOP_PERCENT = 10


class TimedLap(Protocol):
    start_number: int
    lap_number: int
    lap_time: float


class RecordedResult(Protocol):
    start_number: int
    position: Optional[int]


@dataclass(frozen=True)
class LapClock:
    lap_number: int
    avg_lap_time: float
    elapsed_minutes: float
    clock_minutes: float


@dataclass(frozen=True)
class TaggedLap:
    lap_time: float
    precipitation: Optional[float]


@dataclass(frozen=True)
class WetDrySplit:
    dry: BucketAverage
    wet: BucketAverage


@dataclass(frozen=True)
class Classification:
    start_number: int
    position: int
    status: ClassificationStatus
    laps_completed: int
    last_lap_time: Optional[float]


# -- temporal alignment -------------------------------------------------------


def session_start_minutes(session_type: str) -> int:
    hour = QUALI_START_HOUR if session_type == SessionType.QUALI else RACE_START_HOUR
    return hour * 60


def to_time_only(value: str) -> str:
    if "T" in value:
        value = value.split("T", 1)[1]
    return value[:5]


def time_to_minutes(value: str) -> int:
    hours, minutes = to_time_only(value).split(":")
    return int(hours) * 60 + int(minutes)


def average_lap_times(laps: Iterable[TimedLap]) -> Dict[int, float]:
    """Field-average lap time per lap number, ordered by lap number."""
    groups: Dict[int, List[float]] = defaultdict(list)
    for lap in laps:
        groups[lap.lap_number].append(lap.lap_time)
    return {number: sum(times) / len(times) for number, times in sorted(groups.items())}


def estimate_lap_clock(laps: Iterable[TimedLap], start_minutes: float) -> List[LapClock]:
    clocks: List[LapClock] = []
    elapsed = 0.0
    for lap_number, avg_seconds in average_lap_times(laps).items():
        elapsed += avg_seconds / 60
        clocks.append(
            LapClock(
                lap_number=lap_number,
                avg_lap_time=avg_seconds,
                elapsed_minutes=elapsed,
                clock_minutes=start_minutes + elapsed,
            )
        )
    return clocks


def nearest_sample_index(sample_minutes: Sequence[float], target: float) -> Optional[int]:
    """Closest sample to ``target``; the earlier sample wins an exact tie."""
    best_index: Optional[int] = None
    best_diff = math.inf
    for index, minutes in enumerate(sample_minutes):
        diff = abs(minutes - target)
        if diff < best_diff or (
            diff == best_diff and best_index is not None and minutes < sample_minutes[best_index]
        ):
            best_index = index
            best_diff = diff
    return best_index


def align_laps(
    laps: Iterable[TimedLap],
    samples: Sequence[HourlySample],
    start_minutes: float,
    per_point: Sequence[Tuple[str, Sequence[HourlySample]]] = (),
) -> List[LapWeather]:
    """Map every lap number of a session onto the nearest hourly sample.

    The clock estimate uses the field-average lap time, so it tracks the pack
    rather than any single car. ``per_point`` carries the raw series of each
    weather station; their values are read at the matched index.
    """
    sample_minutes = [time_to_minutes(sample.time) for sample in samples]
    aligned: List[LapWeather] = []
    for clock in estimate_lap_clock(laps, start_minutes):
        index = nearest_sample_index(sample_minutes, clock.clock_minutes)
        sample = samples[index] if index is not None else None
        points = []
        for name, series in per_point:
            point_sample = series[index] if index is not None and index < len(series) else None
            points.append(
                PointWeather(
                    name=name,
                    temperature=point_sample.temperature if point_sample else None,
                    precipitation=point_sample.precipitation if point_sample else None,
                    weather_code=point_sample.weather_code if point_sample else None,
                )
            )
        aligned.append(
            LapWeather(
                lap_number=clock.lap_number,
                estimated_clock_minutes=clock.clock_minutes,
                matched_sample_index=index,
                time=sample.time if sample else None,
                temperature=sample.temperature if sample else None,
                precipitation=sample.precipitation if sample else None,
                weather_code=sample.weather_code if sample else None,
                per_point=points,
            )
        )
    return aligned


# -- wet/dry aggregation ------------------------------------------------------


def clamp_percent(percent: Optional[float]) -> float:
    if percent is None:
        return DEFAULT_TOP_PERCENT
    return float(max(MIN_TOP_PERCENT, min(MAX_TOP_PERCENT, percent)))


def is_wet(precipitation: Optional[float]) -> bool:
    return precipitation is not None and precipitation > WET_THRESHOLD_MM


def top_percent_average(times: Sequence[float], percent: float) -> Optional[float]:
    if not times:
        return None
    count = max(1, math.ceil(len(times) * percent / 100))
    fastest = sorted(times)[:count]
    return sum(fastest) / len(fastest)


def tag_laps(laps: Iterable[TimedLap], lap_weather: Iterable[LapWeather]) -> List[TaggedLap]:
    precipitation = {entry.lap_number: entry.precipitation for entry in lap_weather}
    return [TaggedLap(lap.lap_time, precipitation.get(lap.lap_number)) for lap in laps]


def split_wet_dry(laps: Iterable[TaggedLap], percent: float) -> WetDrySplit:
    wet: List[float] = []
    dry: List[float] = []
    for lap in laps:
        (wet if is_wet(lap.precipitation) else dry).append(lap.lap_time)
    return WetDrySplit(
        dry=BucketAverage(avg_lap_time=top_percent_average(dry, percent), lap_count=len(dry)),
        wet=BucketAverage(avg_lap_time=top_percent_average(wet, percent), lap_count=len(wet)),
    )


def driver_lap_stats(times: Sequence[float]) -> DriverLapStats:
    if not times:
        return DriverLapStats()
    values = np.asarray(times, dtype=float)
    return DriverLapStats(
        total_laps=int(values.size),
        best_lap=float(values.min()),
        avg_lap_time=float(values.mean()),
        std_dev_lap_time=float(values.std()),
    )


# -- classification -----------------------------------------------------------


def reconstruct_classification(
    results: Iterable[RecordedResult], laps: Iterable[TimedLap]
) -> List[Classification]:
    """Rank every car from lap data alone.

    Cars on the final lap come first by their time on that lap, then cars that
    stopped earlier by laps completed and last lap time, then cars without any
    lap by their recorded position. Start number breaks every remaining tie.
    """
    last_laps: Dict[int, Tuple[int, float]] = {}
    for lap in laps:
        current = last_laps.get(lap.start_number)
        if current is None or lap.lap_number > current[0]:
            last_laps[lap.start_number] = (lap.lap_number, lap.lap_time)

    recorded: Dict[int, Optional[int]] = {}
    for result in results:
        recorded.setdefault(result.start_number, result.position)

    final_lap = max((number for number, _ in last_laps.values()), default=0)
    classified = sorted(
        (time, start_number)
        for start_number, (number, time) in last_laps.items()
        if number == final_lap
    )
    not_classified = sorted(
        (-number, time, start_number)
        for start_number, (number, time) in last_laps.items()
        if number < final_lap
    )
    retired = sorted(
        (start_number for start_number in recorded if start_number not in last_laps),
        key=lambda sn: (recorded[sn] is None, recorded[sn] or 0, sn),
    )

    ordered: List[Tuple[int, ClassificationStatus]] = (
        [(sn, ClassificationStatus.CLASSIFIED) for _, sn in classified]
        + [(sn, ClassificationStatus.NOT_CLASSIFIED) for _, _, sn in not_classified]
        + [(sn, ClassificationStatus.RETIRED) for sn in retired]
    )
    classification: List[Classification] = []
    for position, (start_number, status) in enumerate(ordered, start=1):
        last = last_laps.get(start_number)
        classification.append(
            Classification(
                start_number=start_number,
                position=position,
                status=status,
                laps_completed=last[0] if last else 0,
                last_lap_time=last[1] if last else None,
            )
        )
    return classification


def lap_positions(laps: Iterable[TimedLap], start_number: int) -> List[LapPosition]:
    """Running position of one car: its rank among all times on each lap number."""
    by_lap: Dict[int, List[Tuple[float, int]]] = defaultdict(list)
    for lap in laps:
        by_lap[lap.lap_number].append((lap.lap_time, lap.start_number))

    positions: List[LapPosition] = []
    for lap_number, entries in sorted(by_lap.items()):
        ranked = sorted(entries)
        for rank, (lap_time, car) in enumerate(ranked, start=1):
            if car == start_number:
                positions.append(LapPosition(lap=lap_number, position=rank, lap_time=lap_time))
                break
    return positions
