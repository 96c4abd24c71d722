"""Tests for the lap/weather alignment and statistics engine."""

import math
from dataclasses import dataclass
from typing import Optional

import pytest

from services.results.engine import (
    RACE_START_HOUR,
    QUALI_START_HOUR,
    TaggedLap,
    align_laps,
    average_lap_times,
    clamp_percent,
    driver_lap_stats,
    estimate_lap_clock,
    lap_positions,
    nearest_sample_index,
    reconstruct_classification,
    session_start_minutes,
    split_wet_dry,
    tag_laps,
    time_to_minutes,
    top_percent_average,
)
from services.results.models import Lap
from shared.schemas.session import ClassificationStatus
from shared.schemas.weather import HourlySample, LapWeather


@dataclass
class StoredResult:
    start_number: int
    position: Optional[int]


def lap(start_number: int, lap_number: int, lap_time: float) -> Lap:
    return Lap(session_id="s1", start_number=start_number, lap_number=lap_number, lap_time=lap_time)


def hourly(*times: str, precipitation=None) -> list:
    precipitation = precipitation or [0.0] * len(times)
    return [
        HourlySample(time=t, temperature=10.0 + i, precipitation=p, weather_code=3)
        for i, (t, p) in enumerate(zip(times, precipitation))
    ]


class TestClock:
    def test_session_start_by_type(self):
        assert session_start_minutes("QUALI") == QUALI_START_HOUR * 60 == 540
        assert session_start_minutes("RACE") == RACE_START_HOUR * 60 == 720

    def test_time_to_minutes_accepts_iso_timestamps(self):
        assert time_to_minutes("09:30") == 570
        assert time_to_minutes("2025-05-10T13:00") == 780

    def test_average_is_across_the_field_per_lap_number(self):
        laps = [lap(1, 2, 100.0), lap(2, 1, 90.0), lap(1, 1, 110.0), lap(3, 2, 120.0)]

        averages = average_lap_times(laps)

        assert list(averages) == [1, 2]
        assert averages[1] == pytest.approx(100.0)
        assert averages[2] == pytest.approx(110.0)

    def test_cumulative_offset_is_monotonic_for_constant_laps(self):
        laps = [lap(car, n, 480.0) for car in (1, 2, 3) for n in range(1, 8)]

        clocks = estimate_lap_clock(laps, 720)

        elapsed = [c.elapsed_minutes for c in clocks]
        assert elapsed == sorted(elapsed)
        assert clocks[-1].clock_minutes == pytest.approx(720 + 7 * 8)

    def test_quali_scenario_matches_nine_oclock(self):
        laps = [lap(1, 1, 500.0), lap(2, 1, 500.0), lap(1, 2, 500.0), lap(2, 2, 500.0)]
        samples = hourly("09:00", "10:00")

        aligned = align_laps(laps, samples, session_start_minutes("QUALI"))

        assert aligned[1].lap_number == 2
        assert aligned[1].estimated_clock_minutes == pytest.approx(540 + 2 * 500 / 60)
        assert aligned[1].time == "09:00"
        assert aligned[1].matched_sample_index == 0


class TestNearestSample:
    def test_picks_smallest_difference(self):
        assert nearest_sample_index([540, 600, 660], 640) == 2

    def test_exact_tie_prefers_earlier_sample(self):
        assert nearest_sample_index([720, 780], 750) == 0

    def test_exact_tie_prefers_earlier_sample_regardless_of_order(self):
        assert nearest_sample_index([780, 720], 750) == 1

    def test_no_samples(self):
        assert nearest_sample_index([], 750) is None


class TestAlignLaps:
    def test_one_entry_per_distinct_lap_number(self):
        laps = [lap(1, 1, 600.0), lap(2, 1, 610.0), lap(1, 2, 600.0), lap(1, 5, 600.0)]
        samples = hourly(*[f"{h:02d}:00" for h in range(24)])

        aligned = align_laps(laps, samples, 720)

        assert [entry.lap_number for entry in aligned] == [1, 2, 5]
        assert all(0 <= entry.matched_sample_index < len(samples) for entry in aligned)

    def test_empty_lap_set(self):
        assert align_laps([], hourly("12:00"), 720) == []

    def test_missing_precipitation_stays_null(self):
        samples = [HourlySample(time="12:00", temperature=12.0)]

        aligned = align_laps([lap(1, 1, 600.0)], samples, 720)

        assert aligned[0].precipitation is None
        assert aligned[0].temperature == 12.0

    def test_no_samples_still_maps_every_lap(self):
        aligned = align_laps([lap(1, 1, 600.0), lap(1, 2, 600.0)], [], 720)

        assert [entry.matched_sample_index for entry in aligned] == [None, None]

    def test_per_point_values_read_at_matched_index(self):
        samples = hourly("12:00", "13:00")
        north = hourly("12:00", "13:00", precipitation=[0.0, 2.0])

        aligned = align_laps([lap(1, 1, 3600.0)], samples, 720, per_point=[("Nord", north)])

        assert aligned[0].matched_sample_index == 1
        assert aligned[0].per_point[0].name == "Nord"
        assert aligned[0].per_point[0].precipitation == 2.0

    def test_recomputing_gives_identical_output(self):
        laps = [lap(c, n, 480.0 + c) for c in (1, 2) for n in (1, 2, 3)]
        samples = hourly("12:00", "13:00")

        assert align_laps(laps, samples, 720) == align_laps(laps, samples, 720)


class TestWetDry:
    def test_clamp_percent(self):
        assert clamp_percent(None) == 3
        assert clamp_percent(0) == 1
        assert clamp_percent(50) == 10
        assert clamp_percent(5) == 5
        assert clamp_percent(2.5) == 2.5
        assert clamp_percent(12.5) == 10

    def test_top_percent_uses_ceiling(self):
        assert top_percent_average([62.0, 60.0, 61.0], 3) == 60.0
        assert top_percent_average([64.0, 60.0, 62.0, 61.0], 50) == pytest.approx(60.5)
        assert top_percent_average([], 3) is None

    def test_split_by_precipitation_threshold(self):
        laps = [TaggedLap(60.0, 0.5), TaggedLap(61.0, 0.2), TaggedLap(62.0, 0.0)]

        split = split_wet_dry(laps, 50)

        assert split.dry.avg_lap_time == 62.0
        assert split.dry.lap_count == 1
        assert split.wet.avg_lap_time == 60.0
        assert split.wet.lap_count == 2

    def test_threshold_and_unknown_count_as_dry(self):
        split = split_wet_dry([TaggedLap(60.0, 0.1), TaggedLap(70.0, None)], 10)

        assert split.dry.lap_count == 2
        assert split.wet.lap_count == 0
        assert split.wet.avg_lap_time is None

    def test_empty_input(self):
        split = split_wet_dry([], 3)

        assert split.dry.avg_lap_time is None and split.dry.lap_count == 0
        assert split.wet.avg_lap_time is None and split.wet.lap_count == 0

    def test_tag_laps_by_lap_number(self):
        weather = [
            LapWeather(lap_number=1, estimated_clock_minutes=730, precipitation=0.0),
            LapWeather(lap_number=2, estimated_clock_minutes=740, precipitation=1.5),
        ]

        tagged = tag_laps([lap(7, 2, 601.0), lap(7, 3, 602.0)], weather)

        assert tagged == [TaggedLap(601.0, 1.5), TaggedLap(602.0, None)]


class TestDriverStats:
    def test_population_statistics(self):
        stats = driver_lap_stats([600.0, 600.0, 600.0, 590.0])

        assert stats.total_laps == 4
        assert stats.best_lap == 590.0
        assert stats.avg_lap_time == pytest.approx(597.5)
        assert stats.std_dev_lap_time == pytest.approx(math.sqrt(18.75))

    def test_no_laps(self):
        stats = driver_lap_stats([])

        assert stats.total_laps == 0
        assert stats.best_lap is None
        assert stats.avg_lap_time is None
        assert stats.std_dev_lap_time is None


class TestClassification:
    def test_final_lap_ties_break_on_start_number(self):
        laps = [lap(3, 1, 60.5), lap(1, 1, 61.0), lap(2, 1, 60.5)]

        ranked = reconstruct_classification([], laps)

        assert [(c.start_number, c.position) for c in ranked] == [(2, 1), (3, 2), (1, 3)]
        assert all(c.status == ClassificationStatus.CLASSIFIED for c in ranked)

    def test_non_finishers_and_retirements_ranked_after_finishers(self):
        laps = [
            lap(10, 1, 600.0), lap(10, 2, 610.0),
            lap(20, 1, 590.0), lap(20, 2, 605.0),
            lap(30, 1, 595.0),
            lap(40, 1, 580.0),
        ]
        results = [StoredResult(s, p) for s, p in [(10, 1), (20, 2), (30, 3), (40, 4), (50, None), (60, 5)]]

        ranked = reconstruct_classification(results, laps)

        assert [c.start_number for c in ranked] == [20, 10, 40, 30, 60, 50]
        assert [c.status for c in ranked] == [
            ClassificationStatus.CLASSIFIED,
            ClassificationStatus.CLASSIFIED,
            ClassificationStatus.NOT_CLASSIFIED,
            ClassificationStatus.NOT_CLASSIFIED,
            ClassificationStatus.RETIRED,
            ClassificationStatus.RETIRED,
        ]
        assert [c.position for c in ranked] == [1, 2, 3, 4, 5, 6]
        assert ranked[2].laps_completed == 1
        assert ranked[-1].last_lap_time is None

    def test_no_laps_keeps_recorded_order(self):
        results = [StoredResult(5, 2), StoredResult(9, 1)]

        ranked = reconstruct_classification(results, [])

        assert [c.start_number for c in ranked] == [9, 5]


class TestLapPositions:
    def test_rank_per_lap(self):
        laps = [
            lap(1, 1, 100.0), lap(2, 1, 99.0),
            lap(1, 2, 98.0), lap(2, 2, 99.0),
            lap(2, 3, 97.0),
        ]

        positions = lap_positions(laps, 1)

        assert [(p.lap, p.position, p.lap_time) for p in positions] == [(1, 2, 100.0), (2, 1, 98.0)]
