from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .session import DriverRef, OrmModel, SessionType, TeamRef, VehicleRef


class SessionRef(OrmModel):
    id: str
    name: str
    type: SessionType
    date: datetime


class DriverResult(OrmModel):
    id: int
    start_number: int
    position: Optional[int] = None
    laps: Optional[int] = None
    best_lap_time: Optional[float] = None
    status: Optional[str] = None
    session: SessionRef
    team: TeamRef
    vehicle: VehicleRef


class DriverDetail(DriverRef):
    start_number: Optional[int] = None
    results: List[DriverResult] = Field(default_factory=list)


class TeamResult(OrmModel):
    id: int
    start_number: int
    position: Optional[int] = None
    laps: Optional[int] = None
    best_lap_time: Optional[float] = None
    status: Optional[str] = None
    session: SessionRef
    driver: DriverRef
    vehicle: VehicleRef


class TeamDetail(TeamRef):
    results: List[TeamResult] = Field(default_factory=list)


class DriverLapStats(BaseModel):
    total_laps: int = 0
    best_lap: Optional[float] = None
    avg_lap_time: Optional[float] = None
    std_dev_lap_time: Optional[float] = Field(
        None, description="Population standard deviation, lower is more consistent"
    )


class BucketAverage(BaseModel):
    avg_lap_time: Optional[float] = None
    lap_count: int = 0


class WetDrySummary(BaseModel):
    driver_id: str
    percent: float
    dry: BucketAverage = Field(default_factory=BucketAverage)
    wet: BucketAverage = Field(default_factory=BucketAverage)
