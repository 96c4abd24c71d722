from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SessionType(str, Enum):
    QUALI = "QUALI"
    RACE = "RACE"


class ClassificationStatus(str, Enum):
    CLASSIFIED = "classified"
    NOT_CLASSIFIED = "not_classified"
    RETIRED = "retired"


class OrmModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class SessionMetadata(OrmModel):
    id: str
    name: str
    type: SessionType
    date: datetime
    result_count: int = 0
    lap_count: int = 0


class DriverRef(OrmModel):
    id: str
    first_name: str
    last_name: str
    nationality: Optional[str] = None


class TeamRef(OrmModel):
    id: str
    name: str


class VehicleRef(OrmModel):
    id: str
    model: str
    vehicle_class: str
    class_short: Optional[str] = None


class ResultEntry(BaseModel):
    id: int
    start_number: int
    position: Optional[int] = Field(None, description="Position reconstructed from lap data")
    recorded_position: Optional[int] = Field(None, description="Position as stored by the import")
    classification: ClassificationStatus
    class_position: Optional[int] = None
    laps: Optional[int] = None
    best_lap_time: Optional[float] = None
    total_time: Optional[float] = None
    gap: Optional[str] = None
    interval: Optional[str] = None
    status: Optional[str] = None
    pit_stop_count: int = 0
    driver: DriverRef
    team: TeamRef
    vehicle: VehicleRef


class LapEntry(BaseModel):
    id: int
    start_number: int
    lap_number: int
    lap_time: float
    in_pit: bool = False
    pit_duration: Optional[float] = None
    driver: DriverRef
    vehicle: VehicleRef


class SectorEntry(OrmModel):
    id: int
    start_number: int
    lap_number: int
    sector1: Optional[float] = None
    sector2: Optional[float] = None
    sector3: Optional[float] = None
    sector4: Optional[float] = None
    sector5: Optional[float] = None
    driver: DriverRef
    vehicle: VehicleRef


class LapPosition(BaseModel):
    lap: int
    position: int
    lap_time: float
