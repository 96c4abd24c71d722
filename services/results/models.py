from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return uuid.uuid4().hex


class Base(AsyncAttrs, DeclarativeBase):
    pass


class Session(Base):
    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(128), index=True)
    type: Mapped[str] = mapped_column(String(16))
    date: Mapped[datetime] = mapped_column(DateTime)

    results: Mapped[List["Result"]] = relationship(
        "Result", back_populates="session", cascade="all, delete-orphan"
    )
    laps: Mapped[List["Lap"]] = relationship(
        "Lap", back_populates="session", cascade="all, delete-orphan"
    )


class Driver(Base):
    __tablename__ = "drivers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    first_name: Mapped[str] = mapped_column(String(128))
    last_name: Mapped[str] = mapped_column(String(128), index=True)
    nationality: Mapped[Optional[str]] = mapped_column(String(16))
    start_number: Mapped[Optional[int]] = mapped_column(Integer)

    results: Mapped[List["Result"]] = relationship("Result", back_populates="driver")


class Team(Base):
    __tablename__ = "teams"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(256), unique=True)

    vehicles: Mapped[List["Vehicle"]] = relationship("Vehicle", back_populates="team")
    results: Mapped[List["Result"]] = relationship("Result", back_populates="team")


class Vehicle(Base):
    __tablename__ = "vehicles"

    id: Mapped[str] = mapped_column(String(320), primary_key=True)
    model: Mapped[str] = mapped_column(String(256))
    vehicle_class: Mapped[str] = mapped_column(String(64))
    class_short: Mapped[Optional[str]] = mapped_column(String(32))
    team_id: Mapped[str] = mapped_column(ForeignKey("teams.id"))

    team: Mapped["Team"] = relationship("Team", back_populates="vehicles")


class Result(Base):
    __tablename__ = "results"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(ForeignKey("sessions.id", ondelete="CASCADE"), index=True)
    start_number: Mapped[int] = mapped_column(Integer, index=True)
    position: Mapped[Optional[int]] = mapped_column(Integer)
    class_position: Mapped[Optional[int]] = mapped_column(Integer)
    laps: Mapped[Optional[int]] = mapped_column(Integer)
    best_lap_time: Mapped[Optional[float]] = mapped_column(Float)
    total_time: Mapped[Optional[float]] = mapped_column(Float)
    gap: Mapped[Optional[str]] = mapped_column(String(64))
    interval: Mapped[Optional[str]] = mapped_column(String(64))
    status: Mapped[Optional[str]] = mapped_column(String(32))
    driver_id: Mapped[str] = mapped_column(ForeignKey("drivers.id"))
    team_id: Mapped[str] = mapped_column(ForeignKey("teams.id"))
    vehicle_id: Mapped[str] = mapped_column(ForeignKey("vehicles.id"))

    session: Mapped["Session"] = relationship("Session", back_populates="results")
    driver: Mapped["Driver"] = relationship("Driver", back_populates="results")
    team: Mapped["Team"] = relationship("Team", back_populates="results")
    vehicle: Mapped["Vehicle"] = relationship("Vehicle")


class Lap(Base):
    __tablename__ = "laps"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(ForeignKey("sessions.id", ondelete="CASCADE"), index=True)
    start_number: Mapped[int] = mapped_column(Integer)
    lap_number: Mapped[int] = mapped_column(Integer, index=True)
    lap_time: Mapped[float] = mapped_column(Float)
    driver_id: Mapped[str] = mapped_column(ForeignKey("drivers.id"), index=True)
    vehicle_id: Mapped[str] = mapped_column(ForeignKey("vehicles.id"))

    session: Mapped["Session"] = relationship("Session", back_populates="laps")
    driver: Mapped["Driver"] = relationship("Driver")
    vehicle: Mapped["Vehicle"] = relationship("Vehicle")

    __table_args__ = (
        UniqueConstraint("session_id", "start_number", "lap_number", name="uq_session_car_lap"),
    )


class SectorTime(Base):
    __tablename__ = "sector_times"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(ForeignKey("sessions.id", ondelete="CASCADE"), index=True)
    start_number: Mapped[int] = mapped_column(Integer)
    lap_number: Mapped[int] = mapped_column(Integer)
    sector1: Mapped[Optional[float]] = mapped_column(Float)
    sector2: Mapped[Optional[float]] = mapped_column(Float)
    sector3: Mapped[Optional[float]] = mapped_column(Float)
    sector4: Mapped[Optional[float]] = mapped_column(Float)
    sector5: Mapped[Optional[float]] = mapped_column(Float)
    driver_id: Mapped[str] = mapped_column(ForeignKey("drivers.id"))
    vehicle_id: Mapped[str] = mapped_column(ForeignKey("vehicles.id"))

    driver: Mapped["Driver"] = relationship("Driver")
    vehicle: Mapped["Vehicle"] = relationship("Vehicle")


class PitStop(Base):
    __tablename__ = "pit_stops"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(ForeignKey("sessions.id", ondelete="CASCADE"), index=True)
    team_id: Mapped[str] = mapped_column(ForeignKey("teams.id"))
    start_number: Mapped[int] = mapped_column(Integer)
    lap_number: Mapped[int] = mapped_column(Integer)
    duration: Mapped[Optional[float]] = mapped_column(Float)
