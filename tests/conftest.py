"""Pytest configuration and fixtures."""

import os
from datetime import datetime

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from services.results.database import init_db
from services.results.main import app, get_db_session, get_weather_service
from services.results.models import Driver, Lap, PitStop, Result, Session, Team, Vehicle
from services.results.weather import OpenMeteoClient, WeatherService
from shared.utils.cache import WeatherCache

from tests.weather_stub import WeatherTransport



@pytest.fixture
def weather_transport():
    return WeatherTransport()


@pytest_asyncio.fixture
async def weather_service(weather_transport):
    async with httpx.AsyncClient(transport=httpx.MockTransport(weather_transport)) as http:
        client = OpenMeteoClient(http, "https://archive.test/v1/archive", "Europe/Berlin")
        yield WeatherService(client, cache=WeatherCache(redis_url="", ttl_seconds=3600))


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seeded(db_session):
    """A four-car race and a short qualifying.

    Every race lap takes 600 s on field average, so laps 1-3 land on the 12:00
    sample (lap 3 exactly between 12:00 and 13:00) and lap 4 on 13:00.
    Car 3 stops after lap 3; car 4 never sets a lap.
    """
    race = Session(id="race", name="NLS3 2025 Rennen", type="RACE", date=datetime(2025, 5, 10, 12))
    quali = Session(id="quali", name="NLS3 2025 Zeittraining", type="QUALI", date=datetime(2025, 5, 9, 9))
    team = Team(id="team-a", name="Manthey Racing")
    team_b = Team(id="team-b", name="Falken Motorsports")
    vehicle = Vehicle(id="team-a_911", model="Porsche 911 GT3 R", vehicle_class="SP9", team_id="team-a")
    vehicle_b = Vehicle(id="team-b_911", model="Porsche 911 GT3 R", vehicle_class="SP9", team_id="team-b")
    drivers = {
        1: Driver(id="d1", first_name="Kevin", last_name="Estre", nationality="FRA", start_number=1),
        2: Driver(id="d2", first_name="Klaus", last_name="Bachler", nationality="AUT", start_number=2),
        3: Driver(id="d3", first_name="Tim", last_name="Heinemann", nationality="GER", start_number=3),
        4: Driver(id="d4", first_name="Sven", last_name="Mueller", nationality="GER", start_number=4),
    }
    db_session.add_all([race, quali, team, team_b, vehicle, vehicle_b, *drivers.values()])
    await db_session.flush()

    recorded = {1: 2, 2: 1, 3: 3, 4: 4}
    for car, driver in drivers.items():
        db_session.add(
            Result(
                session_id="race",
                start_number=car,
                position=recorded[car],
                laps=None,
                best_lap_time=None,
                status="DNS" if car == 4 else None,
                driver_id=driver.id,
                team_id="team-a" if car % 2 else "team-b",
                vehicle_id="team-a_911" if car % 2 else "team-b_911",
            )
        )

    lap_times = {
        1: [600.0, 600.0, 600.0, 590.0],
        2: [600.0, 600.0, 600.0, 610.0],
        3: [600.0, 600.0, 600.0],
    }
    for car, times in lap_times.items():
        for number, lap_time in enumerate(times, start=1):
            db_session.add(
                Lap(
                    session_id="race",
                    start_number=car,
                    lap_number=number,
                    lap_time=lap_time,
                    driver_id=drivers[car].id,
                    vehicle_id="team-a_911" if car % 2 else "team-b_911",
                )
            )
    for number, lap_time in enumerate([500.0, 495.0], start=1):
        db_session.add(
            Lap(
                session_id="quali",
                start_number=1,
                lap_number=number,
                lap_time=lap_time,
                driver_id="d1",
                vehicle_id="team-a_911",
            )
        )

    db_session.add(PitStop(session_id="race", team_id="team-a", start_number=1, lap_number=2, duration=65.2))
    db_session.add(PitStop(session_id="race", team_id="team-b", start_number=2, lap_number=3, duration=None))
    await db_session.commit()
    return {"race": race.id, "quali": quali.id, "drivers": {car: d.id for car, d in drivers.items()}}


@pytest_asyncio.fixture
async def api_client(session_factory, weather_service, seeded):
    async def override_db_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_weather_service] = lambda: weather_service
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
