from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional

import httpx
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from shared.schemas.driver import DriverDetail, DriverLapStats, TeamDetail, WetDrySummary
from shared.schemas.session import (
    DriverRef,
    LapEntry,
    LapPosition,
    ResultEntry,
    SectorEntry,
    SessionMetadata,
    TeamRef,
    VehicleRef,
)
from shared.schemas.weather import SessionWeather
from shared.utils.cache import WeatherCache
from shared.utils.config import get_settings
from shared.utils.errors import NotFoundError, RaceDataError
from shared.utils.logging import configure_logging

from .database import get_session, init_db
from .engine import (
    DEFAULT_TOP_PERCENT,
    TaggedLap,
    clamp_percent,
    driver_lap_stats,
    lap_positions,
    reconstruct_classification,
    split_wet_dry,
    tag_laps,
)
from .models import Lap, Session
from .repository import RaceRepository
from .weather import OpenMeteoClient, WeatherService

settings = get_settings()
logger = configure_logging("results.api", settings.log_level)

app = FastAPI(
    title="NLS Race Results API",
    version="0.1.0",
    docs_url="/docs",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RaceDataError)
async def race_data_error_handler(request: Request, exc: RaceDataError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.on_event("startup")
async def bootstrap() -> None:
    await init_db()
    cache = WeatherCache()
    await cache.connect()
    http_client = httpx.AsyncClient(timeout=settings.weather_timeout)
    app.state.weather_cache = cache
    app.state.weather_http = http_client
    app.state.weather_service = WeatherService(
        OpenMeteoClient(http_client, settings.weather_api_url, settings.weather_timezone),
        cache=cache,
    )
    logger.info("Results API ready")


@app.on_event("shutdown")
async def shutdown() -> None:
    await app.state.weather_http.aclose()
    await app.state.weather_cache.close()


async def get_db_session() -> AsyncIterator[AsyncSession]:
    async with get_session() as session:
        yield session


async def get_repository(db: AsyncSession = Depends(get_db_session)) -> RaceRepository:
    return RaceRepository(db)


def get_weather_service(request: Request) -> WeatherService:
    return request.app.state.weather_service


async def _require_session(repo: RaceRepository, session_id: str) -> Session:
    session = await repo.get_session(session_id)
    if not session:
        raise NotFoundError("Session", session_id)
    return session


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "timestamp": datetime.now(tz=timezone.utc).isoformat()}


# -- sessions ---------------------------------------------------------------


@app.get("/api/sessions", response_model=List[SessionMetadata])
async def list_sessions(repo: RaceRepository = Depends(get_repository)) -> List[SessionMetadata]:
    rows = await repo.list_sessions()
    return [
        SessionMetadata(
            id=s.id,
            name=s.name,
            type=s.type,
            date=s.date,
            result_count=results,
            lap_count=laps,
        )
        for s, results, laps in rows
    ]


@app.get("/api/sessions/{session_id}", response_model=SessionMetadata)
async def get_session_metadata(
    session_id: str, repo: RaceRepository = Depends(get_repository)
) -> SessionMetadata:
    session = await _require_session(repo, session_id)
    results, laps = await repo.session_counts(session_id)
    return SessionMetadata(
        id=session.id,
        name=session.name,
        type=session.type,
        date=session.date,
        result_count=results,
        lap_count=laps,
    )


@app.get("/api/sessions/{session_id}/results", response_model=List[ResultEntry])
async def get_results(
    session_id: str, repo: RaceRepository = Depends(get_repository)
) -> List[ResultEntry]:
    await _require_session(repo, session_id)
    results = await repo.list_results(session_id)
    laps = await repo.list_laps(session_id, with_relations=False)
    pit_counts = await repo.pit_stop_counts(session_id)

    classification = {
        entry.start_number: entry for entry in reconstruct_classification(results, laps)
    }
    entries = []
    for result in results:
        classified = classification[result.start_number]
        entries.append(
            ResultEntry(
                id=result.id,
                start_number=result.start_number,
                position=classified.position,
                recorded_position=result.position,
                classification=classified.status,
                class_position=result.class_position,
                laps=result.laps,
                best_lap_time=result.best_lap_time,
                total_time=result.total_time,
                gap=result.gap,
                interval=result.interval,
                status=result.status,
                pit_stop_count=pit_counts.get(result.start_number, 0),
                driver=DriverRef.model_validate(result.driver),
                team=TeamRef.model_validate(result.team),
                vehicle=VehicleRef.model_validate(result.vehicle),
            )
        )
    entries.sort(key=lambda entry: (entry.position, entry.start_number))
    return entries


@app.get("/api/sessions/{session_id}/laps", response_model=List[LapEntry])
async def get_laps(
    session_id: str,
    start_number: Optional[int] = Query(None),
    driver_id: Optional[str] = Query(None),
    repo: RaceRepository = Depends(get_repository),
) -> List[LapEntry]:
    await _require_session(repo, session_id)
    laps = await repo.list_laps(session_id, start_number=start_number, driver_id=driver_id)
    pit_stops = await repo.pit_stop_index(session_id)
    entries = []
    for lap in laps:
        stop = pit_stops.get((lap.start_number, lap.lap_number))
        entries.append(
            LapEntry(
                id=lap.id,
                start_number=lap.start_number,
                lap_number=lap.lap_number,
                lap_time=lap.lap_time,
                in_pit=stop is not None,
                pit_duration=stop.duration if stop else None,
                driver=DriverRef.model_validate(lap.driver),
                vehicle=VehicleRef.model_validate(lap.vehicle),
            )
        )
    return entries


@app.get("/api/sessions/{session_id}/sectors", response_model=List[SectorEntry])
async def get_sectors(
    session_id: str,
    start_number: Optional[int] = Query(None),
    driver_id: Optional[str] = Query(None),
    repo: RaceRepository = Depends(get_repository),
) -> List[SectorEntry]:
    await _require_session(repo, session_id)
    sectors = await repo.list_sectors(session_id, start_number=start_number, driver_id=driver_id)
    return [SectorEntry.model_validate(sector) for sector in sectors]


@app.get("/api/sessions/{session_id}/positions/{start_number}", response_model=List[LapPosition])
async def get_lap_positions(
    session_id: str, start_number: int, repo: RaceRepository = Depends(get_repository)
) -> List[LapPosition]:
    await _require_session(repo, session_id)
    laps = await repo.list_laps(session_id, with_relations=False)
    return lap_positions(laps, start_number)


# -- drivers & teams ----------------------------------------------------------


@app.get("/api/drivers", response_model=List[DriverRef])
async def list_drivers(repo: RaceRepository = Depends(get_repository)) -> List[DriverRef]:
    return [DriverRef.model_validate(driver) for driver in await repo.list_drivers()]


@app.get("/api/drivers/{driver_id}", response_model=DriverDetail)
async def get_driver(driver_id: str, repo: RaceRepository = Depends(get_repository)) -> DriverDetail:
    driver = await repo.get_driver(driver_id, with_results=True)
    if not driver:
        raise NotFoundError("Driver", driver_id)
    return DriverDetail.model_validate(driver)


@app.get("/api/drivers/{driver_id}/stats", response_model=DriverLapStats)
async def get_driver_stats(
    driver_id: str, repo: RaceRepository = Depends(get_repository)
) -> DriverLapStats:
    laps = await repo.driver_laps(driver_id)
    return driver_lap_stats([lap.lap_time for lap in laps])


@app.get("/api/drivers/{driver_id}/avg-laps", response_model=WetDrySummary)
async def get_driver_wet_dry(
    driver_id: str,
    percent: float = Query(DEFAULT_TOP_PERCENT),
    repo: RaceRepository = Depends(get_repository),
    weather: WeatherService = Depends(get_weather_service),
) -> WetDrySummary:
    percent = clamp_percent(percent)
    laps = await repo.driver_laps(driver_id)
    if not laps:
        return WetDrySummary(driver_id=driver_id, percent=percent)

    by_session: Dict[str, List[Lap]] = defaultdict(list)
    for lap in laps:
        by_session[lap.session_id].append(lap)

    tagged: List[TaggedLap] = []
    for session_id, driver_laps in by_session.items():
        session = await _require_session(repo, session_id)
        session_laps = await repo.list_laps(session_id, with_relations=False)
        session_weather = await weather.session_weather(session, session_laps)
        tagged.extend(tag_laps(driver_laps, session_weather.lap_weather))

    split = split_wet_dry(tagged, percent)
    return WetDrySummary(driver_id=driver_id, percent=percent, dry=split.dry, wet=split.wet)


@app.get("/api/teams", response_model=List[TeamRef])
async def list_teams(repo: RaceRepository = Depends(get_repository)) -> List[TeamRef]:
    return [TeamRef.model_validate(team) for team in await repo.list_teams()]


@app.get("/api/teams/{team_id}", response_model=TeamDetail)
async def get_team(team_id: str, repo: RaceRepository = Depends(get_repository)) -> TeamDetail:
    team = await repo.get_team(team_id)
    if not team:
        raise NotFoundError("Team", team_id)
    return TeamDetail.model_validate(team)


# -- weather ------------------------------------------------------------------


@app.get("/api/weather/{session_id}", response_model=SessionWeather)
async def get_session_weather(
    session_id: str,
    repo: RaceRepository = Depends(get_repository),
    weather: WeatherService = Depends(get_weather_service),
) -> SessionWeather:
    session = await _require_session(repo, session_id)
    laps = await repo.list_laps(session_id, with_relations=False)
    return await weather.session_weather(session, laps)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("services.results.main:app", host="0.0.0.0", port=4000, reload=False)
