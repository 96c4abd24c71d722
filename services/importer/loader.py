from __future__ import annotations

from dataclasses import dataclass, field as dataclass_field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Set, Tuple

from services.results.models import Lap, PitStop, Result, SectorTime, Session
from services.results.repository import RaceRepository
from shared.schemas.session import SessionType
from shared.utils.cache import WeatherCache
from shared.utils.logging import configure_logging

from . import nls_csv
from .nls_csv import Row

logger = configure_logging("importer.loader")


@dataclass
class ImportSummary:
    folder: str
    sessions_created: int = 0
    sessions_skipped: int = 0
    results: int = 0
    laps: int = 0
    sectors: int = 0
    pit_stops: int = 0
    rows_skipped: int = 0

    def merge(self, other: "ImportSummary") -> None:
        for name in ("sessions_created", "sessions_skipped", "results", "laps", "sectors", "pit_stops", "rows_skipped"):
            setattr(self, name, getattr(self, name) + getattr(other, name))


@dataclass
class _CarContext:
    start_number: int
    driver_id: str
    team_id: str
    vehicle_id: str


@dataclass
class _SessionImport:
    session: Session
    seen_laps: Set[Tuple[int, int]] = dataclass_field(default_factory=set)


class NlsImporter:
    """Loads one event folder of NLS CSV exports into the store.

    The caller owns the transaction; nothing is committed here.
    """

    def __init__(self, repo: RaceRepository, reimport_existing: bool = False) -> None:
        self.repo = repo
        self.reimport_existing = reimport_existing

    async def import_folder(self, folder: Path, today: Optional[datetime] = None) -> ImportSummary:
        summary = ImportSummary(folder=folder.name)
        nls_key = nls_csv.normalize_nls_key(folder.name)
        for session_type in (SessionType.QUALI, SessionType.RACE):
            files = nls_csv.find_export_files(folder, session_type)
            if not files.result:
                continue
            date = nls_csv.build_session_date(nls_key, session_type) if nls_key else None
            name = f"{folder.name} {nls_csv.SESSION_NAME_SUFFIX[session_type]}"
            target = await self._prepare_session(name, session_type, date or today or datetime.now(), summary)
            if target is None:
                continue

            await self._import_results(target, nls_csv.read_export(files.result), summary)
            if files.laps:
                await self._import_laps(target, nls_csv.read_export(files.laps), summary)
            if files.sectors:
                await self._import_sectors(target, nls_csv.read_export(files.sectors), summary)

        logger.info(
            "%s: %s results, %s laps, %s sectors, %s pit stops imported (%s rows skipped)",
            folder.name,
            summary.results,
            summary.laps,
            summary.sectors,
            summary.pit_stops,
            summary.rows_skipped,
        )
        return summary

    async def _prepare_session(
        self, name: str, session_type: SessionType, date: datetime, summary: ImportSummary
    ) -> Optional[_SessionImport]:
        session = await self.repo.find_session(name, session_type.value)
        if session is None:
            session = await self.repo.create_session(name, session_type.value, date)
            summary.sessions_created += 1
            return _SessionImport(session)

        if not self.reimport_existing:
            logger.info("Session already exists, skipping: %s", name)
            summary.sessions_skipped += 1
            return None

        await self.repo.clear_session_data(session.id)
        logger.info("Reimporting session data: %s", name)
        return _SessionImport(session)

    async def _car(self, row: Row, start_number: int, driver_index: Optional[int]) -> _CarContext:
        info = nls_csv.driver_info(row, driver_index)
        driver = await self.repo.find_or_create_driver(
            info.first_name, info.last_name, info.nationality, start_number
        )
        team = await self.repo.ensure_team(nls_csv.resolve_team_name(row, start_number))
        vehicle = await self.repo.ensure_vehicle(
            team,
            nls_csv.vehicle_model(row),
            nls_csv.vehicle_class(row),
            nls_csv.field(row, "KLASSEKURZ") or None,
        )
        return _CarContext(start_number, driver.id, team.id, vehicle.id)

    async def _import_results(self, target: _SessionImport, rows: List[Row], summary: ImportSummary) -> None:
        for row in rows:
            start_number = nls_csv.parse_int(row.get("STNR")) or 0
            if start_number == 0 or not nls_csv.field(row, "FAHRZEUG"):
                summary.rows_skipped += 1
                continue
            car = await self._car(row, start_number, 1)
            self.repo.add(
                Result(
                    session_id=target.session.id,
                    start_number=start_number,
                    position=nls_csv.parse_int(row.get("RANG")),
                    laps=nls_csv.parse_int(row.get("RUNDEN")),
                    best_lap_time=nls_csv.parse_lap_time(row.get("SCHNELLSTE RUNDE")),
                    total_time=nls_csv.parse_lap_time(row.get("GESAMTZEIT")),
                    gap=nls_csv.field(row, "GAP") or None,
                    interval=nls_csv.field(row, "KLASSENGAP") or None,
                    status=nls_csv.field(row, "STATUS") or None,
                    driver_id=car.driver_id,
                    team_id=car.team_id,
                    vehicle_id=car.vehicle_id,
                )
            )
            summary.results += 1

    async def _import_laps(self, target: _SessionImport, rows: List[Row], summary: ImportSummary) -> None:
        for row in rows:
            start_number = nls_csv.parse_int(row.get("STNR")) or 0
            number = nls_csv.lap_number(row)
            lap_time = nls_csv.parse_decimal(row.get("RUNDENZEIT_SEKUNDEN"))
            key = (start_number, number)
            if start_number == 0 or number <= 0 or not lap_time or key in target.seen_laps:
                summary.rows_skipped += 1
                continue
            target.seen_laps.add(key)
            car = await self._car(row, start_number, nls_csv.parse_int(row.get("DRIVERID")))
            self.repo.add(
                Lap(
                    session_id=target.session.id,
                    start_number=start_number,
                    lap_number=number,
                    lap_time=lap_time,
                    driver_id=car.driver_id,
                    vehicle_id=car.vehicle_id,
                )
            )
            summary.laps += 1

    async def _import_sectors(self, target: _SessionImport, rows: List[Row], summary: ImportSummary) -> None:
        session_id = target.session.id
        for row in rows:
            start_number = nls_csv.parse_int(row.get("STNR")) or 0
            if start_number == 0:
                summary.rows_skipped += 1
                continue
            number = nls_csv.lap_number(row)
            car = await self._car(row, start_number, nls_csv.parse_int(row.get("FAHRER_NR")))
            self.repo.add(
                SectorTime(
                    session_id=session_id,
                    start_number=start_number,
                    lap_number=number,
                    sector1=nls_csv.parse_decimal(row.get("SEKTOR_1")),
                    sector2=nls_csv.parse_decimal(row.get("SEKTOR_2")),
                    sector3=nls_csv.parse_decimal(row.get("SEKTOR_3")),
                    sector4=nls_csv.parse_decimal(row.get("SEKTOR_4")),
                    sector5=nls_csv.parse_decimal(row.get("SEKTOR_5")),
                    driver_id=car.driver_id,
                    vehicle_id=car.vehicle_id,
                )
            )
            summary.sectors += 1

            duration = nls_csv.pit_duration(row)
            if not (nls_csv.is_in_pit(row) or duration > 0):
                continue
            if await self.repo.has_pit_stop(session_id, start_number, number):
                continue
            self.repo.add(
                PitStop(
                    session_id=session_id,
                    team_id=car.team_id,
                    start_number=start_number,
                    lap_number=number,
                    duration=duration if duration > 0 else None,
                )
            )
            summary.pit_stops += 1


async def correct_session_dates(repo: RaceRepository, cache: Optional[WeatherCache] = None) -> int:
    """Move every NLS session to its calendar date and start hour."""
    updated = 0
    for session, _, _ in await repo.list_sessions():
        nls_key = nls_csv.normalize_nls_key(session.name)
        if not nls_key:
            continue
        session_type = SessionType.QUALI if session.type == SessionType.QUALI else SessionType.RACE
        new_date = nls_csv.build_session_date(nls_key, session_type)
        if new_date is None or session.date == new_date:
            continue
        await repo.update_session_date(session, new_date)
        if cache:
            await cache.invalidate_session(session.id)
        updated += 1
    logger.info("Updated %s session dates", updated)
    return updated
