from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shared.utils.logging import configure_logging

from .models import Driver, Lap, PitStop, Result, SectorTime, Session, Team, Vehicle

logger = configure_logging("results.repository")


class RaceRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # -- reads -----------------------------------------------------------

    async def list_sessions(self) -> List[Tuple[Session, int, int]]:
        result_counts = (
            select(Result.session_id, func.count(Result.id).label("n"))
            .group_by(Result.session_id)
            .subquery()
        )
        lap_counts = (
            select(Lap.session_id, func.count(Lap.id).label("n"))
            .group_by(Lap.session_id)
            .subquery()
        )
        stmt = (
            select(
                Session,
                func.coalesce(result_counts.c.n, 0),
                func.coalesce(lap_counts.c.n, 0),
            )
            .outerjoin(result_counts, result_counts.c.session_id == Session.id)
            .outerjoin(lap_counts, lap_counts.c.session_id == Session.id)
            .order_by(Session.date.desc())
        )
        rows = await self.session.execute(stmt)
        return [(session, int(results), int(laps)) for session, results, laps in rows.all()]

    async def get_session(self, session_id: str) -> Optional[Session]:
        return await self.session.get(Session, session_id)

    async def session_counts(self, session_id: str) -> Tuple[int, int]:
        results = await self.session.scalar(
            select(func.count(Result.id)).where(Result.session_id == session_id)
        )
        laps = await self.session.scalar(
            select(func.count(Lap.id)).where(Lap.session_id == session_id)
        )
        return int(results or 0), int(laps or 0)

    async def list_results(self, session_id: str) -> Sequence[Result]:
        stmt = (
            select(Result)
            .where(Result.session_id == session_id)
            .options(
                selectinload(Result.driver),
                selectinload(Result.team),
                selectinload(Result.vehicle),
            )
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_laps(
        self,
        session_id: str,
        start_number: Optional[int] = None,
        driver_id: Optional[str] = None,
        with_relations: bool = True,
    ) -> Sequence[Lap]:
        stmt = select(Lap).where(Lap.session_id == session_id)
        if start_number is not None:
            stmt = stmt.where(Lap.start_number == start_number)
        if driver_id:
            stmt = stmt.where(Lap.driver_id == driver_id)
        if with_relations:
            stmt = stmt.options(selectinload(Lap.driver), selectinload(Lap.vehicle))
        stmt = stmt.order_by(Lap.start_number, Lap.lap_number)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_sectors(
        self,
        session_id: str,
        start_number: Optional[int] = None,
        driver_id: Optional[str] = None,
    ) -> Sequence[SectorTime]:
        stmt = select(SectorTime).where(SectorTime.session_id == session_id)
        if start_number is not None:
            stmt = stmt.where(SectorTime.start_number == start_number)
        if driver_id:
            stmt = stmt.where(SectorTime.driver_id == driver_id)
        stmt = stmt.options(
            selectinload(SectorTime.driver), selectinload(SectorTime.vehicle)
        ).order_by(SectorTime.start_number, SectorTime.lap_number)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_pit_stops(self, session_id: str) -> Sequence[PitStop]:
        stmt = select(PitStop).where(PitStop.session_id == session_id)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def pit_stop_counts(self, session_id: str) -> Counter:
        return Counter(stop.start_number for stop in await self.list_pit_stops(session_id))

    async def pit_stop_index(self, session_id: str) -> Dict[Tuple[int, int], PitStop]:
        return {
            (stop.start_number, stop.lap_number): stop
            for stop in await self.list_pit_stops(session_id)
        }

    async def list_drivers(self) -> Sequence[Driver]:
        result = await self.session.execute(select(Driver).order_by(Driver.last_name))
        return result.scalars().all()

    async def get_driver(self, driver_id: str, with_results: bool = False) -> Optional[Driver]:
        stmt = select(Driver).where(Driver.id == driver_id)
        if with_results:
            stmt = stmt.options(
                selectinload(Driver.results).selectinload(Result.session),
                selectinload(Driver.results).selectinload(Result.team),
                selectinload(Driver.results).selectinload(Result.vehicle),
            )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def driver_laps(self, driver_id: str) -> Sequence[Lap]:
        stmt = select(Lap).where(Lap.driver_id == driver_id).order_by(Lap.lap_time)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_teams(self) -> Sequence[Team]:
        result = await self.session.execute(select(Team).order_by(Team.name))
        return result.scalars().all()

    async def get_team(self, team_id: str) -> Optional[Team]:
        stmt = (
            select(Team)
            .where(Team.id == team_id)
            .options(
                selectinload(Team.results).selectinload(Result.session),
                selectinload(Team.results).selectinload(Result.driver),
                selectinload(Team.results).selectinload(Result.vehicle),
            )
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    # -- writes (import scripts only) --------------------------------------

    async def find_session(self, name: str, session_type: str) -> Optional[Session]:
        stmt = select(Session).where(Session.name == name).where(Session.type == session_type)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def create_session(self, name: str, session_type: str, date: datetime) -> Session:
        session = Session(name=name, type=session_type, date=date)
        self.session.add(session)
        await self.session.flush()
        logger.info("Created session %s (%s)", name, session_type)
        return session

    async def clear_session_data(self, session_id: str) -> None:
        for model in (Result, Lap, SectorTime, PitStop):
            await self.session.execute(delete(model).where(model.session_id == session_id))

    async def find_or_create_driver(
        self,
        first_name: str,
        last_name: str,
        nationality: Optional[str],
        start_number: int,
    ) -> Driver:
        stmt = (
            select(Driver)
            .where(Driver.first_name == first_name)
            .where(Driver.last_name == last_name)
        )
        if nationality is None:
            stmt = stmt.where(Driver.nationality.is_(None))
        else:
            stmt = stmt.where(Driver.nationality == nationality)
        result = await self.session.execute(stmt)
        driver = result.scalars().first()
        if driver:
            return driver

        driver = Driver(
            first_name=first_name,
            last_name=last_name,
            nationality=nationality,
            start_number=start_number,
        )
        self.session.add(driver)
        await self.session.flush()
        return driver

    async def ensure_team(self, name: str) -> Team:
        result = await self.session.execute(select(Team).where(Team.name == name))
        team = result.scalars().first()
        if team:
            return team
        team = Team(name=name)
        self.session.add(team)
        await self.session.flush()
        return team

    async def ensure_vehicle(
        self, team: Team, model: str, vehicle_class: str, class_short: Optional[str] = None
    ) -> Vehicle:
        vehicle_id = f"{team.id}_{model}"
        vehicle = await self.session.get(Vehicle, vehicle_id)
        if vehicle:
            return vehicle
        vehicle = Vehicle(
            id=vehicle_id,
            model=model,
            vehicle_class=vehicle_class,
            class_short=class_short,
            team_id=team.id,
        )
        self.session.add(vehicle)
        await self.session.flush()
        return vehicle

    async def has_pit_stop(self, session_id: str, start_number: int, lap_number: int) -> bool:
        stmt = (
            select(PitStop.id)
            .where(PitStop.session_id == session_id)
            .where(PitStop.start_number == start_number)
            .where(PitStop.lap_number == lap_number)
        )
        result = await self.session.execute(stmt)
        return result.first() is not None

    def add(self, entity: object) -> None:
        self.session.add(entity)

    async def update_session_date(self, session: Session, date: datetime) -> None:
        session.date = date
        await self.session.flush()
