from __future__ import annotations

import asyncio

from services.importer.loader import correct_session_dates
from services.results.database import get_session, init_db
from services.results.repository import RaceRepository
from shared.utils.cache import WeatherCache
from shared.utils.logging import configure_logging

logger = configure_logging("importer.dates")


async def update_dates() -> int:
    await init_db()
    cache = WeatherCache()
    await cache.connect()
    try:
        async with get_session() as db:
            updated = await correct_session_dates(RaceRepository(db), cache)
            await db.commit()
    finally:
        await cache.close()
    return updated


def main() -> None:
    try:
        asyncio.run(update_dates())
    except Exception as exc:
        logger.error("Failed to update session dates: %s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
