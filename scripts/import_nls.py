from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import List

from services.importer.loader import ImportSummary, NlsImporter
from services.results.database import get_session, init_db
from services.results.repository import RaceRepository
from shared.utils.config import get_settings
from shared.utils.logging import configure_logging

logger = configure_logging("importer.cli")


def event_folders(root: Path) -> List[Path]:
    """``root`` itself when it holds CSV exports, otherwise its subfolders."""
    if any(p.suffix.upper() == ".CSV" for p in root.iterdir() if p.is_file()):
        return [root]
    return sorted(p for p in root.iterdir() if p.is_dir())


async def run_import(root: Path, reimport_existing: bool) -> ImportSummary:
    await init_db()
    total = ImportSummary(folder=root.name)
    for folder in event_folders(root):
        async with get_session() as db:
            importer = NlsImporter(RaceRepository(db), reimport_existing=reimport_existing)
            try:
                summary = await importer.import_folder(folder)
                await db.commit()
            except Exception:
                await db.rollback()
                logger.exception("Import of %s failed, rolled back", folder.name)
                raise
        total.merge(summary)
    logger.info(
        "Import complete: %s sessions created, %s skipped, %s results, %s laps, %s sectors, %s pit stops",
        total.sessions_created,
        total.sessions_skipped,
        total.results,
        total.laps,
        total.sectors,
        total.pit_stops,
    )
    return total


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Import NLS timing CSV exports")
    parser.add_argument("path", help="Event folder, or a directory of event folders")
    parser.add_argument(
        "--reimport",
        action="store_true",
        default=settings.reimport_existing,
        help="Replace data of sessions that already exist",
    )
    args = parser.parse_args()

    root = Path(args.path).resolve()
    if not root.is_dir():
        raise SystemExit(f"Folder not found: {root}")

    asyncio.run(run_import(root, args.reimport))


if __name__ == "__main__":
    main()
