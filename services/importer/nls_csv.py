"""Parsing helpers for the timing service's NLS CSV exports.

Exports are ``;``-delimited with German headers, for example ``STNR`` (start
number), ``BEWERBER`` (entrant), ``FAHRER1_NAME`` / ``FAHRER1_VORNAME``,
``RUNDE`` (lap), ``RUNDENZEIT_SEKUNDEN`` and ``SEKTOR_1`` .. ``SEKTOR_5``.
Numbers may use a decimal comma.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from shared.schemas.session import SessionType

Row = Dict[str, str]

NLS_RACE_DATES: Dict[str, str] = {
    "NLS1": "2025-03-22",
    "NLS2": "2025-04-26",
    "NLS3": "2025-05-10",
    "NLS4": "2025-05-24",
    "NLS5": "2025-05-25",
    "NLS6": "2025-08-16",
    "NLS7": "2025-09-13",
    "NLS8": "2025-09-14",
    "NLS9": "2025-09-27",
    "NLS10": "2025-10-11",
    "NLS-LIGHT": "2025-07-05",
}

SESSION_FILE_MARKERS = {
    SessionType.QUALI: "ZEITTRAINING",
    SessionType.RACE: "RENNEN",
}
SESSION_NAME_SUFFIX = {
    SessionType.QUALI: "Zeittraining",
    SessionType.RACE: "Rennen",
}

MAX_DRIVERS_PER_CAR = 8

_LIGHT_RE = re.compile(r"\bNLS\s*-?\s*LIGHT\b", re.IGNORECASE)
_NLS_RE = re.compile(r"\bNLS\s*(\d+)\b", re.IGNORECASE)
_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True)
class DriverInfo:
    first_name: str
    last_name: str
    nationality: Optional[str]


@dataclass(frozen=True)
class ExportFiles:
    result: Optional[Path] = None
    laps: Optional[Path] = None
    sectors: Optional[Path] = None


def read_export(path: Path) -> List[Row]:
    """All rows of one export; short rows are padded, extra fields dropped."""
    n_columns = len(pd.read_csv(path, sep=";", nrows=0, encoding="utf-8-sig").columns)
    frame = pd.read_csv(
        path,
        sep=";",
        dtype=str,
        keep_default_na=False,
        encoding="utf-8-sig",
        engine="python",
        on_bad_lines=lambda fields: fields[:n_columns],
        skip_blank_lines=True,
    )
    frame = frame.fillna("")
    frame.columns = [str(column).strip() for column in frame.columns]
    return frame.to_dict(orient="records")


def field(row: Row, *names: str) -> str:
    """First non-empty value among ``names``, stripped."""
    for name in names:
        value = (row.get(name) or "").strip()
        if value:
            return value
    return ""


def parse_int(value: Optional[str]) -> Optional[int]:
    match = _LEADING_INT_RE.match(value or "")
    return int(match.group(1)) if match else None


def parse_decimal(value: Optional[str]) -> Optional[float]:
    normalized = (value or "").strip().replace(",", ".")
    if not normalized:
        return None
    try:
        return float(normalized)
    except ValueError:
        return None


def parse_lap_time(value: Optional[str]) -> Optional[float]:
    """``8:04.617`` or ``1:02:04.617`` or plain seconds, to seconds."""
    normalized = (value or "").strip().replace(",", ".")
    if not normalized:
        return None
    parts = normalized.split(":")
    if len(parts) > 3:
        return None
    try:
        if len(parts) == 1:
            return float(parts[0])
        seconds = float(parts[-1])
        minutes = int(parts[-2])
        hours = int(parts[-3]) if len(parts) == 3 else 0
    except ValueError:
        return None
    return hours * 3600 + minutes * 60 + seconds


def driver_info(row: Row, index: Optional[int]) -> DriverInfo:
    idx = max(1, min(MAX_DRIVERS_PER_CAR, index or 1))
    nationality = field(row, f"FAHRER{idx}_NATION")
    return DriverInfo(
        first_name=field(row, f"FAHRER{idx}_VORNAME") or "Unknown",
        last_name=field(row, f"FAHRER{idx}_NAME") or "Unknown",
        nationality=nationality or None,
    )


def resolve_team_name(row: Row, start_number: int) -> str:
    entrant = field(row, "BEWERBER")
    if entrant and not entrant.isdigit():
        return entrant
    return f"Team {driver_info(row, 1).last_name} - {start_number}"


def vehicle_model(row: Row) -> str:
    return field(row, "FAHRZEUG") or "Unknown"


def vehicle_class(row: Row) -> str:
    return field(row, "KLASSE", "KLASSEKURZ", "UNTERKLASSE") or "Unknown"


def lap_number(row: Row) -> int:
    return parse_int(field(row, "RUNDE_NR", "RUNDE")) or 0


def is_in_pit(row: Row) -> bool:
    return field(row, "INPIT").upper() == "J"


def pit_duration(row: Row) -> float:
    return parse_lap_time(field(row, "PITSTOPDURATION")) or 0.0


def normalize_nls_key(name: str) -> Optional[str]:
    if _LIGHT_RE.search(name):
        return "NLS-LIGHT"
    match = _NLS_RE.search(name)
    if match:
        return f"NLS{int(match.group(1))}"
    return None


def build_session_date(nls_key: str, session_type: SessionType) -> Optional[datetime]:
    """Race day at 12:00, qualifying the day before at 09:00."""
    race_date = NLS_RACE_DATES.get(nls_key)
    if not race_date:
        return None
    day = datetime.strptime(race_date, "%Y-%m-%d")
    if session_type == SessionType.QUALI:
        return (day - timedelta(days=1)).replace(hour=9)
    return day.replace(hour=12)


def find_export_files(folder: Path, session_type: SessionType) -> ExportFiles:
    marker = SESSION_FILE_MARKERS[session_type]
    files = sorted(p for p in folder.iterdir() if p.is_file() and p.suffix.upper() == ".CSV")

    def _find(kind: str) -> Optional[Path]:
        for path in files:
            name = path.name.upper()
            if marker in name and kind in name:
                return path
        return None

    return ExportFiles(result=_find("RESULT"), laps=_find("LAPS"), sectors=_find("SEKTORZEITEN"))
