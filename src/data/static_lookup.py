"""Read-only access to the static game reference database.

Stations, solar systems, regions and type names/icons come from a local
SQLite database shipped with the application. The rest of the code only
depends on the ``StaticLookup`` protocol so tests can supply rows directly.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

DEFAULT_ICON = "not_found"

STATION_SQL = (
    "SELECT stationID, stationTypeID, stationName, regionID, solarSystemID, security "
    "FROM stations WHERE stationID = ?"
)
SOLAR_SYSTEM_SQL = (
    "SELECT u.region_id, u.constellation_id, u.system_security, "
    "s.solarSystemName, c.constellationName, r.regionName "
    "FROM universe u "
    "JOIN solarsystems s ON s.solarSystemID = u.solarsystem_id "
    "JOIN constellations c ON c.constellationID = u.constellation_id "
    "JOIN regions r ON r.regionID = u.region_id "
    "WHERE u.solarsystem_id = ?"
)
TYPES_SQL = "SELECT type_id, name, icon_filename FROM types WHERE type_id IN ({})"

# SQLite's default host parameter limit is 999
MAX_SQL_PARAMS = 900


@runtime_checkable
class StaticLookup(Protocol):
    """Synchronous query interface over the static reference data."""

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]: ...


class SQLiteStaticLookup:
    """StaticLookup backed by a read-only SQLite database file."""

    def __init__(self, db_path: str | Path):
        """Initialize the lookup.

        Args:
            db_path: Path to the static data SQLite file
        """
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            uri = f"file:{self.db_path.as_posix()}?mode=ro"
            self._conn = sqlite3.connect(uri, uri=True, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            logger.debug("Opened static data database %s", self.db_path)
        return self._conn

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run a query and return rows as dicts keyed by column name."""
        cursor = self._get_connection().execute(sql, tuple(params))
        return [dict(row) for row in cursor.fetchall()]

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


def lookup_station(lookup: StaticLookup, station_id: int) -> dict[str, Any] | None:
    rows = lookup.query(STATION_SQL, (station_id,))
    return rows[0] if rows else None


def lookup_solar_system(lookup: StaticLookup, system_id: int) -> dict[str, Any] | None:
    rows = lookup.query(SOLAR_SYSTEM_SQL, (system_id,))
    return rows[0] if rows else None


def lookup_types(
    lookup: StaticLookup, type_ids: Sequence[int]
) -> dict[int, tuple[str | None, str]]:
    """Resolve type names and icon file names.

    Returns:
        Mapping of type ID to (name, icon); types without an icon get
        ``DEFAULT_ICON`` and unknown types are omitted
    """
    unique_ids = sorted(set(type_ids))
    result: dict[int, tuple[str | None, str]] = {}
    for start in range(0, len(unique_ids), MAX_SQL_PARAMS):
        chunk = unique_ids[start : start + MAX_SQL_PARAMS]
        sql = TYPES_SQL.format(", ".join("?" for _ in chunk))
        for row in lookup.query(sql, chunk):
            icon = row.get("icon_filename") or DEFAULT_ICON
            result[int(row["type_id"])] = (row.get("name"), icon)
    return result
