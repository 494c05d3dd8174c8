"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

# Add src to Python path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

import pytest  # noqa: E402

from models.eve import EveAsset  # noqa: E402

JITA_STATION_ID = 60003760
JITA_SYSTEM_ID = 30000142
AMARR_SYSTEM_ID = 30002187


class FakeStaticLookup:
    """In-memory stand-in for the static reference database.

    Answers the station, solar system and type queries issued by the
    application and records every query it receives.
    """

    def __init__(self, stations=None, systems=None, types=None):
        self.stations = stations if stations is not None else {
            JITA_STATION_ID: {
                "stationID": JITA_STATION_ID,
                "stationTypeID": 1529,
                "stationName": "Jita IV - Moon 4 - Caldari Navy Assembly Plant",
                "regionID": 10000002,
                "solarSystemID": JITA_SYSTEM_ID,
                "security": 0.9459,
            },
        }
        self.systems = systems if systems is not None else {
            JITA_SYSTEM_ID: {
                "region_id": 10000002,
                "constellation_id": 20000020,
                "system_security": 0.9459,
                "solarSystemName": "Jita",
                "constellationName": "Kimotoro",
                "regionName": "The Forge",
            },
            AMARR_SYSTEM_ID: {
                "region_id": 10000043,
                "constellation_id": 20000322,
                "system_security": 1.0,
                "solarSystemName": "Amarr",
                "constellationName": "Throne Worlds",
                "regionName": "Domain",
            },
        }
        self.types = types if types is not None else {
            34: {"type_id": 34, "name": "Tritanium", "icon_filename": "icon_34.png"},
            587: {"type_id": 587, "name": "Rifter", "icon_filename": "icon_587.png"},
            3293: {"type_id": 3293, "name": "Small Container", "icon_filename": ""},
        }
        self.queries: list[tuple[str, tuple]] = []

    def query(self, sql, params=()):
        params = tuple(params)
        self.queries.append((sql, params))
        if "FROM stations" in sql:
            row = self.stations.get(params[0])
            return [dict(row)] if row else []
        if "FROM universe" in sql:
            row = self.systems.get(params[0])
            return [dict(row)] if row else []
        if "FROM types" in sql:
            return [dict(self.types[t]) for t in params if t in self.types]
        raise AssertionError(f"Unexpected query: {sql}")


@pytest.fixture
def static_lookup():
    return FakeStaticLookup()


@pytest.fixture
def make_asset():
    """Factory for EveAsset records with sensible defaults."""

    def _make(
        item_id,
        location_id,
        location_type="item",
        location_flag="Hangar",
        type_id=34,
        quantity=1,
        is_singleton=False,
        **extra,
    ):
        return EveAsset(
            item_id=item_id,
            type_id=type_id,
            quantity=quantity,
            location_id=location_id,
            location_type=location_type,
            location_flag=location_flag,
            is_singleton=is_singleton,
            **extra,
        )

    return _make
