"""
Shared pytest fixtures for the Crosswalk Sentinel test suite.

All fixtures are synthetic. Positions are taken from the MLK / Central
intersection the system was built for, so the numbers in assertions can be
checked against a map if anything looks off.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pandas as pd
import pytest

from crosswalk_sentinel.data.models import ReferencePoint, TrackedPedestrian, TrackedVehicle

# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

MLK_REF = ReferencePoint(lat=350397934, lon=-852921050)

# (lat, lon)
PEDESTRIAN_POS = (35.03979194, -85.29215324)
FAR_VEHICLE_POS = (35.03974478, -85.29200021)       # ≈ 0.00016° from the pedestrian
NEAR_VEHICLE_POS = (35.03982194, -85.29212324)      # 0.00003° on each axis

# (lon, lat) vertices, closed ring as stored in the config
CROSSWALK_POLYGON = [
    [-85.29202787790969, 35.03977429811067],
    [-85.29201141934844, 35.03976939792585],
    [-85.29203386284122, 35.03973080896036],
    [-85.29204857579744, 35.039736525845356],
    [-85.29202787790969, 35.03977429811067],
]

NOW = "2025-05-21T00:03:10"


@pytest.fixture()
def pedestrian_pos() -> tuple[float, float]:
    return PEDESTRIAN_POS


@pytest.fixture()
def far_vehicle_pos() -> tuple[float, float]:
    return FAR_VEHICLE_POS


@pytest.fixture()
def near_vehicle_pos() -> tuple[float, float]:
    return NEAR_VEHICLE_POS


@pytest.fixture()
def mlk_ref() -> ReferencePoint:
    return MLK_REF


@pytest.fixture()
def crosswalk_center() -> tuple[float, float]:
    """Mean of the four distinct crosswalk vertices, as (lat, lon)."""
    ring = CROSSWALK_POLYGON[:-1]
    lon = sum(v[0] for v in ring) / len(ring)
    lat = sum(v[1] for v in ring) / len(ring)
    return lat, lon


@pytest.fixture()
def fixed_clock() -> Callable[[], pd.Timestamp]:
    now = pd.Timestamp(NOW, tz="UTC")
    return lambda: now


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

@pytest.fixture()
def make_vehicle() -> Callable[..., TrackedVehicle]:
    def _make(vehicle_id: int = 1, coordinates=FAR_VEHICLE_POS,
              timestamp: str = "2025-05-21T00:03:09", **kwargs: Any) -> TrackedVehicle:
        return TrackedVehicle(id=vehicle_id, coordinates=coordinates, timestamp=timestamp, **kwargs)
    return _make


@pytest.fixture()
def make_pedestrian() -> Callable[..., TrackedPedestrian]:
    def _make(pedestrian_id: int = 100, coordinates=PEDESTRIAN_POS,
              timestamp: str = "2025-05-21T00:03:09", **kwargs: Any) -> TrackedPedestrian:
        return TrackedPedestrian(id=pedestrian_id, coordinates=coordinates, timestamp=timestamp, **kwargs)
    return _make


# ---------------------------------------------------------------------------
# SDSM messages and config
# ---------------------------------------------------------------------------

@pytest.fixture()
def sdsm_message() -> dict[str, Any]:
    """
    One vehicle by absolute location, one pedestrian by offset from the
    message refPoint, one object with no id (malformed).
    """
    return {
        "intersectionID": "27481",
        "intersection": "MLK_Central",
        "timestamp": "2025-05-21T00:03:09.388487",
        "refPoint": {"lat": 350397934, "lon": -852921050},
        "objects": [
            {
                "objectID": 1, "type": "vehicle", "timestamp": "2025-05-21T00:03:09.388487",
                "location": {"type": "Point", "coordinates": list(FAR_VEHICLE_POS)},
                "heading": 270.0, "speed": 8.5, "size": {"width": 1.8, "length": None},
            },
            {
                "objectID": 100, "type": "vru",
                "offset": {"x": -0.00004824, "y": -0.00000146},
            },
            {
                "type": "vru",
                "location": {"type": "Point", "coordinates": list(PEDESTRIAN_POS)},
            },
        ],
    }


@pytest.fixture()
def sentinel_cfg() -> dict[str, Any]:
    return {
        "reference_point": {"lat": 350397934, "lon": -852921050},
        "proximity": {"threshold_deg": 0.0001, "meters_per_degree": 100000},
        "tracking": {"staleness_window_s": 10.0, "sweep_interval_s": 0},
        "crosswalks": [{"name": "mlk_central_east", "polygon": CROSSWALK_POLYGON}],
        "logging": {"level": "debug"},
    }


@pytest.fixture()
def sdsm_log_file(tmp_path: Path, sdsm_message: dict[str, Any]) -> Path:
    """JSON-lines feed: two messages with one garbage line between them."""
    p = tmp_path / "feed.jsonl"
    lines = [json.dumps(sdsm_message), "{not json", json.dumps(sdsm_message)]
    p.write_text("\n".join(lines), encoding="utf-8")
    return p
