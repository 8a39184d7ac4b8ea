"""
Data records for the sentinel pipeline.

Everything here is a frozen dataclass or NamedTuple: the tracker replaces
records wholesale on every report, and snapshots hand the same objects to
the alert engine without copying, so nothing may be mutated in place.

Coordinate ordering is the one thing to keep straight:

  GeodeticCoordinate       (longitude, latitude) — converter output, map-ready
  TrackedVehicle/Pedestrian.coordinates  (latitude, longitude) — sensor order

The flip between the two happens in exactly one place
(crosswalk_sentinel.geo.convert.to_lat_lon).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, NamedTuple, Optional, Union

# Reference points are transmitted as integers in units of 1e-7 degrees.
COORDINATE_SCALE = 10_000_000


@dataclass(frozen=True)
class ReferencePoint:
    """Shared anchor for a message, in 1e-7 degree integer units."""

    lat: int
    lon: int


@dataclass(frozen=True)
class OffsetCoordinate:
    """Longitude (x) and latitude (y) deltas in decimal degrees."""

    x: float
    y: float


class GeodeticCoordinate(NamedTuple):
    longitude: float
    latitude: float


@dataclass(frozen=True)
class VehicleSize:
    width: Optional[float] = None
    length: Optional[float] = None


@dataclass(frozen=True)
class TrackedVehicle:
    """
    Latest report for one vehicle.

    Attributes:
        id: Sensor object id, unique among vehicles.
        coordinates: (latitude, longitude) in decimal degrees.
        timestamp: ISO-8601 time of the report.
        heading: Degrees clockwise from north, if reported.
        speed: Metres per second, if reported.
        size: Footprint in metres, if reported.
    """

    kind: ClassVar[str] = "vehicle"

    id: int
    coordinates: tuple[float, float]
    timestamp: str
    heading: Optional[float] = None
    speed: Optional[float] = None
    size: Optional[VehicleSize] = None


@dataclass(frozen=True)
class TrackedPedestrian:
    """Latest report for one pedestrian (SDSM "vru")."""

    kind: ClassVar[str] = "pedestrian"

    id: int
    coordinates: tuple[float, float]
    timestamp: str
    is_in_crosswalk: bool = False


TrackedEntity = Union[TrackedVehicle, TrackedPedestrian]


@dataclass(frozen=True)
class PedestrianAlert:
    """
    Aggregate result of one evaluation cycle.

    pedestrian_count is the number of pedestrians in the snapshot, whether
    or not any of them is near a vehicle.
    """

    timestamp: str
    pedestrian_count: int
    is_vehicle_approaching: bool


class Severity(str, Enum):
    NONE = "none"
    CAUTION = "caution"
    CRITICAL = "critical"


@dataclass(frozen=True)
class PedestrianProximity:
    """Per-pedestrian detail behind a PedestrianAlert."""

    pedestrian_id: int
    nearest_vehicle_id: Optional[int]
    distance_deg: float
    distance_m: float
    is_vehicle_near: bool
    is_in_crosswalk: bool

    @property
    def severity(self) -> Severity:
        if not self.is_vehicle_near:
            return Severity.NONE
        return Severity.CRITICAL if self.is_in_crosswalk else Severity.CAUTION


@dataclass(frozen=True)
class AlertEvaluation:
    alert: PedestrianAlert
    proximities: tuple[PedestrianProximity, ...] = ()

    @property
    def critical(self) -> tuple[PedestrianProximity, ...]:
        """Pedestrians in a crosswalk with a vehicle in range."""
        return tuple(p for p in self.proximities if p.severity is Severity.CRITICAL)


@dataclass(frozen=True)
class TrackerSnapshot:
    """Point-in-time copy of the tracker, safe to read from any thread."""

    vehicles: tuple[TrackedVehicle, ...]
    pedestrians: tuple[TrackedPedestrian, ...]
    taken_at: str
