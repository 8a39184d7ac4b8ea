"""
Reference point + offset → geodetic coordinate conversion.

SDSM messages carry one reference point per message as integers scaled by
1e7, and each detected object as a small (x=lon, y=lat) offset from it.
This module turns those into absolute decimal-degree coordinates.

All functions are pure: no I/O, no module state, identical output for
identical input. Bad input raises InvalidCoordinate; nothing is clamped,
rounded or replaced with a placeholder like (0, 0).

Output is longitude-first (GeodeticCoordinate), which is what map layers
expect. The tracker stores latitude-first pairs, so use to_lat_lon() when
handing converter output to it.

Usage:

    from crosswalk_sentinel.data.models import OffsetCoordinate, ReferencePoint
    from crosswalk_sentinel.geo.convert import offsets_to_geodetic

    ref = ReferencePoint(lat=350397934, lon=-852921050)
    coords = offsets_to_geodetic([OffsetCoordinate(x=-4.8e-5, y=-1.5e-6)], ref)
    # [GeodeticCoordinate(longitude=-85.2921530, latitude=35.0397919)]
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import ClassVar, Iterable, Sequence, Union

import numpy as np

from crosswalk_sentinel.data.models import (
    COORDINATE_SCALE,
    GeodeticCoordinate,
    OffsetCoordinate,
    ReferencePoint,
)
from crosswalk_sentinel.errors import InvalidCoordinate


def _finite(value: object, what: str) -> float:
    # bool is an int subclass but never a coordinate
    if isinstance(value, bool) or not isinstance(value, (int, float, np.number)):
        raise InvalidCoordinate(f"{what} must be a number, got {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise InvalidCoordinate(f"{what} must be finite, got {number}")
    return number


def ensure_pair(value: object, what: str = "coordinate") -> tuple[float, float]:
    """
    Return ``value`` as a (float, float) tuple, or raise InvalidCoordinate.

    Accepts any two-element sequence of finite real numbers. Strings, dicts,
    one- or three-element sequences and NaN/inf components are rejected.
    """
    if isinstance(value, (str, bytes)) or not isinstance(value, (Sequence, np.ndarray)):
        raise InvalidCoordinate(f"{what} must be a pair of numbers, got {value!r}")
    if len(value) != 2:
        raise InvalidCoordinate(f"{what} must have exactly 2 values, got {len(value)}")
    return _finite(value[0], what), _finite(value[1], what)


def reference_to_geodetic(ref: ReferencePoint) -> GeodeticCoordinate:
    """
    Scale an integer reference point to decimal degrees.

    The input is latitude/longitude; the output is (longitude, latitude).
    """
    lat = _finite(ref.lat, "reference latitude") / COORDINATE_SCALE
    lon = _finite(ref.lon, "reference longitude") / COORDINATE_SCALE
    return GeodeticCoordinate(longitude=lon, latitude=lat)


def offsets_to_geodetic(
    offsets: Iterable[OffsetCoordinate],
    ref: ReferencePoint,
) -> list[GeodeticCoordinate]:
    """
    Resolve a batch of offsets against a single reference point.

    The reference point is resolved once; each offset's x is added to the
    reference longitude and y to the reference latitude. Order is preserved
    and an empty input gives an empty list. Every offset is validated before
    any arithmetic, so a single non-finite value fails the whole call.
    """
    origin = reference_to_geodetic(ref)
    deltas = [
        (_finite(o.x, f"offset[{i}].x"), _finite(o.y, f"offset[{i}].y"))
        for i, o in enumerate(offsets)
    ]
    if not deltas:
        return []

    resolved = np.asarray(deltas, dtype=np.float64) + np.array(
        [origin.longitude, origin.latitude], dtype=np.float64
    )
    return [GeodeticCoordinate(float(lon), float(lat)) for lon, lat in resolved]


def single_offset_to_geodetic(
    offset: OffsetCoordinate,
    ref: ReferencePoint,
) -> GeodeticCoordinate:
    """Convenience form of offsets_to_geodetic for one offset."""
    return offsets_to_geodetic([offset], ref)[0]


def to_lat_lon(coord: GeodeticCoordinate) -> tuple[float, float]:
    """Flip a longitude-first coordinate into the tracker's (lat, lon) order."""
    return coord.latitude, coord.longitude


# ---------------------------------------------------------------------------
# Two-variant results for the display boundary
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Converted:
    coordinate: GeodeticCoordinate
    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class Rejected:
    reason: str
    ok: ClassVar[bool] = False


ConversionResult = Union[Converted, Rejected]


def try_single_offset(offset: OffsetCoordinate, ref: ReferencePoint) -> ConversionResult:
    """
    Like single_offset_to_geodetic, but returns Rejected instead of raising.

    The caller decides what a rejection means (usually "don't draw it").
    """
    try:
        return Converted(single_offset_to_geodetic(offset, ref))
    except InvalidCoordinate as exc:
        return Rejected(str(exc))


def check_renderable(value: object) -> ConversionResult:
    """
    Check a longitude-first pair coming from elsewhere before drawing it.

    Anything that is not exactly two finite numbers comes back Rejected.
    """
    try:
        lon, lat = ensure_pair(value, "marker coordinate")
    except InvalidCoordinate as exc:
        return Rejected(str(exc))
    return Converted(GeodeticCoordinate(longitude=lon, latitude=lat))
