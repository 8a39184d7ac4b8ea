"""
Proximity metric between two geodetic points.

The distance used throughout the sentinel is plain Euclidean distance in
degree space:

    d = sqrt((a0 - b0)**2 + (a1 - b1)**2)

This is NOT a ground distance. A degree of longitude shrinks with latitude
(about 0.82 of a degree of latitude at 35°N), so the metric is only a
reasonable stand-in for separations of a few tens of metres at
mid-latitudes, which is all the crosswalk alert needs. Callers that need
metres should convert externally; degrees_to_meters() is a coarse
approximation kept for log messages and display.

Both inputs must use the same axis order. The formula is symmetric in the
two axes, so it works for (lat, lon) and (lon, lat) pairs alike.
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np

from crosswalk_sentinel.geo.convert import ensure_pair

# Roughly 10 m at the deployment intersection. Override with
# proximity.threshold_deg in the YAML config.
DEFAULT_PROXIMITY_THRESHOLD_DEG = 0.0001

# Coarse degrees → metres factor (1 degree of latitude ≈ 111 km, rounded
# down to keep the arithmetic readable in logs).
METERS_PER_DEGREE = 100_000.0


def distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Planar degree-space distance between two coordinate pairs."""
    a0, a1 = ensure_pair(a, "first coordinate")
    b0, b1 = ensure_pair(b, "second coordinate")
    return math.sqrt((a0 - b0) ** 2 + (a1 - b1) ** 2)


def is_within_threshold(a: Sequence[float], b: Sequence[float], threshold: float) -> bool:
    """True when distance(a, b) is strictly less than ``threshold``."""
    return distance(a, b) < threshold


def degrees_to_meters(d: float, meters_per_degree: float = METERS_PER_DEGREE) -> float:
    """Approximate metres for a degree-space distance (inf stays inf)."""
    return d * meters_per_degree


def pairwise_distances(
    a_points: Sequence[Sequence[float]],
    b_points: Sequence[Sequence[float]],
) -> np.ndarray:
    """
    Distance from every point in ``a_points`` to every point in ``b_points``.

    Returns an array of shape (len(a_points), len(b_points)) where entry [i, j]
    is distance(a_points[i], b_points[j]). Both functions use the same
    squared-difference sum, so scalar and batch results agree.
    Either side may be empty.
    """
    a = _as_points(a_points, "first point set")
    b = _as_points(b_points, "second point set")

    d0 = a[:, None, 0] - b[None, :, 0]
    d1 = a[:, None, 1] - b[None, :, 1]
    return np.sqrt(d0**2 + d1**2)


def _as_points(points: Sequence[Sequence[float]], what: str) -> np.ndarray:
    if len(points) == 0:
        return np.empty((0, 2), dtype=np.float64)
    return np.asarray([ensure_pair(p, what) for p in points], dtype=np.float64)
