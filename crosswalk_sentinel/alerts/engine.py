"""
Pedestrian alert evaluation.

Once per cycle the engine takes a tracker snapshot, measures every
(pedestrian, vehicle) pair with the planar degree-space metric from
crosswalk_sentinel.geo.distance, and produces:

  PedestrianAlert      — one aggregate record for the cycle
  PedestrianProximity  — one detail record per pedestrian, with severity

A pedestrian within the threshold of any vehicle is CAUTION; the same
pedestrian inside a crosswalk is CRITICAL. The aggregate record keeps its
two-field schema: ``is_vehicle_approaching`` is conditional on
proximity, while ``pedestrian_count`` is simply how many pedestrians the
snapshot holds (including those nowhere near a vehicle).

The engine keeps no state between cycles and does not debounce repeated
alerts; rate limiting belongs to whoever consumes the alert stream.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from crosswalk_sentinel.data.models import (
    AlertEvaluation,
    PedestrianAlert,
    PedestrianProximity,
    TrackerSnapshot,
)
from crosswalk_sentinel.errors import ConfigurationError
from crosswalk_sentinel.geo.distance import (
    DEFAULT_PROXIMITY_THRESHOLD_DEG,
    METERS_PER_DEGREE,
    degrees_to_meters,
    pairwise_distances,
)

logger = logging.getLogger(__name__)


def _check_positive(value: float, what: str = "proximity threshold") -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{what} must be a number, got {value!r}")
    if not math.isfinite(value) or value <= 0:
        raise ConfigurationError(f"{what} must be positive, got {value}")
    return float(value)


class AlertEngine:
    """
    Stateless evaluator for tracker snapshots.

    Args:
        threshold_deg: Default proximity threshold in degrees.
        meters_per_degree: Factor used for the approximate distance_m field.
    """

    def __init__(
        self,
        threshold_deg: float = DEFAULT_PROXIMITY_THRESHOLD_DEG,
        meters_per_degree: float = METERS_PER_DEGREE,
    ) -> None:
        self.threshold_deg = _check_positive(threshold_deg)
        self.meters_per_degree = _check_positive(meters_per_degree, "meters_per_degree")

    def evaluate(self, snapshot: TrackerSnapshot, threshold: Optional[float] = None) -> PedestrianAlert:
        """Aggregate alert for one snapshot."""
        return self.assess(snapshot, threshold).alert

    def assess(self, snapshot: TrackerSnapshot, threshold: Optional[float] = None) -> AlertEvaluation:
        """
        Aggregate alert plus per-pedestrian detail for one snapshot.

        Args:
            snapshot: Output of EntityTracker.snapshot().
            threshold: Override for this call; defaults to the engine threshold.
                       A pair triggers only when its distance is strictly less.
        """
        limit = self.threshold_deg if threshold is None else _check_positive(threshold)
        pedestrians = snapshot.pedestrians
        vehicles = snapshot.vehicles

        # rows = pedestrians, columns = vehicles
        dist = pairwise_distances(
            [p.coordinates for p in pedestrians],
            [v.coordinates for v in vehicles],
        )

        proximities = []
        for row, pedestrian in enumerate(pedestrians):
            if vehicles:
                col = int(np.argmin(dist[row]))
                nearest_id: Optional[int] = vehicles[col].id
                nearest = float(dist[row, col])
            else:
                nearest_id, nearest = None, math.inf

            proximities.append(PedestrianProximity(
                pedestrian_id=pedestrian.id,
                nearest_vehicle_id=nearest_id,
                distance_deg=nearest,
                distance_m=degrees_to_meters(nearest, self.meters_per_degree),
                is_vehicle_near=nearest < limit,
                is_in_crosswalk=pedestrian.is_in_crosswalk,
            ))

        alert = PedestrianAlert(
            timestamp=snapshot.taken_at,
            pedestrian_count=len(pedestrians),
            is_vehicle_approaching=any(p.is_vehicle_near for p in proximities),
        )
        return AlertEvaluation(alert=alert, proximities=tuple(proximities))


def log_alert(evaluation: AlertEvaluation, log: Optional[logging.Logger] = None) -> None:
    """Log a WARNING summary when the cycle found a vehicle in range."""
    log = log or logger
    alert = evaluation.alert
    if not alert.is_vehicle_approaching:
        log.debug("No vehicle in range (%d pedestrians tracked)", alert.pedestrian_count)
        return

    near = [p for p in evaluation.proximities if p.is_vehicle_near]
    log.warning(
        "PEDESTRIAN ALERT at %s: %d of %d pedestrians have a vehicle in range (%d in crosswalk)",
        alert.timestamp, len(near), alert.pedestrian_count, len(evaluation.critical),
    )
    for p in near:
        log.warning(
            "  pedestrian %s: vehicle %s at ~%.1f m [%s]",
            p.pedestrian_id, p.nearest_vehicle_id, p.distance_m, p.severity.value,
        )


def alerts_to_frame(alerts: Iterable[PedestrianAlert]) -> pd.DataFrame:
    """One row per evaluation cycle, in the order given."""
    return pd.DataFrame(
        [
            {
                "timestamp": a.timestamp,
                "pedestrian_count": a.pedestrian_count,
                "is_vehicle_approaching": a.is_vehicle_approaching,
            }
            for a in alerts
        ],
        columns=["timestamp", "pedestrian_count", "is_vehicle_approaching"],
    )
