"""
Live registry of the vehicles and pedestrians currently reported by SDSM.

One record per (kind, id). A new report for a known id replaces the old
record outright; fields are never merged. Entries whose last report is
older than the staleness window are purged, either by calling
remove_stale() before each evaluation or by the optional background sweep.

Thread model: a single writer is expected, but every public method takes
the same re-entrant lock and snapshot() copies under it, so a report
arriving on another thread can never be half-visible to an evaluation.
An evaluation that already holds a snapshot is unaffected by later
upserts, removals or cleanup().
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Union

import pandas as pd

from crosswalk_sentinel.data.models import (
    TrackedEntity,
    TrackedPedestrian,
    TrackedVehicle,
    TrackerSnapshot,
)
from crosswalk_sentinel.data.parser import parse_timestamp
from crosswalk_sentinel.errors import ConfigurationError, SentinelError, UnknownEntity
from crosswalk_sentinel.geo.convert import ensure_pair

logger = logging.getLogger(__name__)

TimeLike = Union[str, datetime, pd.Timestamp]
WindowLike = Union[float, int, timedelta, pd.Timedelta]

_SNAPSHOT_COLUMNS = [
    "kind", "id", "lat", "lon", "timestamp",
    "heading", "speed", "width", "length", "is_in_crosswalk",
]


def _utcnow() -> pd.Timestamp:
    return pd.Timestamp.now(tz="UTC")


def _to_window(window: WindowLike) -> pd.Timedelta:
    if isinstance(window, bool):
        raise ConfigurationError(f"staleness window must be a duration, got {window!r}")
    if isinstance(window, (int, float)):
        delta = pd.Timedelta(seconds=window)
    elif isinstance(window, (timedelta, pd.Timedelta)):
        delta = pd.Timedelta(window)
    else:
        raise ConfigurationError(f"staleness window must be a duration, got {window!r}")
    if delta <= pd.Timedelta(0):
        raise ConfigurationError(f"staleness window must be positive, got {delta}")
    return delta


class EntityTracker:
    """
    Registry of tracked vehicles and pedestrians keyed by sensor id.

    Args:
        clock: Returns the current time as a UTC pandas Timestamp. Used for
               snapshot times and for remove_stale() calls without ``now``.
               Tests pass a fixed clock.
    """

    def __init__(self, clock: Optional[Callable[[], pd.Timestamp]] = None) -> None:
        self._clock = clock or _utcnow
        self._lock = threading.RLock()
        self._vehicles: dict[int, TrackedVehicle] = {}
        self._pedestrians: dict[int, TrackedPedestrian] = {}
        self._seen_at: dict[tuple[str, int], pd.Timestamp] = {}
        self._sweep_timer: Optional[threading.Timer] = None

    # ------------------------------------------------------------------
    # Upserts
    # ------------------------------------------------------------------

    def upsert_vehicle(self, vehicle: TrackedVehicle) -> None:
        if not isinstance(vehicle, TrackedVehicle):
            raise TypeError(f"expected TrackedVehicle, got {type(vehicle).__name__}")
        record, seen_at = self._validated(vehicle)
        with self._lock:
            self._vehicles[record.id] = record
            self._seen_at[("vehicle", record.id)] = seen_at

    def upsert_pedestrian(self, pedestrian: TrackedPedestrian) -> None:
        if not isinstance(pedestrian, TrackedPedestrian):
            raise TypeError(f"expected TrackedPedestrian, got {type(pedestrian).__name__}")
        record, seen_at = self._validated(pedestrian)
        with self._lock:
            self._pedestrians[record.id] = record
            self._seen_at[("pedestrian", record.id)] = seen_at

    def upsert(self, entity: TrackedEntity) -> None:
        if isinstance(entity, TrackedVehicle):
            self.upsert_vehicle(entity)
        elif isinstance(entity, TrackedPedestrian):
            self.upsert_pedestrian(entity)
        else:
            raise TypeError(f"cannot track {type(entity).__name__}")

    def apply_reports(self, entities: Iterable[TrackedEntity]) -> tuple[int, int]:
        """
        Upsert a batch of reports, skipping the ones that fail validation.

        Returns:
            (applied, skipped) counts.
        """
        applied = skipped = 0
        with self._lock:
            for entity in entities:
                try:
                    self.upsert(entity)
                except (SentinelError, TypeError) as exc:
                    skipped += 1
                    logger.warning(
                        "Skipping %s report %s: %s",
                        getattr(entity, "kind", "unknown"), getattr(entity, "id", "?"), exc,
                    )
                else:
                    applied += 1
        return applied, skipped

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def remove(self, kind: str, entity_id: int, strict: bool = False) -> bool:
        """
        Drop one entity.

        Removing an id that isn't tracked is a no-op that returns False,
        unless ``strict`` is set, in which case UnknownEntity is raised.
        """
        registry = self._registry(kind)
        with self._lock:
            if registry.pop(entity_id, None) is None:
                if strict:
                    raise UnknownEntity(kind, entity_id)
                logger.debug("remove(%s, %s): not tracked", kind, entity_id)
                return False
            self._seen_at.pop((kind, entity_id), None)
        return True

    def remove_vehicle(self, vehicle_id: int) -> bool:
        return self.remove("vehicle", vehicle_id)

    def remove_pedestrian(self, pedestrian_id: int) -> bool:
        return self.remove("pedestrian", pedestrian_id)

    def remove_stale(self, now: Optional[TimeLike], window: WindowLike) -> int:
        """
        Purge every entity whose last report is older than ``now - window``.

        An entity stamped exactly at the cutoff is kept.

        Args:
            now: Reference time; None means the tracker clock.
            window: Staleness window, in seconds or as a timedelta.

        Returns:
            Number of entities removed.
        """
        cutoff = (self._clock() if now is None else parse_timestamp(now)) - _to_window(window)

        with self._lock:
            stale = [key for key, seen_at in self._seen_at.items() if seen_at < cutoff]
            for kind, entity_id in stale:
                self._registry(kind).pop(entity_id, None)
                del self._seen_at[(kind, entity_id)]

        if stale:
            logger.debug("Purged %d stale entities (cutoff %s)", len(stale), cutoff.isoformat())
        return len(stale)

    def cleanup(self) -> None:
        """Forget every entity and cancel the sweep timer. Safe to repeat."""
        self.stop_sweeper()
        with self._lock:
            self._vehicles.clear()
            self._pedestrians.clear()
            self._seen_at.clear()

    # ------------------------------------------------------------------
    # Background staleness sweep
    # ------------------------------------------------------------------

    def start_sweeper(self, interval_s: float, window: WindowLike) -> None:
        """
        Call remove_stale() every ``interval_s`` seconds on a daemon timer.

        Restarting replaces any sweep already scheduled.
        """
        if interval_s <= 0:
            raise ConfigurationError(f"sweep interval must be positive, got {interval_s}")
        delta = _to_window(window)
        with self._lock:
            self._cancel_timer()
            self._schedule_sweep(interval_s, delta)

    def stop_sweeper(self) -> None:
        with self._lock:
            self._cancel_timer()

    @property
    def sweeping(self) -> bool:
        with self._lock:
            return self._sweep_timer is not None

    def _schedule_sweep(self, interval_s: float, window: pd.Timedelta) -> None:
        timer = threading.Timer(interval_s, self._sweep, args=(interval_s, window))
        timer.daemon = True
        self._sweep_timer = timer
        timer.start()

    def _sweep(self, interval_s: float, window: pd.Timedelta) -> None:
        with self._lock:
            # cleanup() or a restart ran while this tick was waiting for the lock
            if self._sweep_timer is None or threading.current_thread() is not self._sweep_timer:
                return
            self.remove_stale(None, window)
            self._schedule_sweep(interval_s, window)

    def _cancel_timer(self) -> None:
        if self._sweep_timer is not None:
            self._sweep_timer.cancel()
            self._sweep_timer = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self, at: Optional[TimeLike] = None) -> TrackerSnapshot:
        """
        Immutable copy of the registry, ordered by id.

        ``at`` stamps the snapshot (and so the alert built from it); it
        defaults to the tracker clock.
        """
        taken_at = self._clock() if at is None else parse_timestamp(at)
        with self._lock:
            vehicles = tuple(self._vehicles[k] for k in sorted(self._vehicles))
            pedestrians = tuple(self._pedestrians[k] for k in sorted(self._pedestrians))
        return TrackerSnapshot(
            vehicles=vehicles,
            pedestrians=pedestrians,
            taken_at=taken_at.isoformat(),
        )

    def count(self) -> tuple[int, int]:
        with self._lock:
            return len(self._vehicles), len(self._pedestrians)

    def __len__(self) -> int:
        vehicles, pedestrians = self.count()
        return vehicles + pedestrians

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _registry(self, kind: str) -> dict:
        if kind == "vehicle":
            return self._vehicles
        if kind == "pedestrian":
            return self._pedestrians
        raise ValueError(f"unknown entity kind {kind!r}")

    @staticmethod
    def _validated(entity: TrackedEntity) -> tuple[TrackedEntity, pd.Timestamp]:
        coordinates = ensure_pair(entity.coordinates, f"{entity.kind} {entity.id} coordinates")
        seen_at = parse_timestamp(entity.timestamp)
        if not isinstance(entity.coordinates, tuple) or coordinates != entity.coordinates:
            entity = replace(entity, coordinates=coordinates)
        return entity, seen_at


def snapshot_to_frame(snapshot: TrackerSnapshot) -> pd.DataFrame:
    """
    Flatten a snapshot into one row per entity for display or review.

    Vehicle-only columns are NaN for pedestrians and vice versa.
    """
    rows = []
    for v in snapshot.vehicles:
        rows.append({
            "kind": v.kind, "id": v.id,
            "lat": v.coordinates[0], "lon": v.coordinates[1],
            "timestamp": v.timestamp,
            "heading": v.heading, "speed": v.speed,
            "width": v.size.width if v.size else None,
            "length": v.size.length if v.size else None,
            "is_in_crosswalk": None,
        })
    for p in snapshot.pedestrians:
        rows.append({
            "kind": p.kind, "id": p.id,
            "lat": p.coordinates[0], "lon": p.coordinates[1],
            "timestamp": p.timestamp,
            "heading": None, "speed": None, "width": None, "length": None,
            "is_in_crosswalk": p.is_in_crosswalk,
        })
    return pd.DataFrame(rows, columns=_SNAPSHOT_COLUMNS)
