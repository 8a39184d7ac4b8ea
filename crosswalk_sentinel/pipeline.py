"""
Ingest → prune → evaluate, one SDSM message at a time.

SentinelPipeline wires the parser, tracker and alert engine together with
the validated settings. Each call to process_message() is one evaluation
cycle: every valid object in the message is upserted, stale entities are
purged, a snapshot is taken and assessed, and subscribers receive the
result. Malformed objects are logged and skipped without aborting the
cycle.

Usage:

    from crosswalk_sentinel.pipeline import SentinelPipeline

    sentinel = SentinelPipeline.from_config("sentinel")
    sentinel.subscribe(lambda ev: print(ev.alert))
    sentinel.start()
    for message in feed:
        sentinel.process_message(message)
    sentinel.shutdown()
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional

import pandas as pd

from crosswalk_sentinel.alerts.engine import AlertEngine, log_alert
from crosswalk_sentinel.config import SentinelSettings, build_settings, load_config
from crosswalk_sentinel.data.models import AlertEvaluation, TrackedEntity
from crosswalk_sentinel.data.parser import parse_sdsm_message, parse_timestamp
from crosswalk_sentinel.errors import ConfigurationError, MalformedReport
from crosswalk_sentinel.tracking.tracker import EntityTracker, TimeLike

logger = logging.getLogger(__name__)

AlertCallback = Callable[[AlertEvaluation], None]


class SentinelPipeline:
    def __init__(
        self,
        settings: SentinelSettings,
        tracker: Optional[EntityTracker] = None,
        engine: Optional[AlertEngine] = None,
    ) -> None:
        if not isinstance(settings, SentinelSettings):
            raise ConfigurationError("SentinelPipeline needs validated SentinelSettings")
        self.settings = settings
        self.tracker = tracker or EntityTracker()
        self.engine = engine or AlertEngine(settings.threshold_deg, settings.meters_per_degree)
        self._subscribers: list[AlertCallback] = []

    @classmethod
    def from_dict(cls, cfg: dict[str, Any], **kwargs: Any) -> "SentinelPipeline":
        """Validate a raw config dict and build the pipeline from it."""
        return cls(build_settings(cfg), **kwargs)

    @classmethod
    def from_config(cls, name: str = "sentinel", **kwargs: Any) -> "SentinelPipeline":
        return cls.from_dict(load_config(name), **kwargs)

    # ------------------------------------------------------------------

    def subscribe(self, callback: AlertCallback) -> None:
        self._subscribers.append(callback)

    def start(self) -> None:
        """Start the background staleness sweep, if one is configured."""
        if self.settings.sweep_interval_s > 0:
            self.tracker.start_sweeper(self.settings.sweep_interval_s, self.settings.staleness_window_s)

    def shutdown(self) -> None:
        self.tracker.cleanup()

    # ------------------------------------------------------------------

    def process_message(self, message: Any, now: Optional[TimeLike] = None) -> AlertEvaluation:
        """
        Run one cycle for a raw SDSM message.

        A message that isn't a JSON object contributes no reports, but the
        cycle still prunes and evaluates so the alert stream keeps ticking.

        The cycle runs on the message clock: ``now`` if given and valid,
        else the message timestamp, else the newest object timestamp, else
        the tracker clock. An unusable time is logged and skipped over.
        """
        message_time = None
        try:
            parsed = parse_sdsm_message(
                message,
                ref=self.settings.reference_point,
                crosswalks=self.settings.crosswalks,
            )
            entities: list[TrackedEntity] = parsed.entities
            message_time = parsed.timestamp
        except MalformedReport as exc:
            logger.warning("Dropping SDSM message: %s", exc)
            entities = []
        at = _cycle_time([now, message_time], entities)
        return self.process_reports(entities, now=at)

    def process_reports(
        self,
        entities: Iterable[TrackedEntity],
        now: Optional[TimeLike] = None,
    ) -> AlertEvaluation:
        """
        Run one cycle for already-parsed reports.

        A missing or unparseable ``now`` falls back to the newest report
        timestamp, then to the tracker clock.
        """
        entities = list(entities)
        at = _cycle_time([now], entities)
        applied, skipped = self.tracker.apply_reports(entities)
        purged = self.tracker.remove_stale(at, self.settings.staleness_window_s)
        snapshot = self.tracker.snapshot(at=at)
        evaluation = self.engine.assess(snapshot)

        vehicles, pedestrians = len(snapshot.vehicles), len(snapshot.pedestrians)
        logger.debug(
            "Cycle: applied=%d skipped=%d purged=%d vehicles=%d pedestrians=%d",
            applied, skipped, purged, vehicles, pedestrians,
        )
        log_alert(evaluation, logger)
        self._publish(evaluation)
        return evaluation

    def _publish(self, evaluation: AlertEvaluation) -> None:
        for callback in list(self._subscribers):
            try:
                callback(evaluation)
            except Exception:
                # a broken consumer must not stop the feed
                logger.exception("Alert subscriber %r failed", callback)


def _cycle_time(candidates: Iterable[Any], entities: Iterable[Any]) -> Optional[pd.Timestamp]:
    """First parseable candidate, else the newest entity timestamp, else None."""
    for value in candidates:
        if value is None:
            continue
        try:
            return parse_timestamp(value)
        except MalformedReport as exc:
            logger.warning("Ignoring cycle time: %s", exc)

    stamps = []
    for entity in entities:
        try:
            stamps.append(parse_timestamp(getattr(entity, "timestamp", None)))
        except MalformedReport:
            continue
    return max(stamps) if stamps else None
