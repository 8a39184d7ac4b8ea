"""
01_replay_feed.py — Replay a recorded SDSM feed through the alert pipeline.

Reads the feed named in configs/sentinel.yaml (replay.feed_path), runs each
message through SentinelPipeline as one evaluation cycle, and writes the
per-cycle alert records to a CSV for review. The staleness window is
measured against each message's own timestamp (or its newest object
timestamp when the message time is missing or unreadable), so a recording
replays the same way no matter when it is run.

Usage:
    python -m pipeline.01_replay_feed

Output:
    data/analysis_results/replay_alerts.csv
"""

from __future__ import annotations

import sys
from pathlib import Path

# Make the project root importable so crosswalk_sentinel.* works from any directory.
_PROJECT_ROOT = Path(__file__).parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from crosswalk_sentinel.alerts.engine import alerts_to_frame  # noqa: E402
from crosswalk_sentinel.config import build_settings, load_config  # noqa: E402
from crosswalk_sentinel.data.models import AlertEvaluation  # noqa: E402
from crosswalk_sentinel.data.parser import load_sdsm_log  # noqa: E402
from crosswalk_sentinel.logging_utils import get_logger  # noqa: E402
from crosswalk_sentinel.pipeline import SentinelPipeline  # noqa: E402

_cfg = load_config("sentinel")
_replay = _cfg.get("replay", {})

logger = get_logger(__name__, level=_cfg.get("logging", {}).get("level", "INFO"))


def main() -> None:
    settings = build_settings(_cfg)
    feed_path = _PROJECT_ROOT / _replay.get("feed_path", "data/sdsm/recorded_feed.jsonl")
    output_csv = _PROJECT_ROOT / _replay.get("output_csv", "data/analysis_results/replay_alerts.csv")

    messages = load_sdsm_log(feed_path)
    logger.info("Loaded %d SDSM messages from %s", len(messages), feed_path.name)
    if not messages:
        logger.error("Nothing to replay.")
        return

    sentinel = SentinelPipeline(settings)
    evaluations: list[AlertEvaluation] = []
    sentinel.subscribe(evaluations.append)

    try:
        for message in messages:
            # message clock, not wall clock; a bad or missing message time
            # falls back to the newest object time inside the pipeline
            sentinel.process_message(message)
    finally:
        sentinel.shutdown()

    alerts_df = alerts_to_frame(e.alert for e in evaluations)
    alerts_df["critical_pedestrians"] = [len(e.critical) for e in evaluations]

    output_csv.parent.mkdir(parents=True, exist_ok=True)
    alerts_df.to_csv(output_csv, index=False)

    approaching = int(alerts_df["is_vehicle_approaching"].sum())
    logger.info(
        "Replayed %d cycles: %d with a vehicle in range (%.1f%%), %d with a crosswalk pedestrian at risk",
        len(alerts_df),
        approaching,
        100.0 * approaching / len(alerts_df),
        int((alerts_df["critical_pedestrians"] > 0).sum()),
    )
    logger.info("Alert log saved to %s", output_csv)

    if approaching:
        first = alerts_df[alerts_df["is_vehicle_approaching"]].iloc[0]
        logger.info("  first alert at %s (%d pedestrians tracked)",
                    first["timestamp"], int(first["pedestrian_count"]))


if __name__ == "__main__":
    main()
