"""
Config loader for Crosswalk Sentinel.

All configuration lives in the configs/ directory as YAML files. The
pipeline and scripts load their settings through this module so there's
one place to look when a value needs changing.

Usage:

    from crosswalk_sentinel.config import build_settings, load_config

    cfg = load_config("sentinel")
    settings = build_settings(cfg)
    settings.threshold_deg       # 0.0001

build_settings() is the activation gate: anything wrong with the reference
point, threshold or staleness window raises ConfigurationError here rather
than surfacing later as per-report failures.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from crosswalk_sentinel.data.models import ReferencePoint
from crosswalk_sentinel.errors import ConfigurationError, InvalidCoordinate
from crosswalk_sentinel.geo.crosswalk import CrosswalkZone
from crosswalk_sentinel.geo.distance import DEFAULT_PROXIMITY_THRESHOLD_DEG, METERS_PER_DEGREE

# Resolve the configs/ directory relative to this file so the package works
# regardless of the working directory the caller uses.
_CONFIGS_DIR = Path(__file__).parent.parent / "configs"

DEFAULT_STALENESS_WINDOW_S = 10.0
DEFAULT_SWEEP_INTERVAL_S = 1.0


def load_config(name: str, configs_dir: Path | str | None = None) -> dict[str, Any]:
    """
    Load a named YAML config file from the configs/ directory.

    Args:
        name: Config file name without the .yaml extension, e.g. "sentinel".
        configs_dir: Directory to look in instead of the project configs/.

    Returns:
        The parsed YAML contents as a nested dictionary (empty dict for an
        empty file).

    Raises:
        FileNotFoundError: If <configs_dir>/<name>.yaml does not exist.
        yaml.YAMLError: If the file contains invalid YAML.
    """
    base = Path(configs_dir) if configs_dir is not None else _CONFIGS_DIR
    path = base / f"{name}.yaml"
    if not path.exists():
        raise FileNotFoundError(
            f"Config file not found: {path}\n"
            f"Expected one of: {[p.stem for p in base.glob('*.yaml')]}"
        )
    with path.open(encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


@dataclass(frozen=True)
class SentinelSettings:
    reference_point: ReferencePoint
    threshold_deg: float = DEFAULT_PROXIMITY_THRESHOLD_DEG
    meters_per_degree: float = METERS_PER_DEGREE
    staleness_window_s: float = DEFAULT_STALENESS_WINDOW_S
    sweep_interval_s: float = DEFAULT_SWEEP_INTERVAL_S
    crosswalks: tuple[CrosswalkZone, ...] = ()
    log_level: str = "INFO"


def build_settings(cfg: Optional[dict[str, Any]]) -> SentinelSettings:
    """
    Validate a raw config dict and turn it into SentinelSettings.

    Raises:
        ConfigurationError: On a missing or non-integer reference point,
            a non-positive threshold or staleness window, a negative sweep
            interval, or a malformed crosswalk polygon.
    """
    if not isinstance(cfg, dict):
        raise ConfigurationError(f"Config must be a mapping, got {type(cfg).__name__}")

    proximity = _section(cfg, "proximity")
    tracking = _section(cfg, "tracking")
    logging_cfg = _section(cfg, "logging")

    threshold = _positive(proximity.get("threshold_deg", DEFAULT_PROXIMITY_THRESHOLD_DEG),
                          "proximity.threshold_deg")
    meters_per_degree = _positive(proximity.get("meters_per_degree", METERS_PER_DEGREE),
                                  "proximity.meters_per_degree")
    window = _positive(tracking.get("staleness_window_s", DEFAULT_STALENESS_WINDOW_S),
                       "tracking.staleness_window_s")

    sweep = _number(tracking.get("sweep_interval_s", DEFAULT_SWEEP_INTERVAL_S),
                    "tracking.sweep_interval_s")
    if sweep < 0:
        raise ConfigurationError(f"tracking.sweep_interval_s must be >= 0, got {sweep}")

    return SentinelSettings(
        reference_point=parse_reference_point(cfg.get("reference_point")),
        threshold_deg=threshold,
        meters_per_degree=meters_per_degree,
        staleness_window_s=window,
        sweep_interval_s=sweep,
        crosswalks=_crosswalks(cfg.get("crosswalks") or []),
        log_level=str(logging_cfg.get("level", "INFO")).upper(),
    )


def parse_reference_point(raw: Any) -> ReferencePoint:
    """Build a ReferencePoint from ``{lat: int, lon: int}``."""
    if not isinstance(raw, dict):
        raise ConfigurationError("reference_point with integer lat and lon is required")

    values = {}
    for key in ("lat", "lon"):
        value = raw.get(key)
        if value is None:
            raise ConfigurationError(f"reference_point.{key} is missing")
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(
                f"reference_point.{key} must be an integer in 1e-7 degrees, got {value!r}"
            )
        values[key] = value

    if abs(values["lat"]) > 900_000_000 or abs(values["lon"]) > 1_800_000_000:
        raise ConfigurationError(f"reference_point out of range: {values}")
    return ReferencePoint(lat=values["lat"], lon=values["lon"])


def _section(cfg: dict[str, Any], key: str) -> dict[str, Any]:
    value = cfg.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"'{key}' must be a mapping, got {type(value).__name__}")
    return value


def _number(value: Any, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{key} must be a number, got {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise ConfigurationError(f"{key} must be finite, got {number}")
    return number


def _positive(value: Any, key: str) -> float:
    number = _number(value, key)
    if number <= 0:
        raise ConfigurationError(f"{key} must be > 0, got {number}")
    return number


def _crosswalks(raw: Any) -> tuple[CrosswalkZone, ...]:
    if not isinstance(raw, list):
        raise ConfigurationError("'crosswalks' must be a list")

    zones = []
    for i, entry in enumerate(raw):
        if not isinstance(entry, dict) or "polygon" not in entry:
            raise ConfigurationError(f"crosswalks[{i}] needs a 'polygon' list")
        name = str(entry.get("name", f"crosswalk_{i}"))
        try:
            zones.append(CrosswalkZone.from_vertices(name, entry["polygon"]))
        except (InvalidCoordinate, TypeError) as exc:
            raise ConfigurationError(f"crosswalks[{i}] ({name}): {exc}") from exc
    return tuple(zones)
