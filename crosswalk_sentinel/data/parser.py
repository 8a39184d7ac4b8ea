"""
Parser for SDSM (Sensor Data Sharing Message) payloads.

The roadside unit publishes one message per detection cycle:

    {
      "intersectionID": "27481",
      "intersection": "MLK_Central",
      "timestamp": "2025-05-21T00:03:09.388487",
      "refPoint": {"lat": 350397934, "lon": -852921050},      # optional
      "objects": [
        {"objectID": 12, "type": "vehicle", "timestamp": "...",
         "location": {"type": "Point", "coordinates": [35.0397, -85.2920]},
         "heading": 270.0, "speed": 8.2, "size": {"width": 1.8, "length": 4.6}},
        {"objectID": 7, "type": "vru", "timestamp": "...",
         "offset": {"x": -4.824e-05, "y": -1.46e-06}},
        ...
      ]
    }

Each object carries its position either as an absolute [lat, lon] pair or as
an (x=lon, y=lat) offset from the message reference point. This module turns
each object into a TrackedVehicle or TrackedPedestrian exactly once, so
nothing downstream has to probe optional fields.

Objects that fail validation are skipped with a warning and counted; the
rest of the message is still returned.

Usage:

    from crosswalk_sentinel.data.parser import parse_sdsm_message

    result = parse_sdsm_message(message, ref=settings.reference_point)
    result.vehicles, result.pedestrians, result.skipped
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional

import pandas as pd

from crosswalk_sentinel.data.models import (
    OffsetCoordinate,
    ReferencePoint,
    TrackedEntity,
    TrackedPedestrian,
    TrackedVehicle,
    VehicleSize,
)
from crosswalk_sentinel.errors import MalformedReport, SentinelError
from crosswalk_sentinel.geo.convert import ensure_pair, single_offset_to_geodetic, to_lat_lon
from crosswalk_sentinel.geo.crosswalk import CrosswalkZone, is_in_crosswalk

logger = logging.getLogger(__name__)

_VEHICLE_TYPES = {"vehicle"}
_PEDESTRIAN_TYPES = {"vru", "pedestrian"}

# calendar date first; keeps out pandas shortcuts like "now" and "today"
_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")


def parse_timestamp(value: Any) -> pd.Timestamp:
    """
    Parse an ISO-8601 string (or datetime) into a UTC pandas Timestamp.

    SDSM timestamps are usually naive; those are taken to be UTC so they
    can be compared with aware timestamps.

    Raises:
        MalformedReport: If the value is missing or not a parseable time.
    """
    if value is None or not isinstance(value, (str, datetime)):
        raise MalformedReport(f"timestamp must be an ISO-8601 string, got {value!r}")
    if isinstance(value, str) and not _ISO_DATE.match(value.strip()):
        raise MalformedReport(f"timestamp must be an ISO-8601 string, got {value!r}")
    try:
        ts = pd.Timestamp(value)
    except (ValueError, TypeError) as exc:
        raise MalformedReport(f"unparseable timestamp {value!r}") from exc
    if pd.isna(ts):
        raise MalformedReport(f"unparseable timestamp {value!r}")
    return ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")


@dataclass
class ParseResult:
    intersection_id: Optional[str] = None
    intersection: Optional[str] = None
    timestamp: Optional[str] = None
    entities: list[TrackedEntity] = field(default_factory=list)
    skipped: int = 0

    @property
    def vehicles(self) -> list[TrackedVehicle]:
        return [e for e in self.entities if isinstance(e, TrackedVehicle)]

    @property
    def pedestrians(self) -> list[TrackedPedestrian]:
        return [e for e in self.entities if isinstance(e, TrackedPedestrian)]


def parse_sdsm_message(
    message: Any,
    ref: Optional[ReferencePoint] = None,
    crosswalks: Iterable[CrosswalkZone] = (),
) -> ParseResult:
    """
    Parse one SDSM message into tracked-entity records.

    Args:
        message: Decoded JSON message.
        ref: Reference point for offset-encoded objects when the message has
             no valid refPoint of its own.
        crosswalks: Zones used to set is_in_crosswalk for pedestrians whose
                    payload does not state it.

    Returns:
        ParseResult with the valid entities in message order and the number
        of objects skipped.

    Raises:
        MalformedReport: If the message itself is not a JSON object.
    """
    if not isinstance(message, dict):
        raise MalformedReport(f"SDSM message must be an object, got {type(message).__name__}")

    zones = tuple(crosswalks)
    result = ParseResult(
        intersection_id=_opt_str(message.get("intersectionID")),
        intersection=_opt_str(message.get("intersection")),
        timestamp=_opt_str(message.get("timestamp")),
    )

    objects = message.get("objects")
    if not isinstance(objects, list):
        logger.warning("SDSM message %s has no objects array", result.intersection_id)
        return result

    message_ref = _message_ref(message.get("refPoint")) or ref

    for index, obj in enumerate(objects):
        try:
            result.entities.append(_parse_object(obj, message_ref, zones, result.timestamp))
        except SentinelError as exc:
            result.skipped += 1
            logger.warning("SDSM object %d skipped: %s", index, exc)

    if result.skipped:
        logger.info(
            "SDSM %s: parsed %d objects, skipped %d",
            result.intersection_id, len(result.entities), result.skipped,
        )
    return result


def parse_object(
    obj: Any,
    ref: Optional[ReferencePoint] = None,
    crosswalks: Iterable[CrosswalkZone] = (),
    default_timestamp: Optional[str] = None,
) -> TrackedEntity:
    """Parse a single SDSM object, raising on any problem."""
    return _parse_object(obj, ref, tuple(crosswalks), default_timestamp)


def load_sdsm_log(path: Path | str) -> list[dict[str, Any]]:
    """
    Read a recorded SDSM feed.

    Accepts either a JSON array of messages or JSON lines (one message per
    line). Lines that fail to decode are logged and skipped.

    Raises:
        FileNotFoundError: If the path does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"SDSM log not found: {path}")

    text = path.read_text(encoding="utf-8", errors="replace")
    stripped = text.lstrip()
    if not stripped:
        logger.warning("%s: empty SDSM log", path.name)
        return []

    if stripped.startswith("["):
        messages = json.loads(stripped)
        return [m for m in messages if isinstance(m, dict)]

    messages: list[dict[str, Any]] = []
    bad_lines = 0
    for line_num, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line:
            continue
        try:
            decoded = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("%s line %d: not valid JSON", path.name, line_num)
            bad_lines += 1
            continue
        if isinstance(decoded, dict):
            messages.append(decoded)
        else:
            bad_lines += 1

    if bad_lines:
        logger.warning("%s: skipped %d undecodable lines", path.name, bad_lines)
    return messages


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------

def _parse_object(
    obj: Any,
    ref: Optional[ReferencePoint],
    zones: tuple[CrosswalkZone, ...],
    default_timestamp: Optional[str],
) -> TrackedEntity:
    if not isinstance(obj, dict):
        raise MalformedReport(f"object must be a mapping, got {type(obj).__name__}")

    object_id = _object_id(obj.get("objectID"))
    kind = str(obj.get("type", "")).lower()

    timestamp = obj.get("timestamp") or default_timestamp
    parse_timestamp(timestamp)
    coordinates = _coordinates(obj, ref)

    if kind in _VEHICLE_TYPES:
        return TrackedVehicle(
            id=object_id,
            coordinates=coordinates,
            timestamp=str(timestamp),
            heading=_opt_number(obj.get("heading"), "heading"),
            speed=_opt_number(obj.get("speed"), "speed"),
            size=_size(obj.get("size")),
        )

    if kind in _PEDESTRIAN_TYPES:
        flag = obj.get("isInCrosswalk")
        if flag is None:
            flag = is_in_crosswalk(coordinates, zones) if zones else False
        elif not isinstance(flag, bool):
            raise MalformedReport(f"isInCrosswalk must be a boolean, got {flag!r}")
        return TrackedPedestrian(
            id=object_id,
            coordinates=coordinates,
            timestamp=str(timestamp),
            is_in_crosswalk=flag,
        )

    raise MalformedReport(f"object {object_id}: unsupported type {obj.get('type')!r}")


def _coordinates(obj: dict[str, Any], ref: Optional[ReferencePoint]) -> tuple[float, float]:
    location = obj.get("location")
    if location is not None:
        if not isinstance(location, dict):
            raise MalformedReport("location must be a mapping")
        return ensure_pair(location.get("coordinates"), "location.coordinates")

    offset = obj.get("offset")
    if offset is not None:
        if ref is None:
            raise MalformedReport("offset position given but no reference point is known")
        if not isinstance(offset, dict):
            raise MalformedReport("offset must be a mapping with x and y")
        geo = single_offset_to_geodetic(OffsetCoordinate(x=offset.get("x"), y=offset.get("y")), ref)
        return to_lat_lon(geo)

    raise MalformedReport("object has neither location nor offset")


def _message_ref(raw: Any) -> Optional[ReferencePoint]:
    if raw is None:
        return None
    if isinstance(raw, dict):
        lat, lon = raw.get("lat"), raw.get("lon")
        if all(isinstance(v, int) and not isinstance(v, bool) for v in (lat, lon)):
            return ReferencePoint(lat=lat, lon=lon)
    logger.warning("Ignoring malformed refPoint %r", raw)
    return None


def _object_id(value: Any) -> int:
    if isinstance(value, bool):
        raise MalformedReport(f"objectID must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise MalformedReport(f"objectID must be an integer, got {value!r}")


def _opt_number(value: Any, what: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedReport(f"{what} must be a number, got {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise MalformedReport(f"{what} must be finite, got {number}")
    return number


def _size(raw: Any) -> Optional[VehicleSize]:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise MalformedReport(f"size must be a mapping, got {raw!r}")
    return VehicleSize(
        width=_opt_number(raw.get("width"), "size.width"),
        length=_opt_number(raw.get("length"), "size.length"),
    )


def _opt_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)
