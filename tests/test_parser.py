"""
Tests for crosswalk_sentinel.data.parser — SDSM message parsing.

All tests use synthetic messages from conftest.py fixtures.
"""

from __future__ import annotations

import copy
import json
from pathlib import Path

import pandas as pd
import pytest

from crosswalk_sentinel.data.models import ReferencePoint, TrackedPedestrian, TrackedVehicle, VehicleSize
from crosswalk_sentinel.data.parser import (
    load_sdsm_log,
    parse_object,
    parse_sdsm_message,
    parse_timestamp,
)
from crosswalk_sentinel.errors import MalformedReport
from crosswalk_sentinel.geo.crosswalk import CrosswalkZone


class TestParseValidMessage:
    def test_header_fields(self, sdsm_message) -> None:
        result = parse_sdsm_message(sdsm_message)
        assert result.intersection_id == "27481"
        assert result.intersection == "MLK_Central"

    def test_malformed_object_skipped_rest_kept(self, sdsm_message) -> None:
        result = parse_sdsm_message(sdsm_message)
        assert result.skipped == 1
        assert len(result.vehicles) == 1
        assert len(result.pedestrians) == 1

    def test_vehicle_fields(self, sdsm_message, far_vehicle_pos) -> None:
        (vehicle,) = parse_sdsm_message(sdsm_message).vehicles
        assert isinstance(vehicle, TrackedVehicle)
        assert vehicle.id == 1
        assert vehicle.coordinates == far_vehicle_pos
        assert vehicle.heading == 270.0
        assert vehicle.speed == 8.5
        assert vehicle.size == VehicleSize(width=1.8, length=None)

    def test_offset_pedestrian_resolved_lat_first(self, sdsm_message, pedestrian_pos) -> None:
        (pedestrian,) = parse_sdsm_message(sdsm_message).pedestrians
        assert isinstance(pedestrian, TrackedPedestrian)
        assert pedestrian.coordinates[0] == pytest.approx(pedestrian_pos[0], abs=1e-9)
        assert pedestrian.coordinates[1] == pytest.approx(pedestrian_pos[1], abs=1e-9)

    def test_timestamp_falls_back_to_message(self, sdsm_message) -> None:
        (pedestrian,) = parse_sdsm_message(sdsm_message).pedestrians
        assert pedestrian.timestamp == sdsm_message["timestamp"]

    def test_crosswalk_flag_defaults_false(self, sdsm_message) -> None:
        (pedestrian,) = parse_sdsm_message(sdsm_message).pedestrians
        assert pedestrian.is_in_crosswalk is False


class TestReferencePoints:
    def test_configured_ref_used_without_message_ref(self, sdsm_message, mlk_ref) -> None:
        del sdsm_message["refPoint"]
        assert len(parse_sdsm_message(sdsm_message, ref=mlk_ref).pedestrians) == 1

    def test_offset_without_any_ref_is_skipped(self, sdsm_message) -> None:
        del sdsm_message["refPoint"]
        result = parse_sdsm_message(sdsm_message)
        assert result.pedestrians == []
        assert result.skipped == 2

    def test_message_ref_wins_over_configured(self, sdsm_message) -> None:
        elsewhere = ReferencePoint(lat=0, lon=0)
        (pedestrian,) = parse_sdsm_message(sdsm_message, ref=elsewhere).pedestrians
        assert pedestrian.coordinates[0] == pytest.approx(35.0398, abs=1e-3)


class TestCrosswalkFlag:
    def test_payload_flag_respected(self, sdsm_message) -> None:
        sdsm_message["objects"][1]["isInCrosswalk"] = True
        (pedestrian,) = parse_sdsm_message(sdsm_message).pedestrians
        assert pedestrian.is_in_crosswalk is True

    def test_flag_derived_from_zones(self, sdsm_message, sentinel_cfg, crosswalk_center) -> None:
        zone = CrosswalkZone.from_vertices("east", sentinel_cfg["crosswalks"][0]["polygon"])
        sdsm_message["objects"].append({
            "objectID": 101, "type": "vru",
            "location": {"coordinates": list(crosswalk_center)},
        })
        peds = {p.id: p for p in parse_sdsm_message(sdsm_message, crosswalks=[zone]).pedestrians}
        assert peds[100].is_in_crosswalk is False
        assert peds[101].is_in_crosswalk is True

    def test_non_boolean_flag_rejected(self, sdsm_message) -> None:
        sdsm_message["objects"][1]["isInCrosswalk"] = "yes"
        result = parse_sdsm_message(sdsm_message)
        assert result.pedestrians == []


class TestMalformedInput:
    def test_non_object_message_raises(self) -> None:
        with pytest.raises(MalformedReport):
            parse_sdsm_message(["not", "a", "message"])

    def test_missing_objects_returns_empty(self) -> None:
        result = parse_sdsm_message({"intersectionID": "1"})
        assert result.entities == []
        assert result.skipped == 0

    @pytest.mark.parametrize(
        "patch",
        [
            {"type": "bicycle"},
            {"objectID": "12"},
            {"objectID": True},
            {"location": {"coordinates": [35.0, "x"]}},
            {"location": {"coordinates": [35.0, -85.0, 3.0]}},
            {"location": "35,-85"},
            {"speed": "fast"},
            {"heading": float("nan")},
            {"size": [1.8, 4.6]},
            {"timestamp": "not a time"},
        ],
    )
    def test_bad_vehicle_fields_skipped(self, sdsm_message, patch) -> None:
        sdsm_message["objects"][0].update(patch)
        result = parse_sdsm_message(sdsm_message)
        assert result.vehicles == []
        assert len(result.pedestrians) == 1

    def test_object_without_position(self) -> None:
        with pytest.raises(MalformedReport):
            parse_object({"objectID": 1, "type": "vehicle", "timestamp": "2025-05-21T00:00:00"})

    def test_float_object_id_accepted(self, sdsm_message) -> None:
        sdsm_message["objects"][0]["objectID"] = 1.0
        assert parse_sdsm_message(sdsm_message).vehicles[0].id == 1

    def test_input_not_mutated(self, sdsm_message) -> None:
        before = copy.deepcopy(sdsm_message)
        parse_sdsm_message(sdsm_message)
        assert sdsm_message == before


class TestTimestamps:
    def test_naive_is_utc(self) -> None:
        ts = parse_timestamp("2025-05-21T00:03:09.388487")
        assert ts == pd.Timestamp("2025-05-21T00:03:09.388487", tz="UTC")

    def test_offset_converted(self) -> None:
        assert parse_timestamp("2025-05-21T02:00:00+02:00") == pd.Timestamp("2025-05-21T00:00:00Z")

    def test_datetime_accepted(self) -> None:
        assert parse_timestamp(pd.Timestamp("2025-05-21T00:03:09", tz="UTC")) == pd.Timestamp("2025-05-21T00:03:09Z")

    @pytest.mark.parametrize("bad", [None, "", "soon", 12345, "now", "today", "NaT"])
    def test_bad_values(self, bad) -> None:
        with pytest.raises(MalformedReport):
            parse_timestamp(bad)


class TestLoadLog:
    def test_json_lines_skips_bad_line(self, sdsm_log_file: Path) -> None:
        messages = load_sdsm_log(sdsm_log_file)
        assert len(messages) == 2
        assert messages[0]["intersectionID"] == "27481"

    def test_json_array(self, tmp_path: Path, sdsm_message) -> None:
        p = tmp_path / "feed.json"
        p.write_text(json.dumps([sdsm_message, sdsm_message, 3]), encoding="utf-8")
        assert len(load_sdsm_log(p)) == 2

    def test_empty_file(self, tmp_path: Path) -> None:
        p = tmp_path / "empty.jsonl"
        p.write_text("", encoding="utf-8")
        assert load_sdsm_log(p) == []

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_sdsm_log(tmp_path / "nope.jsonl")
