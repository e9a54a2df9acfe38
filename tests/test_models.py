"""Tests for domain models and parsing helpers."""

import random

import pytest

from resin_link.core.models import (
    CanonicalStatus,
    CommandResult,
    FileRef,
    PrinterStatus,
    RawStatus,
)
from resin_link.core.utils import compute_backoff, parse_float, parse_int


def test_raw_status_tolerates_key_variants():
    raw = RawStatus.from_json(
        {
            "printing": True,
            "State": "5",
            "layer_id": "12",
            "LayersCount": 80.0,
            "CurrentHeight": "2500",
            "Plate": {"Path": "job.zip", "PlateID": 3},
            "Status": "Printing layer 12",
        }
    )

    assert raw.printing is True
    assert raw.state == "printing"
    assert raw.state_code == 5
    assert raw.layer_id == 12
    assert raw.layers_count == 80
    assert raw.current_height == 2500
    assert raw.file is not None and raw.file.plate_id == 3
    assert raw.status_message == "Printing layer 12"
    assert raw.homed is None


def test_file_ref_derives_name_and_parent():
    ref = FileRef.from_json({"path": "models/cube.zip", "PrintTime": "00:10:05"})

    assert ref.name == "cube.zip"
    assert ref.parent_path == "models"
    assert ref.print_time_seconds == 605.0
    assert ref.to_file_entry()["file_data"]["parent_path"] == "models"


def test_canonical_status_from_dict_accepts_top_level_layer():
    status = CanonicalStatus.from_dict(
        {
            "status": "Printing",
            "paused": False,
            "layer": 7,
            "physical_state": {"z": 3.5, "curing": True},
            "print_data": {
                "layer_count": 70,
                "file_data": {"name": "part.sl1", "path": "/part.sl1"},
            },
        }
    )

    assert status.status is PrinterStatus.PRINTING
    assert status.layer == 7
    assert status.physical_state.z == 3.5
    assert status.progress == pytest.approx(0.1)
    assert status.to_dict()["print_data"]["file_data"] == {
        "name": "part.sl1",
        "path": "/part.sl1",
    }


def test_printer_status_parse():
    assert PrinterStatus.parse("idle") is PrinterStatus.IDLE
    assert PrinterStatus.parse("Cancelled") is PrinterStatus.CANCELED
    assert PrinterStatus.parse("exploded") is PrinterStatus.UNKNOWN
    assert PrinterStatus.parse(None) is PrinterStatus.UNKNOWN


def test_command_result_from_payload():
    assert CommandResult.from_payload({"ok": False}).ok is False
    assert CommandResult.from_payload({"result": "ok"}).ok is True
    assert CommandResult.from_payload({"result": "busy"}).ok is False
    assert CommandResult.from_payload(True).ok is True
    assert CommandResult.from_payload("Done").message == "Done"


def test_parse_helpers():
    assert parse_int(True) is None
    assert parse_int("12.7") == 12
    assert parse_float("24.8°C") == pytest.approx(24.8)
    assert parse_float("") is None


def test_compute_backoff_is_capped():
    rng = random.Random(1)

    assert compute_backoff(0, base=1.0, maximum=5.0) == 0.0
    assert compute_backoff(1, base=1.0, maximum=5.0, jitter_ratio=0.0) == 1.0
    assert compute_backoff(3, base=1.0, maximum=5.0, jitter_ratio=0.0) == 4.0
    for attempt in range(1, 12):
        delay = compute_backoff(attempt, base=1.0, maximum=5.0, rng=rng)
        assert 0.0 < delay <= 5.0
