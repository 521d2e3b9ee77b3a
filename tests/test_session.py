"""
Tests for session setup, the selection event and join reports.
"""

import json

import pytest

from regionmap.config_loader import Config
from regionmap.errors import MapStateError
from regionmap.models import Region, RegionSet, is_missing
from regionmap.session import MapSession, load_source_rows, write_join_report
from regionmap.state import MapStatus

from conftest import RecordingBridge


def make_session(config_data=None):
    regions = RegionSet(
        [
            Region(region_id="13121", name="Fulton County"),
            Region(region_id="13089", name="DeKalb County"),
            Region(region_id="13135", name="Gwinnett County"),
        ],
        crs="EPSG:4269",
    )
    bridge = RecordingBridge()
    session = MapSession(regions, bridge, Config.from_dict(config_data or {}))
    return session, bridge


def test_attach_then_start_paints_joined_map():
    session, bridge = make_session({"session": {"bin_count": 2}})
    rows = [
        {"name": "fulton county", "pop": "1,066,710"},
        {"name": "DEKALB COUNTY", "pop": "764,382"},
    ]

    result = session.attach(rows, ["pop"])
    change = session.start()

    assert len(result.matched) == 2
    assert result.unmatched_regions == ["13135"]
    assert session.state.status is MapStatus.READY
    assert session.state.attribute == "pop"
    assert change.scale.bin_count == 2
    assert change.labels["13135"] == "Gwinnett County: No data"
    assert bridge.paints[0][0].crs == "EPSG:4269"


def test_field_options_come_from_config():
    session, _ = make_session({"fields": {"farms": {"treat_missing_as_zero": True}}})

    session.attach([{"name": "Fulton County", "farms": ""}], ["farms"])

    assert session.regions.get("13121").attributes["farms"] == 0.0
    assert is_missing(session.regions.get("13089").attributes["farms"])


def test_key_field_defaults_to_config_column():
    session, _ = make_session({"columns": {"source_key": "county"}})

    result = session.attach([{"county": "Gwinnett", "pop": 1}, {"county": "Gwinnett County", "pop": 2}], "pop")

    assert result.key_field == "county"
    assert result.matched == ["13135"]


def test_attach_after_start_is_rejected():
    session, _ = make_session()
    session.attach([{"name": "Fulton County", "pop": 1}], ["pop"])
    session.start("pop")

    with pytest.raises(MapStateError):
        session.attach([{"name": "Fulton County", "rate": 1}], ["rate"])


def test_start_without_sources_fails():
    session, _ = make_session()

    with pytest.raises(MapStateError):
        session.start()


def test_selection_event_reports_errors_without_raising():
    session, bridge = make_session()
    session.attach([{"name": "Fulton County", "pop": 1, "rate": 0.5}], ["pop", "rate"])
    session.start("pop")
    before = session.state.scale

    assert session.attribute_or_palette_changed("nonexistent_attr", "anyPalette") is None
    assert session.last_error is not None
    assert session.state.scale is before

    change = session.attribute_or_palette_changed("rate", "Purples")
    assert change is not None
    assert session.last_error is None
    assert len(bridge.repaints) == 1


def test_report_contains_joins_and_scale(tmp_path):
    session, _ = make_session({"project_name": "Georgia"})
    session.attach([{"name": "Fulton County", "pop": 5}, {"name": "Nowhere", "pop": 1}], ["pop"], source="census")
    session.start("pop")

    path = session.write_report(tmp_path / "out" / "report.json")

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["metadata"]["title"] == "Georgia"
    assert data["joins"][0]["source"] == "census"
    assert data["joins"][0]["unmatched_rows"][0]["raw_key"] == "Nowhere"
    assert data["scale"]["attribute"] == "pop"


def test_write_join_report_without_scale(tmp_path):
    session, _ = make_session()
    result = session.attach([{"name": "Fulton County", "pop": 5}], ["pop"])

    path = write_join_report(tmp_path / "joins.json", [result])

    data = json.loads(path.read_text(encoding="utf-8"))
    assert "scale" not in data
    assert data["metadata"]["joins"] == 1


def test_load_source_rows_keeps_text(tmp_path):
    path = tmp_path / "pop.csv"
    path.write_text(" name ,pop\nNA,12\nFulton County,\n", encoding="utf-8")

    rows = load_source_rows(path)

    assert rows == [{"name": "NA", "pop": "12"}, {"name": "Fulton County", "pop": ""}]


def test_load_source_rows_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_source_rows(tmp_path / "nope.csv")
