"""
Tests for joining tabular sources onto regions.
"""

import math

import pandas as pd
import pytest

from regionmap.joiner import AttributeJoiner, FieldOption, coerce_numeric, rows_from_dataframe
from regionmap.models import Region, RegionSet, is_missing

from conftest import create_regions


def test_duplicate_source_key_keeps_first_occurrence():
    regions = RegionSet([Region(region_id="a", name="A")])
    rows = [{"name": "A", "pop": 100}, {"name": "A ", "pop": 999}]

    result = AttributeJoiner().join(regions, rows, "name", ["pop"])

    assert len(result.conflicts) == 1
    conflict = result.conflicts[0]
    assert conflict.key == "a"
    assert conflict.kept_row == 0
    assert conflict.rejected_row == 1
    assert regions.get("a").attributes["pop"] == 100.0
    assert result.matched == ["a"]
    assert result.unmatched_rows == []


def test_conflict_recorded_even_when_first_row_is_unmatched():
    regions = create_regions()
    rows = [{"name": "Z", "pop": 1}, {"name": "z", "pop": 2}]

    result = AttributeJoiner().join(regions, rows, "name", ["pop"])

    assert [row.row_index for row in result.unmatched_rows] == [0]
    assert len(result.conflicts) == 1


def test_matched_plus_unmatched_regions_equals_total(county_regions):
    rows = [
        {"county": "st marys county", "pop": "113,777"},
        {"county": "PRINCE GEORGES", "pop": "967201"},
        {"county": "Howard", "pop": "332317"},
    ]

    result = AttributeJoiner().join(county_regions, rows, "county", ["pop"])

    assert len(result.matched) + len(result.unmatched_regions) == len(county_regions)
    assert len(result.matched) == 2
    assert [row.raw_key for row in result.unmatched_rows] == ["Howard"]
    assert county_regions.get("24000").attributes["pop"] == 113777.0


def test_unmatched_regions_get_missing_values(county_regions):
    rows = [{"county": "Anne Arundel", "pop": "0"}]

    result = AttributeJoiner().join(county_regions, rows, "county", {"pop": FieldOption(treat_missing_as_zero=True)})

    assert county_regions.get("24002").attributes["pop"] == 0.0
    for region_id in result.unmatched_regions:
        assert is_missing(county_regions.get(region_id).attributes["pop"])


def test_non_numeric_values_become_missing_not_zero():
    regions = create_regions()
    rows = [{"name": "A", "pop": "n/a"}, {"name": "B", "pop": ""}, {"name": "C", "pop": "12%"}]

    AttributeJoiner().join(regions, rows, "name", ["pop"])

    assert is_missing(regions.get(1).attributes["pop"])
    assert is_missing(regions.get(2).attributes["pop"])
    assert regions.get(3).attributes["pop"] == 12.0


def test_treat_missing_as_zero_applies_to_matched_rows_only():
    regions = create_regions()
    rows = [{"name": "A", "crop": "bad"}, {"name": "B"}]

    result = AttributeJoiner().join(regions, rows, "name", {"crop": FieldOption(treat_missing_as_zero=True)})

    assert regions.get(1).attributes["crop"] == 0.0
    assert regions.get(2).attributes["crop"] == 0.0
    assert result.unmatched_regions == [3]
    assert is_missing(regions.get(3).attributes["crop"])


def test_rows_with_empty_keys_are_unmatched():
    regions = create_regions()
    rows = [{"name": None, "pop": 1}, {"name": " . ", "pop": 2}, {"pop": 3}]

    result = AttributeJoiner().join(regions, rows, "name", ["pop"])

    assert len(result.unmatched_rows) == 3
    assert result.conflicts == []
    assert result.matched == []


def test_successive_joins_attach_multiple_sources():
    regions = create_regions()
    joiner = AttributeJoiner()

    first = joiner.join(regions, [{"name": "a", "pop": 10}], "name", ["pop"], source="population")
    second = joiner.join(regions, [{"region": "B", "yield": "3.5"}], "region", ["yield"], source="crops")

    assert first.source == "population"
    assert second.source == "crops"
    assert regions.get(1).attributes["pop"] == 10.0
    assert is_missing(regions.get(1).attributes["yield"])
    assert regions.get(2).attributes["yield"] == 3.5
    assert regions.attribute_names() == ["pop", "yield"]


def test_regions_sharing_a_key_are_reported():
    regions = RegionSet([Region(region_id=1, name="Lake"), Region(region_id=2, name="LAKE.")])

    result = AttributeJoiner().join(regions, [{"name": "lake", "v": 5}], "name", ["v"])

    assert result.duplicate_region_keys == ["lake"]
    assert result.matched == [1]
    assert result.unmatched_regions == [2]


def test_join_result_to_dict_is_serializable(county_regions):
    result = AttributeJoiner().join(county_regions, [{"name": "x", "pop": 1}], "name", ["pop"], source="s")

    data = result.to_dict()

    assert data["source"] == "s"
    assert data["total_regions"] == 4
    assert data["unmatched_rows"][0]["raw_key"] == "x"
    assert data["match_rate"] == 0.0


@pytest.mark.parametrize(
    "raw, expected",
    [
        (5, 5.0),
        ("1,234.5", 1234.5),
        ("45%", 45.0),
        (" 7 ", 7.0),
        ("abc", None),
        ("", None),
        (None, None),
        (True, None),
        (math.inf, None),
        ("nan", None),
    ],
)
def test_coerce_numeric(raw, expected):
    assert coerce_numeric(raw) == expected


def test_rows_from_dataframe_maps_nan_to_none():
    df = pd.DataFrame({"name": ["A", "B"], "pop": [1.0, float("nan")]})

    rows = rows_from_dataframe(df)

    assert rows[0] == {"name": "A", "pop": 1.0}
    assert rows[1]["pop"] is None


def test_field_option_from_mapping_rejects_non_bool():
    assert FieldOption.from_mapping({"treat_missing_as_zero": True}).treat_missing_as_zero
    assert not FieldOption.from_mapping(None).treat_missing_as_zero
    with pytest.raises(ValueError):
        FieldOption.from_mapping({"treat_missing_as_zero": "yes"})
