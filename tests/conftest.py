"""
Shared fixtures: small region sets and a render bridge that records calls.
"""

import pytest

from regionmap.models import MISSING, Region, RegionSet
from regionmap.render import RenderBridge


class RecordingBridge(RenderBridge):
    """Keeps every paint/repaint call for assertions."""

    def __init__(self):
        self.paints = []
        self.repaints = []

    def paint(self, regions, scale, labels):
        self.paints.append((regions, scale, dict(labels)))

    def repaint(self, scale, labels):
        self.repaints.append((scale, dict(labels)))


def create_regions(values=None, crs="EPSG:4326"):
    """Regions A, B, C with optional per-region attribute dicts."""
    values = values or {}
    regions = [
        Region(region_id=index, name=name, attributes=dict(values.get(name, {})))
        for index, name in enumerate(["A", "B", "C"], start=1)
    ]
    return RegionSet(regions, crs=crs)


@pytest.fixture
def bridge():
    return RecordingBridge()


@pytest.fixture
def pop_regions():
    """pop = {A: 100, B: 200, C: missing}"""
    return create_regions({"A": {"pop": 100.0}, "B": {"pop": 200.0}, "C": {"pop": MISSING}})


@pytest.fixture
def county_regions():
    names = ["St. Mary's County", "Prince George's", "Anne Arundel", "Baltimore City"]
    return RegionSet(
        [Region(region_id=f"24{index:03d}", name=name) for index, name in enumerate(names)],
        crs="EPSG:4269",
    )
