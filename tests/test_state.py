"""
Tests for the MapState controller.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from regionmap.errors import MapStateError, UnknownAttributeError, UnknownPaletteError
from regionmap.labels import LabelFormatter
from regionmap.models import MISSING
from regionmap.scales import ScaleBuilder
from regionmap.state import MapState, MapStatus

from conftest import RecordingBridge, create_regions


def make_state(regions, bridge, bins=2):
    return MapState(
        regions,
        bridge,
        scale_builder=ScaleBuilder(bin_count=bins, palette="Blues", fallback_color="#cccccc"),
        label_formatter=LabelFormatter(template="{name}: {value}"),
    )


@pytest.fixture
def two_attribute_regions():
    return create_regions(
        {
            "A": {"pop": 100.0, "income": 50.0},
            "B": {"pop": 200.0, "income": MISSING},
            "C": {"pop": MISSING, "income": 70.0},
        }
    )


def test_initialize_paints_once_and_becomes_ready(pop_regions, bridge):
    state = make_state(pop_regions, bridge)
    assert state.status is MapStatus.UNINITIALIZED
    assert state.scale is None

    change = state.initialize("pop")

    assert state.status is MapStatus.READY
    assert len(bridge.paints) == 1
    assert bridge.repaints == []
    regions, scale, labels = bridge.paints[0]
    assert regions is pop_regions
    assert regions.crs == "EPSG:4326"
    assert scale.boundaries == (100.0, 150.0, 200.0)
    assert labels[3] == "C: No data"
    assert change.scale == state.scale


def test_update_before_initialize_fails(pop_regions, bridge):
    state = make_state(pop_regions, bridge)

    with pytest.raises(MapStateError):
        state.update("pop")


def test_double_initialize_fails(pop_regions, bridge):
    state = make_state(pop_regions, bridge)
    state.initialize("pop")

    with pytest.raises(MapStateError):
        state.initialize("pop")


def test_update_recomputes_scale_and_labels(two_attribute_regions, bridge):
    state = make_state(two_attribute_regions, bridge)
    state.initialize("pop")

    change = state.update("income", "Reds")

    assert state.attribute == "income"
    assert state.palette == "Reds"
    assert state.scale.boundaries == (50.0, 60.0, 70.0)
    assert dict(state.labels) == {1: "A: 50", 2: "B: No data", 3: "C: 70"}
    assert len(bridge.repaints) == 1
    assert bridge.repaints[0][0] == change.scale
    assert change.generation == state.generation == 2


def test_update_keeps_palette_when_not_given(two_attribute_regions, bridge):
    state = make_state(two_attribute_regions, bridge)
    state.initialize("pop", "Greens")

    state.update("income")

    assert state.palette == "Greens"


def test_unknown_attribute_leaves_state_unchanged(pop_regions, bridge):
    state = make_state(pop_regions, bridge)
    state.initialize("pop")
    before = state.snapshot

    with pytest.raises(UnknownAttributeError):
        state.update("nonexistent_attr", "anyPalette")

    assert state.snapshot is before
    assert state.scale.boundaries == (100.0, 150.0, 200.0)
    assert bridge.repaints == []


def test_unknown_palette_leaves_state_unchanged(pop_regions, bridge):
    state = make_state(pop_regions, bridge)
    state.initialize("pop")
    before = state.snapshot

    with pytest.raises(UnknownPaletteError):
        state.update("pop", "NoSuchColormap")

    assert state.snapshot is before
    assert bridge.repaints == []


class FailingRepaintBridge(RecordingBridge):
    def repaint(self, scale, labels):
        raise RuntimeError("renderer went away")


def test_failed_repaint_keeps_previous_snapshot(two_attribute_regions):
    state = make_state(two_attribute_regions, FailingRepaintBridge())
    state.initialize("pop")
    before = state.snapshot

    with pytest.raises(RuntimeError):
        state.update("income", "Purples")

    assert state.snapshot is before
    assert state.attribute == "pop"


def test_repeated_update_is_idempotent(two_attribute_regions, bridge):
    state = make_state(two_attribute_regions, bridge)
    state.initialize("pop")

    first = state.update("income", "Purples")
    second = state.update("income", "Purples")

    assert first.scale == second.scale
    assert dict(first.labels) == dict(second.labels)


def test_attribute_with_only_missing_values_degrades(bridge):
    regions = create_regions({"A": {"pop": 1.0, "empty": MISSING}, "B": {"pop": 2.0}})
    state = make_state(regions, bridge)
    state.initialize("pop")

    change = state.update("empty")

    assert change.scale.is_empty
    assert change.scale.lookup(MISSING) == "#cccccc"


def test_labels_are_read_only(pop_regions, bridge):
    state = make_state(pop_regions, bridge)
    state.initialize("pop")

    with pytest.raises(TypeError):
        state.labels[1] = "changed"


class BlockingScaleBuilder(ScaleBuilder):
    """Holds builds for one attribute until released."""

    def __init__(self, blocked_attribute):
        super().__init__(bin_count=2, palette="Blues")
        self.blocked_attribute = blocked_attribute
        self.started = threading.Event()
        self.release = threading.Event()

    def build(self, regions, attribute, *args, **kwargs):
        if attribute == self.blocked_attribute:
            self.started.set()
            self.release.wait(timeout=5)
        return super().build(regions, attribute, *args, **kwargs)


def test_superseded_background_update_is_discarded(two_attribute_regions):
    bridge = RecordingBridge()
    builder = BlockingScaleBuilder(blocked_attribute="income")
    state = MapState(two_attribute_regions, bridge, scale_builder=builder)
    state.initialize("pop")

    with ThreadPoolExecutor(max_workers=2) as executor:
        stale = state.submit_update("income", None, executor)
        assert builder.started.wait(timeout=5)
        latest = state.update("pop", "Oranges")
        builder.release.set()
        stale_result = stale.result(timeout=5)

    assert latest is not None
    assert stale_result is None
    assert len(bridge.repaints) == 1
    assert state.attribute == "pop"
    assert state.palette == "Oranges"


def test_background_update_publishes_when_current(two_attribute_regions, bridge):
    state = make_state(two_attribute_regions, bridge)
    state.initialize("pop")

    with ThreadPoolExecutor(max_workers=1) as executor:
        change = state.submit_update("income", "Reds", executor).result(timeout=5)

    assert change is not None
    assert state.attribute == "income"
    assert len(bridge.repaints) == 1


def test_submit_update_validates_synchronously(pop_regions, bridge):
    state = make_state(pop_regions, bridge)
    state.initialize("pop")

    with ThreadPoolExecutor(max_workers=1) as executor:
        with pytest.raises(UnknownAttributeError):
            state.submit_update("missing", None, executor)
    assert state.generation == 1
