"""
Reactive map controller.

MapState holds the selected attribute and palette, the derived color scale
and the region labels. ``update`` is the single mutation entry point: it
builds the new scale and labels completely, then publishes them in one step
and asks the render bridge to repaint. A generation counter discards results
that were superseded while computing off-thread (latest wins).
"""

import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

from loguru import logger

from .errors import MapStateError, UnknownAttributeError, UnknownPaletteError
from .labels import LabelFormatter
from .models import ColorScale, RegionSet
from .render import RenderBridge
from .scales import Palette, ScaleBuilder, is_known_palette, palette_id


class MapStatus(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


@dataclass(frozen=True)
class StateSnapshot:
    """Consistent view of everything the renderer needs."""

    generation: int
    attribute: str
    palette: str
    scale: ColorScale
    labels: Mapping[Any, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StateChange:
    """Notification payload published on every successful update."""

    generation: int
    scale: ColorScale
    labels: Mapping[Any, str]


class MapState:
    """Controller for one map session.

    Usage:
        state = MapState(regions, bridge)
        state.initialize("population")
        state.update("median_income", "viridis")
    """

    def __init__(
        self,
        regions: RegionSet,
        bridge: RenderBridge,
        scale_builder: Optional[ScaleBuilder] = None,
        label_formatter: Optional[LabelFormatter] = None,
    ):
        self._regions = regions
        self._bridge = bridge
        self._scale_builder = scale_builder or ScaleBuilder()
        self._label_formatter = label_formatter or LabelFormatter()
        self._lock = threading.Lock()
        self._generation = 0
        self._snapshot: Optional[StateSnapshot] = None

    @property
    def status(self) -> MapStatus:
        return MapStatus.READY if self._snapshot is not None else MapStatus.UNINITIALIZED

    @property
    def regions(self) -> RegionSet:
        return self._regions

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def snapshot(self) -> Optional[StateSnapshot]:
        return self._snapshot

    @property
    def attribute(self) -> Optional[str]:
        return self._snapshot.attribute if self._snapshot else None

    @property
    def palette(self) -> Optional[str]:
        return self._snapshot.palette if self._snapshot else None

    @property
    def scale(self) -> Optional[ColorScale]:
        return self._snapshot.scale if self._snapshot else None

    @property
    def labels(self) -> Mapping[Any, str]:
        return self._snapshot.labels if self._snapshot else MappingProxyType({})

    def initialize(self, attribute: str, palette: Optional[Palette] = None) -> StateChange:
        """Compute the first scale and labels and paint the full map."""
        with self._lock:
            if self._snapshot is not None:
                raise MapStateError("MapState is already initialized")
            chosen = self._validate(attribute, palette)
            self._generation += 1
            generation = self._generation
            snapshot = self._compute(generation, attribute, chosen)
            self._bridge.paint(self._regions, snapshot.scale, snapshot.labels)
            self._snapshot = snapshot
            logger.info(f"📋 Map ready: '{attribute}' with palette '{snapshot.palette}'")
            return StateChange(generation, snapshot.scale, snapshot.labels)

    def update(self, attribute: str, palette: Optional[Palette] = None) -> Optional[StateChange]:
        """
        Switch the displayed attribute and/or palette.

        Args:
            attribute: Attribute to color by; must exist on at least one region
            palette: Palette to use; defaults to the current palette

        Returns:
            The published StateChange, or None if a concurrent update superseded it

        Raises:
            MapStateError: If called before ``initialize``
            UnknownAttributeError: If no region carries ``attribute``
            UnknownPaletteError: If the palette cannot be resolved
        """
        generation, chosen = self._begin(attribute, palette)
        snapshot = self._compute(generation, attribute, chosen)
        return self._publish(snapshot)

    def submit_update(
        self, attribute: str, palette: Optional[Palette], executor: Executor
    ) -> "Future[Optional[StateChange]]":
        """
        Run an update's computation on ``executor``.

        Validation happens immediately, so selection errors raise here. The
        returned future resolves to the StateChange, or None if a newer update
        was requested before this one finished.
        """
        generation, chosen = self._begin(attribute, palette)

        def run() -> Optional[StateChange]:
            snapshot = self._compute(generation, attribute, chosen)
            return self._publish(snapshot)

        return executor.submit(run)

    def _begin(self, attribute: str, palette: Optional[Palette]):
        with self._lock:
            if self._snapshot is None:
                raise MapStateError("MapState is not initialized; call initialize() first")
            chosen = self._validate(attribute, palette)
            self._generation += 1
            logger.debug(f"  🔄 Update #{self._generation}: '{attribute}' / '{palette_id(chosen)}'")
            return self._generation, chosen

    def _validate(self, attribute: str, palette: Optional[Palette]) -> Palette:
        if not self._regions.has_attribute(attribute):
            raise UnknownAttributeError(attribute)
        if palette is None:
            palette = self._snapshot.palette if self._snapshot else self._scale_builder.palette
        if not is_known_palette(palette):
            raise UnknownPaletteError(palette)
        return palette

    def _compute(self, generation: int, attribute: str, palette: Palette) -> StateSnapshot:
        scale = self._scale_builder.build(self._regions, attribute, palette=palette)
        labels = MappingProxyType(self._label_formatter.format_all(self._regions, attribute))
        return StateSnapshot(
            generation=generation,
            attribute=attribute,
            palette=palette_id(palette),
            scale=scale,
            labels=labels,
        )

    def _publish(self, snapshot: StateSnapshot) -> Optional[StateChange]:
        with self._lock:
            if snapshot.generation != self._generation:
                logger.debug(
                    f"  Discarding stale update #{snapshot.generation} (current #{self._generation})"
                )
                return None
            self._bridge.repaint(snapshot.scale, snapshot.labels)
            self._snapshot = snapshot
            return StateChange(snapshot.generation, snapshot.scale, snapshot.labels)
