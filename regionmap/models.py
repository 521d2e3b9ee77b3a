"""
Domain models shared across the join, scale and state modules.
"""

import math
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import pandas as pd

from .keys import normalize

# Missing sentinel for attribute values
MISSING = float("nan")


def is_missing(value: Any) -> bool:
    """True for None, NaN and pandas NA."""
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


@dataclass(eq=False)
class Region:
    """One polygon unit with a joinable display name.

    Identity is ``region_id``. The geometry reference is opaque and owned by
    the geometry provider; only the joiner writes to ``attributes``.
    """

    region_id: Any
    name: str
    geometry: Any = None
    attributes: Dict[str, float] = field(default_factory=dict)
    normalized_key: str = field(init=False)

    def __post_init__(self) -> None:
        self.normalized_key = normalize(self.name)

    def value(self, attribute: str) -> float:
        """Attribute value, or the missing sentinel when absent."""
        return self.attributes.get(attribute, MISSING)

    def __repr__(self) -> str:
        return f"Region(region_id={self.region_id!r}, name={self.name!r})"


class RegionSet:
    """Ordered, fixed collection of regions with their declared CRS."""

    def __init__(self, regions: Sequence[Region], crs: Optional[str] = None):
        self._regions: Tuple[Region, ...] = tuple(regions)
        self.crs = crs
        self._by_id: Dict[Any, Region] = {}
        for region in self._regions:
            if region.region_id in self._by_id:
                raise ValueError(f"Duplicate region id: {region.region_id!r}")
            self._by_id[region.region_id] = region

    def __iter__(self) -> Iterator[Region]:
        return iter(self._regions)

    def __len__(self) -> int:
        return len(self._regions)

    def __contains__(self, region_id: Any) -> bool:
        return region_id in self._by_id

    def get(self, region_id: Any) -> Region:
        return self._by_id[region_id]

    @property
    def ids(self) -> List[Any]:
        return [region.region_id for region in self._regions]

    def attribute_names(self) -> List[str]:
        """All attribute names present on at least one region, first-seen order."""
        seen: Dict[str, None] = {}
        for region in self._regions:
            for name in region.attributes:
                seen.setdefault(name, None)
        return list(seen)

    def has_attribute(self, attribute: str) -> bool:
        return any(attribute in region.attributes for region in self._regions)

    def values(self, attribute: str) -> List[float]:
        """Non-missing values of ``attribute`` across all regions."""
        return [
            float(region.attributes[attribute])
            for region in self._regions
            if attribute in region.attributes and not is_missing(region.attributes[attribute])
        ]


@dataclass(frozen=True)
class JoinKeyConflict:
    """Two source rows normalized to the same key; the first one was kept."""

    key: str
    kept_row: int
    rejected_row: int
    rejected_raw_key: Any

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "kept_row": self.kept_row,
            "rejected_row": self.rejected_row,
            "rejected_raw_key": str(self.rejected_raw_key),
        }


@dataclass(frozen=True)
class UnmatchedRow:
    """Source row whose key matched no region."""

    row_index: int
    raw_key: Any
    key: str

    def to_dict(self) -> Dict[str, Any]:
        return {"row_index": self.row_index, "raw_key": str(self.raw_key), "key": self.key}


@dataclass
class JoinResult:
    """Diagnostics for a single join pass."""

    source: str
    key_field: str
    value_fields: Tuple[str, ...]
    total_regions: int
    total_rows: int = 0
    matched: List[Any] = field(default_factory=list)
    unmatched_regions: List[Any] = field(default_factory=list)
    unmatched_rows: List[UnmatchedRow] = field(default_factory=list)
    conflicts: List[JoinKeyConflict] = field(default_factory=list)
    duplicate_region_keys: List[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        """No unmatched rows, no conflicts and every region matched."""
        return not (self.unmatched_rows or self.conflicts or self.unmatched_regions)

    @property
    def match_rate(self) -> float:
        if self.total_regions == 0:
            return 0.0
        return len(self.matched) / self.total_regions

    def summary(self) -> str:
        return (
            f"{self.source}: {len(self.matched)}/{self.total_regions} regions matched, "
            f"{len(self.unmatched_rows)} unmatched rows, {len(self.conflicts)} key conflicts"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "key_field": self.key_field,
            "value_fields": list(self.value_fields),
            "total_regions": self.total_regions,
            "total_rows": self.total_rows,
            "matched": [str(region_id) for region_id in self.matched],
            "unmatched_regions": [str(region_id) for region_id in self.unmatched_regions],
            "unmatched_rows": [row.to_dict() for row in self.unmatched_rows],
            "conflicts": [conflict.to_dict() for conflict in self.conflicts],
            "duplicate_region_keys": list(self.duplicate_region_keys),
            "match_rate": round(self.match_rate, 4),
        }


@dataclass(frozen=True)
class ColorScale:
    """Binned color mapping for one attribute.

    ``boundaries`` holds ``bin_count + 1`` ascending values. Bins are
    inclusive-lower/exclusive-upper except the last, which includes its upper
    bound. A scale with no boundaries is degenerate: every lookup returns the
    fallback color.
    """

    attribute: str
    palette: str
    boundaries: Tuple[float, ...]
    colors: Tuple[str, ...]
    fallback_color: str
    strategy: str = "equal_width"

    def __post_init__(self) -> None:
        if self.boundaries and len(self.colors) != len(self.boundaries) - 1:
            raise ValueError(
                f"Expected {len(self.boundaries) - 1} colors, got {len(self.colors)}"
            )
        if not self.boundaries and self.colors:
            raise ValueError("Degenerate scale cannot carry bin colors")

    @property
    def bin_count(self) -> int:
        return len(self.colors)

    @property
    def is_empty(self) -> bool:
        return not self.boundaries

    @property
    def domain(self) -> Optional[Tuple[float, float]]:
        if self.is_empty:
            return None
        return self.boundaries[0], self.boundaries[-1]

    def bin_index(self, value: Any) -> Optional[int]:
        """Index of the bin containing ``value``; None if missing or out of domain."""
        if self.is_empty or is_missing(value):
            return None
        number = float(value)
        if math.isnan(number):
            return None
        low, high = self.boundaries[0], self.boundaries[-1]
        if number < low or number > high:
            return None
        if number == high:
            return self.bin_count - 1
        return bisect_right(self.boundaries, number) - 1

    def lookup(self, value: Any) -> str:
        index = self.bin_index(value)
        if index is None:
            return self.fallback_color
        return self.colors[index]

    def legend(self) -> List[Tuple[float, float, str]]:
        """(lower, upper, color) per bin, in ascending order."""
        return [
            (self.boundaries[i], self.boundaries[i + 1], self.colors[i])
            for i in range(self.bin_count)
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attribute": self.attribute,
            "palette": self.palette,
            "strategy": self.strategy,
            "boundaries": list(self.boundaries),
            "colors": list(self.colors),
            "fallback_color": self.fallback_color,
        }
