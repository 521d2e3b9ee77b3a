"""
Region map package: choropleth attribute joins and reactive rebinning

This package centralizes the pieces of a region-level choropleth session:
- Region name normalization and tabular joins with diagnostics
- Color scale binning and region labels
- The MapState controller and its render bridge

The main entry points are exposed at the package level:
    from regionmap import MapSession, MapState, AttributeJoiner
"""

from .config_loader import Config, load_config
from .errors import (
    ConfigError,
    MapStateError,
    RegionMapError,
    UnknownAttributeError,
    UnknownPaletteError,
)
from .geometry import GeoDataFrameProvider, GeometryProvider
from .joiner import AttributeJoiner, FieldOption, coerce_numeric, rows_from_dataframe
from .keys import keys_match, normalize
from .labels import LabelFormatter, format_value
from .models import (
    MISSING,
    ColorScale,
    JoinKeyConflict,
    JoinResult,
    Region,
    RegionSet,
    UnmatchedRow,
    is_missing,
)
from .render import FoliumRenderBridge, RenderBridge
from .scales import ScaleBuilder, build_scale, lookup, resolve_palette
from .session import MapSession, load_source_rows, write_join_report
from .state import MapState, MapStatus, StateChange, StateSnapshot

__all__ = [
    "AttributeJoiner",
    "ColorScale",
    "Config",
    "ConfigError",
    "FieldOption",
    "FoliumRenderBridge",
    "GeoDataFrameProvider",
    "GeometryProvider",
    "JoinKeyConflict",
    "JoinResult",
    "LabelFormatter",
    "MISSING",
    "MapSession",
    "MapState",
    "MapStateError",
    "MapStatus",
    "Region",
    "RegionMapError",
    "RegionSet",
    "RenderBridge",
    "ScaleBuilder",
    "StateChange",
    "StateSnapshot",
    "UnknownAttributeError",
    "UnknownPaletteError",
    "UnmatchedRow",
    "build_scale",
    "coerce_numeric",
    "format_value",
    "is_missing",
    "keys_match",
    "load_config",
    "load_source_rows",
    "lookup",
    "normalize",
    "resolve_palette",
    "rows_from_dataframe",
    "write_join_report",
]
