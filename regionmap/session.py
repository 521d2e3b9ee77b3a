"""
Map session setup and event entry point.

A session loads geometry and tabular sources (all I/O happens here, before
any join), runs the joins, then hands the finished region set to a MapState.
After that the regions are read-only and only attribute/palette changes flow
through ``attribute_or_palette_changed``.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import pandas as pd
from loguru import logger

from .config_loader import Config
from .errors import MapStateError, RegionMapError
from .geometry import GeometryProvider
from .joiner import AttributeJoiner, ValueFields, rows_from_dataframe
from .labels import LabelFormatter
from .models import ColorScale, JoinResult, RegionSet
from .render import RenderBridge
from .scales import Palette, ScaleBuilder
from .state import MapState, MapStatus, StateChange


def load_source_rows(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read a CSV source as raw text rows; numeric coercion happens in the join."""
    csv_path = Path(path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Source file not found: {csv_path}")
    df = pd.read_csv(csv_path, dtype=str, keep_default_na=False)
    df.rename(columns={c: c.strip() for c in df.columns}, inplace=True)
    logger.info(f"📄 Loaded {csv_path.name}: {len(df):,} rows, {len(df.columns)} columns")
    return rows_from_dataframe(df)


def write_join_report(
    path: Union[str, Path],
    results: Sequence[JoinResult],
    scale: Optional[ColorScale] = None,
    project_name: Optional[str] = None,
) -> Path:
    """Write join diagnostics (and the current scale, if any) as JSON."""
    output_path = Path(path)
    payload: Dict[str, Any] = {
        "metadata": {
            "title": project_name or "Region Map",
            "generated": datetime.now().isoformat(),
            "joins": len(results),
        },
        "joins": [result.to_dict() for result in results],
    }
    if scale is not None:
        payload["scale"] = scale.to_dict()

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
        f.write("\n")
    logger.info(f"💾 Join report saved: {output_path}")
    return output_path


class MapSession:
    """One user's map: joined regions plus the controller that renders them."""

    def __init__(self, regions: RegionSet, bridge: RenderBridge, config: Optional[Config] = None):
        self.config = config or Config.from_dict({})
        self.config.validate()
        self.regions = regions
        self.joiner = AttributeJoiner()
        self.join_results: List[JoinResult] = []
        self.last_error: Optional[RegionMapError] = None

        scale_builder = ScaleBuilder(
            bin_count=self.config.get_session_setting("bin_count"),
            palette=self.config.get_session_setting("default_palette"),
            fallback_color=self.config.get_session_setting("missing_fallback_color"),
            strategy=self.config.get_session_setting("binning_strategy"),
        )
        label_formatter = LabelFormatter(
            template=self.config.get_session_setting("label_template"),
            missing_text=self.config.get_session_setting("missing_label"),
            decimals=self.config.get_session_setting("value_decimals"),
        )
        self.state = MapState(regions, bridge, scale_builder, label_formatter)

    @classmethod
    def from_provider(
        cls, provider: GeometryProvider, bridge: RenderBridge, config: Optional[Config] = None
    ) -> "MapSession":
        return cls(provider.load(), bridge, config)

    def attach(
        self,
        rows: Sequence[Mapping[str, Any]],
        value_fields: ValueFields,
        key_field: Optional[str] = None,
        source: Optional[str] = None,
    ) -> JoinResult:
        """
        Join one tabular source onto the regions.

        Plain field-name lists pick up their join options from the
        configuration's ``fields`` section.
        """
        if self.state.status is MapStatus.READY:
            raise MapStateError("Sources must be attached before the map is started")
        if not isinstance(value_fields, Mapping):
            names = [value_fields] if isinstance(value_fields, str) else list(value_fields)
            value_fields = self.config.get_field_options(names)
        key = key_field or self.config.get_column_name("source_key")
        result = self.joiner.join(self.regions, rows, key, value_fields, source=source)
        self.join_results.append(result)
        return result

    def start(self, attribute: Optional[str] = None, palette: Optional[Palette] = None) -> StateChange:
        """Initialize the map on ``attribute`` (first joined attribute by default)."""
        if attribute is None:
            names = self.regions.attribute_names()
            if not names:
                raise MapStateError("No attributes joined; attach a source before starting")
            attribute = names[0]
        return self.state.initialize(attribute, palette)

    def attribute_or_palette_changed(
        self, attribute: str, palette: Optional[Palette] = None
    ) -> Optional[StateChange]:
        """
        Handle a user selection change.

        Selection errors are logged and kept on ``last_error``; the map keeps
        its previous state and the session stays usable.
        """
        try:
            change = self.state.update(attribute, palette)
        except RegionMapError as e:
            self.last_error = e
            logger.error(f"❌ Selection rejected: {e}")
            return None
        self.last_error = None
        return change

    def write_report(self, path: Union[str, Path]) -> Path:
        return write_join_report(
            path, self.join_results, self.state.scale, self.config.get("project_name")
        )
