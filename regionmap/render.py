"""
Rendering bridge between the map controller and a drawing engine.

``RenderBridge`` is the seam the controller paints through. The folium
implementation writes an interactive HTML choropleth; other engines implement
the same two calls.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import folium
import geopandas as gpd
from branca.colormap import StepColormap
from loguru import logger

from .errors import MapStateError
from .models import ColorScale, RegionSet


class RenderBridge(ABC):
    """Drawing surface driven by MapState."""

    @abstractmethod
    def paint(self, regions: RegionSet, scale: ColorScale, labels: Mapping[Any, str]) -> None:
        """Full draw: place geometry and style every region."""

    @abstractmethod
    def repaint(self, scale: ColorScale, labels: Mapping[Any, str]) -> None:
        """Restyle only, reusing the geometry placed by ``paint``."""


class FoliumRenderBridge(RenderBridge):
    """Writes the choropleth to an HTML file with folium.

    Geometry is converted to a GeoDataFrame once on ``paint`` (reprojected to
    the output CRS for web display) and reused by every ``repaint``.
    """

    def __init__(
        self,
        output_path: Union[str, Path],
        title: Optional[str] = None,
        tiles: str = "CartoDB Positron",
        zoom_start: int = 7,
        fill_opacity: float = 0.7,
        line_opacity: float = 0.3,
        output_crs: str = "EPSG:4326",
    ):
        self.output_path = Path(output_path)
        self.title = title
        self.tiles = tiles
        self.zoom_start = zoom_start
        self.fill_opacity = fill_opacity
        self.line_opacity = line_opacity
        self.output_crs = output_crs
        self.paint_count = 0
        self.repaint_count = 0
        self.last_map: Optional[folium.Map] = None
        self._regions: Optional[RegionSet] = None
        self._frame: Optional[gpd.GeoDataFrame] = None

    def paint(self, regions: RegionSet, scale: ColorScale, labels: Mapping[Any, str]) -> None:
        logger.info(f"🗺️ Painting {len(regions):,} regions by '{scale.attribute}'")
        self._regions = regions
        self._frame = self._build_frame(regions)
        self.paint_count += 1
        self._draw(scale, labels)

    def repaint(self, scale: ColorScale, labels: Mapping[Any, str]) -> None:
        if self._frame is None or self._regions is None:
            raise MapStateError("repaint called before paint")
        logger.debug(f"  🎨 Repainting by '{scale.attribute}' ({scale.palette})")
        self.repaint_count += 1
        self._draw(scale, labels)

    def _build_frame(self, regions: RegionSet) -> gpd.GeoDataFrame:
        frame = gpd.GeoDataFrame(
            {
                "region_id": [str(region.region_id) for region in regions],
                "name": [region.name for region in regions],
            },
            geometry=[region.geometry for region in regions],
            crs=regions.crs,
        )
        if frame.crs is None:
            logger.warning(f"  ⚠️ No CRS declared, assuming {self.output_crs}")
            frame = frame.set_crs(self.output_crs)
        elif frame.crs != self.output_crs:
            logger.debug(f"  🔄 Reprojecting from {frame.crs} to {self.output_crs} for display")
            frame = frame.to_crs(self.output_crs)
        return frame

    def _styled_frame(self, scale: ColorScale, labels: Mapping[Any, str]) -> gpd.GeoDataFrame:
        frame = self._frame.copy()
        frame["fill_color"] = [scale.lookup(region.value(scale.attribute)) for region in self._regions]
        frame["label"] = [labels.get(region.region_id, region.name) for region in self._regions]
        return frame

    def _center(self) -> list:
        if self._frame is None or len(self._frame) == 0 or self._frame.geometry.isna().all():
            return [0.0, 0.0]
        bounds = self._frame.total_bounds
        return [(bounds[1] + bounds[3]) / 2, (bounds[0] + bounds[2]) / 2]

    def _draw(self, scale: ColorScale, labels: Mapping[Any, str]) -> None:
        frame = self._styled_frame(scale, labels)

        m = folium.Map(
            location=self._center(),
            zoom_start=self.zoom_start,
            tiles=self.tiles,
            prefer_canvas=True,
        )

        fill_opacity = self.fill_opacity
        line_opacity = self.line_opacity
        folium.GeoJson(
            data=frame.__geo_interface__,
            name=scale.attribute,
            style_function=lambda feature: {
                "fillColor": feature["properties"]["fill_color"],
                "color": "#666666",
                "weight": 1,
                "fillOpacity": fill_opacity,
                "opacity": line_opacity,
            },
            tooltip=folium.GeoJsonTooltip(fields=["label"], labels=False, sticky=False),
        ).add_to(m)

        legend = self._legend(scale)
        if legend is not None:
            legend.add_to(m)

        folium.LayerControl(collapsed=False).add_to(m)

        if self.title:
            title_html = f"""
            <h3 align="center" style="font-size:20px; color: #333333; margin-top:10px;">
            <b>{self.title}</b>
            </h3>
            """
            m.get_root().html.add_child(folium.Element(title_html))

        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        m.save(str(self.output_path))
        self.last_map = m
        logger.success(f"  ✅ Map saved: {self.output_path}")

    @staticmethod
    def _legend(scale: ColorScale) -> Optional[StepColormap]:
        if scale.is_empty or scale.boundaries[0] == scale.boundaries[-1]:
            return None
        return StepColormap(
            colors=list(scale.colors),
            index=list(scale.boundaries),
            vmin=scale.boundaries[0],
            vmax=scale.boundaries[-1],
            caption=scale.attribute,
        )


def legend_entries(scale: ColorScale, decimals: int = 2, missing_text: str = "No data") -> Dict[str, str]:
    """Legend text to color, including the fallback entry for missing values."""
    entries = {
        f"{lower:,.{decimals}f} - {upper:,.{decimals}f}": color
        for lower, upper, color in scale.legend()
    }
    entries[missing_text] = scale.fallback_color
    return entries
