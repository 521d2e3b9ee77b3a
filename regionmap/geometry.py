"""
Geometry providers.

A provider turns a boundary dataset into the session's RegionSet. Geometry
objects are carried as opaque references; the CRS tag is passed through as
declared, without validation or transformation.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import geopandas as gpd
import pandas as pd
from loguru import logger

from .models import Region, RegionSet


class GeometryProvider(ABC):
    """Source of the named polygons a map session is built on."""

    @abstractmethod
    def load(self) -> RegionSet:
        """Return the full region set with its CRS tag."""


class GeoDataFrameProvider(GeometryProvider):
    """
    Builds regions from a GeoDataFrame or any file geopandas can read.

    Args:
        source: GeoDataFrame, or path to a GeoJSON/shapefile/GeoPackage
        name_column: Column with the human-entered region name
        id_column: Column with a stable region id; the frame index if None
    """

    def __init__(
        self,
        source: Union[gpd.GeoDataFrame, str, Path],
        name_column: str = "NAME",
        id_column: Optional[str] = None,
    ):
        self.source = source
        self.name_column = name_column
        self.id_column = id_column

    def _read(self) -> gpd.GeoDataFrame:
        if isinstance(self.source, gpd.GeoDataFrame):
            return self.source
        path = Path(self.source)
        if not path.exists():
            raise FileNotFoundError(f"Geometry file not found: {path}")
        logger.info(f"📂 Loading geometry: {path}")
        gdf = gpd.read_file(path)
        logger.debug(f"  ✓ Loaded {len(gdf):,} features")
        return gdf

    def load(self) -> RegionSet:
        gdf = self._read()

        if self.name_column not in gdf.columns:
            raise KeyError(
                f"Name column '{self.name_column}' not in geometry columns: {list(gdf.columns)}"
            )
        if self.id_column is not None and self.id_column not in gdf.columns:
            raise KeyError(f"Id column '{self.id_column}' not in geometry columns: {list(gdf.columns)}")

        ids = gdf[self.id_column] if self.id_column is not None else pd.Series(gdf.index, index=gdf.index)
        regions = []
        for region_id, name, geometry in zip(ids, gdf[self.name_column], gdf.geometry):
            display_name = "" if pd.isna(name) else str(name)
            regions.append(Region(region_id=region_id, name=display_name, geometry=geometry))

        crs = gdf.crs.to_string() if gdf.crs is not None else None
        logger.debug(f"  📍 {len(regions):,} regions, CRS: {crs}")
        return RegionSet(regions, crs=crs)
