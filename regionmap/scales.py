"""
Color scale construction for choropleth binning.

Breakpoints are computed from the present (non-missing) values of one
attribute across all regions. Palettes are matplotlib colormap names or
explicit color lists, resolved to one hex color per bin.
"""

from typing import Any, List, Optional, Sequence, Union

import matplotlib as mpl
import matplotlib.colors as mcolors
import numpy as np
from loguru import logger

from .errors import UnknownPaletteError
from .models import ColorScale, RegionSet

EQUAL_WIDTH = "equal_width"
QUANTILE = "quantile"
STRATEGIES = (EQUAL_WIDTH, QUANTILE)

DEFAULT_BIN_COUNT = 7
DEFAULT_PALETTE = "YlOrRd"
DEFAULT_FALLBACK_COLOR = "#d3d3d3"

Palette = Union[str, Sequence[str]]


def _color_list(palette: Palette) -> Optional[List[str]]:
    """Explicit colors from a list or comma-separated string, else None."""
    if isinstance(palette, str):
        if "," not in palette and not palette.startswith("#"):
            return None
        colors = [part.strip() for part in palette.split(",") if part.strip()]
    else:
        colors = [str(color) for color in palette]
    if not colors or not all(mcolors.is_color_like(color) for color in colors):
        return None
    return colors


def palette_id(palette: Palette) -> str:
    """String identifier for a palette, used on ColorScale."""
    if isinstance(palette, str):
        return palette
    return ",".join(str(color) for color in palette)


def is_known_palette(palette: Palette) -> bool:
    if _color_list(palette) is not None:
        return True
    return isinstance(palette, str) and palette in mpl.colormaps


def resolve_palette(palette: Palette, n: int) -> List[str]:
    """
    Resolve a palette to ``n`` hex colors.

    Args:
        palette: matplotlib colormap name, list of colors, or comma-separated colors
        n: Number of colors needed

    Returns:
        List of ``n`` hex color strings, light to dark for sequential colormaps
    """
    if n <= 0:
        return []

    colors = _color_list(palette)
    if colors is not None:
        if len(colors) == n:
            return [mcolors.to_hex(color) for color in colors]
        if len(colors) == 1:
            return [mcolors.to_hex(colors[0])] * n
        cmap = mcolors.LinearSegmentedColormap.from_list("regionmap_custom", colors, N=256)
    elif isinstance(palette, str) and palette in mpl.colormaps:
        cmap = mpl.colormaps[palette]
    else:
        raise UnknownPaletteError(palette)

    positions = np.linspace(0.0, 1.0, n) if n > 1 else np.array([0.5])
    return [mcolors.to_hex(cmap(float(position))) for position in positions]


def _ascending(raw: Sequence[float], low: float, high: float) -> List[float]:
    """Exact endpoints with every interior boundary strictly between its neighbors."""
    breaks = [low]
    for value in raw:
        value = float(value)
        if breaks[-1] < value < high:
            breaks.append(value)
    breaks.append(high)
    return breaks


def equal_width_breaks(values: Sequence[float], bin_count: int) -> List[float]:
    """
    ``bin_count + 1`` evenly spaced boundaries over [min, max].

    Boundaries that round onto a neighbor collapse, so a range narrower than
    the float spacing yields fewer bins.
    """
    low, high = float(min(values)), float(max(values))
    if low == high:
        return [low, high]
    # Interpolated form; high - low overflows for ranges near the float limits
    steps = np.linspace(0.0, 1.0, bin_count + 1)
    return _ascending(low * (1.0 - steps) + high * steps, low, high)


def quantile_breaks(values: Sequence[float], bin_count: int) -> List[float]:
    """Boundaries at evenly spaced quantiles; repeated boundaries collapse."""
    low, high = float(min(values)), float(max(values))
    if low == high:
        return [low, high]
    raw = np.quantile(np.asarray(values, dtype=float), np.linspace(0.0, 1.0, bin_count + 1))
    return _ascending(raw.tolist(), low, high)


class ScaleBuilder:
    """Builds ColorScales from a region set."""

    def __init__(
        self,
        bin_count: int = DEFAULT_BIN_COUNT,
        palette: Palette = DEFAULT_PALETTE,
        fallback_color: str = DEFAULT_FALLBACK_COLOR,
        strategy: str = EQUAL_WIDTH,
    ):
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown binning strategy: '{strategy}'")
        if not isinstance(bin_count, int) or bin_count < 1:
            raise ValueError("bin_count must be an integer >= 1")
        self.bin_count = bin_count
        self.palette = palette
        self.fallback_color = fallback_color
        self.strategy = strategy

    def build(
        self,
        regions: RegionSet,
        attribute: str,
        bin_count: Optional[int] = None,
        palette: Optional[Palette] = None,
        fallback_color: Optional[str] = None,
        strategy: Optional[str] = None,
    ) -> ColorScale:
        """
        Compute the color scale for ``attribute``.

        An attribute with no present values yields a degenerate scale with zero
        bins, and ``min == max`` yields a single bin.
        """
        bins = self.bin_count if bin_count is None else bin_count
        chosen_palette = self.palette if palette is None else palette
        fallback = self.fallback_color if fallback_color is None else fallback_color
        method = self.strategy if strategy is None else strategy

        if not isinstance(bins, int) or bins < 1:
            raise ValueError("bin_count must be an integer >= 1")
        if method not in STRATEGIES:
            raise ValueError(f"Unknown binning strategy: '{method}'")
        if not is_known_palette(chosen_palette):
            raise UnknownPaletteError(chosen_palette)

        values = regions.values(attribute)
        if not values:
            logger.debug(f"  No values for '{attribute}'; using fallback-only scale")
            return ColorScale(
                attribute=attribute,
                palette=palette_id(chosen_palette),
                boundaries=(),
                colors=(),
                fallback_color=fallback,
                strategy=method,
            )

        if method == QUANTILE:
            breaks = quantile_breaks(values, bins)
        else:
            breaks = equal_width_breaks(values, bins)

        colors = resolve_palette(chosen_palette, len(breaks) - 1)
        logger.debug(f"  📊 '{attribute}' breaks ({method}): {[round(b, 6) for b in breaks]}")
        return ColorScale(
            attribute=attribute,
            palette=palette_id(chosen_palette),
            boundaries=tuple(breaks),
            colors=tuple(colors),
            fallback_color=fallback,
            strategy=method,
        )


def build_scale(
    regions: RegionSet,
    attribute: str,
    bin_count: int = DEFAULT_BIN_COUNT,
    palette: Palette = DEFAULT_PALETTE,
    fallback_color: str = DEFAULT_FALLBACK_COLOR,
    strategy: str = EQUAL_WIDTH,
) -> ColorScale:
    """Module-level shortcut for ``ScaleBuilder().build``."""
    return ScaleBuilder(bin_count, palette, fallback_color, strategy).build(regions, attribute)


def lookup(scale: ColorScale, value: Any) -> str:
    """Color for ``value`` under ``scale``; the fallback for missing or out-of-domain values."""
    return scale.lookup(value)
