"""
Error kinds raised by the region map pipeline.

Join diagnostics (unmatched rows, key conflicts) are never raised; they are
recorded on the JoinResult. Only misuse of the controller or a bad selection
raises.
"""


class RegionMapError(Exception):
    """Base class for recoverable errors in the region map pipeline."""


class UnknownAttributeError(RegionMapError, KeyError):
    """Requested attribute is absent from every region's attribute mapping."""

    def __init__(self, attribute: str):
        self.attribute = attribute
        super().__init__(f"Unknown attribute: '{attribute}'")

    def __str__(self) -> str:
        return self.args[0]


class UnknownPaletteError(RegionMapError, ValueError):
    """Palette identifier is neither a known colormap nor a color list."""

    def __init__(self, palette):
        self.palette = palette
        super().__init__(f"Unknown palette: '{palette}'")


class MapStateError(RegionMapError):
    """Operation not valid in the controller's current lifecycle state."""


class ConfigError(RegionMapError, ValueError):
    """Invalid configuration value."""
