"""
Configuration Loader for region map sessions

This module provides a centralized way to load and access configuration
settings from a regionmap.yaml file, falling back to built-in defaults.

Usage:
    from regionmap.config_loader import Config

    config = Config()
    bins = config.get_session_setting('bin_count')
    options = config.get_field_options(['population', 'yield'])
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

import yaml  # type: ignore[import-untyped]
from loguru import logger

from .errors import ConfigError
from .joiner import FieldOption
from .scales import STRATEGIES, is_known_palette

CONFIG_ENV_VAR = "REGIONMAP_CONFIG_PATH"
DEFAULT_CONFIG_NAME = "regionmap.yaml"


class Config:
    """Configuration manager for a region map session."""

    # Default values that can be overridden in config
    DEFAULTS: Dict[str, Any] = {
        "project_name": "Region Map",
        "description": "",
        "session": {
            "bin_count": 7,
            "default_palette": "YlOrRd",
            "missing_fallback_color": "#d3d3d3",
            "label_template": "{name}: {value}",
            "missing_label": "No data",
            "value_decimals": None,
            "binning_strategy": "equal_width",
        },
        "columns": {
            "region_id": None,
            "region_name": "NAME",
            "source_key": "name",
        },
        "fields": {},
        "visualization": {
            "tiles": "CartoDB Positron",
            "zoom_start": 7,
            "fill_opacity": 0.7,
            "line_opacity": 0.3,
            "output_crs": "EPSG:4326",
        },
        "input_files": {},
    }

    def __init__(self, config_file: Optional[Union[str, Path]] = None, data: Optional[Dict[str, Any]] = None):
        """
        Initialize configuration manager.

        Args:
            config_file: Path to config file. If None, looks for:
                        1. Environment variable REGIONMAP_CONFIG_PATH
                        2. regionmap.yaml in current directory
                        Without either, only the built-in defaults apply.
            data: Configuration mapping to use instead of reading a file
        """
        self.config_path: Optional[Path] = None

        if data is not None:
            self.data = copy.deepcopy(data)
            logger.debug("Using in-memory configuration")
        else:
            if config_file is None:
                env_config = os.environ.get(CONFIG_ENV_VAR)
                if env_config and Path(env_config).exists():
                    config_file = env_config
                    logger.debug(f"Using config from environment: {config_file}")
                elif Path(DEFAULT_CONFIG_NAME).exists():
                    config_file = DEFAULT_CONFIG_NAME

            if config_file is None:
                logger.debug("No regionmap.yaml found; using built-in defaults")
                self.data = {}
            else:
                self.config_path = Path(config_file).resolve()
                if not self.config_path.exists():
                    raise FileNotFoundError(f"Config file not found: {self.config_path}")
                logger.debug(f"Loading config from: {self.config_path}")
                with open(self.config_path, "r", encoding="utf-8") as f:
                    self.data = yaml.safe_load(f) or {}

        if not isinstance(self.data, dict):
            raise ConfigError("Configuration root must be a mapping")

        self.base_dir = self.config_path.parent if self.config_path else Path.cwd()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        return cls(data=data)

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation with intelligent defaults.

        Args:
            key_path: Dot-separated path to the configuration value
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key_path.split(".")

        # Try to get from config first
        value: Any = self.data
        found = True
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                found = False
                break

        if found:
            return value

        # If not found in config, try defaults
        value = self.DEFAULTS
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def get_session_setting(self, setting_key: str) -> Any:
        """Get session setting with intelligent defaults."""
        return self.get(f"session.{setting_key}")

    def get_visualization_setting(self, setting_key: str) -> Any:
        """Get visualization setting with intelligent defaults."""
        return self.get(f"visualization.{setting_key}")

    def get_column_name(self, column_key: str) -> Optional[str]:
        """Get column name; ``region_id`` may be None to use the geometry index."""
        result = self.get(f"columns.{column_key}")
        if result is None or isinstance(result, str):
            return result
        raise ConfigError(f"Column name not a string: {column_key}")

    def get_field_options(self, field_names: Iterable[str]) -> Dict[str, FieldOption]:
        """Join options for each value field, from ``fields.<name>``."""
        fields = self.get("fields", {}) or {}
        options: Dict[str, FieldOption] = {}
        for name in field_names:
            try:
                options[name] = FieldOption.from_mapping(fields.get(name))
            except ValueError as e:
                raise ConfigError(f"fields.{name}: {e}") from e
        return options

    def get_input_path(self, filename_key: str) -> Path:
        """
        Get full path to an input file, resolved against the config directory.

        Args:
            filename_key: Key for the filename in input_files

        Returns:
            Absolute path to the input file
        """
        relative_path_str = self.get("input_files", {}).get(filename_key)
        if not relative_path_str:
            raise ValueError(f"Input filename key '{filename_key}' not found in config: input_files")
        return (self.base_dir / relative_path_str).resolve()

    def validate(self) -> None:
        """Check session settings; raises ConfigError on the first bad value."""
        bin_count = self.get_session_setting("bin_count")
        if isinstance(bin_count, bool) or not isinstance(bin_count, int) or bin_count < 1:
            raise ConfigError(f"session.bin_count must be an integer >= 1, got {bin_count!r}")

        strategy = self.get_session_setting("binning_strategy")
        if strategy not in STRATEGIES:
            raise ConfigError(f"session.binning_strategy must be one of {STRATEGIES}, got {strategy!r}")

        palette = self.get_session_setting("default_palette")
        if not is_known_palette(palette):
            raise ConfigError(f"session.default_palette is not a known palette: {palette!r}")

        decimals = self.get_session_setting("value_decimals")
        if decimals is not None and (isinstance(decimals, bool) or not isinstance(decimals, int) or decimals < 0):
            raise ConfigError(f"session.value_decimals must be a non-negative integer, got {decimals!r}")

        fields = self.get("fields", {}) or {}
        if not isinstance(fields, dict):
            raise ConfigError("fields must be a mapping of field name to options")
        self.get_field_options(fields)

    def print_config_summary(self) -> None:
        """Log a summary of the current configuration."""
        logger.debug("📋 Configuration Summary")
        logger.debug("=" * 50)
        logger.debug(f"Project: {self.get('project_name', 'Unknown')}")
        logger.debug(f"Config file: {self.config_path or '(defaults)'}")
        logger.debug("🎨 Session:")
        for key in self.DEFAULTS["session"]:
            logger.debug(f"  {key}: {self.get_session_setting(key)}")
        fields = self.get("fields", {}) or {}
        if fields:
            logger.debug("📊 Field options:")
            for name, option in self.get_field_options(fields).items():
                logger.debug(f"  {name}: treat_missing_as_zero={option.treat_missing_as_zero}")


# Convenience function for easy importing
def load_config(config_file: Optional[Union[str, Path]] = None) -> Config:
    """
    Load and validate configuration from file.

    Args:
        config_file: Path to configuration file

    Returns:
        Config instance
    """
    config = Config(config_file)
    config.validate()
    return config
