#!/usr/bin/env python3
"""
Region map CLI

Joins one or more CSV sources onto a boundary file by region name and
renders the result as an interactive choropleth, or only checks the join.

Usage:
    regionmap render --geometry data/counties.geojson --source data/pop.csv \\
        --value-field population --attribute population --output html/map.html

    # Join diagnostics only:
    regionmap check-join --geometry data/counties.geojson --source data/pop.csv \\
        --value-field population --strict

    # Verbose logging:
    regionmap --verbose render ...
"""

import os
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click
from loguru import logger

from .config_loader import Config
from .errors import RegionMapError
from .geometry import GeoDataFrameProvider
from .models import JoinResult
from .render import FoliumRenderBridge, RenderBridge, legend_entries
from .session import MapSession, load_source_rows, write_join_report


class ConfigContext:
    """Click context object: base config plus command-line overrides."""

    def __init__(self, config_file: Optional[str] = None):
        self.config_file = config_file
        self.overrides: Dict[str, Any] = {}

    def add_override(self, key: str, value: Any) -> None:
        """Add config override using dot notation."""
        if value is None:
            return
        keys = key.split(".")
        current = self.overrides
        for k in keys[:-1]:
            current = current.setdefault(k, {})
        current[keys[-1]] = value
        logger.debug(f"Added override: {key} = {value}")

    def get_config(self) -> Config:
        """Get validated config with overrides applied."""
        base = Config(self.config_file)
        data = dict(base.data)
        _apply_nested_override(data, self.overrides)
        config = Config.from_dict(data)
        config.config_path = base.config_path
        config.base_dir = base.base_dir
        config.validate()
        return config


def _apply_nested_override(target: Dict[str, Any], overrides: Dict[str, Any]) -> None:
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            target[key] = dict(target[key])
            _apply_nested_override(target[key], value)
        else:
            target[key] = value


_DETAILED_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
)
_BRIEF_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"


def setup_logging(verbose: bool = False, enable_trace: bool = False, log_file: Optional[str] = None) -> None:
    """
    Replace loguru's default sink with one sized to the requested detail.

    ``enable_trace`` wins over ``verbose``; both switch to the detailed format
    with source locations. ``log_file`` adds a rotating plain-text sink.
    """
    log_level = "TRACE" if enable_trace else "DEBUG" if verbose else "INFO"

    logger.remove()
    logger.add(
        sys.stderr,
        format=_DETAILED_FORMAT if log_level != "INFO" else _BRIEF_FORMAT,
        level=log_level,
        colorize=True,
        backtrace=enable_trace,
        diagnose=enable_trace,
    )
    os.environ["LOGURU_LEVEL"] = log_level

    if log_file:
        logger.add(log_file, level=log_level, format=_FILE_FORMAT, rotation="10 MB", retention="7 days")
        logger.info(f"📄 Also logging to file: {log_file}")

    logger.trace("🔍 Trace logging enabled")


def handle_critical_error(error: Exception, context: str = "") -> None:
    """Log a command failure; the traceback is only emitted at TRACE level."""
    logger.critical(f"💥 {context} failed: {type(error).__name__}: {error}")
    if os.environ.get("LOGURU_LEVEL", "INFO") == "TRACE":
        logger.opt(exception=error).trace("Traceback")
    else:
        logger.info("💡 Re-run with --trace for the full traceback")


def _join_sources(
    session: MapSession,
    sources: Tuple[str, ...],
    value_fields: Tuple[str, ...],
    key_field: Optional[str],
) -> List[JoinResult]:
    key = key_field or session.config.get_column_name("source_key")
    results = []
    for source in sources:
        rows = load_source_rows(source)
        columns = set(rows[0]) if rows else set()
        if rows and key not in columns:
            raise click.UsageError(f"Key field '{key}' not found in {source}")
        fields = [name for name in value_fields if name in columns]
        if not fields:
            logger.warning(f"⚠️ {Path(source).name} has none of the requested value fields; skipped")
            continue
        results.append(session.attach(rows, fields, key_field=key, source=Path(source).name))
    return results


def _build_session(
    config: Config,
    geometry: str,
    name_column: Optional[str],
    id_column: Optional[str],
    bridge: RenderBridge,
) -> MapSession:
    config.print_config_summary()
    provider = GeoDataFrameProvider(
        geometry,
        name_column=name_column or config.get_column_name("region_name"),
        id_column=id_column or config.get_column_name("region_id"),
    )
    return MapSession.from_provider(provider, bridge, config)


class _NullBridge(RenderBridge):
    """Bridge for join-only runs; nothing is drawn."""

    def paint(self, regions, scale, labels) -> None:
        pass

    def repaint(self, scale, labels) -> None:
        pass


def _geometry_options(func):
    func = click.option("--geometry", required=True, type=click.Path(exists=True, dir_okay=False), help="Boundary file (GeoJSON, shapefile, GeoPackage)")(func)
    func = click.option("--name-column", default=None, help="Region name column in the boundary file")(func)
    func = click.option("--id-column", default=None, help="Stable region id column (default: feature index)")(func)
    func = click.option("--source", "sources", multiple=True, required=True, type=click.Path(exists=True, dir_okay=False), help="CSV source to join (repeatable)")(func)
    func = click.option("--key-field", default=None, help="Region name column in the sources")(func)
    func = click.option("--value-field", "value_fields", multiple=True, required=True, help="Numeric field to join (repeatable)")(func)
    func = click.option("--zero-fill", "zero_fill", multiple=True, help="Treat absent values of this field as zero (repeatable)")(func)
    func = click.option("--report", default=None, type=click.Path(dir_okay=False), help="Write join diagnostics JSON here")(func)
    return func


@click.group()
@click.option("--config", "config_file", default=None, type=click.Path(exists=True, dir_okay=False), help="Path to regionmap.yaml")
@click.option("--verbose", "-v", is_flag=True, help="Enable DEBUG level logging")
@click.option("--trace", is_flag=True, help="Enable TRACE level logging")
@click.option("--log-file", default=None, help="Also write logs to this file")
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[str], verbose: bool, trace: bool, log_file: Optional[str]) -> None:
    """Region-level choropleth maps from tabular sources."""
    setup_logging(verbose=verbose, enable_trace=trace, log_file=log_file)
    ctx.obj = ConfigContext(config_file)


@cli.command()
@_geometry_options
@click.option("--attribute", default=None, help="Attribute to color by (default: first value field)")
@click.option("--palette", default=None, help="matplotlib colormap name or comma-separated colors")
@click.option("--bins", type=click.IntRange(min=1), default=None, help="Number of color bins")
@click.option("--strategy", type=click.Choice(["equal_width", "quantile"]), default=None, help="Binning strategy")
@click.option("--output", default="html/region_map.html", show_default=True, type=click.Path(dir_okay=False), help="HTML output path")
@click.option("--title", default=None, help="Map title")
@click.pass_obj
def render(obj: ConfigContext, **kwargs) -> None:
    """Join sources and render an interactive choropleth."""
    logger.info("🗺️ Region Map Rendering")
    start_time = time.time()

    obj.add_override("session.bin_count", kwargs["bins"])
    obj.add_override("session.binning_strategy", kwargs["strategy"])
    for name in kwargs["zero_fill"]:
        obj.add_override(f"fields.{name}.treat_missing_as_zero", True)

    try:
        config = obj.get_config()
        bridge = FoliumRenderBridge(
            kwargs["output"],
            title=kwargs["title"] or config.get("project_name"),
            tiles=config.get_visualization_setting("tiles"),
            zoom_start=config.get_visualization_setting("zoom_start"),
            fill_opacity=config.get_visualization_setting("fill_opacity"),
            line_opacity=config.get_visualization_setting("line_opacity"),
            output_crs=config.get_visualization_setting("output_crs"),
        )
        session = _build_session(config, kwargs["geometry"], kwargs["name_column"], kwargs["id_column"], bridge)
        _join_sources(session, kwargs["sources"], kwargs["value_fields"], kwargs["key_field"])

        attribute = kwargs["attribute"] or kwargs["value_fields"][0]
        change = session.start(attribute, kwargs["palette"])

        logger.info("🎨 Legend:")
        for text, color in legend_entries(change.scale, missing_text=config.get_session_setting("missing_label")).items():
            logger.info(f"   {color}  {text}")

        if kwargs["report"]:
            session.write_report(kwargs["report"])
    except (RegionMapError, FileNotFoundError, KeyError, ValueError) as e:
        handle_critical_error(e, "Rendering region map")
        sys.exit(1)

    logger.success(f"✅ Rendering completed in {time.time() - start_time:.1f}s")


@cli.command("check-join")
@_geometry_options
@click.option("--strict", is_flag=True, help="Exit 1 on unmatched rows or key conflicts")
@click.pass_obj
def check_join(obj: ConfigContext, **kwargs) -> None:
    """Run the joins and report diagnostics without rendering."""
    logger.info("🔍 Join Check")

    for name in kwargs["zero_fill"]:
        obj.add_override(f"fields.{name}.treat_missing_as_zero", True)

    try:
        config = obj.get_config()
        session = _build_session(config, kwargs["geometry"], kwargs["name_column"], kwargs["id_column"], _NullBridge())
        results = _join_sources(session, kwargs["sources"], kwargs["value_fields"], kwargs["key_field"])
        if kwargs["report"]:
            write_join_report(kwargs["report"], results, project_name=session.config.get("project_name"))
    except (RegionMapError, FileNotFoundError, KeyError, ValueError) as e:
        handle_critical_error(e, "Checking joins")
        sys.exit(1)

    problems = 0
    for result in results:
        click.echo(result.summary())
        for row in result.unmatched_rows:
            click.echo(f"  unmatched row {row.row_index}: {row.raw_key!r}")
        for conflict in result.conflicts:
            click.echo(
                f"  duplicate key '{conflict.key}': kept row {conflict.kept_row}, rejected row {conflict.rejected_row}"
            )
        problems += len(result.unmatched_rows) + len(result.conflicts)

    if kwargs["strict"] and problems:
        logger.error(f"❌ {problems} join problems found")
        sys.exit(1)
    logger.success("✅ Join check completed")


if __name__ == "__main__":
    cli()
