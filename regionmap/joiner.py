"""
Attribute joins between tabular sources and the region set.

Each call to ``AttributeJoiner.join`` attaches one source's value fields to
the regions whose normalized display name matches the row key, and returns a
``JoinResult`` describing what matched, what was dropped and which keys
collided. Joins never abort on bad rows.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import pandas as pd
from loguru import logger

from .keys import normalize
from .models import MISSING, JoinKeyConflict, JoinResult, Region, RegionSet, UnmatchedRow

_MISSING_TOKENS = {"", "na", "n/a", "nan", "null", "none", "-", "--"}


@dataclass(frozen=True)
class FieldOption:
    """Per-field join behaviour."""

    treat_missing_as_zero: bool = False

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "FieldOption":
        if not data:
            return cls()
        zero = data.get("treat_missing_as_zero", False)
        if not isinstance(zero, bool):
            raise ValueError("Expected boolean for 'treat_missing_as_zero'")
        return cls(treat_missing_as_zero=zero)


ValueFields = Union[Sequence[str], Mapping[str, FieldOption]]


def coerce_numeric(value: Any) -> Optional[float]:
    """
    Convert a raw source value to float, handling commas and percent signs.

    Percent values are kept on their 0-100 scale. Returns None for absent,
    blank, non-numeric or non-finite input so callers can decide between the
    missing sentinel and zero.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).replace(",", "").replace("%", "").strip()
        if text.lower() in _MISSING_TOKENS:
            return None
        number = pd.to_numeric(text, errors="coerce")
        if pd.isna(number):
            return None
        number = float(number)
    if not math.isfinite(number):
        return None
    return number


def rows_from_dataframe(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Convert a DataFrame to row mappings, with NaN cells as None."""
    cleaned = df.astype(object).where(pd.notna(df), None)
    return cleaned.to_dict(orient="records")


def _field_options(value_fields: ValueFields) -> Dict[str, FieldOption]:
    if isinstance(value_fields, Mapping):
        return {name: option or FieldOption() for name, option in value_fields.items()}
    if isinstance(value_fields, str):
        return {value_fields: FieldOption()}
    return {name: FieldOption() for name in value_fields}


class AttributeJoiner:
    """Joins tabular rows onto regions by normalized key.

    Duplicate source keys follow a first-occurrence-wins policy: the first row
    is applied and every later row with the same normalized key is recorded as
    a ``JoinKeyConflict`` and skipped.
    """

    def join(
        self,
        regions: RegionSet,
        rows: Sequence[Mapping[str, Any]],
        key_field: str,
        value_fields: ValueFields,
        source: Optional[str] = None,
    ) -> JoinResult:
        """
        Attach ``value_fields`` from ``rows`` onto ``regions``.

        Args:
            regions: Region set to enrich (attributes are written in place)
            rows: Parsed source rows, each a mapping of field name to raw value
            key_field: Row field holding the region name
            value_fields: Field names, or a mapping of field name to FieldOption
            source: Label used in diagnostics

        Returns:
            JoinResult for this pass
        """
        options = _field_options(value_fields)
        source_name = source or key_field
        result = JoinResult(
            source=source_name,
            key_field=key_field,
            value_fields=tuple(options),
            total_regions=len(regions),
            total_rows=len(rows),
        )

        logger.info(f"🔗 Joining '{source_name}' ({len(rows):,} rows) onto {len(regions):,} regions")

        index = self._build_index(regions, result)
        seen_keys: Dict[str, int] = {}
        matched_rows: Dict[Any, Mapping[str, Any]] = {}

        for row_index, row in enumerate(rows):
            raw_key = row.get(key_field)
            key = normalize(raw_key)

            if key in seen_keys:
                result.conflicts.append(
                    JoinKeyConflict(
                        key=key,
                        kept_row=seen_keys[key],
                        rejected_row=row_index,
                        rejected_raw_key=raw_key,
                    )
                )
                continue
            if key:
                seen_keys[key] = row_index

            region = index.get(key) if key else None
            if region is None:
                result.unmatched_rows.append(UnmatchedRow(row_index=row_index, raw_key=raw_key, key=key))
                continue
            matched_rows[region.region_id] = row

        for region in regions:
            row = matched_rows.get(region.region_id)
            if row is None:
                result.unmatched_regions.append(region.region_id)
                for name in options:
                    region.attributes[name] = MISSING
                continue
            result.matched.append(region.region_id)
            for name, option in options.items():
                region.attributes[name] = self._resolve_value(row.get(name), option)

        self._log_result(result)
        return result

    @staticmethod
    def _build_index(regions: RegionSet, result: JoinResult) -> Dict[str, Region]:
        index: Dict[str, Region] = {}
        for region in regions:
            key = region.normalized_key
            if not key:
                logger.debug(f"  Region {region.region_id!r} has an empty name and cannot be joined")
                continue
            if key in index:
                if key not in result.duplicate_region_keys:
                    result.duplicate_region_keys.append(key)
                logger.warning(
                    f"  ⚠️ Regions {index[key].region_id!r} and {region.region_id!r} share key '{key}'; "
                    f"only the first can match"
                )
                continue
            index[key] = region
        return index

    @staticmethod
    def _resolve_value(raw: Any, option: FieldOption) -> float:
        number = coerce_numeric(raw)
        if number is None:
            return 0.0 if option.treat_missing_as_zero else MISSING
        return number

    @staticmethod
    def _log_result(result: JoinResult) -> None:
        logger.info(f"  ✓ {result.summary()}")
        if result.unmatched_rows:
            examples = [str(row.raw_key) for row in result.unmatched_rows[:5]]
            logger.warning(f"  ⚠️ {len(result.unmatched_rows):,} rows matched no region")
            logger.debug(
                f"     Example unmatched keys: {examples}{'...' if len(result.unmatched_rows) > 5 else ''}"
            )
        if result.unmatched_regions:
            logger.debug(f"  📍 {len(result.unmatched_regions):,} regions without source data")
        for conflict in result.conflicts:
            logger.warning(
                f"  ⚠️ Duplicate key '{conflict.key}': kept row {conflict.kept_row}, "
                f"rejected row {conflict.rejected_row}"
            )
