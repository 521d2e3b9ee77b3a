"""
Tooltip and legend text for regions.
"""

import re
from typing import Any, Dict, Optional

from .models import Region, RegionSet, is_missing

DEFAULT_TEMPLATE = "{name}: {value}"
DEFAULT_MISSING_TEXT = "No data"

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def format_value(value: Any, missing_text: str = DEFAULT_MISSING_TEXT, decimals: Optional[int] = None) -> str:
    """
    Render a numeric attribute value for display.

    Whole numbers print without a decimal part; other values print at their
    shortest exact representation unless ``decimals`` fixes the precision.
    """
    if is_missing(value):
        return missing_text
    number = float(value)
    if decimals is not None:
        return f"{number:,.{decimals}f}"
    if number.is_integer():
        return f"{int(number):,}"
    text = repr(number)
    if "e" in text or "inf" in text:
        return text
    whole, _, fraction = text.partition(".")
    sign = "-" if whole.startswith("-") else ""
    return f"{sign}{int(whole.lstrip('-')):,}.{fraction}"


class LabelFormatter:
    """Fills a label template from a region's name and attribute values.

    Recognized placeholders are ``{name}``, ``{id}``, ``{attribute}``,
    ``{value}`` (the selected attribute) and any attribute name on the region.
    Anything else is left as written.
    """

    def __init__(
        self,
        template: str = DEFAULT_TEMPLATE,
        missing_text: str = DEFAULT_MISSING_TEXT,
        decimals: Optional[int] = None,
    ):
        if decimals is not None and (not isinstance(decimals, int) or decimals < 0):
            raise ValueError("decimals must be a non-negative integer")
        self.template = template
        self.missing_text = missing_text
        self.decimals = decimals

    def format(self, region: Region, attribute: str) -> str:
        def replace(match: "re.Match[str]") -> str:
            key = match.group(1)
            if key == "name":
                return region.name
            if key == "id":
                return str(region.region_id)
            if key == "attribute":
                return attribute
            if key == "value":
                return format_value(region.value(attribute), self.missing_text, self.decimals)
            if key in region.attributes:
                return format_value(region.attributes[key], self.missing_text, self.decimals)
            return match.group(0)

        return _PLACEHOLDER.sub(replace, self.template)

    def format_all(self, regions: RegionSet, attribute: str) -> Dict[Any, str]:
        return {region.region_id: self.format(region, attribute) for region in regions}
