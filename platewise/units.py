"""Quantity parsing, unit conversion and package size parsing."""

import math
import re
from dataclasses import dataclass
from typing import Literal

BaseUnit = Literal["g", "ml", "each"]


@dataclass
class BaseQuantity:
    """A quantity expressed in one of the canonical base units."""

    value: float
    base: BaseUnit


# Unicode vulgar fraction glyphs -> plain "n/d" text
VULGAR_FRACTIONS: dict[str, str] = {
    "¼": "1/4",
    "½": "1/2",
    "¾": "3/4",
    "⅐": "1/7",
    "⅑": "1/9",
    "⅒": "1/10",
    "⅓": "1/3",
    "⅔": "2/3",
    "⅕": "1/5",
    "⅖": "2/5",
    "⅗": "3/5",
    "⅘": "4/5",
    "⅙": "1/6",
    "⅚": "5/6",
    "⅛": "1/8",
    "⅜": "3/8",
    "⅝": "5/8",
    "⅞": "7/8",
}

_VULGAR_PATTERN = re.compile(r"(?:(\d)\s*)?([" + "".join(VULGAR_FRACTIONS) + "])")

# Recipe unit tokens -> (multiplier, base unit)
UNIT_INFO: dict[str, tuple[float, BaseUnit]] = {
    # Weight -> grams
    "g": (1.0, "g"),
    "gram": (1.0, "g"),
    "grams": (1.0, "g"),
    "kg": (1000.0, "g"),
    "kilogram": (1000.0, "g"),
    "kilograms": (1000.0, "g"),
    "oz": (28.3495, "g"),
    "ounce": (28.3495, "g"),
    "ounces": (28.3495, "g"),
    "lb": (453.592, "g"),
    "lbs": (453.592, "g"),
    "pound": (453.592, "g"),
    "pounds": (453.592, "g"),
    # Volume -> milliliters
    "ml": (1.0, "ml"),
    "milliliter": (1.0, "ml"),
    "milliliters": (1.0, "ml"),
    "l": (1000.0, "ml"),
    "liter": (1000.0, "ml"),
    "liters": (1000.0, "ml"),
    "litre": (1000.0, "ml"),
    "litres": (1000.0, "ml"),
    "tsp": (4.92892, "ml"),
    "teaspoon": (4.92892, "ml"),
    "teaspoons": (4.92892, "ml"),
    "tbsp": (14.7868, "ml"),
    "tbs": (14.7868, "ml"),
    "tablespoon": (14.7868, "ml"),
    "tablespoons": (14.7868, "ml"),
    "cup": (236.588, "ml"),
    "cups": (236.588, "ml"),
    "fl oz": (29.5735, "ml"),
    "floz": (29.5735, "ml"),
    "fluid ounce": (29.5735, "ml"),
    "fluid ounces": (29.5735, "ml"),
    # Count -> each
    "clove": (1.0, "each"),
    "cloves": (1.0, "each"),
    "piece": (1.0, "each"),
    "pieces": (1.0, "each"),
    "slice": (1.0, "each"),
    "slices": (1.0, "each"),
    "can": (1.0, "each"),
    "cans": (1.0, "each"),
    "package": (1.0, "each"),
    "packages": (1.0, "each"),
    "each": (1.0, "each"),
}

# Vendor size keywords -> (multiplier, base unit)
PACKAGE_UNIT_INFO: dict[str, tuple[float, BaseUnit]] = {
    "floz": (29.5735, "ml"),
    "oz": (28.3495, "g"),
    "ounce": (28.3495, "g"),
    "ounces": (28.3495, "g"),
    "lb": (453.592, "g"),
    "lbs": (453.592, "g"),
    "pound": (453.592, "g"),
    "pounds": (453.592, "g"),
    "g": (1.0, "g"),
    "gram": (1.0, "g"),
    "grams": (1.0, "g"),
    "kg": (1000.0, "g"),
    "l": (1000.0, "ml"),
    "liter": (1000.0, "ml"),
    "liters": (1000.0, "ml"),
    "ml": (1.0, "ml"),
    "milliliter": (1.0, "ml"),
    "milliliters": (1.0, "ml"),
}

_PACKAGE_MEASURE_PATTERN = re.compile(
    r"(\d+(?:\.\d+)?)\s*(" + "|".join(PACKAGE_UNIT_INFO) + r")\b"
)
_PACKAGE_COUNT_PATTERN = re.compile(r"(\d+)[\s-]*(count|ct|pk|pack|pieces?)\b")

_MIXED_NUMBER = re.compile(r"^(\d+)\s+(\d+)/(\d+)")
_SIMPLE_FRACTION = re.compile(r"^(\d+)/(\d+)")
_DECIMAL = re.compile(r"^(\d+(?:\.\d*)?|\.\d+)")


def normalize_vulgar_fractions(text: str) -> str:
    """
    Replace vulgar fraction glyphs with plain fractions.

    A glyph glued to a whole number becomes a mixed number ("1½" -> "1 1/2").
    """

    def _replace(match: re.Match[str]) -> str:
        whole = match.group(1)
        fraction = VULGAR_FRACTIONS[match.group(2)]
        return f"{whole} {fraction}" if whole else fraction

    return _VULGAR_PATTERN.sub(_replace, text)


def parse_quantity(text: str | float | int | None) -> float:
    """
    Parse quantity text into a number.

    Examples:
        "1 1/2" -> 1.5
        "½" -> 0.5
        "3/4" -> 0.75
        "2 cups" -> 2.0
        "abc" -> 0.0

    Returns:
        The parsed amount, or 0 when nothing numeric leads the text.
    """
    if text is None or isinstance(text, bool):
        return 0.0
    if isinstance(text, (int, float)):
        return float(text) if math.isfinite(text) and text > 0 else 0.0

    cleaned = normalize_vulgar_fractions(str(text)).strip()

    mixed = _MIXED_NUMBER.match(cleaned)
    if mixed:
        whole, numerator, denominator = (int(g) for g in mixed.groups())
        if denominator == 0:
            return 0.0
        return whole + numerator / denominator

    fraction = _SIMPLE_FRACTION.match(cleaned)
    if fraction:
        numerator, denominator = (int(g) for g in fraction.groups())
        if denominator == 0:
            return 0.0
        return numerator / denominator

    decimal = _DECIMAL.match(cleaned)
    if decimal:
        value = float(decimal.group(1))
        return value if math.isfinite(value) else 0.0

    return 0.0


def to_base_unit(amount: float, unit: str | None) -> BaseQuantity:
    """
    Convert an amount in a recipe unit to a canonical base unit.

    Unrecognized or empty units are treated as counts ("each").

    Args:
        amount: Numeric amount in the given unit
        unit: Unit token (e.g. "cups", "oz", "clove")

    Returns:
        BaseQuantity in grams, milliliters, or each
    """
    token = re.sub(r"\s+", " ", (unit or "").lower().strip().rstrip("."))

    if token in UNIT_INFO:
        multiplier, base = UNIT_INFO[token]
        return BaseQuantity(value=amount * multiplier, base=base)

    return BaseQuantity(value=amount, base="each")


def parse_package_size(size_text: str | None) -> BaseQuantity | None:
    """
    Parse a vendor package size string.

    Examples:
        "14 oz" -> BaseQuantity(396.89, "g")
        "33.8 fl oz" -> BaseQuantity(999.58, "ml")
        "1 lb" -> BaseQuantity(453.592, "g")
        "12 count" -> BaseQuantity(12, "each")
        "unknown" -> None

    Returns:
        BaseQuantity or None if no recognizable size is found
    """
    if not size_text:
        return None

    text = size_text.lower()
    text = re.sub(r"fl\.?\s*oz", "floz", text)
    text = re.sub(r"fluid\s*ounces?", "floz", text)

    match = _PACKAGE_MEASURE_PATTERN.search(text)
    if match:
        multiplier, base = PACKAGE_UNIT_INFO[match.group(2)]
        return BaseQuantity(value=float(match.group(1)) * multiplier, base=base)

    count = _PACKAGE_COUNT_PATTERN.search(text)
    if count:
        return BaseQuantity(value=float(count.group(1)), base="each")

    return None


def format_amount(value: float) -> str:
    """Format a quantity without trailing zeros (e.g. 2.0 -> "2", 0.333 -> "0.33")."""
    if value == int(value):
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")
