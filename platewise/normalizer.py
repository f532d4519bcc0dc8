"""Normalize loosely-typed extractor payloads into canonical Recipe objects."""

import math
import re
from typing import Any
from urllib.parse import unquote, urljoin, urlparse, urlunparse

from .extractors import ExtractionResult
from .models import (
    CUISINE_KEYS,
    DESCRIPTION_KEYS,
    IMAGE_KEYS,
    INGREDIENT_KEYS,
    INSTRUCTION_KEYS,
    SERVINGS_KEYS,
    SOURCE_KEYS,
    TIME_KEYS,
    TITLE_KEYS,
    ExtractionMethod,
    Ingredient,
    Recipe,
)
from .units import UNIT_INFO, normalize_vulgar_fractions, parse_quantity

DEFAULT_SERVINGS = 4
DEFAULT_TOTAL_TIME_MINUTES = 30
DEFAULT_TITLE = "Traditional Recipe"

MISSING_INGREDIENTS_LINE = "Ingredients unavailable - check the original recipe page"
MISSING_INSTRUCTIONS_LINE = "Instructions unavailable - see the original recipe page"

# Units recognized at the start of an ingredient line, beyond the convertible ones
EXTRA_UNITS = {
    "c",
    "pinch",
    "pinches",
    "dash",
    "dashes",
    "bunch",
    "bunches",
    "head",
    "heads",
    "stalk",
    "stalks",
    "sprig",
    "sprigs",
    "handful",
    "handfuls",
    "bag",
    "bags",
    "bottle",
    "bottles",
    "jar",
    "jars",
    "pkg",
    "pcs",
    "stick",
    "sticks",
}
UNITS = set(UNIT_INFO) | EXTRA_UNITS

BULLET_CHARS = "•·▪‣◦●*"
_BULLET_SPLIT = re.compile(r"\s*[" + re.escape(BULLET_CHARS) + r"]\s*")
_LEADING_MARKER = re.compile(r"^(?:[-–" + re.escape(BULLET_CHARS) + r"]\s*|\d+[.)]\s+)")
_STEP_PREFIX = re.compile(r"^(?:step\s*\d+\s*[:.)-]?\s*|\d+[.)]\s+)", re.IGNORECASE)
# Sentence end followed by a capital or an inline step number, never after a bare "2."
_SENTENCE_BOUNDARY = re.compile(r"(?<!\b\d\.)(?<!\b\d\d\.)(?<=\.)\s+(?=[A-Z]|\d{1,2}[.)]\s)")
_BARE_STEP_NUMBER = re.compile(r"^\d+[.)]?$")
_AMOUNT_PREFIX = re.compile(
    r"^(\d+\s+\d+/\d+|\d+/\d+|\d+(?:\.\d+)?(?:\s*(?:-|–|to)\s*\d+(?:\.\d+)?)?)\s*"
)
_ISO_DURATION = re.compile(
    r"^P(?:(\d+)D)?(?:T(?:(\d+(?:\.\d+)?)H)?(?:(\d+(?:\.\d+)?)M)?(?:(\d+(?:\.\d+)?)S)?)?$",
    re.IGNORECASE,
)
_TEXT_DURATION = re.compile(
    r"(\d+(?:\.\d+)?)\s*(hours?|hrs?|h|minutes?|mins?|m)(?![a-z])", re.IGNORECASE
)


def _first_value(payload: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = payload.get(key)
        if value not in (None, "", [], {}):
            return value
    return None


def _clean_text(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


# ============================================================================
# Titles and URLs
# ============================================================================


def title_from_url(url: str | None) -> str:
    """
    Derive a readable title from a URL's last path segment.

    Example:
        "https://example.com/recipes/jollof-rice/" -> "Jollof Rice"
    """
    if not url:
        return DEFAULT_TITLE

    segments = [unquote(s) for s in urlparse(url).path.split("/") if s]
    if not segments:
        return DEFAULT_TITLE

    slug = re.sub(r"\.[a-z0-9]+$", "", segments[-1], flags=re.IGNORECASE)
    words = re.sub(r"[-_]+", " ", slug).strip()
    if not words or words.isdigit():
        return DEFAULT_TITLE
    return words.title()


def normalize_title(title: Any, source_url: str | None = None) -> str:
    """Clean up a title, falling back to one derived from the URL."""
    if not isinstance(title, str) or not title.strip():
        return title_from_url(source_url)

    cleaned = _clean_text(title)
    cleaned = re.sub(r"^recipe:?\s*", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"\s+recipe$", "", cleaned, flags=re.IGNORECASE)
    return cleaned or title_from_url(source_url)


def normalize_url(value: Any, base_url: str | None = None) -> str | None:
    """
    Resolve a URL against its page and prefer HTTPS.

    Args:
        value: Raw URL (absolute, protocol-relative, or relative)
        base_url: Page the URL was found on

    Returns:
        Absolute http(s) URL, or None if the value is not a usable URL
    """
    if not isinstance(value, str):
        return None

    raw = value.strip()
    if not raw or any(ch.isspace() for ch in raw):
        return None

    try:
        resolved = urljoin(base_url, raw) if base_url else raw
        parsed = urlparse(resolved)
    except ValueError:
        return None

    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None

    return urlunparse(parsed._replace(scheme="https"))


# ============================================================================
# Ingredients
# ============================================================================


def parse_unit(text: str) -> tuple[str, str]:
    """
    Parse a unit token from the beginning of text.

    Returns:
        Tuple of (unit, remaining_text); unit is "" when none is found
    """
    words = text.split()
    if not words:
        return "", text

    # Check for two-word units first (e.g., "fl oz", "fluid ounce")
    if len(words) >= 2:
        two_word = f"{words[0]} {words[1]}".lower()
        if two_word in UNITS:
            return two_word, " ".join(words[2:])

    first_word = words[0].lower().rstrip(",.")
    if first_word in UNITS:
        return first_word, " ".join(words[1:])

    return "", text


def parse_ingredient_line(text: str) -> Ingredient:
    """
    Parse a single ingredient line into structured data.

    Args:
        text: Raw ingredient text (e.g., "1 1/2 cups flour, sifted")

    Returns:
        Ingredient with amount, unit, name and notes
    """
    original = _clean_text(text)
    remaining = normalize_vulgar_fractions(original)

    amount = 0.0
    match = _AMOUNT_PREFIX.match(remaining)
    if match:
        amount = parse_quantity(match.group(1))
        remaining = remaining[match.end() :]

    unit, remaining = parse_unit(remaining)

    notes = None
    name = remaining

    paren_match = re.search(r"\(([^)]+)\)", name)
    if paren_match:
        notes = paren_match.group(1).strip()
        name = name[: paren_match.start()] + name[paren_match.end() :]

    if "," in name:
        name, note_part = (part.strip() for part in name.split(",", 1))
        if note_part:
            notes = f"{notes}, {note_part}" if notes else note_part

    name = _clean_text(name).strip(",.") or original

    return Ingredient(original=original, name=name, amount=amount, unit=unit, notes=notes)


def _ingredient_from_dict(item: dict[str, Any]) -> Ingredient | None:
    text = item.get("original") or item.get("text")
    name = item.get("name") or item.get("ingredient")

    if not isinstance(name, str) or not name.strip():
        return parse_ingredient_line(text) if isinstance(text, str) and text.strip() else None

    amount = item.get("amount", item.get("quantity"))
    unit = item.get("unit")
    unit = unit.strip() if isinstance(unit, str) else ""
    amount_text = "" if amount is None else str(amount)
    original = text if isinstance(text, str) and text.strip() else None
    original = original or " ".join(part for part in (amount_text, unit, name.strip()) if part)

    notes = item.get("notes") or item.get("preparation")
    return Ingredient(
        original=_clean_text(original),
        name=_clean_text(name),
        amount=parse_quantity(amount),
        unit=unit,
        notes=notes if isinstance(notes, str) and notes.strip() else None,
    )


def split_ingredient_text(text: str) -> list[str]:
    """
    Split a single block of ingredient text into lines.

    Newlines and bullet characters delimit entries; a block with neither is
    split on commas instead.
    """
    fragments = []
    for line in text.splitlines():
        fragments.extend(_BULLET_SPLIT.split(line))

    if len([f for f in fragments if f.strip()]) <= 1:
        fragments = text.split(",")

    return [_strip_marker(f) for f in fragments if _strip_marker(f)]


def _strip_marker(text: str) -> str:
    return _LEADING_MARKER.sub("", text.strip()).strip()


def normalize_ingredients(value: Any) -> list[Ingredient]:
    """Accept a list of strings, a list of objects, or one text block."""
    if isinstance(value, str):
        value = split_ingredient_text(value)
    elif isinstance(value, dict):
        value = [value]
    elif not isinstance(value, list):
        return []

    ingredients: list[Ingredient] = []
    for item in value:
        if isinstance(item, dict):
            ingredient = _ingredient_from_dict(item)
            if ingredient:
                ingredients.append(ingredient)
        elif isinstance(item, (str, int, float)) and not isinstance(item, bool):
            line = _strip_marker(str(item))
            if line:
                ingredients.append(parse_ingredient_line(line))

    return ingredients


# ============================================================================
# Instructions
# ============================================================================


def split_instruction_text(text: str) -> list[str]:
    """
    Split instruction text on newlines and on sentence boundaries.

    Step numbers are stripped from each line before it is split into sentences.
    """
    steps = []
    for line in text.splitlines():
        line = _clean_step(line)
        if line:
            steps.extend(_SENTENCE_BOUNDARY.split(line))
    return steps


def _clean_step(text: str) -> str:
    return _STEP_PREFIX.sub("", _strip_marker(text)).strip()


def normalize_instructions(value: Any) -> list[str]:
    """Accept a list of steps (strings or step objects) or one text block."""
    if isinstance(value, str):
        raw_steps: list[Any] = split_instruction_text(value)
    elif isinstance(value, list):
        raw_steps = value
    elif isinstance(value, dict):
        raw_steps = [value]
    else:
        return []

    steps: list[str] = []
    for item in raw_steps:
        if isinstance(item, dict):
            if "itemListElement" in item:
                steps.extend(normalize_instructions(item["itemListElement"]))
                continue
            item = item.get("text") or item.get("name") or item.get("step")
        if isinstance(item, str):
            step = _clean_step(_clean_text(item))
            if step and not _BARE_STEP_NUMBER.match(step):
                steps.append(step)

    return steps


# ============================================================================
# Servings and time
# ============================================================================


def parse_servings(value: Any) -> int:
    """
    Parse servings from a number or descriptive text.

    Examples:
        4 -> 4
        2.7 -> 2
        "Serves 6" -> 6
        None -> 4
    """
    if isinstance(value, bool):
        return DEFAULT_SERVINGS
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return DEFAULT_SERVINGS
        return max(1, math.floor(value))
    if isinstance(value, list) and value:
        return parse_servings(value[0])
    if isinstance(value, str):
        match = re.search(r"\d+", value)
        if match:
            return max(1, int(match.group(0)))
    return DEFAULT_SERVINGS


def parse_iso_duration(value: str) -> int | None:
    """Convert an ISO-8601 duration such as "PT1H30M" to minutes."""
    match = _ISO_DURATION.match(value.strip())
    if not match or not any(match.groups()):
        return None

    days, hours, minutes, seconds = (float(g) if g else 0.0 for g in match.groups())
    return round(days * 24 * 60 + hours * 60 + minutes + seconds / 60)


def parse_time_minutes(value: Any) -> int:
    """
    Parse a total time into minutes.

    Accepts minutes as a number or numeric string, ISO-8601 durations, and text
    like "1 hour 15 minutes". Defaults to 30 when absent or unparseable.
    """
    if isinstance(value, bool):
        return DEFAULT_TOTAL_TIME_MINUTES
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value <= 0:
            return DEFAULT_TOTAL_TIME_MINUTES
        return round(value)
    if not isinstance(value, str) or not value.strip():
        return DEFAULT_TOTAL_TIME_MINUTES

    text = value.strip()
    if re.fullmatch(r"\d+(?:\.\d+)?", text):
        return parse_time_minutes(float(text))

    iso = parse_iso_duration(text)
    if iso:
        return iso

    total = 0.0
    for amount, unit in _TEXT_DURATION.findall(text):
        total += float(amount) * (60 if unit.lower().startswith("h") else 1)
    return round(total) if total > 0 else DEFAULT_TOTAL_TIME_MINUTES


# ============================================================================
# Recipe
# ============================================================================


def _normalize_cuisines(value: Any) -> list[str]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list):
        return []
    return [_clean_text(c) for c in value if isinstance(c, str) and c.strip()]


def normalize_payload(
    payload: dict[str, Any],
    page_url: str | None,
    method: ExtractionMethod = "ai-fields",
) -> Recipe:
    """
    Produce a canonical Recipe from any extractor payload shape.

    Args:
        payload: Loosely-typed extractor output
        page_url: URL the payload was extracted from
        method: Extraction tier that produced the payload

    Returns:
        Recipe whose ingredients and instructions are never both empty
    """
    source_url = normalize_url(_first_value(payload, SOURCE_KEYS), page_url)
    source_url = source_url or normalize_url(page_url)

    ingredients = normalize_ingredients(_first_value(payload, INGREDIENT_KEYS))
    if not ingredients:
        ingredients = [Ingredient(original=MISSING_INGREDIENTS_LINE, name=MISSING_INGREDIENTS_LINE)]

    instructions = normalize_instructions(_first_value(payload, INSTRUCTION_KEYS))
    if not instructions:
        instructions = [MISSING_INSTRUCTIONS_LINE]

    description = _first_value(payload, DESCRIPTION_KEYS)
    image = _first_value(payload, IMAGE_KEYS)
    if isinstance(image, list):
        image = image[0] if image else None
    if isinstance(image, dict):
        image = image.get("url")

    return Recipe(
        title=normalize_title(_first_value(payload, TITLE_KEYS), source_url or page_url),
        description=_clean_text(description) if isinstance(description, str) else "",
        cuisines=_normalize_cuisines(_first_value(payload, CUISINE_KEYS)),
        ingredients=ingredients,
        instructions=instructions,
        servings=parse_servings(_first_value(payload, SERVINGS_KEYS)),
        total_time_minutes=parse_time_minutes(_first_value(payload, TIME_KEYS)),
        image_url=normalize_url(image, page_url),
        source_url=source_url,
        extraction_method=method,
    )


def normalize_recipe(result: ExtractionResult) -> Recipe:
    """Normalize the output of any extraction tier."""
    return normalize_payload(result.payload, result.url, result.method)
