"""Structured recipe data (JSON-LD and meta tags) embedded in HTML pages."""

import json
from typing import Any

from bs4 import BeautifulSoup


def is_recipe_schema(node: Any) -> bool:
    """Check if a JSON-LD node has an @type containing "Recipe"."""
    if not isinstance(node, dict):
        return False

    schema_type = node.get("@type")
    if isinstance(schema_type, str):
        return "Recipe" in schema_type
    if isinstance(schema_type, list):
        return any(isinstance(t, str) and "Recipe" in t for t in schema_type)
    return False


def _find_recipe_node(data: Any) -> dict[str, Any] | None:
    """Search a decoded JSON-LD document for the first Recipe node."""
    if isinstance(data, list):
        for item in data:
            found = _find_recipe_node(item)
            if found:
                return found
        return None

    if not isinstance(data, dict):
        return None

    if is_recipe_schema(data):
        return data

    # Handle @graph containers and pages that nest the recipe as mainEntity
    for key in ("@graph", "mainEntity"):
        if key in data:
            found = _find_recipe_node(data[key])
            if found:
                return found

    return None


def extract_json_ld_recipe(soup: BeautifulSoup) -> dict[str, Any] | None:
    """Extract the first Recipe object from JSON-LD script tags."""
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or script.get_text() or "")
        except (json.JSONDecodeError, TypeError):
            continue

        node = _find_recipe_node(data)
        if node:
            return node

    return None


def instruction_texts(value: Any) -> list[str]:
    """
    Flatten recipeInstructions into plain step strings.

    Handles plain strings, HowToStep objects (text or name), and HowToSection
    objects whose steps live under itemListElement.
    """
    if isinstance(value, str):
        return [value]
    if isinstance(value, dict):
        if "itemListElement" in value:
            return instruction_texts(value["itemListElement"])
        text = value.get("text") or value.get("name")
        return [text] if isinstance(text, str) else []
    if isinstance(value, list):
        steps: list[str] = []
        for item in value:
            steps.extend(instruction_texts(item))
        return steps
    return []


def image_url(value: Any) -> str | None:
    """Resolve a schema.org image value (string, list, or ImageObject) to a URL."""
    if isinstance(value, str):
        return value
    if isinstance(value, list) and value:
        return image_url(value[0])
    if isinstance(value, dict):
        url = value.get("url") or value.get("contentUrl")
        return url if isinstance(url, str) else None
    return None


def canonical_link(soup: BeautifulSoup) -> str | None:
    link = soup.find("link", rel="canonical")
    href = link.get("href") if link else None
    return href if isinstance(href, str) and href.strip() else None


def meta_content(soup: BeautifulSoup, prop: str) -> str | None:
    """Read a <meta property=...> or <meta name=...> content attribute."""
    tag = soup.find("meta", attrs={"property": prop}) or soup.find("meta", attrs={"name": prop})
    content = tag.get("content") if tag else None
    return content if isinstance(content, str) and content.strip() else None


def parse_structured_recipe(html: str) -> dict[str, Any]:
    """
    Build a loosely-typed recipe payload from a page's structured data.

    JSON-LD Recipe fields are used when present. The canonical link and
    og:image only fill in the source and image URLs.

    Args:
        html: Rendered page HTML

    Returns:
        Payload dict using the same field names as the field extractor
    """
    soup = BeautifulSoup(html, "html.parser")
    payload: dict[str, Any] = {}

    node = extract_json_ld_recipe(soup)
    if node:
        ingredients = node.get("recipeIngredient") or node.get("ingredients") or []
        if not isinstance(ingredients, list):
            ingredients = [ingredients]

        recipe_yield = node.get("recipeYield")
        if isinstance(recipe_yield, list):
            recipe_yield = recipe_yield[0] if recipe_yield else None

        payload = {
            "title": node.get("name") or node.get("headline"),
            "description": node.get("description"),
            "ingredients": [str(ing) for ing in ingredients if ing],
            "instructions": instruction_texts(node.get("recipeInstructions")),
            "yieldText": recipe_yield,
            "totalTime": node.get("totalTime"),
            "imageUrl": image_url(node.get("image")),
            "sourceUrl": node.get("url") if isinstance(node.get("url"), str) else None,
            "cuisine": node.get("recipeCuisine"),
        }

    if not payload.get("sourceUrl"):
        payload["sourceUrl"] = canonical_link(soup) or meta_content(soup, "og:url")
    if not payload.get("imageUrl"):
        payload["imageUrl"] = meta_content(soup, "og:image")

    return payload
