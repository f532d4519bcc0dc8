"""Recipe extraction strategies and the result types they produce.

Extractors either return a result carrying a loosely-typed payload or raise
ExtractionError. Choosing the next tier, and synthesizing a placeholder when
every tier fails, is left to the pipeline.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, ClassVar, Protocol

from .cache import ExtractionCache
from .clients import AnswerEngineClient, AnswerEngineError, ScrapingAPIError, ScrapingClient
from .models import INGREDIENT_KEYS, INSTRUCTION_KEYS, ExtractionMethod
from .structured_data import parse_structured_recipe


class ExtractionError(Exception):
    """Exception raised when an extractor cannot produce a usable payload."""

    pass


@dataclass
class FieldExtractionResult:
    """Payload from the AI field-extraction service."""

    url: str
    payload: dict[str, Any]
    method: ClassVar[ExtractionMethod] = "ai-fields"


@dataclass
class StructuredDataResult:
    """Payload parsed from JSON-LD / meta tags in the rendered HTML."""

    url: str
    payload: dict[str, Any]
    method: ClassVar[ExtractionMethod] = "json-ld"


@dataclass
class DirectAnswerResult:
    """Recipe JSON returned directly by the answer engine."""

    url: str
    payload: dict[str, Any]
    method: ClassVar[ExtractionMethod] = "direct-answer"


ExtractionResult = FieldExtractionResult | StructuredDataResult | DirectAnswerResult


class Extractor(Protocol):
    """Anything that can turn a URL into an extraction result."""

    method: ExtractionMethod

    async def extract(self, url: str) -> ExtractionResult: ...


def _has_items(value: Any) -> bool:
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, list):
        return any(_has_items(item) or isinstance(item, dict) for item in value)
    return False


def has_recipe_content(payload: dict[str, Any]) -> bool:
    """Check that a payload has some ingredients or instructions under any field alias."""
    return any(_has_items(payload.get(key)) for key in INGREDIENT_KEYS + INSTRUCTION_KEYS)


class FieldExtractor:
    """Primary tier: AI-assisted field extraction from a rendered page."""

    method: ExtractionMethod = "ai-fields"

    def __init__(self, client: ScrapingClient):
        self.client = client

    async def extract(self, url: str) -> FieldExtractionResult:
        try:
            payload = await self.client.extract_fields(url)
        except ScrapingAPIError as e:
            raise ExtractionError(str(e)) from e

        if not has_recipe_content(payload):
            raise ExtractionError(f"Field extraction found no ingredients or instructions at {url}")

        return FieldExtractionResult(url=url, payload=payload)


class StructuredDataExtractor:
    """Fallback tier: parse JSON-LD Recipe markup from the rendered HTML."""

    method: ExtractionMethod = "json-ld"

    def __init__(self, client: ScrapingClient):
        self.client = client

    async def extract(self, url: str) -> StructuredDataResult:
        try:
            html = await self.client.fetch_html(url)
        except ScrapingAPIError as e:
            raise ExtractionError(str(e)) from e

        payload = parse_structured_recipe(html)
        if not has_recipe_content(payload):
            raise ExtractionError(f"No structured recipe data found at {url}")

        return StructuredDataResult(url=url, payload=payload)


EXTRACTION_SYSTEM_PROMPT = (
    "You are a recipe extraction expert. Extract complete recipe data from URLs "
    "and return only valid JSON. Be thorough and accurate."
)

EXTRACTION_PROMPT_TEMPLATE = """Visit this recipe page and extract the recipe: {url}

Return ONLY a JSON object with exactly these keys:
{{
  "title": "Recipe Title",
  "ingredients": ["1 cup flour", "2 eggs", "1 tsp salt"],
  "instructions": ["Step 1 text", "Step 2 text"],
  "servings": 4,
  "totalTimeMinutes": 30,
  "description": "Brief description of the dish",
  "imageUrl": "https://example.com/image.jpg"
}}

Requirements:
- Include every ingredient with its amount and unit
- Include every cooking step in order
- Use null for missing information
- No markdown and no text outside the JSON object
"""


def build_extraction_messages(url: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
        {"role": "user", "content": EXTRACTION_PROMPT_TEMPLATE.format(url=url)},
    ]


def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` markdown fence."""
    text = text.strip()
    text = re.sub(r"^```(?:json)?\s*", "", text)
    text = re.sub(r"\s*```$", "", text)
    return text.strip()


def parse_json_answer(text: str) -> dict[str, Any]:
    """
    Decode the JSON object in an answer engine reply.

    Raises:
        ExtractionError: If no JSON object can be decoded
    """
    cleaned = strip_code_fences(text)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        # Some replies wrap the object in prose; try the outermost braces
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise ExtractionError("Answer did not contain a JSON object") from None
        try:
            data = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError as e:
            raise ExtractionError(f"Answer JSON could not be decoded: {e}") from e

    if not isinstance(data, dict):
        raise ExtractionError("Answer JSON was not an object")
    return data


class DirectAnswerExtractor:
    """Alternate primary tier: ask the answer engine to read the page and return JSON.

    Successful results are memoized by URL, so repeat runs cost no network calls.
    """

    method: ExtractionMethod = "direct-answer"

    def __init__(
        self,
        client: AnswerEngineClient,
        cache: ExtractionCache | None = None,
        logger: logging.Logger | None = None,
    ):
        self.client = client
        self.cache = cache
        self._logger = logger or logging.getLogger(__name__)

    async def extract(self, url: str) -> DirectAnswerResult:
        if self.cache is not None:
            cached = self.cache.get(url)
            if isinstance(cached, DirectAnswerResult):
                self._logger.debug(f"Direct-answer cache hit for {url}")
                return cached

        try:
            response = await self.client.complete(
                build_extraction_messages(url), max_tokens=2000, temperature=0.1
            )
        except AnswerEngineError as e:
            raise ExtractionError(str(e)) from e

        payload = parse_json_answer(response.content)
        if not has_recipe_content(payload):
            raise ExtractionError(f"Answer engine returned an empty recipe for {url}")

        result = DirectAnswerResult(url=url, payload=payload)
        if self.cache is not None:
            self.cache.set(url, result)
        return result
