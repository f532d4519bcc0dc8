"""Meal plan pipeline: discovery, tiered extraction with fallback, and costing."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from .cache import ExtractionCache
from .clients import AnswerEngineClient, ScrapingClient
from .config import RECIPE_CACHE_TTL, Settings, get_settings
from .costing import CostingMode, RecipeCost
from .discovery import DiscoveryService
from .extractors import (
    DirectAnswerExtractor,
    ExtractionError,
    Extractor,
    FieldExtractor,
    StructuredDataExtractor,
)
from .models import Ingredient, PlanRequest, Recipe
from .normalizer import DEFAULT_TITLE, normalize_recipe, normalize_url, title_from_url
from .pricing import EstimatedPricingProvider, PricingService

PlanConfidence = Literal["high", "medium", "low"]

PLACEHOLDER_INGREDIENTS = [
    "Main protein (chicken, beef, or fish)",
    "Vegetables (onions, tomatoes, peppers)",
    "Spices and seasonings",
    "Cooking oil",
    "Salt to taste",
]

PLACEHOLDER_INSTRUCTIONS = [
    "Prepare and clean all ingredients",
    "Heat oil in a large pot over medium heat",
    "Add aromatics and cook until fragrant",
    "Add main ingredients and cook thoroughly",
    "Season to taste and serve hot",
]

PLACEHOLDER_DESCRIPTION = "A traditional recipe with authentic flavors and cultural significance."
PLACEHOLDER_TIME_MINUTES = 45
PLACEHOLDER_SERVINGS = 4


def build_placeholder_recipe(url: str | None = None, cuisines: list[str] | None = None) -> Recipe:
    """
    Synthesize a generic recipe for a URL whose extraction failed.

    The title comes from the URL's last path segment; everything else is a
    fixed template. The result is tagged as a placeholder.
    """
    source_url = normalize_url(url) if url else None
    return Recipe(
        title=title_from_url(source_url) if source_url else DEFAULT_TITLE,
        description=PLACEHOLDER_DESCRIPTION,
        cuisines=list(cuisines or []),
        ingredients=[Ingredient(original=line, name=line) for line in PLACEHOLDER_INGREDIENTS],
        instructions=list(PLACEHOLDER_INSTRUCTIONS),
        servings=PLACEHOLDER_SERVINGS,
        total_time_minutes=PLACEHOLDER_TIME_MINUTES,
        source_url=source_url,
        extraction_method="placeholder",
    )


@dataclass
class Plan:
    """Recipes for a plan request, with optional costing."""

    recipes: list[Recipe]
    total_cost: float = 0.0
    confidence: PlanConfidence = "high"
    budget_utilization: float | None = None
    costs: list[RecipeCost] = field(default_factory=list)

    @property
    def placeholder_count(self) -> int:
        return sum(1 for recipe in self.recipes if recipe.is_placeholder)

    def to_dict(self) -> dict[str, Any]:
        """Convert plan to dictionary for serialization."""
        return {
            "recipes": [recipe.to_dict() for recipe in self.recipes],
            "total_cost": round(self.total_cost, 2),
            "confidence": self.confidence,
            "budget_utilization": (
                round(self.budget_utilization, 1) if self.budget_utilization is not None else None
            ),
            "costs": [cost.to_dict() for cost in self.costs],
        }


def plan_confidence(recipes: list[Recipe]) -> PlanConfidence:
    """High when every recipe was extracted, low when none were."""
    placeholders = sum(1 for recipe in recipes if recipe.is_placeholder)
    if placeholders == 0:
        return "high"
    if placeholders == len(recipes):
        return "low"
    return "medium"


def budget_utilization(total_cost: float, budget_limit: float | None) -> float | None:
    """Percentage of the budget the plan spends, or None without a budget."""
    if not budget_limit or budget_limit <= 0:
        return None
    return total_cost / budget_limit * 100


class RecipePipeline:
    """
    Turns a plan request into recipes.

    URLs from discovery are extracted in batches with at most ``max_concurrency``
    extractions in flight. Each URL tries the extractor tiers in order; a URL
    whose tiers all fail becomes a placeholder, so extraction never raises.
    """

    def __init__(
        self,
        discovery: DiscoveryService,
        extractors: list[Extractor],
        recipe_cache: ExtractionCache | None = None,
        pricing: PricingService | None = None,
        max_concurrency: int = 3,
        batch_pause: float = 0.5,
        costing_mode: CostingMode = "package",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger: logging.Logger | None = None,
    ):
        self.discovery = discovery
        self.extractors = extractors
        self.recipe_cache = recipe_cache
        self.pricing = pricing
        self.max_concurrency = max(1, max_concurrency)
        self.batch_pause = batch_pause
        self.costing_mode = costing_mode
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(self.max_concurrency)
        self._logger = logger or logging.getLogger(__name__)

    async def extract_recipe(self, url: str) -> Recipe:
        """
        Extract one URL through the tier chain.

        Returns:
            Normalized Recipe, or a placeholder if every tier failed
        """
        if self.recipe_cache is not None:
            cached = self.recipe_cache.get(url)
            if cached is not None:
                self._logger.debug(f"Recipe cache hit for {url}")
                return cached

        for extractor in self.extractors:
            try:
                result = await extractor.extract(url)
            except ExtractionError as e:
                self._logger.info(f"{extractor.method} extraction failed for {url}: {e}")
                continue

            recipe = normalize_recipe(result)
            self._logger.info(f"Extracted '{recipe.title}' from {url} via {extractor.method}")
            if self.recipe_cache is not None:
                self.recipe_cache.set(url, recipe)
            return recipe

        self._logger.warning(f"All extraction tiers failed for {url}, using placeholder")
        return build_placeholder_recipe(url)

    async def _extract_limited(self, url: str) -> Recipe:
        async with self._semaphore:
            return await self.extract_recipe(url)

    async def _batches(self, urls: list[str]) -> AsyncIterator[list[Recipe]]:
        for start in range(0, len(urls), self.max_concurrency):
            if start > 0 and self.batch_pause > 0:
                await self._sleep(self.batch_pause)
            batch = urls[start : start + self.max_concurrency]
            yield list(await asyncio.gather(*(self._extract_limited(url) for url in batch)))

    async def extract_recipes(self, urls: list[str]) -> list[Recipe]:
        """
        Extract several URLs with bounded concurrency.

        Returns:
            One recipe per URL, in the same order as ``urls``
        """
        recipes: list[Recipe] = []
        async for batch in self._batches(urls):
            recipes.extend(batch)
        return recipes

    async def run(self, request: PlanRequest) -> Plan:
        """
        Build a plan with exactly ``request.meal_count`` recipes.

        Candidates are extracted batch by batch until enough real recipes are
        found. Results keep discovery order: failed URLs fill spare slots with
        placeholders at their own position, and any slots still empty get generic
        placeholders at the end.

        Args:
            request: Plan constraints

        Returns:
            Plan with recipes, cost and confidence
        """
        wanted = max(0, request.meal_count)
        urls = await self.discovery.discover(request)

        processed: list[Recipe] = []
        if not urls:
            self._logger.warning("Discovery returned no URLs, building placeholder plan")
        else:
            extracted_count = 0
            async for batch in self._batches(urls):
                processed.extend(batch)
                extracted_count += sum(1 for recipe in batch if not recipe.is_placeholder)
                if extracted_count >= wanted:
                    break

        # Successes first, then failed-URL placeholders, each kept at its URL's slot
        successes = [i for i, recipe in enumerate(processed) if not recipe.is_placeholder]
        failures = [i for i, recipe in enumerate(processed) if recipe.is_placeholder]
        chosen = successes[:wanted]
        chosen += failures[: wanted - len(chosen)]
        recipes = [processed[i] for i in sorted(chosen)]
        while len(recipes) < wanted:
            recipes.append(build_placeholder_recipe(cuisines=request.cuisines))

        for recipe in recipes:
            if recipe.is_placeholder and not recipe.cuisines:
                recipe.cuisines = list(request.cuisines)

        costs: list[RecipeCost] = []
        if self.pricing is not None:
            for recipe in recipes:
                costs.append(
                    await self.pricing.price_recipe(
                        recipe,
                        household_size=request.household_size,
                        zip_code=request.zip_code,
                        mode=self.costing_mode,
                    )
                )

        total_cost = sum(cost.total_cost for cost in costs)
        plan = Plan(
            recipes=recipes,
            total_cost=total_cost,
            confidence=plan_confidence(recipes),
            budget_utilization=budget_utilization(total_cost, request.budget_limit),
            costs=costs,
        )
        self._logger.info(
            f"Plan ready: {len(recipes)} recipes, {plan.placeholder_count} placeholders, "
            f"confidence {plan.confidence}"
        )
        return plan


def build_default_pipeline(
    answer_client: AnswerEngineClient,
    scraping_client: ScrapingClient,
    settings: Settings | None = None,
    with_pricing: bool = True,
) -> RecipePipeline:
    """
    Wire the pipeline around open API clients.

    The primary tier is the direct-answer or field extractor depending on
    ``settings.primary_tier``; structured-data parsing is always the second tier.
    The caller owns the clients and closes them.
    """
    settings = settings or get_settings()

    primary: Extractor
    if settings.primary_tier == "direct-answer":
        primary = DirectAnswerExtractor(answer_client, cache=ExtractionCache(ttl=RECIPE_CACHE_TTL))
    else:
        primary = FieldExtractor(scraping_client)

    pricing = PricingService(EstimatedPricingProvider()) if with_pricing else None

    return RecipePipeline(
        discovery=DiscoveryService(answer_client),
        extractors=[primary, StructuredDataExtractor(scraping_client)],
        recipe_cache=ExtractionCache(ttl=RECIPE_CACHE_TTL),
        pricing=pricing,
        max_concurrency=settings.max_concurrency,
        batch_pause=settings.batch_pause,
        costing_mode=settings.costing_mode,
    )
