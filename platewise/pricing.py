"""Ingredient pricing: provider contract, match selection and batched lookups."""

import asyncio
import logging
import math
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

import httpx
from rapidfuzz import fuzz

from .cache import ExtractionCache
from .config import PRICING_BATCH_DELAY, PRICING_BATCH_SIZE, PRICING_CACHE_TTL
from .costing import (
    CostingMode,
    CostLine,
    IngredientStatus,
    RecipeCost,
    calculate_scale_factor,
    compute_ingredient_cost,
    is_free_water,
    summarize_recipe_cost,
)
from .models import Confidence, PricingMatch, Recipe


class PricingError(Exception):
    """Exception raised by pricing providers."""

    pass


@dataclass
class ProductCandidate:
    """A product returned by a pricing provider search."""

    name: str
    price: float | None
    size: str = ""
    brand: str = ""
    on_sale: bool = False
    sale_price: float | None = None
    in_stock: bool = True
    confidence: Confidence | None = None


class PricingProvider(Protocol):
    """Grocery catalog search used to price ingredients."""

    async def search(self, query: str, zip_code: str | None = None) -> list[ProductCandidate]: ...


CONFIDENCE_RANK: dict[str, int] = {"high": 3, "medium": 2, "low": 1, "estimated": 0}
MAX_ALTERNATIVES = 3

# Specialty ingredient names -> what a mainstream grocery catalog stocks
SEARCH_SUBSTITUTIONS: dict[str, str] = {
    "scotch bonnet pepper": "hot pepper",
    "plum tomatoes": "roma tomatoes",
    "long-grain rice": "white rice",
    "sunflower oil": "vegetable oil",
    "vegetable stock": "vegetable broth",
}

# Keyword -> typical package price (USD), checked in order
ESTIMATED_PRICES: dict[str, float] = {
    "meat": 8.0,
    "chicken": 6.0,
    "beef": 10.0,
    "fish": 9.0,
    "vegetable": 2.0,
    "tomato": 3.0,
    "onion": 1.5,
    "pepper": 2.5,
    "spice": 1.0,
    "oil": 3.0,
    "rice": 2.0,
    "salt": 0.5,
}
DEFAULT_ESTIMATED_PRICE = 3.0

_LEADING_QUANTITY = re.compile(
    r"^[\d\s./¼½¾⅓⅔⅛-]+\s*"
    r"(?:cups?|tablespoons?|tbsp|teaspoons?|tsp|pounds?|lbs?|ounces?|oz|grams?|g|kg|ml|"
    r"liters?|l|cloves?|pieces?|slices?|cans?|packages?)?\.?\s+",
    re.IGNORECASE,
)


def prepare_search_query(ingredient_name: str) -> str:
    """
    Turn an ingredient line or name into a catalog search query.

    Strips leading quantities and units, parenthetical notes and anything after a
    comma, then maps specialty names to common equivalents.

    Example:
        "2 cups plum tomatoes (canned), drained" -> "roma tomatoes"
    """
    query = _LEADING_QUANTITY.sub("", ingredient_name.strip())
    query = re.sub(r"\([^)]*\)", "", query)
    query = query.split(",", 1)[0]
    query = re.sub(r"\s+", " ", query).strip().lower()

    for specialty, common in SEARCH_SUBSTITUTIONS.items():
        if specialty in query:
            query = query.replace(specialty, common)

    return query or ingredient_name.strip().lower()


def similarity(query: str, product_name: str) -> float:
    """
    Fuzzy similarity between a query and a product name, from 0 to 1.

    Token set matching handles word order; partial matching handles substrings.
    """
    query_lower = query.lower()
    name_lower = product_name.lower()

    token_score = fuzz.token_set_ratio(query_lower, name_lower)
    partial_score = fuzz.partial_ratio(query_lower, name_lower)

    return (token_score * 0.6 + partial_score * 0.4) / 100


def rate_confidence(query: str, candidate: ProductCandidate) -> Confidence:
    """Rate a candidate: high if similar and in stock, medium if loosely similar."""
    score = similarity(query, candidate.name)
    if score > 0.6 and candidate.in_stock:
        return "high"
    if score > 0.3:
        return "medium"
    return "low"


def _has_price(candidate: ProductCandidate) -> bool:
    price = candidate.price
    return price is not None and math.isfinite(price) and price > 0


def _to_match(
    candidate: ProductCandidate,
    confidence: Confidence,
    alternatives: list[PricingMatch] | None = None,
) -> PricingMatch:
    assert candidate.price is not None
    return PricingMatch(
        product_name=candidate.name,
        brand=candidate.brand,
        price=candidate.price,
        package_size=candidate.size,
        confidence=confidence,
        sale_price=candidate.sale_price,
        on_sale=candidate.on_sale,
        alternatives=alternatives or [],
    )


def select_best_match(query: str, candidates: list[ProductCandidate]) -> PricingMatch | None:
    """
    Pick the best priced candidate for a query.

    The first in-stock candidate with the highest confidence wins; up to three
    of the remaining candidates are kept as alternatives.

    Args:
        query: Search query the candidates were returned for
        candidates: Provider results in provider order

    Returns:
        PricingMatch, or None if no candidate has a usable price
    """
    rated = [(c, c.confidence or rate_confidence(query, c)) for c in candidates if _has_price(c)]
    if not rated:
        return None

    available = [item for item in rated if item[0].in_stock] or rated
    best, best_confidence = max(available, key=lambda item: CONFIDENCE_RANK[item[1]])

    alternatives = [
        _to_match(candidate, confidence)
        for candidate, confidence in rated
        if candidate is not best
    ][:MAX_ALTERNATIVES]

    return _to_match(best, best_confidence, alternatives)


def estimate_price(ingredient_name: str) -> PricingMatch:
    """Best-effort price from a keyword table, used when no catalog price exists."""
    name = ingredient_name.lower()
    price = next(
        (value for keyword, value in ESTIMATED_PRICES.items() if keyword in name),
        DEFAULT_ESTIMATED_PRICE,
    )
    return PricingMatch(
        product_name=ingredient_name,
        brand="Generic",
        price=price,
        package_size="standard",
        confidence="estimated",
    )


class EstimatedPricingProvider:
    """Offline provider that prices everything from the keyword table."""

    async def search(self, query: str, zip_code: str | None = None) -> list[ProductCandidate]:
        estimate = estimate_price(query)
        return [
            ProductCandidate(
                name=estimate.product_name,
                price=estimate.price,
                size=estimate.package_size,
                brand=estimate.brand,
                confidence="estimated",
            )
        ]


class PricingService:
    """Prices recipe ingredients through a provider, with caching and batching."""

    def __init__(
        self,
        provider: PricingProvider,
        cache: ExtractionCache | None = None,
        mode: CostingMode = "package",
        batch_size: int = PRICING_BATCH_SIZE,
        batch_delay: float = PRICING_BATCH_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger: logging.Logger | None = None,
    ):
        self.provider = provider
        self.cache = cache if cache is not None else ExtractionCache(ttl=PRICING_CACHE_TTL)
        self.mode = mode
        self.batch_size = max(1, batch_size)
        self.batch_delay = batch_delay
        self._sleep = sleep
        self._logger = logger or logging.getLogger(__name__)

    async def lookup(self, ingredient_name: str, zip_code: str | None = None) -> PricingMatch:
        """
        Price one ingredient, falling back to an estimate.

        Args:
            ingredient_name: Ingredient name or line
            zip_code: Optional postal code for store-specific prices

        Returns:
            PricingMatch (confidence "estimated" when the provider had nothing usable)
        """
        query = prepare_search_query(ingredient_name)
        key = f"{query}|{zip_code or ''}"

        cached = self.cache.get(key)
        if cached is not None:
            self._logger.debug(f"Pricing cache hit for {query}")
            return cached

        try:
            candidates = await self.provider.search(query, zip_code)
        except (PricingError, httpx.HTTPError, asyncio.TimeoutError) as e:
            self._logger.warning(f"Pricing lookup failed for {query}: {e}")
            return estimate_price(ingredient_name)

        match = select_best_match(query, candidates)
        if match is None:
            self._logger.info(f"No priced product for {query}, using estimate")
            return estimate_price(ingredient_name)

        if not match.is_estimated:
            self.cache.set(key, match)
        return match

    async def lookup_many(
        self, ingredient_names: list[str], zip_code: str | None = None
    ) -> dict[str, PricingMatch]:
        """
        Price several ingredients in small batches with a pause between batches.

        Returns:
            Mapping of ingredient name to its match
        """
        unique = list(dict.fromkeys(ingredient_names))
        results: dict[str, PricingMatch] = {}

        for start in range(0, len(unique), self.batch_size):
            if start > 0 and self.batch_delay > 0:
                await self._sleep(self.batch_delay)
            batch = unique[start : start + self.batch_size]
            matches = await asyncio.gather(*(self.lookup(name, zip_code) for name in batch))
            results.update(zip(batch, matches))

        return results

    async def price_recipe(
        self,
        recipe: Recipe,
        household_size: int | None = None,
        zip_code: str | None = None,
        statuses: dict[str, IngredientStatus] | None = None,
        mode: CostingMode | None = None,
    ) -> RecipeCost:
        """
        Cost every ingredient of a recipe.

        Args:
            recipe: Recipe to cost
            household_size: Scale amounts from the recipe's servings to this many people
            zip_code: Optional postal code for store-specific prices
            statuses: Ingredient name -> "already-have" / "specialty-store"
            mode: Costing mode, defaults to the service's mode

        Returns:
            RecipeCost with one line per ingredient
        """
        statuses = statuses or {}
        mode = mode or self.mode
        factor = calculate_scale_factor(recipe.servings, household_size)

        priced_names = [ing.name for ing in recipe.ingredients if not is_free_water(ing.name)]
        matches = await self.lookup_many(priced_names, zip_code)

        lines: list[CostLine] = []
        for ingredient in recipe.ingredients:
            status = statuses.get(ingredient.name, "normal")

            if is_free_water(ingredient.name):
                lines.append(
                    CostLine(ingredient=ingredient, breakdown=None, status=status, free=True)
                )
                continue

            match = matches[ingredient.name]
            amount = ingredient.amount * factor
            breakdown = compute_ingredient_cost(
                amount, ingredient.unit, match.effective_price, match.package_size, mode
            )
            if breakdown is None:
                self._logger.info(f"No usable price for {ingredient.name}, leaving it uncosted")
                match = estimate_price(ingredient.name)

            ingredient.pricing = match
            lines.append(
                CostLine(ingredient=ingredient, breakdown=breakdown, match=match, status=status)
            )

        servings = household_size or recipe.servings
        return summarize_recipe_cost(recipe.title, servings, lines)
