"""PlateWise - recipe acquisition and ingredient costing for meal planning."""

__version__ = "1.0.0"

from .cache import ExtractionCache
from .costing import CostBreakdown, RecipeCost, compute_ingredient_cost
from .models import Ingredient, PlanRequest, PricingMatch, Recipe
from .normalizer import normalize_payload, normalize_recipe
from .pipeline import Plan, RecipePipeline, build_placeholder_recipe
from .pricing import PricingService
from .retry import BackoffExecutor, RetryPolicy
from .units import parse_package_size, parse_quantity, to_base_unit

__all__ = [
    "Recipe",
    "Ingredient",
    "PricingMatch",
    "PlanRequest",
    "Plan",
    "RecipePipeline",
    "build_placeholder_recipe",
    "normalize_payload",
    "normalize_recipe",
    "ExtractionCache",
    "BackoffExecutor",
    "RetryPolicy",
    "PricingService",
    "CostBreakdown",
    "RecipeCost",
    "compute_ingredient_cost",
    "parse_quantity",
    "to_base_unit",
    "parse_package_size",
]
