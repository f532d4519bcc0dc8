"""Ingredient and recipe cost calculation."""

import math
from dataclasses import dataclass, field
from typing import Any, Literal

from .models import Ingredient, PricingMatch
from .units import (
    BaseQuantity,
    BaseUnit,
    format_amount,
    parse_package_size,
    parse_quantity,
    to_base_unit,
)

CostingMode = Literal["package", "proportional"]
IngredientStatus = Literal["normal", "already-have", "specialty-store"]

# Substituted when a vendor size cannot be used (about 1 lb / 1 pint)
DEFAULT_PACKAGE_SIZES: dict[BaseUnit, float] = {"g": 454.0, "ml": 473.0, "each": 1.0}

# Tunable heuristic: more than this many packages for a small requirement
# almost always means the package size was misparsed.
MAX_PLAUSIBLE_PACKAGES = 20
SMALL_REQUIREMENT_LIMIT = 2000.0

# Cheaper alternative must undercut the chosen price by at least 10%
CHEAPER_ALTERNATIVE_RATIO = 0.9

# Float noise guard for ceil() on exact multiples
_EPSILON = 1e-9

_NOT_FREE_WATERS = ("coconut water", "rose water", "orange blossom")


@dataclass
class CostBreakdown:
    """Explainable cost of buying one ingredient."""

    required_amount: float
    required_unit: BaseUnit
    package_size: float
    package_unit: BaseUnit
    package_count: int
    package_price: float
    unit_price: float  # price per base unit of the package
    total_cost: float
    leftover: float
    adjusted: bool
    mode: CostingMode

    def explain(self) -> str:
        """
        Format a human-readable explanation of the calculation.

        Returns:
            Explanation string (e.g., "Need 1000 g, package is 454 g → 3 packages")
        """
        need = f"{format_amount(round(self.required_amount, 2))} {self.required_unit}"
        package = f"{format_amount(round(self.package_size, 2))} {self.package_unit}"
        estimated = " (estimated size)" if self.adjusted else ""

        if self.mode == "proportional":
            return f"Need {need} of {package} package{estimated} → ${self.total_cost:.2f}"

        noun = "package" if self.package_count == 1 else "packages"
        return f"Need {need}, package is {package}{estimated} → {self.package_count} {noun}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "required_amount": self.required_amount,
            "required_unit": self.required_unit,
            "package_size": self.package_size,
            "package_unit": self.package_unit,
            "package_count": self.package_count,
            "package_price": self.package_price,
            "unit_price": self.unit_price,
            "total_cost": self.total_cost,
            "leftover": self.leftover,
            "adjusted": self.adjusted,
            "mode": self.mode,
        }


def _default_package(base: BaseUnit) -> BaseQuantity:
    return BaseQuantity(value=DEFAULT_PACKAGE_SIZES[base], base=base)


def compute_ingredient_cost(
    amount: str | float | None,
    unit: str | None,
    price: float | None,
    size: str | None,
    mode: CostingMode = "package",
) -> CostBreakdown | None:
    """
    Compute the cost of an ingredient against a vendor package.

    Args:
        amount: Ingredient amount as text ("1 1/2") or number
        unit: Ingredient unit token ("cups", "g", ...)
        price: Price of one package
        size: Vendor package size text ("14 oz", "6 ct", ...)
        mode: "package" buys whole packages, "proportional" pays for what is used

    Returns:
        CostBreakdown, or None when the price is missing or not positive
    """
    if price is None or not math.isfinite(price) or price <= 0:
        return None

    required = to_base_unit(parse_quantity(amount), unit)
    package = parse_package_size(size)
    adjusted = False

    if package is None or package.value <= 0:
        package = _default_package(required.base)
        adjusted = True
    elif package.base == "each" and required.base != "each":
        # A count-denominated package cannot satisfy a weight/volume requirement
        package = _default_package(required.base)
        adjusted = True

    unit_price = price / package.value

    if mode == "proportional":
        return CostBreakdown(
            required_amount=required.value,
            required_unit=required.base,
            package_size=package.value,
            package_unit=package.base,
            package_count=1,
            package_price=price,
            unit_price=unit_price,
            total_cost=required.value * unit_price,
            leftover=max(0.0, package.value - required.value),
            adjusted=adjusted,
            mode=mode,
        )

    package_count = max(1, math.ceil(required.value / package.value - _EPSILON))
    if (
        required.value > 0
        and package_count > MAX_PLAUSIBLE_PACKAGES
        and required.value < SMALL_REQUIREMENT_LIMIT
    ):
        package_count = 1
        adjusted = True

    return CostBreakdown(
        required_amount=required.value,
        required_unit=required.base,
        package_size=package.value,
        package_unit=package.base,
        package_count=package_count,
        package_price=price,
        unit_price=unit_price,
        total_cost=package_count * price,
        leftover=max(0.0, package_count * package.value - required.value),
        adjusted=adjusted,
        mode=mode,
    )


def is_free_water(name: str) -> bool:
    """Check if an ingredient is tap water or ice, which costs nothing."""
    lowered = name.lower().strip()
    if any(term in lowered for term in _NOT_FREE_WATERS):
        return False
    return lowered in ("water", "ice", "ice water") or " water" in lowered


def calculate_scale_factor(servings: int | None, household_size: int | None) -> float:
    """
    Calculate the factor that scales a recipe to a household.

    Args:
        servings: Servings the recipe yields
        household_size: Number of people to cook for

    Returns:
        household_size / servings, or 1.0 if either is unknown
    """
    if not servings or not household_size or servings <= 0 or household_size <= 0:
        return 1.0
    return household_size / servings


@dataclass
class CostLine:
    """An ingredient with its resolved pricing and cost."""

    ingredient: Ingredient
    breakdown: CostBreakdown | None
    match: PricingMatch | None = None
    status: IngredientStatus = "normal"
    free: bool = False

    @property
    def total(self) -> float:
        if self.free or self.breakdown is None:
            return 0.0
        return self.breakdown.total_cost

    @property
    def estimated(self) -> bool:
        if self.free:
            return False
        if self.breakdown is None or self.match is None:
            return True
        return self.breakdown.adjusted or self.match.is_estimated

    def to_dict(self) -> dict[str, Any]:
        return {
            "ingredient": self.ingredient.name,
            "status": self.status,
            "free": self.free,
            "total": round(self.total, 2),
            "estimated": self.estimated,
            "explanation": self.breakdown.explain() if self.breakdown else None,
            "breakdown": self.breakdown.to_dict() if self.breakdown else None,
            "match": self.match.to_dict() if self.match else None,
        }


@dataclass
class RecipeCost:
    """Cost summary for one recipe."""

    recipe_title: str
    servings: int
    lines: list[CostLine] = field(default_factory=list)
    total_cost: float = 0.0
    excluded_from_total: float = 0.0
    specialty_store_cost: float = 0.0
    savings_opportunities: list[str] = field(default_factory=list)

    @property
    def cost_per_serving(self) -> float:
        if self.servings <= 0:
            return self.total_cost
        return self.total_cost / self.servings

    @property
    def has_estimates(self) -> bool:
        return any(line.estimated for line in self.lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "recipe_title": self.recipe_title,
            "servings": self.servings,
            "total_cost": round(self.total_cost, 2),
            "cost_per_serving": round(self.cost_per_serving, 2),
            "excluded_from_total": round(self.excluded_from_total, 2),
            "specialty_store_cost": round(self.specialty_store_cost, 2),
            "has_estimates": self.has_estimates,
            "savings_opportunities": list(self.savings_opportunities),
            "lines": [line.to_dict() for line in self.lines],
        }


def find_savings_opportunities(lines: list[CostLine]) -> list[str]:
    """
    List sale items and markedly cheaper alternatives.

    Args:
        lines: Costed ingredient lines

    Returns:
        Human-readable savings hints
    """
    opportunities = []

    for line in lines:
        match = line.match
        if match is None or line.free or line.status == "already-have":
            continue

        if match.on_sale and match.sale_price and 0 < match.sale_price < match.price:
            savings = match.price - match.sale_price
            opportunities.append(f"{line.ingredient.name} is on sale - save ${savings:.2f}")

        chosen = match.effective_price
        cheaper = [
            alt
            for alt in match.alternatives
            if 0 < alt.effective_price < chosen * CHEAPER_ALTERNATIVE_RATIO
        ]
        if cheaper:
            best = min(cheaper, key=lambda alt: alt.effective_price)
            savings = chosen - best.effective_price
            opportunities.append(
                f"Try {best.product_name} instead of {match.product_name} "
                f"for {line.ingredient.name} - save ${savings:.2f}"
            )

    return opportunities


def summarize_recipe_cost(recipe_title: str, servings: int, lines: list[CostLine]) -> RecipeCost:
    """
    Aggregate ingredient lines into a recipe total.

    Lines marked "already-have" are tallied in excluded_from_total and left out of
    the total. "specialty-store" lines stay in the total and are also reported in
    specialty_store_cost.

    Args:
        recipe_title: Title of the costed recipe
        servings: Servings the cost covers
        lines: Costed ingredient lines

    Returns:
        RecipeCost summary
    """
    total = 0.0
    excluded = 0.0
    specialty = 0.0

    for line in lines:
        if line.status == "already-have":
            excluded += line.total
            continue
        total += line.total
        if line.status == "specialty-store":
            specialty += line.total

    return RecipeCost(
        recipe_title=recipe_title,
        servings=servings,
        lines=lines,
        total_cost=total,
        excluded_from_total=excluded,
        specialty_store_cost=specialty,
        savings_opportunities=find_savings_opportunities(lines),
    )
