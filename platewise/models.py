"""Canonical recipe and pricing data models."""

from dataclasses import dataclass, field
from typing import Any, Literal

from .units import format_amount

ExtractionMethod = Literal["direct-answer", "ai-fields", "json-ld", "placeholder"]
Confidence = Literal["high", "medium", "low", "estimated"]

# Extractor payload field aliases, in priority order
TITLE_KEYS = ("title", "name", "headline")
DESCRIPTION_KEYS = ("description", "summary")
INGREDIENT_KEYS = ("ingredients", "recipeIngredient", "ingredientList")
INSTRUCTION_KEYS = ("instructions", "recipeInstructions", "steps", "directions")
SERVINGS_KEYS = ("servings", "yieldText", "recipeYield", "yield")
TIME_KEYS = ("totalTimeMinutes", "totalTime", "total_time", "time")
IMAGE_KEYS = ("imageUrl", "image", "image_url", "ogImage")
SOURCE_KEYS = ("sourceUrl", "canonicalUrl", "url", "source_url")
CUISINE_KEYS = ("cuisine", "cuisines", "recipeCuisine")


@dataclass
class PricingMatch:
    """A vendor product matched to an ingredient."""

    product_name: str
    brand: str
    price: float  # shelf price for one package
    package_size: str
    confidence: Confidence
    sale_price: float | None = None
    on_sale: bool = False
    alternatives: list["PricingMatch"] = field(default_factory=list)

    @property
    def effective_price(self) -> float:
        """Price actually paid: sale price when on sale, else the shelf price."""
        if self.on_sale and self.sale_price and self.sale_price > 0:
            return self.sale_price
        return self.price

    @property
    def is_estimated(self) -> bool:
        return self.confidence == "estimated"

    def to_dict(self) -> dict[str, Any]:
        """Convert match to dictionary for serialization."""
        return {
            "product_name": self.product_name,
            "brand": self.brand,
            "price": self.price,
            "package_size": self.package_size,
            "confidence": self.confidence,
            "sale_price": self.sale_price,
            "on_sale": self.on_sale,
            "alternatives": [alt.to_dict() for alt in self.alternatives],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PricingMatch":
        """Create match from dictionary."""
        return cls(
            product_name=data["product_name"],
            brand=data.get("brand", ""),
            price=data["price"],
            package_size=data.get("package_size", ""),
            confidence=data.get("confidence", "low"),
            sale_price=data.get("sale_price"),
            on_sale=data.get("on_sale", False),
            alternatives=[cls.from_dict(alt) for alt in data.get("alternatives", [])],
        )


@dataclass
class Ingredient:
    """Represents a parsed ingredient line."""

    original: str  # Display text as extracted
    name: str
    amount: float = 0.0
    unit: str = ""
    notes: str | None = None  # e.g., "finely chopped"
    pricing: PricingMatch | None = None

    def __str__(self) -> str:
        parts = []
        if self.amount:
            parts.append(format_amount(self.amount))
        if self.unit:
            parts.append(self.unit)
        parts.append(self.name)
        if self.notes:
            parts.append(f"({self.notes})")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "original": self.original,
            "name": self.name,
            "amount": self.amount,
            "unit": self.unit,
            "notes": self.notes,
            "pricing": self.pricing.to_dict() if self.pricing else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Ingredient":
        pricing = data.get("pricing")
        return cls(
            original=data["original"],
            name=data["name"],
            amount=data.get("amount", 0.0),
            unit=data.get("unit", ""),
            notes=data.get("notes"),
            pricing=PricingMatch.from_dict(pricing) if pricing else None,
        )


@dataclass
class Recipe:
    """A recipe in canonical form, regardless of how it was extracted."""

    title: str
    ingredients: list[Ingredient] = field(default_factory=list)
    instructions: list[str] = field(default_factory=list)
    description: str = ""
    cuisines: list[str] = field(default_factory=list)
    servings: int = 4
    total_time_minutes: int = 30
    image_url: str | None = None
    source_url: str | None = None
    extraction_method: ExtractionMethod = "placeholder"

    @property
    def is_placeholder(self) -> bool:
        return self.extraction_method == "placeholder"

    def to_dict(self) -> dict[str, Any]:
        """Convert recipe to dictionary for serialization."""
        return {
            "title": self.title,
            "description": self.description,
            "cuisines": list(self.cuisines),
            "servings": self.servings,
            "total_time_minutes": self.total_time_minutes,
            "image_url": self.image_url,
            "source_url": self.source_url,
            "extraction_method": self.extraction_method,
            "ingredients": [ing.to_dict() for ing in self.ingredients],
            "instructions": list(self.instructions),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Recipe":
        """Create recipe from dictionary."""
        return cls(
            title=data["title"],
            description=data.get("description", ""),
            cuisines=list(data.get("cuisines", [])),
            servings=data.get("servings", 4),
            total_time_minutes=data.get("total_time_minutes", 30),
            image_url=data.get("image_url"),
            source_url=data.get("source_url"),
            extraction_method=data.get("extraction_method", "placeholder"),
            ingredients=[Ingredient.from_dict(ing) for ing in data.get("ingredients", [])],
            instructions=list(data.get("instructions", [])),
        )


@dataclass
class PlanRequest:
    """Constraints for generating a meal plan."""

    cuisines: list[str] = field(default_factory=list)
    dietary_restrictions: list[str] = field(default_factory=list)
    exclude_ingredients: list[str] = field(default_factory=list)
    include_ingredients: list[str] = field(default_factory=list)
    meal_count: int = 3
    household_size: int = 4
    max_time_minutes: int | None = None
    zip_code: str | None = None
    budget_limit: float | None = None
