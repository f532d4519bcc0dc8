"""CLI entry point for PlateWise."""

import asyncio
import json
import logging

import click

from . import __version__
from .clients import AnswerEngineClient, ScrapingClient
from .config import APP_NAME, get_settings
from .costing import RecipeCost, compute_ingredient_cost
from .models import PlanRequest, Recipe
from .pipeline import Plan, build_default_pipeline
from .units import format_amount, parse_quantity, to_base_unit


def display_recipe(recipe: Recipe) -> None:
    """Display a normalized recipe."""
    click.echo()
    click.echo("=" * 60)
    click.echo(f"RECIPE: {recipe.title}")
    click.echo("=" * 60)

    if recipe.source_url:
        click.echo(f"Source: {recipe.source_url}")
    click.echo(f"Servings: {recipe.servings} | Time: {recipe.total_time_minutes} min")
    click.echo(f"Extracted via: {recipe.extraction_method}")
    if recipe.is_placeholder:
        click.echo("⚠️  Placeholder recipe - extraction failed for this page")

    click.echo("\nIngredients:")
    for i, ing in enumerate(recipe.ingredients, 1):
        click.echo(f"  {i}. {ing.original}")

    click.echo("\nInstructions:")
    for i, step in enumerate(recipe.instructions, 1):
        click.echo(f"  {i}. {step}")

    click.echo()


def display_cost(cost: RecipeCost) -> None:
    """Display a recipe cost breakdown."""
    click.echo(f"Cost for {cost.recipe_title} ({cost.servings} servings):")

    for line in cost.lines:
        name = line.ingredient.name
        if line.free:
            click.echo(f"  {name}: free")
            continue
        marker = " *" if line.estimated else ""
        click.echo(f"  {name}: ${line.total:.2f}{marker}")
        if line.breakdown:
            click.echo(f"    {line.breakdown.explain()}")

    click.echo("-" * 60)
    click.echo(f"Total: ${cost.total_cost:.2f} (${cost.cost_per_serving:.2f} per serving)")
    if cost.excluded_from_total:
        click.echo(f"Already have: ${cost.excluded_from_total:.2f} (not in total)")
    if cost.specialty_store_cost:
        click.echo(f"Specialty store items: ${cost.specialty_store_cost:.2f}")
    if cost.has_estimates:
        click.echo("* estimated price or package size")
    for hint in cost.savings_opportunities:
        click.echo(f"  💡 {hint}")
    click.echo()


def display_plan(plan: Plan) -> None:
    """Display a meal plan with its costs."""
    for recipe in plan.recipes:
        display_recipe(recipe)

    for cost in plan.costs:
        display_cost(cost)

    click.echo("=" * 60)
    click.echo(f"Recipes: {len(plan.recipes)} | Placeholders: {plan.placeholder_count}")
    click.echo(f"Confidence: {plan.confidence}")
    if plan.costs:
        click.echo(f"Plan total: ${plan.total_cost:.2f}")
    if plan.budget_utilization is not None:
        click.echo(f"Budget used: {plan.budget_utilization:.1f}%")
    click.echo("=" * 60)


# ============================================================================
# Main CLI Group
# ============================================================================


@click.group()
@click.version_option(version=__version__, prog_name=APP_NAME)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def cli(verbose: bool):
    """PlateWise meal planning CLI.

    Discover recipes, extract them from recipe pages, and estimate what the
    ingredients cost.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ============================================================================
# Pipeline Commands
# ============================================================================


async def _run_plan(request: PlanRequest, price: bool, mode: str | None = None) -> Plan:
    settings = get_settings()
    if mode:
        settings.costing_mode = mode  # type: ignore[assignment]
    async with AnswerEngineClient() as answer_client, ScrapingClient() as scraping_client:
        pipeline = build_default_pipeline(
            answer_client, scraping_client, settings, with_pricing=price
        )
        return await pipeline.run(request)


async def _run_extract(urls: list[str]) -> list[Recipe]:
    settings = get_settings()
    async with AnswerEngineClient() as answer_client, ScrapingClient() as scraping_client:
        pipeline = build_default_pipeline(
            answer_client, scraping_client, settings, with_pricing=False
        )
        return await pipeline.extract_recipes(urls)


@cli.command()
@click.option("--cuisine", "-c", "cuisines", multiple=True, help="Cuisine to search for")
@click.option("--diet", "-d", "diets", multiple=True, help="Dietary restriction")
@click.option("--meals", "-n", default=3, type=click.IntRange(min=1), help="Number of recipes")
@click.option("--household", "-H", default=4, type=click.IntRange(min=1), help="People to feed")
@click.option("--max-time", type=int, help="Maximum total cooking time in minutes")
@click.option("--budget", "-b", type=float, help="Budget limit for the whole plan")
@click.option("--zip", "zip_code", help="Postal code for store prices")
@click.option("--exclude", "-x", multiple=True, help="Ingredient to avoid")
@click.option("--include", "-i", multiple=True, help="Ingredient to prefer")
@click.option(
    "--mode",
    "-m",
    type=click.Choice(["package", "proportional"]),
    help="Buy whole packages or pay for the amount used",
)
@click.option("--no-pricing", is_flag=True, help="Skip the costing pass")
@click.option("--json", "as_json", is_flag=True, help="Print the plan as JSON")
def plan(
    cuisines: tuple[str, ...],
    diets: tuple[str, ...],
    meals: int,
    household: int,
    max_time: int | None,
    budget: float | None,
    zip_code: str | None,
    exclude: tuple[str, ...],
    include: tuple[str, ...],
    mode: str | None,
    no_pricing: bool,
    as_json: bool,
):
    """Discover, extract and cost recipes for a meal plan.

    Examples:

    \b
        platewise plan -c nigerian -n 3
        platewise plan -c thai -d vegetarian --budget 60 --json
    """
    request = PlanRequest(
        cuisines=list(cuisines),
        dietary_restrictions=list(diets),
        exclude_ingredients=list(exclude),
        include_ingredients=list(include),
        meal_count=meals,
        household_size=household,
        max_time_minutes=max_time,
        zip_code=zip_code,
        budget_limit=budget,
    )

    if not as_json:
        click.echo(f"Planning {meals} meals for {household} people...")

    result = asyncio.run(_run_plan(request, price=not no_pricing, mode=mode))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        display_plan(result)


@cli.command()
@click.argument("urls", nargs=-1, required=True)
@click.option("--json", "as_json", is_flag=True, help="Print recipes as JSON")
def extract(urls: tuple[str, ...], as_json: bool):
    """Extract and normalize recipes from one or more pages.

    Pages that cannot be extracted are reported as placeholder recipes.
    """
    recipes = asyncio.run(_run_extract(list(urls)))

    if as_json:
        click.echo(json.dumps([r.to_dict() for r in recipes], indent=2, ensure_ascii=False))
        return

    for recipe in recipes:
        display_recipe(recipe)


# ============================================================================
# Costing Commands
# ============================================================================


@cli.command()
@click.argument("amount")
@click.argument("unit")
@click.argument("price", type=float)
@click.argument("size")
@click.option(
    "--mode",
    "-m",
    type=click.Choice(["package", "proportional"]),
    help="Buy whole packages or pay for the amount used",
)
def cost(amount: str, unit: str, price: float, size: str, mode: str | None):
    """Cost an ingredient amount against a product.

    Examples:

    \b
        platewise cost 1000 g 3.00 "454 g"
        platewise cost "1 1/2" cups 2.49 "33.8 fl oz" --mode proportional
    """
    mode = mode or get_settings().costing_mode
    breakdown = compute_ingredient_cost(amount, unit, price, size, mode)  # type: ignore[arg-type]

    if breakdown is None:
        click.echo("✗ No usable price: price must be a positive number", err=True)
        raise SystemExit(1)

    click.echo(breakdown.explain())
    click.echo(f"Unit price: ${breakdown.unit_price:.4f} per {breakdown.package_unit}")
    click.echo(f"Total: ${breakdown.total_cost:.2f}")
    leftover = format_amount(round(breakdown.leftover, 2))
    click.echo(f"Leftover: {leftover} {breakdown.package_unit}")
    if breakdown.adjusted:
        click.echo("⚠️  Package size was estimated")


@cli.command()
@click.argument("amount")
@click.argument("unit")
def convert(amount: str, unit: str):
    """Convert a recipe quantity to grams, milliliters or count."""
    value = parse_quantity(amount)
    base = to_base_unit(value, unit)
    click.echo(
        f"{format_amount(value)} {unit} = {format_amount(round(base.value, 2))} {base.base}"
    )


# ============================================================================
# Entry Point
# ============================================================================


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
