"""Tests for payload normalization."""

import pytest

from platewise.extractors import DirectAnswerResult, StructuredDataResult
from platewise.normalizer import (
    MISSING_INGREDIENTS_LINE,
    MISSING_INSTRUCTIONS_LINE,
    normalize_ingredients,
    normalize_instructions,
    normalize_payload,
    normalize_recipe,
    normalize_title,
    normalize_url,
    parse_ingredient_line,
    parse_servings,
    parse_time_minutes,
    split_ingredient_text,
    title_from_url,
)
from platewise.structured_data import parse_structured_recipe

PAGE_URL = "https://example.com/recipes/jollof-rice"


class TestParseIngredientLine:
    """Tests for parse_ingredient_line function."""

    def test_amount_unit_name_notes(self):
        ing = parse_ingredient_line("1 1/2 cups flour, sifted")
        assert ing.amount == 1.5
        assert ing.unit == "cups"
        assert ing.name == "flour"
        assert ing.notes == "sifted"

    def test_vulgar_fraction(self):
        ing = parse_ingredient_line("½ tsp salt")
        assert ing.amount == 0.5
        assert ing.unit == "tsp"
        assert ing.name == "salt"

    def test_parenthetical_notes(self):
        ing = parse_ingredient_line("2 cans (14 oz) tomatoes")
        assert ing.amount == 2
        assert ing.unit == "cans"
        assert ing.name == "tomatoes"
        assert ing.notes == "14 oz"

    def test_two_word_unit(self):
        ing = parse_ingredient_line("8 fl oz coconut milk")
        assert ing.unit == "fl oz"
        assert ing.name == "coconut milk"

    def test_no_amount(self):
        ing = parse_ingredient_line("Salt to taste")
        assert ing.amount == 0
        assert ing.unit == ""
        assert ing.name == "Salt to taste"

    def test_count_without_unit(self):
        ing = parse_ingredient_line("3 eggs")
        assert ing.amount == 3
        assert ing.unit == ""
        assert ing.name == "eggs"

    def test_keeps_original_text(self):
        assert parse_ingredient_line("  2 cups   rice ").original == "2 cups rice"


class TestNormalizeIngredients:
    """Tests for normalize_ingredients function."""

    def test_newline_block_equals_array(self):
        """A newline-delimited block yields the same ingredients as the pre-split list."""
        lines = ["2 cups rice", "1 ½ cups tomato puree", "1 onion, chopped"]
        assert normalize_ingredients("\n".join(lines)) == normalize_ingredients(lines)

    def test_bullet_block(self):
        result = normalize_ingredients("• 2 cups rice • 1 onion • salt")
        assert [ing.name for ing in result] == ["rice", "onion", "salt"]

    def test_comma_block(self):
        result = normalize_ingredients("rice, onion, pepper")
        assert [ing.name for ing in result] == ["rice", "onion", "pepper"]

    def test_newline_block_keeps_commas_in_lines(self):
        result = normalize_ingredients("1 onion, chopped\n2 cups rice")
        assert len(result) == 2
        assert result[0].notes == "chopped"

    def test_drops_empty_fragments_and_markers(self):
        result = normalize_ingredients(["- 2 cups rice", "", "   ", "1. 1 onion"])
        assert [ing.original for ing in result] == ["2 cups rice", "1 onion"]

    def test_object_entries(self):
        result = normalize_ingredients(
            [{"name": "rice", "amount": "2", "unit": "cups"}, {"name": "salt"}]
        )
        assert result[0].amount == 2
        assert result[0].unit == "cups"
        assert result[0].original == "2 cups rice"
        assert result[1].amount == 0
        assert result[1].original == "salt"

    def test_object_with_only_text(self):
        result = normalize_ingredients([{"text": "1 cup beans"}])
        assert result[0].name == "beans"

    def test_unusable_values(self):
        assert normalize_ingredients(None) == []
        assert normalize_ingredients(42) == []
        assert normalize_ingredients([None, True, {"amount": 2}]) == []

    def test_split_ingredient_text(self):
        assert split_ingredient_text("a\n\nb\n") == ["a", "b"]


class TestNormalizeInstructions:
    """Tests for normalize_instructions function."""

    def test_sentence_boundaries(self):
        text = "Wash the rice. Boil for 10 minutes. Serve hot."
        assert normalize_instructions(text) == [
            "Wash the rice.",
            "Boil for 10 minutes.",
            "Serve hot.",
        ]

    def test_decimals_are_not_split(self):
        text = "Add 1.5 cups of water. Simmer."
        assert normalize_instructions(text) == ["Add 1.5 cups of water.", "Simmer."]

    def test_lowercase_after_period_is_not_split(self):
        assert normalize_instructions("Use approx. two cups.") == ["Use approx. two cups."]

    def test_newlines_and_step_numbers(self):
        text = "1. Wash the rice\nStep 2: Boil it\n\n3) Serve"
        assert normalize_instructions(text) == ["Wash the rice", "Boil it", "Serve"]

    def test_numbered_lines(self):
        assert normalize_instructions("1. Wash the rice\n2. Boil it") == [
            "Wash the rice",
            "Boil it",
        ]

    def test_inline_numbered_steps(self):
        text = "1. Preheat the oven. 2. Mix the flour. 3. Bake."
        assert normalize_instructions(text) == ["Preheat the oven.", "Mix the flour.", "Bake."]

    def test_numbered_lines_with_several_sentences(self):
        text = "1. Rinse the rice. Drain well.\n10. Serve hot."
        assert normalize_instructions(text) == ["Rinse the rice.", "Drain well.", "Serve hot."]

    def test_bare_step_numbers_dropped(self):
        assert normalize_instructions(["1.", "Boil.", "2)"]) == ["Boil."]

    def test_step_objects(self):
        value = [{"text": "Boil."}, {"itemListElement": [{"name": "Serve."}]}]
        assert normalize_instructions(value) == ["Boil.", "Serve."]

    def test_unusable_values(self):
        assert normalize_instructions(None) == []
        assert normalize_instructions(["", None, 5]) == []


class TestParseServings:
    """Tests for parse_servings function."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (4, 4),
            (2.7, 2),
            (0, 1),
            (-3, 1),
            ("6", 6),
            ("Serves 8", 8),
            ("Makes 12 cookies", 12),
            (["4", "4 servings"], 4),
            (None, 4),
            ("a few", 4),
            (float("nan"), 4),
        ],
    )
    def test_values(self, value, expected):
        assert parse_servings(value) == expected


class TestParseTimeMinutes:
    """Tests for parse_time_minutes function."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (45, 45),
            ("45", 45),
            ("PT1H30M", 90),
            ("PT45M", 45),
            ("PT2H", 120),
            ("P0DT1H5M", 65),
            ("1 hour 15 minutes", 75),
            ("20 mins", 20),
            (None, 30),
            ("", 30),
            ("soon", 30),
            (0, 30),
        ],
    )
    def test_values(self, value, expected):
        assert parse_time_minutes(value) == expected


class TestUrls:
    """Tests for normalize_url and title helpers."""

    def test_relative_url_resolved_against_page(self):
        assert normalize_url("/images/a.jpg", PAGE_URL) == "https://example.com/images/a.jpg"

    def test_protocol_relative_url(self):
        assert normalize_url("//cdn.example.com/a.jpg", PAGE_URL) == "https://cdn.example.com/a.jpg"

    def test_http_upgraded_to_https(self):
        assert normalize_url("http://example.com/a") == "https://example.com/a"

    def test_malformed_urls_dropped(self):
        assert normalize_url("not a url") is None
        assert normalize_url("javascript:alert(1)", PAGE_URL) is None
        assert normalize_url("ftp://example.com/file") is None
        assert normalize_url(None) is None
        assert normalize_url("http://[::1") is None

    def test_title_from_url(self):
        assert title_from_url("https://example.com/recipes/jollof-rice/") == "Jollof Rice"
        assert title_from_url("https://example.com/egusi_soup.html") == "Egusi Soup"
        assert title_from_url("https://example.com/") == "Traditional Recipe"
        assert title_from_url(None) == "Traditional Recipe"

    def test_normalize_title(self):
        assert normalize_title("  Recipe:  Jollof   Rice  ") == "Jollof Rice"
        assert normalize_title("Easy Jollof Rice Recipe") == "Easy Jollof Rice"
        assert normalize_title(None, PAGE_URL) == "Jollof Rice"


class TestNormalizePayload:
    """Tests for normalize_payload and normalize_recipe."""

    def test_field_payload(self, field_payload):
        recipe = normalize_payload(field_payload, PAGE_URL)

        assert recipe.title == "Jollof Rice"
        assert len(recipe.ingredients) == 4
        assert recipe.ingredients[1].amount == 1.5
        assert recipe.instructions[0] == "Rinse the rice."
        assert recipe.servings == 6
        assert recipe.total_time_minutes == 60
        assert recipe.image_url == "https://example.com/images/jollof.jpg"
        assert recipe.source_url == "https://example.com/recipes/jollof-rice"
        assert recipe.extraction_method == "ai-fields"

    def test_alternate_field_names(self):
        payload = {
            "name": "Suya",
            "recipeIngredient": ["1 lb beef"],
            "recipeInstructions": "Grill the beef.",
            "recipeYield": "Serves 2",
            "totalTime": "PT30M",
            "image": ["https://example.com/suya.jpg"],
            "url": "https://example.com/suya",
        }
        recipe = normalize_payload(payload, "https://example.com/suya")

        assert recipe.title == "Suya"
        assert recipe.ingredients[0].unit == "lb"
        assert recipe.instructions == ["Grill the beef."]
        assert recipe.servings == 2
        assert recipe.image_url == "https://example.com/suya.jpg"

    def test_missing_parts_get_placeholder_lines(self):
        recipe = normalize_payload({"title": "Mystery", "ingredients": ["rice"]}, PAGE_URL)
        assert recipe.instructions == [MISSING_INSTRUCTIONS_LINE]

        recipe = normalize_payload({"title": "Mystery", "instructions": "Cook."}, PAGE_URL)
        assert [ing.original for ing in recipe.ingredients] == [MISSING_INGREDIENTS_LINE]

    def test_defaults_and_fallbacks(self):
        recipe = normalize_payload(
            {"ingredients": ["rice"], "sourceUrl": "mailto:chef@example.com"}, PAGE_URL
        )

        assert recipe.title == "Jollof Rice"
        assert recipe.servings == 4
        assert recipe.total_time_minutes == 30
        assert recipe.image_url is None
        assert recipe.source_url == PAGE_URL

    def test_structured_data_result(self, recipe_html):
        result = StructuredDataResult(url=PAGE_URL, payload=parse_structured_recipe(recipe_html))
        recipe = normalize_recipe(result)

        assert recipe.extraction_method == "json-ld"
        assert recipe.title == "Egusi Soup"
        assert recipe.servings == 4
        assert recipe.total_time_minutes == 75
        assert recipe.cuisines == ["Nigerian"]
        assert recipe.source_url == "https://example.com/recipes/egusi-soup"
        assert len(recipe.instructions) == 3

    def test_direct_answer_result(self):
        result = DirectAnswerResult(
            url=PAGE_URL,
            payload={"title": "Jollof", "ingredients": "2 cups rice\n1 onion", "servings": 4.0},
        )
        recipe = normalize_recipe(result)

        assert recipe.extraction_method == "direct-answer"
        assert [ing.name for ing in recipe.ingredients] == ["rice", "onion"]
        assert recipe.servings == 4
