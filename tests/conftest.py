"""Shared fixtures for platewise tests."""

import json

import httpx
import pytest
import respx

from platewise.clients import AnswerEngineClient, ScrapingClient
from platewise.retry import BackoffExecutor, RetryPolicy


class RecordingSleep:
    """Async sleep replacement that records delays instead of waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def mock_httpx():
    """Activate respx mock for HTTP requests."""
    with respx.mock(assert_all_called=False) as respx_mock:
        yield respx_mock


@pytest.fixture
def recording_sleep():
    """Sleep that returns immediately and remembers requested delays."""
    return RecordingSleep()


@pytest.fixture
def fast_executor(recording_sleep):
    """Backoff executor with deterministic jitter and no real waiting."""
    return BackoffExecutor(
        policy=RetryPolicy(max_retries=3, base_delay=1.0, max_delay=10.0, timeout=5.0),
        sleep=recording_sleep,
        rand=lambda: 0.5,
    )


@pytest.fixture
def scraping_client(fast_executor):
    """Scraping client with a test key and a fast executor."""
    return ScrapingClient(
        api_key="test-scraping-key", client=httpx.AsyncClient(), executor=fast_executor
    )


@pytest.fixture
def answer_client(fast_executor):
    """Answer engine client with a test key and a fast executor."""
    return AnswerEngineClient(
        api_key="test-answer-key", client=httpx.AsyncClient(), executor=fast_executor
    )


@pytest.fixture
def field_payload():
    """Field-extraction payload for a complete recipe."""
    return {
        "title": "Jollof Rice",
        "ingredients": [
            "2 cups long-grain rice",
            "1 ½ cups tomato puree",
            "1 onion, chopped",
            "2 tbsp vegetable oil",
        ],
        "instructions": [
            "Rinse the rice.",
            "Fry the onion in oil.",
            "Add tomato puree and rice, then simmer.",
        ],
        "servings": "Serves 6",
        "totalTimeMinutes": 60,
        "sourceUrl": "https://example.com/recipes/jollof-rice",
        "imageUrl": "/images/jollof.jpg",
    }


@pytest.fixture
def recipe_html():
    """Rendered page with JSON-LD Recipe markup inside an @graph."""
    graph = {
        "@context": "https://schema.org",
        "@graph": [
            {"@type": "WebPage", "name": "Egusi Soup | Example Kitchen"},
            {
                "@type": "Recipe",
                "name": "Egusi Soup",
                "description": "A rich melon seed soup.",
                "recipeIngredient": ["1 cup ground egusi", "2 cups spinach", "1 lb beef"],
                "recipeInstructions": [
                    {"@type": "HowToStep", "text": "Boil the beef."},
                    {
                        "@type": "HowToSection",
                        "name": "Soup",
                        "itemListElement": [
                            {"@type": "HowToStep", "text": "Stir in the egusi."},
                            {"@type": "HowToStep", "text": "Add spinach and simmer."},
                        ],
                    },
                ],
                "recipeYield": ["4", "4 servings"],
                "totalTime": "PT1H15M",
                "image": {"@type": "ImageObject", "url": "https://example.com/egusi.jpg"},
                "recipeCuisine": "Nigerian",
            },
        ],
    }
    return f"""
    <html>
      <head>
        <link rel="canonical" href="https://example.com/recipes/egusi-soup">
        <meta property="og:image" content="https://example.com/og-egusi.jpg">
        <script type="application/ld+json">{json.dumps(graph)}</script>
      </head>
      <body><h1>Egusi Soup</h1></body>
    </html>
    """


@pytest.fixture
def bare_html():
    """Rendered page without any recipe markup."""
    return """
    <html>
      <head>
        <link rel="canonical" href="https://example.com/blog/post">
        <meta property="og:image" content="https://example.com/cover.jpg">
      </head>
      <body><p>Just a blog post.</p></body>
    </html>
    """


@pytest.fixture
def answer_body():
    """Builder for chat completion response bodies."""

    def build(content: str, citations: list | None = None) -> dict:
        body: dict = {"choices": [{"message": {"role": "assistant", "content": content}}]}
        if citations is not None:
            body["citations"] = citations
        return body

    return build
