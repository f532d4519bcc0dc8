"""HTTP clients for the page rendering service and the generative answer engine."""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any

import httpx

from .config import (
    ANSWER_ENGINE_MODEL,
    ANSWER_ENGINE_URL,
    CONNECT_TIMEOUT,
    RENDER_JS_TIMEOUT_MS,
    RENDER_TIMEOUT_MS,
    REQUEST_TIMEOUT,
    USER_AGENT,
    WEBSCRAPING_FIELDS_URL,
    WEBSCRAPING_HTML_URL,
    get_answer_engine_api_key,
    get_scraping_api_key,
)
from .retry import BackoffExecutor, CircuitBreaker, CircuitOpenError


class ScrapingAPIError(Exception):
    """Exception raised for rendering/field-extraction service errors."""

    pass


class AnswerEngineError(Exception):
    """Exception raised for answer engine errors."""

    pass


# Declarative field map sent to the field-extraction endpoint
RECIPE_FIELDS: dict[str, str] = {
    "title": "recipe title",
    "ingredients": "recipe ingredients list",
    "instructions": "cooking instructions or directions",
    "servings": "number of servings",
    "yieldText": "recipe yield text",
    "totalTimeMinutes": "total cooking time in minutes",
    "sourceUrl": "canonical URL from rel=canonical",
    "imageUrl": "main recipe image from og:image",
}

_HTTP_FAILURES = (httpx.HTTPError, asyncio.TimeoutError)


def create_http_client() -> httpx.AsyncClient:
    """Create an AsyncClient with the connect/read ceilings used by every service call."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(REQUEST_TIMEOUT, connect=CONNECT_TIMEOUT),
        headers={"User-Agent": USER_AGENT, "Accept": "application/json, text/html;q=0.9"},
        follow_redirects=True,
    )


class ScrapingClient:
    """Client for the headless rendering and AI field-extraction service."""

    def __init__(
        self,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        executor: BackoffExecutor | None = None,
        breaker: CircuitBreaker | None = None,
    ):
        self.api_key = api_key if api_key is not None else get_scraping_api_key()
        self.client = client or create_http_client()
        self.executor = executor or BackoffExecutor()
        self.breaker = breaker or CircuitBreaker(name="scraping service")

    def _base_params(self, url: str) -> dict[str, Any]:
        if not self.api_key:
            raise ScrapingAPIError("WEBSCRAPING_AI_API_KEY is not configured")
        return {
            "api_key": self.api_key,
            "url": url,
            "timeout": RENDER_TIMEOUT_MS,
            "js": "true",
            "js_timeout": RENDER_JS_TIMEOUT_MS,
        }

    async def extract_fields(
        self, url: str, fields: dict[str, str] | None = None
    ) -> dict[str, Any]:
        """
        Ask the service to render a page and extract the given fields.

        Args:
            url: Page to render
            fields: Field name -> natural-language description

        Returns:
            Loosely-typed mapping of field name to extracted value

        Raises:
            ScrapingAPIError: If the request fails or the response is not a JSON object
        """
        params = {
            **self._base_params(url),
            "format": "json",
            "fields": json.dumps(fields or RECIPE_FIELDS),
        }

        try:
            response = await self.breaker.call(
                lambda: self.executor.execute(
                    lambda: self.client.get(WEBSCRAPING_FIELDS_URL, params=params),
                    description=f"field extraction for {url}",
                )
            )
            data = response.json()
        except CircuitOpenError as e:
            raise ScrapingAPIError(f"Field extraction skipped: {e}") from e
        except _HTTP_FAILURES as e:
            raise ScrapingAPIError(f"Field extraction failed: {e}") from e
        except ValueError as e:
            raise ScrapingAPIError(f"Field extraction returned invalid JSON: {e}") from e

        result = data.get("result", data) if isinstance(data, dict) else data
        if not isinstance(result, dict):
            raise ScrapingAPIError("Field extraction returned an unexpected payload")
        return result

    async def fetch_html(self, url: str) -> str:
        """
        Fetch the rendered HTML of a page.

        Raises:
            ScrapingAPIError: If the request fails or the service circuit is open
        """
        params = self._base_params(url)

        try:
            response = await self.breaker.call(
                lambda: self.executor.execute(
                    lambda: self.client.get(WEBSCRAPING_HTML_URL, params=params),
                    description=f"HTML fetch for {url}",
                )
            )
        except CircuitOpenError as e:
            raise ScrapingAPIError(f"HTML fetch skipped: {e}") from e
        except _HTTP_FAILURES as e:
            raise ScrapingAPIError(f"HTML fetch failed: {e}") from e

        return response.text

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "ScrapingClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


@dataclass
class AnswerEngineResponse:
    """Text answer and the source URLs the engine cited."""

    content: str
    citations: list[str] = field(default_factory=list)


def _citation_url(citation: Any) -> str | None:
    if isinstance(citation, str):
        return citation
    if isinstance(citation, dict):
        value = citation.get("url") or citation.get("link")
        return value if isinstance(value, str) else None
    return None


def extract_citations(data: dict[str, Any]) -> list[str]:
    """
    Collect cited URLs from a chat completion response.

    Citations may sit at the top level, on the first choice, or on its message,
    either as plain strings or as objects with a "url"/"link" key.
    """
    choices = data.get("choices")
    first = choices[0] if isinstance(choices, list) and choices else {}
    if not isinstance(first, dict):
        first = {}
    message = first.get("message")
    if not isinstance(message, dict):
        message = {}

    raw: list[Any] = []
    for source in (data, first, message):
        citations = source.get("citations")
        if isinstance(citations, list):
            raw.extend(citations)

    search_results = data.get("search_results")
    if isinstance(search_results, list):
        raw.extend(search_results)

    urls: list[str] = []
    for citation in raw:
        url = _citation_url(citation)
        if url and url not in urls:
            urls.append(url)
    return urls


class AnswerEngineClient:
    """Client for the web-grounded chat completion API."""

    def __init__(
        self,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        executor: BackoffExecutor | None = None,
        breaker: CircuitBreaker | None = None,
        model: str = ANSWER_ENGINE_MODEL,
    ):
        self.api_key = api_key if api_key is not None else get_answer_engine_api_key()
        self.client = client or create_http_client()
        self.executor = executor or BackoffExecutor()
        self.breaker = breaker or CircuitBreaker(name="answer engine")
        self.model = model

    async def complete(
        self,
        messages: list[dict[str, str]],
        max_tokens: int = 2000,
        temperature: float = 0.1,
        search_context_size: str = "medium",
    ) -> AnswerEngineResponse:
        """
        Send a chat completion request.

        Args:
            messages: Chat messages ({"role": ..., "content": ...})
            max_tokens: Completion token limit
            temperature: Sampling temperature
            search_context_size: How much web context the engine should gather

        Returns:
            AnswerEngineResponse with the answer text and cited URLs

        Raises:
            AnswerEngineError: If the key is missing, the request fails, or the
                response has no answer text
        """
        if not self.api_key:
            raise AnswerEngineError("PERPLEXITY_API_KEY is not configured")

        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "top_p": 0.1,
            "web_search_options": {"search_context_size": search_context_size},
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            response = await self.breaker.call(
                lambda: self.executor.execute(
                    lambda: self.client.post(ANSWER_ENGINE_URL, json=payload, headers=headers),
                    description="answer engine request",
                )
            )
            data = response.json()
        except CircuitOpenError as e:
            raise AnswerEngineError(f"Answer engine request skipped: {e}") from e
        except _HTTP_FAILURES as e:
            raise AnswerEngineError(f"Answer engine request failed: {e}") from e
        except ValueError as e:
            raise AnswerEngineError(f"Answer engine returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise AnswerEngineError("Answer engine returned an unexpected payload")

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise AnswerEngineError("Answer engine response has no content") from e
        if not isinstance(content, str):
            raise AnswerEngineError("Answer engine response has no content")

        return AnswerEngineResponse(content=content, citations=extract_citations(data))

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "AnswerEngineClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
