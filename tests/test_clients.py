"""Tests for the rendering service and answer engine clients."""

import json

import httpx
import pytest

from platewise.clients import (
    RECIPE_FIELDS,
    AnswerEngineClient,
    AnswerEngineError,
    ScrapingAPIError,
    ScrapingClient,
    extract_citations,
)
from platewise.config import ANSWER_ENGINE_URL, WEBSCRAPING_FIELDS_URL, WEBSCRAPING_HTML_URL
from platewise.retry import CircuitBreaker

PAGE_URL = "https://example.com/recipes/jollof-rice"


class TestScrapingClientFields:
    """Tests for ScrapingClient.extract_fields."""

    @pytest.mark.asyncio
    async def test_sends_field_map_and_render_budget(self, mock_httpx, scraping_client):
        """The request carries the page URL, field map and JS render limits."""
        route = mock_httpx.get(WEBSCRAPING_FIELDS_URL).respond(json={"title": "Jollof Rice"})

        await scraping_client.extract_fields(PAGE_URL)

        params = route.calls.last.request.url.params
        assert params["url"] == PAGE_URL
        assert params["api_key"] == "test-scraping-key"
        assert params["js"] == "true"
        assert params["timeout"] == "10000"
        assert params["js_timeout"] == "2000"
        assert json.loads(params["fields"]) == RECIPE_FIELDS

    @pytest.mark.asyncio
    async def test_returns_payload(self, mock_httpx, scraping_client, field_payload):
        mock_httpx.get(WEBSCRAPING_FIELDS_URL).respond(json=field_payload)

        result = await scraping_client.extract_fields(PAGE_URL)

        assert result == field_payload

    @pytest.mark.asyncio
    async def test_unwraps_result_envelope(self, mock_httpx, scraping_client):
        mock_httpx.get(WEBSCRAPING_FIELDS_URL).respond(json={"result": {"title": "Soup"}})

        result = await scraping_client.extract_fields(PAGE_URL)

        assert result == {"title": "Soup"}

    @pytest.mark.asyncio
    async def test_http_error_raises(self, mock_httpx, scraping_client):
        mock_httpx.get(WEBSCRAPING_FIELDS_URL).respond(status_code=403)

        with pytest.raises(ScrapingAPIError):
            await scraping_client.extract_fields(PAGE_URL)

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self, mock_httpx, scraping_client):
        mock_httpx.get(WEBSCRAPING_FIELDS_URL).respond(text="<html>not json</html>")

        with pytest.raises(ScrapingAPIError) as exc_info:
            await scraping_client.extract_fields(PAGE_URL)

        assert "invalid JSON" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_non_object_payload_raises(self, mock_httpx, scraping_client):
        mock_httpx.get(WEBSCRAPING_FIELDS_URL).respond(json=["not", "an", "object"])

        with pytest.raises(ScrapingAPIError):
            await scraping_client.extract_fields(PAGE_URL)

    @pytest.mark.asyncio
    async def test_missing_api_key_raises(self, mock_httpx, fast_executor):
        """Without a key the client fails before any request is made."""
        route = mock_httpx.get(WEBSCRAPING_FIELDS_URL).respond(json={})
        client = ScrapingClient(api_key="", client=httpx.AsyncClient(), executor=fast_executor)

        with pytest.raises(ScrapingAPIError) as exc_info:
            await client.extract_fields(PAGE_URL)

        assert "WEBSCRAPING_AI_API_KEY" in str(exc_info.value)
        assert not route.called


class TestScrapingClientHtml:
    """Tests for ScrapingClient.fetch_html."""

    @pytest.mark.asyncio
    async def test_returns_rendered_html(self, mock_httpx, scraping_client, recipe_html):
        mock_httpx.get(WEBSCRAPING_HTML_URL).respond(text=recipe_html)

        html = await scraping_client.fetch_html(PAGE_URL)

        assert "application/ld+json" in html

    @pytest.mark.asyncio
    async def test_network_error_raises_after_retries(self, mock_httpx, scraping_client):
        route = mock_httpx.get(WEBSCRAPING_HTML_URL).mock(
            side_effect=httpx.ConnectError("Network unreachable")
        )

        with pytest.raises(ScrapingAPIError) as exc_info:
            await scraping_client.fetch_html(PAGE_URL)

        assert "HTML fetch failed" in str(exc_info.value)
        assert route.call_count == 4


class TestAnswerEngineClient:
    """Tests for AnswerEngineClient.complete."""

    @pytest.mark.asyncio
    async def test_returns_content_and_citations(self, mock_httpx, answer_client, answer_body):
        mock_httpx.post(ANSWER_ENGINE_URL).respond(
            json=answer_body("Here you go", citations=["https://example.com/a"])
        )

        response = await answer_client.complete([{"role": "user", "content": "hi"}])

        assert response.content == "Here you go"
        assert response.citations == ["https://example.com/a"]

    @pytest.mark.asyncio
    async def test_request_body_and_auth(self, mock_httpx, answer_client, answer_body):
        route = mock_httpx.post(ANSWER_ENGINE_URL).respond(json=answer_body("{}"))

        await answer_client.complete(
            [{"role": "user", "content": "hi"}], max_tokens=1500, temperature=0.2
        )

        request = route.calls.last.request
        body = json.loads(request.content)
        assert request.headers["Authorization"] == "Bearer test-answer-key"
        assert body["model"] == "sonar-pro"
        assert body["max_tokens"] == 1500
        assert body["temperature"] == 0.2
        assert body["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_missing_content_raises(self, mock_httpx, answer_client):
        mock_httpx.post(ANSWER_ENGINE_URL).respond(json={"choices": []})

        with pytest.raises(AnswerEngineError):
            await answer_client.complete([{"role": "user", "content": "hi"}])

    @pytest.mark.asyncio
    async def test_http_error_raises(self, mock_httpx, answer_client):
        mock_httpx.post(ANSWER_ENGINE_URL).respond(status_code=401)

        with pytest.raises(AnswerEngineError) as exc_info:
            await answer_client.complete([{"role": "user", "content": "hi"}])

        assert "request failed" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_api_key_raises(self, fast_executor):
        client = AnswerEngineClient(api_key="", client=httpx.AsyncClient(), executor=fast_executor)

        with pytest.raises(AnswerEngineError):
            await client.complete([{"role": "user", "content": "hi"}])


class TestExtractCitations:
    """Tests for extract_citations function."""

    def test_collects_from_all_locations(self):
        data = {
            "citations": ["https://a.com/1"],
            "choices": [
                {
                    "citations": [{"url": "https://b.com/2"}],
                    "message": {"content": "", "citations": ["https://a.com/1"]},
                }
            ],
            "search_results": [
                {"title": "C", "url": "https://c.com/3"},
                {"link": "https://d.com/4"},
            ],
        }

        assert extract_citations(data) == [
            "https://a.com/1",
            "https://b.com/2",
            "https://c.com/3",
            "https://d.com/4",
        ]

    def test_tolerates_malformed_shapes(self):
        assert extract_citations({"choices": "nope", "citations": "also nope"}) == []
        assert extract_citations({"citations": [None, 42, {"title": "no url"}]}) == []


class TestClientCircuitBreaker:
    """Tests for clients failing fast while their circuit is open."""

    @pytest.mark.asyncio
    async def test_answer_engine_fails_fast_when_open(self, mock_httpx, fast_executor):
        route = mock_httpx.post(ANSWER_ENGINE_URL).respond(status_code=503)
        client = AnswerEngineClient(
            api_key="test-answer-key",
            client=httpx.AsyncClient(),
            executor=fast_executor,
            breaker=CircuitBreaker(failure_threshold=1),
        )

        with pytest.raises(AnswerEngineError) as failed:
            await client.complete([{"role": "user", "content": "hi"}])
        assert "request failed" in str(failed.value)
        calls = route.call_count

        with pytest.raises(AnswerEngineError) as skipped:
            await client.complete([{"role": "user", "content": "hi"}])

        assert "is open" in str(skipped.value)
        assert route.call_count == calls
        assert client.breaker.state == "open"

    @pytest.mark.asyncio
    async def test_scraping_fails_fast_when_open(self, mock_httpx, fast_executor):
        route = mock_httpx.get(WEBSCRAPING_HTML_URL).mock(
            side_effect=httpx.ConnectError("Network unreachable")
        )
        client = ScrapingClient(
            api_key="test-scraping-key",
            client=httpx.AsyncClient(),
            executor=fast_executor,
            breaker=CircuitBreaker(failure_threshold=1),
        )

        with pytest.raises(ScrapingAPIError):
            await client.fetch_html(PAGE_URL)
        assert route.call_count == 4

        with pytest.raises(ScrapingAPIError) as skipped:
            await client.fetch_html(PAGE_URL)

        assert "HTML fetch skipped" in str(skipped.value)
        assert route.call_count == 4

    @pytest.mark.asyncio
    async def test_successes_keep_circuit_closed(self, mock_httpx, scraping_client):
        mock_httpx.get(WEBSCRAPING_FIELDS_URL).respond(json={"title": "Jollof Rice"})

        await scraping_client.extract_fields(PAGE_URL)

        assert scraping_client.breaker.state == "closed"
