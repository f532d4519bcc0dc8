"""Candidate recipe URL discovery through the answer engine."""

import logging
import re
from urllib.parse import urlparse, urlunparse

from .clients import AnswerEngineClient, AnswerEngineError
from .models import PlanRequest

# Social, video and aggregator hosts that never serve a single recipe page
BLOCKED_DOMAINS = (
    "youtube.com",
    "youtu.be",
    "tiktok.com",
    "instagram.com",
    "facebook.com",
    "twitter.com",
    "x.com",
    "pinterest.com",
    "snapchat.com",
    "reddit.com",
)

# Publishers whose pages reliably hold one complete recipe
TRUSTED_RECIPE_SITES = ("allrecipes", "seriouseats", "bbcgoodfood", "foodnetwork", "simplyrecipes")

# Domains known to embed JSON-LD Recipe markup
STRUCTURED_DATA_DOMAINS = (
    "seriouseats.com",
    "allrecipes.com",
    "bbcgoodfood.com",
    "foodnetwork.com",
    "simplyrecipes.com",
    "taste.com.au",
    "kingarthurbaking.com",
)

LISTING_SUFFIXES = ("/recipes", "/category", "/categories")

DISCOVERY_SYSTEM_PROMPT = (
    "You are a recipe discovery assistant. Search for real, individual recipe pages "
    "on reputable cooking websites. Avoid social media, video and paywalled sites. "
    "Exclude listicles and category pages. Return JSON only."
)

_URL_PATTERN = re.compile(r"https?://[^\s\"'<>()\[\]{}]+")


def _host_matches(host: str, domain: str) -> bool:
    return host == domain or host.endswith(f".{domain}")


def is_blocked_url(url: str) -> bool:
    host = urlparse(url).netloc.lower()
    return any(_host_matches(host, domain) for domain in BLOCKED_DOMAINS)


def clean_candidate_url(url: str) -> str | None:
    """
    Validate and tidy a candidate URL.

    Returns:
        Absolute http(s) URL without fragment or trailing punctuation, or None
    """
    url = url.strip().rstrip(".,;:!?")
    try:
        parsed = urlparse(url)
    except ValueError:
        return None

    if parsed.scheme not in ("http", "https") or "." not in parsed.netloc:
        return None

    return urlunparse(parsed._replace(netloc=parsed.netloc.lower(), fragment=""))


def score_url(url: str) -> int:
    """
    Rank how likely a URL is to be a single, extractable recipe page.

    Known publishers and /recipe paths score up; listing pages score down.
    """
    parsed = urlparse(url)
    host = parsed.netloc.lower()
    path = parsed.path.lower().rstrip("/")

    score = 0
    if any(site in host for site in TRUSTED_RECIPE_SITES):
        score += 3
    if "/recipe" in path:
        score += 2
    last_segment = path.rsplit("/", 1)[-1]
    if "-" in last_segment:
        score += 1
    if path.endswith(LISTING_SUFFIXES):
        score -= 2
    if any(_host_matches(host, domain) for domain in STRUCTURED_DATA_DOMAINS):
        score += 1
    return score


def _dedupe_key(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.netloc.removeprefix('www.')}{parsed.path.rstrip('/')}?{parsed.query}"


def rank_candidate_urls(urls: list[str], limit: int) -> list[str]:
    """
    Filter, deduplicate and rank candidate URLs.

    Args:
        urls: Raw candidate URLs in discovery order
        limit: Maximum number of URLs to return

    Returns:
        Best-scoring unique URLs; ties keep discovery order
    """
    seen: set[str] = set()
    candidates: list[str] = []

    for raw in urls:
        url = clean_candidate_url(raw)
        if url is None or is_blocked_url(url):
            continue
        key = _dedupe_key(url)
        if key in seen:
            continue
        seen.add(key)
        candidates.append(url)

    ranked = sorted(candidates, key=score_url, reverse=True)
    return ranked[: max(0, limit)]


def build_discovery_prompt(request: PlanRequest, count: int) -> str:
    """Describe the plan constraints as a search request for recipe pages."""
    cuisines = ", ".join(request.cuisines) or "any cuisine"
    lines = [
        f"Find {count} individual recipe pages for {cuisines} dishes.",
        f"Each recipe should serve about {request.household_size} people.",
    ]
    if request.dietary_restrictions:
        lines.append(f"Dietary restrictions: {', '.join(request.dietary_restrictions)}.")
    if request.max_time_minutes:
        lines.append(f"Total cooking time at most {request.max_time_minutes} minutes.")
    if request.include_ingredients:
        lines.append(f"Prefer recipes using: {', '.join(request.include_ingredients)}.")
    if request.exclude_ingredients:
        lines.append(f"Do not include: {', '.join(request.exclude_ingredients)}.")
    lines.append(
        'Return JSON: {"recipes": [{"title": "...", "url": "https://..."}]} '
        "using only direct links to single recipe pages."
    )
    return "\n".join(lines)


class DiscoveryService:
    """Finds candidate recipe URLs for a plan request."""

    def __init__(self, client: AnswerEngineClient, logger: logging.Logger | None = None):
        self.client = client
        self._logger = logger or logging.getLogger(__name__)

    async def discover(self, request: PlanRequest) -> list[str]:
        """
        Search for recipe pages matching the request.

        Returns up to twice the requested meal count so the pipeline has spare
        candidates. Engine failures yield an empty list rather than an error.
        """
        if request.meal_count <= 0:
            return []

        limit = request.meal_count * 2
        messages = [
            {"role": "system", "content": DISCOVERY_SYSTEM_PROMPT},
            {"role": "user", "content": build_discovery_prompt(request, limit)},
        ]

        try:
            response = await self.client.complete(messages, max_tokens=1500, temperature=0.2)
        except AnswerEngineError as e:
            self._logger.warning(f"Recipe discovery failed: {e}")
            return []

        raw_urls = list(response.citations) + _URL_PATTERN.findall(response.content)
        urls = rank_candidate_urls(raw_urls, limit)
        self._logger.info(f"Discovered {len(urls)} candidate recipe URLs")
        return urls
