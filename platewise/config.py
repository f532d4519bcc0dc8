"""Configuration and credential management for PlateWise."""

import os
from dataclasses import dataclass
from typing import Literal

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

APP_NAME = "platewise"

# Rendering / field-extraction service
WEBSCRAPING_FIELDS_URL = "https://api.webscraping.ai/ai/fields"
WEBSCRAPING_HTML_URL = "https://api.webscraping.ai/html"

# Render budget passed to the scraping service (milliseconds)
RENDER_TIMEOUT_MS = 10000
RENDER_JS_TIMEOUT_MS = 2000

# Generative answer engine (discovery + direct-answer extraction)
ANSWER_ENGINE_URL = "https://api.perplexity.ai/chat/completions"
ANSWER_ENGINE_MODEL = "sonar-pro"

# Retry defaults
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 10.0  # seconds
CONNECT_TIMEOUT = 3.0
REQUEST_TIMEOUT = 13.0

# Circuit breaker around each external service
CIRCUIT_FAILURE_THRESHOLD = 5
CIRCUIT_OPEN_TIMEOUT = 60.0  # seconds
CIRCUIT_MONITORING_WINDOW = 120.0  # seconds
CIRCUIT_SUCCESS_THRESHOLD = 2

# Cache lifetimes (seconds)
RECIPE_CACHE_TTL = 24 * 60 * 60
PRICING_CACHE_TTL = 2 * 60 * 60

# Pricing lookups
PRICING_BATCH_SIZE = 3
PRICING_BATCH_DELAY = 2.0

# Extraction fan-out
DEFAULT_MAX_CONCURRENCY = 3
DEFAULT_BATCH_PAUSE_MS = 500

USER_AGENT = "PlateWise/1.0 (+https://platewise.app)"

PrimaryTier = Literal["direct-answer", "ai-fields"]
CostingMode = Literal["package", "proportional"]


@dataclass
class Settings:
    """Runtime tunables resolved from the environment."""

    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    batch_pause: float = DEFAULT_BATCH_PAUSE_MS / 1000
    primary_tier: PrimaryTier = "ai-fields"
    costing_mode: CostingMode = "package"


def get_scraping_api_key() -> str | None:
    """Get the scraping service API key from the environment."""
    return os.getenv("WEBSCRAPING_AI_API_KEY")


def get_answer_engine_api_key() -> str | None:
    """Get the answer engine API key from the environment."""
    return os.getenv("PERPLEXITY_API_KEY")


def _int_from_env(name: str, default: int, minimum: int = 1) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def get_settings() -> Settings:
    """Build Settings from environment overrides, falling back to defaults."""
    primary = os.getenv("PLATEWISE_PRIMARY_TIER", "ai-fields").strip().lower()
    if primary not in ("direct-answer", "ai-fields"):
        primary = "ai-fields"

    mode = os.getenv("PLATEWISE_COSTING_MODE", "package").strip().lower()
    if mode not in ("package", "proportional"):
        mode = "package"

    pause_ms = _int_from_env("PLATEWISE_BATCH_PAUSE_MS", DEFAULT_BATCH_PAUSE_MS, minimum=0)

    return Settings(
        max_concurrency=_int_from_env("PLATEWISE_MAX_CONCURRENCY", DEFAULT_MAX_CONCURRENCY),
        batch_pause=pause_ms / 1000,
        primary_tier=primary,  # type: ignore[arg-type]
        costing_mode=mode,  # type: ignore[arg-type]
    )
