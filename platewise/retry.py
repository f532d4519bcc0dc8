"""Bounded retries with exponential backoff, and a circuit breaker, for outbound HTTP calls."""

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Literal, TypeVar

import httpx

from .config import (
    CIRCUIT_FAILURE_THRESHOLD,
    CIRCUIT_MONITORING_WINDOW,
    CIRCUIT_OPEN_TIMEOUT,
    CIRCUIT_SUCCESS_THRESHOLD,
    DEFAULT_BASE_DELAY,
    DEFAULT_MAX_DELAY,
    DEFAULT_MAX_RETRIES,
    REQUEST_TIMEOUT,
)

JITTER_RATIO = 0.25

CircuitState = Literal["closed", "open", "half-open"]
T = TypeVar("T")


class CircuitOpenError(Exception):
    """Exception raised when a call is refused because its circuit is open."""

    pass


@dataclass
class RetryPolicy:
    """How many times to retry and how long to wait in between (seconds)."""

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    jitter: bool = True
    timeout: float = REQUEST_TIMEOUT

    def backoff_delay(self, attempt: int, rand: Callable[[], float] = random.random) -> float:
        """
        Delay before the next attempt.

        Args:
            attempt: Zero-based index of the attempt that just failed
            rand: Source of uniform randoms in [0, 1)

        Returns:
            min(base * 2^attempt, max_delay), jittered by up to ±25%
        """
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        if self.jitter:
            delay += delay * JITTER_RATIO * (rand() * 2 - 1)
        return max(0.0, delay)


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given as seconds or an HTTP date."""
    if not value:
        return None

    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def is_retryable_status(status_code: int) -> bool:
    """Rate limits and server errors are retried; other client errors are not."""
    return status_code == 429 or status_code >= 500


class BackoffExecutor:
    """Runs an HTTP request with the retry policy applied to every attempt."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
        logger: logging.Logger | None = None,
    ):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._rand = rand
        self._logger = logger or logging.getLogger(__name__)

    async def execute(
        self,
        request: Callable[[], Awaitable[httpx.Response]],
        description: str = "request",
    ) -> httpx.Response:
        """
        Run a request until it succeeds, fails permanently, or retries run out.

        Args:
            request: Zero-argument callable returning a fresh request coroutine
            description: Label used in log messages

        Returns:
            The first successful response

        Raises:
            httpx.HTTPStatusError: On a non-retryable status, or the last retryable one
            httpx.TransportError: If the last attempt failed at the transport level
            TimeoutError: If the last attempt exceeded the policy timeout
        """
        last_error: Exception | None = None

        for attempt in range(self.policy.max_retries + 1):
            delay: float | None = None

            try:
                response = await asyncio.wait_for(request(), timeout=self.policy.timeout)
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if not is_retryable_status(status):
                    raise
                last_error = e
                if status == 429:
                    delay = parse_retry_after(e.response.headers.get("Retry-After"))
                self._logger.debug(f"{description} attempt {attempt + 1} got HTTP {status}")
            except (httpx.TransportError, asyncio.TimeoutError) as e:
                last_error = e
                self._logger.debug(
                    f"{description} attempt {attempt + 1} failed: {type(e).__name__}: {e}"
                )

            if attempt >= self.policy.max_retries:
                break

            if delay is None:
                delay = self.policy.backoff_delay(attempt, self._rand)
            self._logger.debug(f"Retrying {description} in {delay:.2f}s")
            await self._sleep(delay)

        self._logger.warning(
            f"{description} failed after {self.policy.max_retries + 1} attempts: {last_error}"
        )
        assert last_error is not None
        raise last_error


class CircuitBreaker:
    """
    Stops calling a failing service for a while, then lets trial calls through.

    Closed: calls pass; failures within the monitoring window are counted and
    reaching the threshold opens the circuit. Open: calls are refused with
    CircuitOpenError until the open timeout has elapsed. Half-open: calls pass;
    enough consecutive successes close the circuit, any failure reopens it.
    """

    def __init__(
        self,
        name: str = "service",
        failure_threshold: int = CIRCUIT_FAILURE_THRESHOLD,
        open_timeout: float = CIRCUIT_OPEN_TIMEOUT,
        monitoring_window: float = CIRCUIT_MONITORING_WINDOW,
        success_threshold: int = CIRCUIT_SUCCESS_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
        logger: logging.Logger | None = None,
    ):
        self.name = name
        self.failure_threshold = max(1, failure_threshold)
        self.open_timeout = open_timeout
        self.monitoring_window = monitoring_window
        self.success_threshold = max(1, success_threshold)
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

        self._state: CircuitState = "closed"
        self._failures: list[float] = []
        self._successes = 0
        self._opened_at: float | None = None

    @property
    def state(self) -> CircuitState:
        """Current state, moving open -> half-open once the open timeout has passed."""
        if self._state == "open" and self._opened_at is not None:
            if self._clock() - self._opened_at >= self.open_timeout:
                self._state = "half-open"
                self._successes = 0
                self._logger.info(f"Circuit breaker {self.name}: half-open, allowing trial calls")
        return self._state

    def allow_request(self) -> bool:
        return self.state != "open"

    def before_call(self) -> None:
        """
        Refuse the call if the circuit is open.

        Raises:
            CircuitOpenError: If the circuit is open
        """
        if not self.allow_request():
            raise CircuitOpenError(f"Circuit breaker {self.name} is open")

    def record_success(self) -> None:
        state = self.state
        if state == "half-open":
            self._successes += 1
            if self._successes >= self.success_threshold:
                self._state = "closed"
                self._failures.clear()
                self._opened_at = None
                self._logger.info(f"Circuit breaker {self.name}: closed (recovered)")
        elif state == "closed":
            self._prune(self._clock())

    def record_failure(self) -> None:
        state = self.state
        now = self._clock()
        self._failures.append(now)
        self._prune(now)

        if state == "half-open":
            self._open(now, "trial call failed")
        elif state == "closed" and len(self._failures) >= self.failure_threshold:
            self._open(now, f"{len(self._failures)} failures")

    def reset(self) -> None:
        self._state = "closed"
        self._failures.clear()
        self._successes = 0
        self._opened_at = None

    def stats(self) -> dict[str, object]:
        """Get breaker statistics."""
        return {
            "state": self.state,
            "recent_failures": len(self._failures),
            "successes": self._successes,
        }

    async def call(self, request: Callable[[], Awaitable[T]]) -> T:
        """
        Run a request through the breaker.

        Transport errors, timeouts and retryable statuses count as failures. A
        non-retryable status means the service answered, so it counts as success.

        Args:
            request: Zero-argument callable returning a fresh request coroutine

        Returns:
            The request's result

        Raises:
            CircuitOpenError: If the circuit is open; the request is not started
        """
        self.before_call()
        try:
            result = await request()
        except httpx.HTTPStatusError as e:
            if is_retryable_status(e.response.status_code):
                self.record_failure()
            else:
                self.record_success()
            raise
        except (httpx.TransportError, asyncio.TimeoutError):
            self.record_failure()
            raise
        self.record_success()
        return result

    def _prune(self, now: float) -> None:
        cutoff = now - self.monitoring_window
        self._failures = [when for when in self._failures if when > cutoff]

    def _open(self, now: float, reason: str) -> None:
        self._state = "open"
        self._opened_at = now
        self._successes = 0
        self._logger.warning(
            f"Circuit breaker {self.name}: open for {self.open_timeout:.0f}s ({reason})"
        )
