"""Base signal producer interface and HTTP adapter plumbing."""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time
from abc import ABC, abstractmethod
from typing import Any, Callable

import httpx

from reputation.config import SourceConfig
from reputation.types import SignalOutcome, SignalReading, SubjectRequest

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Rate Limiting (Token Bucket)
# ---------------------------------------------------------------------------


class TokenBucket:
    """Token bucket rate limiter, one shared bucket per source and rate.

    Allows burst traffic up to the capacity, then refills at a steady rate.
    """

    _instances: dict[tuple[str, int], "TokenBucket"] = {}
    _lock: asyncio.Lock | None = None

    def __init__(self, rate_per_minute: int, source: str) -> None:
        self.capacity = rate_per_minute
        self.tokens = float(rate_per_minute)
        self.rate_per_second = rate_per_minute / 60.0
        self.last_update = time.monotonic()
        self.source = source
        self._bucket_lock = asyncio.Lock()

    @classmethod
    async def get_instance(cls, source: str, rate_per_minute: int) -> "TokenBucket":
        """Get or create the shared bucket for a source at a given rate."""
        if cls._lock is None:
            cls._lock = asyncio.Lock()
        async with cls._lock:
            key = (source, rate_per_minute)
            if key not in cls._instances:
                cls._instances[key] = cls(rate_per_minute, source)
            return cls._instances[key]

    async def acquire(self, tokens: int = 1) -> None:
        """Acquire tokens, waiting for a refill if necessary."""
        async with self._bucket_lock:
            while True:
                now = time.monotonic()
                elapsed = now - self.last_update
                self.tokens = min(self.capacity, self.tokens + elapsed * self.rate_per_second)
                self.last_update = now

                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return

                wait_time = (tokens - self.tokens) / self.rate_per_second
                logger.debug("Rate limit reached for %s, waiting %.2fs", self.source, wait_time)
                await asyncio.sleep(min(wait_time, 1.0))  # Cap sleep at 1s for responsiveness


# ---------------------------------------------------------------------------
# Error Classification
# ---------------------------------------------------------------------------


class ProducerError(Exception):
    """Base exception for signal producer errors."""

    def __init__(self, message: str, is_transient: bool = False, status_code: int | None = None):
        super().__init__(message)
        self.is_transient = is_transient
        self.status_code = status_code


class TransientError(ProducerError):
    """Transient error (retry-able)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, is_transient=True, status_code=status_code)


class PermanentError(ProducerError):
    """Permanent error (not retry-able)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, is_transient=False, status_code=status_code)


def classify_http_error(status_code: int, message: str) -> ProducerError:
    """Classify HTTP errors as transient or permanent.

    Args:
        status_code: HTTP status code
        message: Error message

    Returns:
        Appropriate ProducerError subclass
    """
    if status_code in {408, 429}:
        return TransientError(message, status_code)
    if 500 <= status_code < 600:
        return TransientError(message, status_code)
    if 400 <= status_code < 500:
        return PermanentError(message, status_code)
    return TransientError(message, status_code)


# ---------------------------------------------------------------------------
# Retry Logic
# ---------------------------------------------------------------------------


def with_retry(
    max_retries: int | None = None,
    base_delay: float = 0.5,
    max_delay: float = 5.0,
    jitter: bool = True,
) -> Callable:
    """Decorator for exponential backoff with jitter on ``TransientError``.

    When ``max_retries`` is None the bound method's ``source.max_retries`` is
    used, so each producer retries according to its own source config.
    """

    def decorator(func: Callable) -> Callable:
        async def wrapper(self, *args, **kwargs) -> Any:
            retries = max_retries if max_retries is not None else self.source.max_retries

            for attempt in range(retries + 1):
                try:
                    return await func(self, *args, **kwargs)
                except TransientError as e:
                    if attempt >= retries:
                        logger.error("Max retries (%d) exceeded for %s: %s", retries, func.__name__, e)
                        raise

                    delay = min(base_delay * (2**attempt), max_delay)
                    if jitter:
                        delay *= 0.5 + random.random()

                    logger.warning(
                        "Transient error in %s (attempt %d/%d): %s. Retrying in %.2fs",
                        func.__name__,
                        attempt + 1,
                        retries + 1,
                        e,
                        delay,
                    )
                    await asyncio.sleep(delay)

            raise PermanentError(f"{func.__name__}: retry loop exited without a result")

        wrapper.__name__ = func.__name__
        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Producer interface
# ---------------------------------------------------------------------------


class SignalProducer(ABC):
    """Abstract base for one independent signal source.

    The aggregator only ever calls ``settle()``, which never raises for
    producer-side problems. ``score()`` is the capability each adapter
    implements and may raise freely.
    """

    #: Signal name this producer feeds (a ``SignalName`` value).
    name: str = ""
    #: ``SubjectRequest`` field that must be present, or None.
    required_input: str | None = None
    #: Diagnostic used when ``required_input`` is absent.
    missing_input_reason: str = "Required input not provided"

    timeout_seconds: float = 15.0

    @abstractmethod
    async def score(self, request: SubjectRequest) -> SignalReading:
        """Return a [0, 1] reading for the subject or raise."""

    def accepts(self, request: SubjectRequest) -> bool:
        """Return True when the request carries this producer's required input."""
        if self.required_input is None:
            return True
        return bool(getattr(request, self.required_input, None))

    async def settle(self, request: SubjectRequest) -> SignalOutcome:
        """Invoke ``score`` under this producer's timeout and classify the result."""
        if not self.accepts(request):
            return SignalOutcome.not_attempted(self.name, self.missing_input_reason)

        try:
            reading = await asyncio.wait_for(self.score(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            return SignalOutcome.failed(self.name, f"timed out after {self.timeout_seconds:.1f}s")
        except Exception as exc:
            return SignalOutcome.failed(self.name, f"{type(exc).__name__}: {exc}")

        value = getattr(reading, "score", None)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            return SignalOutcome.failed(self.name, f"invalid score {value!r}")
        return SignalOutcome.ok(self.name, reading)

    async def close(self) -> None:
        """Release any open connections."""


class HttpSignalProducer(SignalProducer):
    """Producer backed by a remote scoring endpoint.

    The endpoint answers with ``{"score": float, "breakdown": {...}}``.
    Subclasses supply the request parameters; path placeholders are filled
    from the ``SubjectRequest`` fields.
    """

    def __init__(self, source: SourceConfig) -> None:
        self.source = source
        self.timeout_seconds = source.timeout_seconds
        self._client: httpx.AsyncClient | None = None
        self._rate_limiter: TokenBucket | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self.source.api_key:
                headers["Authorization"] = f"Bearer {self.source.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.source.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.source.timeout_seconds),
            )
        return self._client

    async def _get_rate_limiter(self) -> TokenBucket:
        if self._rate_limiter is None:
            self._rate_limiter = await TokenBucket.get_instance(self.name, self.source.rate_limit_rpm)
        return self._rate_limiter

    def build_params(self, request: SubjectRequest) -> dict[str, Any]:
        """Query parameters for the scoring call."""
        return {}

    def parse_reading(self, payload: Any) -> SignalReading:
        """Turn the endpoint payload into a reading."""
        if not isinstance(payload, dict) or "score" not in payload:
            raise PermanentError(f"{self.name} response missing 'score'")
        try:
            value = float(payload["score"])
        except (TypeError, ValueError) as exc:
            raise PermanentError(f"{self.name} response has non-numeric score: {payload['score']!r}") from exc
        breakdown = payload.get("breakdown") or {}
        details = {k: v for k, v in payload.items() if k not in ("score", "breakdown")}
        return SignalReading(score=value, breakdown=breakdown, details=details)

    async def score(self, request: SubjectRequest) -> SignalReading:
        path = self.source.path.format(
            subject_id=request.subject_id,
            wallet_address=request.wallet_address or "",
            social_handle=request.social_handle or "",
        )
        limiter = await self._get_rate_limiter()
        await limiter.acquire()
        client = await self._get_client()
        payload = await self._make_request(client, "GET", path, params=self.build_params(request))
        return self.parse_reading(payload)

    @with_retry()
    async def _make_request(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs,
    ) -> Any:
        """Make HTTP request with retry and error classification.

        Raises:
            TransientError: For retry-able errors
            PermanentError: For non-retry-able errors
        """
        try:
            resp = await client.request(method, url, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise classify_http_error(
                e.response.status_code,
                f"{method} {url} failed: {e.response.text[:200]}",
            ) from e
        except httpx.TimeoutException as e:
            raise TransientError(f"{method} {url} timed out: {e}") from e
        except httpx.NetworkError as e:
            raise TransientError(f"{method} {url} network error: {e}") from e
        except ValueError as e:
            raise PermanentError(f"{method} {url} returned invalid JSON: {e}") from e

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
