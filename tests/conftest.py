"""Shared test fixtures for pytest.

Provides a credential-complete config and scriptable producer doubles.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from reputation.config import WeightedConfig, merge_config
from reputation.producers.base import SignalProducer, TokenBucket
from reputation.types import SignalName, SignalReading, SubjectRequest


class FakeProducer(SignalProducer):
    """Producer double with a scripted result and an invocation counter."""

    def __init__(
        self,
        name: str,
        score: float = 0.5,
        *,
        required_input: str | None = None,
        missing_input_reason: str = "Required input not provided",
        error: BaseException | None = None,
        delay: float = 0.0,
        timeout_seconds: float = 1.0,
        breakdown: dict[str, Any] | None = None,
    ) -> None:
        self.name = name
        self.value = score
        self.required_input = required_input
        self.missing_input_reason = missing_input_reason
        self.error = error
        self.delay = delay
        self.timeout_seconds = timeout_seconds
        self.breakdown = breakdown or {}
        self.calls: list[SubjectRequest] = []
        self.closed = False

    async def score(self, request: SubjectRequest) -> SignalReading:
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return SignalReading(score=self.value, breakdown=self.breakdown)

    async def close(self) -> None:
        self.closed = True

    @property
    def call_count(self) -> int:
        return len(self.calls)


@pytest.fixture
def config() -> WeightedConfig:
    """Default weights/thresholds with dummy credentials filled in."""
    return merge_config(
        WeightedConfig(),
        {
            "sentiment_source": {"api_key": "test-bearer"},
            "holding_source": {"api_key": "test-chain-key"},
        },
    )


@pytest.fixture
def make_producers():
    """Build the three standard producers with per-signal scores or errors."""

    def _make(
        sentiment: float | BaseException = 1.0,
        time_held: float | BaseException = 1.0,
        guardian_voting: float | BaseException = 0.0,
    ) -> dict[str, FakeProducer]:
        def build(name: str, value: float | BaseException, **kwargs: Any) -> FakeProducer:
            if isinstance(value, BaseException):
                return FakeProducer(name, error=value, **kwargs)
            return FakeProducer(name, value, **kwargs)

        return {
            SignalName.SENTIMENT.value: build(
                SignalName.SENTIMENT.value,
                sentiment,
                required_input="social_handle",
                missing_input_reason="No Twitter handle provided",
            ),
            SignalName.TIME_HELD.value: build(
                SignalName.TIME_HELD.value,
                time_held,
                required_input="wallet_address",
                missing_input_reason="No wallet address provided",
            ),
            SignalName.GUARDIAN_VOTING.value: build(SignalName.GUARDIAN_VOTING.value, guardian_voting),
        }

    return _make


@pytest.fixture(autouse=True)
def clear_token_bucket_instances():
    """Clear TokenBucket shared instances before each test to prevent interference."""
    TokenBucket._instances.clear()
    TokenBucket._lock = None
    yield
    TokenBucket._instances.clear()
    TokenBucket._lock = None
