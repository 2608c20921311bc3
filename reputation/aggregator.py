"""Reputation aggregator: fans out to signal producers and reduces the results.

The aggregator is the main entry point. For one subject it:
1. Invokes every applicable producer concurrently
2. Waits for all of them to settle (no short-circuit on failure)
3. Folds settled outcomes into [0, 1] components
4. Computes the weighted composite and eligibility verdict
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Iterable, Mapping

from reputation.config import (
    DEFAULT_CONFIG,
    WeightedConfig,
    merge_config,
    validate_config,
)
from reputation.producers import SignalProducer, build_default_producers
from reputation.reasons import build_reasons
from reputation.types import (
    Eligibility,
    ReputationScore,
    ScoreMetadata,
    SignalName,
    SignalOutcome,
    SignalReading,
    SignalStatus,
    SubjectRequest,
)

logger = logging.getLogger(__name__)

ProducerFactory = Callable[[WeightedConfig], Mapping[str, SignalProducer]]

SCORE_DECIMALS = 3


class AggregationError(RuntimeError):
    """Unexpected failure while reducing settled outcomes for a subject."""

    def __init__(self, subject_id: str, cause: BaseException) -> None:
        super().__init__(f"Failed to calculate reputation for {subject_id}: {cause}")
        self.subject_id = subject_id
        self.cause = cause


def clamp_unit(value: float) -> float:
    return max(0.0, min(float(value), 1.0))


def fold_outcomes(outcomes: Iterable[SignalOutcome]) -> dict[str, float]:
    """Fold settled outcomes into component scores.

    Ok outcomes are clamped to [0, 1] and rounded; failed and not-attempted
    outcomes fold to 0.0. Never raises for a well-formed outcome.
    """
    components: dict[str, float] = {}
    for outcome in outcomes:
        if outcome.is_ok:
            components[outcome.signal] = round(clamp_unit(outcome.score), SCORE_DECIMALS)
        else:
            components[outcome.signal] = 0.0
    return components


def weighted_total(components: Mapping[str, float], weights: Mapping[str, float]) -> float:
    """Dot product of components and weights over the configured weight set."""
    return round(sum(components.get(signal, 0.0) * weight for signal, weight in weights.items()), SCORE_DECIMALS)


@dataclass(frozen=True)
class _Snapshot:
    """Config and the producers bound to it, swapped as one unit."""

    config: WeightedConfig
    producers: Mapping[str, SignalProducer]


class ReputationAggregator:
    """Composite reputation scorer.

    Usage::

        aggregator = ReputationAggregator({"weights": {"sentiment": 0.4}})
        score = await aggregator.compute_score(
            "user-123",
            wallet_address="0xabc...",
            social_handle="someone",
        )

        if score.is_eligible:
            ...
    """

    def __init__(
        self,
        config: WeightedConfig | Mapping[str, Any] | None = None,
        *,
        producers: Mapping[str, SignalProducer] | None = None,
        producer_factory: ProducerFactory | None = None,
    ) -> None:
        if isinstance(config, WeightedConfig):
            resolved = config
        else:
            resolved = merge_config(DEFAULT_CONFIG, config)
        validate_config(resolved)

        if producers is not None:
            fixed = dict(producers)
            self._factory: ProducerFactory = lambda _cfg: fixed
        else:
            self._factory = producer_factory or build_default_producers

        self._snapshot = _Snapshot(
            config=resolved,
            producers=MappingProxyType(dict(self._factory(resolved))),
        )

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    async def compute_score(
        self,
        subject_id: str,
        *,
        wallet_address: str | None = None,
        social_handle: str | None = None,
    ) -> ReputationScore:
        """Calculate the composite reputation score for one subject.

        Args:
            subject_id: Unique subject identifier (always required).
            wallet_address: Optional wallet; without it the holding signal is skipped.
            social_handle: Optional handle; without it the sentiment signal is skipped.

        Returns:
            A fresh, immutable ReputationScore.

        Raises:
            AggregationError: On an unexpected error outside producer execution.
        """
        request = SubjectRequest(
            subject_id=subject_id,
            wallet_address=wallet_address,
            social_handle=social_handle,
        )
        return await self.compute_request(request)

    async def compute_request(self, request: SubjectRequest) -> ReputationScore:
        """Same as ``compute_score`` but takes a prepared SubjectRequest."""
        snapshot = self._snapshot
        logger.debug("Starting reputation analysis for subject %s", request.subject_id)

        try:
            outcomes = await self._settle_all(snapshot, request)
            score = self._reduce(snapshot.config, request, outcomes)
        except Exception as exc:
            logger.error("Error calculating reputation for %s: %s", request.subject_id, exc)
            raise AggregationError(request.subject_id, exc) from exc

        logger.info(
            "Reputation for %s: %.3f (eligible=%s)",
            request.subject_id,
            score.overall,
            score.is_eligible,
        )
        return score

    async def score_signal(self, signal: SignalName | str, request: SubjectRequest) -> SignalReading:
        """Run one producer standalone and return its raw reading.

        Unlike ``compute_score`` this does not absorb failures.

        Raises:
            KeyError: If no producer is bound for ``signal``.
            ValueError: If the producer's required input is missing.
        """
        name = signal.value if isinstance(signal, SignalName) else signal
        producer = self._snapshot.producers.get(name)
        if producer is None:
            raise KeyError(f"No producer registered for signal {name!r}")
        if not producer.accepts(request):
            raise ValueError(f"{name}: {producer.missing_input_reason}")
        return await asyncio.wait_for(producer.score(request), timeout=producer.timeout_seconds)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_config(self) -> WeightedConfig:
        """Return the active config (immutable, safe to share)."""
        return self._snapshot.config

    @property
    def producers(self) -> Mapping[str, SignalProducer]:
        return self._snapshot.producers

    def update_config(self, override: WeightedConfig | Mapping[str, Any]) -> "ReputationAggregator":
        """Return a new aggregator bound to this config merged with ``override``.

        This aggregator, and any computation in flight on it, keeps its
        current snapshot. Validation errors leave everything untouched.
        """
        merged = merge_config(self._snapshot.config, override)
        return ReputationAggregator(merged, producer_factory=self._factory)

    async def close(self) -> None:
        """Close producer connections."""
        for producer in self._snapshot.producers.values():
            await producer.close()

    async def __aenter__(self) -> "ReputationAggregator":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _settle_all(self, snapshot: _Snapshot, request: SubjectRequest) -> list[SignalOutcome]:
        """Settle every configured signal; skipped ones are never invoked."""
        pending: list[Awaitable[SignalOutcome]] = []
        pending_signals: list[str] = []
        outcomes: list[SignalOutcome] = []

        for signal in snapshot.config.weights.as_dict():
            producer = snapshot.producers.get(signal)
            if producer is None:
                outcomes.append(SignalOutcome.not_attempted(signal, "No producer configured"))
            elif not producer.accepts(request):
                outcomes.append(SignalOutcome.not_attempted(signal, producer.missing_input_reason))
            else:
                pending.append(producer.settle(request))
                pending_signals.append(signal)

        # A producer cancelled from inside must not take its siblings down
        settled = await asyncio.gather(*pending, return_exceptions=True)
        for signal, result in zip(pending_signals, settled):
            if isinstance(result, BaseException):
                outcomes.append(SignalOutcome.failed(signal, f"{type(result).__name__}: {result}"))
            else:
                outcomes.append(result)

        for outcome in outcomes:
            if outcome.status is SignalStatus.FAILED:
                logger.warning("%s analysis failed for %s: %s", outcome.signal, request.subject_id, outcome.reason)
            elif outcome.status is SignalStatus.NOT_ATTEMPTED:
                logger.debug("%s skipped for %s: %s", outcome.signal, request.subject_id, outcome.reason)
        return outcomes

    def _reduce(
        self,
        config: WeightedConfig,
        request: SubjectRequest,
        outcomes: list[SignalOutcome],
    ) -> ReputationScore:
        weights = config.weights.as_dict()
        folded = fold_outcomes(outcomes)
        components = {signal: folded.get(signal, 0.0) for signal in weights}
        settled = {o.signal: o.status for o in outcomes}
        statuses = {signal: settled.get(signal, SignalStatus.NOT_ATTEMPTED).value for signal in weights}

        overall = weighted_total(components, weights)
        threshold = config.thresholds.eligibility
        reasons = build_reasons(components, overall, config.thresholds)

        return ReputationScore(
            overall=overall,
            components=components,
            eligibility=Eligibility(
                is_eligible=overall >= threshold,
                threshold=threshold,
                reasons=tuple(reasons),
            ),
            metadata=ScoreMetadata(
                subject_id=request.subject_id,
                computed_at=datetime.now(timezone.utc),
                wallet_address=request.wallet_address,
                social_handle=request.social_handle,
            ),
            signal_status=statuses,
        )
