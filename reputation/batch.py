"""Batch scoring: one well-formed result per subject, in input order."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Sequence

from reputation.aggregator import ReputationAggregator
from reputation.types import (
    Eligibility,
    ReputationScore,
    ScoreMetadata,
    SignalStatus,
    SubjectRequest,
)

logger = logging.getLogger(__name__)


def failed_score(
    subject_id: str,
    message: str,
    threshold: float,
    signals: Sequence[str] = (),
) -> ReputationScore:
    """Sentinel result for a subject whose analysis failed outright."""
    return ReputationScore(
        overall=0.0,
        components={signal: 0.0 for signal in signals},
        eligibility=Eligibility(
            is_eligible=False,
            threshold=threshold,
            reasons=(f"Analysis failed: {message}",),
        ),
        metadata=ScoreMetadata(subject_id=subject_id, computed_at=datetime.now(timezone.utc)),
        signal_status={signal: SignalStatus.FAILED.value for signal in signals},
    )


class BatchRunner:
    """Scores many subjects concurrently with a bounded fan-out.

    A failure for one subject becomes a ``failed_score`` at that position and
    never affects the others.
    """

    def __init__(self, aggregator: ReputationAggregator, *, max_concurrency: int | None = None) -> None:
        limit = max_concurrency if max_concurrency is not None else aggregator.get_config().max_concurrency
        if limit <= 0:
            raise ValueError("max_concurrency must be > 0")
        self.aggregator = aggregator
        self.max_concurrency = limit

    async def analyze_batch(self, subjects: Sequence[SubjectRequest]) -> list[ReputationScore]:
        """Score every subject; output order matches input order."""
        if not subjects:
            return []

        logger.info("Starting batch analysis for %d subjects", len(subjects))
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_one(subject: SubjectRequest) -> ReputationScore:
            async with semaphore:
                return await self.aggregator.compute_request(subject)

        # Cancelling the batch itself raises out of gather; a CancelledError in
        # the results belongs to one subject only
        results = await asyncio.gather(*(run_one(s) for s in subjects), return_exceptions=True)

        config = self.aggregator.get_config()
        signals = list(config.weights.as_dict())
        scores: list[ReputationScore] = []
        failures = 0
        for subject, result in zip(subjects, results):
            if isinstance(result, BaseException):
                failures += 1
                logger.error("Failed to analyze subject %s: %s", subject.subject_id, result)
                scores.append(
                    failed_score(
                        subject.subject_id,
                        str(result) or type(result).__name__,
                        config.thresholds.eligibility,
                        signals,
                    )
                )
            else:
                scores.append(result)

        logger.info("Batch analysis finished: %d ok, %d failed", len(scores) - failures, failures)
        return scores
