"""Tests for order-preserving, failure-isolating batch scoring."""

from __future__ import annotations

import asyncio

import pytest

from reputation.aggregator import AggregationError, ReputationAggregator
from reputation.batch import BatchRunner, failed_score
from reputation.types import SubjectRequest


class FlakyAggregator(ReputationAggregator):
    """Aggregator whose computation raises for selected subjects."""

    def __init__(self, *args, failing: set[str], error: BaseException | None = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.failing = failing
        self.error = error

    async def compute_request(self, request: SubjectRequest):
        if request.subject_id in self.failing:
            raise self.error or AggregationError(request.subject_id, RuntimeError("reducer exploded"))
        return await super().compute_request(request)


# ---------------------------------------------------------------------------
# Sentinel
# ---------------------------------------------------------------------------


def test_failed_score_shape():
    score = failed_score("user-x", "boom", 0.6, ["sentiment", "time_held"])

    assert score.overall == 0.0
    assert score.is_eligible is False
    assert score.eligibility.threshold == 0.6
    assert score.eligibility.reasons == ("Analysis failed: boom",)
    assert dict(score.components) == {"sentiment": 0.0, "time_held": 0.0}
    assert dict(score.signal_status) == {"sentiment": "failed", "time_held": "failed"}
    assert score.metadata.subject_id == "user-x"


# ---------------------------------------------------------------------------
# Batch behaviour
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_batch_isolates_failing_subject(config, make_producers):
    """[A, B, C] with B failing yields three results in order, B a sentinel."""
    aggregator = FlakyAggregator(config, producers=make_producers(1.0, 1.0, 0.0), failing={"B"})
    runner = BatchRunner(aggregator)
    subjects = [
        SubjectRequest("A", wallet_address="0xa", social_handle="a"),
        SubjectRequest("B", wallet_address="0xb", social_handle="b"),
        SubjectRequest("C", wallet_address="0xc", social_handle="c"),
    ]

    results = await runner.analyze_batch(subjects)

    assert [r.metadata.subject_id for r in results] == ["A", "B", "C"]
    assert results[0].overall == 0.8
    assert results[2].overall == 0.8
    assert results[0].is_eligible and results[2].is_eligible

    sentinel = results[1]
    assert sentinel.overall == 0.0
    assert sentinel.is_eligible is False
    assert len(sentinel.eligibility.reasons) == 1
    assert sentinel.eligibility.reasons[0].startswith("Analysis failed:")
    assert "reducer exploded" in sentinel.eligibility.reasons[0]
    assert set(sentinel.components) == {"sentiment", "time_held", "guardian_voting"}


@pytest.mark.asyncio
async def test_batch_producer_failure_is_not_subject_failure(config, make_producers):
    """Producer errors degrade a subject's score; they don't turn it into a sentinel."""
    aggregator = ReputationAggregator(config, producers=make_producers(RuntimeError("down"), 1.0, 0.0))

    results = await BatchRunner(aggregator).analyze_batch([SubjectRequest("A", wallet_address="0xa", social_handle="a")])

    assert results[0].overall == 0.5
    assert not any(r.startswith("Analysis failed") for r in results[0].eligibility.reasons)


@pytest.mark.asyncio
async def test_batch_all_failing(config, make_producers):
    aggregator = FlakyAggregator(config, producers=make_producers(), failing={"A", "B"})

    results = await BatchRunner(aggregator).analyze_batch([SubjectRequest("A"), SubjectRequest("B")])

    assert len(results) == 2
    assert all(r.overall == 0.0 and not r.is_eligible for r in results)


@pytest.mark.asyncio
async def test_batch_subject_cancelled_internally_is_sentinel(config, make_producers):
    aggregator = FlakyAggregator(
        config, producers=make_producers(), failing={"B"}, error=asyncio.CancelledError()
    )
    subjects = [
        SubjectRequest("A", wallet_address="0xa", social_handle="a"),
        SubjectRequest("B"),
        SubjectRequest("C", wallet_address="0xc", social_handle="c"),
    ]

    results = await BatchRunner(aggregator).analyze_batch(subjects)

    assert [r.metadata.subject_id for r in results] == ["A", "B", "C"]
    assert results[0].overall == 0.8
    assert results[1].eligibility.reasons == ("Analysis failed: CancelledError",)
    assert results[2].overall == 0.8


@pytest.mark.asyncio
async def test_batch_cancellation_propagates(config, make_producers):
    producers = make_producers()
    producers["guardian_voting"].delay = 5.0
    producers["guardian_voting"].timeout_seconds = 10.0
    runner = BatchRunner(ReputationAggregator(config, producers=producers))

    task = asyncio.create_task(runner.analyze_batch([SubjectRequest("A"), SubjectRequest("B")]))
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_batch_empty(config, make_producers):
    aggregator = ReputationAggregator(config, producers=make_producers())

    assert await BatchRunner(aggregator).analyze_batch([]) == []


@pytest.mark.asyncio
async def test_batch_respects_concurrency_bound(config, make_producers):
    producers = make_producers(1.0, 1.0, 1.0)
    aggregator = ReputationAggregator(config, producers=producers)

    active = 0
    peak = 0
    original = aggregator.compute_request

    async def tracking(request):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        try:
            await asyncio.sleep(0.01)
            return await original(request)
        finally:
            active -= 1

    aggregator.compute_request = tracking  # type: ignore[method-assign]
    runner = BatchRunner(aggregator, max_concurrency=2)

    results = await runner.analyze_batch([SubjectRequest(f"user-{i}") for i in range(6)])

    assert len(results) == 6
    assert peak <= 2


def test_batch_default_concurrency_from_config(config, make_producers):
    aggregator = ReputationAggregator(config, producers=make_producers())

    assert BatchRunner(aggregator).max_concurrency == config.max_concurrency


def test_batch_rejects_zero_concurrency(config, make_producers):
    aggregator = ReputationAggregator(config, producers=make_producers())

    with pytest.raises(ValueError):
        BatchRunner(aggregator, max_concurrency=0)
