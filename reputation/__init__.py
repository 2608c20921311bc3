"""Composite reputation scoring.

Architecture:

    SubjectRequest
          │
    ┌─────┴──────┐
    │ Aggregator │  ← fans out to producers, waits for all to settle
    └─────┬──────┘
          │
    ┌─────┼──────────────┐
    ▼     ▼              ▼
 Sentiment  HoldingDuration  Governance
    │     │              │
    └─────┴──────────────┘
          │
    weighted composite + eligibility → ReputationScore

Submodules:
- producers:  signal producer interface and HTTP adapters
- aggregator: ReputationAggregator - per-subject fan-out and reduction
- batch:      BatchRunner - order-preserving, failure-isolating batches
- config:     WeightedConfig defaults, merge and validation
- reasons:    eligibility reason text
- types:      shared dataclasses and enums
"""

from __future__ import annotations

from typing import Any, Mapping

from reputation.aggregator import AggregationError, ReputationAggregator
from reputation.batch import BatchRunner, failed_score
from reputation.config import (
    DEFAULT_CONFIG,
    ConfigInvalidError,
    MissingCredentialError,
    ScoringThresholds,
    SignalWeights,
    SourceConfig,
    WeightedConfig,
    default_config,
    merge_config,
    validate_config,
)
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

SDK_VERSION = "1.0.0"


def create_aggregator(config: WeightedConfig | Mapping[str, Any] | None = None) -> ReputationAggregator:
    """Create an aggregator with default producers and optional overrides."""
    return ReputationAggregator(config)


async def calculate_quick_reputation(
    subject_id: str,
    wallet_address: str | None = None,
    social_handle: str | None = None,
    config: WeightedConfig | Mapping[str, Any] | None = None,
) -> ReputationScore:
    """One-shot scoring: build an aggregator, score one subject, close it."""
    async with ReputationAggregator(config) as aggregator:
        return await aggregator.compute_score(
            subject_id,
            wallet_address=wallet_address,
            social_handle=social_handle,
        )


__all__ = [
    "AggregationError",
    "BatchRunner",
    "ConfigInvalidError",
    "DEFAULT_CONFIG",
    "Eligibility",
    "MissingCredentialError",
    "ReputationAggregator",
    "ReputationScore",
    "SDK_VERSION",
    "ScoreMetadata",
    "ScoringThresholds",
    "SignalName",
    "SignalOutcome",
    "SignalReading",
    "SignalStatus",
    "SignalWeights",
    "SourceConfig",
    "SubjectRequest",
    "WeightedConfig",
    "calculate_quick_reputation",
    "create_aggregator",
    "default_config",
    "failed_score",
    "merge_config",
    "validate_config",
]
