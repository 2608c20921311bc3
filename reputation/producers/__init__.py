"""Signal producer adapters: abstract base and default wiring."""

from __future__ import annotations

from reputation.config import WeightedConfig
from reputation.producers.base import (
    HttpSignalProducer,
    PermanentError,
    ProducerError,
    SignalProducer,
    TransientError,
)
from reputation.producers.governance import GovernanceProducer
from reputation.producers.holding import HoldingDurationProducer
from reputation.producers.sentiment import SentimentProducer


def build_default_producers(config: WeightedConfig) -> dict[str, SignalProducer]:
    """Instantiate the three HTTP-backed producers bound to ``config``."""
    producers: list[SignalProducer] = [
        SentimentProducer(config),
        HoldingDurationProducer(config),
        GovernanceProducer(config),
    ]
    return {p.name: p for p in producers}


__all__ = [
    "GovernanceProducer",
    "HoldingDurationProducer",
    "HttpSignalProducer",
    "PermanentError",
    "ProducerError",
    "SentimentProducer",
    "SignalProducer",
    "TransientError",
    "build_default_producers",
]
