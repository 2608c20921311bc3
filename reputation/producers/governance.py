"""Governance participation signal adapter."""

from __future__ import annotations

from reputation.config import WeightedConfig
from reputation.producers.base import HttpSignalProducer
from reputation.types import SignalName


class GovernanceProducer(HttpSignalProducer):
    """Scores voting and proposal activity. Keyed by ``subject_id`` alone."""

    name = SignalName.GUARDIAN_VOTING.value
    required_input = None

    def __init__(self, config: WeightedConfig) -> None:
        super().__init__(config.governance_source)
