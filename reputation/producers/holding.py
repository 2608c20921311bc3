"""Asset holding-duration signal adapter."""

from __future__ import annotations

from typing import Any

from reputation.config import WeightedConfig
from reputation.producers.base import HttpSignalProducer
from reputation.types import SignalName, SubjectRequest


class HoldingDurationProducer(HttpSignalProducer):
    """Scores how long a wallet has held the configured collection.

    The long-term window and collection contract come from the scoring
    config so that a config update changes what the source evaluates.
    """

    name = SignalName.TIME_HELD.value
    required_input = "wallet_address"
    missing_input_reason = "No wallet address provided"

    def __init__(self, config: WeightedConfig) -> None:
        super().__init__(config.holding_source)
        self.contract = config.collection_contract
        self.network = config.network
        self.long_term_seconds = config.thresholds.long_term_holding_seconds

    def build_params(self, request: SubjectRequest) -> dict[str, Any]:
        return {
            "contract": self.contract,
            "network": self.network,
            "long_term_seconds": self.long_term_seconds,
        }
