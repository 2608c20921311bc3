"""Social sentiment signal adapter."""

from __future__ import annotations

from typing import Any

from reputation.config import WeightedConfig
from reputation.producers.base import HttpSignalProducer
from reputation.types import SignalName, SubjectRequest

MAX_TWEET_COUNT = 100  # upstream page limit


class SentimentProducer(HttpSignalProducer):
    """Scores a social handle's recent posts. Needs ``social_handle``."""

    name = SignalName.SENTIMENT.value
    required_input = "social_handle"
    missing_input_reason = "No Twitter handle provided"

    def __init__(self, config: WeightedConfig) -> None:
        super().__init__(config.sentiment_source)
        self.tweet_count = min(config.tweet_count, MAX_TWEET_COUNT)

    def build_params(self, request: SubjectRequest) -> dict[str, Any]:
        return {"tweet_count": self.tweet_count}
