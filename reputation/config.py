"""Scoring configuration with code defaults and partial overrides.

This module provides an immutable configuration object that:
- Works offline with hardcoded weights and thresholds
- Reads producer credentials from the environment by name
- Merges partial overrides leaf-by-leaf into a new instance
- Fails fast when a required credential is missing

Usage:
    from reputation.config import DEFAULT_CONFIG, merge_config, validate_config

    config = merge_config(DEFAULT_CONFIG, {"weights": {"sentiment": 0.4}})
    validate_config(config)
"""

from __future__ import annotations

import dataclasses
import logging
import math
import os
from dataclasses import dataclass, field
from typing import Any, Mapping

from reputation.types import SignalName

logger = logging.getLogger(__name__)

ONE_YEAR_SECONDS = 365 * 24 * 60 * 60

# Azuki collection on Ethereum mainnet
DEFAULT_COLLECTION_CONTRACT = "0xed5af388653567af2f388e6224dc7c4b3241c544"


class ConfigInvalidError(ValueError):
    """Configuration is incomplete or malformed after merge."""


class MissingCredentialError(ConfigInvalidError):
    """A producer that needs a credential has none."""

    def __init__(self, env_var: str, source: str) -> None:
        super().__init__(f"{env_var} is required")
        self.env_var = env_var
        self.source = source


# ---------------------------------------------------------------------------
# Config sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SignalWeights:
    """Per-signal weights. Conventionally sum to 1.0 but not required to."""

    sentiment: float = 0.3
    time_held: float = 0.5
    guardian_voting: float = 0.2

    def as_dict(self) -> dict[str, float]:
        return {
            SignalName.SENTIMENT.value: self.sentiment,
            SignalName.TIME_HELD.value: self.time_held,
            SignalName.GUARDIAN_VOTING.value: self.guardian_voting,
        }


@dataclass(frozen=True)
class ScoringThresholds:
    """Eligibility cut-off plus per-signal minimum contributions."""

    eligibility: float = 0.6
    long_term_holding_seconds: int = ONE_YEAR_SECONDS
    min_sentiment: float = 0.4
    min_time_held: float = 0.3
    min_guardian_voting: float = 0.2

    def minimums(self) -> dict[str, float]:
        return {
            SignalName.SENTIMENT.value: self.min_sentiment,
            SignalName.TIME_HELD.value: self.min_time_held,
            SignalName.GUARDIAN_VOTING.value: self.min_guardian_voting,
        }


@dataclass(frozen=True)
class SourceConfig:
    """Connection settings for one remote signal source.

    ``api_key`` is resolved from ``api_key_env`` by ``default_config``.
    Do not log it.
    """

    base_url: str
    path: str
    api_key: str = field(default="", repr=False)
    api_key_env: str = ""
    credential_required: bool = True
    timeout_seconds: float = 15.0
    rate_limit_rpm: int = 60
    max_retries: int = 2


@dataclass(frozen=True)
class WeightedConfig:
    """Immutable scoring configuration shared by an aggregator and its producers."""

    weights: SignalWeights = field(default_factory=SignalWeights)
    thresholds: ScoringThresholds = field(default_factory=ScoringThresholds)
    sentiment_source: SourceConfig = field(
        default_factory=lambda: SourceConfig(
            base_url="https://signals.mugen.local",
            path="/v1/sentiment/{social_handle}",
            api_key_env="SOCIAL_BEARER_TOKEN",
        )
    )
    holding_source: SourceConfig = field(
        default_factory=lambda: SourceConfig(
            base_url="https://signals.mugen.local",
            path="/v1/holdings/{wallet_address}",
            api_key_env="CHAIN_DATA_API_KEY",
        )
    )
    governance_source: SourceConfig = field(
        default_factory=lambda: SourceConfig(
            base_url="https://signals.mugen.local",
            path="/v1/governance/{subject_id}",
            api_key_env="GOVERNANCE_API_KEY",
            credential_required=False,
        )
    )
    collection_contract: str = DEFAULT_COLLECTION_CONTRACT
    network: str = "eth-mainnet"
    tweet_count: int = 50  # recent posts scored per sentiment call
    max_concurrency: int = 8


_SOURCE_FIELDS = ("sentiment_source", "holding_source", "governance_source")


def default_config(environ: Mapping[str, str] | None = None) -> WeightedConfig:
    """Build the code defaults with credentials taken from the environment.

    Args:
        environ: Environment mapping (default: ``os.environ``)

    Returns:
        A WeightedConfig; not validated (credentials may be empty)
    """
    env = os.environ if environ is None else environ
    base = WeightedConfig()
    resolved = {}
    for name in _SOURCE_FIELDS:
        source: SourceConfig = getattr(base, name)
        resolved[name] = dataclasses.replace(source, api_key=env.get(source.api_key_env, "").strip())
    return dataclasses.replace(base, **resolved)


# Process-wide default, built once at import
DEFAULT_CONFIG = default_config()


def merge_config(base: WeightedConfig, override: Mapping[str, Any] | WeightedConfig | None) -> WeightedConfig:
    """Merge a partial override into ``base`` leaf-by-leaf.

    Args:
        base: Config whose values fill every leaf the override leaves out
        override: Nested mapping shaped like WeightedConfig, or a full config

    Returns:
        A new WeightedConfig; ``base`` is never modified

    Raises:
        ConfigInvalidError: If the override names a field that does not exist
    """
    if override is None:
        return base
    if isinstance(override, WeightedConfig):
        return override
    return _merge_dataclass(base, override, path="config")


def _merge_dataclass(obj: Any, override: Mapping[str, Any], path: str) -> Any:
    if not isinstance(override, Mapping):
        raise ConfigInvalidError(f"{path} override must be a mapping, got {type(override).__name__}")

    known = {f.name for f in dataclasses.fields(obj)}
    unknown = sorted(set(override) - known)
    if unknown:
        raise ConfigInvalidError(f"Unknown {path} field(s): {', '.join(unknown)}")

    changes: dict[str, Any] = {}
    for key, value in override.items():
        current = getattr(obj, key)
        if dataclasses.is_dataclass(current) and not isinstance(value, type(current)):
            changes[key] = _merge_dataclass(current, value, path=f"{path}.{key}")
        else:
            changes[key] = value
    return dataclasses.replace(obj, **changes)


def validate_config(config: WeightedConfig) -> None:
    """Check that every required field is populated and sane.

    Raises:
        MissingCredentialError: If a source that needs a credential has none
        ConfigInvalidError: For malformed weights, thresholds or runtime knobs
    """
    for name in _SOURCE_FIELDS:
        source: SourceConfig = getattr(config, name)
        if source.credential_required and not source.api_key:
            raise MissingCredentialError(source.api_key_env or name, name)
        if not source.base_url:
            raise ConfigInvalidError(f"{name}.base_url is required")
        if not _is_number(source.timeout_seconds) or source.timeout_seconds <= 0:
            raise ConfigInvalidError(f"{name}.timeout_seconds must be > 0")
        if not _is_int(source.rate_limit_rpm) or source.rate_limit_rpm <= 0:
            raise ConfigInvalidError(f"{name}.rate_limit_rpm must be a positive integer")
        if not _is_int(source.max_retries) or source.max_retries < 0:
            raise ConfigInvalidError(f"{name}.max_retries must be an integer >= 0")

    weights = config.weights.as_dict()
    for signal, weight in weights.items():
        if not _is_number(weight) or weight < 0:
            raise ConfigInvalidError(f"weights.{signal} must be a finite number >= 0, got {weight!r}")

    total = sum(weights.values())
    if not math.isclose(total, 1.0, abs_tol=1e-9):
        logger.debug("Signal weights sum to %.3f (not 1.0)", total)

    thresholds = dataclasses.asdict(config.thresholds)
    for key, value in thresholds.items():
        if not _is_number(value):
            raise ConfigInvalidError(f"thresholds.{key} must be a finite number, got {value!r}")

    if not _is_int(config.max_concurrency) or config.max_concurrency <= 0:
        raise ConfigInvalidError("max_concurrency must be a positive integer")
    if not _is_int(config.tweet_count) or config.tweet_count <= 0:
        raise ConfigInvalidError("tweet_count must be a positive integer")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
