"""Reputation module types: shared dataclasses and enums."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


# ---------------------------------------------------------------------------
# Signal enums
# ---------------------------------------------------------------------------


class SignalName(str, Enum):
    """Signals that feed the composite score."""

    SENTIMENT = "sentiment"  # social text signal
    TIME_HELD = "time_held"  # asset holding duration
    GUARDIAN_VOTING = "guardian_voting"  # governance participation


class SignalStatus(str, Enum):
    """How a single producer invocation settled."""

    OK = "ok"
    FAILED = "failed"
    NOT_ATTEMPTED = "not_attempted"


def _frozen(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SubjectRequest:
    """The identity being scored plus optional per-channel identifiers."""

    subject_id: str
    wallet_address: str | None = None
    social_handle: str | None = None  # without the leading "@"

    def __post_init__(self) -> None:
        if not self.subject_id:
            raise ValueError("subject_id is required")
        if self.social_handle and self.social_handle.startswith("@"):
            object.__setattr__(self, "social_handle", self.social_handle[1:])


# ---------------------------------------------------------------------------
# Producer results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SignalReading:
    """A successful producer result: a [0, 1] score and its breakdown."""

    score: float
    breakdown: Mapping[str, Any] = field(default_factory=dict)
    details: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "breakdown", _frozen(self.breakdown))
        object.__setattr__(self, "details", _frozen(self.details))


@dataclass(frozen=True)
class SignalOutcome:
    """Settled outcome of one producer invocation.

    Use the ``ok`` / ``failed`` / ``not_attempted`` constructors rather than
    building instances directly.
    """

    signal: str
    status: SignalStatus
    score: float = 0.0
    breakdown: Mapping[str, Any] = field(default_factory=dict)
    reason: str = ""

    @classmethod
    def ok(cls, signal: str, reading: SignalReading) -> "SignalOutcome":
        return cls(signal=signal, status=SignalStatus.OK, score=reading.score, breakdown=reading.breakdown)

    @classmethod
    def failed(cls, signal: str, reason: str) -> "SignalOutcome":
        return cls(signal=signal, status=SignalStatus.FAILED, reason=reason)

    @classmethod
    def not_attempted(cls, signal: str, reason: str) -> "SignalOutcome":
        return cls(signal=signal, status=SignalStatus.NOT_ATTEMPTED, reason=reason)

    @property
    def is_ok(self) -> bool:
        return self.status is SignalStatus.OK


# ---------------------------------------------------------------------------
# Composite score
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Eligibility:
    """Eligibility verdict with advisory reasons."""

    is_eligible: bool
    threshold: float
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class ScoreMetadata:
    """Who was scored, with which identifiers, and when."""

    subject_id: str
    computed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    wallet_address: str | None = None
    social_handle: str | None = None


@dataclass(frozen=True)
class ReputationScore:
    """Composite reputation result for one subject.

    ``components`` folds failed and skipped signals to 0.0; ``signal_status``
    records which of those actually happened.
    """

    overall: float  # 0-1, rounded to 3 decimals
    components: Mapping[str, float]
    eligibility: Eligibility
    metadata: ScoreMetadata
    signal_status: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "components", _frozen(self.components))
        object.__setattr__(self, "signal_status", _frozen(self.signal_status))

    @property
    def is_eligible(self) -> bool:
        return self.eligibility.is_eligible

    def to_dict(self) -> dict[str, Any]:
        """Render a JSON-ready dict."""
        metadata: dict[str, Any] = {
            "subject_id": self.metadata.subject_id,
            "computed_at": self.metadata.computed_at.isoformat(),
        }
        if self.metadata.wallet_address:
            metadata["wallet_address"] = self.metadata.wallet_address
        if self.metadata.social_handle:
            metadata["social_handle"] = self.metadata.social_handle

        return {
            "overall": self.overall,
            "components": dict(self.components),
            "eligibility": {
                "is_eligible": self.eligibility.is_eligible,
                "threshold": self.eligibility.threshold,
                "reasons": list(self.eligibility.reasons),
            },
            "metadata": metadata,
            "signal_status": dict(self.signal_status),
        }
