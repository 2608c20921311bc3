"""Eligibility reasons: advisory text explaining a composite score."""

from __future__ import annotations

from typing import Mapping

from reputation.config import ScoringThresholds
from reputation.types import SignalName

# Fixed diagnostic per signal, appended when the component is under its minimum
SIGNAL_REASONS: dict[str, str] = {
    SignalName.SENTIMENT.value: "Twitter sentiment score below threshold",
    SignalName.TIME_HELD.value: "Insufficient long-term NFT holding",
    SignalName.GUARDIAN_VOTING.value: "Limited governance participation",
}


def build_reasons(
    components: Mapping[str, float],
    overall: float,
    thresholds: ScoringThresholds,
) -> list[str]:
    """Build eligibility reasons for a scored subject.

    Args:
        components: Per-signal component scores
        overall: Rounded composite score
        thresholds: Eligibility threshold and per-signal minimums

    Returns:
        Reasons in signal order, followed by the overall message if applicable
    """
    reasons: list[str] = []
    minimums = thresholds.minimums()

    for signal, value in components.items():
        minimum = minimums.get(signal)
        if minimum is not None and value < minimum:
            reasons.append(SIGNAL_REASONS.get(signal, f"{signal} score below threshold"))

    if overall < thresholds.eligibility:
        reasons.append(f"Overall score {overall:.3f} below threshold {thresholds.eligibility}")

    return reasons
