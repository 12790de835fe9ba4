"""Risk score computation: fixed base-plus-adjustment rules.

Pure and total. Every adjustment is independent and additive, applied in
a fixed order, then clamped to [MIN_SCORE, MAX_SCORE]. ``classify`` is the
only place a score is mapped to a label; colors, action messages and
HTTP views all go through it.
"""

from __future__ import annotations

from typing import Iterable

from .models import ActionMessage, Classification, RiskScore, ValidatorTelemetry

BASE_SCORE = 80
MIN_SCORE = 0
MAX_SCORE = 100

JAILED_PENALTY = 40
SLASHED_PENALTY = 50
HIGH_UPTIME_THRESHOLD = 99.9
HIGH_UPTIME_BONUS = 10
MISSED_BLOCKS_SEVERE = 10
MISSED_BLOCKS_SEVERE_PENALTY = 20
MISSED_BLOCKS_MINOR = 3
MISSED_BLOCKS_MINOR_PENALTY = 10
REWARD_ACTIVITY_BONUS = 5
GOVERNANCE_BONUS = 5

SAFE_THRESHOLD = 80
MONITOR_THRESHOLD = 50


def compute_raw_score(telemetry: ValidatorTelemetry) -> int:
    """Sum of base and adjustments before clamping."""
    score = BASE_SCORE

    if telemetry.jailed:
        score -= JAILED_PENALTY

    if telemetry.slashed:
        score -= SLASHED_PENALTY

    if telemetry.uptime_pct >= HIGH_UPTIME_THRESHOLD:
        score += HIGH_UPTIME_BONUS

    if telemetry.missed_blocks > MISSED_BLOCKS_SEVERE:
        score -= MISSED_BLOCKS_SEVERE_PENALTY
    elif telemetry.missed_blocks > MISSED_BLOCKS_MINOR:
        score -= MISSED_BLOCKS_MINOR_PENALTY

    if telemetry.recent_reward_count > 0:
        score += REWARD_ACTIVITY_BONUS

    if telemetry.recent_vote_count > 0:
        score += GOVERNANCE_BONUS

    return score


def clamp_score(value: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, int(value)))


def classify(value: int) -> Classification:
    """Map a score to Safe / Monitor / Unsafe."""
    if value >= SAFE_THRESHOLD:
        return Classification.SAFE
    if value >= MONITOR_THRESHOLD:
        return Classification.MONITOR
    return Classification.UNSAFE


def score(telemetry: ValidatorTelemetry) -> RiskScore:
    """Compute the bounded risk score for one validator."""
    value = clamp_score(compute_raw_score(telemetry))
    return RiskScore(value=value, classification=classify(value))


def score_all(telemetry: Iterable[ValidatorTelemetry]) -> dict[str, RiskScore]:
    """Score a snapshot keyed by operator id."""
    return {t.operator_id: score(t) for t in telemetry}


_ACTIONS = {
    Classification.SAFE: ActionMessage(
        title="Validator Health: Excellent",
        action=(
            "This validator is healthy. Uptime and performance are excellent. "
            "You can stake confidently. No action is needed."
        ),
        color=Classification.SAFE.color,
    ),
    Classification.MONITOR: ActionMessage(
        title="Validator Health: Moderate Risk",
        action=(
            "This validator's status requires monitoring. Some incidents may be "
            "affecting performance. Review its performance history and consider "
            "reducing stake if the issue persists."
        ),
        color=Classification.MONITOR.color,
    ),
    Classification.UNSAFE: ActionMessage(
        title="Validator Health: High Risk",
        action=(
            "This validator is unstable or has been flagged. Unstake from this "
            "validator and choose a safer validator to delegate to."
        ),
        color=Classification.UNSAFE.color,
        show_alert=True,
    ),
}


def next_action(value: int) -> ActionMessage:
    """Recommended staker action for a score."""
    return _ACTIONS[classify(value)]


def status_text(status: str, jailed: bool) -> str:
    """Human-readable bond status."""
    if jailed:
        return "Jailed"
    if status == "BOND_STATUS_BONDED":
        return "Active"
    if status == "BOND_STATUS_UNBONDED":
        return "Unbonded"
    if status == "BOND_STATUS_UNBONDING":
        return "Unbonding"
    return "Unknown"


__all__ = [
    "BASE_SCORE",
    "MAX_SCORE",
    "MIN_SCORE",
    "clamp_score",
    "classify",
    "compute_raw_score",
    "next_action",
    "score",
    "score_all",
    "status_text",
]
