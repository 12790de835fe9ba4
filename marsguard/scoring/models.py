"""Pydantic models for validator telemetry and derived risk scores.

ValidatorTelemetry is the externally owned input, frozen for the
duration of a fetch cycle. RiskScore is derived on every refresh and is
never persisted as a source of truth.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class Classification(str, Enum):
    """Three-tier label derived from a numeric score."""

    SAFE = "safe"
    MONITOR = "monitor"
    UNSAFE = "unsafe"

    @property
    def color(self) -> str:
        return _COLORS[self]


_COLORS = {
    Classification.SAFE: "green",
    Classification.MONITOR: "yellow",
    Classification.UNSAFE: "red",
}


# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------


def _non_negative_int(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


class ValidatorTelemetry(BaseModel):
    """One validator's telemetry for the current observation window.

    Missing or malformed numeric fields coerce to score-neutral values so
    that scoring never fails on partial feeds.
    """

    model_config = ConfigDict(frozen=True)

    operator_id: str = Field(min_length=1)
    moniker: str = ""
    status: str = ""
    jailed: bool = False
    slashed: bool = False
    uptime_pct: float = 0.0
    missed_blocks: int = 0
    recent_reward_count: int = 0
    recent_vote_count: int = 0
    voting_power: float = 0.0

    @field_validator("uptime_pct", mode="before")
    @classmethod
    def _clamp_uptime(cls, value: Any) -> float:
        try:
            pct = float(value)
        except (TypeError, ValueError):
            return 0.0
        if pct != pct:  # NaN
            return 0.0
        return max(0.0, min(100.0, pct))

    @field_validator("missed_blocks", "recent_reward_count", "recent_vote_count", mode="before")
    @classmethod
    def _coerce_counts(cls, value: Any) -> int:
        return _non_negative_int(value)

    @field_validator("jailed", "slashed", mode="before")
    @classmethod
    def _coerce_flags(cls, value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "y", "on")
        return bool(value)

    @field_validator("voting_power", mode="before")
    @classmethod
    def _coerce_power(cls, value: Any) -> float:
        try:
            return max(0.0, float(value))
        except (TypeError, ValueError):
            return 0.0

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> ValidatorTelemetry:
        """Normalize a Cosmos staking validator record."""
        from .telemetry import normalize_record

        return normalize_record(record)


# ---------------------------------------------------------------------------
# Derived outputs
# ---------------------------------------------------------------------------


class RiskScore(BaseModel):
    """Bounded integer score plus its classification."""

    model_config = ConfigDict(frozen=True)

    value: int = Field(ge=0, le=100)
    classification: Classification

    @property
    def color(self) -> str:
        return self.classification.color


class ActionMessage(BaseModel):
    """Staker-facing recommendation for a score band."""

    title: str
    action: str
    color: str
    show_alert: bool = False


__all__ = [
    "ActionMessage",
    "Classification",
    "RiskScore",
    "ValidatorTelemetry",
]
