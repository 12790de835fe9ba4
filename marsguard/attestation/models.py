"""Pydantic models for incident attestations and the score ledger.

Attestations are write-once: created by the AttestationService, accepted
exactly once by a NullifierRegistry, immutable thereafter. Reporter
secrets never appear in any of these records.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from marsguard.shared.determinism import compute_hash


# ---------------------------------------------------------------------------
# Severity -> impact
# ---------------------------------------------------------------------------


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


SEVERITY_IMPACT: dict[str, int] = {
    Severity.LOW.value: -5,
    Severity.MEDIUM.value: -15,
    Severity.HIGH.value: -25,
    Severity.CRITICAL.value: -40,
}

DEFAULT_IMPACT = -10


def impact_for_severity(severity: str | Severity | None) -> int:
    """Score delta for a severity label; unknown labels map to DEFAULT_IMPACT."""
    if isinstance(severity, Severity):
        severity = severity.value
    key = (severity or "").strip().lower()
    return SEVERITY_IMPACT.get(key, DEFAULT_IMPACT)


# ---------------------------------------------------------------------------
# Attestation records
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IncidentIdentity(BaseModel):
    """What is being reported. Hashed to an event id."""

    model_config = ConfigDict(frozen=True)

    operator_id: str = Field(min_length=1)
    incident_kind: str = Field(min_length=1)
    window_timestamp: int | None = None


class Attestation(BaseModel):
    """An incident report as stored by the registry."""

    model_config = ConfigDict(frozen=True)

    nullifier: str = Field(min_length=1)
    operator_id: str = Field(min_length=1)
    impact_delta: int
    reason_text: str = ""
    accepted_at: datetime = Field(default_factory=_utcnow)

    def receipt_id(self) -> str:
        """Transaction-like identifier for this record."""
        return "0x" + compute_hash(self)


class AttestationReceipt(BaseModel):
    """Returned by a registry when an attestation is accepted."""

    model_config = ConfigDict(frozen=True)

    receipt_id: str
    nullifier: str
    operator_id: str
    impact_delta: int
    accepted_at: datetime

    @classmethod
    def for_attestation(cls, attestation: Attestation) -> AttestationReceipt:
        return cls(
            receipt_id=attestation.receipt_id(),
            nullifier=attestation.nullifier,
            operator_id=attestation.operator_id,
            impact_delta=attestation.impact_delta,
            accepted_at=attestation.accepted_at,
        )


class ScoreEvent(BaseModel):
    """One entry of a validator's score history."""

    reason: str
    delta: int
    timestamp: datetime


__all__ = [
    "DEFAULT_IMPACT",
    "SEVERITY_IMPACT",
    "Attestation",
    "AttestationReceipt",
    "IncidentIdentity",
    "ScoreEvent",
    "Severity",
    "impact_for_severity",
]
