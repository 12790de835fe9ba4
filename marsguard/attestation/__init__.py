"""Anonymous, replay-resistant incident attestations.

A reporter's secret and the incident identity are hashed into a
nullifier; the registry accepts at most one attestation per nullifier and
never stores the secret itself.
"""

from .ledger import INITIAL_LEDGER_SCORE, ScoreLedger
from .models import (
    DEFAULT_IMPACT,
    SEVERITY_IMPACT,
    Attestation,
    AttestationReceipt,
    IncidentIdentity,
    ScoreEvent,
    Severity,
    impact_for_severity,
)
from .nullifier import derive_event_id, derive_nullifier
from .retry import NO_RETRY, RetryPolicy
from .service import AttestationService, ReporterContext

__all__ = [
    "DEFAULT_IMPACT",
    "INITIAL_LEDGER_SCORE",
    "NO_RETRY",
    "SEVERITY_IMPACT",
    "Attestation",
    "AttestationReceipt",
    "AttestationService",
    "IncidentIdentity",
    "ReporterContext",
    "RetryPolicy",
    "ScoreEvent",
    "ScoreLedger",
    "Severity",
    "derive_event_id",
    "derive_nullifier",
    "impact_for_severity",
]
