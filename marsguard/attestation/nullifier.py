"""Event id and nullifier derivation.

The nullifier is a domain-separated hash of (reporter secret, event id).
It blocks a reporter from attesting the same incident twice without the
registry ever storing the secret. It only prevents trivial replay: a
registry operator who can enumerate candidate secrets (e.g. wallet
addresses) can recompute nullifiers for known event ids.
"""

from __future__ import annotations

from typing import Any

from marsguard.shared.determinism import compute_hash

from .models import IncidentIdentity

EVENT_DOMAIN = "marsguard.event.v1"
NULLIFIER_DOMAIN = "marsguard.nullifier.v1"


def derive_event_id(
    operator_id: str,
    incident_kind: str,
    window_timestamp: int | None = None,
) -> str:
    """Deterministic id for an incident.

    Without a window the id covers (operator, kind), so a reporter gets one
    report per kind per validator.
    """
    identity = IncidentIdentity(
        operator_id=operator_id,
        incident_kind=incident_kind,
        window_timestamp=window_timestamp,
    )
    return event_id_for(identity)


def event_id_for(identity: IncidentIdentity) -> str:
    payload: dict[str, Any] = {
        "domain": EVENT_DOMAIN,
        "operator_id": identity.operator_id,
        "incident_kind": identity.incident_kind,
    }
    if identity.window_timestamp is not None:
        payload["window_timestamp"] = int(identity.window_timestamp)
    return compute_hash(payload)


def derive_nullifier(reporter_secret: str | bytes, event_id: str) -> str:
    """Deterministic nullifier for (secret, event)."""
    if isinstance(reporter_secret, bytes):
        reporter_secret = reporter_secret.hex()
    if not reporter_secret:
        raise ValueError("reporter_secret must be non-empty")
    return "0x" + compute_hash({
        "domain": NULLIFIER_DOMAIN,
        "secret": reporter_secret,
        "event_id": event_id,
    })


__all__ = ["derive_event_id", "derive_nullifier", "event_id_for"]
