"""In-process NullifierRegistry backed by a dict."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import bittensor as bt

from marsguard.attestation.models import Attestation, AttestationReceipt
from marsguard.errors import DuplicateNullifier


class InMemoryRegistry:
    """Single-process registry. The lock makes check-and-insert atomic."""

    def __init__(self) -> None:
        self._records: dict[str, Attestation] = {}
        self._lock = asyncio.Lock()

    async def has_attested(self, nullifier: str) -> bool:
        return nullifier in self._records

    async def accept(self, attestation: Attestation) -> AttestationReceipt:
        async with self._lock:
            if attestation.nullifier in self._records:
                raise DuplicateNullifier(attestation.nullifier)
            stored = attestation.model_copy(
                update={"accepted_at": datetime.now(timezone.utc)},
            )
            self._records[attestation.nullifier] = stored

        bt.logging.debug({"registry": {
            "event": "accepted",
            "backend": "memory",
            "operator_id": stored.operator_id,
        }})
        return AttestationReceipt.for_attestation(stored)

    async def get_attestation(self, nullifier: str) -> Attestation | None:
        return self._records.get(nullifier)

    async def list_attestations(
        self, operator_id: str | None = None,
    ) -> list[Attestation]:
        # dicts preserve insertion order == acceptance order
        return [
            a for a in self._records.values()
            if operator_id is None or a.operator_id == operator_id
        ]

    def __len__(self) -> int:
        return len(self._records)


__all__ = ["InMemoryRegistry"]
