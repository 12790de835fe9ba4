"""NullifierRegistry protocol - pluggable durable storage for attestations.

Implementations: InMemoryRegistry (tests, single process),
FilesystemRegistry (local durable), HTTPNullifierRegistry (remote client).
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from marsguard.attestation.models import Attestation, AttestationReceipt


@runtime_checkable
class NullifierRegistry(Protocol):
    """At-most-one accepted attestation per nullifier.

    ``accept`` is atomic per nullifier: of any number of racing callers,
    one succeeds and the rest raise DuplicateNullifier. Implementations
    raise TransportFailure when the backing store is unreachable.
    """

    async def has_attested(self, nullifier: str) -> bool:
        """Whether an attestation with this nullifier has been accepted."""
        ...

    async def accept(self, attestation: Attestation) -> AttestationReceipt:
        """Store the attestation if its nullifier is unused."""
        ...

    async def get_attestation(self, nullifier: str) -> Attestation | None:
        """Fetch an accepted attestation by nullifier."""
        ...

    async def list_attestations(
        self, operator_id: str | None = None,
    ) -> list[Attestation]:
        """Accepted attestations in acceptance order, optionally per operator."""
        ...


__all__ = ["NullifierRegistry"]
