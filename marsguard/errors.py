"""Exception taxonomy shared by the scoring, attestation and channel layers.

Four families:
- ExpectedRejection: normal outcomes surfaced to the caller (duplicate
  nullifier, already revealed, invalid index). Never retried automatically.
- TransportFailure: registry/ledger unavailable. Retryable at the caller's
  discretion, never reported as success.
- MalformedInput: input that cannot be recovered locally.
- AuthenticationMissing: no reporter secret or signing capability.
"""

from __future__ import annotations


class MarsGuardError(Exception):
    """Base class for all errors raised by this package."""


# ---------------------------------------------------------------------------
# Families
# ---------------------------------------------------------------------------


class ExpectedRejection(MarsGuardError):
    """A rejection that is a normal, user-facing outcome."""


class TransportFailure(MarsGuardError):
    """The backing registry or ledger could not be reached."""


class MalformedInput(MarsGuardError, ValueError):
    """Input that has no safe default."""


class AuthenticationMissing(MarsGuardError):
    """The operation needs a reporter secret or signer that is absent."""


# ---------------------------------------------------------------------------
# Registry / attestation
# ---------------------------------------------------------------------------


class DuplicateNullifier(ExpectedRejection):
    """The registry already holds an attestation for this nullifier."""

    def __init__(self, nullifier: str):
        super().__init__(f"nullifier already attested: {nullifier}")
        self.nullifier = nullifier


class AlreadyReported(ExpectedRejection):
    """The reporter has already submitted a report for this incident.

    ``after_transport_failure`` is set when the duplicate was observed on a
    retry that followed a transport failure in the same call, in which case
    the earlier attempt may have landed.
    """

    def __init__(self, nullifier: str, after_transport_failure: bool = False):
        super().__init__("You have already submitted a report for this incident")
        self.nullifier = nullifier
        self.after_transport_failure = after_transport_failure


class SubmissionFailed(TransportFailure):
    """Submission gave up after exhausting the retry policy."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class NotAuthenticated(AuthenticationMissing):
    """No reporter secret is available for the submission."""


# ---------------------------------------------------------------------------
# Channel
# ---------------------------------------------------------------------------


class AlreadyRevealed(ExpectedRejection):
    """The message at this index has already been revealed."""

    def __init__(self, index: int):
        super().__init__(f"message {index} already revealed")
        self.index = index


class InvalidIndex(ExpectedRejection, IndexError):
    """No message exists at this index."""

    def __init__(self, index: int, count: int):
        super().__init__(f"message index {index} out of range (count={count})")
        self.index = index
        self.count = count


class MalformedCiphertext(MalformedInput):
    """Ciphertext is missing the tagged-format marker or fails to decrypt."""


class RevealMismatch(MalformedInput):
    """Supplied plaintext does not match the stored ciphertext."""


__all__ = [
    "AlreadyReported",
    "AlreadyRevealed",
    "AuthenticationMissing",
    "DuplicateNullifier",
    "ExpectedRejection",
    "InvalidIndex",
    "MalformedCiphertext",
    "MalformedInput",
    "MarsGuardError",
    "NotAuthenticated",
    "RevealMismatch",
    "SubmissionFailed",
    "TransportFailure",
]
