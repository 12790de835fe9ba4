"""Anonymous incident report submission.

Flow per report: derive event id -> derive nullifier -> map severity to an
impact delta -> ``has_attested`` pre-check -> ``accept``. The pre-check
only saves work; the registry's atomic ``accept`` is the real duplicate
guard, so a losing racer still ends in AlreadyReported.

Transport failures are retried per RetryPolicy and surface as
SubmissionFailed once exhausted. Duplicate rejections are never retried.
Cancellation propagates untouched: an abandoned submission is neither
retried nor assumed successful, and the caller should re-query
``has_reported`` before resubmitting.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import bittensor as bt

from marsguard.errors import (
    AlreadyReported,
    DuplicateNullifier,
    NotAuthenticated,
    SubmissionFailed,
    TransportFailure,
)
from marsguard.shared.logging import log_event

from .models import Attestation, AttestationReceipt, impact_for_severity
from .nullifier import derive_event_id, derive_nullifier
from .registry.interface import NullifierRegistry
from .retry import RetryPolicy

Listener = Callable[[Attestation], Any]


@dataclass(frozen=True)
class ReporterContext:
    """Explicit reporter identity passed into each submission.

    Only ``secret`` feeds the nullifier; it is never stored or logged.
    """

    secret: str | bytes | None = None
    label: str = ""

    @property
    def authenticated(self) -> bool:
        return bool(self.secret)

    @classmethod
    def from_keypair(cls, keypair: Any) -> ReporterContext:
        """Address-derived secret, matching the wallet-based reporter flow."""
        return cls(secret=keypair.ss58_address, label="keypair")


@dataclass
class _CallState:
    accept_transport_failures: int = 0


class AttestationService:
    """Orchestrates anonymous report submission against a registry."""

    def __init__(
        self,
        registry: NullifierRegistry,
        retry_policy: RetryPolicy | None = None,
        listeners: list[Listener] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.registry = registry
        self.retry_policy = retry_policy or RetryPolicy()
        self._listeners: list[Listener] = list(listeners or [])
        self._sleep = sleep

    def add_listener(self, listener: Listener) -> None:
        """Register a callback invoked with each accepted attestation."""
        self._listeners.append(listener)

    # -- Public API --

    async def submit_report(
        self,
        context: ReporterContext | None,
        operator_id: str,
        incident_kind: str,
        severity: str,
        description: str,
        window_timestamp: int | None = None,
    ) -> AttestationReceipt:
        """Submit one anonymous incident report.

        Raises:
            NotAuthenticated: no reporter secret in ``context``.
            AlreadyReported: this reporter already reported this incident.
            SubmissionFailed: registry unreachable after all retries.
        """
        secret = self._require_secret(context)
        event_id = derive_event_id(operator_id, incident_kind, window_timestamp)
        attestation = Attestation(
            nullifier=derive_nullifier(secret, event_id),
            operator_id=operator_id,
            impact_delta=impact_for_severity(severity),
            reason_text=f"{incident_kind}: {description}",
        )
        return await self._submit(attestation)

    async def submit_attestation(
        self,
        context: ReporterContext | None,
        nullifier: str,
        operator_id: str,
        impact_delta: int,
        reason_text: str,
    ) -> AttestationReceipt:
        """Submit a pre-built attestation (nullifier computed by the caller)."""
        self._require_secret(context)
        attestation = Attestation(
            nullifier=nullifier,
            operator_id=operator_id,
            impact_delta=impact_delta,
            reason_text=reason_text,
        )
        return await self._submit(attestation)

    async def has_reported(
        self,
        context: ReporterContext | None,
        operator_id: str,
        incident_kind: str,
        window_timestamp: int | None = None,
    ) -> bool:
        """Re-query the registry for this reporter's report on an incident."""
        secret = self._require_secret(context)
        event_id = derive_event_id(operator_id, incident_kind, window_timestamp)
        nullifier = derive_nullifier(secret, event_id)
        return await self._call(_CallState(), "has_attested", self.registry.has_attested, nullifier)

    # -- Internals --

    @staticmethod
    def _require_secret(context: ReporterContext | None) -> str | bytes:
        if context is None or not context.authenticated:
            bt.logging.info({"attestation_service": {"event": "rejected", "reason": "not_authenticated"}})
            raise NotAuthenticated("Wallet not connected: no reporter secret available")
        return context.secret

    async def _submit(self, attestation: Attestation) -> AttestationReceipt:
        state = _CallState()
        nullifier = attestation.nullifier

        if await self._call(state, "has_attested", self.registry.has_attested, nullifier):
            bt.logging.info({"attestation_service": {
                "event": "already_reported",
                "stage": "pre_check",
                "operator_id": attestation.operator_id,
            }})
            raise AlreadyReported(nullifier)

        try:
            receipt = await self._call(state, "accept", self.registry.accept, attestation)
        except DuplicateNullifier:
            bt.logging.info({"attestation_service": {
                "event": "already_reported",
                "stage": "accept",
                "operator_id": attestation.operator_id,
                "after_transport_failure": state.accept_transport_failures > 0,
            }})
            raise AlreadyReported(
                nullifier,
                after_transport_failure=state.accept_transport_failures > 0,
            ) from None

        bt.logging.info({"attestation_service": {
            "event": "accepted",
            "operator_id": receipt.operator_id,
            "impact_delta": receipt.impact_delta,
            "receipt_id": receipt.receipt_id[:18],
        }})
        log_event({"attestation_accepted": {
            "receipt_id": receipt.receipt_id,
            "operator_id": receipt.operator_id,
            "impact_delta": receipt.impact_delta,
        }})

        stored = attestation.model_copy(update={"accepted_at": receipt.accepted_at})
        await self._notify(stored)
        return receipt

    async def _call(self, state: _CallState, op: str, fn: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        """Run a registry call, retrying TransportFailure per policy."""
        policy = self.retry_policy
        attempt = 0
        while True:
            attempt += 1
            try:
                return await fn(*args)
            except TransportFailure as e:
                if op == "accept":
                    state.accept_transport_failures += 1
                if attempt >= policy.max_attempts:
                    bt.logging.error({"attestation_service": {
                        "event": "submission_failed",
                        "op": op,
                        "attempts": attempt,
                        "error": str(e),
                    }})
                    raise SubmissionFailed(
                        f"{op} failed after {attempt} attempt(s): {e}", attempts=attempt,
                    ) from e
                wait = policy.delay(attempt)
                bt.logging.warning({"attestation_service": {
                    "event": "retry",
                    "op": op,
                    "attempt": attempt,
                    "wait": wait,
                    "error": str(e),
                }})
                await self._sleep(wait)

    async def _notify(self, attestation: Attestation) -> None:
        for listener in self._listeners:
            try:
                result = listener(attestation)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                bt.logging.error({"attestation_service": {
                    "event": "listener_failed",
                    "listener": getattr(listener, "__qualname__", repr(listener)),
                    "error": str(e),
                }})


__all__ = ["AttestationService", "ReporterContext"]
