"""Tests for AttestationService: dedup, authentication, retries and listeners."""

from __future__ import annotations

import asyncio

import pytest

from marsguard.attestation.models import DEFAULT_IMPACT, Attestation, AttestationReceipt
from marsguard.attestation.nullifier import derive_event_id, derive_nullifier
from marsguard.attestation.registry import InMemoryRegistry
from marsguard.attestation.retry import NO_RETRY, RetryPolicy
from marsguard.attestation.service import AttestationService, ReporterContext
from marsguard.errors import (
    AlreadyReported,
    NotAuthenticated,
    SubmissionFailed,
    TransportFailure,
)


ALICE = ReporterContext(secret="alice-secret")
BOB = ReporterContext(secret="bob-secret")


class _FlakyRegistry(InMemoryRegistry):
    """Fails the first ``accept_failures`` accepts, optionally after storing."""

    def __init__(self, accept_failures: int = 0, land_before_failing: bool = False, check_failures: int = 0):
        super().__init__()
        self.accept_failures = accept_failures
        self.check_failures = check_failures
        self.land_before_failing = land_before_failing
        self.accept_calls = 0
        self.check_calls = 0

    async def has_attested(self, nullifier: str) -> bool:
        self.check_calls += 1
        if self.check_failures > 0:
            self.check_failures -= 1
            raise TransportFailure("connection reset")
        return await super().has_attested(nullifier)

    async def accept(self, attestation: Attestation):
        self.accept_calls += 1
        if self.accept_failures > 0:
            self.accept_failures -= 1
            if self.land_before_failing:
                await super().accept(attestation)
            raise TransportFailure("timeout")
        return await super().accept(attestation)


class _StaleCheckRegistry(InMemoryRegistry):
    """Pre-check always answers "not attested", as a lagging read replica would."""

    async def has_attested(self, nullifier: str) -> bool:
        await asyncio.sleep(0)
        return False


class _Sleeps:
    def __init__(self):
        self.waits: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


@pytest.fixture
def registry():
    return InMemoryRegistry()


@pytest.fixture
def service(registry):
    return AttestationService(registry, sleep=_Sleeps())


@pytest.mark.asyncio
class TestSubmitReport:

    async def test_accepts_first_report(self, service, registry):
        receipt = await service.submit_report(ALICE, "V1", "missed_blocks", "medium", "offline")
        assert receipt.operator_id == "V1"
        assert receipt.impact_delta == -15
        stored = await registry.get_attestation(receipt.nullifier)
        assert stored.reason_text == "missed_blocks: offline"

    async def test_same_reporter_twice_rejected(self, service, registry):
        await service.submit_report(ALICE, "V1", "missed_blocks", "medium", "offline")
        with pytest.raises(AlreadyReported) as exc_info:
            await service.submit_report(ALICE, "V1", "missed_blocks", "high", "still offline")
        assert str(exc_info.value) == "You have already submitted a report for this incident"
        assert len(registry) == 1

    async def test_two_reporters_both_accepted(self, service, registry):
        a = await service.submit_report(ALICE, "V1", "missed_blocks", "medium", "offline")
        b = await service.submit_report(BOB, "V1", "missed_blocks", "medium", "offline")
        assert a.nullifier != b.nullifier
        assert len(registry) == 2

    async def test_nullifier_matches_derivation(self, service):
        receipt = await service.submit_report(ALICE, "V1", "downtime", "low", "")
        expected = derive_nullifier("alice-secret", derive_event_id("V1", "downtime"))
        assert receipt.nullifier == expected

    async def test_window_separates_incidents(self, service):
        await service.submit_report(ALICE, "V1", "downtime", "low", "", window_timestamp=100)
        await service.submit_report(ALICE, "V1", "downtime", "low", "", window_timestamp=200)

    async def test_severity_table(self, service):
        deltas = []
        for i, severity in enumerate(["low", "medium", "high", "critical", "CRITICAL ", "apocalyptic"]):
            receipt = await service.submit_report(ALICE, f"V{i}", "downtime", severity, "")
            deltas.append(receipt.impact_delta)
        assert deltas == [-5, -15, -25, -40, -40, DEFAULT_IMPACT]

    async def test_secret_not_stored(self, service, registry):
        await service.submit_report(ALICE, "V1", "downtime", "low", "")
        for att in await registry.list_attestations():
            assert "alice-secret" not in att.model_dump_json()

    async def test_has_reported(self, service):
        assert not await service.has_reported(ALICE, "V1", "downtime")
        await service.submit_report(ALICE, "V1", "downtime", "low", "")
        assert await service.has_reported(ALICE, "V1", "downtime")
        assert not await service.has_reported(BOB, "V1", "downtime")


@pytest.mark.asyncio
class TestAuthentication:

    async def test_missing_context(self, service, registry):
        with pytest.raises(NotAuthenticated):
            await service.submit_report(None, "V1", "downtime", "low", "")
        assert len(registry) == 0

    async def test_empty_secret(self, service):
        with pytest.raises(NotAuthenticated):
            await service.submit_report(ReporterContext(secret=""), "V1", "downtime", "low", "")

    async def test_submit_attestation_requires_secret(self, service):
        with pytest.raises(NotAuthenticated):
            await service.submit_attestation(None, "0xabc", "V1", -5, "x")

    async def test_from_keypair(self, service):
        import bittensor as bt

        kp = bt.Keypair.create_from_mnemonic(
            "legal winner thank year wave sausage worth useful legal winner thank yellow"
        )
        context = ReporterContext.from_keypair(kp)
        assert context.authenticated
        receipt = await service.submit_report(context, "V1", "downtime", "low", "")
        assert kp.ss58_address not in receipt.model_dump_json()


@pytest.mark.asyncio
class TestRetries:

    async def test_transport_failure_retried_then_succeeds(self):
        registry = _FlakyRegistry(accept_failures=2)
        sleeps = _Sleeps()
        service = AttestationService(registry, RetryPolicy(max_attempts=3, backoff_base=0.5), sleep=sleeps)

        receipt = await service.submit_report(ALICE, "V1", "downtime", "low", "")
        assert receipt.operator_id == "V1"
        assert registry.accept_calls == 3
        assert sleeps.waits == [0.5, 1.0]

    async def test_exhausted_retries_raise_submission_failed(self):
        registry = _FlakyRegistry(accept_failures=10)
        service = AttestationService(registry, RetryPolicy(max_attempts=3), sleep=_Sleeps())

        with pytest.raises(SubmissionFailed) as exc_info:
            await service.submit_report(ALICE, "V1", "downtime", "low", "")
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.__cause__, TransportFailure)
        assert len(registry) == 0

    async def test_pre_check_failure_retried(self):
        registry = _FlakyRegistry(check_failures=1)
        service = AttestationService(registry, sleep=_Sleeps())
        await service.submit_report(ALICE, "V1", "downtime", "low", "")
        assert registry.check_calls == 2

    async def test_no_retry_policy(self):
        registry = _FlakyRegistry(accept_failures=1)
        service = AttestationService(registry, NO_RETRY, sleep=_Sleeps())
        with pytest.raises(SubmissionFailed):
            await service.submit_report(ALICE, "V1", "downtime", "low", "")
        assert registry.accept_calls == 1

    async def test_landed_write_reported_after_transport_failure(self):
        registry = _FlakyRegistry(accept_failures=1, land_before_failing=True)
        service = AttestationService(registry, sleep=_Sleeps())

        with pytest.raises(AlreadyReported) as exc_info:
            await service.submit_report(ALICE, "V1", "downtime", "low", "")
        assert exc_info.value.after_transport_failure is True
        assert len(registry) == 1

    async def test_duplicate_not_retried(self):
        registry = _FlakyRegistry()
        service = AttestationService(registry, sleep=_Sleeps())
        await service.submit_report(ALICE, "V1", "downtime", "low", "")
        with pytest.raises(AlreadyReported) as exc_info:
            await service.submit_report(ALICE, "V1", "downtime", "low", "")
        assert exc_info.value.after_transport_failure is False
        assert registry.accept_calls == 1


@pytest.mark.asyncio
class TestConcurrentSubmissions:

    async def test_accept_guards_duplicates_when_pre_check_misses(self):
        registry = _StaleCheckRegistry()
        service = AttestationService(registry, sleep=_Sleeps())
        await service.submit_report(ALICE, "V1", "downtime", "low", "")

        with pytest.raises(AlreadyReported) as exc_info:
            await service.submit_report(ALICE, "V1", "downtime", "high", "again")
        assert exc_info.value.after_transport_failure is False
        assert len(registry) == 1

    async def test_racing_reports_have_one_winner(self):
        registry = _StaleCheckRegistry()
        service = AttestationService(registry, sleep=_Sleeps())

        results = await asyncio.gather(
            *(service.submit_report(ALICE, "V1", "downtime", "low", "") for _ in range(3)),
            return_exceptions=True,
        )
        receipts = [r for r in results if isinstance(r, AttestationReceipt)]
        rejected = [r for r in results if isinstance(r, AlreadyReported)]
        assert len(receipts) == 1
        assert len(rejected) == 2
        assert all(not r.after_transport_failure for r in rejected)
        assert len(registry) == 1


@pytest.mark.asyncio
class TestListeners:

    async def test_sync_and_async_listeners_notified(self, registry):
        seen = []

        async def async_listener(att):
            seen.append(("async", att.operator_id))

        service = AttestationService(registry, listeners=[lambda att: seen.append(("sync", att.operator_id))])
        service.add_listener(async_listener)
        await service.submit_report(ALICE, "V1", "downtime", "low", "")
        assert seen == [("sync", "V1"), ("async", "V1")]

    async def test_listener_failure_does_not_fail_submission(self, registry):
        def broken(att):
            raise RuntimeError("boom")

        service = AttestationService(registry, listeners=[broken])
        receipt = await service.submit_report(ALICE, "V1", "downtime", "low", "")
        assert await registry.has_attested(receipt.nullifier)

    async def test_rejected_report_not_notified(self, registry):
        seen = []
        service = AttestationService(registry, listeners=[seen.append])
        await service.submit_report(ALICE, "V1", "downtime", "low", "")
        with pytest.raises(AlreadyReported):
            await service.submit_report(ALICE, "V1", "downtime", "low", "")
        assert len(seen) == 1
