"""Tests for telemetry normalization and the polling feed's fallback behavior."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from marsguard.attestation.models import Attestation
from marsguard.scoring.models import Classification, ValidatorTelemetry
from marsguard.scoring.telemetry import (
    SAMPLE_TELEMETRY,
    TelemetryFeed,
    normalize_record,
    normalize_records,
)


RAW_VALIDATOR = {
    "operator_address": "seivaloper1raw",
    "description": {"moniker": "Raw Node"},
    "status": "BOND_STATUS_BONDED",
    "jailed": False,
    "tokens": "2500000",
    "uptime": 99.95,
    "signing_info": {"missed_blocks_counter": "2", "tombstoned": False},
    "recent_rewards": [{"amount": "1"}],
    "votes": [{"proposal_id": "7"}],
}


class _Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _feed(handler, clock=None, **kwargs) -> TelemetryFeed:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TelemetryFeed(
        url="http://telemetry.test/validators",
        client=client,
        clock=clock or _Clock(),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


class TestNormalize:

    def test_cosmos_record(self):
        t = normalize_record(RAW_VALIDATOR)
        assert t.operator_id == "seivaloper1raw"
        assert t.moniker == "Raw Node"
        assert t.missed_blocks == 2
        assert t.recent_reward_count == 1
        assert t.recent_vote_count == 1
        assert t.voting_power == 2.5
        assert t.slashed is False

    def test_tombstoned_counts_as_slashed(self):
        record = dict(RAW_VALIDATOR, signing_info={"tombstoned": True})
        assert normalize_record(record).slashed is True

    def test_missing_operator_rejected(self):
        with pytest.raises(ValueError):
            normalize_record({"jailed": True})

    def test_from_record_delegates(self):
        assert ValidatorTelemetry.from_record(RAW_VALIDATOR) == normalize_record(RAW_VALIDATOR)

    def test_non_mapping_nested_fields_are_ignored(self):
        record = dict(RAW_VALIDATOR, description="foo", signing_info="bad")
        t = normalize_record(record)
        assert t.operator_id == "seivaloper1raw"
        assert t.moniker == ""
        assert t.missed_blocks == 0
        assert t.slashed is False

    def test_batch_skips_bad_records(self):
        out = normalize_records([RAW_VALIDATOR, {"jailed": True}, "junk"])
        assert [t.operator_id for t in out] == ["seivaloper1raw"]


class TestSampleTelemetry:

    def test_samples_span_all_classes(self):
        from marsguard.scoring.engine import score

        classes = {score(t).classification for t in SAMPLE_TELEMETRY}
        assert classes == {Classification.SAFE, Classification.MONITOR, Classification.UNSAFE}


# ---------------------------------------------------------------------------
# Feed
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestTelemetryFeed:

    async def test_refresh_parses_validators_payload(self):
        feed = _feed(lambda request: httpx.Response(200, json={"validators": [RAW_VALIDATOR]}))
        snapshot = await feed.refresh()
        assert list(snapshot) == ["seivaloper1raw"]
        assert feed.scores()["seivaloper1raw"].value == 100
        assert feed.using_fallback is False
        assert feed.last_error is None
        await feed.close()

    async def test_refresh_accepts_bare_list(self):
        feed = _feed(lambda request: httpx.Response(200, json=[RAW_VALIDATOR]))
        assert "seivaloper1raw" in await feed.refresh()

    async def test_failure_without_cache_uses_samples(self):
        feed = _feed(lambda request: httpx.Response(503))
        snapshot = await feed.refresh()
        assert set(snapshot) == {t.operator_id for t in SAMPLE_TELEMETRY}
        assert feed.using_fallback is True
        assert feed.last_error

    async def test_failure_keeps_last_good_snapshot(self):
        responses = [
            httpx.Response(200, json={"validators": [RAW_VALIDATOR]}),
            httpx.Response(500),
        ]
        feed = _feed(lambda request: responses.pop(0))
        await feed.refresh()
        snapshot = await feed.refresh()
        assert list(snapshot) == ["seivaloper1raw"]
        assert feed.using_fallback is True

    async def test_malformed_payload_is_a_failure(self):
        feed = _feed(lambda request: httpx.Response(200, json={"validators": "nope"}))
        await feed.refresh()
        assert feed.using_fallback is True

    async def test_no_url_serves_fallback(self):
        feed = TelemetryFeed(url="")
        snapshot = await feed.get()
        assert len(snapshot) == len(SAMPLE_TELEMETRY)
        assert feed.using_fallback is True
        await feed.close()

    async def test_get_refetches_only_when_stale(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=[RAW_VALIDATOR])

        clock = _Clock()
        feed = _feed(handler, clock=clock, stale_after=30)
        await feed.get()
        await feed.get()
        assert len(calls) == 1

        clock.now = 31
        await feed.get()
        assert len(calls) == 2

    async def test_attestation_invalidates_cache(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=[RAW_VALIDATOR])

        feed = _feed(handler)
        await feed.get()
        assert not feed.is_stale

        feed.on_attestation(Attestation(
            nullifier="0xabc", operator_id="seivaloper1raw", impact_delta=-5,
        ))
        assert feed.is_stale
        await feed.get()
        assert len(calls) == 2

    async def test_unexpected_nested_shapes_do_not_fail_refresh(self):
        payload = {"validators": [
            {"operator_address": "v1", "signing_info": "bad"},
            {"operator_address": "v2", "description": ["not", "a", "mapping"]},
        ]}
        feed = _feed(lambda request: httpx.Response(200, json=payload))
        snapshot = await feed.refresh()
        assert set(snapshot) == {"v1", "v2"}
        assert feed.using_fallback is False
        assert feed.last_error is None

    async def test_poll_loop_survives_unexpected_errors(self):
        class _BrokenFeed(TelemetryFeed):
            calls = 0

            async def refresh(self):
                self.calls += 1
                if self.calls >= 2:
                    self.stop()
                raise RuntimeError("unexpected payload")

        feed = _BrokenFeed(url="", poll_interval=0)
        await asyncio.wait_for(feed.run(), timeout=5)
        assert feed.calls == 2
        assert feed.last_error == "unexpected payload"
        await feed.close()
