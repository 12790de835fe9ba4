"""Telemetry ingress: record normalization and the polling feed.

The feed polls a Cosmos-style ``validators`` endpoint on a fixed interval.
On transport failure it keeps serving the last good snapshot (or a
built-in sample set when there is none) rather than failing the whole
view; the failure stays visible through ``last_error`` and
``using_fallback``.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Iterable

import bittensor as bt
import httpx

from .engine import score_all
from .models import RiskScore, ValidatorTelemetry

DEFAULT_POLL_INTERVAL = 60.0
DEFAULT_STALE_AFTER = 30.0
USEI_PER_SEI = 1_000_000


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def _as_list_len(value: Any) -> int:
    if isinstance(value, (list, tuple)):
        return len(value)
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def normalize_record(record: dict[str, Any]) -> ValidatorTelemetry:
    """Build ValidatorTelemetry from a raw staking validator record.

    Raises:
        ValueError: if the record has no operator address.
    """
    operator_id = record.get("operator_address") or record.get("operator_id")
    if not operator_id:
        raise ValueError("validator record has no operator_address")

    signing_info = _as_dict(record.get("signing_info"))
    description = _as_dict(record.get("description"))

    missed = record.get("missed_blocks")
    if missed is None:
        missed = signing_info.get("missed_blocks_counter", 0)

    slashed = record.get("slashed")
    if slashed is None:
        slashed = bool(signing_info.get("tombstoned", False))

    voting_power = record.get("voting_power")
    if voting_power is None:
        try:
            voting_power = int(record.get("tokens") or 0) / USEI_PER_SEI
        except (TypeError, ValueError):
            voting_power = 0.0

    return ValidatorTelemetry(
        operator_id=str(operator_id),
        moniker=str(description.get("moniker") or record.get("moniker") or ""),
        status=str(record.get("status") or ""),
        jailed=record.get("jailed", False),
        slashed=slashed,
        uptime_pct=record.get("uptime"),
        missed_blocks=missed,
        recent_reward_count=_as_list_len(record.get("recent_rewards")),
        recent_vote_count=_as_list_len(record.get("votes")),
        voting_power=voting_power,
    )


def normalize_records(records: Iterable[Any]) -> list[ValidatorTelemetry]:
    """Normalize a batch, skipping records that cannot be keyed."""
    out: list[ValidatorTelemetry] = []
    for item in records:
        if not isinstance(item, dict):
            continue
        try:
            out.append(normalize_record(item))
        except (ValueError, TypeError, AttributeError) as e:
            bt.logging.debug({"telemetry": {"event": "record_skipped", "error": str(e)}})
    return out


SAMPLE_TELEMETRY: tuple[ValidatorTelemetry, ...] = (
    ValidatorTelemetry(
        operator_id="seivaloper1sample000healthy",
        moniker="Sample Healthy",
        status="BOND_STATUS_BONDED",
        uptime_pct=99.95,
        missed_blocks=0,
        recent_reward_count=3,
        recent_vote_count=2,
    ),
    ValidatorTelemetry(
        operator_id="seivaloper1sample000degraded",
        moniker="Sample Degraded",
        status="BOND_STATUS_BONDED",
        uptime_pct=97.5,
        missed_blocks=6,
        recent_reward_count=1,
    ),
    ValidatorTelemetry(
        operator_id="seivaloper1sample000jailed",
        moniker="Sample Jailed",
        status="BOND_STATUS_UNBONDING",
        jailed=True,
        uptime_pct=62.0,
        missed_blocks=40,
    ),
)


# ---------------------------------------------------------------------------
# Feed
# ---------------------------------------------------------------------------


class TelemetryFeed:
    """Polls validator telemetry and caches derived risk scores."""

    def __init__(
        self,
        url: str = "",
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        stale_after: float = DEFAULT_STALE_AFTER,
        timeout: float = 10.0,
        fallback: Iterable[ValidatorTelemetry] = SAMPLE_TELEMETRY,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.url = url
        self.poll_interval = poll_interval
        self.stale_after = stale_after
        self._fallback = list(fallback)
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._clock = clock

        self._telemetry: dict[str, ValidatorTelemetry] = {}
        self._scores: dict[str, RiskScore] = {}
        self._fetched_at: float | None = None
        self._invalidated = False
        self._running = False

        self.last_error: str | None = None
        self.using_fallback = False

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # -- Cache state --

    @property
    def is_stale(self) -> bool:
        if self._invalidated or self._fetched_at is None:
            return True
        return self._clock() - self._fetched_at > self.stale_after

    def invalidate(self, operator_id: str | None = None) -> None:
        """Mark the cache stale so the next ``get`` refetches."""
        self._invalidated = True
        if operator_id is not None:
            self._scores.pop(operator_id, None)
        bt.logging.debug({"telemetry": {"event": "invalidated", "operator_id": operator_id}})

    def on_attestation(self, attestation: Any) -> None:
        """Listener hook for accepted attestations."""
        self.invalidate(getattr(attestation, "operator_id", None))

    def snapshot(self) -> dict[str, ValidatorTelemetry]:
        return dict(self._telemetry)

    def scores(self) -> dict[str, RiskScore]:
        missing = [t for op, t in self._telemetry.items() if op not in self._scores]
        if missing:
            self._scores.update(score_all(missing))
        return dict(self._scores)

    # -- Fetching --

    async def _fetch(self) -> list[ValidatorTelemetry]:
        resp = await self._client.get(self.url, headers={"Accept": "application/json"})
        resp.raise_for_status()
        data = resp.json()
        records = data.get("validators", []) if isinstance(data, dict) else data
        if not isinstance(records, list):
            raise ValueError("validators payload is not a list")
        return normalize_records(records)

    def _install(self, telemetry: Iterable[ValidatorTelemetry]) -> None:
        items = list(telemetry)
        self._telemetry = {t.operator_id: t for t in items}
        self._scores = score_all(items)
        self._fetched_at = self._clock()
        self._invalidated = False

    async def refresh(self) -> dict[str, ValidatorTelemetry]:
        """Fetch now; fall back to cached or sample data on failure."""
        if not self.url:
            self.using_fallback = True
            self._install(self._telemetry.values() or self._fallback)
            return self.snapshot()

        try:
            fetched = await self._fetch()
        except (httpx.HTTPError, ValueError) as e:
            self.last_error = str(e)
            self.using_fallback = True
            bt.logging.warning({"telemetry": {
                "event": "fetch_failed",
                "error": str(e),
                "cached": len(self._telemetry),
            }})
            if not self._telemetry:
                self._install(self._fallback)
            else:
                # Keep serving the last good snapshot; retry on next poll.
                self._fetched_at = self._clock()
                self._invalidated = False
            return self.snapshot()

        self.last_error = None
        self.using_fallback = False
        self._install(fetched)
        bt.logging.info({"telemetry": {"event": "refreshed", "validators": len(fetched)}})
        return self.snapshot()

    async def get(self) -> dict[str, ValidatorTelemetry]:
        """Current snapshot, refreshing first if stale."""
        if self.is_stale:
            await self.refresh()
        return self.snapshot()

    async def run(self) -> None:
        """Poll until ``stop`` is called."""
        self._running = True
        bt.logging.info({"telemetry": {"status": "starting", "poll_interval": self.poll_interval}})
        while self._running:
            try:
                await self.refresh()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.last_error = str(e)
                bt.logging.error({"telemetry": {"event": "poll_failed", "error": str(e)}})
            try:
                await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                break
        self._running = False
        bt.logging.info({"telemetry": "stopped"})

    def stop(self) -> None:
        self._running = False


__all__ = [
    "SAMPLE_TELEMETRY",
    "TelemetryFeed",
    "normalize_record",
    "normalize_records",
]
