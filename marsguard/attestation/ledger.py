"""Score read path over accepted attestations.

The ledger score starts at INITIAL_LEDGER_SCORE and moves by each accepted
impact delta, clamped to the same [0, 100] range as the telemetry score.
"""

from __future__ import annotations

from marsguard.scoring.engine import MAX_SCORE, MIN_SCORE, clamp_score

from .models import ScoreEvent
from .registry.interface import NullifierRegistry

INITIAL_LEDGER_SCORE = MAX_SCORE


class ScoreLedger:
    """``get_score`` / ``get_events`` for one registry."""

    def __init__(self, registry: NullifierRegistry, initial_score: int = INITIAL_LEDGER_SCORE):
        if not MIN_SCORE <= initial_score <= MAX_SCORE:
            raise ValueError(f"initial_score out of range: {initial_score}")
        self.registry = registry
        self.initial_score = initial_score

    async def get_events(self, operator_id: str) -> list[ScoreEvent]:
        attestations = await self.registry.list_attestations(operator_id)
        return [
            ScoreEvent(reason=a.reason_text, delta=a.impact_delta, timestamp=a.accepted_at)
            for a in attestations
        ]

    async def get_score(self, operator_id: str) -> int:
        events = await self.get_events(operator_id)
        return clamp_score(self.initial_score + sum(e.delta for e in events))

    async def total_reports(self) -> int:
        return len(await self.registry.list_attestations())


__all__ = ["INITIAL_LEDGER_SCORE", "ScoreLedger"]
