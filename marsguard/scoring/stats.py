"""Network-wide dashboard statistics."""

from __future__ import annotations

from typing import Iterable, Sequence

from pydantic import BaseModel

from .models import ValidatorTelemetry


class NetworkStats(BaseModel):
    total_validators: int = 0
    active_validators: int = 0
    jailed_validators: int = 0
    network_uptime: float = 0.0
    total_reports: int = 0
    total_messages: int = 0
    revealed_messages: int = 0
    encrypted_messages: int = 0


def compute_network_stats(
    telemetry: Iterable[ValidatorTelemetry],
    total_reports: int = 0,
    messages: Sequence = (),
) -> NetworkStats:
    """Aggregate a telemetry snapshot, report count and message list.

    A validator is active when bonded and not jailed. ``messages`` is any
    sequence of objects with a ``revealed`` attribute.
    """
    items = list(telemetry)
    active = [t for t in items if t.status == "BOND_STATUS_BONDED" and not t.jailed]
    revealed = sum(1 for m in messages if getattr(m, "revealed", False))
    uptime = sum(t.uptime_pct for t in items) / len(items) if items else 0.0

    return NetworkStats(
        total_validators=len(items),
        active_validators=len(active),
        jailed_validators=sum(1 for t in items if t.jailed),
        network_uptime=round(uptime, 4),
        total_reports=total_reports,
        total_messages=len(messages),
        revealed_messages=revealed,
        encrypted_messages=len(messages) - revealed,
    )


__all__ = ["NetworkStats", "compute_network_stats"]
