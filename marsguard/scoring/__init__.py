"""Risk scoring: telemetry in, bounded score and classification out.

``score`` is pure and total; ``classify`` is the single score-to-label
mapping shared by every caller.
"""

from .engine import classify, next_action, score, score_all, status_text
from .models import ActionMessage, Classification, RiskScore, ValidatorTelemetry
from .stats import NetworkStats, compute_network_stats
from .telemetry import SAMPLE_TELEMETRY, TelemetryFeed, normalize_record

__all__ = [
    "ActionMessage",
    "Classification",
    "NetworkStats",
    "RiskScore",
    "SAMPLE_TELEMETRY",
    "TelemetryFeed",
    "ValidatorTelemetry",
    "classify",
    "compute_network_stats",
    "next_action",
    "normalize_record",
    "score",
    "score_all",
    "status_text",
]
