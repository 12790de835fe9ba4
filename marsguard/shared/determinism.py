"""Canonical hashing helpers.

Every derived identifier (event ids, nullifiers, receipt ids) goes
through ``compute_hash`` so the same logical input always
produces the same digest regardless of dict ordering or model type.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json(data: Any) -> bytes:
    """Stable JSON encoding: sorted keys, no whitespace, ASCII only."""
    if hasattr(data, "model_dump"):
        data = data.model_dump(mode="json")
    return json.dumps(
        data, sort_keys=True, separators=(",", ":"), ensure_ascii=True, default=str,
    ).encode("utf-8")


def compute_hash(data: Any) -> str:
    """SHA256 hex digest of the canonical JSON encoding of ``data``."""
    return hashlib.sha256(canonical_json(data)).hexdigest()


__all__ = ["canonical_json", "compute_hash"]
