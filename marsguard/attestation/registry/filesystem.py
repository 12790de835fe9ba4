"""Filesystem-based NullifierRegistry implementation.

One JSON file per accepted nullifier:
  {data_dir}/registry/attestations/{sha256(nullifier)}.json

Acceptance is a hard link from a fully written temp file to the final
name. ``os.link`` fails if the name exists, so exactly one writer wins
even across processes, and readers never observe a half-written record.
"""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import bittensor as bt

from marsguard.attestation.models import Attestation, AttestationReceipt
from marsguard.errors import DuplicateNullifier, TransportFailure


def _record_name(nullifier: str) -> str:
    """Filesystem-safe name for a nullifier."""
    return hashlib.sha256(nullifier.encode("utf-8")).hexdigest() + ".json"


def _read_json(path: Path) -> Any:
    """Read plain JSON file."""
    with open(path) as f:
        return json.load(f)


class FilesystemRegistry:
    """Local durable registry."""

    def __init__(self, data_dir: str):
        self.base = Path(data_dir) / "registry"
        self.records_dir = self.base / "attestations"
        self.records_dir.mkdir(parents=True, exist_ok=True)
        self._last_seq = 0

    def _next_seq(self) -> int:
        # strictly increasing within a process even if the clock does not advance
        self._last_seq = max(time.time_ns(), self._last_seq + 1)
        return self._last_seq

    def _path(self, nullifier: str) -> Path:
        return self.records_dir / _record_name(nullifier)

    async def has_attested(self, nullifier: str) -> bool:
        try:
            return self._path(nullifier).exists()
        except OSError as e:
            raise TransportFailure(f"registry unreadable: {e}") from e

    async def accept(self, attestation: Attestation) -> AttestationReceipt:
        """Write the attestation unless its nullifier already exists."""
        stored = attestation.model_copy(
            update={"accepted_at": datetime.now(timezone.utc)},
        )
        final_path = self._path(stored.nullifier)
        data = {
            "seq": self._next_seq(),
            "attestation": stored.model_dump(mode="json"),
        }

        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.records_dir, suffix=".tmp")
        except OSError as e:
            raise TransportFailure(f"registry unwritable: {e}") from e

        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.link(tmp_path, final_path)
        except FileExistsError:
            raise DuplicateNullifier(stored.nullifier) from None
        except OSError as e:
            raise TransportFailure(f"registry write failed: {e}") from e
        finally:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass

        bt.logging.debug({"registry": {
            "event": "accepted",
            "backend": "filesystem",
            "operator_id": stored.operator_id,
        }})
        return AttestationReceipt.for_attestation(stored)

    async def get_attestation(self, nullifier: str) -> Attestation | None:
        path = self._path(nullifier)
        if not path.exists():
            return None
        try:
            return Attestation(**_read_json(path)["attestation"])
        except OSError as e:
            raise TransportFailure(f"registry unreadable: {e}") from e

    async def list_attestations(
        self, operator_id: str | None = None,
    ) -> list[Attestation]:
        entries: list[tuple[int, Attestation]] = []
        try:
            paths = sorted(self.records_dir.glob("*.json"))
            for path in paths:
                data = _read_json(path)
                att = Attestation(**data["attestation"])
                if operator_id is None or att.operator_id == operator_id:
                    entries.append((int(data.get("seq", 0)), att))
        except OSError as e:
            raise TransportFailure(f"registry unreadable: {e}") from e

        entries.sort(key=lambda e: e[0])
        return [att for _, att in entries]


__all__ = ["FilesystemRegistry"]
