"""Encrypted group message record."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EncryptedMessage(BaseModel):
    """A posted message. Posted (revealed=False) -> Revealed, once."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    sender_id: str
    ciphertext: str
    signature: str
    posted_at: datetime = Field(default_factory=_utcnow)
    revealed: bool = False
    plaintext: str | None = None


__all__ = ["EncryptedMessage"]
