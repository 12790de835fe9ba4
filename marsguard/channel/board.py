"""Append-only message board for validator group messages.

Messages are index-addressable in insertion order. The only mutation
after posting is the single Posted -> Revealed transition.

When ``path`` is set the board is persisted as JSON after every change,
written atomically (tmp + rename), and reloaded on construction.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path

import bittensor as bt

from marsguard.errors import AlreadyRevealed, InvalidIndex

from .models import EncryptedMessage


class MessageBoard:
    """Durable-ish key/value store for encrypted group messages."""

    def __init__(self, path: str | None = None):
        self.path = Path(path) if path else None
        self._messages: list[EncryptedMessage] = []
        self._lock = asyncio.Lock()
        self._load()

    # -- Persistence --

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        with open(self.path) as f:
            data = json.load(f)
        self._messages = [EncryptedMessage(**m) for m in data.get("messages", [])]
        bt.logging.info({"message_board": {"event": "loaded", "count": len(self._messages)}})

    def _save(self, messages: list[EncryptedMessage]) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {"messages": [m.model_dump(mode="json") for m in messages]}
        tmp_fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(tmp_fd, "w") as f:
                json.dump(data, f, sort_keys=True)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    # -- Board API --

    async def post_message(self, sender_id: str, ciphertext: str, signature: str) -> EncryptedMessage:
        async with self._lock:
            message = EncryptedMessage(
                index=len(self._messages),
                sender_id=sender_id,
                ciphertext=ciphertext,
                signature=signature,
            )
            messages = [*self._messages, message]
            self._save(messages)
            self._messages = messages
        bt.logging.debug({"message_board": {"event": "posted", "index": message.index}})
        return message

    async def reveal_message(self, index: int, plaintext: str) -> EncryptedMessage:
        """Transition a message to Revealed.

        Raises:
            InvalidIndex: no message at ``index``.
            AlreadyRevealed: the message was revealed before.
        """
        async with self._lock:
            current = self._get(index)
            if current.revealed:
                raise AlreadyRevealed(index)
            revealed = current.model_copy(update={"revealed": True, "plaintext": plaintext})
            messages = list(self._messages)
            messages[index] = revealed
            self._save(messages)
            self._messages = messages
        bt.logging.debug({"message_board": {"event": "revealed", "index": index}})
        return revealed

    async def get_message(self, index: int) -> EncryptedMessage:
        return self._get(index)

    async def get_messages(self) -> list[EncryptedMessage]:
        return list(self._messages)

    def count(self) -> int:
        return len(self._messages)

    def _get(self, index: int) -> EncryptedMessage:
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(self._messages):
            raise InvalidIndex(index, len(self._messages))
        return self._messages[index]


__all__ = ["MessageBoard"]
