"""SecureChannel: encrypt, sign, post and reveal validator group messages."""

from __future__ import annotations

from typing import Any

import bittensor as bt

from marsguard.errors import AlreadyRevealed, RevealMismatch
from marsguard.shared.logging import log_event

from . import cipher, signing
from .board import MessageBoard
from .models import EncryptedMessage


class SecureChannel:
    """Group channel bound to one symmetric key and one message board."""

    def __init__(self, key: bytes, board: MessageBoard | None = None):
        if len(key) != cipher.KEY_BYTES:
            raise ValueError(f"channel key must be {cipher.KEY_BYTES} bytes")
        self._key = key
        self.board = board or MessageBoard()

    @classmethod
    def from_hex(cls, key_hex: str, board: MessageBoard | None = None) -> SecureChannel:
        return cls(cipher.key_from_hex(key_hex), board=board)

    # -- Primitives --

    def encrypt(self, plaintext: str) -> str:
        return cipher.encrypt(plaintext, self._key)

    def decrypt(self, ciphertext: str) -> str:
        return cipher.decrypt(ciphertext, self._key)

    @staticmethod
    def sign(message: str, identity: Any) -> str:
        return signing.sign_message(message, identity)

    @staticmethod
    def verify(message: str, signature: str, claimed_identity: str) -> bool:
        return signing.verify_message(message, signature, claimed_identity)

    # -- Board operations --

    async def post(self, plaintext: str, identity: Any) -> EncryptedMessage:
        """Encrypt and sign ``plaintext``, then append it to the board.

        The signature covers the plaintext so it can be checked once the
        message is revealed.
        """
        ciphertext = self.encrypt(plaintext)
        signature = self.sign(plaintext, identity)
        message = await self.board.post_message(identity.ss58_address, ciphertext, signature)
        bt.logging.info({"secure_channel": {"event": "posted", "index": message.index}})
        return message

    async def reveal(self, index: int, plaintext: str | None = None) -> EncryptedMessage:
        """Expose a message's plaintext to everyone, exactly once.

        With no ``plaintext`` the stored ciphertext is decrypted. A supplied
        plaintext must match the ciphertext.

        Raises:
            InvalidIndex, AlreadyRevealed, MalformedCiphertext, RevealMismatch
        """
        message = await self.board.get_message(index)
        if message.revealed:
            raise AlreadyRevealed(index)
        decrypted = self.decrypt(message.ciphertext)
        if plaintext is not None and plaintext != decrypted:
            raise RevealMismatch(f"plaintext does not match message {index}")

        revealed = await self.board.reveal_message(index, decrypted)
        bt.logging.info({"secure_channel": {"event": "revealed", "index": index}})
        log_event({"message_revealed": {"index": index, "sender_id": revealed.sender_id}})
        return revealed

    @staticmethod
    def verify_revealed(message: EncryptedMessage) -> bool:
        """Check a revealed message's signature against its sender."""
        if not message.revealed or message.plaintext is None:
            return False
        return signing.verify_message(message.plaintext, message.signature, message.sender_id)


__all__ = ["SecureChannel"]
