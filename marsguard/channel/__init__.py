"""Encrypted, signed validator group messages with single-shot reveal."""

from .board import MessageBoard
from .channel import SecureChannel
from .cipher import CIPHERTEXT_PREFIX, generate_key, key_from_hex
from .models import EncryptedMessage
from .signing import sign_message, verify_message

__all__ = [
    "CIPHERTEXT_PREFIX",
    "EncryptedMessage",
    "MessageBoard",
    "SecureChannel",
    "generate_key",
    "key_from_hex",
    "sign_message",
    "verify_message",
]
