"""Authenticated symmetric encryption for group messages.

AES-256-GCM with a random 96-bit nonce per message. The wire format keeps
the ``encrypted_`` marker so tagged ciphertext is recognizable:

    encrypted_<base64(nonce || ciphertext || tag)>
"""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from marsguard.errors import MalformedCiphertext

CIPHERTEXT_PREFIX = "encrypted_"
KEY_BYTES = 32
NONCE_BYTES = 12
TAG_BYTES = 16


def generate_key() -> bytes:
    """Fresh 256-bit key."""
    return AESGCM.generate_key(bit_length=KEY_BYTES * 8)


def key_from_hex(key_hex: str) -> bytes:
    try:
        key = bytes.fromhex(key_hex.strip())
    except ValueError as e:
        raise ValueError("channel key is not valid hex") from e
    if len(key) != KEY_BYTES:
        raise ValueError(f"channel key must be {KEY_BYTES} bytes, got {len(key)}")
    return key


def encrypt(plaintext: str, key: bytes, associated_data: bytes | None = None) -> str:
    nonce = os.urandom(NONCE_BYTES)
    sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), associated_data)
    return CIPHERTEXT_PREFIX + base64.b64encode(nonce + sealed).decode("ascii")


def decrypt(ciphertext: str, key: bytes, associated_data: bytes | None = None) -> str:
    """Reverse ``encrypt``.

    Raises:
        MalformedCiphertext: missing marker, bad encoding, truncated payload,
            or authentication failure (wrong key or tampered data).
    """
    if not isinstance(ciphertext, str) or not ciphertext.startswith(CIPHERTEXT_PREFIX):
        raise MalformedCiphertext("Invalid ciphertext format")

    try:
        raw = base64.b64decode(ciphertext[len(CIPHERTEXT_PREFIX):], validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedCiphertext("ciphertext is not valid base64") from e

    if len(raw) < NONCE_BYTES + TAG_BYTES:
        raise MalformedCiphertext("ciphertext too short")

    nonce, sealed = raw[:NONCE_BYTES], raw[NONCE_BYTES:]
    try:
        plain = AESGCM(key).decrypt(nonce, sealed, associated_data)
    except InvalidTag as e:
        raise MalformedCiphertext("ciphertext failed authentication") from e
    return plain.decode("utf-8")


__all__ = [
    "CIPHERTEXT_PREFIX",
    "decrypt",
    "encrypt",
    "generate_key",
    "key_from_hex",
]
