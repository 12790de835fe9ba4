"""Message signing and verification using bittensor keypairs."""

from __future__ import annotations

from typing import Any

import bittensor as bt


def sign_message(message: str, keypair: Any) -> str:
    """Sign a message with the sender's hotkey. Returns hex."""
    signature = keypair.sign(message.encode("utf-8"))
    return signature.hex() if isinstance(signature, bytes) else str(signature)


def verify_message(message: str, signature: str, ss58_address: str) -> bool:
    """Verify a hex signature against the claimed sender address.

    Returns False for malformed signatures or addresses instead of raising.
    """
    if not signature or not ss58_address:
        return False
    try:
        sig_bytes = bytes.fromhex(signature.removeprefix("0x"))
    except ValueError:
        return False

    try:
        keypair = bt.Keypair(ss58_address=ss58_address)
        return bool(keypair.verify(message.encode("utf-8"), sig_bytes))
    except Exception:
        return False


__all__ = ["sign_message", "verify_message"]
