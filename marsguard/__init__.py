"""MarsGuard: validator risk scoring and anonymous incident attestation.

Stakers read a bounded risk score derived from validator telemetry, and
report incidents anonymously through a nullifier registry that accepts
exactly one report per (reporter, incident) pair. Validator groups
exchange encrypted, signed messages that can be revealed once.
"""

__version__ = "0.3.0"
