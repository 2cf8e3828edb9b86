"""Single-use tokens for email verification, password reset and invitations.

Verification and reset tokens are stored only as a sha256 hash; the raw value
is sent to the user and looked up by hash.
"""

from __future__ import annotations

import hashlib
import secrets


def hash_one_time_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def generate_one_time_token() -> tuple[str, str]:
    """Return (raw_token, token_hash)."""
    raw = secrets.token_hex(32)
    return raw, hash_one_time_token(raw)


def generate_invitation_token() -> str:
    return secrets.token_hex(32)
