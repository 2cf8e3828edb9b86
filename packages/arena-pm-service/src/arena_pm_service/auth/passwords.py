"""Password hashing, verification and the password policy.

bcrypt only reads the first 72 bytes of its input (newer releases refuse
longer input outright), so passwords are reduced to a fixed-length
SHA-256 digest before hashing. Every password the policy accepts, including
multi-byte ones, therefore hashes the same way.
"""

from __future__ import annotations

import base64
import hashlib
import re
import secrets

import bcrypt

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128


def _prehash(password: str) -> bytes:
    # base64 keeps the digest free of NUL bytes, which bcrypt rejects
    return base64.b64encode(hashlib.sha256(password.encode("utf-8")).digest())


def hash_password(password: str) -> str:
    """Hash a plaintext password with bcrypt. Returns a utf-8 string."""
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(_prehash(password), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """Return True if password matches the stored bcrypt hash."""
    try:
        return bcrypt.checkpw(_prehash(password), hashed.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash (e.g. an anonymised account)
        return False


# Compared against when a login names an unknown account, so that path costs
# one bcrypt round like a wrong password does.
DUMMY_PASSWORD_HASH = hash_password(secrets.token_hex(16))


def validate_password_policy(password: str) -> str | None:
    """Return the first policy violation message, or None if the password is acceptable."""
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."
    if len(password) > MAX_PASSWORD_LENGTH:
        return f"Password must be {MAX_PASSWORD_LENGTH} characters or less."
    if not (
        re.search(r"[A-Z]", password)
        and re.search(r"[a-z]", password)
        and re.search(r"[0-9]", password)
    ):
        return (
            "Password must contain at least one uppercase letter, "
            "one lowercase letter, and one digit."
        )
    return None
