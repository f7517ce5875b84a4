"""
Credential hashing.

Passwords and 4-digit PINs share one hashed-credential field and one
mechanism: a PIN is a short password under the same bcrypt hash.
"""

import bcrypt

DEFAULT_ROUNDS = 10

# Pre-computed hash for timing-uniform lookups of unknown accounts.
_DUMMY_BCRYPT_HASH = bcrypt.hashpw(b"dummy_password_for_timing_safety", bcrypt.gensalt(10)).decode()


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Hash a password or PIN with bcrypt (cost factor >= 10)."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=rounds)).decode()


def verify_password(password: str, password_hash: str | None) -> bool:
    """
    Constant-time check of a password against a stored hash.

    A missing hash is compared against a dummy hash so the bcrypt cost is
    always paid.
    """
    stored_hash = password_hash or _DUMMY_BCRYPT_HASH
    matched = bcrypt.checkpw(password.encode()[:72], stored_hash.encode())
    return matched and password_hash is not None
