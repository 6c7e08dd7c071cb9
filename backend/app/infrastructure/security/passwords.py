"""
Password hashing helpers (Argon2 via passlib).
"""

from passlib.hash import argon2


def hash_password(password: str) -> str:
    """Hash plain password with Argon2."""
    return argon2.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Constant-time check of a plain password against a stored hash."""
    if not password_hash or not password_hash.startswith("$argon2"):
        return False
    try:
        return argon2.verify(plain_password, password_hash)
    except ValueError:
        # Malformed stored hash
        return False
