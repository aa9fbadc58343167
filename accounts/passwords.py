"""One-way password hashing backed by passlib's bcrypt handler."""
from __future__ import annotations

from passlib.context import CryptContext

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# bcrypt only reads this many bytes of its input.
MAX_PASSWORD_BYTES = 72


class PasswordHashingError(RuntimeError):
    """Raised when a password could not be hashed."""


def _too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(password: str) -> str:
    """Return a salted bcrypt hash; salt and cost factor are embedded in the result.

    Passwords longer than :data:`MAX_PASSWORD_BYTES` once encoded are refused
    rather than truncated.
    """

    if _too_long(password):
        raise PasswordHashingError(f"Password exceeds {MAX_PASSWORD_BYTES} bytes")
    try:
        return _pwd_context.hash(password)
    except (ValueError, TypeError, MemoryError) as exc:
        raise PasswordHashingError("Failed to hash password") from exc


def verify_password(password: str, hashed: str) -> bool:
    if not hashed or _too_long(password):
        return False
    try:
        return _pwd_context.verify(password, hashed)
    except (ValueError, TypeError):
        # Unidentifiable or truncated hashes are treated as a mismatch.
        return False


__all__ = ["MAX_PASSWORD_BYTES", "PasswordHashingError", "hash_password", "verify_password"]
