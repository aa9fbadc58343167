"""Issue and verify signed, time-bound identity tokens."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

import jwt

from .config import TOKEN_TTL

ALGORITHM = "HS256"


class TokenError(RuntimeError):
    """Raised when a token could not be produced."""


class InvalidTokenError(Exception):
    """Raised for any token that fails verification."""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """HS256 JWT issuer bound to a single symmetric secret.

    Tokens carry the user id as ``sub`` together with ``iat`` and ``exp``
    claims. Verification pins the algorithm, so tokens claiming ``none`` or
    any other scheme are rejected before the signature is considered.
    """

    def __init__(
        self,
        secret: str,
        *,
        ttl: timedelta = TOKEN_TTL,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if not secret:
            raise ValueError("A non-empty signing secret is required")
        self._secret = secret
        self._ttl = ttl
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, user_id: int) -> str:
        issued_at = self._clock()
        payload = {
            "sub": str(user_id),
            "iat": issued_at,
            "exp": issued_at + self._ttl,
        }
        try:
            return jwt.encode(payload, self._secret, algorithm=ALGORITHM)
        except (jwt.PyJWTError, TypeError, ValueError) as exc:
            raise TokenError("Failed to sign token") from exc

    def verify(self, token: str) -> int:
        """Return the user id embedded in ``token``.

        Raises :class:`InvalidTokenError` for bad signatures, unexpected
        algorithms, expired or malformed tokens alike.
        """

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={
                    "require": ["exp", "iat", "sub"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.PyJWTError as exc:
            raise InvalidTokenError(str(exc)) from exc

        # Expiry is judged by the issuer's clock, not the wall clock.
        expires_at = payload["exp"]
        if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
            raise InvalidTokenError("Token expiry is not a timestamp")
        if self._clock().timestamp() >= expires_at:
            raise InvalidTokenError("Signature has expired")

        try:
            user_id = int(payload["sub"])
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidTokenError("Token subject is not a user id") from exc
        if user_id <= 0:
            raise InvalidTokenError("Token subject is not a user id")
        return user_id


__all__ = ["ALGORITHM", "InvalidTokenError", "TokenError", "TokenIssuer"]
