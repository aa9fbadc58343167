"""Bearer-token authentication for the protected account routes."""
from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .models import Identity
from .tokens import InvalidTokenError, TokenIssuer

logger = logging.getLogger("accounts.security")


class BearerAuth:
    """Resolve the ``Authorization: Bearer`` header into an :class:`Identity`."""

    def __init__(self, issuer: TokenIssuer) -> None:
        self._issuer = issuer
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> Identity:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)
        if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

        try:
            user_id = self._issuer.verify(credentials.credentials)
        except InvalidTokenError as exc:
            logger.debug("Rejected bearer token: %s", exc)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

        return Identity(user_id=user_id)


__all__ = ["BearerAuth"]
