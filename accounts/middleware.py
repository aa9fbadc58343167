"""Application-wide HTTP middleware: request logging and CORS."""
from __future__ import annotations

import logging
import time
from typing import Sequence

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

logger = logging.getLogger("accounts.http")


def register_middleware(app: FastAPI, *, cors_origins: Sequence[str] = ("*",)) -> None:
    """Attach the logging and CORS middleware to ``app``."""

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        logger.info(
            "%s %s -> %s (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed * 1000,
        )
        return response

    # Registered last so it runs outermost.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cors_origins),
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )


__all__ = ["register_middleware"]
