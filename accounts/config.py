"""Configuration management for the user-account service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import List, Mapping, Optional

DEFAULT_PORT = 8080
DEFAULT_HOST = "0.0.0.0"
TOKEN_TTL = timedelta(hours=24)


class ConfigurationError(RuntimeError):
    """Raised when required configuration is missing or malformed."""


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, loaded once at startup."""

    jwt_secret: str
    database_path: Path
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    token_ttl: timedelta = TOKEN_TTL
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the account database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "accounts.sqlite3").resolve(strict=False)


def _parse_port(raw: Optional[str]) -> int:
    if raw is None or not raw.strip():
        return DEFAULT_PORT
    try:
        port = int(raw.strip())
    except ValueError as exc:
        raise ConfigurationError(f"PORT must be an integer, got {raw!r}") from exc
    if not 1 <= port <= 65535:
        raise ConfigurationError(f"PORT must be between 1 and 65535, got {port}")
    return port


def _parse_origins(raw: Optional[str]) -> List[str]:
    if not raw:
        return ["*"]
    origins = [item.strip() for item in raw.split(",") if item.strip()]
    return origins or ["*"]


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build :class:`Settings` from environment variables.

    Raises :class:`ConfigurationError` when ``JWT_SECRET`` is missing or
    blank, or when ``PORT`` is not a valid port number.
    """

    env = os.environ if environ is None else environ

    secret = (env.get("JWT_SECRET") or "").strip()
    if not secret:
        raise ConfigurationError("JWT_SECRET must be set to a non-empty value")

    return Settings(
        jwt_secret=secret,
        database_path=resolve_database_path(env.get("ACCOUNTS_DB_PATH")),
        host=(env.get("HOST") or DEFAULT_HOST).strip() or DEFAULT_HOST,
        port=_parse_port(env.get("PORT")),
        cors_origins=_parse_origins(env.get("CORS_ALLOWED_ORIGINS")),
    )


__all__ = [
    "ConfigurationError",
    "DEFAULT_PORT",
    "Settings",
    "TOKEN_TTL",
    "load_settings",
    "resolve_database_path",
]
