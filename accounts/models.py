"""Domain models for user accounts."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union


class _Unset(enum.Enum):
    UNSET = "unset"


UNSET = _Unset.UNSET
"""Marker for a patch field that should leave the stored value untouched."""


@dataclass(frozen=True)
class User:
    """Represents a user account stored in the account database."""

    id: int
    email: str
    username: str
    password_hash: str
    first_name: Optional[str]
    last_name: Optional[str]
    created_at: datetime
    updated_at: datetime


FieldUpdate = Union[str, None, _Unset]


@dataclass(frozen=True)
class UserPatch:
    """Changes to apply to a user's name fields.

    Each field is ``UNSET`` (keep the stored value), ``None`` (clear it) or a
    non-empty string (overwrite it).
    """

    first_name: FieldUpdate = UNSET
    last_name: FieldUpdate = UNSET

    def __post_init__(self) -> None:
        for name in ("first_name", "last_name"):
            if getattr(self, name) == "":
                raise ValueError(f"{name} must be UNSET, None or a non-empty string")


@dataclass(frozen=True)
class Identity:
    """The authenticated caller of a protected endpoint."""

    user_id: int


__all__ = ["FieldUpdate", "Identity", "UNSET", "User", "UserPatch"]
