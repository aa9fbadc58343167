"""Request and response bodies for the account API."""
from __future__ import annotations

import re
from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel

from .models import UNSET, FieldUpdate, User, UserPatch

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6


def is_valid_email(email: str) -> bool:
    return EMAIL_PATTERN.match(email) is not None


class RegisterRequest(BaseModel):
    email: str = ""
    username: str = ""
    password: str = ""
    first_name: str = ""
    last_name: str = ""

    def validation_error(self) -> Optional[str]:
        """Return the first rule this payload breaks, or ``None``.

        Length minimums count UTF-8 bytes.
        """

        if not self.email:
            return "email is required"
        if not is_valid_email(self.email):
            return "invalid email format"
        if not self.username:
            return "username is required"
        if len(self.username.encode("utf-8")) < MIN_USERNAME_LENGTH:
            return f"username must be at least {MIN_USERNAME_LENGTH} characters"
        if not self.password:
            return "password is required"
        if len(self.password.encode("utf-8")) < MIN_PASSWORD_LENGTH:
            return f"password must be at least {MIN_PASSWORD_LENGTH} characters"
        return None


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""

    def validation_error(self) -> Optional[str]:
        if not self.email or not self.password:
            return "Email and password are required"
        return None


class UpdateUserRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    def to_patch(self) -> UserPatch:
        """Translate the payload into a :class:`UserPatch`.

        Absent fields and empty strings leave the stored value alone; an
        explicit ``null`` clears it.
        """

        updates: Dict[str, FieldUpdate] = {}
        for name in ("first_name", "last_name"):
            if name not in self.model_fields_set:
                updates[name] = UNSET
                continue
            value = getattr(self, name)
            updates[name] = UNSET if value == "" else value
        return UserPatch(**updates)


class UserResponse(BaseModel):
    id: int
    email: str
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class AuthResponse(BaseModel):
    token: str
    user: UserResponse


class MessageResponse(BaseModel):
    message: str


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        username=user.username,
        first_name=user.first_name or None,
        last_name=user.last_name or None,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


__all__ = [
    "AuthResponse",
    "EMAIL_PATTERN",
    "LoginRequest",
    "MessageResponse",
    "RegisterRequest",
    "UpdateUserRequest",
    "UserResponse",
    "is_valid_email",
    "user_to_response",
]
