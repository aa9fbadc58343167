"""FastAPI application exposing registration, login and user profile endpoints."""
from __future__ import annotations

import logging
import re
from functools import partial
from typing import List, Optional, Type, TypeVar

import anyio
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, load_settings
from .database import Database, DatabaseError, DuplicateUserError, UserNotFoundError
from .middleware import register_middleware
from .models import Identity
from .passwords import PasswordHashingError, hash_password, verify_password
from .schemas import (
    AuthResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    UpdateUserRequest,
    UserResponse,
    user_to_response,
)
from .security import BearerAuth
from .tokens import TokenError, TokenIssuer

logger = logging.getLogger("accounts.api")

ModelT = TypeVar("ModelT", bound=BaseModel)

USER_NOT_FOUND = "User not found"

USER_ID_PATTERN = re.compile(r"\A[+-]?[0-9]+\Z")
MIN_USER_ID = -(2**63)
MAX_USER_ID = 2**63 - 1


def _error(status_code: int, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail=message)


async def decode_body(request: Request, model: Type[ModelT]) -> ModelT:
    """Parse the JSON request body into ``model`` or fail with a 400."""

    try:
        data = await request.json()
    except ValueError as exc:
        raise _error(status.HTTP_400_BAD_REQUEST, "Invalid request body") from exc
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise _error(status.HTTP_400_BAD_REQUEST, "Invalid request body") from exc


def parse_user_id(raw: str) -> int:
    """Parse a path id the way a signed 64-bit integer column accepts it."""

    if not USER_ID_PATTERN.match(raw):
        raise _error(status.HTTP_400_BAD_REQUEST, "Invalid user ID")
    value = int(raw)
    if not MIN_USER_ID <= value <= MAX_USER_ID:
        raise _error(status.HTTP_400_BAD_REQUEST, "Invalid user ID")
    return value


async def http_error_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(_request: Request, _exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request body"},
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
    issuer: Optional[TokenIssuer] = None,
    initialize_database: bool = True,
) -> FastAPI:
    """Build the ASGI application.

    ``database`` and ``issuer`` may be supplied directly (tests do); otherwise
    they are derived from ``settings``, which are loaded from the environment
    when omitted.
    """

    if settings is None and (database is None or issuer is None):
        settings = load_settings()

    if database is None:
        database = Database(settings.database_path)
    if initialize_database:
        database.initialize()

    if issuer is None:
        issuer = TokenIssuer(settings.jwt_secret, ttl=settings.token_ttl)

    auth = BearerAuth(issuer)

    app = FastAPI(
        title="User Accounts",
        description="Registration, login and profile management",
        version="1.0.0",
    )
    app.state.database = database
    app.state.issuer = issuer
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    register_middleware(app, cors_origins=settings.cors_origins if settings else ("*",))

    def get_db() -> Database:
        return database

    def issue_token(user_id: int) -> str:
        try:
            return issuer.issue(user_id)
        except TokenError as exc:
            logger.exception("Failed to sign token for user %s", user_id)
            raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to generate token") from exc

    @app.get("/health", response_class=PlainTextResponse)
    async def healthcheck() -> str:
        return "OK"

    auth_router = APIRouter(prefix="/api/auth", tags=["auth"])

    @auth_router.post(
        "/register",
        response_model=AuthResponse,
        response_model_exclude_none=True,
        status_code=status.HTTP_201_CREATED,
    )
    async def register(request: Request, db: Database = Depends(get_db)) -> AuthResponse:
        payload = await decode_body(request, RegisterRequest)
        problem = payload.validation_error()
        if problem:
            raise _error(status.HTTP_400_BAD_REQUEST, problem)

        try:
            password_hash = await anyio.to_thread.run_sync(hash_password, payload.password)
        except PasswordHashingError as exc:
            logger.exception("Password hashing failed during registration")
            raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to process password") from exc

        try:
            user = await anyio.to_thread.run_sync(
                partial(
                    db.create_user,
                    payload.email,
                    payload.username,
                    password_hash,
                    first_name=payload.first_name,
                    last_name=payload.last_name,
                )
            )
        except DuplicateUserError as exc:
            raise _error(status.HTTP_409_CONFLICT, "Email or username already exists") from exc
        except DatabaseError as exc:
            logger.exception("Failed to insert user %s", payload.username)
            raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Database error") from exc

        token = issue_token(user.id)
        logger.info("Registered user %s (%s)", user.username, user.id)
        return AuthResponse(token=token, user=user_to_response(user))

    @auth_router.post("/login", response_model=AuthResponse, response_model_exclude_none=True)
    async def login(request: Request, db: Database = Depends(get_db)) -> AuthResponse:
        payload = await decode_body(request, LoginRequest)
        problem = payload.validation_error()
        if problem:
            raise _error(status.HTTP_400_BAD_REQUEST, problem)

        try:
            user = await anyio.to_thread.run_sync(db.get_user_by_email, payload.email)
        except DatabaseError as exc:
            logger.exception("Failed to look up user during login")
            raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Database error") from exc

        if user is None or not await anyio.to_thread.run_sync(
            verify_password, payload.password, user.password_hash
        ):
            logger.warning("Failed login attempt for %s", payload.email)
            raise _error(status.HTTP_401_UNAUTHORIZED, "Invalid email or password")

        token = issue_token(user.id)
        logger.info("User %s signed in", user.id)
        return AuthResponse(token=token, user=user_to_response(user))

    users_router = APIRouter(prefix="/api/users", tags=["users"], dependencies=[Depends(auth)])

    @users_router.get("", response_model=List[UserResponse], response_model_exclude_none=True)
    async def list_users(db: Database = Depends(get_db)) -> List[UserResponse]:
        try:
            users = await anyio.to_thread.run_sync(db.list_users)
        except DatabaseError as exc:
            logger.exception("Failed to list users")
            raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to fetch users") from exc
        return [user_to_response(user) for user in users]

    @users_router.get("/me", response_model=UserResponse, response_model_exclude_none=True)
    async def read_current_user(
        identity: Identity = Depends(auth),
        db: Database = Depends(get_db),
    ) -> UserResponse:
        try:
            user = await anyio.to_thread.run_sync(db.get_user, identity.user_id)
        except DatabaseError as exc:
            logger.exception("Failed to load user %s", identity.user_id)
            raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to fetch user") from exc
        if user is None:
            raise _error(status.HTTP_404_NOT_FOUND, USER_NOT_FOUND)
        return user_to_response(user)

    @users_router.get("/{user_id}", response_model=UserResponse, response_model_exclude_none=True)
    async def read_user(user_id: str, db: Database = Depends(get_db)) -> UserResponse:
        target_id = parse_user_id(user_id)
        try:
            user = await anyio.to_thread.run_sync(db.get_user, target_id)
        except DatabaseError as exc:
            logger.exception("Failed to load user %s", target_id)
            raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Database error") from exc
        if user is None:
            raise _error(status.HTTP_404_NOT_FOUND, USER_NOT_FOUND)
        return user_to_response(user)

    @users_router.put("/{user_id}", response_model=UserResponse, response_model_exclude_none=True)
    async def update_user(
        user_id: str,
        request: Request,
        identity: Identity = Depends(auth),
        db: Database = Depends(get_db),
    ) -> UserResponse:
        target_id = parse_user_id(user_id)
        if identity.user_id != target_id:
            raise _error(status.HTTP_403_FORBIDDEN, "You can only update your own profile")

        payload = await decode_body(request, UpdateUserRequest)
        try:
            user = await anyio.to_thread.run_sync(db.update_user_names, target_id, payload.to_patch())
        except UserNotFoundError as exc:
            raise _error(status.HTTP_404_NOT_FOUND, USER_NOT_FOUND) from exc
        except DatabaseError as exc:
            logger.exception("Failed to update user %s", target_id)
            raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to update user") from exc
        logger.info("User %s updated their profile", target_id)
        return user_to_response(user)

    @users_router.delete("/{user_id}", response_model=MessageResponse)
    async def delete_user(
        user_id: str,
        identity: Identity = Depends(auth),
        db: Database = Depends(get_db),
    ) -> MessageResponse:
        target_id = parse_user_id(user_id)
        if identity.user_id != target_id:
            raise _error(status.HTTP_403_FORBIDDEN, "You can only delete your own account")

        try:
            await anyio.to_thread.run_sync(db.delete_user, target_id)
        except UserNotFoundError as exc:
            raise _error(status.HTTP_404_NOT_FOUND, USER_NOT_FOUND) from exc
        except DatabaseError as exc:
            logger.exception("Failed to delete user %s", target_id)
            raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to delete user") from exc
        logger.info("User %s deleted their account", target_id)
        return MessageResponse(message="User deleted successfully")

    app.include_router(auth_router)
    app.include_router(users_router)

    return app


__all__ = ["create_app", "decode_body", "parse_user_id"]
