"""
api/routes/auth.py -- Registration, login and logout endpoints.

Routes:
  POST /auth/register  -- create an account; 201 {message, id}
  POST /auth/login     -- email/password login; 200 {token, token_type, expires_in}
  POST /auth/logout    -- revoke every token issued so far (requires bearer token)

Security:
  authenticate_user() provides timing equalization -- use it, never inline
  get_by_email() + verify_password().
  Duplicate emails are decided by the store's UNIQUE index. There is no
  lookup before the insert, so two concurrent registrations cannot both win.
  Cache-Control: no-store on login responses.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.models import (
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
)
from auth.dependencies import require_token_identity
from auth.models import Identity, User
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token
from core.config import get_settings

logger = logging.getLogger("userapi.api")

# Auth policy:
# - POST /auth/register: public
# - POST /auth/login:    public -- login endpoint must be unauthenticated
# - POST /auth/logout:   requires a bearer token, whatever AUTH_MODE says
router = APIRouter()


@router.post(
    "/auth/register",
    response_model=RegisterResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}},
)
def register(request: Request, body: RegisterRequest) -> RegisterResponse:
    """Create an account with a hashed password and token_version 0."""
    user_store: UserStore = request.app.state.user_store
    try:
        user_id = user_store.create_user(
            User(name=body.name, age=body.age, email=body.email),
            password=body.password,
        )
    except IntegrityError as exc:
        raise HTTPException(
            status_code=400,
            detail={"code": "conflict", "message": "Email already registered"},
        ) from exc
    logger.info("Registered user %s", user_id)
    return RegisterResponse(message="User registered successfully", id=user_id)


@router.post(
    "/auth/login",
    response_model=LoginResponse,
    responses={400: {"model": ErrorResponse}},
)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Exchange email and password for a signed, time-limited token.

    Returns the same error for an unknown email and a wrong password so the
    response does not reveal which emails are registered.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=400,
            content={"error": {"code": "invalid_credentials", "message": "Invalid email or password"}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    token = create_access_token(user.id, user.token_version)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=get_settings().token_expire_seconds,
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post(
    "/auth/logout",
    response_model=MessageResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    openapi_extra={"security": [{"bearerAuth": []}]},
)
def logout(request: Request, identity: Identity = Depends(require_token_identity)) -> MessageResponse:
    """Bump the caller's token_version so every token issued so far goes stale."""
    user_store: UserStore = request.app.state.user_store
    version = user_store.increment_token_version(identity.id)
    if version is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "User not found"},
        )
    logger.info("User %s logged out (token_version=%d)", identity.id, version)
    return MessageResponse(message="Logged out successfully")
