"""
api/routes/users.py -- User CRUD REST endpoints.

Routes:
  GET    /users       -- list every user
  GET    /users/{id}  -- one user
  POST   /users       -- create; 201 {message, data}
  PUT    /users/{id}  -- full overwrite (required fields as POST)
  PATCH  /users/{id}  -- partial update
  DELETE /users/{id}  -- delete; 200 {message}

Every route depends on get_current_identity, so AUTH_MODE decides whether
/users is behind Basic auth, a bearer token, or open. Identifier shape is
checked by valid_user_id before any store access. Passwords are never part
of a response; UserResponse.from_user drops them.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Path, Request
from sqlalchemy.exc import IntegrityError

from api.models import (
    ErrorResponse,
    MessageResponse,
    UserCreate,
    UserPatch,
    UserPut,
    UserResponse,
    UserSavedResponse,
)
from auth.dependencies import get_current_identity
from auth.models import Identity, User
from auth.store import UserStore, is_valid_id

# Read by the RequestValidationError handler in api/main.py.
REQUIRED_FIELDS_MESSAGE = "name, email, and age are required"
_required_fields = {"x-validation-message": REQUIRED_FIELDS_MESSAGE}

router = APIRouter(
    responses={401: {"model": ErrorResponse}, 400: {"model": ErrorResponse}},
)


def valid_user_id(user_id: str = Path(description="24-character hex record id")) -> str:
    """Reject malformed ids with 400 before the store is queried."""
    if not is_valid_id(user_id):
        raise HTTPException(
            status_code=400,
            detail={"code": "invalid_id", "message": "Invalid ID format"},
        )
    return user_id


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"code": "not_found", "message": "User not found"},
    )


def _duplicate_email() -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"code": "conflict", "message": "Email already registered"},
    )


def _fetch(user_store: UserStore, user_id: str) -> UserResponse:
    user = user_store.get_by_id(user_id)
    if user is None:
        raise _not_found()
    return UserResponse.from_user(user)


@router.get("/users", response_model=list[UserResponse])
def list_users(
    request: Request,
    identity: Identity | None = Depends(get_current_identity),
) -> list[UserResponse]:
    """Return every user record."""
    user_store: UserStore = request.app.state.user_store
    return [UserResponse.from_user(u) for u in user_store.list_users()]


@router.get("/users/{user_id}", response_model=UserResponse, responses={404: {"model": ErrorResponse}})
def get_user(
    request: Request,
    identity: Identity | None = Depends(get_current_identity),
    user_id: str = Depends(valid_user_id),
) -> UserResponse:
    """Return one user by id."""
    return _fetch(request.app.state.user_store, user_id)


@router.post("/users", response_model=UserSavedResponse, status_code=201, openapi_extra=_required_fields)
def create_user(
    request: Request,
    body: UserCreate,
    identity: Identity | None = Depends(get_current_identity),
) -> UserSavedResponse:
    """Create a user. The store hashes the password, if one is given."""
    user_store: UserStore = request.app.state.user_store
    try:
        user_id = user_store.create_user(
            User(name=body.name, age=body.age, email=body.email),
            password=body.password,
        )
    except IntegrityError as exc:
        raise _duplicate_email() from exc
    return UserSavedResponse(message="saved successfully", data=_fetch(user_store, user_id))


@router.put(
    "/users/{user_id}",
    response_model=UserResponse,
    responses={404: {"model": ErrorResponse}},
    openapi_extra=_required_fields,
)
def replace_user(
    request: Request,
    body: UserPut,
    identity: Identity | None = Depends(get_current_identity),
    user_id: str = Depends(valid_user_id),
) -> UserResponse:
    """Overwrite a user. Fields left out of the body are cleared."""
    user_store: UserStore = request.app.state.user_store
    try:
        replaced = user_store.replace_user(
            user_id,
            name=body.name,
            age=body.age,
            email=body.email,
            password=body.password,
        )
    except IntegrityError as exc:
        raise _duplicate_email() from exc
    if not replaced:
        raise _not_found()
    return _fetch(user_store, user_id)


@router.patch("/users/{user_id}", response_model=UserResponse, responses={404: {"model": ErrorResponse}})
def patch_user(
    request: Request,
    body: UserPatch,
    identity: Identity | None = Depends(get_current_identity),
    user_id: str = Depends(valid_user_id),
) -> UserResponse:
    """Change only the fields present in the body."""
    user_store: UserStore = request.app.state.user_store
    try:
        updated = user_store.update_user(user_id, **body.model_dump(exclude_unset=True))
    except IntegrityError as exc:
        raise _duplicate_email() from exc
    if not updated:
        raise _not_found()
    return _fetch(user_store, user_id)


@router.delete("/users/{user_id}", response_model=MessageResponse, responses={404: {"model": ErrorResponse}})
def delete_user(
    request: Request,
    identity: Identity | None = Depends(get_current_identity),
    user_id: str = Depends(valid_user_id),
) -> MessageResponse:
    """Delete a user permanently."""
    user_store: UserStore = request.app.state.user_store
    if not user_store.delete_user(user_id):
        raise _not_found()
    return MessageResponse(message="User deleted successfully")
