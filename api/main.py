"""
api/main.py -- FastAPI application entry point for the User API.

Run with:  python main.py serve
           uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware -- adds CORS headers for allowed browser origins
  2. log_requests   -- one log line per request with status and latency

Lifespan opens the user store from DATABASE_URL and builds the gates that
AUTH_MODE and PROTECT_DOCS select; shutdown disposes the store's engine.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.users import router as users_router
from auth.dependencies import BearerAuthenticator, build_authenticator, require_docs_access
from auth.store import UserStore
from core.config import Settings, get_settings

API_TITLE = "User CRUD API"
API_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("userapi.api")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def init_state(app: FastAPI, user_store: UserStore, settings: Settings) -> None:
    """Wire the store and the gates into app.state.

    app.state.gate       -- protects /users (None when AUTH_MODE=none)
    app.state.token_gate -- protects /auth/logout, always bearer
    app.state.docs_gate  -- protects /api-docs (None when PROTECT_DOCS=false)
    """
    app.state.user_store = user_store
    app.state.token_gate = BearerAuthenticator(user_store, enforce_token_version=settings.enforce_token_version)
    app.state.gate = build_authenticator(settings.auth_mode, user_store, settings.enforce_token_version)
    app.state.docs_gate = app.state.gate if settings.protect_docs else None
    logger.info(
        "Auth initialized (mode=%s, enforce_token_version=%s, protect_docs=%s)",
        settings.auth_mode,
        settings.enforce_token_version,
        settings.protect_docs,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the store on startup and dispose of it on shutdown.

    A store that cannot be reached raises here, which aborts server startup.
    """
    settings = get_settings()
    logger.info("User API starting up")
    user_store = UserStore(settings.database_url)
    init_state(app, user_store, settings)

    yield

    app.state.user_store.close()
    logger.info("User API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title=API_TITLE,
    description="A simple user CRUD API with Basic or bearer-token authentication.",
    version=API_VERSION,
    lifespan=lifespan,
    # Built-in docs are disabled; gated equivalents are registered below.
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])
app.include_router(users_router, tags=["Users"])


# ---------------------------------------------------------------------------
# OpenAPI document
#
# Both security schemes are always declared so Swagger UI can offer either
# login form. Operations under /users advertise the one AUTH_MODE selected.
# ---------------------------------------------------------------------------


def custom_openapi() -> dict:
    if app.openapi_schema:
        return app.openapi_schema
    schema = get_openapi(
        title=API_TITLE,
        version=API_VERSION,
        description=app.description,
        routes=app.routes,
    )
    schema.setdefault("components", {})["securitySchemes"] = {
        "basicAuth": {"type": "http", "scheme": "basic"},
        "bearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"},
    }
    mode = get_settings().auth_mode
    if mode != "none":
        requirement = [{"basicAuth": []}] if mode == "basic" else [{"bearerAuth": []}]
        for path, operations in schema.get("paths", {}).items():
            if path.startswith("/users"):
                for operation in operations.values():
                    operation["security"] = requirement
    app.openapi_schema = schema
    return schema


app.openapi = custom_openapi


# ---------------------------------------------------------------------------
# API documentation
#
# Swagger UI keeps the credentials entered in its Authorize dialog across
# reloads (persistAuthorization). Behind Basic auth the browser's own prompt
# also covers the JSON fetch.
# ---------------------------------------------------------------------------


@app.get("/api-docs", include_in_schema=False)
def docs(identity=Depends(require_docs_access)):
    """Swagger UI."""
    return get_swagger_ui_html(
        openapi_url="/api-docs.json",
        title=API_TITLE,
        swagger_ui_parameters={"persistAuthorization": True},
    )


@app.get("/api-docs.json", include_in_schema=False)
def openapi_json(identity=Depends(require_docs_access)) -> JSONResponse:
    """The generated OpenAPI document."""
    return JSONResponse(app.openapi())


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with a structured error when the request body or params fail validation.

    A route can name its own message through openapi_extra["x-validation-message"].
    """
    route = request.scope.get("route")
    extra = getattr(route, "openapi_extra", None) or {}
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message=extra.get("x-validation-message", "Request validation failed."),
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a {"code", "message"} dict as
    detail; that dict becomes the error field. Challenge headers
    (WWW-Authenticate) are passed through.
    """
    if isinstance(exc.detail, dict):
        content = {"error": exc.detail}
    else:
        content = ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump()
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Root and health
# ---------------------------------------------------------------------------


@app.get("/", include_in_schema=False)
async def root() -> PlainTextResponse:
    return PlainTextResponse("Welcome to the User CRUD API")


@app.get("/health", tags=["Health"])
async def health() -> HealthResponse:
    """Liveness probe. Never authenticated."""
    return HealthResponse()
