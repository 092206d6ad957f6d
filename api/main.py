"""
api/main.py -- FastAPI application entry point for the RBAC API.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware        -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the stores and services once and places them on app.state;
route handlers read them from there. Nothing is a module-level singleton
except the immutable Settings.

Error translation: services and gates raise auth.errors.AccessError
subclasses; access_error_handler below is the only place those become HTTP
responses.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.posts import router as posts_router
from api.routes.v1.roles import router as roles_router
from api.routes.v1.users import router as users_router
from auth.errors import AccessError, Unauthenticated
from auth.roles import RoleService
from auth.service import IdentityService
from auth.store import UserStore
from auth.tokens import TokenService
from auth.users import UserAdminService
from core.config import Settings, get_settings
from posts.service import PostService
from posts.store import PostStore

API_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("rbacapi.api")


# ---------------------------------------------------------------------------
# State wiring
# ---------------------------------------------------------------------------


def wire_app_state(app: FastAPI, user_store: UserStore, settings: Settings) -> None:
    """Attach stores and services to app.state.

    Shared by the real lifespan and the test lifespan so both wire the exact
    same object graph. PostStore reuses the UserStore engine (see posts/store.py).
    """
    tokens = TokenService.from_settings(settings)
    post_store = PostStore(user_store.engine)
    app.state.settings = settings
    app.state.user_store = user_store
    app.state.post_store = post_store
    app.state.tokens = tokens
    app.state.identity = IdentityService(user_store, tokens, default_role=settings.default_role)
    app.state.roles = RoleService(user_store)
    app.state.users = UserAdminService(user_store)
    app.state.posts = PostService(post_store)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build application resources on startup and release them on shutdown.

    get_settings() raises if SECRET_KEY is missing in production, which
    aborts startup before any request is served.
    """
    logger.info("RBAC API starting up")
    settings = get_settings()
    user_store = UserStore(settings.database_url)
    wire_app_state(app, user_store, settings)
    logger.info(
        "Auth initialized (token_ttl=%ds, bcrypt_rounds=%d, has_users=%s)",
        settings.token_expire_seconds,
        settings.bcrypt_rounds,
        user_store.has_users(),
    )

    yield

    app.state.user_store.close()
    logger.info("RBAC API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="RBAC API",
    description="Users, roles and posts behind bearer-token authentication and permission checks.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


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

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(roles_router, prefix="/api/v1", tags=["Roles"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(posts_router, prefix="/api/v1", tags=["Posts"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(AccessError)
async def access_error_handler(request: Request, exc: AccessError) -> JSONResponse:
    """Translate domain failures (401/403/400/404) raised by gates and services."""
    response = _error(exc.status_code, exc.code, exc.message)
    if isinstance(exc, Unauthenticated):
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with structured error when request body or query params fail validation."""
    return _error(400, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for FastAPI/Starlette HTTP exceptions (404 route, 405 method)."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors (store outages, bugs).

    The traceback is logged server-side. The response carries the exception
    text only when DEBUG is on; production clients get a generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    detail = str(exc) if get_settings().debug else None
    return _error(500, "internal_error", "An unexpected error occurred.", detail)


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit and no auth.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and a database round-trip check."""
    components = {"app": "ok", "database": "ok"}
    try:
        with request.app.state.user_store.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Health check database probe failed")
        components["database"] = "error"
    return HealthResponse(version=API_VERSION, components=components)
