"""
api/main.py -- FastAPI application entry point for Inkpost.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost, as a request meets it):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. log_requests          -- latency log line per request
  5. admin_redirect        -- admin API onto Settings.admin_url
  6. pretty_urls           -- canonical API prefix and trailing slash
  7. api_cache_control     -- private Cache-Control on every /api/ response

The site custom-redirect middleware is mounted by asgi.py in front of all of
these, for non-API paths only.

Lifespan handles startup (stores, redirect rules) and shutdown symmetrically.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.middleware import admin_redirect, api_cache_control, pretty_urls
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v2.content import router as content_router
from api.routes.v2.posts import router as posts_router
from api.routes.v2.redirects import router as redirects_router
from api.routes.v2.session import router as session_router
from auth.store import UserStore
from content.store import PostStore
from core.config import get_settings
from redirects.service import RedirectService

API_VERSION = "2.0.0"

_settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.DEBUG if _settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("inkpost.api")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the stores and register the custom redirects before serving.

    The redirect rules are compiled before yield so the first request already
    sees them. A malformed redirects file is logged and the site serves with
    no custom redirects; it never stops the server from starting.
    """
    logger.info("Inkpost API starting up")
    db_url = _settings.database_url
    app.state.user_store = UserStore(db_url) if db_url else UserStore()
    app.state.post_store = PostStore(db_url) if db_url else PostStore()
    logger.info("Stores initialized")

    app.state.redirects = RedirectService(_settings.redirects_file, max_age=_settings.redirects_max_age)
    app.state.redirects.load()

    yield

    app.state.redirects.close()
    app.state.post_store.close()
    app.state.user_store.close()
    logger.info("Inkpost API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Inkpost API",
    description="Posts admin and content API with configurable custom redirects.",
    version=API_VERSION,
    lifespan=lifespan,
    # Trailing slashes are handled by pretty_urls with a cacheable 301.
    redirect_slashes=False,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette puts the most recently added middleware on the outside, so
# registration runs innermost first.
# ---------------------------------------------------------------------------

app.middleware("http")(api_cache_control)
app.middleware("http")(pretty_urls)
app.middleware("http")(admin_redirect)


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


app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Client-Id", "X-Client-Secret"],
    expose_headers=["X-Cache-Invalidate", "Location"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(session_router, prefix="/api/v2/admin", tags=["Session"])
app.include_router(posts_router, prefix="/api/v2/admin", tags=["Posts"])
app.include_router(redirects_router, prefix="/api/v2/admin", tags=["Redirects"])
app.include_router(content_router, prefix="/api/v2/content", tags=["Content"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every handler returns the {"errors": [...]} envelope so API clients can
# parse errors uniformly.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, *errors: ErrorDetail) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(errors=list(errors)).model_dump(by_alias=True))


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(
        429,
        ErrorDetail(type="TooManyRequestsError", message="Too many requests.", context=str(exc.detail)),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422, one envelope entry per failing field."""
    errors = [
        ErrorDetail(
            type="ValidationError",
            message=err.get("msg", "Validation error."),
            context=".".join(str(part) for part in err.get("loc", ())),
        )
        for err in exc.errors()
    ]
    return _error_response(422, *(errors or [ErrorDetail(type="ValidationError", message="Validation failed.")]))


_STATUS_ERROR_TYPES = {
    400: "BadRequestError",
    401: "UnauthorizedError",
    403: "NoPermissionError",
    404: "NotFoundError",
    405: "MethodNotAllowedError",
}


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap HTTPException in the envelope.

    Routes and auth gates raise with detail=ErrorDetail(...).model_dump() or
    an equivalent {"type", "message"} dict. String details (Starlette's own
    404/405) are wrapped with a type derived from the status code.
    """
    if isinstance(exc.detail, dict):
        detail = ErrorDetail(**exc.detail)
    else:
        detail = ErrorDetail(
            type=_STATUS_ERROR_TYPES.get(exc.status_code, "InternalServerError"),
            message=str(exc.detail),
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(errors=[detail]).model_dump(by_alias=True),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors. Details go to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, ErrorDetail(type="InternalServerError", message="An unexpected error occurred."))


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is reachable regardless of router
# registration. Not rate limited.
# ---------------------------------------------------------------------------


@app.get("/api/v2/health/", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Liveness, version, database reachability and the custom redirects state."""
    components = {"app": "ok", "database": "ok", "redirects": "ok"}
    try:
        request.app.state.user_store.has_users()
        request.app.state.post_store.count_posts()
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        components["database"] = "error"

    redirects_status = request.app.state.redirects.status()
    if redirects_status["last_load_ok"] is False:
        components["redirects"] = "error"

    healthy = all(v == "ok" for v in components.values())
    return HealthResponse(
        status="healthy" if healthy else "degraded",
        version=API_VERSION,
        components=components,
        redirects=redirects_status,
    )
