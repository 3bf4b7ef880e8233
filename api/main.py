"""
api/main.py -- FastAPI application entry point for SegreGate.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. log_requests         -- one access-log line per request, including gate rejections
  2. add_security_headers -- HSTS, CSP, framing and sniffing headers on every response
  3. RequestGate          -- CORS, bearer-token verification, role policy
  4. SlowAPIMiddleware    -- per-route rate limits from api.limiter

Starlette's add_middleware() inserts each new middleware OUTSIDE the ones
already registered, so registration below runs innermost-first.

Lifespan opens the credential store on startup and disposes of it on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import HealthResponse
from api.responses import failure
from api.routes.admin import router as admin_router
from api.routes.auth import router as auth_router
from api.routes.users import router as users_router
from auth.gate import RequestGate
from auth.store import CredentialStore
from core.config import get_settings
from core.errors import AppError, ErrorKind, error_body

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("segregate.api")

# Fails loudly here, at import, if production secrets or origins are missing.
_settings = get_settings()

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the credential store for the lifetime of the server."""
    logger.info("SegreGate API starting up")
    if _settings.database_url:
        app.state.credential_store = CredentialStore(db_url=_settings.database_url)
    else:
        app.state.credential_store = CredentialStore()
    logger.info("Credential store initialized (has_users=%s)", app.state.credential_store.has_users())

    yield

    app.state.credential_store.close()
    logger.info("SegreGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SegreGate API",
    description="Community waste-segregation reporting -- authentication and access control.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack (registered innermost first, see module docstring)
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)
app.add_middleware(RequestGate, allowed_origins=_settings.cors_allowed_origins)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


SECURITY_HEADERS = {
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains; preload",
    "Content-Security-Policy": (
        "default-src 'self'; object-src 'none'; frame-ancestors 'self'; base-uri 'self'; form-action 'self'"
    ),
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Set SECURITY_HEADERS on every response, gate rejections included.

    setdefault leaves any header a route chose for itself untouched.
    """
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


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

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(users_router, prefix="/api", tags=["Users"])
app.include_router(admin_router, prefix="/api", tags=["Admin"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every handler returns the core.errors envelope so clients parse one shape.
# ---------------------------------------------------------------------------


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return failure(exc.kind, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 VALIDATION_ERROR with one {field, message} entry per failing field."""
    details = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ())]
        if loc and loc[0] in ("body", "query", "path", "header", "cookie"):
            loc = loc[1:]
        details.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return failure(ErrorKind.VALIDATION_ERROR, details=details)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 RATE_LIMITED; Retry-After is the length of the exceeded window in seconds."""
    response = failure(ErrorKind.RATE_LIMITED)
    response.headers["Retry-After"] = str(exc.limit.limit.get_expiry())
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap framework-raised HTTP errors (unknown route, wrong method) in the envelope."""
    if exc.status_code == 404:
        return failure(ErrorKind.NOT_FOUND)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail), "error": {"code": f"HTTP_{exc.status_code}"}},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The traceback goes to the server log only. In production the client gets
    the generic INTERNAL_ERROR message; in debug mode the exception text is
    included to speed up local development.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    message = f"{type(exc).__name__}: {exc}" if get_settings().debug else None
    return JSONResponse(status_code=500, content=error_body(ErrorKind.INTERNAL_ERROR, message))


# ---------------------------------------------------------------------------
# Health endpoint
#
# Public (outside the protected prefixes) and not rate limited -- load
# balancers and monitoring must never be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return liveness, version and a database round-trip check."""
    database = "ok"
    try:
        request.app.state.credential_store.ping()
    except SQLAlchemyError:
        logger.exception("Health check database ping failed")
        database = "error"
    return HealthResponse(version=VERSION, components={"app": "ok", "database": database})
