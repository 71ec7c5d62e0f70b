"""
api/main.py -- FastAPI application entry point for the PriceTracker auth service.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter

Lifespan builds the auth core once at startup and tears the store down on
shutdown. Settings validation and TokenIssuer/TokenValidator construction
happen there, so a missing SECRET_KEY, issuer or audience stops the process
before it accepts a single request.
"""

from __future__ import annotations

import asyncio
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

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.authenticator import CredentialAuthenticator
from auth.models import Identity
from auth.passwords import PasswordHasher
from auth.store import IdentityStore
from auth.tokens import TokenIssuer, TokenValidator
from core.config import Settings, get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("pricetracker.api")

DEMO_USERNAME = "admin"
DEMO_EMAIL = "admin@example.com"
DEMO_PASSWORD = "Admin123!"  # noqa: S105 # nosec B105 -- opt-in demo account


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_auth_state(app: FastAPI, settings: Settings, store: IdentityStore) -> None:
    """Attach the auth core to app.state.

    Shared by the real lifespan and the test lifespan so both wire the same
    objects the same way.
    """
    hasher = PasswordHasher()
    issuer = TokenIssuer.from_settings(settings)
    app.state.identity_store = store
    app.state.password_hasher = hasher
    app.state.token_validator = TokenValidator.from_settings(settings)
    app.state.authenticator = CredentialAuthenticator(store, hasher, issuer)


def seed_demo_identity(store: IdentityStore, hasher: PasswordHasher) -> bool:
    """Create the demo admin account on an empty store. Returns True if created."""
    if store.has_identities():
        return False
    store.create_identity(
        Identity(username=DEMO_USERNAME, email=DEMO_EMAIL, secret_hash=hasher.hash(DEMO_PASSWORD))
    )
    logger.warning(
        "Demo identity created: %s / %s -- disable SEED_DEMO_IDENTITY outside demos", DEMO_EMAIL, DEMO_PASSWORD
    )
    return True


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the auth core on startup, dispose of the store on shutdown."""
    logger.info("PriceTracker auth starting up")
    settings = get_settings()
    store = IdentityStore(settings.database_url)
    build_auth_state(app, settings, store)
    if settings.seed_demo_identity:
        seed_demo_identity(store, app.state.password_hasher)
    logger.info("Auth initialized (issuer=%s, audience=%s)", settings.jwt_issuer, settings.jwt_audience)

    yield

    app.state.identity_store.close()
    logger.info("PriceTracker auth shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="PriceTracker Auth API",
    description="Credential login and token issuance for the PriceTracker dashboard.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
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


app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error leaves the service in the same {"error": {...}} envelope that
# the login route uses for authentication failures.
# ---------------------------------------------------------------------------


def error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 with Retry-After once a client exhausts its login budget."""
    logger.warning("Rate limit hit on %s from %s", request.url.path, request.client.host if request.client else "?")
    response = error_response(429, "rate_limited", "Too many login attempts.", str(exc))
    response.headers["Retry-After"] = str(int(getattr(exc, "retry_after", 60)))
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Dict details (see auth.dependencies) already carry code and message."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Traceback to the log only.
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return liveness plus a cheap identity-store probe. No auth, no rate limit."""
    store: IdentityStore = request.app.state.identity_store
    try:
        await asyncio.to_thread(store.has_identities)
        database = "ok"
    except Exception:
        logger.exception("Health check: identity store unreachable")
        database = "error"
    status = "healthy" if database == "ok" else "degraded"
    return HealthResponse(status=status, version=VERSION, components={"app": "ok", "database": database})
