"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/login     -- credential login; sets access + refresh cookies
  POST /api/v1/auth/logout    -- clears both cookies; 200
  GET  /api/v1/auth/validate  -- verifies the presented token, returns the identity
  GET  /api/v1/auth/me        -- current identity (requires auth)

The route layer only maps. All credential logic lives in
CredentialAuthenticator; this module turns its AuthResult into HTTP:

  invalid_input         -> 400
  invalid_credentials   -> 401
  account_disabled      -> 403
  upstream_unavailable  -> 503 + Retry-After

Security:
  POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  Cache-Control: no-store on every login response.
  Cookies are httpOnly, samesite=strict, secure when SECURE_COOKIES=true.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import (
    ErrorDetail,
    ErrorResponse,
    IdentityResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ValidateResponse,
)
from auth.authenticator import CredentialAuthenticator
from auth.dependencies import ACCESS_COOKIE, REFRESH_COOKIE, extract_token, get_current_identity
from auth.models import AuthResult, FailureKind, Identity, IdentitySummary
from auth.store import IdentityStore
from auth.tokens import TokenValidator
from core.config import get_settings

router = APIRouter()

_FAILURE_STATUS: dict[FailureKind, int] = {
    FailureKind.INVALID_INPUT: 400,
    FailureKind.INVALID_CREDENTIALS: 401,
    FailureKind.ACCOUNT_DISABLED: 403,
    FailureKind.UPSTREAM_UNAVAILABLE: 503,
}


def _failure_response(result: AuthResult) -> JSONResponse:
    resp = JSONResponse(
        status_code=_FAILURE_STATUS[result.failure],
        content=ErrorResponse(
            error=ErrorDetail(code=result.failure.value, message=result.failure_reason)
        ).model_dump(),
    )
    if result.failure is FailureKind.UPSTREAM_UNAVAILABLE:
        resp.headers["Retry-After"] = "5"
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _unauthorized(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content=ErrorResponse(error=ErrorDetail(code="unauthorized", message=message)).model_dump(),
    )


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
async def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username/email and password; set token cookies.

    Unknown identifier and wrong password return the same 401 body so the
    response cannot be used to discover which accounts exist.
    """
    authenticator: CredentialAuthenticator = request.app.state.authenticator
    result = await authenticator.authenticate(body.identifier, body.password, body.remember_me)
    if not result.success:
        return _failure_response(result)

    now = datetime.now(timezone.utc)
    max_age = max(int((result.expires_at - now).total_seconds()), 0)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            expires_at=result.expires_at,
            expires_in=max_age,
            user=IdentityResponse.from_summary(result.identity),
        ).model_dump(mode="json"),
    )
    secure = get_settings().secure_cookies
    for name, value in ((ACCESS_COOKIE, result.access_token), (REFRESH_COOKIE, result.refresh_token)):
        resp.set_cookie(name, value=value, httponly=True, samesite="strict", secure=secure, max_age=max_age)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
async def logout() -> JSONResponse:
    """Clear both token cookies and end the session."""
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    resp.delete_cookie(ACCESS_COOKIE)
    resp.delete_cookie(REFRESH_COOKIE)
    return resp


@router.get("/auth/validate", response_model=ValidateResponse)
async def validate(request: Request) -> JSONResponse:
    """Verify the presented access token and report whose it is.

    The identity named by the token must still exist and be active.
    """
    token = extract_token(request)
    if token is None:
        return _unauthorized("Token not found.")

    validator: TokenValidator = request.app.state.token_validator
    outcome = validator.validate(token)
    if not outcome.valid or outcome.claims.identity_id is None:
        return _unauthorized("Token is invalid or expired.")

    store: IdentityStore = request.app.state.identity_store
    identity = await asyncio.to_thread(store.get_by_id, outcome.claims.identity_id)
    if identity is None or not identity.is_active:
        return _unauthorized("Identity not found or inactive.")

    return JSONResponse(
        content=ValidateResponse(
            user=IdentityResponse.from_summary(IdentitySummary.from_identity(identity)),
            expires_at=outcome.claims.expires_at,
        ).model_dump(mode="json"),
    )


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=IdentityResponse)
async def me(identity: Identity = Depends(get_current_identity)) -> IdentityResponse:
    """Return the identity behind the current access token."""
    return IdentityResponse.from_summary(IdentitySummary.from_identity(identity))
