"""
auth/dependencies.py -- FastAPI Depends() helpers for request authentication.

Token sources, checked in priority order:
  1. "access_token" cookie -- set by POST /auth/login.
  2. Authorization: Bearer <token> header -- API clients.

The token is verified by app.state.token_validator and the identity it names
is re-read from app.state.identity_store. A valid token for a disabled or
deleted identity does not authenticate.

try_get_current_identity() is the soft variant (returns None on failure).
get_current_identity() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: auth/dependencies.py may import from fastapi because this module
is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import Identity
from auth.store import IdentityStore
from auth.tokens import TokenValidator

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


def extract_token(request: Request) -> str | None:
    """Return the raw access token from the cookie or Bearer header, if any."""
    token: str | None = request.cookies.get(ACCESS_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def try_get_current_identity(request: Request) -> Identity | None:
    """Authenticate the request from its access token. Never raises."""
    token = extract_token(request)
    if token is None:
        return None

    validator: TokenValidator = request.app.state.token_validator
    outcome = validator.validate(token)
    if not outcome.valid:
        return None

    identity_id = outcome.claims.identity_id
    if identity_id is None:
        return None

    store: IdentityStore = request.app.state.identity_store
    identity = store.get_by_id(identity_id)
    if identity is None or not identity.is_active:
        return None
    return identity


def get_current_identity(request: Request) -> Identity:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity: Identity = Depends(get_current_identity)): ...
    """
    identity = try_get_current_identity(request)
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return identity
