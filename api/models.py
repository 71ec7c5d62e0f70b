"""
API request and response models for the PriceTracker auth endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import IdentitySummary
from auth.passwords import MAX_PASSWORD_LENGTH, MIN_PASSWORD_LENGTH

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    identifier accepts a username or an email address (1..255 chars).
    password is 6..255 chars and is passed through unstripped.
    """

    identifier: str = Field(min_length=1, max_length=255)
    # Never stripped: leading/trailing whitespace is part of the secret.
    password: str = Field(
        min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH, json_schema_extra={"format": "password"}
    )
    remember_me: bool = False


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class IdentityResponse(BaseModel):
    """Public identity snapshot returned by login, validate and me."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    created_at: Optional[str] = None

    @classmethod
    def from_summary(cls, summary: IdentitySummary) -> "IdentityResponse":
        return cls(
            id=summary.id,
            username=summary.username,
            email=summary.email,
            created_at=summary.created_at,
        )


class LoginResponse(BaseModel):
    """Successful POST /api/v1/auth/login response."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: datetime
    expires_in: int
    user: IdentityResponse


class ValidateResponse(BaseModel):
    """Response for GET /api/v1/auth/validate."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    user: IdentityResponse
    expires_at: datetime


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
