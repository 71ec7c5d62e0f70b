"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and the
authenticator do the work; these types only carry shape.

Identity is the mutable record the store hands out. Everything the core
returns to callers (AuthResult, ClaimSet, TokenValidation, AccessToken) is
frozen -- once returned it cannot be altered by the HTTP layer.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


@dataclass
class Identity:
    """A credential record owned by the identity store.

    Either username or email can be used as the login identifier; both are
    matched case-insensitively by the store.

    secret_hash is the base64 PBKDF2 blob produced by PasswordHasher.hash().
    last_authenticated_at is only written by the store's mark_authenticated().
    """

    username: str
    email: str
    secret_hash: str
    id: int | None = None
    is_active: bool = True
    created_at: str | None = None
    last_authenticated_at: str | None = None


@dataclass(frozen=True)
class IdentitySummary:
    """Public snapshot of an identity. Never carries the secret hash."""

    id: int
    username: str
    email: str
    created_at: str | None = None

    @classmethod
    def from_identity(cls, identity: Identity) -> IdentitySummary:
        return cls(
            id=identity.id,
            username=identity.username,
            email=identity.email,
            created_at=identity.created_at,
        )


class FailureKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_DISABLED = "account_disabled"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"


# User-facing messages. INVALID_CREDENTIALS is shared by "unknown identifier"
# and "wrong password" so the response cannot be used to enumerate accounts.
FAILURE_MESSAGES: dict[FailureKind, str] = {
    FailureKind.INVALID_INPUT: "Identifier and password are required.",
    FailureKind.INVALID_CREDENTIALS: "Invalid credentials.",
    FailureKind.ACCOUNT_DISABLED: "This account has been disabled.",
    FailureKind.UPSTREAM_UNAVAILABLE: "Authentication is temporarily unavailable. Please try again.",
}


@dataclass(frozen=True)
class AuthResult:
    """Outcome of one authentication attempt.

    Build through succeeded() / failed() so the "tokens present iff success"
    rule holds for every instance.
    """

    success: bool
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: datetime | None = None
    identity: IdentitySummary | None = None
    failure: FailureKind | None = None
    failure_reason: str | None = None

    @classmethod
    def succeeded(
        cls,
        access_token: str,
        refresh_token: str,
        expires_at: datetime,
        identity: IdentitySummary,
    ) -> AuthResult:
        return cls(
            success=True,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            identity=identity,
        )

    @classmethod
    def failed(cls, kind: FailureKind) -> AuthResult:
        return cls(success=False, failure=kind, failure_reason=FAILURE_MESSAGES[kind])


@dataclass(frozen=True)
class AccessToken:
    """A freshly signed JWT with the timestamps that were written into it."""

    value: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class ClaimSet:
    """Identity assertions recovered from a verified access token."""

    subject: str  # identity id, as a string (JWT "sub")
    name: str
    email: str
    jti: str
    issuer: str
    audience: str
    issued_at: datetime | None
    expires_at: datetime

    @property
    def identity_id(self) -> int | None:
        """Subject as an int, or None if the subject is not numeric."""
        try:
            return int(self.subject)
        except ValueError:
            return None


@dataclass(frozen=True)
class TokenValidation:
    """Tagged outcome of TokenValidator.validate().

    valid=True carries claims; valid=False carries a short reason for logs.
    The reason is for operators only -- the HTTP layer always answers 401.
    """

    claims: ClaimSet | None = None
    reason: str | None = None

    @property
    def valid(self) -> bool:
        return self.claims is not None

    @classmethod
    def ok(cls, claims: ClaimSet) -> TokenValidation:
        return cls(claims=claims)

    @classmethod
    def invalid(cls, reason: str) -> TokenValidation:
        return cls(reason=reason)
