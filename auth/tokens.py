"""
auth/tokens.py -- Access-token issuance/validation and refresh-token generation.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       sub (identity id), name, email, jti, iss, aud, iat, nbf and exp.
       Lifetime is 60 minutes, or 7 days when the user asked to be remembered.

  Validation: exact issuer and audience match, expiry checked with zero leeway.
       validate() returns a TokenValidation value on every path -- bad
       signature, expiry and claim mismatches are ordinary outcomes, not
       exceptions. The route layer turns an invalid outcome into a 401.

  Refresh tokens: 64 bytes from secrets.token_bytes, base64-encoded. They are
       opaque bearer secrets with no embedded expiry. Nothing here persists or
       redeems them; binding them to an identity is the store's job.

  Key material: read once in the constructor. A missing key, issuer or
       audience raises ConfigurationError so misconfiguration surfaces at
       startup, not on the first login.

Layer rule: no imports from api/. Import from core/ is allowed -- core/ is the
kernel and has no reverse dependencies.
"""

from __future__ import annotations

import base64
import logging
import secrets
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import ConfigurationError
from auth.models import AccessToken, ClaimSet, Identity, TokenValidation

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("pricetracker.auth")

ALGORITHM = "HS256"
ACCESS_TOKEN_MINUTES = 60
REMEMBER_ME_MINUTES = 7 * 24 * 60
REFRESH_TOKEN_BYTES = 64

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require(**values: str) -> None:
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise ConfigurationError(f"Token configuration is missing: {', '.join(missing)}")


# ---------------------------------------------------------------------------
# Issuer
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Signs access tokens and mints refresh tokens.

    Usage:
        issuer = TokenIssuer.from_settings(get_settings())
        token = issuer.issue(identity, remember_me=False)
        token.value, token.expires_at
    """

    def __init__(
        self,
        secret_key: str,
        issuer: str,
        audience: str,
        access_minutes: int = ACCESS_TOKEN_MINUTES,
        remember_me_minutes: int = REMEMBER_ME_MINUTES,
        clock: Clock = _utcnow,
    ) -> None:
        _require(secret_key=secret_key, issuer=issuer, audience=audience)
        self._secret_key = secret_key
        self.issuer = issuer
        self.audience = audience
        self.access_lifetime = timedelta(minutes=access_minutes)
        self.remember_me_lifetime = timedelta(minutes=remember_me_minutes)
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = _utcnow) -> TokenIssuer:
        return cls(
            secret_key=settings.secret_key,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            access_minutes=settings.access_token_minutes,
            remember_me_minutes=settings.remember_me_minutes,
            clock=clock,
        )

    def lifetime(self, remember_me: bool) -> timedelta:
        return self.remember_me_lifetime if remember_me else self.access_lifetime

    def issue(self, identity: Identity, remember_me: bool = False) -> AccessToken:
        """Encode a signed JWT for identity. expires_at = now + lifetime."""
        # JWT timestamps are whole seconds; truncate so expires_at matches the
        # exp claim a validator will read back.
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + self.lifetime(remember_me)
        payload = {
            "sub": str(identity.id),
            "name": identity.username,
            "email": identity.email,
            "jti": uuid.uuid4().hex,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": issued_at,
            "nbf": issued_at,
            "exp": expires_at,
        }
        value = jwt.encode(payload, self._secret_key, algorithm=ALGORITHM)
        return AccessToken(value=value, issued_at=issued_at, expires_at=expires_at)

    def issue_refresh_token(self) -> str:
        """Return 64 cryptographically random bytes, base64-encoded."""
        return base64.b64encode(secrets.token_bytes(REFRESH_TOKEN_BYTES)).decode("ascii")


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


class TokenValidator:
    """Verifies access tokens issued by a TokenIssuer sharing the same key."""

    def __init__(self, secret_key: str, issuer: str, audience: str) -> None:
        _require(secret_key=secret_key, issuer=issuer, audience=audience)
        self._secret_key = secret_key
        self.issuer = issuer
        self.audience = audience

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenValidator:
        return cls(settings.secret_key, settings.jwt_issuer, settings.jwt_audience)

    def validate(self, token: str | None) -> TokenValidation:
        """Verify signature, issuer, audience and expiry. Never raises."""
        if not token or not isinstance(token, str):
            return TokenValidation.invalid("empty token")
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
                options={"leeway": 0, "require_exp": True, "require_sub": True},
            )
        except ExpiredSignatureError:
            return self._reject("token expired")
        except JWTError as exc:
            return self._reject(str(exc) or "invalid token")

        try:
            claims = _claims_from_payload(payload)
        except (KeyError, TypeError, ValueError, OverflowError) as exc:
            return self._reject(f"malformed claims: {exc}")
        return TokenValidation.ok(claims)

    def _reject(self, reason: str) -> TokenValidation:
        logger.warning("Token validation failed: %s", reason)
        return TokenValidation.invalid(reason)


def _claims_from_payload(payload: dict) -> ClaimSet:
    iat = payload.get("iat")
    return ClaimSet(
        subject=str(payload["sub"]),
        name=str(payload.get("name", "")),
        email=str(payload.get("email", "")),
        jti=str(payload.get("jti", "")),
        issuer=payload["iss"],
        audience=payload["aud"],
        issued_at=datetime.fromtimestamp(iat, tz=timezone.utc) if iat is not None else None,
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )
