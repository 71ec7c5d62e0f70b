"""
auth/authenticator.py -- Credential login orchestration.

Flow for one attempt:

    input check -> identity lookup -> password check -> active check
                -> token issuance -> mark_authenticated side effect

Every checkpoint that fails ends in AuthResult.failed(kind). authenticate()
never raises for a per-request failure; only TokenIssuer misconfiguration
(caught at construction time) is fatal.

Enumeration resistance:
  Unknown identifier and wrong password produce the same FailureKind and the
  same message. When the identifier is unknown, the password is still run
  through PBKDF2 against a dummy hash so response time does not reveal whether
  the account exists. The disabled-account message is only reachable once the
  password has been proven correct.

Lookup failures:
  A store that cannot answer raises IdentityLookupError. Repositories that
  let a raw transport error through (TimeoutError, ConnectionError, any
  OSError) are treated the same way. Both become UPSTREAM_UNAVAILABLE -- a
  transient error the caller may retry -- and are never reported as invalid
  credentials.

PBKDF2 runs on a worker thread (asyncio.to_thread) so a login does not stall
the event loop for the duration of the key derivation.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from auth.errors import IdentityLookupError
from auth.models import AuthResult, FailureKind, Identity, IdentitySummary
from auth.passwords import PasswordHasher
from auth.tokens import TokenIssuer

logger = logging.getLogger("pricetracker.auth")


class IdentityRepository(Protocol):
    """Async seam between the authenticator and whatever stores identities."""

    async def find_by_identifier(self, identifier: str) -> Identity | None:
        """Case-insensitive match on username or email.

        Returns None when no identity matches. Raises IdentityLookupError when
        the store itself is unreachable.
        """
        ...

    async def mark_authenticated(self, identity_id: int) -> None:
        """Record a successful login for identity_id."""
        ...


class CredentialAuthenticator:
    """Single entry point for username/email + password logins.

    Usage:
        authenticator = CredentialAuthenticator(store, PasswordHasher(), issuer)
        result = await authenticator.authenticate("admin", "Admin123!", remember_me=False)
        if result.success:
            result.access_token, result.refresh_token, result.expires_at
    """

    def __init__(self, repository: IdentityRepository, hasher: PasswordHasher, issuer: TokenIssuer) -> None:
        self.repository = repository
        self.hasher = hasher
        self.issuer = issuer
        # Computed once so the first unknown-identifier attempt is not
        # measurably faster than later ones.
        self._dummy_hash = hasher.hash(f"timing-equalizer-{id(self)}")

    async def authenticate(self, identifier: str, secret: str, remember_me: bool = False) -> AuthResult:
        if not isinstance(identifier, str) or not isinstance(secret, str):
            return AuthResult.failed(FailureKind.INVALID_INPUT)
        identifier = identifier.strip()
        if not identifier or not secret.strip():
            return AuthResult.failed(FailureKind.INVALID_INPUT)

        try:
            identity = await self.repository.find_by_identifier(identifier)
        except (IdentityLookupError, OSError, asyncio.TimeoutError):
            logger.exception("Identity lookup failed for login attempt")
            return AuthResult.failed(FailureKind.UPSTREAM_UNAVAILABLE)

        if identity is None:
            await asyncio.to_thread(self.hasher.verify, self._dummy_hash, secret)
            logger.warning("Login failed: unknown identifier %r", identifier)
            return AuthResult.failed(FailureKind.INVALID_CREDENTIALS)

        if not await asyncio.to_thread(self.hasher.verify, identity.secret_hash, secret):
            if not self.hasher.is_well_formed(identity.secret_hash):
                logger.warning("Stored secret hash for identity %s is malformed", identity.id)
            logger.warning("Login failed: bad password for identity %s", identity.id)
            return AuthResult.failed(FailureKind.INVALID_CREDENTIALS)

        if not identity.is_active:
            logger.warning("Login refused: identity %s is disabled", identity.id)
            return AuthResult.failed(FailureKind.ACCOUNT_DISABLED)

        access = self.issuer.issue(identity, remember_me)
        refresh_token = self.issuer.issue_refresh_token()

        await self._mark_authenticated(identity)
        logger.info("Identity %s logged in (remember_me=%s)", identity.id, remember_me)

        return AuthResult.succeeded(
            access_token=access.value,
            refresh_token=refresh_token,
            expires_at=access.expires_at,
            identity=IdentitySummary.from_identity(identity),
        )

    async def _mark_authenticated(self, identity: Identity) -> None:
        # The login already succeeded; a failed bookkeeping write must not
        # turn it into a failure.
        try:
            await self.repository.mark_authenticated(identity.id)
        except Exception:
            logger.exception("Could not record last login for identity %s", identity.id)
