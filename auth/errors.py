"""
auth/errors.py -- Exception types raised by the auth core.

Per-request failures (wrong password, unknown identifier, disabled account)
are NOT exceptions. They travel as AuthResult / TokenValidation values. The
types below cover the cases that are either fatal at startup or that a
collaborator raises and the authenticator translates into a result.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthCoreError(Exception):
    """Base class for every exception defined by the auth package."""


class InvalidInputError(AuthCoreError, ValueError):
    """Raised by PasswordHasher.hash() when asked to hash an empty secret."""


class ConfigurationError(AuthCoreError):
    """Signing key, issuer or audience is missing.

    Raised while constructing TokenIssuer / TokenValidator so the process
    fails at startup instead of on the first login.
    """


class IdentityLookupError(AuthCoreError):
    """The identity store could not be reached (timeout, connection failure).

    Stores raise this instead of returning None so a transport failure is never
    mistaken for "identifier not found".
    """


class DuplicateIdentityError(AuthCoreError, ValueError):
    """A new identity's username or email already names an existing identity.

    Usernames and emails share one login namespace, so a username equal to
    someone else's email counts as a clash too.
    """
