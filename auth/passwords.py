"""
auth/passwords.py -- PBKDF2 password hashing and verification.

Stored format (must stay byte-compatible with hashes already in the store):

    base64( salt[16] || PBKDF2-HMAC-SHA256(secret, salt, 10_000 iterations)[20] )

36 raw bytes, 48 base64 characters. Anything that does not decode to exactly
36 bytes is a malformed record: verify() returns False for it and never
raises, so a corrupt row cannot be told apart from a wrong password by the
caller. is_well_formed() exists for the authenticator to log such rows as a
data-integrity problem.

The derived-key comparison uses hmac.compare_digest. A byte-by-byte loop with
an early exit would leak how many leading bytes matched.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets

from auth.errors import InvalidInputError

SALT_BYTES = 16
KEY_BYTES = 20
ITERATIONS = 10_000
_HASH_NAME = "sha256"
_BLOB_BYTES = SALT_BYTES + KEY_BYTES

# Policy for newly chosen passwords (login form and CLI). The hasher itself
# accepts any non-empty secret so existing short passwords still verify.
MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = 255


class PasswordHasher:
    """Salts, hashes and verifies login secrets.

    Stateless apart from the KDF parameters, so a single instance is shared
    across all requests.
    """

    def __init__(self, iterations: int = ITERATIONS) -> None:
        self.iterations = iterations

    def _derive(self, secret: str, salt: bytes) -> bytes:
        return hashlib.pbkdf2_hmac(_HASH_NAME, secret.encode("utf-8"), salt, self.iterations, dklen=KEY_BYTES)

    def hash(self, secret: str) -> str:
        """Return the base64 salt||key blob for secret.

        Raises InvalidInputError for an empty secret. Two calls with the same
        secret return different blobs because the salt is random.
        """
        if not secret:
            raise InvalidInputError("secret must not be empty")
        salt = secrets.token_bytes(SALT_BYTES)
        return base64.b64encode(salt + self._derive(secret, salt)).decode("ascii")

    def verify(self, stored: str, candidate: str) -> bool:
        """Return True if candidate matches the stored blob. Never raises."""
        if not stored or not candidate:
            return False
        raw = _decode(stored)
        if raw is None:
            return False
        salt, expected = raw[:SALT_BYTES], raw[SALT_BYTES:]
        try:
            actual = self._derive(candidate, salt)
        except (TypeError, UnicodeEncodeError):
            return False
        return hmac.compare_digest(actual, expected)

    def is_well_formed(self, stored: str) -> bool:
        """True if stored decodes to a 36-byte salt||key blob."""
        return _decode(stored) is not None


def _decode(stored: str) -> bytes | None:
    try:
        raw = base64.b64decode(stored, validate=True)
    except (binascii.Error, ValueError, TypeError):
        return None
    if len(raw) != _BLOB_BYTES:
        return None
    return raw
