"""Unit tests for auth/authenticator.py -- CredentialAuthenticator.

Covers:
- successful login: tokens present, expiry ~now+60min (or 7 days), summary filled
- wrong password and unknown identifier return the identical failure
- disabled account returns a distinct failure, and only with the right password
- store outage (lookup error, pool timeout, raw transport error) returns
  upstream_unavailable, never invalid_credentials
- mark_authenticated side effect: called on success only, failures ignored
- blank input short-circuits without a store lookup
- malformed stored hash is a credential failure, not a crash

The authenticator is async; tests drive it with asyncio.run() against the
in-memory FakeIdentityRepository from tests/fakes.py.
"""

import asyncio
import logging
import threading
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from auth.authenticator import CredentialAuthenticator
from auth.models import FAILURE_MESSAGES, AuthResult, FailureKind, Identity
from auth.passwords import PasswordHasher
from auth.store import IdentityStore
from auth.tokens import TokenIssuer, TokenValidator
from tests.fakes import ADMIN_PASSWORD, DISABLED_PASSWORD, FakeIdentityRepository


@pytest.fixture
def authenticator(repository: FakeIdentityRepository, hasher: PasswordHasher, issuer: TokenIssuer):
    return CredentialAuthenticator(repository, hasher, issuer)


def _login(authenticator: CredentialAuthenticator, identifier, secret, remember_me: bool = False) -> AuthResult:
    return asyncio.run(authenticator.authenticate(identifier, secret, remember_me))


class TestSuccess:
    def test_admin_logs_in(self, authenticator: CredentialAuthenticator, validator: TokenValidator) -> None:
        result = _login(authenticator, "admin", ADMIN_PASSWORD)
        assert result.success is True
        assert result.access_token
        assert result.refresh_token
        assert result.failure is None
        assert result.failure_reason is None
        expected = datetime.now(timezone.utc) + timedelta(minutes=60)
        assert abs((result.expires_at - expected).total_seconds()) <= 2

        outcome = validator.validate(result.access_token)
        assert outcome.valid
        assert outcome.claims.identity_id == 1

    def test_remember_me_extends_expiry(self, authenticator: CredentialAuthenticator) -> None:
        result = _login(authenticator, "admin", ADMIN_PASSWORD, remember_me=True)
        expected = datetime.now(timezone.utc) + timedelta(days=7)
        assert result.success
        assert abs((result.expires_at - expected).total_seconds()) <= 2

    def test_email_and_case_insensitive_identifier(self, authenticator: CredentialAuthenticator) -> None:
        assert _login(authenticator, "ADMIN@Example.com", ADMIN_PASSWORD).success
        assert _login(authenticator, "  Admin ", ADMIN_PASSWORD).success

    def test_identity_summary(self, authenticator: CredentialAuthenticator) -> None:
        summary = _login(authenticator, "admin", ADMIN_PASSWORD).identity
        assert summary.id == 1
        assert summary.username == "admin"
        assert summary.email == "admin@example.com"
        assert summary.created_at == "2024-01-01T00:00:00+00:00"
        assert not hasattr(summary, "secret_hash")

    def test_marks_last_authenticated(
        self, authenticator: CredentialAuthenticator, repository: FakeIdentityRepository
    ) -> None:
        _login(authenticator, "admin", ADMIN_PASSWORD)
        assert repository.marked == [1]

    def test_side_effect_failure_keeps_success(
        self, authenticator: CredentialAuthenticator, repository: FakeIdentityRepository, caplog
    ) -> None:
        repository.fail_mark = True
        with caplog.at_level(logging.ERROR, logger="pricetracker.auth"):
            result = _login(authenticator, "admin", ADMIN_PASSWORD)
        assert result.success is True
        assert result.access_token
        assert "Could not record last login" in caplog.text

    def test_result_is_immutable(self, authenticator: CredentialAuthenticator) -> None:
        result = _login(authenticator, "admin", ADMIN_PASSWORD)
        with pytest.raises(AttributeError):
            result.success = False  # type: ignore[misc]


class TestCredentialFailures:
    def test_wrong_password(self, authenticator: CredentialAuthenticator) -> None:
        result = _login(authenticator, "admin", "wrong")
        assert result.success is False
        assert result.failure is FailureKind.INVALID_CREDENTIALS
        assert result.access_token is None
        assert result.refresh_token is None
        assert result.expires_at is None
        assert result.identity is None

    def test_unknown_identifier(self, authenticator: CredentialAuthenticator) -> None:
        result = _login(authenticator, "nobody", ADMIN_PASSWORD)
        assert result.success is False
        assert result.failure is FailureKind.INVALID_CREDENTIALS
        assert result.access_token is None

    def test_unknown_and_wrong_password_are_indistinguishable(self, authenticator: CredentialAuthenticator) -> None:
        wrong_password = _login(authenticator, "admin", "wrong")
        unknown = _login(authenticator, "nobody", "wrong")
        assert wrong_password == unknown

    def test_no_side_effect_on_failure(
        self, authenticator: CredentialAuthenticator, repository: FakeIdentityRepository
    ) -> None:
        _login(authenticator, "admin", "wrong")
        _login(authenticator, "nobody", "wrong")
        _login(authenticator, "disabled", DISABLED_PASSWORD)
        assert repository.marked == []

    def test_malformed_stored_hash(
        self, authenticator: CredentialAuthenticator, repository: FakeIdentityRepository, caplog
    ) -> None:
        repository.add(Identity(id=9, username="broken", email="broken@example.com", secret_hash="AAAA"))
        with caplog.at_level(logging.WARNING, logger="pricetracker.auth"):
            result = _login(authenticator, "broken", "whatever")
        assert result.failure is FailureKind.INVALID_CREDENTIALS
        assert "malformed" in caplog.text


class TestDisabledAccount:
    def test_disabled_with_correct_password(self, authenticator: CredentialAuthenticator) -> None:
        result = _login(authenticator, "disabled", DISABLED_PASSWORD)
        assert result.success is False
        assert result.failure is FailureKind.ACCOUNT_DISABLED
        assert result.access_token is None
        assert result.refresh_token is None

    def test_disabled_message_differs_from_invalid_credentials(self, authenticator: CredentialAuthenticator) -> None:
        disabled = _login(authenticator, "disabled", DISABLED_PASSWORD)
        invalid = _login(authenticator, "nobody", "wrong")
        assert disabled.failure_reason != invalid.failure_reason

    def test_disabled_with_wrong_password_reveals_nothing(self, authenticator: CredentialAuthenticator) -> None:
        result = _login(authenticator, "disabled", "wrong")
        assert result.failure is FailureKind.INVALID_CREDENTIALS


class TestUpstreamFailure:
    def test_lookup_error_is_not_invalid_credentials(
        self, authenticator: CredentialAuthenticator, repository: FakeIdentityRepository
    ) -> None:
        repository.fail_lookup = True
        result = _login(authenticator, "admin", ADMIN_PASSWORD)
        assert result.success is False
        assert result.failure is FailureKind.UPSTREAM_UNAVAILABLE
        assert result.failure_reason != _login(authenticator, "admin", "wrong").failure_reason
        assert result.failure_reason == FAILURE_MESSAGES[FailureKind.UPSTREAM_UNAVAILABLE]
        assert result.access_token is None

    @pytest.mark.parametrize(
        "error",
        [
            TimeoutError("lookup timed out"),
            asyncio.TimeoutError(),
            ConnectionError("connection reset by peer"),
            OSError("network unreachable"),
        ],
    )
    def test_transport_errors_are_upstream_unavailable(
        self, authenticator: CredentialAuthenticator, repository: FakeIdentityRepository, error: Exception
    ) -> None:
        repository.lookup_error = error
        result = _login(authenticator, "admin", ADMIN_PASSWORD)
        assert result.failure is FailureKind.UPSTREAM_UNAVAILABLE
        assert repository.marked == []

    def test_store_pool_timeout_is_upstream_unavailable(
        self,
        identity_store: IdentityStore,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
        admin_hash: str,
        monkeypatch,
    ) -> None:
        identity_store.create_identity(Identity(username="admin", email="admin@example.com", secret_hash=admin_hash))

        def exhausted(identifier: str):
            raise PoolTimeoutError("QueuePool limit of size 5 overflow 10 reached")

        monkeypatch.setattr(identity_store, "get_by_identifier", exhausted)
        authenticator = CredentialAuthenticator(identity_store, hasher, issuer)
        result = _login(authenticator, "admin", ADMIN_PASSWORD)
        assert result.failure is FailureKind.UPSTREAM_UNAVAILABLE


class TestInputValidation:
    @pytest.mark.parametrize(
        "identifier,secret",
        [("", ADMIN_PASSWORD), ("   ", ADMIN_PASSWORD), ("admin", ""), ("admin", "   "), (None, ADMIN_PASSWORD)],
    )
    def test_blank_input(
        self, authenticator: CredentialAuthenticator, repository: FakeIdentityRepository, identifier, secret
    ) -> None:
        result = _login(authenticator, identifier, secret)
        assert result.success is False
        assert result.failure is FailureKind.INVALID_INPUT
        assert repository.lookups == []


class TestEventLoop:
    def test_password_checks_run_on_worker_threads(
        self, repository: FakeIdentityRepository, issuer: TokenIssuer
    ) -> None:
        seen: list[int] = []

        class RecordingHasher(PasswordHasher):
            def verify(self, stored: str, candidate: str) -> bool:
                seen.append(threading.get_ident())
                return super().verify(stored, candidate)

        authenticator = CredentialAuthenticator(repository, RecordingHasher(), issuer)
        assert _login(authenticator, "admin", ADMIN_PASSWORD).success
        assert not _login(authenticator, "nobody", "wrong").success
        assert len(seen) == 2
        # asyncio.run drives the loop on this thread.
        assert threading.get_ident() not in seen
