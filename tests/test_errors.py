"""Tests for error types and safe error payloads."""

import pytest

from core.errors import (
    AccountDisabledError,
    APIError,
    ConflictError,
    CredentialError,
    CryptoError,
    DecryptionFailedError,
    ForbiddenError,
    GrantFormatError,
    InternalError,
    InvalidCredentialsError,
    NotFoundError,
    StorageError,
    TokenRevokedError,
    ValidationError,
    safe_error_response,
)


class TestHierarchy:
    @pytest.mark.parametrize("cls, status", [
        (ValidationError, 400),
        (GrantFormatError, 400),
        (ForbiddenError, 403),
        (NotFoundError, 404),
        (ConflictError, 409),
        (CredentialError, 401),
        (TokenRevokedError, 401),
    ])
    def test_status_codes(self, cls, status):
        assert cls("x").status_code == status

    def test_status_override(self):
        assert APIError("x", status_code=418).status_code == 418

    def test_credential_defaults(self):
        assert str(InvalidCredentialsError()) == "Invalid credentials"
        assert str(AccountDisabledError()) == "User account is disabled"

    def test_internal_errors_are_not_api_errors(self):
        for cls in (CryptoError, DecryptionFailedError, StorageError):
            assert issubclass(cls, InternalError)
            assert not issubclass(cls, APIError)


class TestSafeErrorResponse:
    def test_client_error_message_exposed(self):
        payload, status = safe_error_response(NotFoundError("Secret 'x' not found"), "read secret")
        assert status == 404
        assert payload["error"] == "Secret 'x' not found"
        assert "error_id" in payload

    def test_internal_error_message_hidden(self):
        payload, status = safe_error_response(StorageError("disk /var/lib/x failed"), "read secret")
        assert status == 500
        assert payload["error"] == "read secret failed"
        assert "/var/lib" not in str(payload)

    def test_unexpected_exception(self):
        payload, status = safe_error_response(RuntimeError("boom"), "list secrets", include_error_id=False)
        assert status == 500
        assert "error_id" not in payload
