"""
Centralized error types for pman.

Error Hierarchy:
- APIError (4xx): Expected errors with messages safe to expose to clients
- InternalError (5xx): Unexpected errors - never expose internal details

Usage:
    from core.errors import NotFoundError, ForbiddenError, safe_error_response

    # For expected errors (4xx) - raise with safe message
    raise NotFoundError(f"Secret {path} not found in group {group}")

    # In an adapter (HTTP handler, CLI command)
    except Exception as e:
        payload, status = safe_error_response(e, "read secret")
"""

import logging
import uuid
from typing import Any, Tuple

logger = logging.getLogger(__name__)


# =============================================================================
# Exception Classes (4xx - Expected Errors)
# =============================================================================

class APIError(Exception):
    """
    Base class for expected errors (4xx status codes).
    Messages are safe to expose to clients.
    """
    status_code = 400

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class ValidationError(APIError):
    """Malformed input; nothing was attempted (400)."""
    status_code = 400


class GrantFormatError(ValidationError):
    """A group grant string could not be parsed (400)."""


class ForbiddenError(APIError):
    """Caller lacks the grant required for the operation (403)."""
    status_code = 403


class NotFoundError(APIError):
    """Resource not found (404)."""
    status_code = 404


class ConflictError(APIError):
    """Resource conflict (409)."""
    status_code = 409


class CredentialError(APIError):
    """Login or token failure (401).

    Kept coarse on purpose: callers only learn which stage failed,
    never which factor.
    """
    status_code = 401


class InvalidCredentialsError(CredentialError):
    """Unknown email or wrong password (indistinguishable)."""

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class AccountDisabledError(CredentialError):
    """Account exists and the password matched, but it is disabled."""

    def __init__(self, message: str = "User account is disabled"):
        super().__init__(message)


class TokenMalformedError(CredentialError):
    """Token could not be decoded or is missing required claims."""


class TokenExpiredError(CredentialError):
    """Token signature is valid but the token is past expiry."""


class TokenSignatureError(CredentialError):
    """Token signature does not verify with the configured secret."""


class TokenRevokedError(CredentialError):
    """Token was revoked, or its owner is gone or disabled."""


# =============================================================================
# Internal Errors (5xx - Never Expose)
# =============================================================================

class InternalError(Exception):
    """
    Unexpected internal errors (5xx status codes).
    Message should NEVER be exposed to clients.
    """
    status_code = 500


class CryptoError(InternalError):
    """Encryption or decryption failed."""


class EnvelopeMalformedError(CryptoError):
    """Stored envelope is not valid base64 or is too short."""


class DecryptionFailedError(CryptoError):
    """Authentication tag did not verify (wrong key or tampered data)."""


class StorageError(InternalError):
    """Underlying persistence failure."""


# =============================================================================
# Safe Error Response Helper
# =============================================================================

def safe_error_response(
    e: Exception,
    operation: str,
    include_error_id: bool = True
) -> Tuple[dict[str, Any], int]:
    """
    Build a safe error payload for an adapter (HTTP route, CLI).

    For APIError subclasses (expected errors):
        - Returns the error message (safe to expose)
        - Uses the exception's status_code
        - Logs at WARNING level

    For all other exceptions (unexpected errors):
        - Returns generic message (never exposes internal details)
        - Returns 500 status code
        - Logs full exception at ERROR level

    Args:
        e: The exception that was caught
        operation: Human-readable description of what failed (e.g., "read secret")
        include_error_id: Whether to include error_id for support reference

    Returns:
        Tuple of (payload dict, status_code)
    """
    error_id = str(uuid.uuid4())[:8] if include_error_id else None
    log_extra = {'error_id': error_id} if error_id else {}

    if isinstance(e, APIError):
        logger.warning(f"{operation}: {e}", extra=log_extra)
        payload = {"error": str(e)}
        status_code = e.status_code
    else:
        logger.exception(f"{operation} failed", extra=log_extra)
        payload = {"error": f"{operation} failed"}
        status_code = 500

    if error_id:
        payload["error_id"] = error_id

    return payload, status_code
