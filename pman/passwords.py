"""
Password hashing, verification, validation, and generation.

Handles:
- Password hashing (werkzeug's salted PBKDF2/scrypt format)
- Password verification
- Password strength validation against a PasswordPolicy
- Random passwords for newly created identities
"""
import re
import secrets
import string

from werkzeug.security import generate_password_hash, check_password_hash

from core.errors import ValidationError
from .config import GENERATED_PASSWORD_LENGTH, PasswordPolicy

__all__ = [
    "hash_password",
    "verify_password",
    "validate_password_strength",
    "check_password_strength",
    "generate_password",
]

_GENERATED_ALPHABET = string.ascii_letters + string.digits


def hash_password(password: str) -> str:
    """Hash a password.

    Args:
        password: Plain text password

    Returns:
        Salted hash string (method and salt embedded)
    """
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash.

    Args:
        password: Plain text password
        password_hash: Hash to check against

    Returns:
        True if password matches, False otherwise
    """
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)


def validate_password_strength(password: str, policy: PasswordPolicy = PasswordPolicy()) -> tuple[bool, str]:
    """Validate password meets complexity requirements.

    Args:
        password: Password to validate
        policy: Rules to apply

    Returns:
        (is_valid, error_message) tuple
    """
    if not password or len(password) < policy.min_length:
        return False, f"Password must be at least {policy.min_length} characters"

    if policy.require_uppercase and not re.search(r"[A-Z]", password):
        return False, "Password must contain at least one uppercase letter"

    if policy.require_lowercase and not re.search(r"[a-z]", password):
        return False, "Password must contain at least one lowercase letter"

    if policy.require_digit and not re.search(r"\d", password):
        return False, "Password must contain at least one digit"

    if policy.require_special and not re.search(r"[!@#$%^&*(),.?\":{}|<>]", password):
        return False, "Password must contain at least one special character"

    return True, ""


def check_password_strength(password: str, policy: PasswordPolicy = PasswordPolicy()) -> None:
    """Raise ValidationError if the password fails the policy."""
    is_valid, error = validate_password_strength(password, policy)
    if not is_valid:
        raise ValidationError(error)


def generate_password(length: int = GENERATED_PASSWORD_LENGTH) -> str:
    """Random alphanumeric password from a CSPRNG."""
    if length < 1:
        raise ValueError("Password length must be positive")
    return "".join(secrets.choice(_GENERATED_ALPHABET) for _ in range(length))
