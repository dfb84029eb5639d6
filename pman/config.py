"""
pman policy objects - no dependencies on other pman modules.

Values are sourced from config.settings (Pydantic BaseSettings) and frozen
into small dataclasses that the repositories receive in their constructors,
so nothing below the service layer reads settings globals.
"""
from dataclasses import dataclass

# =============================================================================
# Password Policy
# =============================================================================


@dataclass(frozen=True)
class PasswordPolicy:
    """Complexity rules for passwords chosen by people."""
    min_length: int = 8
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_digit: bool = True
    require_special: bool = False

    @classmethod
    def from_settings(cls, auth) -> "PasswordPolicy":
        return cls(
            min_length=auth.password_min_length,
            require_uppercase=auth.password_require_uppercase,
            require_lowercase=auth.password_require_lowercase,
            require_digit=auth.password_require_digit,
            require_special=auth.password_require_special,
        )


# =============================================================================
# Bootstrap Admin
# =============================================================================

DEFAULT_ADMIN_EMAIL = "admin@pman.system"
DEFAULT_ADMIN_PASSWORD = "DefaultPassword"
DEFAULT_ADMIN_GROUPS = "team1:read_write,team2:read_write"

# Length of passwords generated for new identities
GENERATED_PASSWORD_LENGTH = 16


@dataclass(frozen=True)
class BootstrapAdmin:
    """The reserved admin identity seeded on first start."""
    email: str = DEFAULT_ADMIN_EMAIL
    password: str = DEFAULT_ADMIN_PASSWORD
    group_grants: str = DEFAULT_ADMIN_GROUPS

    def __repr__(self) -> str:
        return f"BootstrapAdmin(email={self.email!r}, group_grants={self.group_grants!r})"

    @classmethod
    def from_settings(cls, bootstrap) -> "BootstrapAdmin":
        return cls(
            email=bootstrap.admin_email,
            password=bootstrap.admin_password.get_secret_value(),
            group_grants=bootstrap.admin_groups,
        )
