"""
Domain types shared by the pman modules - no dependencies on other pman modules.

NOTE: Keep this minimal. Only add types here if they cross module
boundaries (repository results, token claims, the caller handed in by
the request layer).
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from core.errors import ValidationError


class Role(str, Enum):
    """Closed set of identity roles."""
    ADMIN = "admin"
    USER = "user"

    @classmethod
    def parse(cls, value: "str | Role") -> "Role":
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(r.value for r in cls)
            raise ValidationError(f"Invalid role '{value}' (must be one of: {allowed})") from None

    @property
    def is_admin(self) -> bool:
        return self is Role.ADMIN


class Permission(str, Enum):
    """Access level a grant gives on a group."""
    READ = "read"
    READ_WRITE = "read_write"


@dataclass(frozen=True)
class GroupGrant:
    """One (group, permission) pair held by an identity."""
    group_name: str
    permission: Permission

    @property
    def allows_write(self) -> bool:
        return self.permission is Permission.READ_WRITE

    def __str__(self) -> str:
        return f"{self.group_name}:{self.permission.value}"


@dataclass(frozen=True)
class Identity:
    """User identity from database (immutable)."""
    id: int
    email: str
    password_hash: str = field(repr=False)
    role: Role
    group_grants: str
    enabled: bool
    created_at: datetime
    updated_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role.is_admin

    def to_dict(self) -> dict:
        """Public view of the identity (never includes the password hash)."""
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role.value,
            "groups": self.group_grants,
            "enabled": self.enabled,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class SecretInfo:
    """Provenance of a stored secret (metadata only - never the value)."""
    path: str
    group_name: str
    created_by: str
    updated_by: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class TokenClaims:
    """Verified session token contents (immutable)."""
    email: str
    role: Role
    issued_at: datetime
    expires_at: datetime
    jti: str

    @property
    def is_admin(self) -> bool:
        return self.role.is_admin


@dataclass(frozen=True)
class LoginResult:
    """Outcome of a successful login."""
    token: str = field(repr=False)
    expires_at: datetime
    identity: Identity


@dataclass(frozen=True)
class Caller:
    """Authenticated caller as seen by secret operations."""
    email: str
    role: Role
    group_grants: str

    @property
    def is_admin(self) -> bool:
        return self.role.is_admin
