"""
Identity repository: CRUD over users and credential checks.

Handles:
- Identity lookup and listing
- Identity CRUD (create, update, delete, enable, disable)
- Group grant updates (validated, stored in canonical form)
- Password changes and credential verification for login

The bootstrap admin is reserved: it can be updated but never deleted or
disabled, so the store always keeps one working administrator.
"""
import logging
import re
import sqlite3
from functools import lru_cache

from core.db import DatabaseManager
from core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from core.timestamps import isonow, parse_timestamp
from .config import DEFAULT_ADMIN_EMAIL, PasswordPolicy
from .passwords import check_password_strength, generate_password, hash_password, verify_password
from .permissions import normalize_grants
from .types import Identity, Role

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+$")
MAX_EMAIL_LENGTH = 254

_SELECT_COLUMNS = (
    "SELECT id, email, password_hash, role, group_grants, enabled, created_at, updated_at "
    "FROM identities"
)


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    # Verified for unknown emails so both login failure paths do the same work
    return hash_password("pman-no-such-identity")


def validate_email(email: str) -> None:
    """Raise ValidationError unless ``email`` looks like ``local@domain``."""
    if not isinstance(email, str) or not email:
        raise ValidationError("Email is required")
    if len(email) > MAX_EMAIL_LENGTH or not _EMAIL_RE.match(email):
        raise ValidationError(f"Invalid email address: '{email}'")


def _row_to_identity(row) -> Identity:
    return Identity(
        id=row["id"],
        email=row["email"],
        password_hash=row["password_hash"],
        role=Role(row["role"]),
        group_grants=row["group_grants"],
        enabled=bool(row["enabled"]),
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )


class IdentityStore:
    """Users of the secret store, keyed by email.

    Args:
        db: Database manager holding the ``identities`` table
        authority: Session authority used to revoke tokens on disable
            (may be attached later, see ``pman.service``)
        policy: Rules for passwords chosen by people
        admin_email: Email of the reserved bootstrap admin
    """

    def __init__(
        self,
        db: DatabaseManager,
        authority=None,
        policy: PasswordPolicy = PasswordPolicy(),
        admin_email: str = DEFAULT_ADMIN_EMAIL,
    ):
        self._db = db
        self.authority = authority
        self._policy = policy
        self._admin_email = admin_email

    @property
    def admin_email(self) -> str:
        return self._admin_email

    # =========================================================================
    # Lookup
    # =========================================================================

    def find(self, email: str) -> Identity | None:
        """Return the identity for ``email`` or None."""
        with self._db.connect() as conn:
            row = conn.execute(f"{_SELECT_COLUMNS} WHERE email = ?", (email,)).fetchone()
        return _row_to_identity(row) if row else None

    def get(self, email: str) -> Identity:
        """Return the identity for ``email``.

        Raises:
            NotFoundError: No such identity
        """
        identity = self.find(email)
        if identity is None:
            raise NotFoundError(f"User '{email}' not found")
        return identity

    def list_identities(self) -> list[Identity]:
        """All identities ordered by email."""
        with self._db.connect() as conn:
            rows = conn.execute(f"{_SELECT_COLUMNS} ORDER BY email").fetchall()
        return [_row_to_identity(row) for row in rows]

    # =========================================================================
    # CRUD
    # =========================================================================

    def create(
        self,
        email: str,
        role: "str | Role",
        group_grants: str,
        password: str | None = None,
    ) -> tuple[Identity, str]:
        """Create an identity.

        Args:
            email: Unique email
            role: ``admin`` or ``user``
            group_grants: Grant string, e.g. ``team1:read_write``
            password: Chosen password; a random one is generated when omitted

        Returns:
            (identity, password) tuple. The password is only ever returned here.

        Raises:
            ValidationError: Bad email, role, grants or weak password
            ConflictError: Email already taken
        """
        validate_email(email)
        role = Role.parse(role)
        grants = normalize_grants(group_grants)

        if password is None:
            password = generate_password()
        else:
            check_password_strength(password, self._policy)

        timestamp = isonow()
        with self._db.connect() as conn:
            try:
                conn.execute(
                    """INSERT INTO identities (email, password_hash, role, group_grants, enabled, created_at, updated_at)
                       VALUES (?, ?, ?, ?, 1, ?, ?)""",
                    (email, hash_password(password), role.value, grants, timestamp, timestamp),
                )
            except sqlite3.IntegrityError:
                raise ConflictError(f"User '{email}' already exists") from None

        logger.info("User created: %s (role=%s, groups=%s)", email, role.value, grants)
        return self.get(email), password

    def update(self, email: str, role: "str | Role", group_grants: str) -> Identity:
        """Replace role and grants of an existing identity."""
        role = Role.parse(role)
        grants = normalize_grants(group_grants)

        self._execute_update(
            email,
            "UPDATE identities SET role = ?, group_grants = ?, updated_at = ? WHERE email = ?",
            (role.value, grants, isonow(), email),
        )
        logger.info("User updated: %s (role=%s, groups=%s)", email, role.value, grants)
        return self.get(email)

    def update_group_grants(self, email: str, group_grants: str) -> Identity:
        """Replace the grants of an identity; only a parsable string is stored."""
        grants = normalize_grants(group_grants)

        self._execute_update(
            email,
            "UPDATE identities SET group_grants = ?, updated_at = ? WHERE email = ?",
            (grants, isonow(), email),
        )
        logger.info("Groups updated for %s: %s", email, grants)
        return self.get(email)

    def delete(self, email: str) -> None:
        """Delete an identity.

        Raises:
            ForbiddenError: ``email`` is the bootstrap admin
            NotFoundError: No such identity
        """
        if email == self._admin_email:
            raise ForbiddenError("Cannot delete the default admin user")

        with self._db.connect() as conn:
            deleted = conn.execute("DELETE FROM identities WHERE email = ?", (email,)).rowcount
        if deleted == 0:
            raise NotFoundError(f"User '{email}' not found")

        logger.info("User deleted: %s", email)

    def enable(self, email: str) -> None:
        self._execute_update(
            email,
            "UPDATE identities SET enabled = 1, updated_at = ? WHERE email = ?",
            (isonow(), email),
        )
        logger.info("User enabled: %s", email)

    def disable(self, email: str) -> int:
        """Disable an identity and revoke its outstanding tokens.

        Returns:
            Number of tokens revoked

        Raises:
            ForbiddenError: ``email`` is the bootstrap admin
            NotFoundError: No such identity
        """
        if email == self._admin_email:
            raise ForbiddenError("Cannot disable the default admin user")

        revoked = 0
        with self._db.connect() as conn:
            updated = conn.execute(
                "UPDATE identities SET enabled = 0, updated_at = ? WHERE email = ?",
                (isonow(), email),
            ).rowcount
            if updated == 0:
                raise NotFoundError(f"User '{email}' not found")
            if self.authority is not None:
                revoked = self.authority.revoke_all_for_user(email, conn=conn)

        if self.authority is None:
            logger.warning("User %s disabled without a session authority; tokens not revoked", email)

        logger.info("User disabled: %s (%d tokens revoked)", email, revoked)
        return revoked

    def change_password(self, email: str, new_password: str) -> None:
        """Set a new policy-checked password."""
        check_password_strength(new_password, self._policy)
        self._execute_update(
            email,
            "UPDATE identities SET password_hash = ?, updated_at = ? WHERE email = ?",
            (hash_password(new_password), isonow(), email),
        )
        logger.info("Password changed for user: %s", email)

    # =========================================================================
    # Authentication
    # =========================================================================

    def verify_credentials(self, email: str, password: str) -> Identity | None:
        """Return the identity if the password matches, else None.

        Does not look at ``enabled``; the caller decides what a disabled
        account means. Unknown emails still run one hash verification.
        """
        identity = self.find(email) if email else None
        if identity is None:
            verify_password(password or "", _dummy_hash())
            return None

        if not verify_password(password or "", identity.password_hash):
            return None
        return identity

    # =========================================================================
    # Helpers
    # =========================================================================

    def _execute_update(self, email: str, sql: str, params: tuple) -> None:
        with self._db.connect() as conn:
            updated = conn.execute(sql, params).rowcount
        if updated == 0:
            raise NotFoundError(f"User '{email}' not found")
