"""
Secret repository: path-addressed CRUD over encrypted secrets.

Secrets are partitioned by group and keyed by ``(path, group_name)``.
Storage is flat; folders are a view over path prefixes (see ``pman.tree``).

Every public operation checks the caller's grants before touching the
database, and values are encrypted before they are written and decrypted
only on an explicit ``read``.

Security Note:
    Never log secret values or envelopes. Paths, groups and actors are fine.
"""
import logging

from core.db import DatabaseManager
from core.errors import ForbiddenError, NotFoundError, ValidationError
from core.timestamps import isonow, parse_timestamp
from .cipher import SecretCipher
from .permissions import authorize
from .tree import PATH_SEPARATOR, TreeNode, build_tree, empty_parents
from .types import SecretInfo

logger = logging.getLogger(__name__)

MAX_PATH_LENGTH = 512

# =============================================================================
# SQL statements
# =============================================================================

_UPSERT_SECRET = """
INSERT INTO secrets (path, group_name, encrypted_value, created_by, updated_by, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (path, group_name)
DO UPDATE SET encrypted_value = excluded.encrypted_value,
              created_by = excluded.created_by,
              updated_by = excluded.updated_by,
              created_at = excluded.created_at,
              updated_at = excluded.updated_at
"""

_UPDATE_SECRET = """
UPDATE secrets
SET encrypted_value = ?, updated_by = ?, updated_at = ?
WHERE path = ? AND group_name = ?
"""

_SELECT_VALUE = "SELECT encrypted_value FROM secrets WHERE path = ? AND group_name = ?"

_SELECT_INFO = """
SELECT path, group_name, created_by, updated_by, created_at, updated_at
FROM secrets WHERE path = ? AND group_name = ?
"""

_DELETE_SECRET = "DELETE FROM secrets WHERE path = ? AND group_name = ?"

# A prefix matches itself and everything below it, never a sibling that
# merely shares leading characters (team/db vs team/dbx). substr() keeps
# the comparison case-sensitive and free of LIKE wildcards.
_PREFIX_FILTER = "(path = ? OR substr(path, 1, ?) = ?)"

_DELETE_UNDER_PREFIX = f"DELETE FROM secrets WHERE group_name = ? AND {_PREFIX_FILTER}"

_SELECT_ALL_PATHS = "SELECT path FROM secrets WHERE group_name = ? ORDER BY path"

_SELECT_PATHS_UNDER_PREFIX = (
    f"SELECT path FROM secrets WHERE group_name = ? AND {_PREFIX_FILTER} ORDER BY path"
)

_SELECT_ONE_UNDER_FOLDER = (
    "SELECT 1 FROM secrets WHERE group_name = ? AND substr(path, 1, ?) = ? LIMIT 1"
)


def _prefix_params(prefix: str) -> tuple:
    folder = prefix + PATH_SEPARATOR
    return (prefix, len(folder), folder)


# =============================================================================
# Input validation
# =============================================================================

def validate_path(path: str) -> None:
    """Validate a secret path.

    Raises:
        ValidationError: If the path is empty, too long, starts or ends
            with '/', or contains an empty segment.
    """
    if not isinstance(path, str) or not path:
        raise ValidationError("Secret path cannot be empty")
    if len(path) > MAX_PATH_LENGTH:
        raise ValidationError(f"Secret path cannot exceed {MAX_PATH_LENGTH} characters")
    if path.startswith(PATH_SEPARATOR) or path.endswith(PATH_SEPARATOR):
        raise ValidationError(f"Secret path cannot start or end with '{PATH_SEPARATOR}': {path}")
    if any(not segment.strip() for segment in path.split(PATH_SEPARATOR)):
        raise ValidationError(f"Secret path contains an empty segment: {path}")


def validate_group(group_name: str) -> None:
    """Validate a group name (it must survive the grant string format)."""
    if not isinstance(group_name, str) or not group_name.strip():
        raise ValidationError("Group name cannot be empty")
    if ":" in group_name or "," in group_name:
        raise ValidationError(f"Group name cannot contain ':' or ',': {group_name}")


def _normalize_prefix(prefix: str) -> str:
    prefix = (prefix or "").rstrip(PATH_SEPARATOR)
    if prefix:
        validate_path(prefix)
    return prefix


class SecretStore:
    """Encrypted secret repository partitioned by group.

    Args:
        db: Database manager holding the ``secrets`` table
        cipher: Cipher used for every value written or read
    """

    def __init__(self, db: DatabaseManager, cipher: SecretCipher):
        self._db = db
        self._cipher = cipher

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def _require_access(self, group_grants: str, group_name: str, write: bool) -> None:
        if not authorize(group_grants, group_name, require_write=write):
            action = "write to" if write else "read from"
            raise ForbiddenError(f"Insufficient permissions to {action} group '{group_name}'")

    # ------------------------------------------------------------------
    # Single-secret operations
    # ------------------------------------------------------------------

    def create(self, path: str, value: str, group_name: str, actor_email: str, group_grants: str) -> None:
        """Encrypt and store a secret, overwriting any secret at the same key.

        Raises:
            ForbiddenError: Caller cannot write to the group
            ValidationError: Bad path, group, value or actor
        """
        self._require_access(group_grants, group_name, write=True)
        self._validate_write(path, value, group_name, actor_email)

        envelope = self._cipher.encrypt(value)
        timestamp = isonow()
        with self._db.connect() as conn:
            conn.execute(
                _UPSERT_SECRET,
                (path, group_name, envelope, actor_email, actor_email, timestamp, timestamp),
            )

        logger.info("Secret stored: group=%s path=%s by=%s", group_name, path, actor_email)

    def read(self, path: str, group_name: str, group_grants: str) -> str:
        """Return the decrypted value of a secret.

        Raises:
            ForbiddenError: Caller cannot read the group
            NotFoundError: No secret at ``(path, group_name)``
            CryptoError: The stored envelope does not decrypt
        """
        self._require_access(group_grants, group_name, write=False)
        validate_path(path)

        with self._db.connect() as conn:
            row = conn.execute(_SELECT_VALUE, (path, group_name)).fetchone()

        if row is None:
            raise NotFoundError(f"Secret '{path}' not found in group '{group_name}'")

        try:
            return self._cipher.decrypt(row["encrypted_value"])
        except Exception:
            logger.error("Cannot decrypt secret: group=%s path=%s", group_name, path)
            raise

    def read_info(self, path: str, group_name: str, group_grants: str) -> SecretInfo:
        """Return provenance and timestamps of a secret without decrypting it."""
        self._require_access(group_grants, group_name, write=False)
        validate_path(path)

        with self._db.connect() as conn:
            row = conn.execute(_SELECT_INFO, (path, group_name)).fetchone()

        if row is None:
            raise NotFoundError(f"Secret '{path}' not found in group '{group_name}'")

        return SecretInfo(
            path=row["path"],
            group_name=row["group_name"],
            created_by=row["created_by"],
            updated_by=row["updated_by"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )

    def update(self, path: str, value: str, group_name: str, actor_email: str, group_grants: str) -> None:
        """Replace the value of an existing secret. Never creates one.

        Raises:
            NotFoundError: No secret at ``(path, group_name)``
        """
        self._require_access(group_grants, group_name, write=True)
        self._validate_write(path, value, group_name, actor_email)

        envelope = self._cipher.encrypt(value)
        with self._db.connect() as conn:
            cursor = conn.execute(
                _UPDATE_SECRET, (envelope, actor_email, isonow(), path, group_name)
            )
            updated = cursor.rowcount

        if updated == 0:
            raise NotFoundError(f"Secret '{path}' not found in group '{group_name}'")

        logger.info("Secret updated: group=%s path=%s by=%s", group_name, path, actor_email)

    def delete(self, path: str, group_name: str, group_grants: str) -> None:
        """Delete exactly one secret.

        Raises:
            NotFoundError: No secret at ``(path, group_name)``
        """
        self._require_access(group_grants, group_name, write=True)
        validate_path(path)

        with self._db.connect() as conn:
            deleted = conn.execute(_DELETE_SECRET, (path, group_name)).rowcount
            if deleted == 0:
                raise NotFoundError(f"Secret '{path}' not found in group '{group_name}'")
            self._cleanup_empty_folders(conn, path, group_name)

        logger.info("Secret deleted: group=%s path=%s", group_name, path)

    # ------------------------------------------------------------------
    # Hierarchical operations
    # ------------------------------------------------------------------

    def delete_recursive(self, path_prefix: str, group_name: str, group_grants: str) -> int:
        """Delete the secret at ``path_prefix`` and every secret below it.

        Returns:
            Number of secrets deleted (0 when nothing matched)
        """
        self._require_access(group_grants, group_name, write=True)
        prefix = _normalize_prefix(path_prefix)
        if not prefix:
            raise ValidationError("Recursive delete requires a non-empty path prefix")

        with self._db.connect() as conn:
            deleted = conn.execute(_DELETE_UNDER_PREFIX, (group_name, *_prefix_params(prefix))).rowcount
            if deleted > 0:
                self._cleanup_empty_folders(conn, prefix, group_name)

        logger.info("Recursive delete: group=%s prefix=%s removed=%d", group_name, prefix, deleted)
        return deleted

    def list_paths(self, group_name: str, path_prefix: str = "", group_grants: str = "") -> list[str]:
        """List secret paths in a group, byte-lexicographically ordered.

        Args:
            group_name: Group to list
            path_prefix: Optional folder or path to restrict the listing to
            group_grants: Caller's grants

        Returns:
            Matching paths (empty list when none)
        """
        self._require_access(group_grants, group_name, write=False)
        prefix = _normalize_prefix(path_prefix)

        with self._db.connect() as conn:
            if prefix:
                rows = conn.execute(
                    _SELECT_PATHS_UNDER_PREFIX, (group_name, *_prefix_params(prefix))
                ).fetchall()
            else:
                rows = conn.execute(_SELECT_ALL_PATHS, (group_name,)).fetchall()

        return [row["path"] for row in rows]

    def tree(self, group_name: str, path_prefix: str = "", group_grants: str = "") -> TreeNode:
        """Folder view of a group (or of one folder inside it)."""
        paths = self.list_paths(group_name, path_prefix, group_grants)
        return build_tree(paths, group_name)

    def folder_is_empty(self, folder: str, group_name: str, group_grants: str) -> bool:
        """True if no secret lives below ``folder``."""
        self._require_access(group_grants, group_name, write=False)
        folder = _normalize_prefix(folder)
        if not folder:
            return not self.list_paths(group_name, "", group_grants)

        marker = folder + PATH_SEPARATOR
        with self._db.connect() as conn:
            row = conn.execute(
                _SELECT_ONE_UNDER_FOLDER, (group_name, len(marker), marker)
            ).fetchone()
        return row is None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_write(self, path: str, value: str, group_name: str, actor_email: str) -> None:
        validate_path(path)
        validate_group(group_name)
        if not isinstance(value, str):
            raise ValidationError("Secret value must be a string")
        if not actor_email:
            raise ValidationError("Actor email is required for writes")

    def _cleanup_empty_folders(self, conn, deleted_path: str, group_name: str) -> list[str]:
        """Report parent folders left empty by a deletion.

        Runs on the deleting transaction's connection. Folders are not stored,
        so nothing is removed; an empty folder simply stops appearing in
        listings. Returns the emptied folders for logging.
        """
        parts = deleted_path.split(PATH_SEPARATOR)
        if len(parts) <= 1:
            return []

        top = parts[0] + PATH_SEPARATOR
        rows = conn.execute(
            "SELECT path FROM secrets WHERE group_name = ? AND substr(path, 1, ?) = ?",
            (group_name, len(top), top),
        ).fetchall()

        emptied = empty_parents(deleted_path, (row["path"] for row in rows))
        if emptied:
            logger.debug("Folders now empty in group %s: %s", group_name, ", ".join(emptied))
        return emptied
