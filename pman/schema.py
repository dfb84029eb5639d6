"""
pman database schema initialization and bootstrap seeding.

IMPORTANT: initialize() should ONLY be called by:
- pman.service.build_services() at startup
- Test fixtures

Never call schema initialization from repository code.
"""
import logging

from core.db import DatabaseManager
from core.timestamps import isonow
from .config import BootstrapAdmin
from .passwords import hash_password
from .permissions import normalize_grants
from .types import Role

logger = logging.getLogger(__name__)

_TABLES = (
    """
    CREATE TABLE IF NOT EXISTS identities (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT UNIQUE NOT NULL,
        password_hash TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'user',
        group_grants TEXT NOT NULL DEFAULT '',
        enabled INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS secrets (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        path TEXT NOT NULL,
        group_name TEXT NOT NULL,
        encrypted_value TEXT NOT NULL,
        created_by TEXT NOT NULL,
        updated_by TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (path, group_name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS revoked_tokens (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        token_hash TEXT UNIQUE NOT NULL,
        user_email TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        revoked INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    )
    """,
)

_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_secrets_group_path ON secrets (group_name, path)",
    "CREATE INDEX IF NOT EXISTS idx_revoked_tokens_email ON revoked_tokens (user_email)",
    "CREATE INDEX IF NOT EXISTS idx_revoked_tokens_expires ON revoked_tokens (expires_at)",
)


def create_tables(db: DatabaseManager) -> None:
    """Create every table and index that does not exist yet."""
    with db.connect() as conn:
        for ddl in _TABLES:
            conn.execute(ddl)
        for ddl in _INDEXES:
            conn.execute(ddl)


def seed_bootstrap_admin(db: DatabaseManager, bootstrap: BootstrapAdmin) -> bool:
    """Insert the bootstrap admin unless an identity with its email exists.

    Returns:
        True if the admin was created by this call
    """
    grants = normalize_grants(bootstrap.group_grants)

    with db.connect() as conn:
        row = conn.execute(
            "SELECT id FROM identities WHERE email = ?", (bootstrap.email,)
        ).fetchone()
        if row is not None:
            return False

        timestamp = isonow()
        conn.execute(
            """INSERT INTO identities (email, password_hash, role, group_grants, enabled, created_at, updated_at)
               VALUES (?, ?, ?, ?, 1, ?, ?)""",
            (bootstrap.email, hash_password(bootstrap.password), Role.ADMIN.value, grants, timestamp, timestamp),
        )

    logger.warning(
        "Bootstrap admin '%s' created with the configured default password; "
        "change it after the first login",
        bootstrap.email,
    )
    return True


def initialize(db: DatabaseManager, bootstrap: BootstrapAdmin = BootstrapAdmin()) -> None:
    """Create the schema and seed the bootstrap admin. Idempotent."""
    create_tables(db)
    seed_bootstrap_admin(db, bootstrap)
    logger.info("Database initialized: %s", db.db_path)
