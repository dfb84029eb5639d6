"""Shared pytest fixtures for pman tests."""
import os
import sqlite3
import sys
from contextlib import contextmanager

import pytest

# Add project root to path
_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _PROJECT_ROOT)

# ---------------------------------------------------------------------------
# Deterministic test environment - set BEFORE any pman module imports.
# Without these, get_settings() fails fast on the missing encryption key.
# ---------------------------------------------------------------------------
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("PMAN_ENCRYPTION_KEY", "test-encryption-key-for-pytest-32c!")
os.environ.setdefault("PMAN_TOKEN_SECRET", "test-token-secret-for-pytest-32chars!")

TEST_KEY = "test-encryption-key-for-pytest-32c!"
TEST_TOKEN_SECRET = "test-token-secret-for-pytest-32chars!"
ADMIN_EMAIL = "admin@pman.system"
ADMIN_PASSWORD = "DefaultPassword"

# Grant strings used across the suite
RW_TEAM1 = "team1:read_write"
RO_TEAM1 = "team1:read"
RW_BOTH = "team1:read_write,team2:read_write"


# =============================================================================
# Isolation
# =============================================================================

@pytest.fixture(autouse=True)
def _reset_singletons():
    """Reset settings cache and DB singleton between tests for isolation."""
    yield
    from config.settings import get_settings
    from core.db import DatabaseManager
    get_settings.cache_clear()
    DatabaseManager.reset()


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def db(tmp_path):
    """Per-test SQLite file with the pman schema and bootstrap admin."""
    from core.db import DatabaseManager
    from pman.schema import initialize

    manager = DatabaseManager(db_path=tmp_path / "pman.db")
    initialize(manager)
    yield manager
    manager.close()


class _FailingConnection:
    """Connection wrapper that raises on any statement containing ``marker``."""

    def __init__(self, conn, marker: str):
        self._conn = conn
        self._marker = marker

    def execute(self, sql, params=()):
        if self._marker in sql:
            raise sqlite3.OperationalError("disk I/O error")
        return self._conn.execute(sql, params)

    def __getattr__(self, name):
        return getattr(self._conn, name)


class _FailingDb:
    """DatabaseManager stand-in whose transactions break at one statement."""

    def __init__(self, db, marker: str):
        self._db = db
        self._marker = marker

    @contextmanager
    def connect(self):
        with self._db.connect() as conn:
            yield _FailingConnection(conn, self._marker)


@pytest.fixture
def failing_db(db):
    """Factory: ``failing_db(marker)`` wraps ``db`` so SQL containing ``marker`` fails."""
    return lambda marker: _FailingDb(db, marker)


@pytest.fixture
def empty_db(tmp_path):
    """Per-test SQLite file with no tables at all."""
    from core.db import DatabaseManager

    manager = DatabaseManager(db_path=tmp_path / "empty.db")
    yield manager
    manager.close()


# =============================================================================
# Component Fixtures
# =============================================================================

@pytest.fixture
def cipher():
    from pman.cipher import SecretCipher
    return SecretCipher(TEST_KEY)


@pytest.fixture
def store(db, cipher):
    from pman.secret_store import SecretStore
    return SecretStore(db, cipher)


@pytest.fixture
def identities(db):
    """Identity store wired to a session authority (like build_services does)."""
    from pman.identity import IdentityStore
    from pman.tokens import SessionAuthority

    store = IdentityStore(db)
    store.authority = SessionAuthority(
        db, secret=TEST_TOKEN_SECRET, identities=store, issuer="pman.test"
    )
    return store


@pytest.fixture
def authority(identities):
    return identities.authority


@pytest.fixture
def user(identities):
    """A regular user with read_write on team1 and read on team2.

    Returns (identity, password).
    """
    return identities.create(
        "alice@example.com", "user", "team1:read_write,team2:read", password="Passw0rdAlice"
    )
