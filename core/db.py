"""
Database access layer (DB-API 2.0 connection factory and pool).

A thin layer over sqlite3, NOT an ORM. Repositories write plain SQL with
``?`` placeholders and run each operation inside ``DatabaseManager.connect()``,
which gives them one transaction: commit on success, rollback on error.

Usage:
    from core.db import DatabaseManager

    dm = DatabaseManager(db_path=Path("/var/lib/pman/pman.db"))
    with dm.connect() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT path FROM secrets WHERE group_name = ?", ("team1",))
        rows = cursor.fetchall()

Driver errors raised inside ``connect()`` surface as ``core.errors.StorageError``
so callers never depend on sqlite3 exception types.
"""

import logging
import queue
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from core.errors import StorageError

logger = logging.getLogger(__name__)

_DEFAULT_DB_PATH = Path.home() / ".pman" / "pman.db"


class DatabaseManager:
    """
    Connection pool over a single SQLite database file.

    Repositories receive a manager in their constructor. Processes that only
    ever talk to one database can share the singleton via ``get_instance()``.

    Usage:
        dm = DatabaseManager.get_instance(db_path=path)
        with dm.connect() as conn:
            conn.execute("SELECT ...")
    """

    _instance: Optional["DatabaseManager"] = None
    _lock = threading.Lock()

    def __init__(
        self,
        db_path: Optional[Path] = None,
        pool_size: int = 10,
    ):
        self._db_path = Path(db_path) if db_path else _DEFAULT_DB_PATH
        self._pool_size = pool_size
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._pool: queue.Queue = queue.Queue(maxsize=pool_size)

    @classmethod
    def get_instance(
        cls,
        db_path: Optional[Path] = None,
        pool_size: int = 10,
    ) -> "DatabaseManager":
        """Get or create the singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls(db_path=db_path, pool_size=pool_size)
        return cls._instance

    @classmethod
    def reset(cls):
        """Drop the singleton and close its pooled connections. For testing only."""
        with cls._lock:
            if cls._instance is not None:
                cls._instance.close()
                cls._instance = None

    # ----- connection acquisition / release -----------------------------------

    def get_connection(self) -> sqlite3.Connection:
        """Acquire a connection from the pool, opening a new one if it is empty."""
        try:
            conn = self._pool.get_nowait()
        except queue.Empty:
            conn = None

        if conn is not None:
            try:
                conn.execute("SELECT 1")
                return conn
            except sqlite3.Error:
                # Stale; drop it and open a new one
                logger.debug("Discarding stale pooled connection to %s", self._db_path)
                conn.close()

        try:
            conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
        except sqlite3.Error as e:
            logger.error("Cannot open database %s: %s", self._db_path, e)
            raise StorageError(f"Cannot open database: {e}") from e
        return conn

    def release_connection(self, conn: sqlite3.Connection):
        """Return a connection to the pool."""
        try:
            self._pool.put_nowait(conn)
        except queue.Full:
            conn.close()

    @contextmanager
    def connect(self):
        """Context manager: acquire → yield → commit/rollback → release.

        sqlite3 errors are logged and re-raised as StorageError.
        """
        conn = self.get_connection()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.exception("Database operation failed on %s", self._db_path)
            raise StorageError(f"Database operation failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            self.release_connection(conn)

    def close(self):
        """Close every pooled connection."""
        while True:
            try:
                conn = self._pool.get_nowait()
            except queue.Empty:
                break
            conn.close()

    @property
    def db_path(self) -> Path:
        """Return the SQLite database path."""
        return self._db_path
