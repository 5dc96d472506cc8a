"""SQLite database setup, schema management and connection pooling."""

from __future__ import annotations

import logging
import queue
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import sqlite_vec

from archmemory.errors import StorageConnectionError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 4

SCHEMA_SQL = """
BEGIN;

CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    username TEXT UNIQUE,
    email TEXT UNIQUE,
    name TEXT,
    github_id INTEGER UNIQUE,
    avatar_url TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS teams (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS team_memberships (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    team_id TEXT NOT NULL REFERENCES teams(id) ON DELETE CASCADE,
    role TEXT NOT NULL DEFAULT 'member',
    created_at TEXT NOT NULL,
    UNIQUE (user_id, team_id)
);

CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    path_hash TEXT NOT NULL,
    repository_id TEXT,
    git_remote_url TEXT,
    tech_stack TEXT NOT NULL DEFAULT '[]',
    project_type TEXT NOT NULL DEFAULT 'general',
    team_id TEXT REFERENCES teams(id) ON DELETE SET NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    user_id TEXT REFERENCES users(id) ON DELETE SET NULL,
    started_at TEXT NOT NULL,
    ended_at TEXT,
    decision_count INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS decisions (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    session_id TEXT REFERENCES sessions(id) ON DELETE SET NULL,
    user_id TEXT REFERENCES users(id) ON DELETE SET NULL,
    decision TEXT NOT NULL,
    reasoning TEXT NOT NULL,
    type TEXT NOT NULL
        CHECK (type IN ('tech_stack', 'architecture', 'pattern', 'tool_choice')),
    alternatives_considered TEXT NOT NULL DEFAULT '[]',
    files_affected TEXT NOT NULL DEFAULT '[]',
    confidence REAL NOT NULL CHECK (confidence >= 0 AND confidence <= 1),
    public INTEGER NOT NULL DEFAULT 0,
    vector_embedding BLOB,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS decision_patterns (
    id TEXT PRIMARY KEY,
    pattern_name TEXT NOT NULL,
    description TEXT,
    tech_stack TEXT NOT NULL DEFAULT '[]',
    project_type TEXT,
    usage_count INTEGER NOT NULL DEFAULT 0,
    success_rate REAL NOT NULL DEFAULT 0.0
        CHECK (success_rate >= 0 AND success_rate <= 1),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS api_keys (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    key_hash TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL DEFAULT 'Default',
    last_used_at TEXT,
    created_at TEXT NOT NULL
);

-- One row per identity: repository_id when known, path_hash otherwise
CREATE UNIQUE INDEX IF NOT EXISTS idx_projects_identity
    ON projects(COALESCE(repository_id, path_hash));
CREATE INDEX IF NOT EXISTS idx_projects_path_hash ON projects(path_hash);
CREATE INDEX IF NOT EXISTS idx_projects_repository_id ON projects(repository_id);
CREATE INDEX IF NOT EXISTS idx_sessions_project ON sessions(project_id);
CREATE INDEX IF NOT EXISTS idx_sessions_started_at ON sessions(started_at);
CREATE INDEX IF NOT EXISTS idx_decisions_project_created ON decisions(project_id, created_at);
CREATE INDEX IF NOT EXISTS idx_decisions_session ON decisions(session_id);
CREATE INDEX IF NOT EXISTS idx_decisions_type ON decisions(type);
CREATE INDEX IF NOT EXISTS idx_decisions_public ON decisions(public);
CREATE INDEX IF NOT EXISTS idx_patterns_project_type ON decision_patterns(project_type);
CREATE INDEX IF NOT EXISTS idx_patterns_usage ON decision_patterns(usage_count DESC);
CREATE INDEX IF NOT EXISTS idx_api_keys_user ON api_keys(user_id);

INSERT OR IGNORE INTO schema_migrations (version, applied_at)
VALUES ({version}, '{applied_at}');

COMMIT;
"""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_db_time(value: datetime) -> str:
    """Serialize a timestamp as sortable ISO-8601 UTC text."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _load_vector_extension(conn: sqlite3.Connection) -> None:
    try:
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
    except (AttributeError, sqlite3.Error) as e:
        raise StorageConnectionError(
            "Could not load the sqlite-vec extension; this Python build may not "
            "support SQLite extensions",
            context={"error": type(e).__name__},
        ) from e


def apply_schema(conn: sqlite3.Connection) -> None:
    """Create all tables and indexes inside one explicit transaction."""
    script = SCHEMA_SQL.format(version=SCHEMA_VERSION, applied_at=to_db_time(utcnow()))
    try:
        conn.executescript(script)
    except sqlite3.Error:
        if conn.in_transaction:
            conn.rollback()
        raise


def get_connection(db_path: Path, apply: bool = True) -> sqlite3.Connection:
    """Create or open a SQLite database with the archmemory schema."""
    try:
        conn = sqlite3.connect(str(db_path), timeout=30.0, check_same_thread=False)
    except sqlite3.Error as e:
        raise StorageConnectionError(
            f"Failed to open database at {db_path}", context={"error": str(e)}
        ) from e

    conn.row_factory = sqlite3.Row
    try:
        _load_vector_extension(conn)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        if apply:
            apply_schema(conn)
    except sqlite3.Error as e:
        conn.close()
        raise StorageConnectionError(
            f"Failed to initialise database at {db_path}", context={"error": str(e)}
        ) from e
    except StorageConnectionError:
        conn.close()
        raise

    return conn


class Database:
    """Bounded pool of SQLite connections.

    Connections are opened lazily, up to ``pool_size``. When every connection
    is checked out, callers wait up to ``acquire_timeout`` seconds before a
    StorageConnectionError is raised. A connection that breaks is dropped and
    a fresh one is opened on the next checkout.
    """

    def __init__(
        self, db_path: Path, pool_size: int = 5, acquire_timeout: float = 30.0
    ) -> None:
        self.db_path = Path(db_path)
        self.pool_size = pool_size
        self._acquire_timeout = acquire_timeout
        self._slots = threading.BoundedSemaphore(pool_size)
        self._idle: queue.SimpleQueue[sqlite3.Connection] = queue.SimpleQueue()
        self._schema_lock = threading.Lock()
        self._schema_ready = False
        self._closed = False

    def connect(self) -> None:
        """Verify the database is reachable. Raises StorageConnectionError."""
        with self.connection() as conn:
            conn.execute("SELECT 1").fetchone()
        logger.info(f"Connected to database at {self.db_path}")

    def health_check(self) -> bool:
        try:
            with self.connection() as conn:
                conn.execute("SELECT 1").fetchone()
            return True
        except (StorageConnectionError, sqlite3.Error):
            return False

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        if self._closed:
            raise StorageConnectionError("Database pool is closed")
        if not self._slots.acquire(timeout=self._acquire_timeout):
            raise StorageConnectionError(
                f"Timed out after {self._acquire_timeout}s waiting for a database connection",
                context={"pool_size": self.pool_size},
            )
        try:
            conn = self._checkout()
        except BaseException:
            self._slots.release()
            raise

        broken = False
        try:
            yield conn
        except (sqlite3.ProgrammingError, sqlite3.InterfaceError):
            broken = True
            raise
        except BaseException:
            broken = not self._rollback(conn)
            raise
        finally:
            self._checkin(conn, broken)
            self._slots.release()

    def close(self) -> None:
        self._closed = True
        while True:
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                break
            conn.close()
        logger.info("Database pool closed")

    def _checkout(self) -> sqlite3.Connection:
        try:
            return self._idle.get_nowait()
        except queue.Empty:
            return self._open()

    def _checkin(self, conn: sqlite3.Connection, broken: bool) -> None:
        if broken:
            logger.warning("Discarding broken database connection")
        if broken or self._closed:
            try:
                conn.close()
            except sqlite3.Error as e:
                logger.debug(f"Error closing discarded connection: {e}")
            return
        self._idle.put(conn)

    def _open(self) -> sqlite3.Connection:
        with self._schema_lock:
            conn = get_connection(self.db_path, apply=not self._schema_ready)
            self._schema_ready = True
        logger.debug(f"Opened database connection to {self.db_path}")
        return conn

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> bool:
        try:
            if conn.in_transaction:
                conn.rollback()
            return True
        except sqlite3.Error:
            return False
