"""CRUD, nearest-neighbour and timeline queries over projects and decisions."""

from __future__ import annotations

import json
import logging
import sqlite3
import struct
import time
import uuid
from dataclasses import replace
from datetime import datetime

import sqlite_vec

from archmemory.errors import (
    ArchMemoryError,
    ConstraintError,
    QueryError,
    ValidationError,
)
from archmemory.logs import truncate
from archmemory.models import (
    DECISION_TYPES,
    EMBEDDING_DIMENSIONS,
    Decision,
    DecisionPattern,
    Project,
    ProjectInfo,
    Session,
    User,
    validate_decision_fields,
)
from archmemory.storage.db import Database, from_db_time, to_db_time, utcnow

logger = logging.getLogger(__name__)

DECISION_COLUMNS = """
    d.id, d.project_id, d.session_id, d.user_id, d.decision, d.reasoning, d.type,
    d.alternatives_considered, d.files_affected, d.confidence, d.public,
    d.vector_embedding, d.created_at
"""


def serialize_embedding(vector: list[float]) -> bytes:
    return sqlite_vec.serialize_float32(vector)


def deserialize_embedding(blob: bytes | None) -> list[float] | None:
    if blob is None:
        return None
    return list(struct.unpack(f"{len(blob) // 4}f", blob))


class Repository:
    """Data access layer for the archmemory SQLite database."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def close(self) -> None:
        self._db.close()

    def health_check(self) -> bool:
        return self._db.health_check()

    # -- plumbing ---------------------------------------------------------

    def _execute(
        self,
        operation: str,
        sql: str,
        params: tuple | list = (),
        commit: bool = False,
    ) -> list[sqlite3.Row]:
        """Run one statement on a pooled connection and return its rows.

        sqlite3 errors become QueryError carrying the operation name and the
        first 100 characters of SQL. Parameter values are never logged.
        """
        start = time.monotonic()
        try:
            with self._db.connection() as conn:
                cursor = conn.execute(sql, params)
                rows = cursor.fetchall()
                if commit:
                    conn.commit()
        except sqlite3.IntegrityError as e:
            logger.warning(f"Constraint violation in {operation}: {e}")
            raise ConstraintError(
                f"Database constraint violated during {operation}",
                context={"operation": operation, "query": truncate(sql)},
            ) from e
        except sqlite3.Error as e:
            logger.error(f"Query failed in {operation}: {e} [{truncate(sql)}]")
            raise QueryError(
                f"Database query failed during {operation}",
                context={"operation": operation, "query": truncate(sql)},
            ) from e

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.debug(f"{operation}: {len(rows)} row(s) in {duration_ms}ms [{truncate(sql)}]")
        return rows

    # -- projects ---------------------------------------------------------

    def get_or_create_project(self, info: ProjectInfo) -> Project:
        """Return the project for this identity, registering it on first contact.

        Identity is the repository id when the project has a Git remote,
        otherwise the path hash. Two processes racing to register the same
        identity both end up with the same row.
        """
        existing = self._find_project(info.identity_key)
        if existing is not None:
            return existing

        project = Project(
            id=str(uuid.uuid4()),
            name=info.name,
            path_hash=info.path_hash,
            tech_stack=list(info.tech_stack),
            project_type=info.project_type,
            repository_id=info.repository_id,
            git_remote_url=info.git_remote_url,
            created_at=utcnow(),
        )
        try:
            self._execute(
                "create_project",
                """INSERT INTO projects
                (id, name, path_hash, repository_id, git_remote_url, tech_stack, project_type, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    project.id,
                    project.name,
                    project.path_hash,
                    project.repository_id,
                    project.git_remote_url,
                    json.dumps(project.tech_stack),
                    project.project_type,
                    to_db_time(project.created_at),
                ),
                commit=True,
            )
        except ConstraintError:
            # Another process registered the same identity first
            existing = self._find_project(info.identity_key)
            if existing is None:
                raise
            logger.info(f"Project {info.identity_key} registered concurrently, reusing it")
            return existing

        logger.info(f"Created project {project.name} ({project.identity_key})")
        return project

    def _find_project(self, identity_key: str) -> Project | None:
        rows = self._execute(
            "find_project",
            "SELECT * FROM projects WHERE COALESCE(repository_id, path_hash) = ?",
            (identity_key,),
        )
        return self._row_to_project(rows[0]) if rows else None

    def get_project(self, project_id: str) -> Project | None:
        rows = self._execute(
            "get_project", "SELECT * FROM projects WHERE id = ?", (project_id,)
        )
        return self._row_to_project(rows[0]) if rows else None

    def refresh_project(
        self, project_id: str, tech_stack: list[str], project_type: str
    ) -> None:
        """Update detected tech stack and type after re-initialisation."""
        self._execute(
            "refresh_project",
            "UPDATE projects SET tech_stack = ?, project_type = ? WHERE id = ?",
            (json.dumps(tech_stack), project_type, project_id),
            commit=True,
        )

    # -- sessions ---------------------------------------------------------

    def create_session(self, project_id: str, user_id: str | None = None) -> Session:
        session = Session(
            id=str(uuid.uuid4()),
            project_id=project_id,
            user_id=user_id,
            started_at=utcnow(),
            decision_count=0,
        )
        self._execute(
            "create_session",
            """INSERT INTO sessions (id, project_id, user_id, started_at, decision_count)
            VALUES (?, ?, ?, ?, 0)""",
            (session.id, project_id, user_id, to_db_time(session.started_at)),
            commit=True,
        )
        return session

    def end_session(self, session_id: str) -> None:
        self._execute(
            "end_session",
            "UPDATE sessions SET ended_at = ? WHERE id = ? AND ended_at IS NULL",
            (to_db_time(utcnow()), session_id),
            commit=True,
        )

    def get_session(self, session_id: str) -> Session | None:
        rows = self._execute(
            "get_session", "SELECT * FROM sessions WHERE id = ?", (session_id,)
        )
        if not rows:
            return None
        row = rows[0]
        return Session(
            id=row["id"],
            project_id=row["project_id"],
            user_id=row["user_id"],
            started_at=from_db_time(row["started_at"]),
            ended_at=from_db_time(row["ended_at"]),
            decision_count=row["decision_count"],
        )

    # -- decisions --------------------------------------------------------

    def save_decision(self, decision: Decision) -> Decision:
        """Validate and insert one immutable decision.

        The owning session's decision count is bumped afterwards on a
        best-effort basis; failing to do so never undoes the insert.
        """
        validate_decision_fields(decision.type, decision.confidence)
        if not decision.decision.strip() or not decision.reasoning.strip():
            raise ValidationError("Decision and reasoning must not be empty")
        if (
            decision.vector_embedding is not None
            and len(decision.vector_embedding) != EMBEDDING_DIMENSIONS
        ):
            raise ValidationError(
                f"Embedding must have exactly {EMBEDDING_DIMENSIONS} dimensions, "
                f"got {len(decision.vector_embedding)}"
            )

        saved = replace(
            decision,
            id=decision.id or str(uuid.uuid4()),
            created_at=decision.created_at or utcnow(),
            distance=None,
        )
        self._execute(
            "save_decision",
            """INSERT INTO decisions
            (id, project_id, session_id, user_id, decision, reasoning, type,
             alternatives_considered, files_affected, confidence, public,
             vector_embedding, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                saved.id,
                saved.project_id,
                saved.session_id,
                saved.user_id,
                saved.decision,
                saved.reasoning,
                saved.type,
                json.dumps(saved.alternatives_considered),
                json.dumps(saved.files_affected),
                float(saved.confidence),
                int(bool(saved.public)),
                serialize_embedding(saved.vector_embedding)
                if saved.vector_embedding is not None
                else None,
                to_db_time(saved.created_at),
            ),
            commit=True,
        )

        try:
            self._execute(
                "increment_session_count",
                "UPDATE sessions SET decision_count = decision_count + 1 WHERE id = ?",
                (saved.session_id,),
                commit=True,
            )
        except ArchMemoryError as e:
            logger.warning(f"Could not update decision count for session: {e}")

        return saved

    def list_recent(self, project_id: str, limit: int = 10) -> list[Decision]:
        """Most recent decisions for one project, newest first."""
        rows = self._execute(
            "list_recent",
            f"""SELECT {DECISION_COLUMNS} FROM decisions d
            WHERE d.project_id = ?
            ORDER BY d.created_at DESC, d.rowid DESC
            LIMIT ?""",
            (project_id, limit),
        )
        return [self._row_to_decision(row) for row in rows]

    def nearest_neighbors(
        self,
        query_vector: list[float],
        project_id: str | None = None,
        limit: int = 10,
    ) -> list[Decision]:
        """Decisions closest to ``query_vector`` by cosine distance, nearest first.

        With ``project_id`` only that project's decisions are searched.
        Without it only public decisions are eligible, across all projects;
        a private decision can never come back from a global search.
        """
        if len(query_vector) != EMBEDDING_DIMENSIONS:
            raise ValidationError(
                f"Query vector must have exactly {EMBEDDING_DIMENSIONS} dimensions"
            )

        if project_id is not None:
            scope = "d.project_id = ?"
            params: list = [serialize_embedding(query_vector), project_id, limit]
        else:
            scope = "d.public = 1"
            params = [serialize_embedding(query_vector), limit]

        rows = self._execute(
            "nearest_neighbors",
            f"""SELECT {DECISION_COLUMNS},
                vec_distance_cosine(d.vector_embedding, ?) AS distance
            FROM decisions d
            WHERE {scope} AND d.vector_embedding IS NOT NULL
            ORDER BY distance IS NULL, distance ASC, d.created_at DESC
            LIMIT ?""",
            params,
        )
        return [self._row_to_decision(row) for row in rows]

    def timeline(
        self,
        project_id: str,
        since: datetime | None = None,
        category: str | None = None,
    ) -> list[Decision]:
        """All decisions for a project in chronological order (oldest first)."""
        query = f"SELECT {DECISION_COLUMNS} FROM decisions d WHERE d.project_id = ?"
        params: list = [project_id]

        if since is not None:
            query += " AND d.created_at >= ?"
            params.append(to_db_time(since))
        if category:
            if category not in DECISION_TYPES:
                raise ValidationError(
                    f"Category must be one of: {', '.join(DECISION_TYPES)}"
                )
            query += " AND d.type = ?"
            params.append(category)

        query += " ORDER BY d.created_at ASC, d.rowid ASC"

        rows = self._execute("timeline", query, params)
        return [self._row_to_decision(row) for row in rows]

    # -- patterns ---------------------------------------------------------

    def patterns_for(
        self,
        tech_stack: list[str] | None = None,
        project_type: str | None = None,
        limit: int = 10,
    ) -> list[DecisionPattern]:
        """Precomputed patterns filtered by tag overlap and project type."""
        query = "SELECT * FROM decision_patterns p WHERE p.usage_count > 0"
        params: list = []

        if tech_stack:
            tags = [t.lower() for t in tech_stack]
            placeholders = ", ".join("?" for _ in tags)
            query += f"""
                AND EXISTS (
                    SELECT 1 FROM json_each(p.tech_stack) t
                    WHERE LOWER(t.value) IN ({placeholders})
                )"""
            params.extend(tags)

        if project_type:
            query += " AND (p.project_type IS NULL OR p.project_type IN ('general', ?))"
            params.append(project_type)

        query += " ORDER BY p.usage_count DESC, p.success_rate DESC LIMIT ?"
        params.append(limit)

        rows = self._execute("patterns_for", query, params)
        return [self._row_to_pattern(row) for row in rows]

    def save_pattern(self, pattern: DecisionPattern) -> DecisionPattern:
        """Insert a precomputed pattern. Administrative / batch use only."""
        if not 0 <= pattern.success_rate <= 1:
            raise ValidationError("Success rate must be between 0 and 1")
        saved = replace(
            pattern,
            id=pattern.id or str(uuid.uuid4()),
            created_at=pattern.created_at or utcnow(),
        )
        now = to_db_time(saved.created_at)
        self._execute(
            "save_pattern",
            """INSERT INTO decision_patterns
            (id, pattern_name, description, tech_stack, project_type, usage_count,
             success_rate, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                saved.id,
                saved.pattern_name,
                saved.description,
                json.dumps(saved.tech_stack),
                saved.project_type,
                saved.usage_count,
                saved.success_rate,
                now,
                now,
            ),
            commit=True,
        )
        return saved

    # -- users ------------------------------------------------------------

    def save_user(self, user: User) -> User:
        """Insert a user row so sessions and decisions can be attributed to it."""
        saved = replace(
            user, id=user.id or str(uuid.uuid4()), created_at=user.created_at or utcnow()
        )
        self._execute(
            "save_user",
            """INSERT INTO users (id, username, email, name, github_id, avatar_url, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                saved.id,
                saved.username,
                saved.email,
                saved.name,
                saved.github_id,
                saved.avatar_url,
                to_db_time(saved.created_at),
            ),
            commit=True,
        )
        return saved

    def ensure_user(self, user_id: str) -> None:
        """Make sure a bare user row exists for attribution by id."""
        self._execute(
            "ensure_user",
            "INSERT OR IGNORE INTO users (id, created_at) VALUES (?, ?)",
            (user_id, to_db_time(utcnow())),
            commit=True,
        )

    # -- stats ------------------------------------------------------------

    def get_stats(self, project_id: str | None = None) -> dict:
        """Summary counts, optionally scoped to one project."""
        scope = " WHERE project_id = ?" if project_id else ""
        params = (project_id,) if project_id else ()

        def count(sql: str, args: tuple = ()) -> int:
            return self._execute("get_stats", sql, args)[0][0]

        type_rows = self._execute(
            "get_stats",
            f"SELECT type, COUNT(*) AS n FROM decisions{scope} GROUP BY type",
            params,
        )
        public_scope = (scope + " AND" if scope else " WHERE") + " public = 1"
        return {
            "total_projects": count("SELECT COUNT(*) FROM projects"),
            "total_sessions": count(f"SELECT COUNT(*) FROM sessions{scope}", params),
            "total_decisions": count(f"SELECT COUNT(*) FROM decisions{scope}", params),
            "public_decisions": count(f"SELECT COUNT(*) FROM decisions{public_scope}", params),
            "total_patterns": count("SELECT COUNT(*) FROM decision_patterns"),
            "decisions_by_type": {row["type"]: row["n"] for row in type_rows},
        }

    # -- row mapping ------------------------------------------------------

    @staticmethod
    def _row_to_project(row: sqlite3.Row) -> Project:
        return Project(
            id=row["id"],
            name=row["name"],
            path_hash=row["path_hash"],
            tech_stack=_load_list(row["tech_stack"]),
            project_type=row["project_type"],
            repository_id=row["repository_id"],
            git_remote_url=row["git_remote_url"],
            created_at=from_db_time(row["created_at"]),
        )

    @staticmethod
    def _row_to_decision(row: sqlite3.Row) -> Decision:
        keys = row.keys()
        return Decision(
            id=row["id"],
            project_id=row["project_id"],
            session_id=row["session_id"],
            user_id=row["user_id"],
            decision=row["decision"],
            reasoning=row["reasoning"],
            type=row["type"],
            alternatives_considered=_load_list(row["alternatives_considered"]),
            files_affected=_load_list(row["files_affected"]),
            confidence=row["confidence"],
            public=bool(row["public"]),
            vector_embedding=deserialize_embedding(row["vector_embedding"]),
            created_at=from_db_time(row["created_at"]),
            distance=row["distance"] if "distance" in keys else None,
        )

    @staticmethod
    def _row_to_pattern(row: sqlite3.Row) -> DecisionPattern:
        return DecisionPattern(
            id=row["id"],
            pattern_name=row["pattern_name"],
            description=row["description"] or "",
            tech_stack=_load_list(row["tech_stack"]),
            project_type=row["project_type"],
            usage_count=row["usage_count"],
            success_rate=row["success_rate"],
            created_at=from_db_time(row["created_at"]),
        )


def _load_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return []
    return value if isinstance(value, list) else []
