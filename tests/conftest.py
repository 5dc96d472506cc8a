"""Shared test fixtures for archmemory."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from archmemory.embedding.fallback import fallback_embedding
from archmemory.embedding.provider import EmbeddingProvider
from archmemory.errors import EmbeddingError
from archmemory.models import Decision, Project, ProjectInfo, Session
from archmemory.storage.db import Database
from archmemory.storage.repository import Repository


class FixedExtractor:
    """Feature extractor that returns the same features for every text."""

    def __init__(self, features: list[float]) -> None:
        self.features = features
        self.calls: list[str] = []

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        return list(self.features)


class FailingExtractor:
    def __init__(self, message: str = "Feature extraction timed out after 15.0s") -> None:
        self.message = message
        self.calls = 0

    def embed(self, text: str) -> list[float]:
        self.calls += 1
        raise EmbeddingError(self.message)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def database(db_path: Path) -> Database:
    db = Database(db_path, pool_size=2, acquire_timeout=1.0)
    yield db
    db.close()


@pytest.fixture
def repo(database: Database) -> Repository:
    return Repository(database)


@pytest.fixture
def embeddings() -> EmbeddingProvider:
    return EmbeddingProvider()


@pytest.fixture
def project_info() -> ProjectInfo:
    return ProjectInfo(
        name="webapp",
        root_path="/work/webapp",
        path_hash="0123456789abcdef",
        tech_stack=["javascript", "typescript", "react"],
        project_type="frontend",
        git_remote_url="git@github.com:acme/webapp.git",
        repository_id="github.com/acme/webapp",
    )


@pytest.fixture
def project(repo: Repository, project_info: ProjectInfo) -> Project:
    return repo.get_or_create_project(project_info)


@pytest.fixture
def session(repo: Repository, project: Project) -> Session:
    return repo.create_session(project.id)


def make_decision(
    project: Project,
    session: Session,
    decision: str = "Use PostgreSQL for persistence",
    reasoning: str = "Relational data with strong consistency needs",
    type: str = "tech_stack",
    confidence: float = 0.9,
    public: bool = False,
    created_at: datetime | None = None,
    embed: bool = True,
    **kwargs,
) -> Decision:
    return Decision(
        project_id=project.id,
        session_id=session.id,
        decision=decision,
        reasoning=reasoning,
        type=type,
        confidence=confidence,
        public=public,
        created_at=created_at,
        vector_embedding=fallback_embedding(f"{type}: {decision}\n\nReasoning: {reasoning}")
        if embed
        else None,
        **kwargs,
    )


def at(day: int, hour: int = 12) -> datetime:
    return datetime(2024, 6, day, hour, 0, 0, tzinfo=timezone.utc)
