"""Core data models for archmemory."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime

from archmemory.errors import ValidationError

DECISION_TYPES = ("tech_stack", "architecture", "pattern", "tool_choice")
EMBEDDING_DIMENSIONS = 1536


def validate_decision_fields(decision_type: str, confidence: float) -> None:
    """Reject an unknown decision type or a confidence outside [0, 1]."""
    if decision_type not in DECISION_TYPES:
        raise ValidationError(
            f"Type must be one of: {', '.join(DECISION_TYPES)}",
            context={"field": "type"},
        )
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise ValidationError("Confidence must be a number", context={"field": "confidence"})
    if math.isnan(confidence) or confidence < 0 or confidence > 1:
        raise ValidationError(
            "Confidence must be between 0 and 1", context={"field": "confidence"}
        )


@dataclass
class ProjectInfo:
    """What project detection found on disk. Not yet persisted."""

    name: str
    root_path: str
    path_hash: str
    tech_stack: list[str] = field(default_factory=list)
    project_type: str = "general"
    git_remote_url: str | None = None
    repository_id: str | None = None  # e.g. "github.com/user/repo"

    @property
    def identity_key(self) -> str:
        return self.repository_id or self.path_hash


@dataclass
class Project:
    id: str  # UUID
    name: str
    path_hash: str
    tech_stack: list[str] = field(default_factory=list)
    project_type: str = "general"
    repository_id: str | None = None
    git_remote_url: str | None = None
    created_at: datetime | None = None

    @property
    def identity_key(self) -> str:
        return self.repository_id or self.path_hash


@dataclass
class Session:
    id: str  # UUID
    project_id: str
    user_id: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    decision_count: int = 0


@dataclass
class Decision:
    project_id: str
    session_id: str
    decision: str  # What was decided
    reasoning: str  # Why
    type: str  # one of DECISION_TYPES
    confidence: float
    public: bool = False
    alternatives_considered: list[str] = field(default_factory=list)
    files_affected: list[str] = field(default_factory=list)
    user_id: str | None = None
    vector_embedding: list[float] | None = None
    id: str = ""  # assigned on save
    created_at: datetime | None = None  # assigned on save
    distance: float | None = None  # only set by nearest-neighbour queries


@dataclass
class DecisionPattern:
    """Precomputed pattern. Written by batch/administrative jobs only."""

    pattern_name: str
    description: str = ""
    tech_stack: list[str] = field(default_factory=list)
    project_type: str | None = None
    usage_count: int = 0
    success_rate: float = 0.0
    id: str = ""
    created_at: datetime | None = None


@dataclass
class User:
    id: str = ""
    username: str | None = None
    email: str | None = None
    name: str | None = None
    github_id: int | None = None
    avatar_url: str | None = None
    created_at: datetime | None = None
