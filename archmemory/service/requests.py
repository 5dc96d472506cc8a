"""Typed request structures for the four operations.

Each request validates itself on construction; ``from_arguments`` turns a raw
tool-argument dict into a request or raises ValidationError with a message
meant for the caller.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone

from archmemory.errors import ValidationError
from archmemory.models import DECISION_TYPES, validate_decision_fields

MAX_RECALL_LIMIT = 100
DEFAULT_RECALL_LIMIT = 10


def _require(arguments: dict, *names: str) -> None:
    missing = [n for n in names if arguments.get(n) is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def _text(value: object, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be a non-empty string")
    return value


def _text_list(value: object, name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"{name} must be a list of strings")
    return list(value)


def parse_timestamp(value: str) -> datetime:
    """ISO-8601 date or datetime, normalized to UTC; naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError as e:
        raise ValidationError(f'Invalid date format for "since": {value!r}') from e
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError as e:
        raise ValidationError(f'Date out of range for "since": {value!r}') from e


@dataclass(frozen=True)
class RememberDecisionRequest:
    decision: str
    reasoning: str
    type: str
    confidence: float
    public: bool
    alternatives_considered: list[str] = field(default_factory=list)
    files_affected: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        _text(self.decision, "decision")
        _text(self.reasoning, "reasoning")
        validate_decision_fields(self.type, self.confidence)
        if not isinstance(self.public, bool):
            raise ValidationError("public must be true or false")

    @classmethod
    def from_arguments(cls, arguments: dict) -> RememberDecisionRequest:
        _require(arguments, "decision", "reasoning", "type", "confidence", "public")
        return cls(
            decision=arguments["decision"],
            reasoning=arguments["reasoning"],
            type=arguments["type"],
            confidence=arguments["confidence"],
            public=arguments["public"],
            alternatives_considered=_text_list(
                arguments.get("alternatives_considered"), "alternatives_considered"
            ),
            files_affected=_text_list(arguments.get("files_affected"), "files_affected"),
        )


@dataclass(frozen=True)
class RecallContextRequest:
    query: str | None = None
    limit: int = DEFAULT_RECALL_LIMIT

    def __post_init__(self) -> None:
        if self.query is not None and not isinstance(self.query, str):
            raise ValidationError("query must be a string")
        if isinstance(self.limit, bool) or not isinstance(self.limit, int):
            raise ValidationError("limit must be an integer")
        if not 1 <= self.limit <= MAX_RECALL_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_RECALL_LIMIT}")

    @classmethod
    def from_arguments(cls, arguments: dict) -> RecallContextRequest:
        query = arguments.get("query")
        if isinstance(query, str) and not query.strip():
            query = None
        limit = arguments.get("limit", DEFAULT_RECALL_LIMIT)
        # JSON numbers may arrive as 10.0
        if isinstance(limit, float) and math.isfinite(limit) and limit.is_integer():
            limit = int(limit)
        return cls(query=query, limit=limit)


@dataclass(frozen=True)
class DiscoverPatternsRequest:
    query: str
    tech_stack: list[str] | None = None
    project_type: str | None = None

    def __post_init__(self) -> None:
        _text(self.query, "query")
        if self.project_type is not None and not isinstance(self.project_type, str):
            raise ValidationError("project_type must be a string")

    @classmethod
    def from_arguments(cls, arguments: dict) -> DiscoverPatternsRequest:
        if not arguments.get("query"):
            raise ValidationError("Query is required for pattern discovery")
        tech_stack = _text_list(arguments.get("tech_stack"), "tech_stack")
        return cls(
            query=arguments["query"],
            tech_stack=tech_stack or None,
            project_type=arguments.get("project_type") or None,
        )


@dataclass(frozen=True)
class TimelineRequest:
    since: datetime | None = None
    category: str | None = None

    def __post_init__(self) -> None:
        if self.category is not None and self.category not in DECISION_TYPES:
            raise ValidationError(
                f"Category must be one of: {', '.join(DECISION_TYPES)}"
            )

    @classmethod
    def from_arguments(cls, arguments: dict) -> TimelineRequest:
        since = arguments.get("since")
        if since is not None and not isinstance(since, str):
            raise ValidationError('"since" must be an ISO-8601 date string')
        return cls(
            since=parse_timestamp(since) if since else None,
            category=arguments.get("category") or None,
        )
