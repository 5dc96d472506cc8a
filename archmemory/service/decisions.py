"""Decision service: the four operations exposed to coding agents.

Orchestrates project identity, embeddings and storage, and renders every
outcome (including failures) as a text response.
"""

from __future__ import annotations

import logging
from pathlib import Path

from archmemory.config import Config
from archmemory.embedding.provider import EmbeddingProvider, build_embedding_provider
from archmemory.errors import (
    ArchMemoryError,
    ProjectNotFoundError,
    StorageConnectionError,
    ValidationError,
)
from archmemory.models import Decision, Project, ProjectInfo, Session
from archmemory.patterns.extractor import extract_patterns, rank_patterns_by_relevance
from archmemory.project.detector import detect_project
from archmemory.service.render import (
    render_discovery,
    render_recall,
    render_remembered,
    render_timeline,
)
from archmemory.service.requests import (
    DiscoverPatternsRequest,
    RecallContextRequest,
    RememberDecisionRequest,
    TimelineRequest,
)
from archmemory.storage.db import Database
from archmemory.storage.repository import Repository

logger = logging.getLogger(__name__)

TOOL_NAMES = ("remember_decision", "recall_context", "discover_patterns", "get_timeline")

DISCOVERY_SEARCH_LIMIT = 20
STORED_PATTERN_LIMIT = 10

_FAILURE_VERBS = {
    "remember_decision": "remember decision",
    "recall_context": "recall context",
    "discover_patterns": "discover patterns",
    "get_timeline": "get timeline",
}


class DecisionService:
    """Remembers and recalls decisions for one project and one session.

    The project is resolved and the session opened on first use, so merely
    constructing the service touches neither the filesystem nor the database.
    """

    def __init__(
        self,
        repo: Repository,
        embeddings: EmbeddingProvider,
        project: ProjectInfo | None = None,
        start_dir: Path | str | None = None,
        user_id: str | None = None,
    ) -> None:
        self._repo = repo
        self._embeddings = embeddings
        self._project_info = project
        self._start_dir = start_dir
        self._user_id = user_id or None
        self._project: Project | None = None
        self._session: Session | None = None

    @property
    def project(self) -> Project:
        return self.ensure_context()[0]

    @property
    def session(self) -> Session:
        return self.ensure_context()[1]

    def ensure_context(self) -> tuple[Project, Session]:
        if self._project is not None and self._session is not None:
            return self._project, self._session

        info = self._project_info or detect_project(self._start_dir)
        if info is None:
            raise ProjectNotFoundError(
                "Cannot detect a project here; run archmemory from inside a project directory"
            )
        self._project_info = info

        if self._project is None:
            self._project = self._repo.get_or_create_project(info)
        if self._user_id:
            self._repo.ensure_user(self._user_id)
        self._session = self._repo.create_session(self._project.id, self._user_id)
        logger.info(
            f"Project context established: {self._project.name} "
            f"(project {self._project.id}, session {self._session.id})"
        )
        return self._project, self._session

    # -- operations -------------------------------------------------------

    def remember_decision(self, request: RememberDecisionRequest) -> str:
        project, session = self.ensure_context()

        # Embed before touching storage; no connection is held across the call
        embedding = self._embeddings.embed_decision(
            request.decision, request.reasoning, request.type
        )
        saved = self._repo.save_decision(
            Decision(
                project_id=project.id,
                session_id=session.id,
                user_id=self._user_id,
                decision=request.decision,
                reasoning=request.reasoning,
                type=request.type,
                alternatives_considered=list(request.alternatives_considered),
                files_affected=list(request.files_affected),
                confidence=request.confidence,
                public=request.public,
                vector_embedding=embedding,
            )
        )
        logger.info(f"Decision {saved.id} saved ({saved.type}, public={saved.public})")
        return render_remembered(saved, self._embeddings.last_source)

    def recall_context(self, request: RecallContextRequest) -> str:
        project, _ = self.ensure_context()

        if request.query:
            query_vector = self._embeddings.embed_query(request.query)
            decisions = self._repo.nearest_neighbors(query_vector, project.id, request.limit)
        else:
            decisions = self._repo.list_recent(project.id, request.limit)

        logger.info(
            f"Recalled {len(decisions)} decision(s) for project {project.id} "
            f"(semantic={bool(request.query)})"
        )
        return render_recall(decisions, request.query)

    def discover_patterns(self, request: DiscoverPatternsRequest) -> str:
        """Patterns from public decisions in every project plus stored patterns.

        Only public decisions are searched, so the caller's own private
        decisions and other projects' private decisions never show up.
        """
        query_vector = self._embeddings.embed_query(request.query)
        similar = self._repo.nearest_neighbors(query_vector, None, DISCOVERY_SEARCH_LIMIT)
        community = rank_patterns_by_relevance(extract_patterns(similar), request.query)
        stored = self._repo.patterns_for(
            request.tech_stack, request.project_type, STORED_PATTERN_LIMIT
        )
        logger.info(
            f"Discovered {len(community)} community pattern(s), {len(similar)} similar "
            f"public decision(s), {len(stored)} stored pattern(s)"
        )
        return render_discovery(
            request.query,
            request.tech_stack,
            request.project_type,
            community,
            similar,
            stored,
        )

    def get_timeline(self, request: TimelineRequest) -> str:
        project, _ = self.ensure_context()
        decisions = self._repo.timeline(project.id, request.since, request.category)
        return render_timeline(decisions, request.since, request.category)

    # -- transport entry point --------------------------------------------

    def handle(self, tool_name: str, arguments: dict | None) -> str:
        """Run one operation from raw tool arguments and always return text."""
        arguments = arguments or {}
        if tool_name not in TOOL_NAMES:
            return f"Unknown tool: {tool_name}."

        verb = _FAILURE_VERBS[tool_name]
        try:
            if tool_name == "remember_decision":
                return self.remember_decision(RememberDecisionRequest.from_arguments(arguments))
            elif tool_name == "recall_context":
                return self.recall_context(RecallContextRequest.from_arguments(arguments))
            elif tool_name == "discover_patterns":
                return self.discover_patterns(DiscoverPatternsRequest.from_arguments(arguments))
            else:
                return self.get_timeline(TimelineRequest.from_arguments(arguments))
        except ValidationError as e:
            logger.info(f"Rejected {tool_name}: {e.message}")
            return f"Rejected: {_sentence(e.message)}"
        except StorageConnectionError as e:
            logger.error(f"Storage unavailable for {tool_name}: {e.message}")
            return f"Failed to {verb}: the decision store is unavailable ({_clause(e.message)})."
        except ArchMemoryError as e:
            logger.error(f"Error in {tool_name}: {e.message} {e.context}")
            return f"Failed to {verb}: {_sentence(e.message)}"
        except Exception:
            logger.exception(f"Unexpected failure in {tool_name}")
            return f"Failed to {verb}: unexpected internal error."

    def close(self) -> None:
        """End the session and release the connection pool.

        The session end time is advisory, so failing to record it is only
        logged.
        """
        if self._session is not None:
            try:
                self._repo.end_session(self._session.id)
            except ArchMemoryError as e:
                logger.warning(f"Could not close session {self._session.id}: {e}")
            self._session = None
        self._repo.close()


def open_service(config: Config, start_dir: Path | str | None = None) -> DecisionService:
    """Validate config, connect to the database and build a ready service."""
    config.require()
    db = Database(config.db_path, pool_size=config.pool_size)
    db.connect()
    return DecisionService(
        Repository(db),
        build_embedding_provider(config),
        start_dir=start_dir,
        user_id=config.user_id or None,
    )


def _clause(message: str) -> str:
    return message.rstrip(". ")


def _sentence(message: str) -> str:
    return _clause(message) + "."
