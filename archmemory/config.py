"""Configuration loading for archmemory.

Config sources (in priority order):
1. Explicit arguments passed to functions
2. Environment variables (ARCHMEMORY_DB_PATH, ANTHROPIC_API_KEY, etc.)
3. .env file in current directory
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from archmemory.errors import ConfigurationError

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("archmemory.db")
DEFAULT_EMBEDDING_MODEL = "claude-3-5-haiku-20241022"
DEFAULT_EMBEDDING_TIMEOUT = 15.0  # seconds
DEFAULT_POOL_SIZE = 5
DEFAULT_LOG_LEVEL = "INFO"

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


@dataclass
class Config:
    db_path: Path = DEFAULT_DB_PATH
    anthropic_api_key: str = ""
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    embedding_timeout: float = DEFAULT_EMBEDDING_TIMEOUT
    pool_size: int = DEFAULT_POOL_SIZE
    user_id: str = ""  # optional attribution for sessions and decisions
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def load(cls) -> Config:
        return cls(
            db_path=Path(os.getenv("ARCHMEMORY_DB_PATH", str(DEFAULT_DB_PATH))),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
            embedding_model=os.getenv("ARCHMEMORY_EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
            embedding_timeout=_env_float("ARCHMEMORY_EMBEDDING_TIMEOUT", DEFAULT_EMBEDDING_TIMEOUT),
            pool_size=_env_int("ARCHMEMORY_POOL_SIZE", DEFAULT_POOL_SIZE),
            user_id=os.getenv("ARCHMEMORY_USER_ID", ""),
            log_level=os.getenv("ARCHMEMORY_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
        )

    @property
    def has_embedding_service(self) -> bool:
        return bool(self.anthropic_api_key)

    def validate(self) -> list[str]:
        """Return a list of config issues."""
        issues = []
        if not self.db_path.parent.exists():
            issues.append(f"Database directory does not exist: {self.db_path.parent}")
        if self.embedding_timeout <= 0:
            issues.append("Embedding timeout must be positive (ARCHMEMORY_EMBEDDING_TIMEOUT)")
        if self.pool_size < 1:
            issues.append("Connection pool size must be at least 1 (ARCHMEMORY_POOL_SIZE)")
        if self.log_level not in _LOG_LEVELS:
            issues.append(f"Unknown log level {self.log_level!r} (ARCHMEMORY_LOG_LEVEL)")
        return issues

    def require(self) -> Config:
        """Raise ConfigurationError if anything is missing. Returns self for chaining."""
        issues = self.validate()
        if issues:
            raise ConfigurationError(
                "Invalid configuration: " + "; ".join(issues),
                context={"issues": issues},
            )
        return self
