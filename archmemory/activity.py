"""Activity log for MCP tool calls.

Every tool invocation is appended to a JSONL file so humans can see what
their agent stored and recalled. Each line holds the timestamp, tool name,
arguments (secrets redacted), a result preview, the error if any, and the
duration.

The log file lives alongside archmemory.db by default.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from archmemory.config import DEFAULT_DB_PATH

logger = logging.getLogger(__name__)

RESULT_PREVIEW_LIMIT = 500
LOG_FILE_NAME = "archmemory-activity.jsonl"

_SECRET_MARKERS = ("key", "token", "secret", "password")


def activity_log_path(db_path: Path | None = None) -> Path:
    """ARCHMEMORY_LOG_PATH if set, else the log file beside the database."""
    env_path = os.getenv("ARCHMEMORY_LOG_PATH")
    if env_path:
        return Path(env_path)

    if db_path is None:
        db_path = Path(os.getenv("ARCHMEMORY_DB_PATH") or str(DEFAULT_DB_PATH))
    return Path(db_path).parent / LOG_FILE_NAME


def redact(arguments: dict) -> dict:
    return {
        name: "***" if any(m in name.lower() for m in _SECRET_MARKERS) else value
        for name, value in arguments.items()
    }


def log_tool_call(
    tool_name: str,
    arguments: dict | None,
    result_text: str,
    error: str | None,
    duration_ms: int,
    log_path: Path | None = None,
) -> None:
    """Append a tool call entry to the activity log. Never raises."""
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "tool_name": tool_name,
        "arguments": redact(arguments or {}),
        "result_preview": result_text[:RESULT_PREVIEW_LIMIT] if result_text else "",
        "error": error,
        "duration_ms": duration_ms,
    }
    path = log_path or activity_log_path()
    try:
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, default=str) + "\n")
    except OSError as e:
        logger.debug(f"Could not write activity log {path}: {e}")


def read_activity_log(
    limit: int = 20,
    tool_name: str | None = None,
    log_path: Path | None = None,
) -> list[dict]:
    """Read recent activity log entries, most recent first."""
    path = log_path or activity_log_path()
    if not path.exists():
        return []

    entries: list[dict] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue

        if tool_name and entry.get("tool_name") != tool_name:
            continue
        entries.append(entry)

    entries.reverse()
    return entries[:limit]
