"""MCP server for archmemory.

Gives AI coding agents a persistent memory of architectural decisions via the
Model Context Protocol. Agents record decisions as they make them, recall them
in later sessions, and discover patterns from public decisions in other
projects.

Usage:
    archmemory serve [--db /path/to/archmemory.db]
    python -m archmemory.mcp_server [--db /path/to/archmemory.db]

Configure in Claude Code (.mcp.json in the project root):
    {
      "mcpServers": {
        "archmemory": {
          "command": "archmemory",
          "args": ["serve"]
        }
      }
    }
"""

from __future__ import annotations

import logging
import sys
import time
from pathlib import Path

import mcp.server.stdio
import mcp.types as types
from mcp.server import Server

from archmemory.activity import activity_log_path, log_tool_call
from archmemory.config import Config
from archmemory.logs import configure_logging
from archmemory.models import DECISION_TYPES
from archmemory.service.decisions import DecisionService, open_service

logger = logging.getLogger(__name__)

server = Server("archmemory")

_service: DecisionService | None = None
_db_override: Path | None = None


def _db_flag() -> Path | None:
    """Database path given to ``serve`` or as ``--db`` on the command line."""
    if _db_override is not None:
        return _db_override
    for i, arg in enumerate(sys.argv):
        if arg == "--db" and i + 1 < len(sys.argv):
            return Path(sys.argv[i + 1])
    return None


def _resolve_db_path(config: Config) -> Path:
    """CLI arg, then env var / .env, then the default next to the cwd."""
    return _db_flag() or config.db_path


def _get_service() -> DecisionService:
    """One service (and so one session) for the lifetime of the process."""
    global _service
    if _service is None:
        config = Config.load()
        config.db_path = _resolve_db_path(config)
        _service = open_service(config)
    return _service


TOOLS = [
    types.Tool(
        name="remember_decision",
        description=(
            "Record an architectural decision you just made for this project, with "
            "its reasoning. Call this whenever you pick a technology, library, "
            "architecture or coding pattern so future sessions know why. "
            "Set public=true to share it (anonymously) with other projects."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "decision": {
                    "type": "string",
                    "description": "What was decided (e.g. 'Use PostgreSQL for persistence')",
                },
                "reasoning": {
                    "type": "string",
                    "description": "Why this choice was made",
                },
                "type": {
                    "type": "string",
                    "enum": list(DECISION_TYPES),
                    "description": "Kind of decision",
                },
                "alternatives_considered": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Options that were rejected",
                },
                "files_affected": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Files touched by this decision",
                },
                "confidence": {
                    "type": "number",
                    "minimum": 0,
                    "maximum": 1,
                    "description": "How sure you are, from 0 to 1",
                },
                "public": {
                    "type": "boolean",
                    "description": "Share with other projects for pattern discovery",
                },
            },
            "required": ["decision", "reasoning", "type", "confidence", "public"],
        },
    ),
    types.Tool(
        name="recall_context",
        description=(
            "Recall architectural decisions previously made in this project. "
            "Call this at the START of a task. With a query, returns the most "
            "semantically similar decisions; without one, the most recent."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "What you are about to work on (optional)",
                },
                "limit": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": 100,
                    "default": 10,
                    "description": "Maximum decisions to return",
                },
            },
        },
    ),
    types.Tool(
        name="discover_patterns",
        description=(
            "Find architectural patterns other projects used for a similar "
            "problem. Searches public decisions only."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "The problem or area to look for patterns in",
                },
                "tech_stack": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Only show stored patterns sharing one of these tags",
                },
                "project_type": {
                    "type": "string",
                    "description": "Only show stored patterns for this project type",
                },
            },
            "required": ["query"],
        },
    ),
    types.Tool(
        name="get_timeline",
        description=(
            "Chronological history of this project's decisions, grouped by day. "
            "Useful for reviewing how the architecture evolved."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "since": {
                    "type": "string",
                    "description": "ISO-8601 date or datetime; only later decisions are shown",
                },
                "category": {
                    "type": "string",
                    "enum": list(DECISION_TYPES),
                    "description": "Only show decisions of this type",
                },
            },
        },
    ),
]


@server.list_tools()
async def list_tools() -> list[types.Tool]:
    return TOOLS


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[types.TextContent]:
    start = time.time()
    result: list[types.TextContent] = []
    error: str | None = None
    try:
        result = _dispatch_tool(name, arguments)
        return result
    except Exception as e:
        # Setup failures (bad config, unreachable DB) still answer with text
        logger.exception(f"Tool {name} failed")
        error = str(e)
        result = [types.TextContent(type="text", text=f"Error: {e}")]
        return result
    finally:
        duration_ms = int((time.time() - start) * 1000)
        result_text = result[0].text if result else ""
        log_tool_call(
            name, arguments, result_text, error, duration_ms, log_path=activity_log_path(_db_flag())
        )


def _dispatch_tool(name: str, arguments: dict | None) -> list[types.TextContent]:
    text = _get_service().handle(name, arguments)
    return [types.TextContent(type="text", text=text)]


async def main() -> None:
    async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )


def run(db_path: Path | None = None) -> None:
    """Blocking entry point; stdout belongs to the protocol, logs go to stderr."""
    global _db_override
    import asyncio

    _db_override = db_path
    configure_logging(Config.load().log_level)
    try:
        asyncio.run(main())
    finally:
        if _service is not None:
            _service.close()


if __name__ == "__main__":
    run()
