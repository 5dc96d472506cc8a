"""CLI entry point for archmemory."""

from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from archmemory.activity import LOG_FILE_NAME, activity_log_path, read_activity_log
from archmemory.config import DEFAULT_DB_PATH, Config
from archmemory.errors import (
    ArchMemoryError,
    ConfigurationError,
    StorageConnectionError,
)
from archmemory.logs import configure_logging
from archmemory.models import DecisionPattern
from archmemory.project.detector import detect_project
from archmemory.service.decisions import DecisionService, open_service
from archmemory.storage.db import Database
from archmemory.storage.repository import Repository

app = typer.Typer(help="Persistent architectural decision memory for AI coding agents.")
console = Console()


def _load_config(db_path: Optional[str]) -> Config:
    config = Config.load()
    if db_path:
        config.db_path = Path(db_path)
    configure_logging(config.log_level)
    return config


def _fail(message: str) -> NoReturn:
    rprint(f"[red]{message}[/red]")
    raise typer.Exit(1)


def _open_repository(config: Config) -> Repository:
    try:
        config.require()
        db = Database(config.db_path, pool_size=config.pool_size)
        db.connect()
    except (ConfigurationError, StorageConnectionError) as e:
        _fail(e.message)
    return Repository(db)


def _open_service(config: Config) -> DecisionService:
    try:
        return open_service(config)
    except (ConfigurationError, StorageConnectionError) as e:
        _fail(e.message)


def _run_tool(
    db_path: Optional[str], tool_name: str, arguments: dict, needs_project: bool = True
) -> None:
    service = _open_service(_load_config(db_path))
    try:
        if needs_project:
            service.ensure_context()
        console.print(Markdown(service.handle(tool_name, arguments)))
    except ArchMemoryError as e:
        _fail(e.message)
    finally:
        service.close()


def _write_mcp_config(project_dir: Path, db_path: Path) -> None:
    """Create .mcp.json for per-project MCP server configuration."""
    mcp_config_path = project_dir / ".mcp.json"

    archmemory_bin = shutil.which("archmemory")
    if archmemory_bin:
        command, args = archmemory_bin, ["serve"]
    else:
        command, args = "python", ["-m", "archmemory.mcp_server"]

    config: dict = {}
    if mcp_config_path.exists():
        try:
            config = json.loads(mcp_config_path.read_text())
        except json.JSONDecodeError:
            rprint(f"[yellow]Overwriting unreadable {mcp_config_path}[/yellow]")
            config = {}

    config.setdefault("mcpServers", {})["archmemory"] = {
        "type": "stdio",
        "command": command,
        "args": args,
        "env": {"ARCHMEMORY_DB_PATH": str(db_path.resolve())},
    }
    mcp_config_path.write_text(json.dumps(config, indent=2) + "\n")
    rprint(f"MCP config written to {mcp_config_path}")


def _update_gitignore(project_dir: Path) -> None:
    """Ensure .gitignore includes archmemory files that shouldn't be committed."""
    gitignore_path = project_dir / ".gitignore"
    entries_to_add = [DEFAULT_DB_PATH.name, f"{DEFAULT_DB_PATH.name}-*", LOG_FILE_NAME, ".env"]

    existing_lines: set[str] = set()
    if gitignore_path.exists():
        existing_lines = set(gitignore_path.read_text().splitlines())

    new_entries = [e for e in entries_to_add if e not in existing_lines]
    if new_entries:
        needs_newline = bool(existing_lines) and not gitignore_path.read_text().endswith("\n")
        with open(gitignore_path, "a") as f:
            if needs_newline:
                f.write("\n")
            f.write("\n# archmemory\n")
            for entry in new_entries:
                f.write(f"{entry}\n")
        rprint(f"Added {', '.join(new_entries)} to .gitignore")


@app.command()
def init(
    db_path: Optional[str] = typer.Option(None, "--db", help="Database file path"),
) -> None:
    """Register this project and wire up the MCP server.

    Detects the project root, records its tech stack, creates .mcp.json for
    Claude Code/Cursor and adds archmemory files to .gitignore.
    """
    config = _load_config(db_path)
    info = detect_project(Path.cwd())
    if info is None:
        _fail("No project found here. Run init inside a directory with a .git or manifest file.")

    repo = _open_repository(config)
    try:
        project = repo.get_or_create_project(info)
        repo.refresh_project(project.id, info.tech_stack, info.project_type)
    except ArchMemoryError as e:
        _fail(f"Could not register project: {e.message}")
    finally:
        repo.close()

    root = Path(info.root_path)
    _write_mcp_config(root, config.db_path)
    _update_gitignore(root)

    rprint(f"\n[green bold]archmemory initialized for {info.name}[/green bold]")
    rprint(f"  Type:       {info.project_type}")
    rprint(f"  Tech stack: {', '.join(info.tech_stack) or 'none detected'}")
    rprint("\nNext steps:")
    rprint("  1. Restart Claude Code, it picks up the MCP server automatically")
    rprint("  2. Your agent can now remember and recall architectural decisions")


@app.command()
def serve(
    db_path: Optional[str] = typer.Option(None, "--db", help="Database file path"),
) -> None:
    """Start the MCP server (called by Claude Code / Cursor automatically)."""
    from archmemory.mcp_server import run

    run(Path(db_path) if db_path else None)


@app.command()
def detect() -> None:
    """Show what project identity would be recorded for the current directory."""
    info = detect_project(Path.cwd())
    if info is None:
        _fail("No project found from the current directory upwards.")

    rprint(f"[bold]{info.name}[/bold]")
    rprint(f"  Root:          {info.root_path}")
    rprint(f"  Path hash:     {info.path_hash}")
    rprint(f"  Repository id: {info.repository_id or '(no git remote)'}")
    rprint(f"  Remote URL:    {info.git_remote_url or '(none)'}")
    rprint(f"  Project type:  {info.project_type}")
    rprint(f"  Tech stack:    {', '.join(info.tech_stack) or '(none detected)'}")


@app.command()
def remember(
    decision: str = typer.Argument(help="What was decided"),
    reasoning: str = typer.Option(..., "--reasoning", "-r", help="Why it was decided"),
    decision_type: str = typer.Option(
        "architecture", "--type", "-t",
        help="tech_stack, architecture, pattern or tool_choice",
    ),
    confidence: float = typer.Option(0.8, "--confidence", "-c", help="0 to 1"),
    public: bool = typer.Option(False, "--public", help="Share with other projects"),
    alternatives: Optional[list[str]] = typer.Option(
        None, "--alternative", "-a", help="A rejected alternative (repeatable)"
    ),
    files: Optional[list[str]] = typer.Option(
        None, "--file", "-f", help="An affected file (repeatable)"
    ),
    db_path: Optional[str] = typer.Option(None, "--db", help="Database file path"),
) -> None:
    """Record an architectural decision for the current project."""
    _run_tool(
        db_path,
        "remember_decision",
        {
            "decision": decision,
            "reasoning": reasoning,
            "type": decision_type,
            "confidence": confidence,
            "public": public,
            "alternatives_considered": alternatives or [],
            "files_affected": files or [],
        },
    )


@app.command()
def recall(
    query: Optional[str] = typer.Argument(None, help="What you are working on"),
    limit: int = typer.Option(10, "--limit", "-n", help="Maximum decisions to show"),
    db_path: Optional[str] = typer.Option(None, "--db", help="Database file path"),
) -> None:
    """Recall this project's decisions, by similarity or most recent first."""
    arguments: dict = {"limit": limit}
    if query:
        arguments["query"] = query
    _run_tool(db_path, "recall_context", arguments)


@app.command()
def timeline(
    since: Optional[str] = typer.Option(None, help="ISO-8601 date, e.g. 2024-01-31"),
    category: Optional[str] = typer.Option(None, help="Only this decision type"),
    db_path: Optional[str] = typer.Option(None, "--db", help="Database file path"),
) -> None:
    """Show this project's decisions in chronological order."""
    arguments = {k: v for k, v in {"since": since, "category": category}.items() if v}
    _run_tool(db_path, "get_timeline", arguments)


@app.command()
def discover(
    query: str = typer.Argument(help="Problem or area to find patterns for"),
    tech: Optional[list[str]] = typer.Option(None, "--tech", help="Tech stack tag (repeatable)"),
    project_type: Optional[str] = typer.Option(None, "--project-type", help="Project type"),
    db_path: Optional[str] = typer.Option(None, "--db", help="Database file path"),
) -> None:
    """Discover patterns from public decisions across all projects."""
    arguments: dict = {"query": query}
    if tech:
        arguments["tech_stack"] = tech
    if project_type:
        arguments["project_type"] = project_type
    _run_tool(db_path, "discover_patterns", arguments, needs_project=False)


@app.command("add-pattern")
def add_pattern(
    name: str = typer.Argument(help="Pattern name"),
    description: str = typer.Option("", "--description", "-d"),
    tech: Optional[list[str]] = typer.Option(None, "--tech", help="Tech stack tag (repeatable)"),
    project_type: Optional[str] = typer.Option(None, "--project-type"),
    usage_count: int = typer.Option(1, "--usage-count", min=0),
    success_rate: float = typer.Option(0.0, "--success-rate", min=0.0, max=1.0),
    db_path: Optional[str] = typer.Option(None, "--db", help="Database file path"),
) -> None:
    """Seed a precomputed pattern used by discover."""
    repo = _open_repository(_load_config(db_path))
    try:
        saved = repo.save_pattern(
            DecisionPattern(
                pattern_name=name,
                description=description,
                tech_stack=tech or [],
                project_type=project_type,
                usage_count=usage_count,
                success_rate=success_rate,
            )
        )
    except ArchMemoryError as e:
        _fail(f"Could not save pattern: {e.message}")
    finally:
        repo.close()
    rprint(f"[green]Saved pattern {saved.pattern_name}[/green] ({saved.id})")


@app.command()
def stats(
    all_projects: bool = typer.Option(False, "--all", help="Count every project, not just this one"),
    db_path: Optional[str] = typer.Option(None, "--db", help="Database file path"),
) -> None:
    """Show statistics about stored decisions."""
    config = _load_config(db_path)
    repo = _open_repository(config)
    try:
        project_id = None
        if not all_projects:
            info = detect_project(Path.cwd())
            if info is None:
                _fail("No project found here. Use --all for database-wide statistics.")
            project_id = repo.get_or_create_project(info).id
        s = repo.get_stats(project_id)
        healthy = repo.health_check()
    except ArchMemoryError as e:
        _fail(f"Could not read statistics: {e.message}")
    finally:
        repo.close()

    rprint("[bold]archmemory statistics:[/bold]")
    status = "[green]ok[/green]" if healthy else "[red]unreachable[/red]"
    rprint(f"  Database:         {config.db_path} ({status})")
    rprint(f"  Projects:         {s['total_projects']}")
    rprint(f"  Sessions:         {s['total_sessions']}")
    rprint(f"  Decisions:        {s['total_decisions']}")
    rprint(f"  Public decisions: {s['public_decisions']}")
    rprint(f"  Stored patterns:  {s['total_patterns']}")
    if s["decisions_by_type"]:
        rprint("\n[bold]By type:[/bold]")
        for decision_type, n in sorted(s["decisions_by_type"].items()):
            rprint(f"  {decision_type}: {n}")


@app.command()
def activity(
    limit: int = typer.Option(20, "--limit", "-n"),
    tool: Optional[str] = typer.Option(None, "--tool", help="Only this tool's calls"),
    db_path: Optional[str] = typer.Option(None, "--db", help="Database file path"),
) -> None:
    """Show recent MCP tool calls from the activity log."""
    log_path = activity_log_path(Path(db_path) if db_path else None)
    entries = read_activity_log(limit=limit, tool_name=tool, log_path=log_path)
    if not entries:
        rprint("No tool calls logged yet.")
        return

    table = Table("Time", "Tool", "ms", "Result")
    for entry in entries:
        preview = entry.get("error") or entry.get("result_preview", "")
        table.add_row(
            entry.get("timestamp", "")[:19],
            entry.get("tool_name", ""),
            str(entry.get("duration_ms", "")),
            preview.splitlines()[0][:80] if preview else "",
        )
    console.print(table)


if __name__ == "__main__":
    app()
