"""Project identity: map a working directory to a stable project key.

A project is identified by its normalized Git remote when it has one, so two
clones of the same repository (on one machine or on two) share decisions.
Projects without a remote fall back to a hash of their root path.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import subprocess
import tomllib
from pathlib import Path

from archmemory.models import ProjectInfo
from archmemory.project.stack import analyze_tech_stack, determine_project_type

logger = logging.getLogger(__name__)

PROJECT_FILES = (
    "package.json",
    "pyproject.toml",
    "requirements.txt",
    "setup.py",
    "Cargo.toml",
    "go.mod",
    "pom.xml",
    "build.gradle",
    "composer.json",
    "Gemfile",
    "mix.exs",
    "deno.json",
    "bun.lockb",
    "pubspec.yaml",
    "CMakeLists.txt",
)

VERSION_CONTROL_DIRS = (".git", ".hg", ".svn")

GIT_TIMEOUT = 5  # seconds

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def find_project_root(start_dir: Path | str) -> Path | None:
    """Walk upward until a directory looks like a project root.

    The filesystem root itself is never treated as a project. Returns None
    when nothing is found.
    """
    current = Path(start_dir).resolve()
    while current != current.parent:
        if _is_project_root(current):
            return current
        current = current.parent
    return None


def _is_project_root(directory: Path) -> bool:
    try:
        entries = {entry.name: entry for entry in directory.iterdir()}
    except OSError:
        return False

    if any(name in entries for name in PROJECT_FILES):
        return True
    return any(
        name in entries and entries[name].is_dir() for name in VERSION_CONTROL_DIRS
    )


def path_hash(root: Path | str) -> str:
    """First 16 hex chars of the SHA-256 of the absolute root path."""
    normalized = str(Path(root).resolve())
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16]


def normalize_git_url(url: str) -> str:
    """Reduce a remote URL to ``host/owner/repo``.

    git@github.com:User/Repo.git          -> github.com/user/repo
    https://token@github.com/user/repo/   -> github.com/user/repo
    ssh://git@gitlab.com/group/repo.git   -> gitlab.com/group/repo
    """
    normalized = url.strip()

    has_scheme = bool(_SCHEME_RE.match(normalized))
    if has_scheme:
        normalized = _SCHEME_RE.sub("", normalized, count=1)

    # Drop user[:password]@ in front of the host
    host_end = normalized.find("/")
    authority = normalized if host_end == -1 else normalized[:host_end]
    if "@" in authority:
        normalized = normalized[authority.rindex("@") + 1 :]

    # scp-style shorthand: host:owner/repo
    if not has_scheme and ":" in normalized.split("/", 1)[0]:
        normalized = normalized.replace(":", "/", 1)

    normalized = normalized.rstrip("/")
    if normalized.endswith(".git"):
        normalized = normalized[:-4]
    normalized = normalized.rstrip("/")

    return normalized.lower()


def git_identity(root: Path | str) -> tuple[str | None, str | None]:
    """Return (remote_url, repository_id) for a Git checkout, or (None, None).

    Never raises: a missing git binary, a timeout or a repository without an
    origin remote all mean "identify by path instead".
    """
    root = Path(root)
    if not (root / ".git").exists():
        return None, None

    try:
        result = subprocess.run(
            ["git", "config", "--get", "remote.origin.url"],
            cwd=root,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"Could not read git remote for {root}: {e}")
        return None, None

    remote_url = result.stdout.strip() if result.returncode == 0 else ""
    if not remote_url:
        return None, None

    repository_id = normalize_git_url(remote_url)
    if not repository_id:
        return None, None
    logger.debug(f"Git remote for {root} resolves to {repository_id}")
    return strip_credentials(remote_url), repository_id


def strip_credentials(url: str) -> str:
    """Remove ``user:token@`` from http(s) remotes before they are stored."""
    match = re.match(r"^(https?://)([^/@]+@)(.*)$", url.strip(), re.IGNORECASE)
    if not match:
        return url.strip()
    return match.group(1) + match.group(3)


def project_name(root: Path | str) -> str:
    """Name declared in a manifest, falling back to the directory name."""
    root = Path(root)
    for reader in (_name_from_package_json, _name_from_cargo, _name_from_pyproject):
        name = reader(root)
        if name:
            return name
    return root.name


def _name_from_package_json(root: Path) -> str | None:
    path = root / "package.json"
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    name = data.get("name") if isinstance(data, dict) else None
    return name if isinstance(name, str) and name else None


def _read_toml(path: Path) -> dict | None:
    if not path.is_file():
        return None
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError):
        return None


def _table(data: dict, *keys: str) -> dict:
    """Walk nested TOML tables, yielding {} where a level is missing or not a table."""
    for key in keys:
        data = data.get(key)
        if not isinstance(data, dict):
            return {}
    return data


def _name_from_cargo(root: Path) -> str | None:
    data = _read_toml(root / "Cargo.toml")
    if not data:
        return None
    name = _table(data, "package").get("name")
    return name if isinstance(name, str) and name else None


def _name_from_pyproject(root: Path) -> str | None:
    data = _read_toml(root / "pyproject.toml")
    if not data:
        return None
    name = _table(data, "project").get("name") or _table(data, "tool", "poetry").get("name")
    return name if isinstance(name, str) and name else None


def detect_project(start_dir: Path | str | None = None) -> ProjectInfo | None:
    """Detect the project containing ``start_dir`` (default: the cwd)."""
    start = Path(start_dir) if start_dir is not None else Path.cwd()
    root = find_project_root(start)
    if root is None:
        logger.warning(f"No project root found from {start}")
        return None

    remote_url, repository_id = git_identity(root)
    tech_stack = analyze_tech_stack(root)
    info = ProjectInfo(
        name=project_name(root),
        root_path=str(root),
        path_hash=path_hash(root),
        tech_stack=tech_stack,
        project_type=determine_project_type(tech_stack, root),
        git_remote_url=remote_url,
        repository_id=repository_id,
    )
    logger.info(f"Detected project {info.name} ({info.identity_key}) at {root}")
    return info
