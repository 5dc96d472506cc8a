"""Static tech-stack and project-type classification.

Pure lookup tables over manifest files and the dependency names inside them.
"""

from __future__ import annotations

import json
from pathlib import Path

# package.json dependency name -> tag
NODE_DEPENDENCY_TAGS = (
    (("typescript", "@types/node"), "typescript"),
    (("react",), "react"),
    (("vue",), "vue"),
    (("angular", "@angular/core"), "angular"),
    (("express",), "express"),
    (("next", "next.js"), "nextjs"),
    (("svelte",), "svelte"),
    (("nuxt",), "nuxt"),
    (("fastify",), "fastify"),
    (("nestjs", "@nestjs/core"), "nestjs"),
    (("gatsby",), "gatsby"),
    (("electron",), "electron"),
    (("@tauri-apps/api", "@tauri-apps/cli"), "tauri"),
    (("react-native",), "react-native"),
    (("jest",), "jest"),
    (("mocha",), "mocha"),
    (("webpack",), "webpack"),
    (("vite",), "vite"),
    (("tailwindcss",), "tailwindcss"),
)

PYTHON_DEPENDENCY_TAGS = ("django", "flask", "fastapi", "streamlit")

# Checked in this order; the first group with a matching tag decides the type.
PROJECT_TYPE_RULES = (
    ("frontend", ("react", "vue", "angular", "svelte")),
    ("backend", ("express", "fastapi", "django", "rails", "flask", "fastify", "nestjs")),
    ("fullstack", ("nextjs", "nuxt", "gatsby")),
    ("desktop", ("electron", "tauri")),
    ("mobile", ("react-native", "flutter")),
)

SYSTEMS_TAGS = ("rust", "go", "c++")


def analyze_tech_stack(root: Path | str) -> list[str]:
    """Ordered, de-duplicated technology tags for a project root."""
    root = Path(root)
    tags: list[str] = []

    def add(tag: str) -> None:
        if tag not in tags:
            tags.append(tag)

    package_json = root / "package.json"
    if package_json.is_file():
        add("javascript")
        for tag in _node_tags(package_json):
            add(tag)

    if any((root / name).is_file() for name in ("requirements.txt", "pyproject.toml", "setup.py")):
        add("python")
        if (root / "manage.py").is_file():
            add("django")
        manifests = _read_lower(root / "requirements.txt") + _read_lower(root / "pyproject.toml")
        for dep in PYTHON_DEPENDENCY_TAGS:
            if dep in manifests:
                add(dep)

    if (root / "Cargo.toml").is_file():
        add("rust")
    if (root / "go.mod").is_file():
        add("go")

    has_gradle = (root / "build.gradle").is_file()
    has_maven = (root / "pom.xml").is_file()
    if has_gradle or has_maven:
        add("java")
        if has_gradle:
            add("gradle")
        if has_maven:
            add("maven")

    if (root / "composer.json").is_file():
        add("php")
    if (root / "Gemfile").is_file():
        add("ruby")
        add("rails")
    if (root / "mix.exs").is_file():
        add("elixir")
    if (root / "deno.json").is_file():
        add("deno")
    if (root / "pubspec.yaml").is_file():
        add("dart")
        if "flutter" in _read_lower(root / "pubspec.yaml"):
            add("flutter")
    if (root / "CMakeLists.txt").is_file():
        add("c++")

    if (root / "docker-compose.yml").is_file() or (root / "Dockerfile").is_file():
        add("docker")
    if (root / ".github").is_dir():
        add("github-actions")
    if (root / "terraform").is_dir():
        add("terraform")

    return tags


def determine_project_type(tech_stack: list[str], root: Path | str) -> str:
    root = Path(root)
    stack = set(tech_stack)

    for project_type, markers in PROJECT_TYPE_RULES:
        if stack.intersection(markers):
            return project_type

    if (root / "lib").is_dir() and stack.intersection(("javascript", "typescript")):
        return "library"

    if stack.intersection(SYSTEMS_TAGS):
        return "systems"

    if "python" in stack and ((root / "notebooks").is_dir() or (root / "data").is_dir()):
        return "data-science"

    return "general"


def _node_tags(package_json: Path) -> list[str]:
    try:
        data = json.loads(package_json.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return []
    if not isinstance(data, dict):
        return []

    deps: dict = {}
    for key in ("dependencies", "devDependencies"):
        section = data.get(key)
        if isinstance(section, dict):
            deps.update(section)

    return [tag for names, tag in NODE_DEPENDENCY_TAGS if any(n in deps for n in names)]


def _read_lower(path: Path) -> str:
    if not path.is_file():
        return ""
    try:
        return path.read_text(encoding="utf-8").lower()
    except (OSError, UnicodeDecodeError):
        return ""
