"""Markdown rendering for operation responses."""

from __future__ import annotations

import math
from datetime import datetime, timezone

from archmemory.models import Decision, DecisionPattern
from archmemory.patterns.extractor import RankedPattern, summarize

MAX_LISTED = 5


def percent(value: float) -> str:
    """0.9 -> '90%', rounding halves up."""
    return f"{math.floor(value * 100 + 0.5)}%"


def day(value: datetime | None) -> str:
    if value is None:
        return "Unknown"
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date().isoformat()


def _title(tag: str) -> str:
    return tag[:1].upper() + tag[1:].replace("-", " ")


def render_remembered(decision: Decision, embedding_source: str | None = None) -> str:
    lines = [
        "Decision remembered successfully!",
        "",
        f"**Decision**: {decision.decision}",
        f"**Type**: {decision.type}",
        f"**Confidence**: {percent(decision.confidence)}",
        f"**Visibility**: {'public' if decision.public else 'private'}",
    ]
    if embedding_source == "fallback":
        lines.append("**Embedding**: offline fallback")
    lines.append("")
    lines.append(
        "This decision has been stored and will be available for future context recall."
    )
    return "\n".join(lines)


def render_recall(decisions: list[Decision], query: str | None = None) -> str:
    if not decisions:
        if query:
            return f'No decisions found matching query: "{query}"'
        return "No previous decisions found for this project. This appears to be a fresh start!"

    parts = [summarize(decisions), "", "**Detailed Decisions:**", ""]
    for i, d in enumerate(decisions, 1):
        parts.append(f"### {i}. {d.type.upper()}: {d.decision}")
        parts.append(f"**Reasoning**: {d.reasoning}")
        if d.alternatives_considered:
            parts.append(f"**Alternatives Considered**: {', '.join(d.alternatives_considered)}")
        if d.files_affected:
            parts.append(f"**Files Affected**: {', '.join(d.files_affected)}")
        parts.append(f"**Confidence**: {percent(d.confidence)}")
        if d.created_at is not None:
            parts.append(f"**Date**: {day(d.created_at)}")
        parts.append("")
        parts.append("---")
        parts.append("")
    return "\n".join(parts).rstrip() + "\n"


def render_discovery(
    query: str,
    tech_stack: list[str] | None,
    project_type: str | None,
    community: list[RankedPattern],
    similar: list[Decision],
    stored: list[DecisionPattern],
) -> str:
    if not community and not similar and not stored:
        return (
            "No architectural patterns found matching your criteria.\n\n"
            f"**Query**: {query}\n"
            f"**Tech Stack**: {', '.join(tech_stack) if tech_stack else 'Any'}\n"
            f"**Project Type**: {project_type or 'Any'}"
        )

    lines = ["# Architectural Patterns Discovery", "", f"**Search Query**: {query}"]
    if tech_stack:
        lines.append(f"**Tech Stack Filter**: {', '.join(tech_stack)}")
    if project_type:
        lines.append(f"**Project Type Filter**: {project_type}")
    lines.append("")

    if community:
        lines.append("## Community Patterns")
        lines.append("")
        for i, p in enumerate(community[:MAX_LISTED], 1):
            lines.append(f"### {i}. {_title(p.pattern)}")
            lines.append(f"**Usage Frequency**: {p.frequency} decisions")
            lines.append(f"**Relevance Score**: {percent(p.relevance)}")
            lines.append("**Examples**:")
            lines.extend(f"- {example}" for example in p.examples)
            lines.append("")

    if similar:
        lines.append("## Similar Public Decisions")
        lines.append("")
        for i, d in enumerate(similar[:MAX_LISTED], 1):
            lines.append(f"{i}. [{d.type}] {d.decision} (confidence {percent(d.confidence)})")
        lines.append("")

    if stored:
        lines.append("## Known Patterns")
        lines.append("")
        for i, p in enumerate(stored[:MAX_LISTED], 1):
            lines.append(f"### {i}. {p.pattern_name}")
            lines.append(f"**Description**: {p.description}")
            lines.append(f"**Usage Count**: {p.usage_count}")
            lines.append(f"**Success Rate**: {percent(p.success_rate)}")
            if p.tech_stack:
                lines.append(f"**Common Tech Stack**: {', '.join(p.tech_stack)}")
            lines.append("")

    lines.append(
        "Tip: these patterns come from public decisions in other projects. "
        "Consider how they apply to your specific context."
    )
    return "\n".join(lines)


def render_timeline(
    decisions: list[Decision], since: datetime | None, category: str | None
) -> str:
    if not decisions:
        message = "No decisions found"
        if category:
            message += f' for category "{category}"'
        if since is not None:
            message += f" since {since.isoformat()}"
        return message + "."

    lines = ["# Project Decision Timeline", ""]
    if category:
        lines.append(f"**Category Filter**: {category}")
    if since is not None:
        lines.append(f"**Since**: {since.isoformat()}")
    lines.append(f"**Total Decisions**: {len(decisions)}")
    lines.append("")

    by_day: dict[str, list[Decision]] = {}
    for d in decisions:
        by_day.setdefault(day(d.created_at), []).append(d)

    for date in sorted(by_day):
        lines.append(f"## {date}")
        lines.append("")
        for i, d in enumerate(by_day[date], 1):
            lines.append(f"### {i}. [{d.type.upper()}] {d.decision}")
            lines.append(d.reasoning)
            lines.append(f"**Confidence**: {percent(d.confidence)}")
            if d.files_affected:
                lines.append(f"**Files**: {', '.join(d.files_affected)}")
            lines.append("")
        lines.append("---")
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"
