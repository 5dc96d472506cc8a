"""Keyword-based pattern tags, relevance ranking and architecture summaries.

No external calls: everything here is a pure function of the decisions
passed in.
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

from archmemory.models import Decision

# (tag, keywords) grouped by category; a decision matches a tag when any
# keyword occurs in its lower-cased decision + reasoning text.
PATTERN_KEYWORDS: dict[str, list[tuple[str, list[str]]]] = {
    "architecture": [
        ("microservices", ["microservice", "service-oriented", "distributed"]),
        ("monolithic", ["monolith", "single application", "all-in-one"]),
        ("serverless", ["lambda", "functions", "serverless", "faas"]),
        ("event-driven", ["event", "message queue", "pub/sub", "kafka"]),
        ("restful-api", ["rest", "restful", "http api", "web api"]),
        ("graphql", ["graphql", "graph query"]),
    ],
    "database": [
        ("sql-database", ["postgres", "mysql", "sqlite", "sql"]),
        ("nosql-database", ["mongodb", "redis", "dynamodb", "nosql"]),
        ("caching", ["cache", "redis", "memcached", "caching layer"]),
    ],
    "frontend": [
        ("spa", ["single page", "spa", "client-side routing"]),
        ("ssr", ["server-side rendering", "ssr", "next.js", "nuxt"]),
        ("component-based", ["component", "react", "vue", "angular"]),
    ],
    "devops": [
        ("containerization", ["docker", "container", "kubernetes"]),
        ("ci-cd", ["continuous integration", "continuous deployment", "ci/cd", "pipeline"]),
        ("infrastructure-as-code", ["terraform", "cloudformation", "iac"]),
    ],
    "security": [
        ("authentication", ["auth", "jwt", "oauth", "login"]),
        ("authorization", ["permissions", "rbac", "access control"]),
        ("api-security", ["api key", "rate limiting", "cors"]),
    ],
}

MAX_EXAMPLES = 3
SUMMARY_TOP_PATTERNS = 5
SUMMARY_RECENT = 5

# Relevance weights
TAG_MATCH_WEIGHT = 0.5
EXAMPLE_MATCH_WEIGHT = 0.3
FREQUENCY_WEIGHT = 0.2

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class ExtractedPattern:
    pattern: str
    frequency: int
    examples: list[str] = field(default_factory=list)


@dataclass
class RankedPattern(ExtractedPattern):
    relevance: float = 0.0


@dataclass
class ArchitectureSummary:
    total: int
    type_counts: dict[str, int]
    top_patterns: list[ExtractedPattern]
    recent: list[Decision]


def identify_patterns(decision: Decision) -> list[str]:
    text = f"{decision.decision} {decision.reasoning}".lower()
    return [
        tag
        for entries in PATTERN_KEYWORDS.values()
        for tag, keywords in entries
        if any(keyword in text for keyword in keywords)
    ]


def extract_patterns(decisions: Iterable[Decision]) -> list[ExtractedPattern]:
    """Aggregate tags across decisions, most frequent first."""
    counts: dict[str, int] = {}
    examples: dict[str, list[str]] = {}

    for decision in decisions:
        for tag in identify_patterns(decision):
            counts[tag] = counts.get(tag, 0) + 1
            seen = examples.setdefault(tag, [])
            if decision.decision not in seen:
                seen.append(decision.decision)

    patterns = [
        ExtractedPattern(pattern=tag, frequency=count, examples=examples[tag][:MAX_EXAMPLES])
        for tag, count in counts.items()
    ]
    # sorted() is stable, so ties keep first-seen order
    return sorted(patterns, key=lambda p: p.frequency, reverse=True)


def rank_patterns_by_relevance(
    patterns: Iterable[ExtractedPattern], query: str
) -> list[RankedPattern]:
    query_lower = query.lower()
    ranked: list[RankedPattern] = []

    for p in patterns:
        relevance = 0.0
        if query_lower in p.pattern.lower():
            relevance += TAG_MATCH_WEIGHT
        if p.examples:
            matches = sum(1 for example in p.examples if query_lower in example.lower())
            relevance += (matches / len(p.examples)) * EXAMPLE_MATCH_WEIGHT
        relevance += math.log(p.frequency + 1) * FREQUENCY_WEIGHT

        ranked.append(
            RankedPattern(
                pattern=p.pattern,
                frequency=p.frequency,
                examples=list(p.examples),
                relevance=relevance,
            )
        )

    return sorted(ranked, key=lambda p: p.relevance, reverse=True)


def build_summary(decisions: list[Decision]) -> ArchitectureSummary:
    type_counts = Counter(d.type for d in decisions)
    recent = sorted(decisions, key=lambda d: d.created_at or _EPOCH, reverse=True)
    return ArchitectureSummary(
        total=len(decisions),
        type_counts=dict(type_counts),
        top_patterns=extract_patterns(decisions)[:SUMMARY_TOP_PATTERNS],
        recent=recent[:SUMMARY_RECENT],
    )


def summarize(decisions: list[Decision]) -> str:
    """Short markdown report: counts by type, common patterns, latest decisions."""
    if not decisions:
        return "No architectural decisions found for this project."

    summary = build_summary(decisions)
    lines = [
        "## Project Architecture Summary",
        "",
        f"**Total Decisions:** {summary.total}",
        "",
        "**Decision Types:**",
    ]
    lines.extend(f"- {t}: {n}" for t, n in summary.type_counts.items())

    if summary.top_patterns:
        lines.append("")
        lines.append("**Common Patterns:**")
        lines.extend(
            f"- {p.pattern} (used {p.frequency} times)" for p in summary.top_patterns
        )

    lines.append("")
    lines.append("**Recent Decisions:**")
    lines.extend(
        f"{i}. **{d.type}**: {d.decision}" for i, d in enumerate(summary.recent, 1)
    )
    return "\n".join(lines)
