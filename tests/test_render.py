"""Tests for archmemory.service.render."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from archmemory.models import Decision
from archmemory.patterns.extractor import RankedPattern
from archmemory.service.render import (
    day,
    percent,
    render_discovery,
    render_recall,
    render_timeline,
)


def _decision(text: str, created_at: datetime | None = None) -> Decision:
    return Decision(
        project_id="p",
        session_id="s",
        decision=text,
        reasoning="because",
        type="pattern",
        confidence=0.86,
        created_at=created_at,
    )


@pytest.mark.parametrize(
    "value, expected", [(0.9, "90%"), (0.125, "13%"), (0.0, "0%"), (1.0, "100%"), (0.005, "1%")]
)
def test_percent(value: float, expected: str):
    assert percent(value) == expected


def test_day_uses_utc():
    late = datetime(2024, 6, 1, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
    assert day(late) == "2024-06-02"
    assert day(None) == "Unknown"


def test_recall_lists_each_decision():
    text = render_recall([_decision("A"), _decision("B")])
    assert "### 1. PATTERN: A" in text
    assert "### 2. PATTERN: B" in text
    assert "**Confidence**: 86%" in text
    assert "**Date**" not in text


def test_discovery_sections_only_when_present():
    community = [RankedPattern("caching", 2, ["Use Redis"], relevance=0.61)]
    text = render_discovery("cache", ["redis"], None, community, [], [])
    assert "## Community Patterns" in text
    assert "**Relevance Score**: 61%" in text
    assert "**Tech Stack Filter**: redis" in text
    assert "## Similar Public Decisions" not in text
    assert "## Known Patterns" not in text


def test_discovery_empty_echoes_filters():
    text = render_discovery("cache", None, "backend", [], [], [])
    assert "**Tech Stack**: Any" in text
    assert "**Project Type**: backend" in text


def test_timeline_since_in_empty_message():
    since = datetime(2024, 6, 1, tzinfo=timezone.utc)
    assert render_timeline([], since, None) == (
        "No decisions found since 2024-06-01T00:00:00+00:00."
    )
