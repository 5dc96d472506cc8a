"""Tests for request parsing and validation at the tool boundary."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from archmemory.errors import ValidationError
from archmemory.service.requests import (
    DiscoverPatternsRequest,
    RecallContextRequest,
    RememberDecisionRequest,
    TimelineRequest,
    parse_timestamp,
)


def _remember_args(**overrides) -> dict:
    args = {
        "decision": "Use PostgreSQL",
        "reasoning": "Relational data",
        "type": "tech_stack",
        "confidence": 0.9,
        "public": False,
    }
    args.update(overrides)
    return args


class TestRememberDecisionRequest:
    def test_valid(self):
        req = RememberDecisionRequest.from_arguments(
            _remember_args(alternatives_considered=["MySQL"], files_affected=["db.py"])
        )
        assert req.type == "tech_stack"
        assert req.alternatives_considered == ["MySQL"]
        assert req.files_affected == ["db.py"]

    def test_optional_lists_default_empty(self):
        req = RememberDecisionRequest.from_arguments(_remember_args())
        assert req.alternatives_considered == []
        assert req.files_affected == []

    def test_missing_fields_listed(self):
        with pytest.raises(ValidationError, match="Missing required fields: reasoning, public"):
            RememberDecisionRequest.from_arguments(
                {"decision": "x", "type": "pattern", "confidence": 0.5}
            )

    @pytest.mark.parametrize("confidence", [1.5, -0.01, float("nan")])
    def test_confidence_out_of_range(self, confidence: float):
        with pytest.raises(ValidationError, match="between 0 and 1"):
            RememberDecisionRequest.from_arguments(_remember_args(confidence=confidence))

    @pytest.mark.parametrize("confidence", ["0.9", True])
    def test_confidence_not_a_number(self, confidence):
        with pytest.raises(ValidationError, match="must be a number"):
            RememberDecisionRequest.from_arguments(_remember_args(confidence=confidence))

    def test_confidence_bounds_inclusive(self):
        assert RememberDecisionRequest.from_arguments(_remember_args(confidence=0)).confidence == 0
        assert RememberDecisionRequest.from_arguments(_remember_args(confidence=1)).confidence == 1

    def test_unknown_type(self):
        with pytest.raises(ValidationError, match="Type must be one of"):
            RememberDecisionRequest.from_arguments(_remember_args(type="database"))

    def test_blank_decision(self):
        with pytest.raises(ValidationError):
            RememberDecisionRequest.from_arguments(_remember_args(decision="   "))

    def test_public_must_be_bool(self):
        with pytest.raises(ValidationError):
            RememberDecisionRequest.from_arguments(_remember_args(public="yes"))

    def test_list_items_must_be_strings(self):
        with pytest.raises(ValidationError):
            RememberDecisionRequest.from_arguments(_remember_args(files_affected=[1, 2]))


class TestRecallContextRequest:
    def test_defaults(self):
        req = RecallContextRequest.from_arguments({})
        assert req.query is None
        assert req.limit == 10

    def test_blank_query_is_no_query(self):
        assert RecallContextRequest.from_arguments({"query": "  "}).query is None

    def test_integral_float_limit(self):
        assert RecallContextRequest.from_arguments({"limit": 5.0}).limit == 5

    @pytest.mark.parametrize("limit", [0, 101, 2.5, "10", True])
    def test_bad_limit(self, limit):
        with pytest.raises(ValidationError):
            RecallContextRequest.from_arguments({"limit": limit})


class TestDiscoverPatternsRequest:
    def test_query_required(self):
        with pytest.raises(ValidationError, match="Query is required"):
            DiscoverPatternsRequest.from_arguments({"tech_stack": ["react"]})

    def test_empty_filters_become_none(self):
        req = DiscoverPatternsRequest.from_arguments(
            {"query": "caching", "tech_stack": [], "project_type": ""}
        )
        assert req.tech_stack is None
        assert req.project_type is None


class TestTimelineRequest:
    def test_since_date(self):
        req = TimelineRequest.from_arguments({"since": "2024-06-01"})
        assert req.since == datetime(2024, 6, 1, tzinfo=timezone.utc)

    def test_since_with_offset(self):
        parsed = parse_timestamp("2024-06-01T10:00:00+02:00")
        assert parsed == datetime(2024, 6, 1, 8, tzinfo=timezone.utc)
        assert parsed.utcoffset() == timedelta(0)

    def test_since_outside_utc_range(self):
        with pytest.raises(ValidationError, match="Date out of range"):
            TimelineRequest.from_arguments({"since": "0001-01-01T00:00:00+05:00"})

    def test_bad_since(self):
        with pytest.raises(ValidationError, match="Invalid date format"):
            TimelineRequest.from_arguments({"since": "last tuesday"})

    def test_bad_category(self):
        with pytest.raises(ValidationError, match="Category must be one of"):
            TimelineRequest.from_arguments({"category": "database"})
