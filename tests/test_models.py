"""Tests for archmemory.models and archmemory.errors."""

from __future__ import annotations

import pytest

from archmemory.errors import (
    ArchMemoryError,
    ConstraintError,
    QueryError,
    ValidationError,
)
from archmemory.models import Decision, ProjectInfo, validate_decision_fields


class TestValidateDecisionFields:
    @pytest.mark.parametrize("decision_type", ["tech_stack", "architecture", "pattern", "tool_choice"])
    def test_accepts_known_types(self, decision_type: str):
        validate_decision_fields(decision_type, 0.5)

    def test_rejects_unknown_type(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_decision_fields("framework", 0.5)
        assert exc_info.value.context == {"field": "type"}

    @pytest.mark.parametrize("confidence", [0, 0.0, 1, 1.0, 0.42])
    def test_accepts_confidence(self, confidence: float):
        validate_decision_fields("pattern", confidence)

    @pytest.mark.parametrize("confidence", [-1e-9, 1.0000001, float("inf"), float("nan")])
    def test_rejects_confidence(self, confidence: float):
        with pytest.raises(ValidationError):
            validate_decision_fields("pattern", confidence)


class TestModels:
    def test_identity_prefers_repository(self):
        info = ProjectInfo(name="x", root_path="/x", path_hash="h", repository_id="github.com/a/b")
        assert info.identity_key == "github.com/a/b"
        assert ProjectInfo(name="x", root_path="/x", path_hash="h").identity_key == "h"

    def test_list_defaults_are_independent(self):
        a = Decision("p", "s", "a", "r", "pattern", 0.5)
        b = Decision("p", "s", "b", "r", "pattern", 0.5)
        a.files_affected.append("x.py")
        assert b.files_affected == []


class TestErrors:
    def test_codes(self):
        assert ValidationError("x").code == "VALIDATION_FAILED"
        assert ConstraintError("x").code == "DB_QUERY_FAILED"
        assert isinstance(ConstraintError("x"), QueryError)

    def test_code_override_and_context(self):
        e = ArchMemoryError("boom", code="CUSTOM", context={"operation": "op"})
        assert e.code == "CUSTOM"
        assert e.context == {"operation": "op"}
        assert str(e) == "boom"
