# [TEMPLATE: CUI // SP-CTI]
"""Tests for assessment_engine.resilience.errors: Structured exception hierarchy.

Validates the AssessmentError base class, stable error codes, the
recoverable flag and subclass-specific attributes.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from assessment_engine.resilience.errors import (
    AssessmentError,
    ConfigurationError,
    IngestionError,
    IntegrityViolation,
    LedgerAppendError,
    ReferentialError,
    StaleTailError,
    ValidationError,
)


class TestAssessmentError:
    """Tests for the AssessmentError base exception."""

    def test_has_message(self):
        """str() must return the message."""
        assert str(AssessmentError("something broke")) == "something broke"

    def test_default_recoverable_is_true(self):
        assert AssessmentError("fail").recoverable is True


class TestErrorCodes:
    """Every subclass exposes a distinct machine-readable code."""

    @pytest.mark.parametrize("cls,code", [
        (ValidationError, "validation"),
        (ReferentialError, "referential"),
        (IntegrityViolation, "integrity"),
        (LedgerAppendError, "ledger_append"),
        (StaleTailError, "stale_tail"),
        (IngestionError, "ingestion"),
        (ConfigurationError, "configuration"),
    ])
    def test_code(self, cls, code):
        assert cls.code == code

    @pytest.mark.parametrize("cls", [
        ValidationError, ReferentialError, IntegrityViolation, LedgerAppendError,
        StaleTailError, IngestionError, ConfigurationError,
    ])
    def test_catchable_as_base(self, cls):
        """All engine errors must be catchable as AssessmentError."""
        with pytest.raises(AssessmentError):
            raise cls("boom")


class TestSubclassAttributes:
    """Subclass-specific context."""

    def test_validation_error_field(self):
        err = ValidationError("Requirement description is required", field="description")
        assert err.field == "description"
        assert err.recoverable is True

    def test_referential_error_node_id(self):
        assert ReferentialError("missing", node_id="requirement:REQ-9").node_id == \
            "requirement:REQ-9"

    def test_integrity_violation_is_not_recoverable(self):
        err = IntegrityViolation("broken", broken_entries=("a", "b"))
        assert err.recoverable is False
        assert err.broken_entries == ["a", "b"]

    def test_stale_tail_is_a_ledger_append_error(self):
        err = StaleTailError("moved", expected="x", actual="y")
        assert isinstance(err, LedgerAppendError)
        assert err.field == "expected_tail"
        assert (err.expected, err.actual) == ("x", "y")

    def test_ingestion_error_external_id(self):
        assert IngestionError("bad", external_id="abc123").external_id == "abc123"

    def test_configuration_error_is_not_recoverable(self):
        err = ConfigurationError("bad yaml", config_key="args/engine_config.yaml")
        assert err.recoverable is False
        assert err.config_key == "args/engine_config.yaml"
