#!/usr/bin/env python3
# CUI // SP-CTI
"""Assessment Engine: Structured Exception Hierarchy.

Components (store, graph, ledger, scorer) raise these exceptions. The project
session catches ``AssessmentError`` at the command boundary and converts it
into a typed ``CommandResult`` so callers never see a crash.

Taxonomy:
    ValidationError      empty or invalid command input, raised before mutation
    ReferentialError     link or lookup against a node that does not exist
    IntegrityViolation   broken ledger hash chain
    LedgerAppendError    malformed ledger append or attempted history rewrite
    IngestionError       one malformed upstream event
    ConfigurationError   unreadable engine configuration

Usage:
    from assessment_engine.resilience.errors import ValidationError

    raise ValidationError("Requirement description is required", field="description")
"""


class AssessmentError(Exception):
    """Base exception for all assessment engine errors.

    Attributes:
        code: Stable machine-readable error code (e.g. "validation").
        recoverable: Whether the caller can retry with corrected input.
    """

    code = "assessment_error"

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


class ValidationError(AssessmentError):
    """Command input failed validation. No state was changed."""

    code = "validation"

    def __init__(self, message: str, field: str = ""):
        super().__init__(message, recoverable=True)
        self.field = field


class ReferentialError(AssessmentError):
    """A link or lookup referenced a node that does not exist or is inactive."""

    code = "referential"

    def __init__(self, message: str, node_id: str = ""):
        super().__init__(message, recoverable=True)
        self.node_id = node_id


class IntegrityViolation(AssessmentError):
    """The ledger hash chain does not verify.

    Never auto-repaired. The compliance reporter surfaces it as NON_COMPLIANT.

    Attributes:
        broken_entries: Ids of entries whose chain link failed verification.
    """

    code = "integrity"

    def __init__(self, message: str, broken_entries=None):
        super().__init__(message, recoverable=False)
        self.broken_entries = list(broken_entries or [])


class LedgerAppendError(AssessmentError):
    """A ledger append was malformed and rejected."""

    code = "ledger_append"

    def __init__(self, message: str, field: str = ""):
        super().__init__(message, recoverable=True)
        self.field = field


class StaleTailError(LedgerAppendError):
    """An append targeted a chain position other than the current tail."""

    code = "stale_tail"

    def __init__(self, message: str, expected: str = "", actual: str = ""):
        super().__init__(message, field="expected_tail")
        self.expected = expected
        self.actual = actual


class IngestionError(AssessmentError):
    """An external event could not be mapped to a ledger entry.

    Attributes:
        external_id: Upstream identifier of the offending event, if known.
    """

    code = "ingestion"

    def __init__(self, message: str, external_id: str = ""):
        super().__init__(message, recoverable=True)
        self.external_id = external_id


class ConfigurationError(AssessmentError):
    """Configuration error: missing or invalid configuration."""

    code = "configuration"

    def __init__(self, message: str, config_key: str = ""):
        super().__init__(message, recoverable=False)
        self.config_key = config_key
