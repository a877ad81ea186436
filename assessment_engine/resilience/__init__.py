#!/usr/bin/env python3
# CUI // SP-CTI
"""Assessment Engine Resilience Package: Errors and Correlation.

Structured exception hierarchy for the command path and correlation ids
for log records. Python stdlib only.
"""

from assessment_engine.resilience.correlation import (  # noqa: F401
    CorrelationLogFilter,
    configure_logging,
    correlation_scope,
    get_correlation_id,
    set_correlation_id,
)
from assessment_engine.resilience.errors import (  # noqa: F401
    AssessmentError,
    ConfigurationError,
    IngestionError,
    IntegrityViolation,
    LedgerAppendError,
    ReferentialError,
    StaleTailError,
    ValidationError,
)
