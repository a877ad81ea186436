#!/usr/bin/env python3
# CUI // SP-CTI
"""Assessment Engine: Correlation IDs for the command path.

Every session command runs inside a correlation scope so that log lines
emitted by the store, graph and ledger for that command share one id.

Usage:
    from assessment_engine.resilience.correlation import correlation_scope

    with correlation_scope() as cid:
        ...  # all log records carry cid via CorrelationLogFilter
"""

import logging
import os
import threading
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

logger = logging.getLogger("assessment_engine.resilience.correlation")

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(correlation_id)s] %(name)s: %(message)s"

# Thread-local storage; the session write path is single-threaded per project
_thread_local = threading.local()


def generate_correlation_id() -> str:
    """Generate a 12-character correlation ID (UUID prefix)."""
    return uuid.uuid4().hex[:12]


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID, or None outside a scope."""
    return getattr(_thread_local, "correlation_id", None)


def set_correlation_id(correlation_id: Optional[str]):
    """Set the correlation ID in thread-local storage."""
    _thread_local.correlation_id = correlation_id


def clear_correlation_id():
    """Clear the thread-local correlation ID."""
    _thread_local.correlation_id = None


@contextmanager
def correlation_scope(correlation_id: Optional[str] = None) -> Iterator[str]:
    """Bind a correlation id for the duration of a block.

    Nested scopes reuse the outer id unless one is passed explicitly.
    """
    previous = get_correlation_id()
    cid = correlation_id or previous or generate_correlation_id()
    set_correlation_id(cid)
    try:
        yield cid
    finally:
        set_correlation_id(previous)


class CorrelationLogFilter(logging.Filter):
    """Logging filter that injects correlation_id into log records."""

    def filter(self, record):
        record.correlation_id = get_correlation_id() or "-"
        return True


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for CLI entry points.

    Level falls back to ASSESSMENT_LOG_LEVEL, then the ``logging.level``
    config setting.
    """
    from assessment_engine.compat.config import get_setting

    level_name = (level or os.environ.get("ASSESSMENT_LOG_LEVEL")
                  or get_setting("logging", "level", "INFO"))
    logging.basicConfig(level=getattr(logging, str(level_name).upper(), logging.INFO),
                        format=LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, CorrelationLogFilter) for f in handler.filters):
            handler.addFilter(CorrelationLogFilter())
