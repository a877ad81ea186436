#!/usr/bin/env python3
# CUI // SP-CTI
"""Centralized database path resolution and connection helpers.

Provides functions to resolve the ledger database path and create
connections with a consistent fallback chain: explicit argument > env var >
configured default.

Usage:
    from assessment_engine.compat.db_utils import get_ledger_db_path, get_db_connection

    db_path = get_ledger_db_path()                    # env var or default
    db_path = get_ledger_db_path("/custom/path.db")   # explicit override

    conn = get_db_connection()                        # default ledger.db
    conn = get_db_connection(validate=True)           # raise if DB missing

Fallback chain:
    1. Explicit path argument (if provided)
    2. ASSESSMENT_DB_PATH environment variable
    3. ``database.path`` from args/engine_config.yaml (relative to project root)
"""

import os
import sqlite3
from pathlib import Path
from typing import Optional, Union

from assessment_engine.compat.config import get_project_root, load_config


def get_ledger_db_path(explicit: Optional[Union[str, Path]] = None) -> Path:
    """Resolve the audit ledger database path."""
    if explicit:
        return Path(explicit)

    env_path = os.environ.get("ASSESSMENT_DB_PATH")
    if env_path:
        return Path(env_path)

    configured = load_config().get("database", {}).get("path", "data/ledger.db")
    path = Path(configured)
    if not path.is_absolute():
        path = get_project_root() / path
    return path


def get_db_connection(
    db_path: Optional[Union[str, Path]] = None,
    validate: bool = False,
    row_factory: bool = True,
) -> sqlite3.Connection:
    """Open a SQLite connection to the ledger database.

    Args:
        db_path: Optional explicit path.
        validate: If True, raise FileNotFoundError when the DB does not exist.
        row_factory: If True, rows are returned as sqlite3.Row.
    """
    path = get_ledger_db_path(db_path)
    if validate and not path.exists():
        raise FileNotFoundError(f"Ledger database not found: {path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    if row_factory:
        conn.row_factory = sqlite3.Row
    return conn
