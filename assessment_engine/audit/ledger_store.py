#!/usr/bin/env python3
# CUI // SP-CTI
"""SQLite persistence for the audit ledger. Append-only.

``save`` only ever INSERTs rows for entries the database has not seen;
there is no UPDATE or DELETE path. ``load`` rebuilds the ledger with the
hashes as stored, so a row edited out-of-band fails chain verification
instead of being silently re-hashed.
"""

import argparse
import json
import logging
import sqlite3
from pathlib import Path
from typing import Optional, Union

from assessment_engine.audit.audit_ledger import AuditLedger
from assessment_engine.compat.db_utils import get_db_connection, get_ledger_db_path
from assessment_engine.resilience.correlation import configure_logging, get_correlation_id
from assessment_engine.schemas.audit import (
    Actor,
    AuditLogEntry,
    DataClassification,
    GenericDetails,
    LedgerRecord,
    SourceSystem,
)

logger = logging.getLogger("assessment_engine.audit.ledger_store")

SCHEMA = """
CREATE TABLE IF NOT EXISTS audit_ledger (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    timestamp TEXT NOT NULL,
    occurred_at TEXT NOT NULL,
    event_type TEXT NOT NULL,
    actor TEXT NOT NULL,
    summary TEXT NOT NULL,
    details TEXT,
    data_classification TEXT NOT NULL,
    source_system TEXT NOT NULL,
    content_hash TEXT NOT NULL,
    prev_hash TEXT NOT NULL,
    chain_hash TEXT NOT NULL,
    session_id TEXT
);
CREATE INDEX IF NOT EXISTS idx_audit_ledger_event_type ON audit_ledger(event_type);
CREATE INDEX IF NOT EXISTS idx_audit_ledger_timestamp ON audit_ledger(timestamp);
"""

ENTRY_COLUMNS = (
    "id", "timestamp", "occurred_at", "event_type", "actor", "summary", "details",
    "data_classification", "source_system",
)


def _entry_from_row(data: dict) -> AuditLogEntry:
    fields = dict(data)
    fields["details"] = json.loads(data["details"]) if data.get("details") else None
    return AuditLogEntry.from_dict(fields)


def _enum_or_default(enum_cls, value, default):
    try:
        return enum_cls(value)
    except ValueError:
        return default


def _unreadable_entry(data: dict) -> AuditLogEntry:
    """Stand-in for a row that no longer parses; raw columns go in the payload."""
    return AuditLogEntry(
        id=str(data["id"]),
        timestamp=str(data["timestamp"]),
        occurred_at=str(data.get("occurred_at") or data["timestamp"]),
        event_type=str(data.get("event_type") or ""),
        actor=_enum_or_default(Actor, data.get("actor"), Actor.SYSTEM),
        summary=str(data.get("summary") or ""),
        details=GenericDetails(payload={"unreadable_row": {
            column: data.get(column) for column in ENTRY_COLUMNS}}),
        data_classification=_enum_or_default(
            DataClassification, data.get("data_classification"), DataClassification.INTERNAL),
        source_system=_enum_or_default(
            SourceSystem, data.get("source_system"), SourceSystem.LOCAL),
    )


class SqliteLedgerStore:
    """Persist and reload an AuditLedger."""

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        self.db_path = get_ledger_db_path(db_path)
        conn = get_db_connection(self.db_path)
        try:
            conn.executescript(SCHEMA)
            conn.commit()
        finally:
            conn.close()

    def save(self, ledger: AuditLedger) -> int:
        """Insert records not yet stored. Returns the number inserted."""
        conn = get_db_connection(self.db_path, row_factory=False)
        try:
            c = conn.cursor()
            known = {row[0] for row in c.execute("SELECT id FROM audit_ledger")}
            session_id = get_correlation_id()
            inserted = 0
            for record in ledger.records():
                entry = record.entry
                if entry.id in known:
                    continue
                c.execute(
                    """INSERT INTO audit_ledger
                       (id, timestamp, occurred_at, event_type, actor, summary, details,
                        data_classification, source_system, content_hash, prev_hash,
                        chain_hash, session_id)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        entry.id,
                        entry.timestamp,
                        entry.occurred_at,
                        entry.event_type,
                        entry.actor.value,
                        entry.summary,
                        json.dumps(entry.details.to_dict()),
                        entry.data_classification.value,
                        entry.source_system.value,
                        record.content_hash,
                        record.prev_hash,
                        record.chain_hash,
                        session_id,
                    ),
                )
                inserted += 1
            conn.commit()
        finally:
            conn.close()
        if inserted:
            logger.info("Persisted %d ledger entr%s to %s",
                        inserted, "y" if inserted == 1 else "ies", self.db_path)
        return inserted

    def load(self, **ledger_kwargs) -> AuditLedger:
        """Rebuild the ledger in append order with stored hashes.

        A row whose columns no longer parse (an enum value or the details
        JSON edited by hand) is loaded as a stand-in entry carrying the raw
        columns, and its record is marked so chain verification reports it.
        """
        conn = get_db_connection(self.db_path)
        try:
            rows = conn.execute("SELECT * FROM audit_ledger ORDER BY seq").fetchall()
        finally:
            conn.close()
        records = []
        for row in rows:
            data = dict(row)
            load_error = None
            try:
                entry = _entry_from_row(data)
            except (KeyError, TypeError, ValueError) as exc:
                load_error = f"{type(exc).__name__}: {exc}"
                logger.error("Ledger row %s (%s) is unreadable: %s",
                             data.get("seq"), data.get("id"), load_error)
                entry = _unreadable_entry(data)
            records.append(LedgerRecord(
                entry=entry,
                content_hash=data["content_hash"],
                prev_hash=data["prev_hash"],
                chain_hash=data["chain_hash"],
                load_error=load_error,
            ))
        return AuditLedger.from_records(records, **ledger_kwargs)

    def count(self) -> int:
        conn = get_db_connection(self.db_path, row_factory=False)
        try:
            return conn.execute("SELECT COUNT(*) FROM audit_ledger").fetchone()[0]
        finally:
            conn.close()


def main():
    parser = argparse.ArgumentParser(description="Verify the persisted audit ledger")
    parser.add_argument("--db-path", help="Ledger database (default: ASSESSMENT_DB_PATH or config)")
    parser.add_argument("--json", action="store_true", help="JSON output")
    args = parser.parse_args()
    configure_logging()

    try:
        ledger = SqliteLedgerStore(args.db_path).load()
        result = ledger.verify_chain().to_dict()
    except sqlite3.Error as exc:
        result = {"error": str(exc)}

    if args.json:
        print(json.dumps(result, indent=2))
    elif "error" in result:
        print(f"ERROR: {result['error']}")
    else:
        status = "INTACT" if result["intact"] else "BROKEN"
        print(f"Ledger: {result['total']} entries, {result['verified']} verified "
              f"({result['score']}%) {status}")
        for entry_id in result["broken_entry_ids"]:
            print(f"  [X] {entry_id}")


if __name__ == "__main__":
    main()
