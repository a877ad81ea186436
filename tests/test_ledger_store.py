# [TEMPLATE: CUI // SP-CTI]
"""Tests for assessment_engine.audit.ledger_store: append-only SQLite persistence."""

import json
import sqlite3
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from assessment_engine.audit.ledger_store import SqliteLedgerStore
from assessment_engine.schemas.audit import VcsCommitDetails


@pytest.fixture
def populated(seeded_session):
    """Seeded session plus one ingested commit."""
    seeded_session.ingest_external([{"external_id": "abc123",
                                     "timestamp": "2026-02-28T10:00:00Z",
                                     "author_name": "dev", "summary": "Fix login"}])
    return seeded_session


class TestSave:
    """save() inserts only unseen entries."""

    def test_creates_schema(self, db_path):
        SqliteLedgerStore(db_path)
        conn = sqlite3.connect(str(db_path))
        tables = {r[0] for r in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'")}
        conn.close()
        assert "audit_ledger" in tables

    def test_save_inserts_every_entry(self, populated, db_path):
        store = SqliteLedgerStore(db_path)
        assert store.save(populated.ledger) == 4
        assert store.count() == 4

    def test_second_save_inserts_only_new(self, populated, db_path):
        store = SqliteLedgerStore(db_path)
        store.save(populated.ledger)
        populated.create("risk", {"description": "Outage"})
        assert store.save(populated.ledger) == 1
        assert store.save(populated.ledger) == 0
        assert store.count() == 5


class TestLoad:
    """load() rebuilds the ledger with stored hashes."""

    def test_round_trip_preserves_entries_and_chain(self, populated, db_path):
        store = SqliteLedgerStore(db_path)
        store.save(populated.ledger)
        loaded = store.load()
        assert loaded.entries() == populated.ledger.entries()
        assert loaded.tail_hash == populated.ledger.tail_hash
        assert loaded.verify_chain().intact

    def test_details_variants_survive(self, populated, db_path):
        store = SqliteLedgerStore(db_path)
        store.save(populated.ledger)
        commit = store.load().entries()[-1]
        assert isinstance(commit.details, VcsCommitDetails)
        assert commit.details.external_id == "abc123"

    def test_loaded_ledger_keeps_deduplicating(self, populated, db_path):
        store = SqliteLedgerStore(db_path)
        store.save(populated.ledger)
        loaded = store.load()
        results = loaded.ingest_external([{"external_id": "abc123",
                                           "timestamp": "2026-02-28T10:00:00Z"}])
        assert results[0].status == "duplicate"

    def test_out_of_band_edit_is_detected(self, populated, db_path):
        store = SqliteLedgerStore(db_path)
        store.save(populated.ledger)
        conn = sqlite3.connect(str(db_path))
        conn.execute("UPDATE audit_ledger SET summary = 'nothing happened' WHERE seq = 2")
        conn.commit()
        conn.close()
        result = store.load().verify_chain()
        assert not result.intact
        assert result.verified == 3
        assert result.score == 75.0

    def test_empty_database(self, db_path):
        loaded = SqliteLedgerStore(db_path).load()
        assert len(loaded) == 0
        assert loaded.integrity_score() == 100.0


# ---------------------------------------------------------------------------
# Rows edited into an unparseable state
# ---------------------------------------------------------------------------
def _edit_row(db_path, statement):
    conn = sqlite3.connect(str(db_path))
    conn.execute(statement)
    conn.commit()
    conn.close()


class TestUnreadableRows:
    """Rows whose enum or details columns no longer parse count as broken."""

    @pytest.mark.parametrize("statement", [
        "UPDATE audit_ledger SET actor = 'Mallory' WHERE seq = 2",
        "UPDATE audit_ledger SET data_classification = 'TOP SECRET' WHERE seq = 2",
        "UPDATE audit_ledger SET source_system = 'Fax' WHERE seq = 2",
        "UPDATE audit_ledger SET details = '{not json' WHERE seq = 2",
        "UPDATE audit_ledger SET details = '{\"kind\": \"link_change\", \"links\": [5]}' "
        "WHERE seq = 2",
    ])
    def test_edited_row_is_reported_not_raised(self, populated, db_path, statement):
        store = SqliteLedgerStore(db_path)
        store.save(populated.ledger)
        tampered_id = populated.ledger.entries()[1].id
        _edit_row(db_path, statement)
        loaded = store.load()
        assert len(loaded) == 4
        result = loaded.verify_chain()
        assert result.broken_entry_ids == (tampered_id,)
        assert result.score == 75.0

    def test_stand_in_entry_keeps_raw_columns(self, populated, db_path, caplog):
        store = SqliteLedgerStore(db_path)
        store.save(populated.ledger)
        _edit_row(db_path, "UPDATE audit_ledger SET actor = 'Mallory' WHERE seq = 2")
        with caplog.at_level("ERROR", logger="assessment_engine.audit.ledger_store"):
            loaded = store.load()
        record = loaded.records()[1]
        assert record.load_error.startswith("ValueError")
        assert record.entry.details.payload["unreadable_row"]["actor"] == "Mallory"
        assert "unreadable" in caplog.text
        # rows after the damaged one still chain from its stored hash
        assert loaded.records()[2].prev_hash == record.chain_hash

    def test_cli_reports_broken_row(self, populated, db_path, monkeypatch, capsys):
        from assessment_engine.audit import ledger_store

        SqliteLedgerStore(db_path).save(populated.ledger)
        _edit_row(db_path, "UPDATE audit_ledger SET details = '{not json' WHERE seq = 3")
        monkeypatch.setattr(sys, "argv", ["assessment-ledger", "--db-path", str(db_path),
                                          "--json"])
        ledger_store.main()
        result = json.loads(capsys.readouterr().out)
        assert result["intact"] is False
        assert result["broken_entry_ids"] == [populated.ledger.entries()[2].id]
