# [TEMPLATE: CUI // SP-CTI]
"""Tests for assessment_engine.project.ingestion: async external commit ingestion."""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from assessment_engine.project.ingestion import normalize_commit, run_ingestion
from assessment_engine.schemas.audit import SourceSystem


def _github_commit(sha="9f1c2ab", date="2026-02-27T16:45:00Z", message="Fix route cache\n\nDetails"):
    return {
        "sha": sha,
        "commit": {
            "author": {"name": "Dana Pilot", "date": date},
            "committer": {"name": "GitHub", "date": "2026-02-27T17:00:00Z"},
            "message": message,
        },
        "author": {"login": "dpilot"},
    }


def _fetcher(payloads):
    async def fetch():
        return payloads
    return fetch


class TestNormalizeCommit:
    """GitHub commit objects to external event dicts."""

    def test_github_payload(self):
        event = normalize_commit(_github_commit())
        assert event["external_id"] == "9f1c2ab"
        assert event["timestamp"] == "2026-02-27T16:45:00Z"
        assert event["author_name"] == "Dana Pilot"
        assert event["summary"] == "Fix route cache"
        assert event["raw_payload"]["sha"] == "9f1c2ab"

    def test_falls_back_to_committer_date_and_login(self):
        payload = _github_commit()
        payload["commit"]["author"] = {}
        event = normalize_commit(payload)
        assert event["timestamp"] == "2026-02-27T17:00:00Z"
        assert event["author_name"] == "dpilot"

    def test_external_event_shape_passes_through(self):
        event = {"externalId": "abc", "timestamp": "2026-01-01T00:00:00Z"}
        assert normalize_commit(event) is event

    def test_non_dict_payload_yields_empty_id(self):
        assert normalize_commit("oops")["external_id"] == ""


class TestRunIngestion:
    """run_ingestion() through the session write path."""

    def test_appends_fetched_commits(self, session):
        results = asyncio.run(run_ingestion(
            session, _fetcher([_github_commit("a1"), _github_commit("b2")])))
        assert [r.status for r in results] == ["appended", "appended"]
        entries = session.ledger_entries()
        assert [e.event_type for e in entries] == ["VCS_COMMIT", "VCS_COMMIT"]
        assert entries[0].source_system == SourceSystem.EXTERNAL_VCS

    def test_rerun_reports_duplicates(self, session):
        fetch = _fetcher([_github_commit()])
        asyncio.run(run_ingestion(session, fetch))
        results = asyncio.run(run_ingestion(session, fetch))
        assert results[0].status == "duplicate"
        assert len(session.ledger_entries()) == 1

    def test_malformed_commit_rejected_others_kept(self, session):
        results = asyncio.run(run_ingestion(
            session, _fetcher([_github_commit(sha=""), _github_commit("c3")])))
        assert [r.status for r in results] == ["rejected", "appended"]

    def test_unknown_source_system_rejects_batch(self, session, caplog):
        with caplog.at_level("WARNING", logger="assessment_engine.project.ingestion"):
            results = asyncio.run(run_ingestion(
                session, _fetcher([_github_commit()]), source_system="Fax"))
        assert results == []
        assert session.ledger_entries() == ()
        assert "batch rejected" in caplog.text

    def test_cancel_before_fetch_completes_submits_nothing(self, session):
        async def scenario():
            started = asyncio.Event()

            async def fetch():
                started.set()
                await asyncio.sleep(3600)
                return [_github_commit()]

            task = asyncio.create_task(run_ingestion(session, fetch))
            await started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())
        assert session.ledger_entries() == ()
