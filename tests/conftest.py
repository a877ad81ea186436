#!/usr/bin/env python3
# CUI // SP-CTI
"""Shared pytest fixtures for the assessment engine test suite.

Centralizes the deterministic clock, empty and seeded project sessions,
a temporary ledger database path and a sample project JSON document.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Ensure project root is on sys.path
BASE_DIR = Path(__file__).resolve().parent.parent
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from assessment_engine.audit.audit_ledger import AuditLedger  # noqa: E402
from assessment_engine.project.project_session import ProjectSession  # noqa: E402

START = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class StepClock:
    """Deterministic clock: each call returns a time one second later."""

    def __init__(self, start: datetime = START, step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value

    def rewind(self, delta: timedelta):
        self.current = self.current - delta


@pytest.fixture
def clock():
    """Deterministic clock starting 2026-03-01T09:00:00Z."""
    return StepClock()


@pytest.fixture
def ledger(clock):
    """Empty in-memory ledger on the deterministic clock."""
    return AuditLedger(clock=clock)


@pytest.fixture
def session(clock):
    """Empty project session with its own ledger."""
    return ProjectSession(ledger=AuditLedger(clock=clock), clock=clock)


@pytest.fixture
def seeded_session(session):
    """Session with REQ-001 linked to a passing TC-001."""
    session.create("requirement", {"id": "REQ-001", "description": "User can log in"})
    session.create("test_case", {"id": "TC-001", "description": "Login succeeds",
                                 "status": "Passed"})
    session.link("requirement:REQ-001", "test_case:TC-001")
    return session


@pytest.fixture
def db_path(tmp_path):
    """Path for a temporary ledger database (created on first use)."""
    return tmp_path / "ledger.db"


@pytest.fixture
def sample_project():
    """Project JSON in the dashboard export format."""
    return {
        "projectName": "Flight Planner",
        "requirements": [
            {"id": "REQ-001", "description": "Plan a route between two airports",
             "status": "Verified", "priority": "High", "createdBy": "User",
             "updatedBy": "System"},
            {"id": "REQ-002", "description": "Export the route as PDF",
             "status": "Active", "priority": "Medium"},
        ],
        "testCases": [
            {"id": "TC-001", "description": "Route is planned", "status": "Passed",
             "gherkin": "Given two airports\nWhen I plan\nThen a route is shown"},
            {"id": "TC-002", "description": "PDF is exported", "status": "Not Run"},
        ],
        "risks": [
            {"id": "RISK-001", "description": "Map provider outage",
             "probability": "Medium", "impact": "High", "status": "Open"},
        ],
        "configurationItems": [
            {"id": "CI-001", "name": "route-service", "type": "Software Component",
             "version": "1.2.0", "status": "Baseline"},
        ],
        "issues": [
            {"number": 7, "title": "Route ignores airspace", "state": "open",
             "html_url": "https://tracker.example/issues/7"},
        ],
        "links": {
            "REQ-001": {"tests": ["TC-001"], "risks": ["RISK-001"],
                        "cis": ["CI-001"], "issues": [7]},
            "REQ-002": {"tests": ["TC-002", "TC-404"]},
        },
        "riskCiLinks": {"RISK-001": ["CI-001"]},
        "issueCiLinks": {"7": ["CI-001"]},
        "documents": {
            "DOC-1": {
                "title": "Project Plan",
                "content": [
                    {"id": "s1", "title": "Scope",
                     "description": "Route planning for general aviation pilots."},
                    {"id": "s2", "title": "Schedule", "description": "TBD"},
                ],
            },
        },
    }
