# [TEMPLATE: CUI // SP-CTI]
"""Tests for assessment_engine.audit.audit_query: event type parsing and breakdowns."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from assessment_engine.audit.audit_query import (
    actor_breakdown,
    audit_report,
    build_filter,
    category_breakdown,
    classification_breakdown,
    domain_breakdown,
    event_category,
    event_severity,
    format_entries,
    non_conforming,
    parse_event_type,
    severity_breakdown,
    source_breakdown,
    timeline,
)
from assessment_engine.schemas.audit import (
    Actor,
    AuditEntryDraft,
    AuditLogEntry,
    GenericDetails,
    SourceSystem,
)


class TestParseEventType:
    """<DOMAIN>_<VERB> parsing."""

    @pytest.mark.parametrize("event_type,domain,verb", [
        ("REQUIREMENT_CREATE", "REQUIREMENT", "CREATE"),
        ("TEST_CASE_UPDATE", "TEST_CASE", "UPDATE"),
        ("CONFIGURATION_ITEM_DELETE", "CONFIGURATION_ITEM", "DELETE"),
        ("SYSTEM_SESSION_OPEN", "SYSTEM", "SESSION_OPEN"),
        ("VCS_COMMIT", "VCS", "COMMIT"),
    ])
    def test_split_on_last_underscore(self, event_type, domain, verb):
        info = parse_event_type(event_type)
        assert (info.domain, info.verb) == (domain, verb)

    @pytest.mark.parametrize("event_type", [
        "REQUIREMENT_CREATE", "LINK_DELETE", "SYSTEM_IMPORT", "SYSTEM_SESSION_OPEN", "VCS_COMMIT",
    ])
    def test_conforming(self, event_type):
        assert parse_event_type(event_type).conforming

    @pytest.mark.parametrize("event_type", [
        "REQUIREMENT_APPROVE", "requirement_create", "CREATE", "", "LINK__CREATE",
    ])
    def test_non_conforming_still_parsed(self, event_type):
        info = parse_event_type(event_type)
        assert not info.conforming
        assert info.event_type == event_type

    def test_non_conforming_domain_and_verb(self):
        info = parse_event_type("REQUIREMENT_APPROVE")
        assert (info.domain, info.verb) == ("REQUIREMENT", "APPROVE")


class TestBreakdowns:
    """Counts over ledger entries."""

    @pytest.fixture
    def entries(self, ledger):
        for event_type, actor in (("REQUIREMENT_CREATE", Actor.USER),
                                  ("REQUIREMENT_UPDATE", Actor.AI),
                                  ("LINK_CREATE", Actor.USER),
                                  ("REQUIREMENT_APPROVE", Actor.USER)):
            ledger.append(AuditEntryDraft(event_type=event_type, actor=actor,
                                          summary=event_type.lower(),
                                          occurred_at="2026-03-01T08:00:00Z"))
        ledger.ingest_external([{"external_id": "abc", "timestamp": "2026-03-01T07:00:00Z"}])
        return ledger.query()

    def test_classification_breakdown_lists_every_level(self, entries):
        counts = classification_breakdown(entries)
        assert counts == {"PUBLIC": 0, "INTERNAL": 5, "CONFIDENTIAL": 0, "RESTRICTED": 0}

    def test_source_breakdown(self, entries):
        counts = source_breakdown(entries)
        assert counts[SourceSystem.LOCAL.value] == 4
        assert counts[SourceSystem.EXTERNAL_VCS.value] == 1
        assert counts[SourceSystem.MANUAL.value] == 0

    def test_actor_breakdown(self, entries):
        assert actor_breakdown(entries) == {"User": 3, "AI": 1, "System": 1}

    def test_domain_breakdown(self, entries):
        assert domain_breakdown(entries) == {"REQUIREMENT": 3, "LINK": 1, "VCS": 1}

    def test_non_conforming(self, entries):
        assert [e.event_type for e in non_conforming(entries)] == ["REQUIREMENT_APPROVE"]

    def test_format_flags_non_conforming(self, entries):
        text = format_entries(entries)
        assert "(REQUIREMENT_APPROVE) [non-conforming]" in text
        assert "(LINK_CREATE) User" in text

    def test_empty_breakdown_still_has_keys(self):
        assert classification_breakdown([])["INTERNAL"] == 0

    def test_category_breakdown(self, entries):
        assert category_breakdown(entries) == {
            "user_actions": 3, "ai_actions": 1, "system_actions": 0,
            "security_events": 0, "integration_events": 1,
        }

    def test_severity_breakdown_defaults_to_info(self, entries):
        assert severity_breakdown(entries) == {"info": 5, "warning": 0, "error": 0,
                                               "critical": 0}


def _entry(event_type, timestamp="2026-03-01T09:00:00+00:00", actor=Actor.USER,
           source=SourceSystem.LOCAL):
    return AuditLogEntry(id=f"{event_type}-{timestamp}", timestamp=timestamp,
                         occurred_at=timestamp, event_type=event_type, actor=actor,
                         summary=event_type.lower(), details=GenericDetails(),
                         source_system=source)


class TestCategoriesAndSeverity:
    """event_category(), event_severity(), timeline() and audit_report()."""

    @pytest.mark.parametrize("entry,category", [
        (_entry("REQUIREMENT_CREATE"), "user_actions"),
        (_entry("TEST_CASE_UPDATE", actor=Actor.AI), "ai_actions"),
        (_entry("SYSTEM_IMPORT", actor=Actor.SYSTEM), "system_actions"),
        (_entry("RISK_UPDATE", actor=Actor.SYSTEM), "system_actions"),
        (_entry("SYSTEM_SECURITY_ALERT", actor=Actor.SYSTEM), "security_events"),
        (_entry("USER_LOGIN_FAILED"), "security_events"),
        (_entry("ISSUE_UPDATE", actor=Actor.SYSTEM), "integration_events"),
        (_entry("VCS_COMMIT", actor=Actor.SYSTEM, source=SourceSystem.EXTERNAL_VCS),
         "integration_events"),
        (_entry("REQUIREMENT_CREATE", source=SourceSystem.THIRD_PARTY), "integration_events"),
    ])
    def test_event_category(self, entry, category):
        assert event_category(entry) == category

    @pytest.mark.parametrize("event_type,severity", [
        ("SECURITY_ALERT", "critical"),
        ("SYSTEM_DATA_BREACH", "critical"),
        ("USER_LOGIN_FAILED", "error"),
        ("SYSTEM_CONFIG_CHANGE", "warning"),
        ("REQUIREMENT_DELETE", "info"),
        ("SYSTEM_ALERT", "info"),
    ])
    def test_event_severity(self, event_type, severity):
        assert event_severity(_entry(event_type)) == severity

    def test_timeline_groups_by_day(self):
        entries = [
            _entry("REQUIREMENT_CREATE", "2026-03-02T10:00:00+00:00"),
            _entry("SYSTEM_SECURITY_ALERT", "2026-03-01T23:59:00+00:00"),
            _entry("LINK_CREATE", "2026-03-01T08:00:00+00:00"),
        ]
        assert timeline(entries) == [
            {"date": "2026-03-01", "event_count": 2, "critical_count": 1},
            {"date": "2026-03-02", "event_count": 1, "critical_count": 0},
        ]

    def test_audit_report(self):
        entries = [
            _entry("SYSTEM_SECURITY_ALERT", actor=Actor.SYSTEM),
            _entry("USER_LOGIN_FAILED"),
            _entry("REQUIREMENT_CREATE"),
        ]
        report = audit_report(entries)
        summary = report["summary"]
        assert summary["total_events"] == 3
        assert summary["critical_events"] == 1
        assert summary["security_events"] == 2
        assert summary["event_type_breakdown"]["REQUIREMENT_CREATE"] == 1
        assert summary["actor_breakdown"] == {"User": 2, "AI": 0, "System": 1}
        assert [e["event_type"] for e in report["top_events"]] == \
            ["SYSTEM_SECURITY_ALERT", "USER_LOGIN_FAILED"]
        assert report["timeline"] == [{"date": "2026-03-01", "event_count": 3,
                                       "critical_count": 1}]

    def test_empty_report(self):
        report = audit_report([])
        assert report["summary"]["total_events"] == 0
        assert report["summary"]["category_breakdown"]["user_actions"] == 0
        assert report["timeline"] == []


class TestBuildFilter:
    """CLI argument mapping."""

    def test_builds_enums(self):
        flt = build_filter(event_type="LINK_CREATE", actor="AI", source="Manual", limit=5)
        assert flt.event_types == ("LINK_CREATE",)
        assert flt.actors == (Actor.AI,)
        assert flt.source_systems == (SourceSystem.MANUAL,)
        assert flt.limit == 5

    def test_empty_arguments_match_everything(self):
        flt = build_filter()
        assert flt.event_types == () and flt.actors == () and flt.since is None
