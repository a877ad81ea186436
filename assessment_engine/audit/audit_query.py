#!/usr/bin/env python3
# CUI // SP-CTI
"""Query and summarize the audit ledger. Read-only operations only."""

import argparse
import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from assessment_engine.audit.audit_ledger import VCS_COMMIT_EVENT, LedgerFilter
from assessment_engine.audit.ledger_store import SqliteLedgerStore
from assessment_engine.resilience.correlation import configure_logging
from assessment_engine.schemas.audit import (
    Actor,
    AuditLogEntry,
    DataClassification,
    SourceSystem,
)

CRUD_VERBS = ("CREATE", "UPDATE", "DELETE")
SYSTEM_DOMAIN = "SYSTEM"
KNOWN_EXTERNAL_EVENTS = (VCS_COMMIT_EVENT,)

_EVENT_TYPE_RE = re.compile(r"^[A-Z][A-Z0-9]*(?:_[A-Z0-9]+)+$")


@dataclass(frozen=True)
class EventTypeInfo:
    """``<DOMAIN>_<VERB>`` split of an event type."""

    event_type: str
    domain: str
    verb: str
    conforming: bool

    def to_dict(self) -> dict:
        return {"event_type": self.event_type, "domain": self.domain,
                "verb": self.verb, "conforming": self.conforming}


def parse_event_type(event_type: str) -> EventTypeInfo:
    """Split an event type into domain and verb.

    Conforming types are ``<DOMAIN>_{CREATE,UPDATE,DELETE}``, any
    ``SYSTEM_<VERB>``, or a known external type such as VCS_COMMIT. Anything
    else is still parsed on a best-effort basis and flagged non-conforming
    so it can be displayed.
    """
    text = (event_type or "").strip()
    domain, sep, verb = text.rpartition("_")
    if not sep:
        return EventTypeInfo(text, text, "", False)
    if text in KNOWN_EXTERNAL_EVENTS:
        return EventTypeInfo(text, domain, verb, True)
    if not _EVENT_TYPE_RE.match(text):
        return EventTypeInfo(text, domain, verb, False)
    if text.startswith(SYSTEM_DOMAIN + "_"):
        # lifecycle verbs may themselves contain underscores (SYSTEM_SESSION_OPEN)
        return EventTypeInfo(text, SYSTEM_DOMAIN, text[len(SYSTEM_DOMAIN) + 1:], True)
    return EventTypeInfo(text, domain, verb, verb in CRUD_VERBS)


def _breakdown(values: Iterable[str], keys: Iterable[str]) -> Dict[str, int]:
    counts = {key: 0 for key in keys}
    for value in values:
        counts[value] = counts.get(value, 0) + 1
    return counts


def classification_breakdown(entries: Iterable[AuditLogEntry]) -> Dict[str, int]:
    """Entry count per data classification; every classification is present."""
    return _breakdown((e.data_classification.value for e in entries),
                      (c.value for c in DataClassification))


def source_breakdown(entries: Iterable[AuditLogEntry]) -> Dict[str, int]:
    """Entry count per source system; every source system is present."""
    return _breakdown((e.source_system.value for e in entries),
                      (s.value for s in SourceSystem))


def actor_breakdown(entries: Iterable[AuditLogEntry]) -> Dict[str, int]:
    return _breakdown((e.actor.value for e in entries), (a.value for a in Actor))


def domain_breakdown(entries: Iterable[AuditLogEntry]) -> Dict[str, int]:
    return _breakdown((parse_event_type(e.event_type).domain for e in entries), ())


# ---------------------------------------------------------------------------
# Categories and severity
# ---------------------------------------------------------------------------
USER_ACTIONS = "user_actions"
AI_ACTIONS = "ai_actions"
SYSTEM_ACTIONS = "system_actions"
SECURITY_EVENTS = "security_events"
INTEGRATION_EVENTS = "integration_events"
EVENT_CATEGORIES = (USER_ACTIONS, AI_ACTIONS, SYSTEM_ACTIONS, SECURITY_EVENTS,
                    INTEGRATION_EVENTS)

SECURITY_MARKERS = ("SECURITY", "LOGIN", "PERMISSION", "ACCESS")
INTEGRATION_DOMAINS = ("VCS", "ISSUE")

SEVERITIES = ("info", "warning", "error", "critical")
# Matched against the whole event type or its trailing words
SEVERITY_EVENTS = {
    "critical": ("SECURITY_ALERT", "DATA_BREACH", "SYSTEM_FAILURE"),
    "error": ("LOGIN_FAILED", "API_ERROR", "VALIDATION_FAILED"),
    "warning": ("PERMISSION_CHANGE", "CONFIG_CHANGE", "RATE_LIMIT"),
}


def event_category(entry: AuditLogEntry) -> str:
    """Bucket an entry by who or what produced it.

    Security-flavored event types win, then anything that arrived from an
    external system, then lifecycle events, then the actor decides.
    """
    info = parse_event_type(entry.event_type)
    words = info.event_type.split("_")
    if any(marker in words for marker in SECURITY_MARKERS):
        return SECURITY_EVENTS
    if entry.source_system != SourceSystem.LOCAL or info.domain in INTEGRATION_DOMAINS:
        return INTEGRATION_EVENTS
    if info.domain == SYSTEM_DOMAIN or entry.actor == Actor.SYSTEM:
        return SYSTEM_ACTIONS
    if entry.actor == Actor.AI:
        return AI_ACTIONS
    return USER_ACTIONS


def event_severity(entry: AuditLogEntry) -> str:
    event_type = (entry.event_type or "").strip()
    for severity in ("critical", "error", "warning"):
        for marker in SEVERITY_EVENTS[severity]:
            if event_type == marker or event_type.endswith("_" + marker):
                return severity
    return "info"


def category_breakdown(entries: Iterable[AuditLogEntry]) -> Dict[str, int]:
    return _breakdown((event_category(e) for e in entries), EVENT_CATEGORIES)


def severity_breakdown(entries: Iterable[AuditLogEntry]) -> Dict[str, int]:
    return _breakdown((event_severity(e) for e in entries), SEVERITIES)


def timeline(entries: Iterable[AuditLogEntry]) -> List[Dict[str, Any]]:
    """Per-day entry and critical counts, oldest day first."""
    days: Dict[str, Dict[str, Any]] = {}
    for e in entries:
        date = e.timestamp.split("T")[0]
        day = days.setdefault(date, {"date": date, "event_count": 0, "critical_count": 0})
        day["event_count"] += 1
        if event_severity(e) == "critical":
            day["critical_count"] += 1
    return [days[date] for date in sorted(days)]


def audit_report(entries: Sequence[AuditLogEntry], top: int = 10) -> Dict[str, Any]:
    """Summary of a set of entries: counts by actor, type, category and severity."""
    categories = category_breakdown(entries)
    severities = severity_breakdown(entries)
    notable = [e for e in entries if event_severity(e) in ("critical", "error")]
    return {
        "summary": {
            "total_events": len(entries),
            "actor_breakdown": actor_breakdown(entries),
            "event_type_breakdown": _breakdown((e.event_type for e in entries), ()),
            "category_breakdown": categories,
            "severity_breakdown": severities,
            "critical_events": severities["critical"],
            "security_events": categories[SECURITY_EVENTS],
        },
        "timeline": timeline(entries),
        "top_events": [e.to_dict() for e in notable[:top]],
    }


def non_conforming(entries: Iterable[AuditLogEntry]) -> list:
    """Entries whose event type does not follow the naming convention."""
    return [e for e in entries if not parse_event_type(e.event_type).conforming]


def format_entries(entries: Iterable[AuditLogEntry]) -> str:
    """Format ledger entries for display."""
    lines = []
    for e in entries:
        info = parse_event_type(e.event_type)
        flag = "" if info.conforming else " [non-conforming]"
        lines.append(f"[{e.timestamp}] ({e.event_type}){flag} {e.actor.value}: {e.summary}")
        lines.append(f"  Source: {e.source_system.value}  Classification: "
                     f"{e.data_classification.value}  Occurred: {e.occurred_at}")
    return "\n".join(lines)


def build_filter(
    event_type: Optional[str] = None,
    actor: Optional[str] = None,
    source: Optional[str] = None,
    classification: Optional[str] = None,
    since: Optional[str] = None,
    until: Optional[str] = None,
    text: Optional[str] = None,
    limit: Optional[int] = None,
) -> LedgerFilter:
    return LedgerFilter(
        event_types=(event_type,) if event_type else (),
        actors=(Actor(actor),) if actor else (),
        source_systems=(SourceSystem(source),) if source else (),
        classifications=(DataClassification(classification),) if classification else (),
        since=since,
        until=until,
        text=text,
        limit=limit,
    )


def main():
    parser = argparse.ArgumentParser(description="Query the audit ledger")
    parser.add_argument("--db-path", help="Ledger database (default: ASSESSMENT_DB_PATH or config)")
    parser.add_argument("--type", help="Filter by event type")
    parser.add_argument("--actor", choices=[a.value for a in Actor], help="Filter by actor")
    parser.add_argument("--source", choices=[s.value for s in SourceSystem],
                        help="Filter by source system")
    parser.add_argument("--classification", choices=[c.value for c in DataClassification],
                        help="Filter by data classification")
    parser.add_argument("--since", help="ISO 8601 lower bound on recorded timestamp")
    parser.add_argument("--until", help="ISO 8601 upper bound on recorded timestamp")
    parser.add_argument("--text", help="Substring match on event type and summary")
    parser.add_argument("--limit", type=int, default=50, help="Max results")
    parser.add_argument("--breakdown", action="store_true", help="Show counts instead of entries")
    parser.add_argument("--format", choices=["text", "json"], default="text")
    args = parser.parse_args()
    configure_logging()

    ledger = SqliteLedgerStore(args.db_path).load()
    entries = ledger.query(build_filter(
        event_type=args.type, actor=args.actor, source=args.source,
        classification=args.classification, since=args.since, until=args.until,
        text=args.text, limit=args.limit,
    ))

    if args.breakdown:
        result = {
            "total": len(entries),
            "classification_breakdown": classification_breakdown(entries),
            "source_breakdown": source_breakdown(entries),
            "actor_breakdown": actor_breakdown(entries),
            "domain_breakdown": domain_breakdown(entries),
            "category_breakdown": category_breakdown(entries),
            "severity_breakdown": severity_breakdown(entries),
            "timeline": timeline(entries),
            "non_conforming": len(non_conforming(entries)),
        }
        if args.format == "json":
            print(json.dumps(result, indent=2))
        else:
            print(f"Entries: {result['total']}")
            for section in ("classification_breakdown", "source_breakdown", "actor_breakdown",
                            "category_breakdown", "severity_breakdown"):
                print(f"\n{section.replace('_', ' ').title()}:")
                for key, count in result[section].items():
                    print(f"  {key:15s} {count}")
        return

    if args.format == "json":
        print(json.dumps([e.to_dict() for e in entries], indent=2))
    else:
        print(format_entries(entries) or "No entries.")


if __name__ == "__main__":
    main()
