#!/usr/bin/env python3
# CUI // SP-CTI
"""Compliance Reporter: ledger + maturity + traceability into auditable reports.

Two outputs:
    snapshot()                   live metrics and an overall status
    export_compliance_package()  static, timestamped, self-contained export
                                 for an external auditor

Status policy:
    COMPLIANT       integrity == 100 and the ledger is non-empty
    WARNING         ledger empty, or 95 <= integrity < 100
    NON_COMPLIANT   integrity < 95

A broken hash chain is reported through status and ``integrity``; it is
never raised to callers of this module.

Usage:
    python -m assessment_engine.compliance.compliance_reporter --project-file p.json --snapshot --json
    python -m assessment_engine.compliance.compliance_reporter --project-file p.json \\
        --export --since 2026-01-01T00:00:00Z --output data/exports/package.json
"""

import argparse
import copy
import hashlib
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from assessment_engine.audit.audit_ledger import ChainVerification, LedgerFilter, canonical_json
from assessment_engine.audit.audit_query import classification_breakdown, source_breakdown
from assessment_engine.compat.config import get_project_root, load_config
from assessment_engine.compat.datetime_utils import to_iso, utc_now
from assessment_engine.maturity.maturity_scorer import assess
from assessment_engine.resilience.correlation import configure_logging
from assessment_engine.resilience.errors import AssessmentError
from assessment_engine.schemas.artifacts import LinkKind
from assessment_engine.schemas.compliance import (
    COMPLIANT,
    NON_COMPLIANT,
    WARNING,
    CompliancePackage,
    ComplianceSnapshot,
)

logger = logging.getLogger("assessment_engine.compliance.compliance_reporter")

WARNING_FLOOR = 95.0


def overall_status(integrity_score: float, total_entries: int) -> str:
    if total_entries == 0:
        return WARNING
    if integrity_score >= 100.0:
        return COMPLIANT
    if integrity_score >= WARNING_FLOOR:
        return WARNING
    return NON_COMPLIANT


def _recommendations(verification: ChainVerification) -> List[str]:
    recs = []
    if verification.total == 0:
        recs.append("No audit entries found - ensure audit logging is properly configured")
    if not verification.intact:
        recs.append("Investigate tampered audit entries")
        recs.append("Review access controls and authentication logs")
        recs.append("Restore the ledger database from a verified backup before further appends")
    return recs


class ComplianceReporter:
    """Read-only reporting over a ProjectSession.

    Args:
        session: The project session to report on.
        frameworks: Compliance framework labels (default: configured list).
        clock: Source of "now" for generated_at.
    """

    def __init__(self, session, frameworks: Optional[List[str]] = None,
                 clock: Callable = utc_now):
        self.session = session
        if frameworks is None:
            frameworks = load_config().get("compliance", {}).get("frameworks", [])
        self.frameworks = list(frameworks)
        self._clock = clock

    # -- live view --------------------------------------------------------

    def _metrics(self, entries, verification: ChainVerification) -> Dict[str, Any]:
        return {
            "total_audit_entries": len(entries),
            "integrity_score": verification.score,
            "verified_entries": verification.verified,
            "tampered_entries": len(verification.broken_entry_ids),
            # entries are newest first
            "last_audit_entry": entries[0].timestamp if entries else None,
            "compliance_frameworks": len(self.frameworks),
        }

    def _live(self, view) -> ComplianceSnapshot:
        entries, verification = view.history, view.verification
        return ComplianceSnapshot(
            metrics=self._metrics(entries, verification),
            frameworks=list(self.frameworks),
            classification_breakdown=classification_breakdown(entries),
            source_breakdown=source_breakdown(entries),
            overall_status=overall_status(verification.score, len(entries)),
        )

    def snapshot(self) -> ComplianceSnapshot:
        """Current compliance metrics. Never raises on a broken chain."""
        return self._live(self.session.audit_view())

    def integrity_report(self) -> Dict[str, Any]:
        verification = self.session.audit_view().verification
        status = overall_status(verification.score, verification.total)
        return {
            "report_id": f"integrity-{uuid.uuid4().hex[:12]}",
            "generated_at": to_iso(self._clock()),
            "compliance_status": status,
            "verification": verification.to_dict(),
            "recommendations": _recommendations(verification),
        }

    def traceability_matrix(self, snapshot=None) -> Dict[str, Any]:
        """Per-requirement linked tests, risks, CIs and issues."""
        snapshot = snapshot or self.session.snapshot()
        rows = []
        for req in snapshot.requirements:
            tests = snapshot.linked(req.ref, LinkKind.REQUIREMENT_TEST_CASE)
            rows.append({
                "requirement_id": req.id,
                "description": req.description,
                "status": req.status,
                "priority": req.priority,
                "test_cases": [{"id": t.id, "status": t.status} for t in tests],
                "risks": [n.node_id for n in snapshot.neighbors(req.ref, LinkKind.REQUIREMENT_RISK)],
                "configuration_items": [n.node_id for n in snapshot.neighbors(
                    req.ref, LinkKind.REQUIREMENT_CONFIGURATION_ITEM)],
                "issues": [int(n.node_id) for n in snapshot.neighbors(
                    req.ref, LinkKind.REQUIREMENT_ISSUE)],
                "covered": bool(tests),
                "verified": any(t.passed for t in tests),
            })
        total = len(rows)
        covered = sum(1 for r in rows if r["covered"])
        verified = sum(1 for r in rows if r["verified"])
        return {
            "requirements": rows,
            "summary": {
                "total_requirements": total,
                "covered": covered,
                "verified": verified,
                "coverage_pct": round(covered / total * 100, 1) if total else 0.0,
                "verified_pct": round(verified / total * 100, 1) if total else 0.0,
            },
        }

    # -- export -----------------------------------------------------------

    def export_compliance_package(
        self,
        since: Optional[str] = None,
        until: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CompliancePackage:
        """Bundle snapshot, ledger entries, maturity and traceability.

        Everything in the package is a deep copy; later commands do not
        change an exported package.
        """
        view = self.session.audit_view(LedgerFilter(since=since, until=until))
        project_snapshot = view.snapshot
        live = self._live(view)
        entries = view.selected
        verification = view.verification

        body = {
            "package_id": f"compliance-{uuid.uuid4().hex[:12]}",
            "generated_at": to_iso(self._clock()),
            "overall_status": live.overall_status,
            "metrics": copy.deepcopy(live.metrics),
            "frameworks": list(live.frameworks),
            "classification_breakdown": dict(live.classification_breakdown),
            "source_breakdown": dict(live.source_breakdown),
            "integrity": {**verification.to_dict(),
                          "recommendations": _recommendations(verification)},
            "ledger_entries": [e.to_dict() for e in entries],
            "maturity_assessment": assess(project_snapshot).to_dict(),
            "traceability": self.traceability_matrix(project_snapshot),
            "metadata": copy.deepcopy(metadata or {}),
            "period": {"since": since, "until": until},
        }
        package_hash = hashlib.sha256(canonical_json(body).encode("utf-8")).hexdigest()
        logger.info("Exported compliance package %s (%d entries, %s)",
                    body["package_id"], len(entries), live.overall_status)
        return CompliancePackage(package_hash=package_hash, **copy.deepcopy(body))


def verify_package_hash(package: Union[CompliancePackage, Dict[str, Any]]) -> bool:
    """Recompute a package's hash over everything except ``package_hash``."""
    data = package.to_dict() if isinstance(package, CompliancePackage) else dict(package)
    expected = data.pop("package_hash", "")
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest() == expected


def write_package(package: CompliancePackage, path: Optional[Union[str, Path]] = None) -> Path:
    """Write a package as JSON; default location is the configured export dir."""
    if path is None:
        out_dir = Path(load_config().get("export", {}).get("output_dir", "data/exports"))
        if not out_dir.is_absolute():
            out_dir = get_project_root() / out_dir
        path = out_dir / f"{package.package_id}.json"
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(package.to_dict(), f, indent=2)
    return path


def main():
    parser = argparse.ArgumentParser(description="Compliance reporting over a project ledger")
    parser.add_argument("--project-file", required=True, help="Project JSON export")
    parser.add_argument("--snapshot", action="store_true", help="Show live compliance metrics")
    parser.add_argument("--integrity", action="store_true", help="Show integrity report")
    parser.add_argument("--rtm", action="store_true", help="Show traceability matrix")
    parser.add_argument("--export", action="store_true", help="Export a compliance package")
    parser.add_argument("--since", help="ISO 8601 lower bound for exported entries")
    parser.add_argument("--until", help="ISO 8601 upper bound for exported entries")
    parser.add_argument("--output", help="Package output path")
    parser.add_argument("--requested-by", default="", help="Recorded in package metadata")
    parser.add_argument("--reason", default="", help="Export reason for package metadata")
    parser.add_argument("--json", action="store_true", help="JSON output")
    args = parser.parse_args()
    configure_logging()

    from assessment_engine.project.project_loader import load_project_file

    try:
        reporter = ComplianceReporter(load_project_file(args.project_file))
        if args.export:
            package = reporter.export_compliance_package(
                since=args.since, until=args.until,
                metadata={"requested_by": args.requested_by, "export_reason": args.reason},
            )
            path = write_package(package, args.output)
            result = {"package_id": package.package_id, "path": str(path),
                      "package_hash": package.package_hash,
                      "overall_status": package.overall_status}
        elif args.integrity:
            result = reporter.integrity_report()
        elif args.rtm:
            result = reporter.traceability_matrix()
        else:
            result = reporter.snapshot().to_dict()
    except (OSError, ValueError, AssessmentError) as exc:
        result = {"error": str(exc)}

    if args.json:
        print(json.dumps(result, indent=2))
    elif "error" in result:
        print(f"ERROR: {result['error']}")
    elif "overall_status" in result and "metrics" in result:
        print(f"Compliance Status: {result['overall_status']}")
        for key, value in result["metrics"].items():
            print(f"  {key.replace('_', ' ').title():25s} {value}")
    else:
        print(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()
