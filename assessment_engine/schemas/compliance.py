#!/usr/bin/env python3
# CUI // SP-CTI
"""Compliance reporting schema models.

ComplianceSnapshot is the live dashboard view. CompliancePackage is the
static, timestamped export handed to external auditors; every value in it is
a plain (deep-copied) JSON-compatible structure.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

COMPLIANT = "COMPLIANT"
WARNING = "WARNING"
NON_COMPLIANT = "NON_COMPLIANT"


@dataclass(frozen=True)
class ComplianceSnapshot:
    """Point-in-time compliance metrics derived from the ledger."""

    metrics: Dict[str, Any]
    frameworks: List[str]
    classification_breakdown: Dict[str, int]
    source_breakdown: Dict[str, int]
    overall_status: str  # COMPLIANT, WARNING, NON_COMPLIANT

    def to_dict(self) -> dict:
        return {
            "metrics": dict(self.metrics),
            "frameworks": list(self.frameworks),
            "classification_breakdown": dict(self.classification_breakdown),
            "source_breakdown": dict(self.source_breakdown),
            "overall_status": self.overall_status,
        }


@dataclass(frozen=True)
class CompliancePackage:
    """Self-contained compliance export."""

    package_id: str
    generated_at: str
    overall_status: str
    metrics: Dict[str, Any]
    frameworks: List[str]
    classification_breakdown: Dict[str, int]
    source_breakdown: Dict[str, int]
    integrity: Dict[str, Any]
    ledger_entries: List[Dict[str, Any]]
    maturity_assessment: Dict[str, Any]
    traceability: Dict[str, Any]
    metadata: Dict[str, Any] = field(default_factory=dict)
    period: Dict[str, Optional[str]] = field(default_factory=dict)
    package_hash: str = ""

    def to_dict(self) -> dict:
        return {
            "package_id": self.package_id,
            "generated_at": self.generated_at,
            "overall_status": self.overall_status,
            "metrics": self.metrics,
            "frameworks": self.frameworks,
            "classification_breakdown": self.classification_breakdown,
            "source_breakdown": self.source_breakdown,
            "integrity": self.integrity,
            "ledger_entries": self.ledger_entries,
            "maturity_assessment": self.maturity_assessment,
            "traceability": self.traceability,
            "metadata": self.metadata,
            "period": self.period,
            "package_hash": self.package_hash,
        }
