#!/usr/bin/env python3
# CUI // SP-CTI
"""Shared schema models for the assessment engine.

Stdlib dataclass models shared by the artifact store, link graph, maturity
scorer, audit ledger and compliance reporter. Each exposes ``to_dict()`` so
results serialize to plain JSON.
"""

from assessment_engine.schemas.artifacts import (
    ARTIFACT_TYPES,
    Author,
    ConfigurationItem,
    Document,
    DocumentSection,
    Issue,
    Link,
    LinkKind,
    NodeRef,
    NodeType,
    Requirement,
    Risk,
    TestCase,
)
from assessment_engine.schemas.audit import (
    Actor,
    ArtifactChangeDetails,
    AuditEntryDraft,
    AuditLogEntry,
    DataClassification,
    ExternalEvent,
    GenericDetails,
    IngestResult,
    IssueSyncDetails,
    LedgerRecord,
    LinkChangeDetails,
    SourceSystem,
    SystemDetails,
    VcsCommitDetails,
    details_from_dict,
)
from assessment_engine.schemas.compliance import CompliancePackage, ComplianceSnapshot
from assessment_engine.schemas.maturity import MaturityAssessment, ProcessAreaStatus

__all__ = [
    "ARTIFACT_TYPES",
    "Author",
    "ConfigurationItem",
    "Document",
    "DocumentSection",
    "Issue",
    "Link",
    "LinkKind",
    "NodeRef",
    "NodeType",
    "Requirement",
    "Risk",
    "TestCase",
    "Actor",
    "ArtifactChangeDetails",
    "AuditEntryDraft",
    "AuditLogEntry",
    "DataClassification",
    "ExternalEvent",
    "GenericDetails",
    "IngestResult",
    "IssueSyncDetails",
    "LedgerRecord",
    "LinkChangeDetails",
    "SourceSystem",
    "SystemDetails",
    "VcsCommitDetails",
    "details_from_dict",
    "CompliancePackage",
    "ComplianceSnapshot",
    "MaturityAssessment",
    "ProcessAreaStatus",
]
