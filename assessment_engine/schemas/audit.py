#!/usr/bin/env python3
# CUI // SP-CTI
"""Audit ledger schema models.

AuditLogEntry is immutable once appended (append-only ledger). Its
``details`` payload is a tagged union: each variant carries a ``kind``
discriminator and ``details_from_dict`` falls back to ``GenericDetails`` for
anything it does not recognise, so consumers can branch on type instead of
probing dict keys.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple, Union

from assessment_engine.schemas.artifacts import Author


class Actor(str, Enum):
    """Closed set of ledger writers."""

    USER = "User"
    AI = "AI"
    SYSTEM = "System"

    @classmethod
    def from_author(cls, author: Union[Author, str]) -> "Actor":
        """Map an artifact author onto a ledger actor (Automation -> System)."""
        value = author.value if isinstance(author, Author) else str(author)
        if value == Author.AUTOMATION.value:
            return cls.SYSTEM
        return cls(value)


class DataClassification(str, Enum):
    PUBLIC = "PUBLIC"
    INTERNAL = "INTERNAL"
    CONFIDENTIAL = "CONFIDENTIAL"
    RESTRICTED = "RESTRICTED"


class SourceSystem(str, Enum):
    LOCAL = "Local"
    EXTERNAL_VCS = "ExternalVCS"
    MANUAL = "Manual"
    THIRD_PARTY = "ThirdParty"


# ---------------------------------------------------------------------------
# Details variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ArtifactChangeDetails:
    """Before/after snapshot of an artifact or document change."""

    kind: ClassVar[str] = "artifact_change"

    artifact_type: str
    artifact_id: str
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    removed_links: Tuple[Dict[str, str], ...] = ()

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "artifact_type": self.artifact_type,
            "artifact_id": self.artifact_id,
            "before": copy.deepcopy(self.before),
            "after": copy.deepcopy(self.after),
            "removed_links": [dict(link) for link in self.removed_links],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ArtifactChangeDetails":
        return cls(
            artifact_type=str(data.get("artifact_type", "")),
            artifact_id=str(data.get("artifact_id", "")),
            before=copy.deepcopy(data.get("before")),
            after=copy.deepcopy(data.get("after")),
            removed_links=tuple(dict(link) for link in data.get("removed_links", ()) or ()),
        )


@dataclass(frozen=True)
class LinkChangeDetails:
    """Links added or removed by a single command."""

    kind: ClassVar[str] = "link_change"

    action: str  # link, unlink, cleanup
    links: Tuple[Dict[str, str], ...] = ()

    def to_dict(self) -> dict:
        return {"kind": self.kind, "action": self.action,
                "links": [dict(link) for link in self.links]}

    @classmethod
    def from_dict(cls, data: dict) -> "LinkChangeDetails":
        return cls(action=str(data.get("action", "")),
                   links=tuple(dict(link) for link in data.get("links", ()) or ()))


@dataclass(frozen=True)
class IssueSyncDetails:
    """Outcome of mirroring the external tracker's issue list."""

    kind: ClassVar[str] = "issue_sync"

    added: Tuple[int, ...] = ()
    updated: Tuple[int, ...] = ()
    deactivated: Tuple[int, ...] = ()

    def to_dict(self) -> dict:
        return {"kind": self.kind, "added": list(self.added),
                "updated": list(self.updated), "deactivated": list(self.deactivated)}

    @classmethod
    def from_dict(cls, data: dict) -> "IssueSyncDetails":
        return cls(added=tuple(data.get("added", ())),
                   updated=tuple(data.get("updated", ())),
                   deactivated=tuple(data.get("deactivated", ())))


@dataclass(frozen=True)
class VcsCommitDetails:
    """An externally sourced commit event."""

    kind: ClassVar[str] = "vcs_commit"

    external_id: str
    author_name: str
    fingerprint: str
    raw_payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "external_id": self.external_id,
                "author_name": self.author_name, "fingerprint": self.fingerprint,
                "raw_payload": copy.deepcopy(self.raw_payload)}

    @classmethod
    def from_dict(cls, data: dict) -> "VcsCommitDetails":
        return cls(external_id=str(data.get("external_id", "")),
                   author_name=str(data.get("author_name", "")),
                   fingerprint=str(data.get("fingerprint", "")),
                   raw_payload=copy.deepcopy(data.get("raw_payload") or {}))


@dataclass(frozen=True)
class SystemDetails:
    """Lifecycle event (session opened, project imported, ...)."""

    kind: ClassVar[str] = "system"

    action: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "action": self.action, "data": copy.deepcopy(self.data)}

    @classmethod
    def from_dict(cls, data: dict) -> "SystemDetails":
        return cls(action=str(data.get("action", "")),
                   data=copy.deepcopy(data.get("data") or {}))


@dataclass(frozen=True)
class GenericDetails:
    """Fallback for payloads with no known kind."""

    kind: ClassVar[str] = "generic"

    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "payload": copy.deepcopy(self.payload)}

    @classmethod
    def from_dict(cls, data: dict) -> "GenericDetails":
        if data.get("kind") == cls.kind and isinstance(data.get("payload"), dict):
            return cls(payload=copy.deepcopy(data["payload"]))
        return cls(payload=copy.deepcopy(dict(data)))


AuditDetails = Union[
    ArtifactChangeDetails, LinkChangeDetails, IssueSyncDetails,
    VcsCommitDetails, SystemDetails, GenericDetails,
]

_DETAILS_BY_KIND = {
    cls.kind: cls for cls in (
        ArtifactChangeDetails, LinkChangeDetails, IssueSyncDetails,
        VcsCommitDetails, SystemDetails, GenericDetails,
    )
}


def details_from_dict(data: Optional[dict]) -> AuditDetails:
    """Rebuild a details variant from its dict form."""
    if not data:
        return GenericDetails()
    if not isinstance(data, dict):
        return GenericDetails(payload={"value": data})
    variant = _DETAILS_BY_KIND.get(data.get("kind"))
    if variant is None:
        return GenericDetails.from_dict(data)
    return variant.from_dict(data)


def copy_details(details: AuditDetails) -> AuditDetails:
    """Deep copy through the dict form so no mutable state is shared."""
    return details_from_dict(details.to_dict())


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------

@dataclass
class AuditEntryDraft:
    """Caller-supplied content for a ledger append.

    ``occurred_at`` is when the event happened; the ledger assigns the
    entry's ``id`` and recorded ``timestamp`` at append time.
    """

    event_type: str
    actor: Actor
    summary: str
    occurred_at: Optional[str] = None
    details: AuditDetails = field(default_factory=GenericDetails)
    data_classification: Optional[DataClassification] = None
    source_system: Optional[SourceSystem] = None


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable audit ledger entry."""

    id: str
    timestamp: str
    occurred_at: str
    event_type: str
    actor: Actor
    summary: str
    details: AuditDetails
    data_classification: DataClassification = DataClassification.INTERNAL
    source_system: SourceSystem = SourceSystem.LOCAL

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "occurred_at": self.occurred_at,
            "event_type": self.event_type,
            "actor": self.actor.value,
            "summary": self.summary,
            "details": self.details.to_dict(),
            "data_classification": self.data_classification.value,
            "source_system": self.source_system.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AuditLogEntry":
        return cls(
            id=str(data["id"]),
            timestamp=str(data["timestamp"]),
            occurred_at=str(data.get("occurred_at") or data["timestamp"]),
            event_type=str(data.get("event_type", "")),
            actor=Actor(data.get("actor", Actor.SYSTEM.value)),
            summary=str(data.get("summary", "")),
            details=details_from_dict(data.get("details")),
            data_classification=DataClassification(
                data.get("data_classification", DataClassification.INTERNAL.value)),
            source_system=SourceSystem(data.get("source_system", SourceSystem.LOCAL.value)),
        )


@dataclass(frozen=True)
class LedgerRecord:
    """An entry together with its position in the hash chain.

    ``load_error`` is set when a persisted row could no longer be parsed;
    such a record never verifies.
    """

    entry: AuditLogEntry
    content_hash: str
    prev_hash: str
    chain_hash: str
    load_error: Optional[str] = None


# ---------------------------------------------------------------------------
# External ingestion
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExternalEvent:
    """Normalized event from the external-VCS adapter."""

    external_id: str
    timestamp: str
    author_name: str
    summary: str
    raw_payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "ExternalEvent":
        """Accept both ``externalId`` and ``external_id`` spellings."""
        def pick(*names, default=None):
            for name in names:
                if data.get(name) is not None:
                    return data[name]
            return default

        return cls(
            external_id=str(pick("external_id", "externalId", default="")),
            timestamp=str(pick("timestamp", default="")),
            author_name=str(pick("author_name", "authorName", default="")),
            summary=str(pick("summary", default="")),
            raw_payload=copy.deepcopy(pick("raw_payload", "rawPayload", default={})),
        )


@dataclass(frozen=True)
class IngestResult:
    """Per-event outcome of ``AuditLedger.ingest_external``."""

    external_id: str
    status: str  # appended, duplicate, rejected
    entry_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in (
            ("external_id", self.external_id), ("status", self.status),
            ("entry_id", self.entry_id), ("error", self.error),
        ) if v is not None}
