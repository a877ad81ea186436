#!/usr/bin/env python3
# CUI // SP-CTI
"""Project session: the single serialized write path for one project.

Bundles the ArtifactStore (with its LinkGraph) and the AuditLedger. Every
mutating command runs under one lock and inside a correlation scope, and
follows the same sequence:

    1. build the change and its ledger draft, validating both
    2. apply the change to the store
    3. append exactly one ledger entry

A failure in 1 leaves everything untouched. A failure in 2 or 3 restores
the store from a checkpoint, so the store never holds a change the ledger
does not record. Commands return a CommandResult instead of raising.
"""

import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional, Sequence, Union

from assessment_engine.audit.audit_ledger import AuditLedger, ChainVerification, LedgerFilter
from assessment_engine.compat.config import load_config
from assessment_engine.compat.datetime_utils import to_iso, utc_now
from assessment_engine.maturity.maturity_scorer import assess
from assessment_engine.project.artifact_store import ArtifactStore, ProjectSnapshot
from assessment_engine.project.link_graph import normalize_link
from assessment_engine.resilience.correlation import correlation_scope
from assessment_engine.resilience.errors import (
    AssessmentError,
    ReferentialError,
    ValidationError,
)
from assessment_engine.schemas.artifacts import (
    ARTIFACT_MODELS,
    Author,
    Document,
    Issue,
    LinkKind,
    NodeRef,
    NodeType,
)
from assessment_engine.schemas.audit import (
    Actor,
    ArtifactChangeDetails,
    AuditEntryDraft,
    DataClassification,
    ExternalEvent,
    IngestResult,
    LinkChangeDetails,
    SourceSystem,
    SystemDetails,
)
from assessment_engine.schemas.maturity import MaturityAssessment

logger = logging.getLogger("assessment_engine.project.project_session")

ID_PREFIXES = {
    NodeType.REQUIREMENT: "REQ",
    NodeType.TEST_CASE: "TC",
    NodeType.RISK: "RISK",
    NodeType.CONFIGURATION_ITEM: "CI",
}

_AUDIT_FIELDS = ("created_by", "updated_by", "created_at", "updated_at")
_SYSTEM_ACTION_RE = re.compile(r"^[A-Z][A-Z0-9_]*$")


@dataclass(frozen=True)
class CommandResult:
    """Typed outcome of a session command."""

    ok: bool
    entry_id: Optional[str] = None
    value: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def failure(cls, exc: AssessmentError) -> "CommandResult":
        return cls(ok=False, error=str(exc), error_code=exc.code)

    def to_dict(self) -> dict:
        value = self.value
        if hasattr(value, "to_dict"):
            value = value.to_dict()
        elif isinstance(value, (list, tuple)):
            value = [v.to_dict() if hasattr(v, "to_dict") else v for v in value]
        return {"ok": self.ok, "entry_id": self.entry_id, "value": value,
                "error": self.error, "error_code": self.error_code}


@dataclass
class _Plan:
    draft: AuditEntryDraft
    apply: Callable[[], Any]


@dataclass(frozen=True)
class AuditView:
    """Project state and ledger read as of one moment.

    ``history`` is the whole ledger and ``selected`` the entries matching
    the requested filter, both newest first.
    """

    snapshot: ProjectSnapshot
    history: tuple
    selected: tuple
    verification: ChainVerification


def _as_ref(node: Union[NodeRef, str, tuple]) -> NodeRef:
    if isinstance(node, NodeRef):
        return NodeRef.of(node.node_type, node.node_id)
    if isinstance(node, str):
        return NodeRef.parse(node)
    try:
        node_type, node_id = node
        return NodeRef.of(node_type, node_id)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid node reference {node!r}", field="node")


def _as_node_type(node_type) -> NodeType:
    try:
        node_type = NodeType(node_type)
    except ValueError:
        raise ValidationError(f"Unknown artifact type '{node_type}'", field="node_type")
    if node_type not in ARTIFACT_MODELS:
        raise ValidationError(f"'{node_type.value}' cannot be edited locally", field="node_type")
    return node_type


def _as_author(author) -> Author:
    try:
        return Author(author)
    except ValueError:
        raise ValidationError(f"Unknown author '{author}'", field="author")


def _domain(node_type: NodeType) -> str:
    return node_type.value.upper()


class ProjectSession:
    """One project's state plus its ledger, mutated only through commands.

    Args:
        store: Existing artifact store (a new empty one by default).
        ledger: Existing ledger (a new one using configured defaults by default).
        clock: Source of "now" for artifact timestamps and default occurred_at.
    """

    def __init__(
        self,
        store: Optional[ArtifactStore] = None,
        ledger: Optional[AuditLedger] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._lock = threading.RLock()
        self._clock = clock
        self.store = store or ArtifactStore()
        if ledger is None:
            ledger_config = load_config().get("ledger", {})
            ledger = AuditLedger(
                clock=clock,
                default_classification=DataClassification(
                    ledger_config.get("default_classification", "INTERNAL")),
                default_source_system=SourceSystem(
                    ledger_config.get("default_source_system", "Local")),
                mask_sensitive_data=bool(ledger_config.get("mask_sensitive_data", True)),
            )
        self.ledger = ledger

    # -- reads ------------------------------------------------------------

    def snapshot(self) -> ProjectSnapshot:
        with self._lock:
            return self.store.snapshot()

    def assess(self) -> MaturityAssessment:
        return assess(self.snapshot())

    def history(self, ledger_filter: Optional[LedgerFilter] = None) -> tuple:
        with self._lock:
            return self.ledger.query(ledger_filter)

    def ledger_entries(self) -> tuple:
        with self._lock:
            return self.ledger.entries()

    def audit_view(self, ledger_filter: Optional[LedgerFilter] = None) -> AuditView:
        """Snapshot, history and chain verification taken under one lock hold."""
        with self._lock:
            history = self.ledger.query()
            selected = self.ledger.query(ledger_filter) if ledger_filter else history
            return AuditView(snapshot=self.store.snapshot(), history=history,
                             selected=selected, verification=self.ledger.verify_chain())

    # -- command machinery ------------------------------------------------

    def _now(self) -> str:
        return to_iso(self._clock())

    def _execute(self, name: str, build: Callable[[], Optional[_Plan]]) -> CommandResult:
        with self._lock, correlation_scope() as cid:
            try:
                plan = build()
                if plan is None:
                    logger.debug("Command %s made no change", name)
                    return CommandResult(ok=True, value=False)
                self.ledger.validate_draft(plan.draft)
                tail = self.ledger.tail_hash
                checkpoint = self.store.checkpoint()
                try:
                    value = plan.apply()
                    entry_id = self.ledger.append(plan.draft, expected_tail=tail)
                except AssessmentError:
                    self.store.rollback(checkpoint)
                    raise
            except AssessmentError as exc:
                logger.info("Command %s rejected (%s): %s", name, exc.code, exc)
                return CommandResult.failure(exc)
            logger.info("Command %s ok [%s] entry %s", name, cid, entry_id)
            return CommandResult(ok=True, entry_id=entry_id, value=value)

    def _draft(self, event_type: str, author: Author, summary: str, details,
               occurred_at: Optional[str]) -> AuditEntryDraft:
        return AuditEntryDraft(
            event_type=event_type,
            actor=Actor.from_author(author),
            summary=summary,
            occurred_at=occurred_at or self._now(),
            details=details,
        )

    def next_id(self, node_type: Union[NodeType, str]) -> str:
        """Next free ``PREFIX-NNN`` id for a collection."""
        node_type = _as_node_type(node_type)
        prefix = ID_PREFIXES[node_type]
        highest = 0
        for item in self.store.list(node_type):
            head, sep, tail = item.key.rpartition("-")
            if sep and head == prefix and tail.isdigit():
                highest = max(highest, int(tail))
        return f"{prefix}-{highest + 1:03d}"

    # -- artifact commands ------------------------------------------------

    def create(self, node_type, data: dict, author=Author.USER,
               occurred_at: Optional[str] = None) -> CommandResult:
        """Create an artifact. ``data`` may omit ``id`` to get the next free one."""
        def build() -> _Plan:
            kind = _as_node_type(node_type)
            who = _as_author(author)
            fields = {k: v for k, v in dict(data or {}).items() if k not in _AUDIT_FIELDS}
            if not str(fields.get("id") or "").strip():
                fields["id"] = self.next_id(kind)
            now = self._now()
            fields.update(created_by=who, updated_by=who, created_at=now, updated_at=now)
            model = ARTIFACT_MODELS[kind].from_dict(fields)
            self.store.check_add(model)
            return _Plan(
                draft=self._draft(
                    f"{_domain(kind)}_CREATE", who, f"Created {model.LABEL.lower()} {model.key}",
                    ArtifactChangeDetails(kind.value, model.key, after=model.to_dict()),
                    occurred_at),
                apply=lambda: self.store.add(model),
            )
        return self._execute("create", build)

    def update(self, node_type, node_id: str, changes: dict, author=Author.USER,
               occurred_at: Optional[str] = None) -> CommandResult:
        """Apply field changes to an existing artifact."""
        def build() -> Optional[_Plan]:
            kind = _as_node_type(node_type)
            who = _as_author(author)
            protected = sorted(set(changes or {}) & set(_AUDIT_FIELDS))
            if protected:
                raise ValidationError(f"Field '{protected[0]}' is maintained by the session",
                                      field=protected[0])
            current = self.store.get(kind, node_id)
            proposed = current.with_changes(**dict(changes or {}))
            if proposed == current:
                return None
            updated = proposed.with_changes(updated_by=who, updated_at=self._now())
            self.store.check_replace(updated)

            def _replace(artifact):
                self.store.replace(artifact)
                return artifact

            changed = sorted(k for k in changes if getattr(current, k) != getattr(updated, k))
            return _Plan(
                draft=self._draft(
                    f"{_domain(kind)}_UPDATE", who,
                    f"Updated {current.LABEL.lower()} {current.key} ({', '.join(changed)})",
                    ArtifactChangeDetails(kind.value, current.key,
                                          before=current.to_dict(), after=updated.to_dict()),
                    occurred_at),
                apply=lambda: _replace(updated),
            )
        return self._execute("update", build)

    def delete(self, node_type, node_id: str, author=Author.USER,
               occurred_at: Optional[str] = None) -> CommandResult:
        """Delete an artifact and cascade-remove its links."""
        def build() -> _Plan:
            kind = _as_node_type(node_type)
            who = _as_author(author)
            current = self.store.get(kind, node_id)
            doomed = self.store.graph.touching([current.ref])
            return _Plan(
                draft=self._draft(
                    f"{_domain(kind)}_DELETE", who,
                    f"Deleted {current.LABEL.lower()} {current.key}"
                    + (f" and {len(doomed)} link(s)" if doomed else ""),
                    ArtifactChangeDetails(kind.value, current.key, before=current.to_dict(),
                                          removed_links=tuple(link.to_dict() for link in doomed)),
                    occurred_at),
                apply=lambda: self.store.delete(kind, current.key)[1],
            )
        return self._execute("delete", build)

    # -- link commands ----------------------------------------------------

    def _resolve_link(self, a, b, kind):
        ref_a, ref_b = _as_ref(a), _as_ref(b)
        if kind is None:
            kind = LinkKind.between(ref_a.node_type, ref_b.node_type)
            if kind is None:
                raise ReferentialError(
                    f"No link kind connects {ref_a.node_type.value} and {ref_b.node_type.value}",
                    node_id=str(ref_a))
        else:
            try:
                kind = LinkKind(kind)
            except ValueError:
                raise ValidationError(f"Unknown link kind '{kind}'", field="kind")
        return normalize_link(ref_a, ref_b, kind)

    def link(self, a, b, kind=None, author=Author.USER,
             occurred_at: Optional[str] = None) -> CommandResult:
        """Link two nodes. Linking an existing pair is a no-op without a ledger entry."""
        def build() -> Optional[_Plan]:
            who = _as_author(author)
            edge = self._resolve_link(a, b, kind)
            for node in (edge.source, edge.target):
                if not self.store.is_linkable(node):
                    raise ReferentialError(f"Cannot link to unknown or inactive node {node}",
                                           node_id=str(node))
            if self.store.graph.has_link(edge.source, edge.target, edge.kind):
                return None
            return _Plan(
                draft=self._draft(
                    "LINK_CREATE", who, f"Linked {edge.source} to {edge.target}",
                    LinkChangeDetails("link", (edge.to_dict(),)), occurred_at),
                apply=lambda: self.store.graph.link(edge.source, edge.target, edge.kind),
            )
        return self._execute("link", build)

    def unlink(self, a, b, kind=None, author=Author.USER,
               occurred_at: Optional[str] = None) -> CommandResult:
        """Remove a link. Unlinking an absent pair is a no-op without a ledger entry."""
        def build() -> Optional[_Plan]:
            who = _as_author(author)
            edge = self._resolve_link(a, b, kind)
            if not self.store.graph.has_link(edge.source, edge.target, edge.kind):
                return None
            return _Plan(
                draft=self._draft(
                    "LINK_DELETE", who, f"Unlinked {edge.source} from {edge.target}",
                    LinkChangeDetails("unlink", (edge.to_dict(),)), occurred_at),
                apply=lambda: self.store.graph.unlink(edge.source, edge.target, edge.kind),
            )
        return self._execute("unlink", build)

    # -- issue mirror -----------------------------------------------------

    def sync_issues(self, issues: Iterable[Union[Issue, dict]],
                    occurred_at: Optional[str] = None) -> CommandResult:
        """Mirror the external tracker's current issue list."""
        listing = list(issues)

        def build() -> Optional[_Plan]:
            _, details = self.store.diff_issues(listing)
            if not (details.added or details.updated or details.deactivated):
                return None
            return _Plan(
                draft=self._draft(
                    "ISSUE_UPDATE", Author.AUTOMATION,
                    f"Synced issues: {len(details.added)} added, {len(details.updated)} "
                    f"updated, {len(details.deactivated)} no longer returned",
                    details, occurred_at),
                apply=lambda: self.store.sync_issues(listing),
            )
        return self._execute("sync_issues", build)

    def cleanup_stale_issue_links(self, author=Author.USER,
                                  occurred_at: Optional[str] = None) -> CommandResult:
        """Remove links that still point at issues the tracker no longer returns."""
        def build() -> Optional[_Plan]:
            who = _as_author(author)
            stale = self.store.stale_issue_links()
            if not stale:
                return None
            return _Plan(
                draft=self._draft(
                    "LINK_DELETE", who, f"Removed {len(stale)} link(s) to vanished issues",
                    LinkChangeDetails("cleanup", tuple(link.to_dict() for link in stale)),
                    occurred_at),
                apply=self.store.cleanup_stale_issue_links,
            )
        return self._execute("cleanup_stale_issue_links", build)

    # -- documents --------------------------------------------------------

    def save_document(self, document: Union[Document, dict], author=Author.USER,
                      occurred_at: Optional[str] = None) -> CommandResult:
        """Create or replace a project document."""
        def build() -> Optional[_Plan]:
            who = _as_author(author)
            doc = document if isinstance(document, Document) else Document.from_dict(document)
            doc.validate()
            previous = self.store.get_document(doc.id)
            if previous == doc:
                return None
            verb = "UPDATE" if previous else "CREATE"
            return _Plan(
                draft=self._draft(
                    f"DOCUMENT_{verb}", who,
                    f"{'Updated' if previous else 'Created'} document {doc.id} ({doc.title})",
                    ArtifactChangeDetails("document", doc.id,
                                          before=previous.to_dict() if previous else None,
                                          after=doc.to_dict()),
                    occurred_at),
                apply=lambda: self.store.put_document(doc) or doc,
            )
        return self._execute("save_document", build)

    def delete_document(self, document_id: str, author=Author.USER,
                        occurred_at: Optional[str] = None) -> CommandResult:
        def build() -> _Plan:
            who = _as_author(author)
            current = self.store.get_document(document_id)
            if current is None:
                raise ReferentialError(f"Unknown document '{document_id}'", node_id=document_id)
            return _Plan(
                draft=self._draft(
                    "DOCUMENT_DELETE", who, f"Deleted document {current.id}",
                    ArtifactChangeDetails("document", current.id, before=current.to_dict()),
                    occurred_at),
                apply=lambda: self.store.delete_document(document_id),
            )
        return self._execute("delete_document", build)

    # -- ledger-only commands ---------------------------------------------

    def record_system_event(self, action: str, summary: str, data: Optional[dict] = None,
                            occurred_at: Optional[str] = None) -> CommandResult:
        """Append a ``SYSTEM_<ACTION>`` lifecycle entry."""
        def build() -> _Plan:
            verb = str(action or "").strip().upper()
            if not _SYSTEM_ACTION_RE.match(verb):
                raise ValidationError(f"Invalid system action '{action}'", field="action")
            return _Plan(
                draft=self._draft(f"SYSTEM_{verb}", Author.AUTOMATION, summary,
                                  SystemDetails(verb.lower(), dict(data or {})), occurred_at),
                apply=lambda: None,
            )
        return self._execute("record_system_event", build)

    def ingest_external(
        self,
        events: Sequence[Union[ExternalEvent, dict]],
        source_system: Union[SourceSystem, str] = SourceSystem.EXTERNAL_VCS,
    ) -> CommandResult:
        """Append a batch of external commit events through the write path.

        Each appended event produces its own VCS_COMMIT entry; ``value`` holds
        the per-event IngestResult list.
        """
        with self._lock, correlation_scope():
            try:
                system = SourceSystem(source_system)
            except ValueError:
                return CommandResult.failure(ValidationError(
                    f"Unknown source system '{source_system}'", field="source_system"))
            results: List[IngestResult] = self.ledger.ingest_external(list(events), system)
            return CommandResult(ok=True, value=results)

