#!/usr/bin/env python3
# CUI // SP-CTI
"""Artifact Store: the project's local collections plus the issue mirror.

Owns the four locally authored collections (requirements, test cases, risks,
configuration items), the read-only issue mirror, project documents and the
LinkGraph over all of them. ``delete`` is the only way to remove an artifact
and it cascades into the graph in the same call, so no link can outlive its
endpoint.

Reads for scoring and reporting go through ``snapshot()``, which copies
everything into immutable tuples.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple, Union

from assessment_engine.project.link_graph import LinkGraph
from assessment_engine.resilience.errors import ReferentialError, ValidationError
from assessment_engine.schemas.artifacts import (
    ARTIFACT_MODELS,
    ARTIFACT_TYPES,
    ConfigurationItem,
    Document,
    Issue,
    Link,
    LinkKind,
    NodeRef,
    NodeType,
    Requirement,
    Risk,
    TestCase,
)
from assessment_engine.schemas.audit import IssueSyncDetails

logger = logging.getLogger("assessment_engine.project.artifact_store")

Artifact = Union[Requirement, TestCase, Risk, ConfigurationItem]


# ---------------------------------------------------------------------------
# Read-only views
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DocumentSummary:
    """Title and ordered section titles of one document."""

    document_id: str
    title: str
    section_titles: Tuple[str, ...] = ()
    complete_sections: int = 0
    total_sections: int = 0
    cmmi_pa_ids: Tuple[str, ...] = ()


# A section counts as written once its description has real content
MIN_SECTION_DESCRIPTION = 20


@dataclass(frozen=True)
class DocumentIndex:
    """Weak evidence signals derived from project documents."""

    documents: Tuple[DocumentSummary, ...] = ()

    @classmethod
    def build(cls, documents: Iterable[Document]) -> "DocumentIndex":
        summaries = []
        for doc in sorted(documents, key=lambda d: d.id):
            sections = list(doc.walk())
            pa_ids = sorted({pa for s in sections for pa in s.cmmi_pa_ids})
            summaries.append(DocumentSummary(
                document_id=doc.id,
                title=doc.title,
                section_titles=tuple(s.title for s in sections),
                complete_sections=sum(
                    1 for s in sections
                    if len(s.description.strip()) > MIN_SECTION_DESCRIPTION
                ),
                total_sections=len(sections),
                cmmi_pa_ids=tuple(pa_ids),
            ))
        return cls(documents=tuple(summaries))

    def has_section(self, keyword: str) -> bool:
        """True if any document title or section title mentions ``keyword``."""
        needle = keyword.lower()
        for doc in self.documents:
            if needle in doc.title.lower():
                return True
            if any(needle in title.lower() for title in doc.section_titles):
                return True
        return False

    def mapped_to(self, process_area_id: str) -> Tuple[str, ...]:
        """Ids of documents with a section tagged for a process area."""
        return tuple(d.document_id for d in self.documents
                     if process_area_id in d.cmmi_pa_ids)

    @property
    def completeness(self) -> float:
        total = sum(d.total_sections for d in self.documents)
        if not total:
            return 0.0
        return sum(d.complete_sections for d in self.documents) / total

    def to_dict(self) -> dict:
        return {"documents": [{
            "document_id": d.document_id,
            "title": d.title,
            "section_titles": list(d.section_titles),
            "complete_sections": d.complete_sections,
            "total_sections": d.total_sections,
            "cmmi_pa_ids": list(d.cmmi_pa_ids),
        } for d in self.documents]}


@dataclass(frozen=True)
class ProjectSnapshot:
    """Point-in-time, immutable copy of the whole project.

    Every collection is sorted by id so anything iterating a snapshot is
    deterministic.
    """

    requirements: Tuple[Requirement, ...] = ()
    test_cases: Tuple[TestCase, ...] = ()
    risks: Tuple[Risk, ...] = ()
    configuration_items: Tuple[ConfigurationItem, ...] = ()
    issues: Tuple[Issue, ...] = ()
    links: Tuple[Link, ...] = ()
    documents: Tuple[Document, ...] = ()
    _adjacency: Dict[NodeRef, Tuple[Tuple[NodeRef, LinkKind], ...]] = field(
        default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        adjacency: Dict[NodeRef, List[Tuple[NodeRef, LinkKind]]] = {}
        for link in self.links:
            adjacency.setdefault(link.source, []).append((link.target, link.kind))
            adjacency.setdefault(link.target, []).append((link.source, link.kind))
        object.__setattr__(self, "_adjacency",
                           {node: tuple(sorted(peers)) for node, peers in adjacency.items()})

    def collection(self, node_type: NodeType) -> tuple:
        return {
            NodeType.REQUIREMENT: self.requirements,
            NodeType.TEST_CASE: self.test_cases,
            NodeType.RISK: self.risks,
            NodeType.CONFIGURATION_ITEM: self.configuration_items,
            NodeType.ISSUE: self.issues,
        }[NodeType(node_type)]

    def get(self, ref: NodeRef):
        for item in self.collection(ref.node_type):
            if item.key == ref.node_id:
                return item
        return None

    def neighbors(self, ref: NodeRef, kind: Optional[LinkKind] = None) -> Tuple[NodeRef, ...]:
        return tuple(other for other, k in self._adjacency.get(ref, ())
                     if kind is None or k == kind)

    def linked(self, ref: NodeRef, kind: LinkKind) -> tuple:
        """Resolved neighbour objects over one link kind."""
        found = (self.get(other) for other in self.neighbors(ref, kind))
        return tuple(item for item in found if item is not None)

    def links_of_kind(self, kind: LinkKind) -> Tuple[Link, ...]:
        return tuple(link for link in self.links if link.kind == kind)

    @property
    def active_issues(self) -> Tuple[Issue, ...]:
        return tuple(i for i in self.issues if i.active)

    @property
    def document_index(self) -> DocumentIndex:
        return DocumentIndex.build(self.documents)

    @property
    def is_empty(self) -> bool:
        return not any((self.requirements, self.test_cases, self.risks,
                        self.configuration_items, self.issues, self.documents))

    def counts(self) -> Dict[str, int]:
        return {
            "requirements": len(self.requirements),
            "test_cases": len(self.test_cases),
            "risks": len(self.risks),
            "configuration_items": len(self.configuration_items),
            "issues": len(self.issues),
            "active_issues": len(self.active_issues),
            "links": len(self.links),
            "documents": len(self.documents),
        }


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

@dataclass
class _StoreState:
    artifacts: Dict[NodeType, Dict[str, Artifact]]
    issues: Dict[int, Issue]
    documents: Dict[str, Document]
    graph: LinkGraph


class ArtifactStore:
    """Mutable project state. Not thread-safe; ProjectSession serializes writes."""

    def __init__(self):
        self._artifacts: Dict[NodeType, Dict[str, Artifact]] = {t: {} for t in ARTIFACT_TYPES}
        self._issues: Dict[int, Issue] = {}
        self._documents: Dict[str, Document] = {}
        self.graph = LinkGraph(self.is_linkable)

    # -- lookups ----------------------------------------------------------

    def _mirrored_issue(self, ref: NodeRef) -> Optional[Issue]:
        """The mirrored issue a ref names; only the canonical spelling ("7", not "007") matches."""
        issue = self._issues.get(self._issue_number(ref.node_id))
        if issue is None or issue.key != ref.node_id:
            return None
        return issue

    def contains(self, ref: NodeRef) -> bool:
        if ref.node_type == NodeType.ISSUE:
            return self._mirrored_issue(ref) is not None
        return ref.node_id in self._artifacts[ref.node_type]

    def is_linkable(self, ref: NodeRef) -> bool:
        """Node exists and, for issues, is still returned by the tracker."""
        if ref.node_type == NodeType.ISSUE:
            issue = self._mirrored_issue(ref)
            return issue is not None and issue.active
        return ref.node_id in self._artifacts[ref.node_type]

    def find(self, node_type: NodeType, node_id: str) -> Optional[Artifact]:
        return self._artifacts[self._artifact_type(node_type)].get(str(node_id))

    def get(self, node_type: NodeType, node_id: str) -> Artifact:
        """Return an artifact.

        Raises:
            ReferentialError: If no artifact has that id.
        """
        found = self.find(node_type, node_id)
        if found is None:
            raise ReferentialError(f"Unknown {NodeType(node_type).value} '{node_id}'",
                                   node_id=node_id)
        return found

    def list(self, node_type: NodeType) -> Tuple[Artifact, ...]:
        items = self._artifacts[self._artifact_type(node_type)]
        return tuple(items[k] for k in sorted(items))

    def get_issue(self, number: int) -> Optional[Issue]:
        return self._issues.get(self._issue_number(number))

    def list_issues(self, include_inactive: bool = True) -> Tuple[Issue, ...]:
        return tuple(self._issues[n] for n in sorted(self._issues)
                     if include_inactive or self._issues[n].active)

    def get_document(self, document_id: str) -> Optional[Document]:
        return self._documents.get(document_id)

    def list_documents(self) -> Tuple[Document, ...]:
        return tuple(self._documents[k] for k in sorted(self._documents))

    # -- artifact mutation ------------------------------------------------

    def check_add(self, artifact: Artifact) -> None:
        """Raise if ``add`` would fail, without changing anything."""
        self._artifact_type(artifact.NODE_TYPE)
        artifact.validate()
        if artifact.key in self._artifacts[artifact.NODE_TYPE]:
            raise ValidationError(f"{artifact.LABEL} '{artifact.key}' already exists", field="id")

    def add(self, artifact: Artifact) -> Artifact:
        self.check_add(artifact)
        self._artifacts[artifact.NODE_TYPE][artifact.key] = artifact
        logger.debug("Added %s", artifact.ref)
        return artifact

    def check_replace(self, artifact: Artifact) -> Artifact:
        """Validate a replacement; return the current version."""
        artifact.validate()
        return self.get(artifact.NODE_TYPE, artifact.key)

    def replace(self, artifact: Artifact) -> Artifact:
        """Swap in a new version; return the previous one."""
        previous = self.check_replace(artifact)
        self._artifacts[artifact.NODE_TYPE][artifact.key] = artifact
        logger.debug("Replaced %s", artifact.ref)
        return previous

    def delete(self, node_type: NodeType, node_id: str) -> Tuple[Artifact, Tuple[Link, ...]]:
        """Remove an artifact and every link touching it.

        Returns:
            The removed artifact and the links removed with it.
        """
        artifact = self.get(node_type, node_id)
        removed = self.graph.cascade_delete(artifact.ref)
        del self._artifacts[artifact.NODE_TYPE][artifact.key]
        logger.debug("Deleted %s (%d link(s) cascaded)", artifact.ref, len(removed))
        return artifact, removed

    # -- issue mirror -----------------------------------------------------

    def diff_issues(
        self, issues: Iterable[Union[Issue, dict]],
    ) -> Tuple[Dict[int, Issue], IssueSyncDetails]:
        """Validate a tracker listing and compute what ``sync_issues`` would change."""
        incoming: Dict[int, Issue] = {}
        for raw in issues:
            issue = raw if isinstance(raw, Issue) else Issue.from_dict(raw)
            issue = Issue(number=issue.number, title=issue.title, url=issue.url,
                          state=issue.state, active=True)
            issue.validate()
            incoming[issue.number] = issue

        added, updated, deactivated = [], [], []
        for number in sorted(incoming):
            current = self._issues.get(number)
            if current is None:
                added.append(number)
            elif current != incoming[number]:
                updated.append(number)
        for number in sorted(self._issues):
            if number not in incoming and self._issues[number].active:
                deactivated.append(number)
        return incoming, IssueSyncDetails(added=tuple(added), updated=tuple(updated),
                                          deactivated=tuple(deactivated))

    def sync_issues(self, issues: Iterable[Union[Issue, dict]]) -> IssueSyncDetails:
        """Mirror the tracker's current issue list.

        New numbers are added, changed ones updated, and issues no longer
        returned are marked inactive. Nothing is deleted and no link is
        removed here; see ``stale_issue_links``.
        """
        incoming, details = self.diff_issues(issues)
        added, updated, deactivated = details.added, details.updated, details.deactivated
        for number in added + updated:
            self._issues[number] = incoming[number]
        for number in deactivated:
            old = self._issues[number]
            self._issues[number] = Issue(number=old.number, title=old.title, url=old.url,
                                         state=old.state, active=False)
        logger.info("Issue sync: %d added, %d updated, %d deactivated",
                    len(added), len(updated), len(deactivated))
        return details

    def stale_issue_links(self) -> Tuple[Link, ...]:
        """Links still pointing at inactive issues."""
        inactive = [i.ref for i in self._issues.values() if not i.active]
        return tuple(self.graph.touching(inactive))

    def cleanup_stale_issue_links(self) -> Tuple[Link, ...]:
        return self.graph.remove_links(self.stale_issue_links())

    # -- documents --------------------------------------------------------

    def put_document(self, document: Document) -> Optional[Document]:
        """Create or replace a document; return the previous version."""
        document.validate()
        previous = self._documents.get(document.id)
        self._documents[document.id] = document
        return previous

    def delete_document(self, document_id: str) -> Document:
        document = self._documents.pop(document_id, None)
        if document is None:
            raise ReferentialError(f"Unknown document '{document_id}'", node_id=document_id)
        return document

    # -- state ------------------------------------------------------------

    def snapshot(self) -> ProjectSnapshot:
        return ProjectSnapshot(
            requirements=self.list(NodeType.REQUIREMENT),
            test_cases=self.list(NodeType.TEST_CASE),
            risks=self.list(NodeType.RISK),
            configuration_items=self.list(NodeType.CONFIGURATION_ITEM),
            issues=self.list_issues(),
            links=self.graph.all_links(),
            documents=self.list_documents(),
        )

    def checkpoint(self) -> _StoreState:
        """Capture state for rollback (models are frozen, so shallow copies suffice)."""
        return _StoreState(
            artifacts={t: dict(items) for t, items in self._artifacts.items()},
            issues=dict(self._issues),
            documents=dict(self._documents),
            graph=self.graph.copy(),
        )

    def rollback(self, state: _StoreState) -> None:
        self._artifacts = state.artifacts
        self._issues = state.issues
        self._documents = state.documents
        self.graph = state.graph

    # -- helpers ----------------------------------------------------------

    @staticmethod
    def _artifact_type(node_type) -> NodeType:
        node_type = NodeType(node_type)
        if node_type not in ARTIFACT_MODELS:
            raise ValidationError(f"'{node_type.value}' is not a locally owned artifact type",
                                  field="node_type")
        return node_type

    @staticmethod
    def _issue_number(value) -> Optional[int]:
        try:
            return int(value)
        except (TypeError, ValueError):
            return None
