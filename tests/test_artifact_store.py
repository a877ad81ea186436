# [TEMPLATE: CUI // SP-CTI]
"""Tests for assessment_engine.project.artifact_store: collections, issue mirror, snapshots."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from assessment_engine.project.artifact_store import ArtifactStore, DocumentIndex
from assessment_engine.resilience.errors import ReferentialError, ValidationError
from assessment_engine.schemas.artifacts import (
    ConfigurationItem,
    Document,
    DocumentSection,
    Issue,
    LinkKind,
    NodeRef,
    NodeType,
    Requirement,
    Risk,
    TestCase,
)


def _req(req_id="REQ-001", **kw):
    return Requirement(id=req_id, description=kw.pop("description", "Log in"), **kw)


def _tc(tc_id="TC-001", **kw):
    return TestCase(id=tc_id, description=kw.pop("description", "Login works"), **kw)


@pytest.fixture
def store():
    return ArtifactStore()


class TestArtifactCrud:
    """add / replace / delete."""

    def test_add_and_get(self, store):
        store.add(_req())
        assert store.get(NodeType.REQUIREMENT, "REQ-001").description == "Log in"

    def test_duplicate_id_rejected(self, store):
        store.add(_req())
        with pytest.raises(ValidationError, match="already exists"):
            store.add(_req())

    def test_same_id_allowed_across_collections(self, store):
        store.add(_req("X-1"))
        store.add(Risk(id="X-1", description="Outage"))
        assert store.contains(NodeRef(NodeType.REQUIREMENT, "X-1"))
        assert store.contains(NodeRef(NodeType.RISK, "X-1"))

    def test_add_validates(self, store):
        with pytest.raises(ValidationError):
            store.add(_req(status="Done"))
        assert store.list(NodeType.REQUIREMENT) == ()

    def test_get_missing_raises(self, store):
        with pytest.raises(ReferentialError, match="REQ-404"):
            store.get(NodeType.REQUIREMENT, "REQ-404")

    def test_issue_is_not_a_local_artifact(self, store):
        with pytest.raises(ValidationError):
            store.find(NodeType.ISSUE, "1")

    def test_replace_returns_previous(self, store):
        store.add(_req())
        previous = store.replace(_req(status="Active"))
        assert previous.status == "Proposed"
        assert store.get(NodeType.REQUIREMENT, "REQ-001").status == "Active"

    def test_replace_missing_raises(self, store):
        with pytest.raises(ReferentialError):
            store.replace(_req())

    def test_list_is_sorted_by_id(self, store):
        for req_id in ("REQ-003", "REQ-001", "REQ-002"):
            store.add(_req(req_id))
        assert [r.id for r in store.list(NodeType.REQUIREMENT)] == \
            ["REQ-001", "REQ-002", "REQ-003"]

    def test_delete_cascades_links(self, store):
        store.add(_req())
        store.add(_tc())
        store.graph.link(_req().ref, _tc().ref, LinkKind.REQUIREMENT_TEST_CASE)
        artifact, removed = store.delete(NodeType.TEST_CASE, "TC-001")
        assert artifact.id == "TC-001"
        assert len(removed) == 1
        assert store.graph.neighbors(_req().ref) == ()


class TestIssueMirror:
    """sync_issues / stale links."""

    def test_sync_adds_updates_and_deactivates(self, store):
        store.sync_issues([{"number": 1, "title": "A"}, {"number": 2, "title": "B"}])
        details = store.sync_issues([{"number": 1, "title": "A renamed"},
                                     {"number": 3, "title": "C"}])
        assert details.added == (3,)
        assert details.updated == (1,)
        assert details.deactivated == (2,)
        assert store.get_issue(2).active is False
        assert [i.number for i in store.list_issues(include_inactive=False)] == [1, 3]

    def test_unchanged_listing_reports_nothing(self, store):
        listing = [{"number": 1, "title": "A"}]
        store.sync_issues(listing)
        _, details = store.diff_issues(listing)
        assert not (details.added or details.updated or details.deactivated)

    def test_reappearing_issue_is_reactivated(self, store):
        store.sync_issues([{"number": 1, "title": "A"}])
        store.sync_issues([])
        details = store.sync_issues([{"number": 1, "title": "A"}])
        assert details.updated == (1,)
        assert store.get_issue(1).active is True

    def test_invalid_issue_rejected_before_change(self, store):
        with pytest.raises(ValidationError):
            store.sync_issues([{"number": 1, "title": "A"}, {"number": -5, "title": "B"}])
        assert store.list_issues() == ()

    def test_inactive_issue_keeps_links_but_is_not_linkable(self, store):
        store.add(_req())
        store.sync_issues([Issue(number=7, title="Bug")])
        issue_ref = NodeRef(NodeType.ISSUE, "7")
        store.graph.link(_req().ref, issue_ref, LinkKind.REQUIREMENT_ISSUE)
        store.sync_issues([])
        assert store.graph.neighbors(issue_ref) == (_req().ref,)
        assert store.is_linkable(issue_ref) is False
        with pytest.raises(ReferentialError):
            store.graph.link(NodeRef(NodeType.REQUIREMENT, "REQ-001"), issue_ref,
                             LinkKind.REQUIREMENT_ISSUE)

    def test_cleanup_stale_issue_links(self, store):
        store.add(_req())
        store.sync_issues([Issue(number=7, title="Bug")])
        store.graph.link(_req().ref, NodeRef(NodeType.ISSUE, "7"), LinkKind.REQUIREMENT_ISSUE)
        store.sync_issues([])
        assert len(store.stale_issue_links()) == 1
        assert len(store.cleanup_stale_issue_links()) == 1
        assert store.stale_issue_links() == ()

    def test_non_canonical_issue_ref_is_not_linkable(self, store):
        store.add(_req())
        store.sync_issues([Issue(number=7, title="Bug")])
        padded = NodeRef(NodeType.ISSUE, "007")
        assert store.contains(padded) is False
        assert store.is_linkable(padded) is False
        with pytest.raises(ReferentialError):
            store.graph.link(_req().ref, padded, LinkKind.REQUIREMENT_ISSUE)
        assert store.snapshot().links == ()

    def test_lookup_by_numeric_id(self, store):
        store.add(_req("5"))
        assert store.get(NodeType.REQUIREMENT, 5).id == "5"


class TestDocuments:
    """Document storage and the derived index."""

    def _doc(self, description="A thorough description of the plan."):
        return Document(id="DOC-1", title="Project Plan", sections=(
            DocumentSection(id="s1", title="Scope", description=description,
                            cmmi_pa_ids=("PP",)),
            DocumentSection(id="s2", title="Risk Register", description="short"),
        ))

    def test_put_returns_previous(self, store):
        assert store.put_document(self._doc()) is None
        assert store.put_document(self._doc("changed but still long enough")) == self._doc()

    def test_delete_missing_raises(self, store):
        with pytest.raises(ReferentialError):
            store.delete_document("DOC-9")

    def test_index_signals(self, store):
        store.put_document(self._doc())
        index = store.snapshot().document_index
        assert index.has_section("plan")         # document title
        assert index.has_section("RISK")         # section title, case-insensitive
        assert not index.has_section("security")
        assert index.mapped_to("PP") == ("DOC-1",)
        assert index.completeness == 0.5

    def test_empty_index(self):
        assert DocumentIndex.build([]).completeness == 0.0


class TestSnapshotAndRollback:
    """Immutable snapshots and checkpoint/rollback."""

    def test_snapshot_is_detached(self, store):
        store.add(_req())
        snapshot = store.snapshot()
        store.add(_req("REQ-002"))
        assert len(snapshot.requirements) == 1

    def test_snapshot_linked_resolves_objects(self, store):
        store.add(_req())
        store.add(_tc(status="Passed"))
        store.graph.link(_req().ref, _tc().ref, LinkKind.REQUIREMENT_TEST_CASE)
        snapshot = store.snapshot()
        assert [t.id for t in snapshot.linked(_req().ref, LinkKind.REQUIREMENT_TEST_CASE)] == \
            ["TC-001"]

    def test_counts(self, store):
        store.add(_req())
        store.add(ConfigurationItem(id="CI-1", name="api"))
        store.sync_issues([{"number": 1, "title": "A"}])
        store.sync_issues([])
        counts = store.snapshot().counts()
        assert counts["requirements"] == 1
        assert counts["configuration_items"] == 1
        assert counts["issues"] == 1
        assert counts["active_issues"] == 0

    def test_empty_snapshot(self, store):
        assert store.snapshot().is_empty

    def test_rollback_restores_everything(self, store):
        store.add(_req())
        checkpoint = store.checkpoint()
        store.add(_tc())
        store.graph.link(_req().ref, _tc().ref, LinkKind.REQUIREMENT_TEST_CASE)
        store.put_document(Document(id="D", title="Doc"))
        store.rollback(checkpoint)
        snapshot = store.snapshot()
        assert snapshot.test_cases == ()
        assert snapshot.links == ()
        assert snapshot.documents == ()
        assert len(snapshot.requirements) == 1
