#!/usr/bin/env python3
# CUI // SP-CTI
"""Import a project from the dashboard's JSON project format.

Expected keys (all optional)::

    requirements, testCases, risks, configurationItems   lists of artifacts
    issues                                              tracker issue list
    links           {reqId: {tests: [], risks: [], cis: [], issues: []}}
    riskCiLinks     {riskId: [ciId]}
    issueCiLinks    {issueNumber: [ciId]}
    issueRiskLinks  {issueNumber: [riskId]}
    documents       {docId: {id, title, content: [sections]}} or a list

The store is assembled before the session exists, then the import itself is
recorded as a single SYSTEM_IMPORT ledger entry. Links whose endpoints are
missing are skipped and counted rather than failing the whole import.
"""

import argparse
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from assessment_engine.audit.audit_ledger import AuditLedger
from assessment_engine.project.artifact_store import ArtifactStore
from assessment_engine.project.project_session import ProjectSession
from assessment_engine.resilience.correlation import configure_logging
from assessment_engine.resilience.errors import (
    AssessmentError,
    ReferentialError,
    ValidationError,
)
from assessment_engine.schemas.artifacts import (
    ARTIFACT_MODELS,
    Document,
    LinkKind,
    NodeRef,
    NodeType,
)

logger = logging.getLogger("assessment_engine.project.project_loader")

COLLECTION_KEYS = {
    NodeType.REQUIREMENT: "requirements",
    NodeType.TEST_CASE: "testCases",
    NodeType.RISK: "risks",
    NodeType.CONFIGURATION_ITEM: "configurationItems",
}

# links[reqId] sub-keys
REQUIREMENT_LINK_KEYS = {
    "tests": (NodeType.TEST_CASE, LinkKind.REQUIREMENT_TEST_CASE),
    "risks": (NodeType.RISK, LinkKind.REQUIREMENT_RISK),
    "cis": (NodeType.CONFIGURATION_ITEM, LinkKind.REQUIREMENT_CONFIGURATION_ITEM),
    "issues": (NodeType.ISSUE, LinkKind.REQUIREMENT_ISSUE),
}

# top-level {sourceId: [targetId]} maps
PAIR_LINK_KEYS = {
    "riskCiLinks": (NodeType.RISK, NodeType.CONFIGURATION_ITEM,
                    LinkKind.RISK_CONFIGURATION_ITEM),
    "issueCiLinks": (NodeType.ISSUE, NodeType.CONFIGURATION_ITEM,
                     LinkKind.ISSUE_CONFIGURATION_ITEM),
    "issueRiskLinks": (NodeType.ISSUE, NodeType.RISK, LinkKind.ISSUE_RISK),
}

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


def _artifact_fields(raw: Dict[str, Any]) -> Dict[str, Any]:
    fields = {_snake(k): v for k, v in raw.items()}
    for name in ("created_by", "updated_by"):
        # The dashboard records automated edits as "System"
        if fields.get(name) == "System":
            fields[name] = "Automation"
    return fields


def _documents(raw: Union[Dict[str, Any], List[Any], None]) -> List[Document]:
    if not raw:
        return []
    if isinstance(raw, dict):
        items = []
        for doc_id, doc in sorted(raw.items()):
            doc = dict(doc)
            doc.setdefault("id", doc_id)
            items.append(doc)
    else:
        items = list(raw)
    return [Document.from_dict(d) for d in items]


def _link_all(store: ArtifactStore, pairs: Iterable[Tuple[NodeRef, NodeRef, LinkKind]]) -> int:
    skipped = 0
    for a, b, kind in pairs:
        try:
            store.graph.link(NodeRef.of(*a), NodeRef.of(*b), kind)
        except (ReferentialError, ValidationError) as exc:
            skipped += 1
            logger.warning("Skipping link %s <-> %s: %s", a, b, exc)
    return skipped


def _by_key(mapping: Optional[Dict[Any, Any]]) -> List[Tuple[Any, Any]]:
    # keys may be ints when the data did not come from JSON
    return sorted((mapping or {}).items(), key=lambda item: str(item[0]))


def _link_pairs(data: Dict[str, Any]) -> List[Tuple[NodeRef, NodeRef, LinkKind]]:
    pairs = []
    for req_id, targets in _by_key(data.get("links")):
        source = NodeRef(NodeType.REQUIREMENT, str(req_id))
        for key, (node_type, kind) in REQUIREMENT_LINK_KEYS.items():
            for target in (targets or {}).get(key, ()) or ():
                pairs.append((source, NodeRef(node_type, str(target)), kind))
    for key, (source_type, target_type, kind) in PAIR_LINK_KEYS.items():
        for source_id, targets in _by_key(data.get(key)):
            for target in targets or ():
                pairs.append((NodeRef(source_type, str(source_id)),
                              NodeRef(target_type, str(target)), kind))
    return pairs


def build_store(data: Dict[str, Any]) -> Tuple[ArtifactStore, Dict[str, int]]:
    """Assemble an ArtifactStore from project JSON.

    Raises:
        ValidationError: An artifact, issue or document is malformed.
    """
    store = ArtifactStore()
    for node_type, key in COLLECTION_KEYS.items():
        for raw in data.get(key) or ():
            store.add(ARTIFACT_MODELS[node_type].from_dict(_artifact_fields(raw)))
    store.sync_issues(data.get("issues") or ())
    for document in _documents(data.get("documents")):
        store.put_document(document)
    skipped = _link_all(store, _link_pairs(data))

    stats = store.snapshot().counts()
    stats["skipped_links"] = skipped
    return store, stats


def load_project(
    data: Dict[str, Any],
    ledger: Optional[AuditLedger] = None,
    clock=None,
) -> ProjectSession:
    """Build a session from project JSON and record the import.

    Raises:
        AssessmentError: The data is malformed or the import entry was rejected.
    """
    store, stats = build_store(data)
    kwargs = {"store": store, "ledger": ledger}
    if clock is not None:
        kwargs["clock"] = clock
    session = ProjectSession(**kwargs)
    name = str(data.get("projectName") or "project")
    result = session.record_system_event(
        "IMPORT",
        f"Imported {name}: {stats['requirements']} requirement(s), "
        f"{stats['links']} link(s)",
        data={"project_name": name, **stats},
    )
    if not result.ok:
        raise AssessmentError(f"Import of {name} was not recorded: {result.error}")
    logger.info("Loaded project %s (%s)", name, stats)
    return session


def load_project_file(path: Union[str, Path], **kwargs) -> ProjectSession:
    """Read a project JSON file and load it."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    return load_project(data, **kwargs)


def main():
    parser = argparse.ArgumentParser(description="Import and summarize a project JSON file")
    parser.add_argument("--project-file", required=True, help="Project JSON export")
    parser.add_argument("--json", action="store_true", help="JSON output")
    args = parser.parse_args()
    configure_logging()

    try:
        session = load_project_file(args.project_file)
        result = {"counts": session.snapshot().counts(),
                  "ledger_entries": len(session.ledger_entries())}
    except (OSError, ValueError, AssessmentError) as exc:
        result = {"error": str(exc)}

    if args.json:
        print(json.dumps(result, indent=2))
    elif "error" in result:
        print(f"ERROR: {result['error']}")
    else:
        for key, count in result["counts"].items():
            print(f"  {key.replace('_', ' ').title():22s} {count}")


if __name__ == "__main__":
    main()
