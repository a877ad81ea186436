#!/usr/bin/env python3
# CUI // SP-CTI
"""Project artifact schema models.

Requirement, TestCase, Risk, ConfigurationItem (locally owned), Issue
(read-only mirror of the external tracker), Document, and the node/link
identity types used by the link graph. All models are frozen; updates go
through ``dataclasses.replace`` so snapshots can share instances safely.
"""

from dataclasses import MISSING, dataclass, field, fields, replace
from enum import Enum
from typing import Any, Iterator, NamedTuple, Optional, Tuple

from assessment_engine.resilience.errors import ValidationError


class NodeType(str, Enum):
    """Entity collections that can appear as link endpoints."""

    REQUIREMENT = "requirement"
    TEST_CASE = "test_case"
    RISK = "risk"
    CONFIGURATION_ITEM = "configuration_item"
    ISSUE = "issue"


# Collections owned (created/updated/deleted) by the artifact store
ARTIFACT_TYPES = (
    NodeType.REQUIREMENT,
    NodeType.TEST_CASE,
    NodeType.RISK,
    NodeType.CONFIGURATION_ITEM,
)


class Author(str, Enum):
    """Who created or last updated an artifact."""

    USER = "User"
    AI = "AI"
    AUTOMATION = "Automation"


REQUIREMENT_STATUSES = ("Proposed", "Active", "Implemented", "Verified")
PRIORITIES = ("High", "Medium", "Low")
TEST_STATUSES = ("Not Run", "Passed", "Failed")
RISK_LEVELS = ("Low", "Medium", "High")
RISK_STATUSES = ("Open", "Mitigated", "Closed")
CI_STATUSES = ("Baseline", "In Development", "Deprecated", "Planned", "Retired")
ISSUE_STATES = ("open", "closed")


class NodeRef(NamedTuple):
    """Stable identity of a graph node: collection plus id within it."""

    node_type: NodeType
    node_id: str

    def __str__(self) -> str:
        return f"{self.node_type.value}:{self.node_id}"

    @classmethod
    def of(cls, node_type, node_id) -> "NodeRef":
        """Build a NodeRef; issue ids are normalized to the plain number ("007" -> "7")."""
        node_type = NodeType(node_type)
        if node_type != NodeType.ISSUE:
            return cls(node_type, str(node_id))
        try:
            number = int(str(node_id).strip())
        except ValueError:
            raise ValidationError(f"Invalid issue number '{node_id}'", field="node")
        return cls(node_type, str(number))

    @classmethod
    def parse(cls, text: str) -> "NodeRef":
        """Parse ``"requirement:REQ-1"`` back into a NodeRef."""
        kind, sep, node_id = str(text).partition(":")
        if not sep or not node_id:
            raise ValidationError(f"Invalid node reference '{text}'", field="node")
        try:
            node_type = NodeType(kind)
        except ValueError:
            raise ValidationError(f"Unknown node type '{kind}'", field="node")
        return cls.of(node_type, node_id)


class LinkKind(str, Enum):
    """Allowed associations, each between a fixed pair of node types."""

    REQUIREMENT_ISSUE = "requirement_issue"
    ISSUE_CONFIGURATION_ITEM = "issue_configuration_item"
    ISSUE_RISK = "issue_risk"
    REQUIREMENT_TEST_CASE = "requirement_test_case"
    REQUIREMENT_RISK = "requirement_risk"
    REQUIREMENT_CONFIGURATION_ITEM = "requirement_configuration_item"
    RISK_CONFIGURATION_ITEM = "risk_configuration_item"

    @property
    def endpoints(self) -> Tuple[NodeType, NodeType]:
        return _LINK_ENDPOINTS[self]

    @classmethod
    def between(cls, a: NodeType, b: NodeType) -> Optional["LinkKind"]:
        """Return the kind linking two node types, in either order."""
        for kind, pair in _LINK_ENDPOINTS.items():
            if pair in ((a, b), (b, a)):
                return kind
        return None


_LINK_ENDPOINTS = {
    LinkKind.REQUIREMENT_ISSUE: (NodeType.REQUIREMENT, NodeType.ISSUE),
    LinkKind.ISSUE_CONFIGURATION_ITEM: (NodeType.ISSUE, NodeType.CONFIGURATION_ITEM),
    LinkKind.ISSUE_RISK: (NodeType.ISSUE, NodeType.RISK),
    LinkKind.REQUIREMENT_TEST_CASE: (NodeType.REQUIREMENT, NodeType.TEST_CASE),
    LinkKind.REQUIREMENT_RISK: (NodeType.REQUIREMENT, NodeType.RISK),
    LinkKind.REQUIREMENT_CONFIGURATION_ITEM: (NodeType.REQUIREMENT, NodeType.CONFIGURATION_ITEM),
    LinkKind.RISK_CONFIGURATION_ITEM: (NodeType.RISK, NodeType.CONFIGURATION_ITEM),
}


@dataclass(frozen=True, order=True)
class Link:
    """An undirected edge, stored with endpoints in the kind's declared order."""

    source: NodeRef
    target: NodeRef
    kind: LinkKind

    def other(self, node: NodeRef) -> NodeRef:
        return self.target if node == self.source else self.source

    def touches(self, node: NodeRef) -> bool:
        return node in (self.source, self.target)

    def to_dict(self) -> dict:
        return {"source": str(self.source), "target": str(self.target), "kind": self.kind.value}

    @classmethod
    def from_dict(cls, data: dict) -> "Link":
        return cls(
            source=NodeRef.parse(data["source"]),
            target=NodeRef.parse(data["target"]),
            kind=LinkKind(data["kind"]),
        )


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, tuple):
        return [_plain(v) for v in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


def _require_text(value: Any, name: str, owner: str) -> None:
    if value is None or not str(value).strip():
        raise ValidationError(f"{owner} {name} is required", field=name)


def _require_choice(value: Any, choices: tuple, name: str, owner: str) -> None:
    if value not in choices:
        raise ValidationError(
            f"{owner} {name} '{value}' is invalid. Valid: {choices}", field=name,
        )


class _ArtifactModel:
    """Shared behaviour for locally owned artifacts."""

    NODE_TYPE: NodeType
    LABEL = "Artifact"

    @property
    def key(self) -> str:
        return self.id  # type: ignore[attr-defined]

    @property
    def ref(self) -> NodeRef:
        return NodeRef(self.NODE_TYPE, self.key)

    def to_dict(self) -> dict:
        return {f.name: _plain(getattr(self, f.name))
                for f in fields(self)  # type: ignore[arg-type]
                if getattr(self, f.name) is not None}

    @classmethod
    def from_dict(cls, data: dict):
        known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        values = {k: v for k, v in data.items() if k in known}
        # JSON exports sometimes carry numeric ids; identifiers are strings
        if isinstance(values.get("id"), int) and not isinstance(values["id"], bool):
            values["id"] = str(values["id"])
        for name in ("created_by", "updated_by"):
            if name in values and not isinstance(values[name], Author):
                try:
                    values[name] = Author(values[name])
                except ValueError:
                    raise ValidationError(
                        f"{cls.LABEL} {name} '{values[name]}' is invalid", field=name,
                    )
        missing = [f.name for f in fields(cls)  # type: ignore[arg-type]
                   if f.default is MISSING and f.default_factory is MISSING
                   and f.name not in values]
        if missing:
            raise ValidationError(f"{cls.LABEL} {missing[0]} is required", field=missing[0])
        return cls(**values)

    def with_changes(self, **changes):
        """Return a copy with ``changes`` applied; the id cannot change."""
        if "id" in changes and changes["id"] != self.key:
            raise ValidationError(f"{self.LABEL} id cannot be changed", field="id")
        changes.pop("id", None)
        known = {f.name for f in fields(self)}  # type: ignore[arg-type]
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ValidationError(f"Unknown {self.LABEL} field(s): {unknown}", field=unknown[0])
        return replace(self, **changes)  # type: ignore[type-var]

    def validate(self) -> None:
        node_id = getattr(self, "id", None)
        if node_id is not None and not isinstance(node_id, str):
            raise ValidationError(f"{self.LABEL} id must be a string", field="id")
        _require_text(node_id, "id", self.LABEL)


@dataclass(frozen=True)
class Requirement(_ArtifactModel):
    """A project requirement."""

    NODE_TYPE = NodeType.REQUIREMENT
    LABEL = "Requirement"

    id: str
    description: str
    status: str = "Proposed"
    priority: str = "Medium"
    created_by: Author = Author.USER
    updated_by: Author = Author.USER
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def validate(self) -> None:
        super().validate()
        _require_text(self.description, "description", self.LABEL)
        _require_choice(self.status, REQUIREMENT_STATUSES, "status", self.LABEL)
        _require_choice(self.priority, PRIORITIES, "priority", self.LABEL)


@dataclass(frozen=True)
class TestCase(_ArtifactModel):
    """A test case, optionally carrying Gherkin text."""

    __test__ = False  # not a pytest class

    NODE_TYPE = NodeType.TEST_CASE
    LABEL = "Test case"

    id: str
    description: str
    status: str = "Not Run"
    gherkin: Optional[str] = None
    created_by: Author = Author.USER
    updated_by: Author = Author.USER
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def validate(self) -> None:
        super().validate()
        _require_text(self.description, "description", self.LABEL)
        _require_choice(self.status, TEST_STATUSES, "status", self.LABEL)

    @property
    def passed(self) -> bool:
        return self.status == "Passed"

    @property
    def executed(self) -> bool:
        return self.status != "Not Run"


@dataclass(frozen=True)
class Risk(_ArtifactModel):
    """A tracked project risk."""

    NODE_TYPE = NodeType.RISK
    LABEL = "Risk"

    id: str
    description: str
    probability: str = "Medium"
    impact: str = "Medium"
    status: str = "Open"
    created_by: Author = Author.USER
    updated_by: Author = Author.USER
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def validate(self) -> None:
        super().validate()
        _require_text(self.description, "description", self.LABEL)
        _require_choice(self.probability, RISK_LEVELS, "probability", self.LABEL)
        _require_choice(self.impact, RISK_LEVELS, "impact", self.LABEL)
        _require_choice(self.status, RISK_STATUSES, "status", self.LABEL)

    @property
    def is_open(self) -> bool:
        return self.status == "Open"

    @property
    def high_exposure(self) -> bool:
        return self.probability == "High" and self.impact == "High"


@dataclass(frozen=True)
class ConfigurationItem(_ArtifactModel):
    """A configuration item under change control."""

    NODE_TYPE = NodeType.CONFIGURATION_ITEM
    LABEL = "Configuration item"

    id: str
    name: str
    type: str = "Software Component"
    version: str = "1.0"
    status: str = "In Development"
    created_by: Author = Author.USER
    updated_by: Author = Author.USER
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def validate(self) -> None:
        super().validate()
        _require_text(self.name, "name", self.LABEL)
        _require_choice(self.status, CI_STATUSES, "status", self.LABEL)


ARTIFACT_MODELS = {
    NodeType.REQUIREMENT: Requirement,
    NodeType.TEST_CASE: TestCase,
    NodeType.RISK: Risk,
    NodeType.CONFIGURATION_ITEM: ConfigurationItem,
}


@dataclass(frozen=True)
class Issue:
    """Read-only mirror of an external tracker issue.

    ``active`` turns False when the tracker stops returning the issue; the
    mirror keeps it so existing links stay resolvable.
    """

    number: int
    title: str
    url: str = ""
    state: str = "open"
    active: bool = True

    @property
    def key(self) -> str:
        return str(self.number)

    @property
    def ref(self) -> NodeRef:
        return NodeRef(NodeType.ISSUE, self.key)

    def validate(self) -> None:
        if isinstance(self.number, bool) or not isinstance(self.number, int) or self.number <= 0:
            raise ValidationError(f"Issue number '{self.number}' must be a positive integer",
                                  field="number")
        _require_text(self.title, "title", "Issue")
        _require_choice(self.state, ISSUE_STATES, "state", "Issue")

    def to_dict(self) -> dict:
        return {"number": self.number, "title": self.title, "url": self.url,
                "state": self.state, "active": self.active}

    @classmethod
    def from_dict(cls, data: dict) -> "Issue":
        url = data.get("url", data.get("html_url", ""))
        return cls(number=data.get("number"), title=data.get("title", ""),
                   url=url or "", state=data.get("state", "open"),
                   active=bool(data.get("active", True)))


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DocumentSection:
    """One (possibly nested) section of a project document."""

    id: str
    title: str
    description: str = ""
    cmmi_pa_ids: Tuple[str, ...] = ()
    children: Tuple["DocumentSection", ...] = ()

    def walk(self) -> Iterator["DocumentSection"]:
        """Yield this section and its descendants in document order."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "cmmi_pa_ids": list(self.cmmi_pa_ids),
            "children": [c.to_dict() for c in self.children],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DocumentSection":
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "")),
            description=str(data.get("description") or ""),
            cmmi_pa_ids=tuple(data.get("cmmi_pa_ids", data.get("cmmiPaIds", ())) or ()),
            children=tuple(cls.from_dict(c) for c in data.get("children", ()) or ()),
        )


@dataclass(frozen=True)
class Document:
    """A project document made of ordered sections."""

    id: str
    title: str
    sections: Tuple[DocumentSection, ...] = field(default_factory=tuple)

    def walk(self) -> Iterator[DocumentSection]:
        for section in self.sections:
            yield from section.walk()

    def validate(self) -> None:
        _require_text(self.id, "id", "Document")
        _require_text(self.title, "title", "Document")

    def to_dict(self) -> dict:
        return {"id": self.id, "title": self.title,
                "sections": [s.to_dict() for s in self.sections]}

    @classmethod
    def from_dict(cls, data: dict) -> "Document":
        raw_sections = data.get("sections", data.get("content", ())) or ()
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "")),
            sections=tuple(DocumentSection.from_dict(s) for s in raw_sections),
        )
