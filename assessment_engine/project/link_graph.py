#!/usr/bin/env python3
# CUI // SP-CTI
"""Link Graph: typed, undirected associations between project nodes.

Adjacency is keyed by NodeRef (collection + id) so a requirement and a risk
may share an id without colliding. The graph does not know which nodes
exist; the owning ArtifactStore injects an ``is_linkable`` predicate and is
the only caller of ``cascade_delete``.
"""

import logging
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from assessment_engine.resilience.errors import ReferentialError
from assessment_engine.schemas.artifacts import Link, LinkKind, NodeRef

logger = logging.getLogger("assessment_engine.project.link_graph")

Adjacency = Dict[NodeRef, Set[Tuple[NodeRef, LinkKind]]]


def normalize_link(a: NodeRef, b: NodeRef, kind: LinkKind) -> Link:
    """Order endpoints per the kind's declaration.

    Raises:
        ReferentialError: If the endpoint types do not match the kind.
    """
    kind = LinkKind(kind)
    first, second = kind.endpoints
    if (a.node_type, b.node_type) == (first, second):
        return Link(a, b, kind)
    if (b.node_type, a.node_type) == (first, second):
        return Link(b, a, kind)
    raise ReferentialError(
        f"Link kind '{kind.value}' connects {first.value} and {second.value}, "
        f"got {a.node_type.value} and {b.node_type.value}",
        node_id=str(a),
    )


class LinkGraph:
    """Set of undirected, kind-tagged edges between NodeRefs."""

    def __init__(self, is_linkable: Callable[[NodeRef], bool]):
        self._is_linkable = is_linkable
        self._adjacency: Adjacency = {}

    # -- mutation ---------------------------------------------------------

    def link(self, a: NodeRef, b: NodeRef, kind: LinkKind) -> bool:
        """Add an edge. Returns False if it already existed.

        Raises:
            ReferentialError: Wrong endpoint types, or either node missing
                or not linkable (e.g. an inactive issue).
        """
        edge = normalize_link(a, b, kind)
        for node in (edge.source, edge.target):
            if not self._is_linkable(node):
                raise ReferentialError(f"Cannot link to unknown or inactive node {node}",
                                       node_id=str(node))
        if self.has_link(edge.source, edge.target, edge.kind):
            return False
        self._adjacency.setdefault(edge.source, set()).add((edge.target, edge.kind))
        self._adjacency.setdefault(edge.target, set()).add((edge.source, edge.kind))
        logger.debug("Linked %s <-> %s (%s)", edge.source, edge.target, edge.kind.value)
        return True

    def unlink(self, a: NodeRef, b: NodeRef, kind: LinkKind) -> bool:
        """Remove an edge. Returns True if one was removed."""
        edge = normalize_link(a, b, kind)
        if not self.has_link(edge.source, edge.target, edge.kind):
            return False
        self._discard(edge)
        logger.debug("Unlinked %s <-> %s (%s)", edge.source, edge.target, edge.kind.value)
        return True

    def cascade_delete(self, node: NodeRef) -> Tuple[Link, ...]:
        """Remove every edge touching ``node``; return them sorted."""
        removed = sorted(
            normalize_link(node, other, kind)
            for other, kind in self._adjacency.get(node, ())
        )
        for edge in removed:
            self._discard(edge)
        self._adjacency.pop(node, None)
        if removed:
            logger.debug("Cascade removed %d link(s) touching %s", len(removed), node)
        return tuple(removed)

    def remove_links(self, links: Iterable[Link]) -> Tuple[Link, ...]:
        """Remove the given edges if present; return those actually removed."""
        removed = []
        for edge in sorted(set(links)):
            if self.has_link(edge.source, edge.target, edge.kind):
                self._discard(edge)
                removed.append(edge)
        return tuple(removed)

    def restore(self, links: Iterable[Link]) -> None:
        """Re-add edges without linkability checks (bulk load of trusted state)."""
        for edge in links:
            edge = normalize_link(edge.source, edge.target, edge.kind)
            self._adjacency.setdefault(edge.source, set()).add((edge.target, edge.kind))
            self._adjacency.setdefault(edge.target, set()).add((edge.source, edge.kind))

    def _discard(self, edge: Link) -> None:
        for here, there in ((edge.source, edge.target), (edge.target, edge.source)):
            peers = self._adjacency.get(here)
            if peers is None:
                continue
            peers.discard((there, edge.kind))
            if not peers:
                del self._adjacency[here]

    # -- queries ----------------------------------------------------------

    def has_link(self, a: NodeRef, b: NodeRef, kind: LinkKind) -> bool:
        return (b, LinkKind(kind)) in self._adjacency.get(a, ())

    def links_of(self, node: NodeRef) -> FrozenSet[Tuple[NodeRef, LinkKind]]:
        return frozenset(self._adjacency.get(node, ()))

    def neighbors(self, node: NodeRef, kind: Optional[LinkKind] = None) -> Tuple[NodeRef, ...]:
        """Adjacent nodes, optionally restricted to one kind, sorted."""
        return tuple(sorted(
            other for other, k in self._adjacency.get(node, ())
            if kind is None or k == kind
        ))

    def all_links(self) -> Tuple[Link, ...]:
        """Every edge exactly once, in declared endpoint order, sorted."""
        edges = set()
        for node, peers in self._adjacency.items():
            for other, kind in peers:
                edges.add(normalize_link(node, other, kind))
        return tuple(sorted(edges))

    def count_by_kind(self) -> Dict[LinkKind, int]:
        counts = {kind: 0 for kind in LinkKind}
        for edge in self.all_links():
            counts[edge.kind] += 1
        return counts

    def __len__(self) -> int:
        return len(self.all_links())

    def copy(self) -> "LinkGraph":
        clone = LinkGraph(self._is_linkable)
        clone._adjacency = {node: set(peers) for node, peers in self._adjacency.items()}
        return clone

    def touching(self, nodes: Iterable[NodeRef]) -> List[Link]:
        """Edges touching any of ``nodes``, sorted."""
        wanted = set(nodes)
        return [edge for edge in self.all_links()
                if edge.source in wanted or edge.target in wanted]
