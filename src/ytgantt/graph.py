"""Dependency graph construction from YouTrack issue links."""

from __future__ import annotations

import copy
import logging

import networkx as nx

from ytgantt.models import Constraint, DependencyEdge, DependencyKind, Task

logger = logging.getLogger(__name__)

# Link types that express a temporal relation. Matched exactly.
DEPENDENCY_LINK_TYPES = (
    "Depend",
    "Depends",
    "Blocks",
    "Start together",
    "Finish together",
    "Duplicate",
    "Relates",
)

_KIND_KEYWORDS = (
    ("depend", DependencyKind.FINISH_TO_START),
    ("start", DependencyKind.START_TO_START),
    ("finish", DependencyKind.FINISH_TO_FINISH),
    ("block", DependencyKind.START_TO_FINISH),
)

_LINK_TYPE_FOR_KIND = {
    DependencyKind.FINISH_TO_START: "Depends",
    DependencyKind.START_TO_START: "Start together",
    DependencyKind.FINISH_TO_FINISH: "Finish together",
    DependencyKind.START_TO_FINISH: "Blocks",
}


# Verbs that read "this issue waits for the other one".
_DEPENDENT_VERBS = ("depend", "blocked by")


def link_type_name(link: dict) -> str:
    link_type = link.get("linkType")
    if not isinstance(link_type, dict):
        return ""
    name = link_type.get("name")
    return name if isinstance(name, str) else ""


def dependent_direction(link_type: dict) -> str | None:
    """OUTWARD or INWARD: the end of a directed link type whose verb says
    "depends on". None when neither verb says so."""
    for direction, key in (("OUTWARD", "sourceToTarget"), ("INWARD", "targetToSource")):
        verb = link_type.get(key)
        if isinstance(verb, str) and any(v in verb.lower() for v in _DEPENDENT_VERBS):
            return direction
    return None


def is_dependency_link(link: dict) -> bool:
    return link_type_name(link) in DEPENDENCY_LINK_TYPES


def classify_link(name: str) -> DependencyKind:
    """Map a link-type name to a dependency kind. Unmatched names are FS."""
    lowered = name.lower()
    for keyword, kind in _KIND_KEYWORDS:
        if keyword in lowered:
            return kind
    return DependencyKind.FINISH_TO_START


def link_type_for(kind: DependencyKind) -> str:
    """YouTrack link type used when creating a dependency of this kind."""
    return _LINK_TYPE_FOR_KIND[DependencyKind(kind)]


class DependencyGraph:
    """Task id -> outgoing dependency edges, in insertion order."""

    def __init__(self) -> None:
        self.edges: dict[str, list[DependencyEdge]] = {}

    def add_task(self, task_id: str) -> None:
        self.edges.setdefault(task_id, [])

    def add_edge(self, edge: DependencyEdge) -> None:
        self.edges.setdefault(edge.source_id, []).append(edge)

    @property
    def task_ids(self) -> list[str]:
        return list(self.edges)

    @property
    def edge_count(self) -> int:
        return sum(len(deps) for deps in self.edges.values())

    def edges_from(self, task_id: str) -> list[DependencyEdge]:
        return self.edges.get(task_id, [])

    def targets_of(self, task_id: str) -> list[str]:
        return [e.target_id for e in self.edges.get(task_id, [])]

    def all_edges(self) -> list[DependencyEdge]:
        return [e for deps in self.edges.values() for e in deps]

    def with_edge(self, edge: DependencyEdge) -> DependencyGraph:
        """Copy of the graph with *edge* added; the original is untouched."""
        clone = DependencyGraph()
        clone.edges = {tid: list(deps) for tid, deps in self.edges.items()}
        clone.add_edge(copy.copy(edge))
        return clone

    def to_digraph(self) -> nx.DiGraph:
        """networkx view in dependency direction (dependent -> prerequisite)."""
        G = nx.DiGraph()
        G.add_nodes_from(self.edges)
        for edge in self.all_edges():
            G.add_edge(edge.source_id, edge.target_id, kind=edge.kind.value)
        return G


def build_dependency_graph(tasks: list[Task]) -> DependencyGraph:
    """Build the graph from each task's raw link list.

    YouTrack lists a directed link on both ends (OUTWARD on one issue, INWARD
    on the other). Only the end whose verb reads "depends on" is kept;
    OUTWARD when the link type carries no verbs. Undirected links are kept
    once per pair. Malformed link entries are skipped.
    """
    graph = DependencyGraph()
    seen_pairs: set[frozenset[str]] = set()

    for task in tasks:
        graph.add_task(task.id)
        for link in task.links:
            if not isinstance(link, dict) or not is_dependency_link(link):
                continue
            direction = link.get("direction") or "OUTWARD"
            issues = link.get("issues") or []
            if not isinstance(direction, str) or not isinstance(issues, list):
                logger.warning("Skipping malformed link on %s: %r", task.id, link)
                continue
            direction = direction.upper()
            if direction != "BOTH":
                wanted = dependent_direction(link["linkType"]) or "OUTWARD"
                if direction != wanted:
                    continue
            kind = classify_link(link_type_name(link))
            for target in issues:
                target_id = target.get("id") if isinstance(target, dict) else None
                if not isinstance(target_id, str) or not target_id:
                    continue
                if direction == "BOTH":
                    pair = frozenset((task.id, target_id))
                    if pair in seen_pairs:
                        continue
                    seen_pairs.add(pair)
                graph.add_edge(
                    DependencyEdge(
                        source_id=task.id,
                        target_id=target_id,
                        kind=kind,
                        lag_days=0,
                        constraint=Constraint.HARD,
                    )
                )

    return graph
