"""Circular dependency detection.

Detection is advisory: a failure inside the detector is logged and reported
as "no cycle" so that it can never block dependency writes.
"""

from __future__ import annotations

import logging

from ytgantt.graph import DependencyGraph
from ytgantt.models import CycleCheck, DependencyEdge

logger = logging.getLogger(__name__)


def _walk(
    graph: DependencyGraph,
    start: str,
    visited: set[str],
    closing: str | None = None,
) -> list[str] | None:
    """Iterative DFS from *start* following dependency edges.

    Returns the current DFS path (plus the node that closes the loop) as soon
    as *closing* is reached or a node on the current path is revisited.
    """
    visited.add(start)
    path = [start]
    on_path = {start}
    stack = [iter(graph.targets_of(start))]

    while stack:
        nxt = next(stack[-1], None)
        if nxt is None:
            stack.pop()
            on_path.discard(path.pop())
            continue
        if closing is not None and nxt == closing:
            return path + [closing]
        if nxt in on_path:
            return path + [nxt]
        if nxt not in visited:
            visited.add(nxt)
            path.append(nxt)
            on_path.add(nxt)
            stack.append(iter(graph.targets_of(nxt)))

    return None


def detect_cycle(graph: DependencyGraph, proposed: DependencyEdge | None = None) -> CycleCheck:
    """Check *graph* (optionally with *proposed* added) for a cycle.

    With a proposed edge ``source -> target`` the search starts at the
    target: reaching the source means the new edge would close a loop.
    Without one, every task is audited.
    """
    try:
        if proposed is not None:
            if proposed.source_id == proposed.target_id:
                return CycleCheck(True, [proposed.source_id])
            found = _walk(graph, proposed.target_id, set(), closing=proposed.source_id)
            return CycleCheck(True, found) if found else CycleCheck(False, [])

        visited: set[str] = set()
        nodes = list(graph.task_ids)
        nodes += [t for t in (e.target_id for e in graph.all_edges()) if t not in graph.edges]
        for node in nodes:
            if node in visited:
                continue
            found = _walk(graph, node, visited)
            if found:
                return CycleCheck(True, found)
        return CycleCheck(False, [])
    except Exception:
        logger.warning("Failed to detect circular dependencies", exc_info=True)
        return CycleCheck(False, [])
