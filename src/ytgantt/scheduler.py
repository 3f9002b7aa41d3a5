"""Duration/progress scheduling and critical path analysis."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone

import networkx as nx

from ytgantt.graph import DependencyGraph
from ytgantt.models import CriticalPathResult, PathBottleneck, Task

_STATE_PROGRESS = (
    (("open", "new"), 0),
    (("progress", "working"), 50),
    (("review", "testing"), 80),
    (("done", "closed"), 100),
)
DEFAULT_PROGRESS = 25


# ---------------------------------------------------------------------------
# Per-task derived fields
# ---------------------------------------------------------------------------


def calculate_duration(
    start: datetime | None,
    end: datetime | None,
    now: datetime | None = None,
) -> int:
    """Whole days between start and end (or now), rounded up. 0 without a start."""
    if start is None:
        return 0
    end = end or now or datetime.now(timezone.utc)
    seconds = abs((end - start).total_seconds())
    return math.ceil(seconds / 86400)


def calculate_progress(task: Task) -> int:
    if task.progress_field is not None:
        return min(100, max(0, task.progress_field))
    if task.resolved_at is not None:
        return 100
    state = task.status.lower()
    for words, pct in _STATE_PROGRESS:
        if any(w in state for w in words):
            return pct
    return DEFAULT_PROGRESS


def calculate_utilization(estimated_hours: float, actual_hours: float) -> int:
    if estimated_hours <= 0:
        return 0
    return max(0, round(actual_hours / estimated_hours * 100))


def compute_schedule(
    tasks: list[Task],
    graph: DependencyGraph,
    now: datetime | None = None,
) -> list[Task]:
    """Fill duration, progress, utilization and dependencies on each task."""
    now = now or datetime.now(timezone.utc)
    for task in tasks:
        task.duration_days = calculate_duration(task.start_date, task.end_date, now)
        task.progress = calculate_progress(task)
        task.resource_utilization = calculate_utilization(task.estimated_hours, task.actual_hours)
        task.dependencies = list(graph.edges_from(task.id))
    return tasks


# ---------------------------------------------------------------------------
# Critical path
# ---------------------------------------------------------------------------


@dataclass
class LongestPath:
    """Longest path plus the longest path duration through every task."""

    path: list[str]
    duration: int
    through: dict[str, int]


def build_schedule_graph(tasks: list[Task], graph: DependencyGraph) -> nx.DiGraph:
    """Precedence graph (prerequisite -> dependent) over known tasks only."""
    G = nx.DiGraph()
    for task in tasks:
        G.add_node(task.id, duration=task.duration_days)
    for task in tasks:
        for edge in graph.edges_from(task.id):
            if edge.target_id in G and edge.target_id != task.id:
                G.add_edge(edge.target_id, task.id)
    return G


def _longest_path_acyclic(G: nx.DiGraph) -> LongestPath:
    """Forward + backward pass in topological order."""
    dur = {n: G.nodes[n]["duration"] for n in G}
    order = list(nx.topological_sort(G))

    # --- Forward pass: longest chain ending at each node ---
    to: dict[str, int] = {}
    for n in order:
        to[n] = dur[n] + max((to[p] for p in G.predecessors(n)), default=0)

    # --- Backward pass: longest chain starting at each node ---
    frm: dict[str, int] = {}
    nxt: dict[str, str | None] = {}
    for n in reversed(order):
        best, choice = 0, None
        for s in G.successors(n):
            if choice is None or frm[s] > best:
                best, choice = frm[s], s
        frm[n] = dur[n] + best
        nxt[n] = choice

    start, longest = None, -1
    for n in G:
        if G.in_degree(n) == 0 and frm[n] > longest:
            start, longest = n, frm[n]

    path: list[str] = []
    node = start
    while node is not None:
        path.append(node)
        node = nxt[node]

    through = {n: to[n] + frm[n] - dur[n] for n in G}
    return LongestPath(path=path, duration=max(longest, 0), through=through)


def _best_simple_path(S: nx.DiGraph) -> tuple[list[str], int]:
    """Longest simple path inside one strongly connected component.

    Exhaustive, so only ever run on the (small) cyclic components.
    """
    best_path: list[str] = []
    best = -1
    for root in S:
        stack = [(root, [root], frozenset([root]), S.nodes[root]["duration"])]
        while stack:
            node, path, on_path, total = stack.pop()
            if total > best:
                best_path, best = path, total
            for s in reversed(list(S.successors(node))):
                if s not in on_path:
                    stack.append((s, path + [s], on_path | {s}, total + S.nodes[s]["duration"]))
    return best_path, max(best, 0)


def _longest_path_condensed(G: nx.DiGraph) -> LongestPath:
    """Collapse each cycle into one node weighted by its best internal path,
    then run the acyclic pass over the condensed graph."""
    order = {n: i for i, n in enumerate(G)}
    components = sorted(
        (sorted(c, key=order.__getitem__) for c in nx.strongly_connected_components(G)),
        key=lambda members: order[members[0]],
    )

    rep: dict[str, str] = {}
    inner: dict[str, list[str]] = {}
    D = nx.DiGraph()
    for members in components:
        head = members[0]
        if len(members) == 1:
            inner[head], weight = members, G.nodes[head]["duration"]
        else:
            inner[head], weight = _best_simple_path(G.subgraph(members))
        for n in members:
            rep[n] = head
        D.add_node(head, duration=weight)
    for u, v in G.edges:
        if rep[u] != rep[v]:
            D.add_edge(rep[u], rep[v])

    condensed = _longest_path_acyclic(D)
    return LongestPath(
        path=[n for head in condensed.path for n in inner[head]],
        duration=condensed.duration,
        through={n: condensed.through[rep[n]] for n in G},
    )


def find_critical_path(tasks: list[Task], graph: DependencyGraph) -> LongestPath:
    """Longest duration path through the precedence graph. Does not mutate tasks."""
    G = build_schedule_graph(tasks, graph)
    if len(G) == 0:
        return LongestPath(path=[], duration=0, through={})
    if nx.is_directed_acyclic_graph(G):
        return _longest_path_acyclic(G)
    return _longest_path_condensed(G)


def compute_critical_path(tasks: list[Task], graph: DependencyGraph) -> CriticalPathResult:
    """Mark critical tasks, assign slack, and summarize the critical path."""
    longest = find_critical_path(tasks, graph)
    on_path = set(longest.path)

    slack: dict[str, int] = {}
    for task in tasks:
        task.is_on_critical_path = task.id in on_path
        if task.is_on_critical_path:
            task.slack_days = 0
        else:
            through = longest.through.get(task.id, task.duration_days)
            task.slack_days = max(0, longest.duration - through)
        slack[task.id] = task.slack_days

    by_id = {t.id: t for t in tasks}
    bottlenecks = [
        PathBottleneck(issue_id=tid, impact=by_id[tid].duration_days, reason="Critical path item")
        for tid in longest.path
        if by_id[tid].duration_days > 0
    ]

    return CriticalPathResult(
        path=list(longest.path),
        duration=longest.duration,
        bottlenecks=bottlenecks,
        recommendations=path_recommendations(longest.path, by_id),
        slack=slack,
    )


def path_recommendations(path: list[str], by_id: dict[str, Task]) -> list[str]:
    recommendations: list[str] = []
    if not path:
        return recommendations

    recommendations.append(f"Critical path identified with {len(path)} issues")
    items = [by_id[tid] for tid in path if tid in by_id]
    unfinished = [t for t in items if t.progress < 100]
    if unfinished:
        recommendations.append(f"{len(unfinished)} critical path issues need attention")
    low_slack = [t for t in items if t.slack_days < 2]
    if low_slack:
        recommendations.append(f"{len(low_slack)} items have minimal slack time")
    return recommendations
