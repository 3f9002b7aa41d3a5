"""Gantt chart assembly.

Fetching is the only step allowed to fail the whole chart. Every analysis
section runs through ``run_section``, which logs a failure and substitutes an
empty result so the rest of the chart is still produced.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Protocol, TypeVar

from ytgantt.adapter import FieldMatcher, normalize_issues, parse_timestamp
from ytgantt.graph import DependencyGraph, build_dependency_graph
from ytgantt.models import (
    ChartOptions,
    CriticalPathResult,
    GanttChart,
    NetworkAnalysis,
    Resource,
    Task,
)
from ytgantt.network import analyze_network
from ytgantt.resources import DEFAULT_CAPACITY, analyze_resources
from ytgantt.scheduler import compute_critical_path, compute_schedule

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TaskSource(Protocol):
    async def fetch_issues(self, project_id: str) -> list[dict]: ...


class AnalysisError(Exception):
    """The analysis could not run: the fetch failed or an option is invalid."""


def run_section(section: str, default: T, fn: Callable[..., T], *args) -> T:
    """Run one analysis step, falling back to *default* if it raises."""
    try:
        return fn(*args)
    except Exception:
        logger.warning("%s analysis failed; using empty result", section, exc_info=True)
        return default


async def fetch_tasks(
    source: TaskSource,
    project_id: str,
    matcher: FieldMatcher | None = None,
) -> list[Task]:
    try:
        raws = await source.fetch_issues(project_id)
    except Exception as e:
        raise AnalysisError(f"Failed to fetch issues for project {project_id}: {e}") from e
    return normalize_issues(raws or [], matcher)


def _bare_graph(tasks: list[Task]) -> DependencyGraph:
    graph = DependencyGraph()
    for t in tasks:
        graph.add_task(t.id)
    return graph


def prepare(tasks: list[Task], now: datetime | None = None) -> DependencyGraph:
    """Build the dependency graph and derive per-task schedule fields."""
    graph = run_section("Dependency graph", _bare_graph(tasks), build_dependency_graph, tasks)
    run_section("Scheduling", tasks, compute_schedule, tasks, graph, now)
    return graph


# ---------------------------------------------------------------------------
# Filtering and hierarchy
# ---------------------------------------------------------------------------


def date_range(options: ChartOptions) -> tuple[datetime | None, datetime | None]:
    """Parsed ``start_date``/``end_date`` options; unset options are None."""
    bounds = []
    for name in ("start_date", "end_date"):
        value = getattr(options, name)
        parsed = parse_timestamp(value) if value else None
        if value and parsed is None:
            raise AnalysisError(f"Invalid {name} '{value}', expected YYYY-MM-DD")
        bounds.append(parsed)
    return bounds[0], bounds[1]


def filter_items(tasks: list[Task], options: ChartOptions) -> list[Task]:
    """Apply the completed-item and date-range filters.

    Undated items are kept: they are unscheduled, not out of range.
    """
    start, end = date_range(options)

    items = []
    for t in tasks:
        if not options.include_completed and t.is_completed:
            continue
        first = t.start_date or t.end_date
        last = t.end_date or t.start_date
        if end is not None and first is not None and first > end:
            continue
        if start is not None and last is not None and last < start:
            continue
        items.append(t)
    return items


def build_hierarchy(items: list[Task]) -> list[Task]:
    """Nest items under their parents; returns the top-level items."""
    by_id = {t.id: t for t in items}
    for t in items:
        t.children = []
        t.level = 0

    roots: list[Task] = []
    for t in items:
        parent = by_id.get(t.parent_id) if t.parent_id else None
        if parent is None or parent is t:
            roots.append(t)
        else:
            parent.children.append(t)

    reached: set[str] = set()
    for root in roots:
        _assign_levels(root, reached)

    # Parent chains that loop never reach a root; cut each loop at its first
    # member and surface that member as a root.
    position = {t.id: i for i, t in enumerate(items)}
    for t in items:
        if t.id in reached:
            continue
        cut = _loop_head(t, by_id, position)
        by_id[cut.parent_id].children.remove(cut)
        roots.append(cut)
        _assign_levels(cut, reached)
    return roots


def _loop_head(task: Task, by_id: dict[str, Task], position: dict[str, int]) -> Task:
    """Earliest item of the parent loop that *task* hangs from or sits on."""
    seen: set[str] = set()
    while task.id not in seen:
        seen.add(task.id)
        task = by_id[task.parent_id]
    loop = [task]
    node = by_id[task.parent_id]
    while node is not task:
        loop.append(node)
        node = by_id[node.parent_id]
    return min(loop, key=lambda t: position[t.id])


def _assign_levels(root: Task, reached: set[str]) -> None:
    stack = [(root, 0)]
    while stack:
        task, level = stack.pop()
        if task.id in reached:
            continue
        reached.add(task.id)
        task.level = level
        stack.extend((c, level + 1) for c in reversed(task.children))


# ---------------------------------------------------------------------------
# Statistics and recommendations
# ---------------------------------------------------------------------------


def chart_statistics(
    items: list[Task],
    critical: CriticalPathResult | None,
    resources: list[Resource] | None,
) -> dict:
    total = len(items)
    completed = sum(1 for t in items if t.progress >= 100)
    not_started = sum(1 for t in items if t.progress == 0)
    starts = [t.start_date for t in items if t.start_date]
    ends = [t.end_date for t in items if t.end_date]
    return {
        "totalItems": total,
        "completedItems": completed,
        "inProgressItems": total - completed - not_started,
        "notStartedItems": not_started,
        "averageProgress": round(sum(t.progress for t in items) / total, 1) if total else 0,
        "scheduledItems": len(starts),
        "unscheduledItems": total - len(starts),
        "totalEstimatedHours": round(sum(t.estimated_hours for t in items), 1),
        "totalActualHours": round(sum(t.actual_hours for t in items), 1),
        "criticalPathLength": len(critical.path) if critical else 0,
        "criticalPathDuration": critical.duration if critical else 0,
        "overallocatedResources": sum(1 for r in resources or [] if r.overallocation),
        "timeline": {
            "earliestStart": min(starts).date().isoformat() if starts else None,
            "latestEnd": max(ends).date().isoformat() if ends else None,
        },
    }


def chart_recommendations(
    items: list[Task],
    critical: CriticalPathResult | None,
    resources: list[Resource] | None,
    network: NetworkAnalysis,
    now: datetime | None = None,
) -> list[str]:
    now = now or datetime.now(timezone.utc)
    recommendations: list[str] = []

    if critical and critical.path:
        recommendations.append(
            f"Focus on the {len(critical.path)} critical path issues "
            f"({critical.duration} days) to avoid project delays"
        )
    over = [r.name for r in resources or [] if r.overallocation]
    if over:
        recommendations.append(
            f"{len(over)} resources are overallocated ({', '.join(over)}) - rebalance assignments"
        )
    unscheduled = [t for t in items if t.start_date is None]
    if unscheduled:
        recommendations.append(
            f"{len(unscheduled)} issues have no start date and are not scheduled"
        )
    overdue = [t for t in items if t.due_date and t.due_date < now and not t.is_completed]
    if overdue:
        recommendations.append(f"{len(overdue)} issues are past their due date")
    if network.circular.has_cycle:
        recommendations.append(
            "Circular dependencies detected: " + " -> ".join(network.circular.path)
        )
    if network.health.score < 60:
        recommendations.append(
            f"Dependency network health is {network.health.rating} "
            f"({network.health.score}/100) - review dependencies"
        )
    return recommendations


# ---------------------------------------------------------------------------
# Chart
# ---------------------------------------------------------------------------


async def generate_gantt_chart(
    source: TaskSource,
    project_id: str,
    options: ChartOptions | None = None,
    matcher: FieldMatcher | None = None,
    capacity: float = DEFAULT_CAPACITY,
    now: datetime | None = None,
) -> GanttChart:
    """Fetch a project's issues and assemble the full Gantt chart."""
    options = options or ChartOptions()
    now = now or datetime.now(timezone.utc)
    date_range(options)
    logger.info("Generating Gantt chart for project %s", project_id)

    tasks = await fetch_tasks(source, project_id, matcher)
    graph = prepare(tasks, now)

    critical = None
    if options.include_critical_path:
        critical = run_section(
            "Critical path", CriticalPathResult(), compute_critical_path, tasks, graph
        )
    resources = None
    if options.include_resources:
        resources = run_section("Resource", [], analyze_resources, tasks, capacity)
    network = run_section("Network", NetworkAnalysis(), analyze_network, graph, tasks)

    items = filter_items(tasks, options)
    statistics = run_section("Statistics", {}, chart_statistics, items, critical, resources)
    recommendations = run_section(
        "Recommendation", [], chart_recommendations, items, critical, resources, network, now
    )
    if options.hierarchical_view:
        items = run_section("Hierarchy", items, build_hierarchy, items)

    return GanttChart(
        project_id=project_id,
        generated_at=now,
        options=options,
        items=items,
        critical_path=critical,
        resources=resources,
        network=network,
        statistics=statistics,
        recommendations=recommendations,
    )
