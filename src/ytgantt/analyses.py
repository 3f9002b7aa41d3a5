"""Project-level analyses and dependency routing.

Each function fetches a fresh snapshot of the project's issues, builds its
own graph, and returns a JSON-ready payload. Expected negative outcomes (an
unknown issue, a cycle) are ``{"success": False, ...}`` payloads, not
exceptions.
"""

from __future__ import annotations

import logging
from typing import Protocol

import networkx as nx

from ytgantt.adapter import FieldMatcher
from ytgantt.chart import TaskSource, fetch_tasks, prepare, run_section
from ytgantt.cycles import detect_cycle
from ytgantt.graph import DependencyGraph, link_type_for
from ytgantt.models import Constraint, CriticalPathResult, DependencyEdge, DependencyKind, Task
from ytgantt.network import analyze_network
from ytgantt.resources import (
    DEFAULT_CAPACITY,
    analyze_resources,
    identify_resource_conflicts,
    resource_recommendations,
    suggest_resource_optimizations,
)
from ytgantt.scheduler import compute_critical_path, find_critical_path

logger = logging.getLogger(__name__)

NEUTRAL_IMPACT = {
    "projectDelayDays": 0,
    "affectedTaskIds": [],
    "criticalPathChanged": False,
    "resourceConflicts": [],
}


class IssueLinker(TaskSource, Protocol):
    async def create_issue_link(self, source_id: str, target_id: str, link_type: str) -> dict: ...


def resolve_issue(tasks: list[Task], ref: str) -> str | None:
    """Map a database id or readable id (PRJ-12) to the task id."""
    if not ref:
        return None
    for t in tasks:
        if ref in (t.id, t.id_readable):
            return t.id
    return None


def _error(message: str, **extra) -> dict:
    return {"success": False, "error": message, **extra}


def _ordered(tasks: list[Task], ids: set[str]) -> list[str]:
    return [t.id for t in tasks if t.id in ids]


# ---------------------------------------------------------------------------
# Dependency routing
# ---------------------------------------------------------------------------


def calculate_timeline_impact(
    tasks: list[Task],
    graph: DependencyGraph,
    edge: DependencyEdge,
    capacity: float = DEFAULT_CAPACITY,
) -> dict:
    """Compare the critical path before and after adding *edge*."""
    before = find_critical_path(tasks, graph)
    hypothetical = graph.with_edge(edge)
    after = find_critical_path(tasks, hypothetical)

    # Everything that (transitively) depends on the source now waits too.
    G = hypothetical.to_digraph()
    affected = _ordered(tasks, {edge.source_id} | nx.ancestors(G, edge.source_id))

    delay = max(0, after.duration - before.duration)
    if edge.lag_days > 0 and edge.source_id in after.path:
        delay += edge.lag_days

    assignees = {t.assignee for t in tasks if t.id in set(affected)}
    conflicts = [
        r.name
        for r in analyze_resources(tasks, capacity)
        if r.overallocation and r.id in assignees
    ]

    return {
        "projectDelayDays": delay,
        "affectedTaskIds": affected,
        "criticalPathChanged": before.path != after.path,
        "resourceConflicts": conflicts,
    }


def dependency_recommendations(impact: dict) -> list[str]:
    recommendations: list[str] = []
    if impact["projectDelayDays"] > 0:
        recommendations.append(
            f"This dependency may delay the project by {impact['projectDelayDays']} days"
        )
    if impact["criticalPathChanged"]:
        recommendations.append("This dependency affects the critical path - monitor closely")
    if impact["resourceConflicts"]:
        recommendations.append(
            f"Resource conflicts detected: {', '.join(impact['resourceConflicts'])}"
        )
    if impact["affectedTaskIds"]:
        recommendations.append(
            f"{len(impact['affectedTaskIds'])} issues will be affected by this dependency"
        )
    return recommendations


def _make_edge(tasks, source_ref, target_ref, kind, lag, constraint) -> DependencyEdge | dict:
    """Validate routing arguments; returns an edge or an error payload."""
    try:
        kind = DependencyKind(kind)
        constraint = Constraint(constraint)
    except ValueError as e:
        return _error(f"Invalid dependency parameters: {e}")
    source_id = resolve_issue(tasks, source_ref)
    if source_id is None:
        return _error(f"Issue {source_ref} not found in project")
    target_id = resolve_issue(tasks, target_ref)
    if target_id is None:
        return _error(f"Issue {target_ref} not found in project")
    return DependencyEdge(
        source_id=source_id,
        target_id=target_id,
        kind=kind,
        lag_days=int(lag or 0),
        constraint=constraint,
    )


def _circular_error(path: list[str]) -> dict:
    return _error(
        "Circular dependency detected",
        circularPath=path,
        recommendation="Remove or modify existing dependencies to avoid circular reference",
    )


async def route_dependency(
    source: IssueLinker,
    project_id: str,
    source_issue: str,
    target_issue: str,
    kind: str = "FS",
    lag: int = 0,
    constraint: str = "hard",
    matcher: FieldMatcher | None = None,
    capacity: float = DEFAULT_CAPACITY,
) -> dict:
    """Create "source depends on target" after a cycle check, with impact analysis."""
    tasks = await fetch_tasks(source, project_id, matcher)
    graph = prepare(tasks)

    edge = _make_edge(tasks, source_issue, target_issue, kind, lag, constraint)
    if isinstance(edge, dict):
        return edge

    check = detect_cycle(graph, edge)
    if check.has_cycle:
        logger.info("Rejected dependency %s: cycle %s", edge.id, check.path)
        return _circular_error(check.path)

    link = await source.create_issue_link(edge.source_id, edge.target_id, link_type_for(edge.kind))

    impact = run_section(
        "Timeline impact", dict(NEUTRAL_IMPACT), calculate_timeline_impact, tasks, graph, edge, capacity
    )
    updated = run_section("Critical path", None, compute_critical_path, tasks, graph.with_edge(edge))

    return {
        "success": True,
        "dependency": {
            "id": edge.id,
            "source": edge.source_id,
            "target": edge.target_id,
            "type": edge.kind.value,
            "lag": edge.lag_days,
            "constraint": edge.constraint.value,
            "description": edge.kind.description,
            "linkType": link.get("linkType") if isinstance(link, dict) else None,
        },
        "impact": impact,
        "criticalPath": updated.to_dict() if updated else None,
        "recommendations": dependency_recommendations(impact),
    }


async def route_dependencies(
    source: IssueLinker,
    project_id: str,
    dependencies: list[dict],
    validate_circular: bool = True,
    matcher: FieldMatcher | None = None,
) -> dict:
    """Route several dependencies; each accepted edge counts for the next check."""
    tasks = await fetch_tasks(source, project_id, matcher)
    graph = prepare(tasks)

    results: list[dict] = []
    for request in dependencies:
        entry = {"source": request.get("sourceIssueId"), "target": request.get("targetIssueId")}
        edge = _make_edge(
            tasks,
            request.get("sourceIssueId"),
            request.get("targetIssueId"),
            request.get("dependencyType", "FS"),
            request.get("lag", 0),
            request.get("constraint", "hard"),
        )
        if isinstance(edge, dict):
            results.append({**entry, **edge})
            continue
        if validate_circular:
            check = detect_cycle(graph, edge)
            if check.has_cycle:
                results.append({**entry, **_circular_error(check.path)})
                continue
        try:
            await source.create_issue_link(edge.source_id, edge.target_id, link_type_for(edge.kind))
        except Exception as e:
            logger.warning("Failed to create dependency %s", edge.id, exc_info=True)
            results.append({**entry, **_error(str(e))})
            continue
        graph = graph.with_edge(edge)
        results.append({**entry, "success": True, "id": edge.id, "type": edge.kind.value})

    successful = sum(1 for r in results if r["success"])
    return {
        "success": successful == len(results),
        "projectId": project_id,
        "summary": {
            "total": len(results),
            "successful": successful,
            "failed": len(results) - successful,
        },
        "results": results,
    }


async def check_circular_dependency(
    source: TaskSource,
    project_id: str,
    source_issue: str | None = None,
    target_issue: str | None = None,
    matcher: FieldMatcher | None = None,
) -> dict:
    """Audit the project graph, or test one proposed edge, for cycles."""
    tasks = await fetch_tasks(source, project_id, matcher)
    graph = prepare(tasks)

    proposed = None
    if source_issue and target_issue:
        proposed = _make_edge(tasks, source_issue, target_issue, "FS", 0, "hard")
        if isinstance(proposed, dict):
            return proposed

    check = detect_cycle(graph, proposed)
    return {"success": True, "projectId": project_id, **check.to_dict()}


# ---------------------------------------------------------------------------
# Critical path analysis
# ---------------------------------------------------------------------------


def identify_project_risks(critical: CriticalPathResult, tasks: list[Task]) -> list[dict]:
    risks: list[dict] = []
    if len(critical.path) > 10:
        risks.append({
            "type": "Complex Critical Path",
            "severity": "High",
            "description": f"Critical path contains {len(critical.path)} issues, increasing project risk",
            "mitigation": "Consider breaking down complex issues or parallelizing work",
        })
    if critical.bottlenecks:
        risks.append({
            "type": "Resource Bottlenecks",
            "severity": "Medium",
            "description": f"{len(critical.bottlenecks)} bottleneck issues identified",
            "mitigation": "Prioritize resolving bottleneck issues and allocate additional resources",
        })
    near_critical = [t.id for t in tasks if not t.is_on_critical_path and t.slack_days < 2]
    if near_critical:
        risks.append({
            "type": "Near-Critical Issues",
            "severity": "Medium",
            "description": f"{len(near_critical)} issues have less than 2 days of slack",
            "issueIds": near_critical,
            "mitigation": "Track these issues alongside the critical path",
        })
    return risks


def suggest_optimizations(critical: CriticalPathResult, tasks: list[Task]) -> list[dict]:
    optimizations: list[dict] = []
    on_path = set(critical.path)
    sequential = [t for t in tasks if t.id in on_path and len(t.dependencies) <= 1]
    if len(sequential) > 3:
        optimizations.append({
            "type": "Parallelization Opportunity",
            "impact": "High",
            "description": f"{len(sequential)} issues could potentially be parallelized",
            "action": "Review dependencies and consider parallel execution",
        })
    busy = [t for t in tasks if t.resource_utilization > 90]
    if busy:
        optimizations.append({
            "type": "Resource Optimization",
            "impact": "Medium",
            "description": f"{len(busy)} issues have high resource utilization",
            "action": "Consider load balancing or additional resources",
        })
    return optimizations


def slack_analysis(tasks: list[Task]) -> dict:
    slack = [t.slack_days for t in tasks]
    return {
        "tasks": [
            {"issueId": t.id, "slack": t.slack_days, "critical": t.is_on_critical_path}
            for t in tasks
        ],
        "averageSlack": round(sum(slack) / len(slack), 1) if slack else 0,
        "zeroSlackCount": sum(1 for s in slack if s == 0),
    }


async def analyze_critical_path(
    source: TaskSource,
    project_id: str,
    target_issue: str | None = None,
    matcher: FieldMatcher | None = None,
) -> dict:
    """Critical path with slack, risks and optimizations.

    With *target_issue*, only that issue and its transitive prerequisites are
    considered.
    """
    tasks = await fetch_tasks(source, project_id, matcher)
    graph = prepare(tasks)

    if target_issue:
        target_id = resolve_issue(tasks, target_issue)
        if target_id is None:
            return _error(f"Issue {target_issue} not found in project")
        scope = {target_id} | nx.descendants(graph.to_digraph(), target_id)
        tasks = [t for t in tasks if t.id in scope]

    critical = compute_critical_path(tasks, graph)

    return {
        "success": True,
        "analysis": {
            "projectId": project_id,
            "targetIssueId": target_issue,
            "criticalPath": {
                "path": critical.path,
                "duration": critical.duration,
                "bottlenecks": [b.to_dict() for b in critical.bottlenecks],
                "totalIssues": len(critical.path),
            },
            "slackAnalysis": run_section("Slack", {}, slack_analysis, tasks),
            "recommendations": critical.recommendations,
            "risks": run_section("Risk", [], identify_project_risks, critical, tasks),
            "optimization": run_section("Optimization", [], suggest_optimizations, critical, tasks),
        },
    }


# ---------------------------------------------------------------------------
# Network and resources
# ---------------------------------------------------------------------------


async def analyze_dependency_network(
    source: TaskSource,
    project_id: str,
    matcher: FieldMatcher | None = None,
) -> dict:
    tasks = await fetch_tasks(source, project_id, matcher)
    graph = prepare(tasks)
    network = analyze_network(graph, tasks)
    return {"success": True, "network": {"projectId": project_id, **network.to_dict()}}


async def analyze_resource_conflicts(
    source: TaskSource,
    project_id: str,
    matcher: FieldMatcher | None = None,
    capacity: float = DEFAULT_CAPACITY,
) -> dict:
    tasks = await fetch_tasks(source, project_id, matcher)
    prepare(tasks)
    resources = analyze_resources(tasks, capacity)
    conflicts = identify_resource_conflicts(resources)
    return {
        "success": True,
        "analysis": {
            "projectId": project_id,
            "totalResources": len(resources),
            "conflictingResources": len(conflicts),
            "conflicts": conflicts,
            "optimizations": suggest_resource_optimizations(conflicts, resources),
            "recommendations": resource_recommendations(conflicts),
            "resources": [r.to_dict() for r in resources],
        },
    }
