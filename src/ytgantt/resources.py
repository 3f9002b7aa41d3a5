"""Per-assignee workload and overallocation analysis.

This is a coarse approximation: each allocation contributes its whole
calendar span to the available hours and overlapping ranges are not merged.
"""

from __future__ import annotations

import math
from itertools import combinations

from ytgantt.models import UNASSIGNED, Allocation, Resource, Task

DEFAULT_CAPACITY = 8.0
UNDERUTILIZED_THRESHOLD = 80


def working_days(allocations: list[Allocation]) -> int:
    """Sum of each allocation's span in whole days, at least one day each."""
    total = 0
    for alloc in allocations:
        days = math.ceil((alloc.end_date - alloc.start_date).total_seconds() / 86400)
        total += max(1, days)
    return total


def analyze_resources(tasks: list[Task], capacity: float = DEFAULT_CAPACITY) -> list[Resource]:
    """Group tasks by assignee and compute utilization against *capacity* h/day."""
    resources: dict[str, Resource] = {}

    for task in tasks:
        if not task.assignee or task.assignee == UNASSIGNED:
            continue
        resource = resources.setdefault(
            task.assignee,
            Resource(id=task.assignee, name=task.assignee, capacity=capacity),
        )
        if task.start_date and task.end_date and task.estimated_hours:
            resource.allocations.append(
                Allocation(
                    issue_id=task.id,
                    start_date=task.start_date,
                    end_date=task.end_date,
                    hours=task.estimated_hours,
                )
            )

    for resource in resources.values():
        resource.allocated_hours = sum(a.hours for a in resource.allocations)
        resource.available_hours = working_days(resource.allocations) * resource.capacity
        if resource.available_hours > 0:
            resource.utilization = max(
                0, round(resource.allocated_hours / resource.available_hours * 100)
            )
        else:
            resource.utilization = 0
        resource.overallocation = resource.utilization > 100

    return list(resources.values())


def _overlaps(a: Allocation, b: Allocation) -> bool:
    return a.start_date < b.end_date and b.start_date < a.end_date


def identify_resource_conflicts(resources: list[Resource]) -> list[dict]:
    """Overallocated resources and allocations of one person that overlap in time."""
    conflicts: list[dict] = []
    for resource in resources:
        overlapping = [
            [a.issue_id, b.issue_id]
            for a, b in combinations(resource.allocations, 2)
            if _overlaps(a, b)
        ]
        if not resource.overallocation and not overlapping:
            continue
        conflicts.append({
            "resourceId": resource.id,
            "name": resource.name,
            "utilization": resource.utilization,
            "overallocated": resource.overallocation,
            "excessHours": round(max(0.0, resource.allocated_hours - resource.available_hours), 1),
            "overlappingIssues": overlapping,
            "issueIds": [a.issue_id for a in resource.allocations],
        })
    return conflicts


def suggest_resource_optimizations(conflicts: list[dict], resources: list[Resource]) -> list[dict]:
    """Suggest moving work from overallocated people to the least loaded one."""
    candidates = sorted(
        (r for r in resources if r.utilization < UNDERUTILIZED_THRESHOLD),
        key=lambda r: r.utilization,
    )
    optimizations: list[dict] = []
    for conflict in conflicts:
        if not conflict["overallocated"]:
            continue
        target = next((r for r in candidates if r.id != conflict["resourceId"]), None)
        if target is None:
            optimizations.append({
                "type": "Extend Timeline",
                "resourceId": conflict["resourceId"],
                "description": f"No underutilized resource available; extend deadlines for {conflict['name']}",
            })
            continue
        optimizations.append({
            "type": "Reassign Work",
            "resourceId": conflict["resourceId"],
            "suggestedResource": target.id,
            "description": (
                f"Move work from {conflict['name']} ({conflict['utilization']}%) "
                f"to {target.name} ({target.utilization}%)"
            ),
        })
    return optimizations


def resource_recommendations(conflicts: list[dict]) -> list[str]:
    if not conflicts:
        return ["No resource conflicts detected"]
    recommendations: list[str] = []
    over = [c for c in conflicts if c["overallocated"]]
    if over:
        names = ", ".join(c["name"] for c in over)
        recommendations.append(f"{len(over)} overallocated resources: {names}")
    overlapping = [c for c in conflicts if c["overlappingIssues"]]
    if overlapping:
        recommendations.append(
            f"{len(overlapping)} resources have overlapping assignments - consider resequencing"
        )
    return recommendations
