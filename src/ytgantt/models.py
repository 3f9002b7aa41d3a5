"""Task, dependency, and analysis result definitions."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime

UNASSIGNED = "Unassigned"


def format_date(dt: datetime | None) -> str | None:
    """Render a timestamp as a YYYY-MM-DD string (or None)."""
    if dt is None:
        return None
    return dt.date().isoformat()


class DependencyKind(enum.StrEnum):
    FINISH_TO_START = "FS"
    START_TO_START = "SS"
    FINISH_TO_FINISH = "FF"
    START_TO_FINISH = "SF"

    @property
    def description(self) -> str:
        return _KIND_DESCRIPTIONS[self]


_KIND_DESCRIPTIONS = {
    DependencyKind.FINISH_TO_START: "Finish-to-Start: target task starts when source task finishes",
    DependencyKind.START_TO_START: "Start-to-Start: target task starts when source task starts",
    DependencyKind.FINISH_TO_FINISH: "Finish-to-Finish: target task finishes when source task finishes",
    DependencyKind.START_TO_FINISH: "Start-to-Finish: target task finishes when source task starts",
}


class Constraint(enum.StrEnum):
    HARD = "hard"
    SOFT = "soft"


@dataclass
class DependencyEdge:
    """``source_id`` depends on ``target_id``."""

    source_id: str
    target_id: str
    kind: DependencyKind = DependencyKind.FINISH_TO_START
    lag_days: int = 0
    constraint: Constraint = Constraint.HARD

    @property
    def id(self) -> str:
        return f"{self.source_id}-{self.target_id}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.kind.value,
            "targetIssueId": self.target_id,
            "lag": self.lag_days,
            "constraint": self.constraint.value,
        }


@dataclass
class Task:
    """A single schedulable issue."""

    id: str
    title: str
    id_readable: str | None = None
    description: str | None = None
    status: str = "Unknown"
    priority: str = "Normal"
    assignee: str = UNASSIGNED
    start_date: datetime | None = None
    end_date: datetime | None = None
    due_date: datetime | None = None
    resolved_at: datetime | None = None
    progress_field: int | None = None  # explicit progress custom field, if any
    parent_id: str | None = None
    links: list[dict] = field(default_factory=list)  # raw YouTrack links
    estimated_hours: float = 0.0
    actual_hours: float = 0.0
    # Derived by the scheduler
    progress: int = 0
    duration_days: int = 0
    resource_utilization: int = 0
    dependencies: list[DependencyEdge] = field(default_factory=list)
    is_on_critical_path: bool = False
    slack_days: int = 0
    # Hierarchical view
    level: int = 0
    children: list[Task] = field(default_factory=list)

    @property
    def is_completed(self) -> bool:
        return self.progress >= 100

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "idReadable": self.id_readable,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "assignee": self.assignee,
            "startDate": format_date(self.start_date),
            "endDate": format_date(self.end_date),
            "dueDate": format_date(self.due_date),
            "progress": self.progress,
            "duration": self.duration_days,
            "estimatedHours": self.estimated_hours,
            "actualHours": self.actual_hours,
            "dependencies": [e.to_dict() for e in self.dependencies],
            "level": self.level,
            "criticalPath": self.is_on_critical_path,
            "slack": self.slack_days,
            "resourceUtilization": self.resource_utilization,
        }
        if self.children:
            d["children"] = [c.to_dict() for c in self.children]
        return d


@dataclass
class PathBottleneck:
    issue_id: str
    impact: int
    reason: str

    def to_dict(self) -> dict:
        return {"issueId": self.issue_id, "impact": self.impact, "reason": self.reason}


@dataclass
class CriticalPathResult:
    """Longest-duration chain of dependent tasks, prerequisite first."""

    path: list[str] = field(default_factory=list)
    duration: int = 0
    bottlenecks: list[PathBottleneck] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    slack: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "duration": self.duration,
            "bottlenecks": [b.to_dict() for b in self.bottlenecks],
            "recommendations": self.recommendations,
        }


@dataclass
class Allocation:
    issue_id: str
    start_date: datetime
    end_date: datetime
    hours: float

    def to_dict(self) -> dict:
        return {
            "issueId": self.issue_id,
            "startDate": format_date(self.start_date),
            "endDate": format_date(self.end_date),
            "hours": self.hours,
        }


@dataclass
class Resource:
    """Workload of one assignee across the analyzed tasks."""

    id: str
    name: str
    capacity: float = 8.0  # hours per day
    allocations: list[Allocation] = field(default_factory=list)
    allocated_hours: float = 0.0
    available_hours: float = 0.0
    utilization: int = 0
    overallocation: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "capacity": self.capacity,
            "allocation": [a.to_dict() for a in self.allocations],
            "allocatedHours": self.allocated_hours,
            "availableHours": self.available_hours,
            "utilization": self.utilization,
            "overallocation": self.overallocation,
        }


@dataclass
class CycleCheck:
    has_cycle: bool = False
    path: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"hasCircularDependency": self.has_cycle, "path": self.path}


@dataclass
class NetworkMetrics:
    total_issues: int = 0
    total_dependencies: int = 0
    avg_dependencies: float = 0.0
    density: float = 0.0

    def to_dict(self) -> dict:
        return {
            "totalIssues": self.total_issues,
            "totalDependencies": self.total_dependencies,
            "avgDependenciesPerIssue": self.avg_dependencies,
            "networkDensity": self.density,
        }


@dataclass
class Cluster:
    id: str
    issues: list[str]

    def to_dict(self) -> dict:
        return {"id": self.id, "issues": self.issues, "size": len(self.issues)}


@dataclass
class NetworkBottleneck:
    issue_id: str
    title: str
    incoming: int
    impact: str = "high"

    def to_dict(self) -> dict:
        return {
            "issueId": self.issue_id,
            "title": self.title,
            "incomingDependencies": self.incoming,
            "impact": self.impact,
        }


@dataclass
class HealthScore:
    score: int = 100
    rating: str = "Excellent"
    factors: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"score": self.score, "rating": self.rating, "factors": self.factors}


@dataclass
class NetworkAnalysis:
    """Topology metrics of a dependency graph."""

    metrics: NetworkMetrics = field(default_factory=NetworkMetrics)
    clusters: list[Cluster] = field(default_factory=list)
    bottlenecks: list[NetworkBottleneck] = field(default_factory=list)
    health: HealthScore = field(default_factory=HealthScore)
    circular: CycleCheck = field(default_factory=CycleCheck)
    visualization: dict = field(default_factory=dict)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "metrics": self.metrics.to_dict(),
            "clusters": [c.to_dict() for c in self.clusters],
            "bottlenecks": [b.to_dict() for b in self.bottlenecks],
            "healthScore": self.health.to_dict(),
            "circularDependencies": self.circular.to_dict(),
            "visualization": self.visualization,
            "recommendations": self.recommendations,
        }


@dataclass
class ChartOptions:
    """Caller-selected sections and filters for a Gantt chart."""

    start_date: str | None = None
    end_date: str | None = None
    include_completed: bool = True
    include_critical_path: bool = True
    include_resources: bool = True
    hierarchical_view: bool = False

    def to_dict(self) -> dict:
        return {
            "includeCompleted": self.include_completed,
            "includeCriticalPath": self.include_critical_path,
            "includeResources": self.include_resources,
            "hierarchicalView": self.hierarchical_view,
        }


@dataclass
class GanttChart:
    project_id: str
    generated_at: datetime
    options: ChartOptions
    items: list[Task] = field(default_factory=list)
    critical_path: CriticalPathResult | None = None
    resources: list[Resource] | None = None
    network: NetworkAnalysis = field(default_factory=NetworkAnalysis)
    statistics: dict = field(default_factory=dict)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "projectId": self.project_id,
            "metadata": {
                "generatedAt": self.generated_at.isoformat(),
                "dateRange": {
                    "start": self.options.start_date,
                    "end": self.options.end_date,
                },
                "options": self.options.to_dict(),
            },
            "items": [t.to_dict() for t in self.items],
            "criticalPath": self.critical_path.to_dict() if self.critical_path else None,
            "resources": (
                [r.to_dict() for r in self.resources] if self.resources is not None else None
            ),
            "networkMetrics": self.network.to_dict(),
            "statistics": self.statistics,
            "recommendations": self.recommendations,
        }
