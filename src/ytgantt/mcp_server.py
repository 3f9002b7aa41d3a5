"""MCP server for ytgantt: exposes YouTrack scheduling analyses to AI assistants."""

from __future__ import annotations

import json
import logging
import sys

from mcp.server.fastmcp import FastMCP

from ytgantt import analyses
from ytgantt.chart import AnalysisError, generate_gantt_chart as build_gantt_chart
from ytgantt.client import YouTrackClient, YouTrackError
from ytgantt.config import ConfigError, Settings, load_settings
from ytgantt.models import ChartOptions

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "ytgantt",
    instructions="""\
ytgantt analyzes the schedule of a YouTrack project. Issues are tasks; their \
"Depends", "Blocks", "Start together", "Finish together", "Duplicate" and \
"Relates" links are dependencies. Dates, estimates and spent time are read from \
custom fields whose names contain words like "start", "due", "estimation" and \
"spent".

Key concepts:
- **Critical path**: The longest chain of dependent issues by duration (days). \
It sets the minimum time to finish the project.
- **Slack**: Days an issue can slip before it lands on the critical path.
- **Dependency kinds**: FS (Finish-to-Start), SS (Start-to-Start), FF \
(Finish-to-Finish), SF (Start-to-Finish).
- **Overallocation**: An assignee's estimated hours exceed 8h/day over the \
days their issues span.
- **Bottleneck**: An issue that three or more other issues depend on.

Use generate_gantt_chart for a full overview, calculate_critical_path for \
schedule risk, analyze_dependency_network for structure and health, and \
analyze_resource_conflicts for workload. Before linking issues, \
route_issue_dependencies checks for circular dependencies and reports the \
timeline impact. Issue IDs may be readable ids like "PRJ-12". The project \
argument may be omitted when a default project is configured.\
""",
)


def _get_settings() -> Settings:
    settings = load_settings()
    settings.validate()
    return settings


def _get_client(settings: Settings) -> YouTrackClient:
    return YouTrackClient(
        settings.youtrack_url,
        settings.youtrack_token,
        timeout=settings.timeout,
        page_size=settings.page_size,
        max_issues=settings.max_issues,
    )


def _error_json(message: str) -> str:
    return json.dumps({"success": False, "error": message}, indent=2)


async def _call(analysis, project_id: str | None, *args, with_capacity: bool = False, **kwargs) -> str:
    """Run *analysis* against a fresh client and serialize its payload."""
    try:
        settings = _get_settings()
        project = settings.resolve_project(project_id)
        if with_capacity:
            kwargs["capacity"] = settings.hours_per_day
        async with _get_client(settings) as client:
            payload = await analysis(client, project, *args, matcher=settings.field_matcher(), **kwargs)
    except (ConfigError, AnalysisError, YouTrackError) as e:
        logger.error("%s failed: %s", analysis.__name__, e)
        return _error_json(str(e))
    return json.dumps(payload, indent=2)


async def _gantt_payload(client, project, options, matcher=None, capacity=8.0) -> dict:
    chart = await build_gantt_chart(client, project, options, matcher, capacity)
    return {"success": True, "ganttChart": chart.to_dict()}


# ---------------------------------------------------------------------------
# Read tools
# ---------------------------------------------------------------------------


@mcp.tool()
async def generate_gantt_chart(
    project_id: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    include_completed: bool = True,
    include_critical_path: bool = True,
    include_resources: bool = True,
    hierarchical_view: bool = False,
) -> str:
    """Generate a Gantt chart with dependencies, critical path, resource allocation
    and dependency network metrics.

    Args:
        project_id: YouTrack project ID or short name
        start_date: Only show issues active on or after this date (YYYY-MM-DD)
        end_date: Only show issues active on or before this date (YYYY-MM-DD)
        include_completed: Include completed issues
        include_critical_path: Include critical path analysis
        include_resources: Include per-assignee resource allocation
        hierarchical_view: Nest subtasks under their parent issues
    """
    options = ChartOptions(
        start_date=start_date,
        end_date=end_date,
        include_completed=include_completed,
        include_critical_path=include_critical_path,
        include_resources=include_resources,
        hierarchical_view=hierarchical_view,
    )
    return await _call(_gantt_payload, project_id, options, with_capacity=True)


@mcp.tool()
async def calculate_critical_path(
    project_id: str | None = None,
    target_issue_id: str | None = None,
) -> str:
    """Find the longest chain of dependent issues, with slack, risks and optimizations.

    Args:
        project_id: YouTrack project ID or short name
        target_issue_id: Restrict the analysis to this issue and everything it depends on
    """
    return await _call(analyses.analyze_critical_path, project_id, target_issue_id)


@mcp.tool()
async def analyze_dependency_network(project_id: str | None = None) -> str:
    """Analyze dependency network topology: density, clusters, bottlenecks,
    circular dependencies and an overall health score.

    Args:
        project_id: YouTrack project ID or short name
    """
    return await _call(analyses.analyze_dependency_network, project_id)


@mcp.tool()
async def analyze_resource_conflicts(project_id: str | None = None) -> str:
    """Find overallocated assignees and overlapping assignments, with rebalancing
    suggestions.

    Args:
        project_id: YouTrack project ID or short name
    """
    return await _call(analyses.analyze_resource_conflicts, project_id, with_capacity=True)


@mcp.tool()
async def check_circular_dependency(
    project_id: str | None = None,
    source_issue_id: str | None = None,
    target_issue_id: str | None = None,
) -> str:
    """Check for circular dependencies. With both issue IDs, checks whether
    "source depends on target" would close a loop; otherwise audits the project.

    Args:
        project_id: YouTrack project ID or short name
        source_issue_id: Issue that would depend on the target
        target_issue_id: Issue the source would depend on
    """
    return await _call(
        analyses.check_circular_dependency, project_id, source_issue_id, target_issue_id
    )


# ---------------------------------------------------------------------------
# Write tools
# ---------------------------------------------------------------------------


@mcp.tool()
async def route_issue_dependencies(
    source_issue_id: str,
    target_issue_id: str,
    project_id: str | None = None,
    dependency_type: str = "FS",
    lag: int = 0,
    constraint: str = "hard",
) -> str:
    """Create a dependency "source depends on target" after checking for circular
    dependencies, and report its impact on the project timeline.

    Args:
        source_issue_id: Issue that depends on the target (e.g. "PRJ-12")
        target_issue_id: Issue the source depends on
        project_id: YouTrack project containing both issues
        dependency_type: FS (Finish-to-Start), SS (Start-to-Start), FF (Finish-to-Finish) or SF (Start-to-Finish)
        lag: Lag in days (negative for lead time)
        constraint: "hard" (must be respected) or "soft" (preferred)
    """
    return await _call(
        analyses.route_dependency,
        project_id,
        source_issue_id,
        target_issue_id,
        dependency_type,
        lag,
        constraint,
        with_capacity=True,
    )


@mcp.tool()
async def route_multiple_dependencies(
    dependencies: list[dict],
    project_id: str | None = None,
    validate_circular: bool = True,
) -> str:
    """Create several dependencies in one call. Each accepted dependency is taken
    into account when checking the next one for cycles.

    Args:
        dependencies: Objects with "sourceIssueId", "targetIssueId" and optional
            "dependencyType", "lag", "constraint", e.g.
            [{"sourceIssueId": "PRJ-2", "targetIssueId": "PRJ-1", "dependencyType": "FS"}]
        project_id: YouTrack project containing the issues
        validate_circular: Reject dependencies that would create a cycle
    """
    return await _call(
        analyses.route_dependencies, project_id, dependencies, validate_circular
    )


def main():
    """Entry point for the MCP server."""
    # stdout carries the stdio transport
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
