"""Typer CLI for ytgantt."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ytgantt import analyses
from ytgantt.chart import AnalysisError, generate_gantt_chart
from ytgantt.client import YouTrackClient, YouTrackError
from ytgantt.config import ConfigError, Settings, SettingsStore
from ytgantt.models import ChartOptions, Task

app = typer.Typer(
    name="ytgantt",
    help="Gantt charts, critical paths and dependency analysis for YouTrack projects.",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

ProjectArg = Annotated[
    Optional[str], typer.Argument(help="YouTrack project ID (defaults to the configured project)")
]
JsonOpt = Annotated[bool, typer.Option("--json", help="Print the raw JSON payload")]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


def _get_settings() -> Settings:
    try:
        settings = SettingsStore().load()
        settings.validate()
    except ConfigError as e:
        console.print(f"[red]{e}. Run 'ytgantt init' or set YOUTRACK_URL / YOUTRACK_TOKEN.[/red]")
        raise typer.Exit(1)
    return settings


def _get_client(settings: Settings) -> YouTrackClient:
    return YouTrackClient(
        settings.youtrack_url,
        settings.youtrack_token,
        timeout=settings.timeout,
        page_size=settings.page_size,
        max_issues=settings.max_issues,
    )


def _run(analysis, project_id: str | None, *args, with_capacity: bool = False, **kwargs):
    """Run an async analysis against a fresh client, reporting errors the CLI way."""
    settings = _get_settings()
    try:
        project = settings.resolve_project(project_id)
    except ConfigError as e:
        console.print(f"[red]{e}.[/red]")
        raise typer.Exit(1)
    if with_capacity:
        kwargs["capacity"] = settings.hours_per_day

    async def go():
        async with _get_client(settings) as client:
            return await analysis(client, project, *args, matcher=settings.field_matcher(), **kwargs)

    try:
        return asyncio.run(go())
    except (AnalysisError, YouTrackError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def _print_json(payload: dict) -> None:
    console.print_json(json.dumps(payload))


def _fail_if_error(payload: dict) -> None:
    if not payload.get("success", True):
        console.print(f"[red]{payload['error']}[/red]")
        if payload.get("circularPath"):
            console.print(f"  Cycle: {' -> '.join(payload['circularPath'])}")
        raise typer.Exit(1)


def _label(task: Task) -> str:
    return task.id_readable or task.id


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def init(
    url: Annotated[str, typer.Option(help="YouTrack base URL", prompt="YouTrack URL")],
    token: Annotated[
        str, typer.Option(help="Permanent token", prompt="YouTrack token", hide_input=True)
    ],
    project: Annotated[Optional[str], typer.Option(help="Default project ID")] = None,
    hours_per_day: float = 8.0,
    created_as_start: Annotated[
        bool, typer.Option(help="Use the creation date when an issue has no start date")
    ] = False,
) -> None:
    """Write the settings file."""
    store = SettingsStore()
    try:
        settings = store.load()
    except ConfigError:
        settings = Settings()
    settings.youtrack_url = url
    settings.youtrack_token = token
    settings.default_project_id = project or settings.default_project_id
    settings.hours_per_day = hours_per_day
    settings.created_as_start = created_as_start
    store.save(settings)
    console.print(f"[green]Settings written to {store.path}[/green]")


@app.command()
def gantt(
    project: ProjectArg = None,
    start: Annotated[Optional[str], typer.Option("--from", help="Range start (YYYY-MM-DD)")] = None,
    end: Annotated[Optional[str], typer.Option("--to", help="Range end (YYYY-MM-DD)")] = None,
    completed: Annotated[bool, typer.Option(help="Include completed issues")] = True,
    hierarchical: Annotated[bool, typer.Option("--hierarchical", help="Nest subtasks")] = False,
    as_json: JsonOpt = False,
) -> None:
    """Generate a Gantt chart for a project."""
    options = ChartOptions(
        start_date=start,
        end_date=end,
        include_completed=completed,
        hierarchical_view=hierarchical,
    )
    chart = _run(generate_gantt_chart, project, options, with_capacity=True)

    if as_json:
        _print_json({"success": True, "ganttChart": chart.to_dict()})
        return
    if not chart.items:
        console.print("No issues found.")
        return

    table = Table(title=f"Gantt: {chart.project_id}")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Assignee")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Days")
    table.add_column("Progress")
    table.add_column("Slack")

    rows = [(t, 0) for t in chart.items]
    while rows:
        t, depth = rows.pop(0)
        table.add_row(
            _label(t),
            "  " * depth + t.title,
            t.assignee,
            t.start_date.strftime("%b %d") if t.start_date else "-",
            t.end_date.strftime("%b %d") if t.end_date else "-",
            str(t.duration_days),
            f"{t.progress}%",
            str(t.slack_days),
            style="bold yellow" if t.is_on_critical_path else None,
        )
        rows[0:0] = [(c, depth + 1) for c in t.children]
    console.print(table)

    if chart.critical_path:
        console.print(
            f"\nCritical path: [bold]{chart.critical_path.duration}[/bold] days, "
            f"{len(chart.critical_path.path)} issues"
        )
    health = chart.network.health
    console.print(f"Dependency health: {health.rating} ({health.score}/100)")
    for rec in chart.recommendations:
        console.print(f"  [dim]-[/dim] {rec}")


@app.command("critical-path")
def critical_path(
    project: ProjectArg = None,
    target: Annotated[Optional[str], typer.Option(help="Only this issue and its prerequisites")] = None,
    as_json: JsonOpt = False,
) -> None:
    """Display the critical path and slack of a project."""
    payload = _run(analyses.analyze_critical_path, project, target)
    if as_json:
        _print_json(payload)
        return
    _fail_if_error(payload)

    analysis = payload["analysis"]
    cp = analysis["criticalPath"]
    if not cp["path"]:
        console.print("No critical path found.")
        return

    impact = {b["issueId"]: b["impact"] for b in cp["bottlenecks"]}
    table = Table(title="Critical Path")
    table.add_column("#")
    table.add_column("Issue")
    table.add_column("Days")
    for i, tid in enumerate(cp["path"], 1):
        table.add_row(str(i), tid, str(impact.get(tid, 0)))
    console.print(table)
    console.print(f"\nTotal critical path duration: [bold]{cp['duration']}[/bold] days")

    for risk in analysis["risks"]:
        console.print(f"[yellow]{risk['severity']} risk:[/yellow] {risk['description']}")


@app.command()
def network(project: ProjectArg = None, as_json: JsonOpt = False) -> None:
    """Dependency network metrics, clusters and bottlenecks."""
    payload = _run(analyses.analyze_dependency_network, project)
    if as_json:
        _print_json(payload)
        return

    net = payload["network"]
    m = net["metrics"]
    health = net["healthScore"]
    console.print(f"\n[bold underline]Dependency Network: {net['projectId']}[/bold underline]\n")
    console.print(f"  Issues:        {m['totalIssues']}")
    console.print(f"  Dependencies:  {m['totalDependencies']}")
    console.print(f"  Avg per issue: {m['avgDependenciesPerIssue']}")
    console.print(f"  Density:       {m['networkDensity']:.3f}")
    console.print(f"  Clusters:      {len(net['clusters'])}")
    console.print(f"  Health:        {health['rating']} ({health['score']}/100)")

    if net["circularDependencies"]["hasCircularDependency"]:
        path = " -> ".join(net["circularDependencies"]["path"])
        console.print(f"  [bold red]Circular dependency: {path}[/bold red]")

    if net["bottlenecks"]:
        table = Table(title="Bottlenecks")
        table.add_column("Issue")
        table.add_column("Title")
        table.add_column("Dependents")
        for b in net["bottlenecks"]:
            table.add_row(b["issueId"], b["title"], str(b["incomingDependencies"]))
        console.print(table)

    for rec in net["recommendations"]:
        console.print(f"  [dim]-[/dim] {rec}")


@app.command()
def resources(project: ProjectArg = None, as_json: JsonOpt = False) -> None:
    """Per-assignee utilization and conflicts."""
    payload = _run(analyses.analyze_resource_conflicts, project, with_capacity=True)
    if as_json:
        _print_json(payload)
        return

    analysis = payload["analysis"]
    if not analysis["resources"]:
        console.print("No assigned issues found.")
        return

    table = Table(title="Resources")
    table.add_column("Assignee")
    table.add_column("Allocated (h)")
    table.add_column("Available (h)")
    table.add_column("Utilization")
    for r in analysis["resources"]:
        table.add_row(
            r["name"],
            f"{r['allocatedHours']:.1f}",
            f"{r['availableHours']:.1f}",
            f"{r['utilization']}%",
            style="bold red" if r["overallocation"] else None,
        )
    console.print(table)

    for opt in analysis["optimizations"]:
        console.print(f"  [yellow]{opt['type']}:[/yellow] {opt['description']}")
    for rec in analysis["recommendations"]:
        console.print(f"  [dim]-[/dim] {rec}")


@app.command()
def cycles(
    project: ProjectArg = None,
    source: Annotated[Optional[str], typer.Option(help="Issue that would depend on --target")] = None,
    target: Annotated[Optional[str], typer.Option(help="Issue --source would depend on")] = None,
) -> None:
    """Audit a project for circular dependencies, or test one proposed link."""
    payload = _run(analyses.check_circular_dependency, project, source, target)
    _fail_if_error(payload)
    if payload["hasCircularDependency"]:
        console.print(f"[bold red]Circular dependency: {' -> '.join(payload['path'])}[/bold red]")
        raise typer.Exit(1)
    console.print("[green]No circular dependencies.[/green]")


@app.command()
def link(
    source: Annotated[str, typer.Argument(help="Issue that depends on TARGET")],
    target: Annotated[str, typer.Argument(help="Issue SOURCE depends on")],
    project: Annotated[Optional[str], typer.Option("--project", "-p", help="Project ID")] = None,
    kind: Annotated[str, typer.Option("--type", "-t", help="FS, SS, FF or SF")] = "FS",
    lag: Annotated[int, typer.Option(help="Lag in days (negative for lead time)")] = 0,
    constraint: Annotated[str, typer.Option(help="hard or soft")] = "hard",
) -> None:
    """Create a dependency after checking for cycles, and show its impact."""
    payload = _run(
        analyses.route_dependency, project, source, target, kind, lag, constraint,
        with_capacity=True,
    )
    _fail_if_error(payload)

    dep = payload["dependency"]
    console.print(f"[green]Linked {dep['source']} -> {dep['target']} ({dep['type']}).[/green]")
    for rec in payload["recommendations"]:
        console.print(f"  [dim]-[/dim] {rec}")


@app.command()
def serve() -> None:
    """Run the MCP server on stdio."""
    from ytgantt.mcp_server import main as serve_mcp

    serve_mcp()


if __name__ == "__main__":
    app()
