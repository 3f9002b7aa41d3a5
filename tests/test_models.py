from datetime import datetime, timezone

from ytgantt.models import (
    ChartOptions,
    CycleCheck,
    DependencyEdge,
    DependencyKind,
    GanttChart,
    Task,
)


def test_dependency_edge_serialization():
    edge = DependencyEdge("1-2", "1-1", DependencyKind.START_TO_START, lag_days=2)
    d = edge.to_dict()
    assert d == {
        "id": "1-2-1-1",
        "type": "SS",
        "targetIssueId": "1-1",
        "lag": 2,
        "constraint": "hard",
    }
    assert DependencyKind("FF").description.startswith("Finish-to-Finish")


def test_task_serialization():
    t = Task(
        id="1-1",
        title="Design",
        id_readable="PRJ-1",
        start_date=datetime(2024, 3, 1, tzinfo=timezone.utc),
        duration_days=3,
        is_on_critical_path=True,
        dependencies=[DependencyEdge("1-1", "1-0")],
    )
    d = t.to_dict()
    assert d["idReadable"] == "PRJ-1"
    assert d["startDate"] == "2024-03-01"
    assert d["endDate"] is None
    assert d["duration"] == 3
    assert d["criticalPath"] is True
    assert d["dependencies"][0]["targetIssueId"] == "1-0"
    assert "children" not in d

    t.children = [Task(id="1-5", title="Sketches", level=1)]
    assert t.to_dict()["children"][0]["level"] == 1


def test_completed_follows_progress():
    t = Task(id="1", title="x")
    assert not t.is_completed
    t.progress = 100
    assert t.is_completed


def test_cycle_check_serialization():
    assert CycleCheck(True, ["A", "B", "A"]).to_dict() == {
        "hasCircularDependency": True,
        "path": ["A", "B", "A"],
    }


def test_chart_serialization_without_sections():
    options = ChartOptions(start_date="2024-03-01", include_critical_path=False, include_resources=False)
    chart = GanttChart(
        project_id="PRJ",
        generated_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
        options=options,
    )
    d = chart.to_dict()
    assert d["projectId"] == "PRJ"
    assert d["metadata"]["dateRange"] == {"start": "2024-03-01", "end": None}
    assert d["metadata"]["options"]["includeResources"] is False
    assert d["criticalPath"] is None
    assert d["resources"] is None
    assert d["networkMetrics"]["healthScore"]["score"] == 100
