from datetime import datetime, timedelta, timezone

from ytgantt.graph import DependencyGraph
from ytgantt.models import DependencyEdge, Task
from ytgantt.scheduler import (
    DEFAULT_PROGRESS,
    calculate_duration,
    calculate_progress,
    calculate_utilization,
    compute_critical_path,
    compute_schedule,
    find_critical_path,
)

MAR1 = datetime(2024, 3, 1, tzinfo=timezone.utc)


def project(durations, deps):
    """Tasks with fixed durations; deps maps dependent -> prerequisites."""
    tasks = [Task(id=tid, title=tid, duration_days=d) for tid, d in durations.items()]
    graph = DependencyGraph()
    for t in tasks:
        graph.add_task(t.id)
    for src, targets in deps.items():
        for tgt in targets:
            graph.add_edge(DependencyEdge(src, tgt))
    return tasks, graph


def test_critical_path_and_slack():
    tasks, graph = project({"A": 3, "B": 2, "C": 4}, {"B": ["A"], "C": ["A"]})
    result = compute_critical_path(tasks, graph)

    assert result.path == ["A", "C"]
    assert result.duration == 7
    by_id = {t.id: t for t in tasks}
    assert by_id["A"].is_on_critical_path and by_id["C"].is_on_critical_path
    assert not by_id["B"].is_on_critical_path
    assert by_id["B"].slack_days == 2
    assert result.slack == {"A": 0, "B": 2, "C": 0}
    assert [b.issue_id for b in result.bottlenecks] == ["A", "C"]
    assert result.recommendations[0] == "Critical path identified with 2 issues"


def test_empty_project():
    result = compute_critical_path([], DependencyGraph())
    assert result.path == []
    assert result.duration == 0


def test_single_task():
    tasks, graph = project({"A": 5}, {})
    result = compute_critical_path(tasks, graph)
    assert result.path == ["A"]
    assert result.duration == 5


def test_ties_resolve_to_first_path():
    tasks, graph = project({"A": 1, "B": 2, "C": 2}, {"B": ["A"], "C": ["A"]})
    assert find_critical_path(tasks, graph).path == ["A", "B"]


def test_critical_path_is_repeatable():
    tasks, graph = project({"A": 3, "B": 2, "C": 4, "D": 1}, {"B": ["A"], "C": ["A"], "D": ["B", "C"]})
    first = compute_critical_path(tasks, graph)
    marked = {t.id for t in tasks if t.is_on_critical_path}
    second = compute_critical_path(tasks, graph)
    assert {t.id for t in tasks if t.is_on_critical_path} == marked
    assert first.path == second.path == ["A", "C", "D"]
    assert first.duration == second.duration == 8
    assert first.slack == second.slack


def test_duration_bounds():
    tasks, graph = project({"A": 3, "B": 2, "C": 4, "D": 6}, {"B": ["A"], "C": ["B"]})
    result = compute_critical_path(tasks, graph)
    assert max(t.duration_days for t in tasks) <= result.duration <= sum(t.duration_days for t in tasks)
    assert all(t.slack_days >= 0 for t in tasks)


def test_cycles_fall_back_to_exhaustive_search():
    tasks, graph = project({"A": 3, "B": 2, "C": 1}, {"A": ["B"], "B": ["A"]})
    result = find_critical_path(tasks, graph)
    assert result.duration == 5
    assert set(result.path) == {"A", "B"}


def test_cycle_beside_a_wide_dag():
    # 22 layers of two tasks, each depending on both tasks of the layer before
    durations, deps = {}, {}
    for i in range(22):
        for side in "ab":
            durations[f"{side}{i}"] = 1
            if i:
                deps[f"{side}{i}"] = [f"a{i - 1}", f"b{i - 1}"]
    durations.update({"p": 5, "q": 5})
    deps.update({"p": ["q"], "q": ["p"]})
    tasks, graph = project(durations, deps)

    result = compute_critical_path(tasks, graph)
    assert result.duration == 22
    assert result.path == [f"a{i}" for i in range(22)]
    assert result.slack["p"] == result.slack["q"] == 12
    assert result.slack["b5"] == 0


def test_cycle_on_the_critical_path():
    tasks, graph = project(
        {"A": 1, "B": 2, "C": 3, "D": 4},
        {"B": ["A", "C"], "C": ["B"], "D": ["C"]},
    )
    result = find_critical_path(tasks, graph)
    assert result.path == ["A", "B", "C", "D"]
    assert result.duration == 10


def test_calculate_duration():
    assert calculate_duration(None, MAR1) == 0
    assert calculate_duration(MAR1, MAR1 + timedelta(days=2, hours=12)) == 3
    assert calculate_duration(MAR1, MAR1) == 0
    # Open-ended tasks run until now
    assert calculate_duration(MAR1, None, now=MAR1 + timedelta(days=4)) == 4


def test_calculate_progress():
    assert calculate_progress(Task(id="1", title="", progress_field=40)) == 40
    assert calculate_progress(Task(id="1", title="", resolved_at=MAR1)) == 100
    assert calculate_progress(Task(id="1", title="", status="Open")) == 0
    assert calculate_progress(Task(id="1", title="", status="In Progress")) == 50
    assert calculate_progress(Task(id="1", title="", status="Code Review")) == 80
    assert calculate_progress(Task(id="1", title="", status="Done")) == 100
    assert calculate_progress(Task(id="1", title="", status="Submitted")) == DEFAULT_PROGRESS


def test_calculate_utilization():
    assert calculate_utilization(10, 5) == 50
    assert calculate_utilization(0, 5) == 0


def test_compute_schedule_fills_derived_fields():
    task = Task(
        id="A",
        title="A",
        start_date=MAR1,
        end_date=MAR1 + timedelta(days=3),
        estimated_hours=8,
        actual_hours=4,
        status="Open",
    )
    graph = DependencyGraph()
    graph.add_edge(DependencyEdge("A", "B"))
    compute_schedule([task], graph, now=MAR1)
    assert task.duration_days == 3
    assert task.progress == 0
    assert task.resource_utilization == 50
    assert [e.target_id for e in task.dependencies] == ["B"]
