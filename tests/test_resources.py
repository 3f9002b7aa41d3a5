from datetime import datetime, timedelta, timezone

from ytgantt.models import Task
from ytgantt.resources import (
    analyze_resources,
    identify_resource_conflicts,
    resource_recommendations,
    suggest_resource_optimizations,
)

MAR1 = datetime(2024, 3, 1, tzinfo=timezone.utc)


def work(tid, assignee, days, hours, offset=0):
    start = MAR1 + timedelta(days=offset)
    return Task(
        id=tid,
        title=tid,
        assignee=assignee,
        start_date=start,
        end_date=start + timedelta(days=days),
        estimated_hours=hours,
    )


def test_utilization_against_daily_capacity():
    [r] = analyze_resources([work("T1", "alice", 5, 40)])
    assert r.available_hours == 40
    assert r.utilization == 100
    assert not r.overallocation

    [r] = analyze_resources([work("T1", "alice", 4, 40)])
    assert r.utilization == 125
    assert r.overallocation


def test_unassigned_and_undated_work():
    tasks = [
        work("T1", "Unassigned", 5, 40),
        Task(id="T2", title="T2", assignee="bob", estimated_hours=8),
    ]
    [r] = analyze_resources(tasks)
    assert r.name == "bob"
    assert r.allocations == []
    assert r.utilization == 0


def test_custom_capacity():
    [r] = analyze_resources([work("T1", "alice", 5, 40)], capacity=4.0)
    assert r.available_hours == 20
    assert r.utilization == 200


def test_overallocation_suggests_reassignment():
    resources = analyze_resources([work("T1", "alice", 4, 40), work("T2", "bob", 5, 8)])
    conflicts = identify_resource_conflicts(resources)
    assert [c["resourceId"] for c in conflicts] == ["alice"]
    assert conflicts[0]["excessHours"] == 8.0

    [opt] = suggest_resource_optimizations(conflicts, resources)
    assert opt["type"] == "Reassign Work"
    assert opt["suggestedResource"] == "bob"
    assert resource_recommendations(conflicts) == ["1 overallocated resources: alice"]


def test_no_underutilized_resource_extends_timeline():
    resources = analyze_resources([work("T1", "alice", 4, 40)])
    [opt] = suggest_resource_optimizations(identify_resource_conflicts(resources), resources)
    assert opt["type"] == "Extend Timeline"


def test_overlapping_assignments():
    resources = analyze_resources([work("T1", "alice", 5, 8), work("T2", "alice", 5, 8, offset=2)])
    [conflict] = identify_resource_conflicts(resources)
    assert not conflict["overallocated"]
    assert conflict["overlappingIssues"] == [["T1", "T2"]]
    assert suggest_resource_optimizations([conflict], resources) == []


def test_no_conflicts():
    assert resource_recommendations([]) == ["No resource conflicts detected"]
