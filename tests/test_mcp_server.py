import asyncio
import json

import pytest
from conftest import FakeYouTrack

from ytgantt import mcp_server
from ytgantt.config import CONFIG_ENV, Settings


@pytest.fixture
def connected(monkeypatch, youtrack):
    settings = Settings(youtrack_url="https://yt.example.com", youtrack_token="t", default_project_id="PRJ")
    monkeypatch.setattr(mcp_server, "_get_settings", lambda: settings)
    monkeypatch.setattr(mcp_server, "_get_client", lambda s: youtrack)
    return youtrack


def call(tool, **kwargs):
    return json.loads(asyncio.run(tool(**kwargs)))


def test_generate_gantt_chart(connected):
    payload = call(mcp_server.generate_gantt_chart)
    chart = payload["ganttChart"]
    assert payload["success"]
    assert chart["projectId"] == "PRJ"
    assert len(chart["items"]) == 4
    assert chart["criticalPath"]["duration"] == 7


def test_calculate_critical_path(connected):
    payload = call(mcp_server.calculate_critical_path, project_id="PRJ", target_issue_id="PRJ-2")
    assert payload["analysis"]["criticalPath"]["path"] == ["1-1", "1-2"]


def test_analyze_tools(connected):
    assert call(mcp_server.analyze_dependency_network)["network"]["metrics"]["totalIssues"] == 4
    assert call(mcp_server.analyze_resource_conflicts)["analysis"]["totalResources"] == 2
    assert call(mcp_server.check_circular_dependency)["hasCircularDependency"] is False


def test_route_issue_dependencies(connected):
    payload = call(mcp_server.route_issue_dependencies, source_issue_id="PRJ-1", target_issue_id="PRJ-3")
    assert payload["success"] is False
    assert payload["circularPath"] == ["1-3", "1-1"]

    payload = call(mcp_server.route_issue_dependencies, source_issue_id="PRJ-4", target_issue_id="PRJ-3")
    assert payload["success"]
    assert connected.links == [("1-4", "1-3", "Depends")]


def test_route_multiple_dependencies(connected):
    deps = [{"sourceIssueId": "PRJ-4", "targetIssueId": "PRJ-1", "dependencyType": "SS"}]
    payload = call(mcp_server.route_multiple_dependencies, dependencies=deps)
    assert payload["summary"]["successful"] == 1
    assert connected.links == [("1-4", "1-1", "Start together")]


def test_missing_settings(tmp_path, monkeypatch):
    for name in ("YOUTRACK_URL", "YOUTRACK_TOKEN", "YOUTRACK_PROJECT_ID", CONFIG_ENV):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)

    payload = call(mcp_server.calculate_critical_path, project_id="PRJ")
    assert payload["success"] is False
    assert "YOUTRACK_URL" in payload["error"]


def test_fetch_failure(monkeypatch):
    settings = Settings(youtrack_url="https://yt.example.com", youtrack_token="t")
    monkeypatch.setattr(mcp_server, "_get_settings", lambda: settings)
    monkeypatch.setattr(mcp_server, "_get_client", lambda s: FakeYouTrack([], fail=True))

    payload = call(mcp_server.analyze_dependency_network, project_id="PRJ")
    assert payload["success"] is False
    assert "connection refused" in payload["error"]

    payload = call(mcp_server.analyze_dependency_network)
    assert payload["error"] == "No project given and no default project configured"


def test_invalid_date_option(connected):
    payload = call(mcp_server.generate_gantt_chart, start_date="03/01/2024")
    assert payload["success"] is False
    assert "Invalid start_date" in payload["error"]
