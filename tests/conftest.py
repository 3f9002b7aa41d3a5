import copy
from datetime import datetime, timezone

import pytest


def ms(day: int) -> int:
    """Epoch milliseconds for a day in March 2024 (UTC midnight)."""
    return int(datetime(2024, 3, day, tzinfo=timezone.utc).timestamp() * 1000)


def depends_on(*ids, direction="OUTWARD"):
    return {
        "direction": direction,
        "linkType": {"name": "Depends"},
        "issues": [{"id": i} for i in ids],
    }


class FakeYouTrack:
    """In-memory stand-in for YouTrackClient."""

    def __init__(self, issues, fail=False):
        self.issues = issues
        self.fail = fail
        self.links = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        pass

    async def fetch_issues(self, project_id):
        if self.fail:
            raise RuntimeError("connection refused")
        return copy.deepcopy(self.issues)

    async def create_issue_link(self, source_id, target_id, link_type):
        self.links.append((source_id, target_id, link_type))
        return {"success": True, "linkType": link_type, "source": source_id, "target": target_id}


@pytest.fixture
def project_issues():
    """Design (3d) <- Build API (2d), Design <- Build UI (4d), plus undated docs."""
    return [
        {
            "id": "1-1",
            "idReadable": "PRJ-1",
            "summary": "Design",
            "state": {"name": "In Progress"},
            "assignee": {"login": "alice", "fullName": "Alice"},
            "customFields": [
                {"name": "Start Date", "value": ms(1)},
                {"name": "Due Date", "value": ms(4)},
                {"name": "Estimation", "value": {"minutes": 1440}},
            ],
            "links": [depends_on("1-2", "1-3", direction="INWARD")],
        },
        {
            "id": "1-2",
            "idReadable": "PRJ-2",
            "summary": "Build API",
            "state": {"name": "Open"},
            "assignee": {"login": "bob", "fullName": "Bob"},
            "customFields": [
                {"name": "Start Date", "value": ms(4)},
                {"name": "Due Date", "value": ms(6)},
                {"name": "Estimation", "value": {"presentation": "2d"}},
            ],
            "links": [depends_on("1-1")],
        },
        {
            "id": "1-3",
            "idReadable": "PRJ-3",
            "summary": "Build UI",
            "state": {"name": "Open"},
            "assignee": {"login": "alice", "fullName": "Alice"},
            "customFields": [
                {"name": "Start Date", "value": ms(4)},
                {"name": "Due Date", "value": ms(8)},
                {"name": "Estimation", "value": {"presentation": "4d"}},
            ],
            "links": [depends_on("1-1")],
        },
        {
            "id": "1-4",
            "idReadable": "PRJ-4",
            "summary": "Write docs",
            "state": {"name": "Open"},
            "customFields": [],
            "links": [],
        },
    ]


@pytest.fixture
def youtrack(project_issues):
    return FakeYouTrack(project_issues)
