import asyncio
import json

import httpx
import pytest

from ytgantt.client import YouTrackClient, YouTrackError, api_base

LINK_TYPES = [
    {"id": "41-0", "name": "Relates", "directed": False},
    {
        "id": "41-2",
        "name": "Blocks",
        "sourceToTarget": "blocks",
        "targetToSource": "is blocked by",
        "directed": True,
    },
    {"id": "41-3", "name": "Follows", "sourceToTarget": "follows", "targetToSource": "precedes", "directed": True},
    {
        "id": "41-1",
        "name": "Depends",
        "sourceToTarget": "is required for",
        "targetToSource": "depends on",
        "directed": True,
    },
]


def run_with(handler, fn, **kwargs):
    async def go():
        async with YouTrackClient(
            "https://yt.example.com/", "perm-token", transport=httpx.MockTransport(handler), **kwargs
        ) as client:
            return await fn(client)

    return asyncio.run(go())


def test_api_base():
    assert api_base("https://yt.example.com/") == "https://yt.example.com/api"
    assert api_base("https://yt.example.com/api") == "https://yt.example.com/api"


def test_fetch_issues_paginates():
    requests = []

    def handler(request):
        requests.append(request)
        skip = int(request.url.params["$skip"])
        page = [{"id": f"1-{i}"} for i in range(skip, min(skip + 2, 3))]
        return httpx.Response(200, json=page)

    issues = run_with(handler, lambda c: c.fetch_issues("PRJ"), page_size=2)

    assert [i["id"] for i in issues] == ["1-0", "1-1", "1-2"]
    assert len(requests) == 2
    first = requests[0]
    assert first.url.path == "/api/issues"
    assert first.url.params["query"] == "project: PRJ"
    assert first.url.params["$top"] == "2"
    assert first.headers["Authorization"] == "Bearer perm-token"


def test_fetch_issues_stops_at_max_issues():
    def handler(request):
        top = int(request.url.params["$top"])
        return httpx.Response(200, json=[{"id": "x"}] * top)

    issues = run_with(handler, lambda c: c.fetch_issues("PRJ"), page_size=2, max_issues=5)
    assert len(issues) == 5


def test_error_response():
    def handler(request):
        return httpx.Response(401, json={"error": "Unauthorized", "error_description": "Invalid token"})

    with pytest.raises(YouTrackError, match="Invalid token") as exc_info:
        run_with(handler, lambda c: c.fetch_issues("PRJ"))
    assert exc_info.value.status_code == 401


def test_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    with pytest.raises(YouTrackError, match="connection refused"):
        run_with(handler, lambda c: c.get_issue("PRJ-1"))


def test_create_issue_link():
    posts = []
    link_type_requests = []

    def handler(request):
        if request.url.path == "/api/issueLinkTypes":
            link_type_requests.append(request)
            return httpx.Response(200, json=LINK_TYPES)
        posts.append(request)
        return httpx.Response(200, json={"id": "1-3", "idReadable": "PRJ-3"})

    async def link_twice(client):
        first = await client.create_issue_link("1-4", "1-3", "Depends")
        await client.create_issue_link("1-4", "1-2", "relates")
        return first

    result = run_with(handler, link_twice)

    assert result["success"]
    assert result["linkType"] == "Depends"
    assert result["issue"] == {"id": "1-3", "idReadable": "PRJ-3"}
    assert len(link_type_requests) == 1
    assert [p.url.path for p in posts] == [
        "/api/issues/1-4/links/41-1t/issues",
        "/api/issues/1-4/links/41-0/issues",
    ]
    assert json.loads(posts[0].content) == {"id": "1-3"}


def test_create_issue_link_unknown_type():
    def handler(request):
        return httpx.Response(200, json=LINK_TYPES)

    with pytest.raises(YouTrackError, match="Link type 'Parent' not found"):
        run_with(handler, lambda c: c.create_issue_link("1-4", "1-3", "Parent"))


def test_create_issue_link_picks_the_dependent_end():
    posts = []

    def handler(request):
        if request.url.path == "/api/issueLinkTypes":
            return httpx.Response(200, json=LINK_TYPES)
        posts.append(request.url.path)
        return httpx.Response(200, json={"id": "1-3"})

    async def link_all(client):
        await client.create_issue_link("1-4", "1-3", "Blocks")
        await client.create_issue_link("1-4", "1-3", "Depend")
        await client.create_issue_link("1-4", "1-3", "is required for")
        await client.create_issue_link("1-4", "1-3", "precedes")
        await client.create_issue_link("1-4", "1-3", "Follows")

    run_with(handler, link_all)

    assert posts == [
        "/api/issues/1-4/links/41-2t/issues",
        "/api/issues/1-4/links/41-1t/issues",
        "/api/issues/1-4/links/41-1s/issues",
        "/api/issues/1-4/links/41-3t/issues",
        "/api/issues/1-4/links/41-3s/issues",
    ]
