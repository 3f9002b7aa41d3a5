"""Async YouTrack REST client: the data source for every analysis."""

from __future__ import annotations

import logging

import httpx

from ytgantt.graph import dependent_direction

logger = logging.getLogger(__name__)

ISSUE_FIELDS = (
    "id,idReadable,summary,description,state(name),priority(name),"
    "assignee(login,fullName,email),created,resolved,updated,"
    "customFields(name,value($type,name,id,login,fullName,minutes,presentation)),"
    "links(linkType(name,sourceToTarget,targetToSource,directed),direction,"
    "issues(id,idReadable,summary)),"
    "parent(issues(id,idReadable))"
)
LINK_TYPE_FIELDS = "id,name,sourceToTarget,targetToSource,directed"


class YouTrackError(Exception):
    """A YouTrack request failed (transport error or non-2xx response)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _error_detail(r: httpx.Response) -> str:
    """Extract a human-readable error from a YouTrack response."""
    try:
        data = r.json()
    except ValueError:
        return r.text[:200] if r.text else f"HTTP {r.status_code}"
    if isinstance(data, dict):
        return data.get("error_description") or data.get("error") or str(data)
    return str(data)


def _singular(name: str) -> str:
    # "Depends" and YouTrack's default "Depend" name the same type
    return name.strip().lower().removesuffix("s")


def _link_end(link_type: dict, wanted: str) -> str:
    """``s`` (outward) or ``t`` (inward) end of a directed link type."""
    if _singular(link_type.get("name") or "") != wanted:
        if _singular(link_type.get("sourceToTarget") or "") == wanted:
            return "s"
        if _singular(link_type.get("targetToSource") or "") == wanted:
            return "t"
    return "t" if dependent_direction(link_type) == "INWARD" else "s"


def api_base(url: str) -> str:
    url = url.rstrip("/")
    return url if url.endswith("/api") else f"{url}/api"


class YouTrackClient:
    """Thin wrapper over the handful of endpoints the analyses need."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 30.0,
        page_size: int = 100,
        max_issues: int = 500,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.page_size = page_size
        self.max_issues = max_issues
        self._link_types: list[dict] | None = None
        self._http = httpx.AsyncClient(
            base_url=api_base(base_url),
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> YouTrackClient:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs):
        logger.debug("%s %s %s", method, path, kwargs.get("params") or "")
        try:
            r = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise YouTrackError(f"Request to {path} failed: {e}") from e
        if not r.is_success:
            raise YouTrackError(
                f"Client error '{r.status_code} {r.reason_phrase}' for url '{r.url}'\n{_error_detail(r)}",
                status_code=r.status_code,
            )
        return r.json() if r.content else None

    # ------------------------------------------------------------------
    # Issues
    # ------------------------------------------------------------------

    async def fetch_issues(self, project_id: str) -> list[dict]:
        """All issues of a project with timing, custom field and link data."""
        issues: list[dict] = []
        skip = 0
        while len(issues) < self.max_issues:
            top = min(self.page_size, self.max_issues - len(issues))
            page = await self._request(
                "GET",
                "/issues",
                params={
                    "query": f"project: {project_id}",
                    "fields": ISSUE_FIELDS,
                    "$top": top,
                    "$skip": skip,
                },
            )
            page = page or []
            issues.extend(page)
            if len(page) < top:
                break
            skip += len(page)
        logger.info("Fetched %d issues for project %s", len(issues), project_id)
        return issues

    async def get_issue(self, issue_id: str) -> dict:
        return await self._request("GET", f"/issues/{issue_id}", params={"fields": ISSUE_FIELDS})

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    async def link_types(self) -> list[dict]:
        if self._link_types is None:
            self._link_types = await self._request(
                "GET", "/issueLinkTypes", params={"fields": LINK_TYPE_FIELDS}
            ) or []
        return self._link_types

    async def create_issue_link(self, source_id: str, target_id: str, link_type: str) -> dict:
        """Link *source_id* to *target_id* with the named link type.

        A directed type named by one of its verbs uses that verb's end.
        Named by the type name, the end whose verb says "depends on" or
        "is blocked by" is used, so the link reads "source depends on
        target". Types without such a verb link outward.
        """
        wanted = _singular(link_type)
        for lt in await self.link_types():
            names = (lt.get("name"), lt.get("sourceToTarget"), lt.get("targetToSource"))
            if any(n and _singular(n) == wanted for n in names):
                break
        else:
            raise YouTrackError(f"Link type '{link_type}' not found")

        link_id = f"{lt['id']}{_link_end(lt, wanted)}" if lt.get("directed") else lt["id"]
        logger.info("Linking %s -> %s (%s)", source_id, target_id, lt.get("name"))
        result = await self._request(
            "POST",
            f"/issues/{source_id}/links/{link_id}/issues",
            params={"fields": "id,idReadable"},
            json={"id": target_id},
        )
        return {
            "success": True,
            "linkType": lt.get("name"),
            "source": source_id,
            "target": target_id,
            "issue": result,
        }
