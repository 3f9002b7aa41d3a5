"""Normalize raw YouTrack issue records into Task objects.

YouTrack installations name their custom fields freely ("Start Date",
"Planned start", "Due", "Deadline", ...), so fields are located by
case-insensitive substring matching against a keyword table rather than by
exact name.  The table is plain data and can be overridden from settings.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

from ytgantt.models import UNASSIGNED, Task

logger = logging.getLogger(__name__)

DEFAULT_FIELD_KEYWORDS: dict[str, tuple[str, ...]] = {
    "start_date": ("start", "begin"),
    "due_date": ("due", "end", "deadline"),
    "estimation": ("estimation", "estimate", "effort"),
    "spent_time": ("spent", "actual"),
    "progress": ("progress", "completion", "%"),
    "state": ("state", "status"),
    "priority": ("priority",),
    "assignee": ("assignee",),
}

_PERIOD_UNITS = (("w", 5), ("d", 1))


@dataclass
class FieldMatcher:
    """Keyword table mapping canonical field names to name fragments."""

    keywords: dict[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_FIELD_KEYWORDS)
    )
    hours_per_day: float = 8.0
    created_as_start: bool = False

    @classmethod
    def with_overrides(
        cls,
        overrides: dict[str, list[str]] | None = None,
        hours_per_day: float = 8.0,
        created_as_start: bool = False,
    ) -> FieldMatcher:
        keywords = dict(DEFAULT_FIELD_KEYWORDS)
        for name, words in (overrides or {}).items():
            keywords[name] = tuple(words)
        return cls(keywords=keywords, hours_per_day=hours_per_day, created_as_start=created_as_start)

    def find(self, custom_fields: list[dict], canonical: str) -> dict | None:
        """Return the first custom field whose name contains a keyword."""
        words = [w.lower() for w in self.keywords.get(canonical, ())]
        for cf in custom_fields:
            if not isinstance(cf, dict):
                continue
            name = (cf.get("name") or "").lower()
            if any(w in name for w in words):
                return cf
        return None

    def value(self, custom_fields: list[dict], canonical: str):
        cf = self.find(custom_fields, canonical)
        return cf.get("value") if cf else None


# ---------------------------------------------------------------------------
# Value parsing
# ---------------------------------------------------------------------------


def parse_timestamp(value) -> datetime | None:
    """Epoch milliseconds (YouTrack) or an ISO string -> aware UTC datetime."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value)
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    return None


def parse_hours(value, hours_per_day: float = 8.0) -> float:
    """Convert a YouTrack period value into hours.

    Accepts a bare number (already hours), a ``{"minutes": N}`` period, or a
    ``{"presentation": "1w 2d 4h 30m"}`` string.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return max(0.0, float(value))
    if isinstance(value, str):
        value = {"presentation": value}
    if not isinstance(value, dict):
        return 0.0
    if value.get("minutes") is not None:
        return max(0.0, value["minutes"] / 60)
    text = (value.get("presentation") or "").lower()
    hours = 0.0
    for unit, days in _PERIOD_UNITS:
        m = re.search(rf"(\d+)\s*{unit}", text)
        if m:
            hours += int(m.group(1)) * days * hours_per_day
    m = re.search(r"(\d+)\s*h", text)
    if m:
        hours += int(m.group(1))
    m = re.search(r"(\d+)\s*m", text)
    if m:
        hours += int(m.group(1)) / 60
    return hours


def _parse_percent(value) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, dict):
        value = value.get("presentation") or value.get("name")
    try:
        pct = int(float(str(value).strip().rstrip("%")))
    except (TypeError, ValueError):
        return None
    return min(100, max(0, pct))


def _display_name(value) -> str | None:
    """Name of an enum/state/user value, which YouTrack nests in a dict."""
    if isinstance(value, dict):
        return value.get("fullName") or value.get("name") or value.get("login")
    if isinstance(value, str) and value:
        return value
    return None


def _parent_id(parent) -> str | None:
    # Either {"id": ...} or YouTrack's parent link {"issues": [{"id": ...}]}
    if not isinstance(parent, dict):
        return None
    if parent.get("id"):
        return str(parent["id"])
    issues = parent.get("issues") or []
    if issues and isinstance(issues[0], dict) and issues[0].get("id"):
        return str(issues[0]["id"])
    return None


# ---------------------------------------------------------------------------
# Record -> Task
# ---------------------------------------------------------------------------


def normalize_issue(raw: dict, matcher: FieldMatcher | None = None) -> Task | None:
    """Build a Task from one raw issue. Returns None for records without an id."""
    matcher = matcher or FieldMatcher()
    if not isinstance(raw, dict) or not raw.get("id"):
        logger.warning("Skipping issue record without id: %r", raw)
        return None

    custom_fields = raw.get("customFields") or []

    start_date = parse_timestamp(matcher.value(custom_fields, "start_date"))
    if start_date is None and matcher.created_as_start:
        start_date = parse_timestamp(raw.get("created"))
    due_date = parse_timestamp(matcher.value(custom_fields, "due_date"))
    resolved_at = parse_timestamp(raw.get("resolved"))

    status = (
        _display_name(raw.get("state"))
        or _display_name(matcher.value(custom_fields, "state"))
        or "Unknown"
    )
    priority = (
        _display_name(raw.get("priority"))
        or _display_name(matcher.value(custom_fields, "priority"))
        or "Normal"
    )
    assignee = (
        _display_name(raw.get("assignee"))
        or _display_name(matcher.value(custom_fields, "assignee"))
        or UNASSIGNED
    )

    parent_id = _parent_id(raw.get("parent"))

    return Task(
        id=str(raw["id"]),
        id_readable=raw.get("idReadable"),
        title=raw.get("summary") or "",
        description=raw.get("description"),
        status=status,
        priority=priority,
        assignee=assignee,
        start_date=start_date,
        end_date=due_date or resolved_at,
        due_date=due_date,
        resolved_at=resolved_at,
        progress_field=_parse_percent(matcher.value(custom_fields, "progress")),
        parent_id=parent_id,
        links=list(raw.get("links") or []),
        estimated_hours=parse_hours(matcher.value(custom_fields, "estimation"), matcher.hours_per_day),
        actual_hours=parse_hours(matcher.value(custom_fields, "spent_time"), matcher.hours_per_day),
    )


def normalize_issues(raws: list, matcher: FieldMatcher | None = None) -> list[Task]:
    """Normalize a batch, dropping malformed records."""
    matcher = matcher or FieldMatcher()
    tasks: list[Task] = []
    for raw in raws:
        try:
            task = normalize_issue(raw, matcher)
        except (TypeError, ValueError, AttributeError, OverflowError) as e:
            logger.warning("Skipping malformed issue record %r: %s", raw.get("id") if isinstance(raw, dict) else raw, e)
            continue
        if task is not None:
            tasks.append(task)
    return tasks
