"""Settings: environment variables over a JSON file over defaults."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from ytgantt.adapter import FieldMatcher

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "ytgantt.json"
CONFIG_ENV = "YOUTRACK_MCP_CONFIG"

_ENV_KEYS = {
    "youtrack_url": "YOUTRACK_URL",
    "youtrack_token": "YOUTRACK_TOKEN",
    "default_project_id": "YOUTRACK_PROJECT_ID",
}


class ConfigError(Exception):
    """Settings are missing or unreadable."""


@dataclass
class Settings:
    """Connection and analysis settings."""

    youtrack_url: str = ""
    youtrack_token: str = ""
    default_project_id: str | None = None
    timeout: float = 30.0
    page_size: int = 100
    max_issues: int = 500
    hours_per_day: float = 8.0
    created_as_start: bool = False
    field_keywords: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        d = {
            "youtrack_url": self.youtrack_url,
            "youtrack_token": self.youtrack_token,
            "default_project_id": self.default_project_id,
            "timeout": self.timeout,
            "page_size": self.page_size,
            "max_issues": self.max_issues,
            "hours_per_day": self.hours_per_day,
            "created_as_start": self.created_as_start,
        }
        if self.field_keywords:
            d["field_keywords"] = self.field_keywords
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Settings:
        return cls(
            youtrack_url=d.get("youtrack_url", ""),
            youtrack_token=d.get("youtrack_token", ""),
            default_project_id=d.get("default_project_id"),
            timeout=d.get("timeout", 30.0),
            page_size=d.get("page_size", 100),
            max_issues=d.get("max_issues", 500),
            hours_per_day=d.get("hours_per_day", 8.0),
            created_as_start=d.get("created_as_start", False),
            field_keywords=d.get("field_keywords", {}),
        )

    def validate(self) -> None:
        if not self.youtrack_url or not self.youtrack_token:
            raise ConfigError("YOUTRACK_URL and YOUTRACK_TOKEN are required")

    def field_matcher(self) -> FieldMatcher:
        return FieldMatcher.with_overrides(
            self.field_keywords,
            hours_per_day=self.hours_per_day,
            created_as_start=self.created_as_start,
        )

    def resolve_project(self, project_id: str | None) -> str:
        project = project_id or self.default_project_id
        if not project:
            raise ConfigError("No project given and no default project configured")
        return project


class SettingsStore:
    """Reads and writes the settings file (JSON)."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path or os.getenv(CONFIG_ENV) or DEFAULT_CONFIG_FILE)

    def load(self) -> Settings:
        """File values (if the file exists) overlaid with environment variables."""
        raw: dict = {}
        if self.path.exists():
            try:
                raw = json.loads(self.path.read_text())
            except (OSError, json.JSONDecodeError) as e:
                raise ConfigError(f"Cannot read settings file {self.path}: {e}") from e
            if not isinstance(raw, dict):
                raise ConfigError(f"Settings file {self.path} must contain a JSON object")

        for key, env in _ENV_KEYS.items():
            value = os.getenv(env)
            if value:
                raw[key] = value

        return Settings.from_dict(raw)

    def save(self, settings: Settings) -> None:
        self.path.write_text(json.dumps(settings.to_dict(), indent=4))
        logger.info("Wrote settings to %s", self.path)


def load_settings(path: str | Path | None = None) -> Settings:
    return SettingsStore(path).load()
