"""Scenario configuration resolved from the environment and the CI trigger payload."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from blockprobe.browser.network_idle import NETWORK_IDLE_0, normalize_idle_mode

logger = logging.getLogger("blockprobe.config")

DEFAULT_BASE_URL = "http://localhost:8889"
DEFAULT_TIMEOUT_MS = 60_000
DEFAULT_QUIESCENCE_MS = 500
DEFAULT_BUSY_GRACE_MS = 10_000


class ScenarioConfig(BaseModel):
    """Validated inputs for one block directory run."""

    model_config = ConfigDict(frozen=True)

    search_term: str
    plugin_slug: str
    base_url: str = DEFAULT_BASE_URL
    username: str = "admin"
    password: str = "password"
    default_timeout_ms: int = DEFAULT_TIMEOUT_MS
    network_idle_mode: str = NETWORK_IDLE_0
    quiescence_ms: int = DEFAULT_QUIESCENCE_MS
    busy_grace_ms: int = DEFAULT_BUSY_GRACE_MS
    cdp_port: int | None = None
    headless: bool = True

    @field_validator("search_term", "plugin_slug")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @field_validator("network_idle_mode")
    @classmethod
    def _known_idle_mode(cls, value: str) -> str:
        return normalize_idle_mode(value)

    @field_validator("default_timeout_ms", "quiescence_ms", "busy_grace_ms")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be positive")
        return value


def load_client_payload(event_path: Path | None) -> dict[str, Any]:
    """Return ``client_payload`` of a repository_dispatch event file, or ``{}``."""
    if event_path is None or not event_path.exists():
        return {}
    try:
        event = json.loads(event_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Could not read CI event payload %s: %s", event_path, exc)
        return {}
    if not isinstance(event, dict):
        return {}
    payload = event.get("client_payload")
    return payload if isinstance(payload, dict) else {}


def load_config(
    environ: Mapping[str, str] | None = None,
    event_path: Path | None = None,
    **overrides: Any,
) -> ScenarioConfig:
    """
    Resolve configuration: explicit overrides, then environment, then trigger payload.

    Raises:
        ValueError when required inputs are missing or invalid.
    """
    env = os.environ if environ is None else environ
    if event_path is None and env.get("GITHUB_EVENT_PATH"):
        event_path = Path(env["GITHUB_EVENT_PATH"])
    payload = load_client_payload(event_path)

    values: dict[str, Any] = {
        "search_term": env.get("SEARCH_TERM") or payload.get("searchTerm") or "",
        "plugin_slug": env.get("PLUGIN_SLUG") or payload.get("slug") or "",
    }
    env_fields = {
        "base_url": "WP_BASE_URL",
        "username": "WP_USERNAME",
        "password": "WP_PASSWORD",
        "cdp_port": "BLOCKPROBE_CDP_PORT",
    }
    for field_name, env_name in env_fields.items():
        if env.get(env_name):
            values[field_name] = env[env_name]
    values.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return ScenarioConfig(**values)
    except ValidationError as exc:
        raise ValueError(f"invalid scenario configuration: {exc}") from exc
