from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from nlsql_chat.transcript import DEFAULT_WELCOME_TEXT


@dataclass
class RuntimeEnv:
    api_token: str | None
    username: str | None
    password: str | None


@dataclass
class AppConfig:
    api_base_url: str
    request_timeout_seconds: float
    workspace_id: str | None
    session_id: str | None
    auto_connect: bool
    welcome_message: str
    log_level: str
    log_consumers: list | None


def load_json_config(path: Path | None = None) -> dict:
    config_path = path or Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


def parse_app_config(config: dict) -> AppConfig:
    return AppConfig(
        api_base_url=str(config.get("ApiBaseUrl", "http://localhost:8000/api")).strip(),
        request_timeout_seconds=float(config.get("RequestTimeoutSeconds", 30.0)),
        workspace_id=_optional_str(config.get("WorkspaceId")),
        session_id=_optional_str(config.get("SessionId")),
        auto_connect=_to_bool(config.get("AutoConnect", True), default=True),
        welcome_message=str(config.get("WelcomeMessage") or DEFAULT_WELCOME_TEXT),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(
        api_token=os.environ.get("NLSQL_API_TOKEN") or None,
        username=os.environ.get("NLSQL_USERNAME") or None,
        password=os.environ.get("NLSQL_PASSWORD") or None,
    )
