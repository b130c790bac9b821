from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path


@dataclass
class RuntimeEnv:
    openai_api_key: str
    openai_base_url: str | None


@dataclass
class AppConfig:
    default_model: str
    default_mode: str
    account_id: str
    role: str
    history_limit: int
    backend_timeout_seconds: float
    exempt_roles: list[str]
    database_path: str
    models: dict
    rate_limits: list[dict]
    log_level: str
    log_consumers: list | None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def parse_app_config(config: dict) -> AppConfig:
    exempt_roles = config.get("ExemptRoles", ["admin"])
    if isinstance(exempt_roles, str):
        exempt_roles = [part for part in exempt_roles.split(",")]
    return AppConfig(
        default_model=str(config.get("DefaultModel", "gpt-4o-mini")).strip(),
        default_mode=str(config.get("DefaultMode", "auto")).strip().lower(),
        account_id=str(config.get("AccountId", "local")).strip() or "local",
        role=str(config.get("Role", "student")).strip().lower(),
        history_limit=max(1, int(config.get("HistoryLimit", 30))),
        backend_timeout_seconds=float(config.get("BackendTimeoutSeconds", 120)),
        exempt_roles=[role.strip().lower() for role in exempt_roles if role.strip()],
        database_path=str(config.get("DatabasePath", ".chat_gateway/gateway.db")),
        models=config.get("Models", {}),
        rate_limits=config.get("RateLimits", []),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(
        openai_api_key=os.environ.get("OPENAI_API_KEY", ""),
        openai_base_url=os.environ.get("OPENAI_BASE_URL") or None,
    )
