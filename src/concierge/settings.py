"""Runtime configuration assembled once per run from YAML and the environment."""

from __future__ import annotations

import copy
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_CONFIG_NAME = "concierge.yaml"
DEFAULT_BOT_USERNAME = "github-actions[bot]"
DEFAULT_SPEC_DIR = ".supportbot"
DEFAULT_MODEL = "gpt-4o-2024-08-06"
DEFAULT_API_URL = "https://api.github.com"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "github": {
        "api_url": DEFAULT_API_URL,
        "bot_username": DEFAULT_BOT_USERNAME,
        "timeout": 30,
    },
    "spec_pack": {
        "path": DEFAULT_SPEC_DIR,
    },
    "models": {
        "default": DEFAULT_MODEL,
        "timeout": 60,
        "max_attempts": 3,
    },
    "paths": {
        "logs": "",
    },
}


class ConfigurationError(RuntimeError):
    """Raised when the runtime or spec pack configuration cannot be used."""


@dataclass(slots=True)
class RuntimeSettings:
    """Everything the orchestrator needs to know about its environment."""

    github_token: str = ""
    openai_api_key: str = ""
    github_api_url: str = DEFAULT_API_URL
    github_timeout: float = 30.0
    bot_username: str = DEFAULT_BOT_USERNAME
    spec_dir: Path = Path(DEFAULT_SPEC_DIR)
    model: str = DEFAULT_MODEL
    llm_timeout: float = 60.0
    llm_max_attempts: int = 3
    logs_dir: Optional[Path] = None
    event_name: str = ""
    event_path: Optional[Path] = None

    @classmethod
    def from_sources(
        cls,
        config: Mapping[str, Any] | None = None,
        env: Mapping[str, str] | None = None,
        *,
        base_dir: Path | None = None,
    ) -> "RuntimeSettings":
        """Merge config file values with environment overrides.

        Environment variables win over the YAML file so that workflow runners
        can override a checked-in configuration without editing it.
        """
        merged = copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)
        for section, values in (config or {}).items():
            if isinstance(values, Mapping) and isinstance(merged.get(section), dict):
                merged[section].update(values)
        environ = os.environ if env is None else env
        root = base_dir or Path.cwd()

        github_cfg = merged["github"]
        models_cfg = merged["models"]

        spec_dir = Path(environ.get("SUPPORTBOT_SPEC_DIR") or str(merged["spec_pack"].get("path") or DEFAULT_SPEC_DIR))
        if not spec_dir.is_absolute():
            spec_dir = root / spec_dir

        logs_value = environ.get("SUPPORTBOT_LOG_DIR") or str(merged["paths"].get("logs") or "")
        logs_dir: Optional[Path] = None
        if logs_value.strip():
            logs_dir = Path(logs_value.strip())
            if not logs_dir.is_absolute():
                logs_dir = root / logs_dir

        event_path_value = environ.get("GITHUB_EVENT_PATH", "").strip()

        return cls(
            github_token=environ.get("GITHUB_TOKEN", ""),
            openai_api_key=environ.get("OPENAI_API_KEY", ""),
            github_api_url=str(github_cfg.get("api_url") or DEFAULT_API_URL).rstrip("/"),
            github_timeout=_positive_float(github_cfg.get("timeout"), 30.0),
            bot_username=environ.get("SUPPORTBOT_BOT_USERNAME") or str(github_cfg.get("bot_username") or DEFAULT_BOT_USERNAME),
            spec_dir=spec_dir,
            model=environ.get("SUPPORTBOT_MODEL") or str(models_cfg.get("default") or DEFAULT_MODEL),
            llm_timeout=_positive_float(environ.get("SUPPORTBOT_LLM_TIMEOUT") or models_cfg.get("timeout"), 60.0),
            llm_max_attempts=_positive_int(models_cfg.get("max_attempts"), 3),
            logs_dir=logs_dir,
            event_name=environ.get("GITHUB_EVENT_NAME", ""),
            event_path=Path(event_path_value) if event_path_value else None,
        )

    def require_credentials(self) -> None:
        """Raise when the tokens needed for a live run are absent."""
        missing = []
        if not self.github_token:
            missing.append("GITHUB_TOKEN")
        if not self.openai_api_key:
            missing.append("OPENAI_API_KEY")
        if missing:
            raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")


def load_config_file(config_path: Path) -> Dict[str, Any]:
    """Read a YAML configuration file, returning an empty mapping when absent."""
    if not config_path.exists():
        return {}
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigurationError(f"Failed to parse config {config_path}: {error}") from error
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a mapping at the top level.")
    return data


def _positive_float(value: Any, default: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def _positive_int(value: Any, default: int) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    return default


__all__ = [
    "ConfigurationError",
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "RuntimeSettings",
    "load_config_file",
]
