# src/testsmith/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

ENV_PREFIX = "TESTSMITH"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path

    # ---- Workspaces ----
    repos_dir: Path
    test_suffix: str
    cleanup_workspaces: bool
    git_binary: str
    git_remote: str

    # ---- Scheduler ----
    scheduler_interval_seconds: float

    # ---- LLM (OpenAI-compatible) ----
    openai_api_key: Optional[str]
    openai_base_url: str
    llm_models: List[str]
    llm_connect_timeout_seconds: float
    llm_read_timeout_seconds: float

    # ---- GitHub ----
    github_token: Optional[str]
    github_api_url: str
    github_base_branch: str

    # ---- Event stream (client side) ----
    events_url: str
    reconnect_base_ms: int
    reconnect_max_ms: int
    reconnect_max_attempts: int

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "testsmith")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/testsmith"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "testsmith.sqlite3")

        repos_dir = _env_path(_k("REPOS_DIR"), Path("./repos"))
        test_suffix = _env(_k("TEST_SUFFIX"), ".test")
        cleanup_workspaces = _env_bool(_k("CLEANUP_WORKSPACES"), False)
        git_binary = _env(_k("GIT_BINARY"), "git")
        git_remote = _env(_k("GIT_REMOTE"), "origin")

        scheduler_interval_seconds = _env_float(_k("SCHEDULER_INTERVAL_SECONDS"), 60.0)

        openai_api_key = _first_env(_k("OPENAI_API_KEY"), "OPENAI_API_KEY", default=None)
        openai_base_url = _env(_k("OPENAI_BASE_URL"), "https://api.openai.com/v1")
        llm_models = _env_list(_k("LLM_MODELS"), ["gpt-4o-mini"])
        llm_connect_timeout_seconds = _env_float(_k("LLM_CONNECT_TIMEOUT_SECONDS"), 5.0)
        llm_read_timeout_seconds = _env_float(_k("LLM_READ_TIMEOUT_SECONDS"), 120.0)

        github_token = _first_env(_k("GITHUB_TOKEN"), "GITHUB_TOKEN", default=None)
        github_api_url = _env(_k("GITHUB_API_URL"), "https://api.github.com")
        github_base_branch = _env(_k("GITHUB_BASE_BRANCH"), "main")

        events_url = _env(_k("EVENTS_URL"), "http://localhost:3000/events/sse")
        reconnect_base_ms = _env_int(_k("RECONNECT_BASE_MS"), 1000)
        reconnect_max_ms = _env_int(_k("RECONNECT_MAX_MS"), 30000)
        # 0 means "retry forever".
        reconnect_max_attempts = _env_int(_k("RECONNECT_MAX_ATTEMPTS"), 0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            db_path=db_path,
            repos_dir=repos_dir,
            test_suffix=test_suffix,
            cleanup_workspaces=cleanup_workspaces,
            git_binary=git_binary,
            git_remote=git_remote,
            scheduler_interval_seconds=scheduler_interval_seconds,
            openai_api_key=openai_api_key,
            openai_base_url=openai_base_url,
            llm_models=llm_models,
            llm_connect_timeout_seconds=llm_connect_timeout_seconds,
            llm_read_timeout_seconds=llm_read_timeout_seconds,
            github_token=github_token,
            github_api_url=github_api_url,
            github_base_branch=github_base_branch,
            events_url=events_url,
            reconnect_base_ms=reconnect_base_ms,
            reconnect_max_ms=reconnect_max_ms,
            reconnect_max_attempts=reconnect_max_attempts,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
