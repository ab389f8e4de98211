# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from testsmith.tasks.task_store import TaskStore

FOO_SOURCE = "export const foo = (x: number) => x * 2;\n"
FOO_TEST = "import { foo } from './foo';\ntest('foo', () => expect(foo(2)).toBe(4));\n"


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with bootstrap and adapters.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        data_dir=tmp_path / "data",
        db_path=tmp_path / "data" / "testsmith.sqlite3",
        repos_dir=tmp_path / "repos",
        test_suffix=".test",
        cleanup_workspaces=False,
        git_binary="git",
        git_remote="origin",
        scheduler_interval_seconds=0.01,
        openai_api_key=None,
        openai_base_url="https://llm.invalid/v1",
        llm_models=["model-a", "model-b"],
        llm_connect_timeout_seconds=1.0,
        llm_read_timeout_seconds=1.0,
        github_token="gh-token",
        github_api_url="https://api.github.test",
        github_base_branch="main",
        events_url="http://events.test/sse",
        reconnect_base_ms=1,
        reconnect_max_ms=8,
        reconnect_max_attempts=0,
    )


@pytest.fixture()
def repos_dir(tmp_path: Path) -> Path:
    """Canonical workspace for acme/widgets with one source file and its test."""
    root = tmp_path / "repos"
    src = root / "widgets" / "src"
    src.mkdir(parents=True)
    (src / "foo.ts").write_text(FOO_SOURCE, "utf-8")
    (src / "foo.test.ts").write_text(FOO_TEST, "utf-8")
    return root


@pytest.fixture()
def store(tmp_path: Path) -> TaskStore:
    """Real SQLite store: its correctness is part of what we test."""
    return TaskStore(tmp_path / "testsmith.sqlite3")
