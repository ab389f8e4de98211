# src/testsmith/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..core.ports import PRSubmitter, SuggestionGenerator
from ..tasks.pipeline import WorkspacePipeline
from ..tasks.task_store import TaskStore
from ..vcs.git import GitRunner


@dataclass
class AppState:
    # Settings object (config.Settings in production, SimpleNamespace in tests).
    settings: Any

    task_store: TaskStore
    generator: SuggestionGenerator
    submitter: PRSubmitter
    git: GitRunner
    pipeline: WorkspacePipeline
