# src/testsmith/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (store/LLM/git/GitHub).
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import EventPublisher, SuggestionGenerator
from ..core.state import AppState
from ..events.publisher import LoggingEventPublisher
from ..github.pr_submitter import GitHubPRSubmitter
from ..llm.client import OpenAISuggestionGenerator
from ..llm.offline import OfflineSuggestionGenerator
from ..tasks.pipeline import WorkspacePipeline
from ..tasks.task_store import TaskStore
from ..vcs.git import GitRunner

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.repos_dir.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, publisher: EventPublisher | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    generator: SuggestionGenerator
    try:
        generator = OpenAISuggestionGenerator(settings)
    except RuntimeError as e:
        logger.warning("%s Falling back to offline generator.", e)
        generator = OfflineSuggestionGenerator()

    git = GitRunner(binary=settings.git_binary, remote=settings.git_remote)
    task_store = TaskStore(settings.db_path)
    submitter = GitHubPRSubmitter(settings, git=git)

    pipeline = WorkspacePipeline(
        repo_store=task_store,
        generator=generator,
        submitter=submitter,
        git=git,
        repos_dir=settings.repos_dir,
        test_suffix=settings.test_suffix,
        cleanup_workspaces=settings.cleanup_workspaces,
        publisher=publisher or LoggingEventPublisher(),
    )

    return AppState(
        settings=settings,
        task_store=task_store,
        generator=generator,
        submitter=submitter,
        git=git,
        pipeline=pipeline,
    )
