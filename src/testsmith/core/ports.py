# src/testsmith/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The scheduler, pipeline and event hub depend on Protocols instead of concrete
implementations. This keeps storage/LLM/hosting providers swappable and makes
testing easier.
"""

from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Protocol

if TYPE_CHECKING:
    from ..events.sse import SseMessage
    from ..tasks.pipeline import PipelineResult
    from ..tasks.task_models import Repo, Task, TaskStatus


class TaskRepo(Protocol):
    def find_first_queued(self) -> Task | None: ...
    def try_claim_task(self, task_id: int) -> bool: ...
    def update_task_status(self, task_id: int, new_status: TaskStatus, *, error: str | None = None) -> None: ...


class RepoRepo(Protocol):
    def get_repo(self, repo_id: int) -> Repo | None: ...


class TaskProcessor(Protocol):
    """What the scheduler runs for a claimed task (WorkspacePipeline in production)."""

    def process_task(self, task: Task) -> Awaitable[PipelineResult]: ...


class SuggestionGenerator(Protocol):
    """Turns (existing test text, source text) into revised test text, or None."""

    def generate_suggestions(self, test_content: str, source_content: str) -> str | None: ...


@dataclass(slots=True, frozen=True)
class SubmissionResult:
    ok: bool
    pr_url: str | None = None
    reason: str | None = None


class PRSubmitter(Protocol):
    def submit(self, workspace_path: Path, file_path: str, unique_id: str) -> Awaitable[SubmissionResult]: ...


class GitClient(Protocol):
    def create_branch(self, workdir: Path, branch: str) -> Awaitable[None]: ...
    def commit_and_push(self, workdir: Path, *, message: str, branch: str) -> Awaitable[None]: ...


class EventPublisher(Protocol):
    """
    Server-side push channel port.

    The pipeline reports progress here; how it reaches clients (SSE endpoint,
    broker, ...) is the implementation's business.
    """

    def publish(self, kind: str, payload: dict[str, Any]) -> None: ...


class EventTransport(Protocol):
    """Client-side push channel: one open() call is one live connection."""

    def open(self, url: str) -> AbstractAsyncContextManager[AsyncIterator[SseMessage]]: ...
