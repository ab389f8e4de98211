# src/testsmith/tasks/pipeline.py

from __future__ import annotations

"""
Workspace pipeline.

One task = one ordered list of fallible steps:

  resolve repo -> repo name -> copy workspace -> create branch -> read files
  -> generate suggestions -> write test file -> commit+push -> submit PR

Each step raises its own PipelineError kind. The runner stops at the first
failure; side effects of completed steps (workspace copy, pushed branch) stay
where they are.
"""

import asyncio
import contextlib
import logging
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Awaitable, Callable, Sequence

from ..core.ports import EventPublisher, GitClient, PRSubmitter, RepoRepo, SuggestionGenerator
from ..events.models import EventKind, TaskEventType, build_task_payload
from ..events.publisher import publish_safely
from ..vcs.git import GitCommandError
from .errors import (
    FileNotFound,
    GenerationError,
    PipelineError,
    PRSubmissionError,
    RepoNotFound,
    VCSError,
    WorkspaceError,
)
from .task_models import Repo, Task

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "enhance/tests-"


def derive_test_path(source_path: str, suffix: str = ".test") -> str:
    """
    Co-located test file for a source file.

    >>> derive_test_path("src/foo.ts")
    'src/foo.test.ts'
    """
    p = PurePosixPath(source_path)
    return str(p.with_name(f"{p.stem}{suffix}{p.suffix}"))


def branch_name_for(unique_id: str) -> str:
    return f"{BRANCH_PREFIX}{unique_id}"


def commit_message_for(file_path: str) -> str:
    return f"Enhanced test coverage for {file_path}"


@dataclass(slots=True)
class PipelineResult:
    ok: bool
    task_id: int
    unique_id: str
    error_kind: str | None = None
    message: str | None = None
    repo_name: str | None = None
    workspace: Path | None = None
    branch: str | None = None
    pr_url: str | None = None


@dataclass(slots=True)
class _RunContext:
    task: Task
    unique_id: str
    repo: Repo | None = None
    repo_name: str | None = None
    workspace: Path | None = None
    branch: str | None = None
    test_path: str | None = None
    test_content: str | None = None
    source_content: str | None = None
    revised_content: str | None = None
    pr_url: str | None = None

    # Accessors for values produced by earlier steps. A step that runs out of
    # order fails with its own stage's error instead of a None dereference.

    def require_repo(self) -> Repo:
        if self.repo is None:
            raise RepoNotFound(f"repo {self.task.repo_id} was not resolved")
        return self.repo

    def require_repo_name(self) -> str:
        if self.repo_name is None:
            raise WorkspaceError("repository name was not derived")
        return self.repo_name

    def require_workspace(self) -> Path:
        if self.workspace is None:
            raise WorkspaceError("no workspace prepared for this task")
        return self.workspace

    def require_branch(self) -> str:
        if self.branch is None:
            raise VCSError("no branch created for this task")
        return self.branch


Step = tuple[str, Callable[[_RunContext], Awaitable[None]]]


async def run_steps(steps: Sequence[Step], ctx: _RunContext) -> PipelineError | None:
    """Run steps in order; return the first PipelineError (later steps never run)."""
    for name, step in steps:
        logger.debug("task %s: step %s", ctx.task.id, name)
        try:
            await step(ctx)
        except PipelineError as e:
            logger.warning("task %s: step %s failed: %s", ctx.task.id, name, e)
            return e
    return None


def _resolve_inside(root: Path, relative: str) -> Path:
    rel = PurePosixPath(relative)
    if rel.is_absolute() or ".." in rel.parts:
        raise FileNotFound(f"path escapes the workspace: {relative}")
    return root.joinpath(*rel.parts)


def _read_text(path: Path) -> str:
    try:
        return path.read_text("utf-8")
    except UnicodeDecodeError as e:
        raise FileNotFound(f"cannot read {path}: not valid UTF-8 ({e.reason} at byte {e.start})") from e
    except OSError as e:
        raise FileNotFound(f"cannot read {e.filename or path}: {e.strerror or e}") from e


class WorkspacePipeline:
    def __init__(
        self,
        *,
        repo_store: RepoRepo,
        generator: SuggestionGenerator,
        submitter: PRSubmitter,
        git: GitClient,
        repos_dir: str | Path = "./repos",
        test_suffix: str = ".test",
        cleanup_workspaces: bool = False,
        publisher: EventPublisher | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._repos = repo_store
        self._generator = generator
        self._submitter = submitter
        self._git = git
        self._repos_dir = Path(repos_dir)
        self._test_suffix = test_suffix
        self._cleanup = cleanup_workspaces
        self._publisher = publisher
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))

    @property
    def steps(self) -> list[Step]:
        return [
            ("resolve-repo", self._resolve_repo),
            ("repo-name", self._derive_repo_name),
            ("copy-workspace", self._copy_workspace),
            ("create-branch", self._create_branch),
            ("read-files", self._read_files),
            ("generate-suggestions", self._generate),
            ("write-test-file", self._write_test_file),
            ("commit-and-push", self._commit_and_push),
            ("submit-pr", self._submit_pr),
        ]

    async def process_task(self, task: Task) -> PipelineResult:
        ctx = _RunContext(task=task, unique_id=self._new_id())
        logger.info("task %s: starting pipeline path=%s id=%s", task.id, task.path, ctx.unique_id)

        async with self._workspace_scope(ctx):
            try:
                failure = await run_steps(self.steps, ctx)
            except Exception as e:
                # Not a pipeline error kind: the scheduler records it, subscribers still hear about it.
                self._emit(
                    ctx,
                    EventKind.TASK_ERROR,
                    TaskEventType.ERROR,
                    f"Failed to enhance tests for {task.path}",
                    metadata={"error": f"unexpected error: {e!r}", "errorKind": e.__class__.__name__},
                )
                raise

        result = PipelineResult(
            ok=failure is None,
            task_id=task.id,
            unique_id=ctx.unique_id,
            repo_name=ctx.repo_name,
            workspace=ctx.workspace,
            branch=ctx.branch,
            pr_url=ctx.pr_url,
        )
        if failure is not None:
            result.error_kind = failure.kind
            result.message = str(failure)
            self._emit(
                ctx,
                EventKind.TASK_ERROR,
                TaskEventType.ERROR,
                f"Failed to enhance tests for {task.path}",
                metadata={"error": result.message, "errorKind": failure.kind},
            )
        else:
            self._emit(
                ctx,
                EventKind.TASK_COMPLETED,
                TaskEventType.COMPLETE,
                f"Opened pull request for {task.path}",
                metadata={"prUrl": ctx.pr_url} if ctx.pr_url else None,
            )
        return result

    # ---- progress ----

    def _emit(
        self,
        ctx: _RunContext,
        kind: EventKind,
        event_type: TaskEventType | None = None,
        message: str | None = None,
        metadata: dict | None = None,
    ) -> None:
        if self._publisher is None:
            return
        payload = build_task_payload(
            task_id=ctx.task.id,
            repo_id=ctx.task.repo_id,
            file_path=ctx.task.path,
            repo_name=ctx.repo_name or "",
            event_type=event_type,
            message=message,
            metadata=metadata,
        )
        publish_safely(self._publisher, kind, payload)

    # ---- workspace lifetime ----

    @contextlib.asynccontextmanager
    async def _workspace_scope(self, ctx: _RunContext):
        try:
            yield
        finally:
            if self._cleanup and ctx.workspace is not None and ctx.workspace.exists():
                try:
                    await asyncio.to_thread(shutil.rmtree, ctx.workspace)
                    logger.info("task %s: removed workspace %s", ctx.task.id, ctx.workspace)
                except OSError:
                    logger.exception("task %s: failed to remove workspace %s", ctx.task.id, ctx.workspace)

    # ---- steps ----

    async def _resolve_repo(self, ctx: _RunContext) -> None:
        repo = self._repos.get_repo(ctx.task.repo_id)
        if repo is None:
            raise RepoNotFound(f"repo {ctx.task.repo_id} not found")
        ctx.repo = repo

    async def _derive_repo_name(self, ctx: _RunContext) -> None:
        # Repo.name raises InvalidRepoUrl.
        ctx.repo_name = ctx.require_repo().name

    async def _copy_workspace(self, ctx: _RunContext) -> None:
        repo_name = ctx.require_repo_name()
        self._emit(ctx, EventKind.TASK_STARTED)
        self._emit(ctx, EventKind.TASK_PROGRESS, TaskEventType.SETUP_REPO, "Setting up workspace")

        source = self._repos_dir / repo_name
        target = self._repos_dir / f"{repo_name}-{ctx.unique_id}"
        if not source.is_dir():
            raise WorkspaceError(f"canonical workspace missing: {source}")
        try:
            await asyncio.to_thread(shutil.copytree, source, target, symlinks=True)
        except (OSError, shutil.Error) as e:
            raise WorkspaceError(f"copy {source} -> {target} failed: {e}") from e
        ctx.workspace = target
        logger.info("task %s: workspace %s", ctx.task.id, target)

    async def _create_branch(self, ctx: _RunContext) -> None:
        workspace = ctx.require_workspace()
        branch = branch_name_for(ctx.unique_id)
        try:
            await self._git.create_branch(workspace, branch)
        except GitCommandError as e:
            raise VCSError(f"create branch {branch} failed: {e}") from e
        ctx.branch = branch

    async def _read_files(self, ctx: _RunContext) -> None:
        workspace = ctx.require_workspace()
        ctx.test_path = derive_test_path(ctx.task.path, self._test_suffix)
        source_file = _resolve_inside(workspace, ctx.task.path)
        test_file = _resolve_inside(workspace, ctx.test_path)
        ctx.test_content = _read_text(test_file)
        ctx.source_content = _read_text(source_file)

    async def _generate(self, ctx: _RunContext) -> None:
        self._emit(
            ctx,
            EventKind.TASK_PROGRESS,
            TaskEventType.GENERATE_SUGGESTIONS,
            "Generating test suggestions",
        )
        try:
            revised = await asyncio.to_thread(
                self._generator.generate_suggestions,
                ctx.test_content or "",
                ctx.source_content or "",
            )
        except Exception as e:
            raise GenerationError(f"generator failed: {e}") from e
        if not revised or not revised.strip():
            raise GenerationError("no response returned")
        ctx.revised_content = revised

    async def _write_test_file(self, ctx: _RunContext) -> None:
        test_path = ctx.test_path or derive_test_path(ctx.task.path, self._test_suffix)
        test_file = _resolve_inside(ctx.require_workspace(), test_path)
        try:
            test_file.write_text(ctx.revised_content or "", "utf-8")
        except OSError as e:
            raise WorkspaceError(f"cannot write {test_file}: {e}") from e

    async def _commit_and_push(self, ctx: _RunContext) -> None:
        workspace = ctx.require_workspace()
        branch = ctx.require_branch()
        try:
            await self._git.commit_and_push(
                workspace,
                message=commit_message_for(ctx.task.path),
                branch=branch,
            )
        except GitCommandError as e:
            raise VCSError(f"commit/push failed: {e}") from e

    async def _submit_pr(self, ctx: _RunContext) -> None:
        workspace = ctx.require_workspace()
        self._emit(ctx, EventKind.TASK_PROGRESS, TaskEventType.CREATE_PR, "Creating pull request")
        try:
            result = await self._submitter.submit(workspace, ctx.task.path, ctx.unique_id)
        except Exception as e:
            raise PRSubmissionError(f"PR submission failed: {e}") from e
        if not result.ok:
            raise PRSubmissionError(f"PR submission failed: {result.reason or 'unknown reason'}")
        ctx.pr_url = result.pr_url
