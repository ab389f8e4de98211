# src/testsmith/github/pr_submitter.py

from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import Any, AsyncIterator

import httpx

from ..core.ports import SubmissionResult
from ..tasks.errors import InvalidRepoUrl
from ..tasks.pipeline import branch_name_for
from ..tasks.repo_names import get_repo_slug_from_url
from ..vcs.git import GitCommandError, GitRunner

logger = logging.getLogger(__name__)


def _error_reason(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    message = ""
    if isinstance(data, dict):
        message = str(data.get("message") or "")
        errors = data.get("errors")
        if isinstance(errors, list) and errors:
            first = errors[0]
            detail = first.get("message") if isinstance(first, dict) else first
            if detail:
                message = f"{message} ({detail})" if message else str(detail)
    return f"HTTP {response.status_code}: {message or response.reason_phrase}"


class GitHubPRSubmitter:
    """
    Opens a pull request for a pushed enhancement branch.

    The target repository is taken from the workspace's git remote, so the
    submitter needs nothing beyond (workspace path, file path, unique id).
    """

    def __init__(self, settings: Any, *, git: GitRunner, client: httpx.AsyncClient | None = None) -> None:
        self._token = getattr(settings, "github_token", None)
        self._api_url = str(getattr(settings, "github_api_url", "https://api.github.com")).rstrip("/")
        self._base_branch = str(getattr(settings, "github_base_branch", "main"))
        self._git = git
        self._client = client

    @contextlib.asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=30.0) as client:
            yield client

    async def submit(self, workspace_path: Path, file_path: str, unique_id: str) -> SubmissionResult:
        if not self._token:
            return SubmissionResult(ok=False, reason="GitHub token is not set (TESTSMITH_GITHUB_TOKEN)")

        try:
            remote = await self._git.remote_url(workspace_path)
            slug = get_repo_slug_from_url(remote)
        except (GitCommandError, InvalidRepoUrl) as e:
            return SubmissionResult(ok=False, reason=f"cannot determine repository: {e}")

        branch = branch_name_for(unique_id)
        body = {
            "title": f"Enhance tests for {file_path}",
            "head": branch,
            "base": self._base_branch,
            "body": f"Automated test enhancement for `{file_path}`.\n\nBranch: `{branch}`",
        }
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

        url = f"{self._api_url}/repos/{slug}/pulls"
        try:
            async with self._http() as client:
                response = await client.post(url, json=body, headers=headers)
        except httpx.HTTPError as e:
            return SubmissionResult(ok=False, reason=f"{e.__class__.__name__}: {e}")

        if response.status_code != 201:
            reason = _error_reason(response)
            logger.warning("PR creation failed repo=%s branch=%s: %s", slug, branch, reason)
            return SubmissionResult(ok=False, reason=reason)

        pr_url = response.json().get("html_url")
        logger.info("PR opened repo=%s branch=%s url=%s", slug, branch, pr_url)
        return SubmissionResult(ok=True, pr_url=pr_url)
