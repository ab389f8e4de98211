# tests/test_git_runner.py

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from testsmith.vcs.git import GitCommandError, GitRunner

needs_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


@pytest.mark.asyncio
async def test_missing_binary_is_reported_as_command_failure(tmp_path: Path) -> None:
    runner = GitRunner(binary="definitely-not-git-xyz")

    result = await runner.run(tmp_path, "status")
    assert not result.ok
    assert result.returncode == 127

    with pytest.raises(GitCommandError) as exc_info:
        await runner.create_branch(tmp_path, "enhance/tests-1")
    assert exc_info.value.result.returncode == 127


@pytest.mark.asyncio
@needs_git
async def test_create_branch_in_fresh_repo(tmp_path: Path) -> None:
    runner = GitRunner()
    assert (await runner.run(tmp_path, "init", "-q")).ok

    await runner.create_branch(tmp_path, "enhance/tests-1")

    head = await runner.run(tmp_path, "symbolic-ref", "--short", "HEAD")
    assert head.stdout.strip() == "enhance/tests-1"


@pytest.mark.asyncio
@needs_git
async def test_chain_stops_at_first_failure(tmp_path: Path) -> None:
    runner = GitRunner()
    assert (await runner.run(tmp_path, "init", "-q")).ok

    with pytest.raises(GitCommandError) as exc_info:
        await runner.run_chain(tmp_path, [("checkout", "-b", "a"), ("no-such-command",), ("checkout", "-b", "b")])

    assert exc_info.value.result.args == ("git", "no-such-command")
    head = await runner.run(tmp_path, "symbolic-ref", "--short", "HEAD")
    assert head.stdout.strip() == "a"


@pytest.mark.asyncio
@needs_git
async def test_remote_url_without_remote_fails(tmp_path: Path) -> None:
    runner = GitRunner(remote="origin")
    assert (await runner.run(tmp_path, "init", "-q")).ok

    with pytest.raises(GitCommandError):
        await runner.remote_url(tmp_path)
