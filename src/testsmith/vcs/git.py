# src/testsmith/vcs/git.py

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GitResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class GitCommandError(RuntimeError):
    def __init__(self, result: GitResult) -> None:
        detail = (result.stderr or result.stdout).strip()
        super().__init__(f"`{' '.join(result.args)}` exited with {result.returncode}: {detail}")
        self.result = result


class GitRunner:
    """
    Run git inside a working directory.

    Commands are executed without a shell, so paths and commit messages need no quoting.
    """

    def __init__(self, *, binary: str = "git", remote: str = "origin") -> None:
        self._binary = binary
        self._remote = remote

    async def run(self, workdir: Path, *args: str) -> GitResult:
        cmd = (self._binary, *args)
        logger.debug("git: %s (cwd=%s)", " ".join(args), workdir)
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(workdir),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            # Missing binary or bad cwd: report it like a failed command.
            return GitResult(args=cmd, returncode=127, stdout="", stderr=str(e))

        stdout_bytes, stderr_bytes = await process.communicate()
        return GitResult(
            args=cmd,
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout_bytes.decode("utf-8", errors="replace"),
            stderr=stderr_bytes.decode("utf-8", errors="replace"),
        )

    async def run_chain(self, workdir: Path, commands: Sequence[Sequence[str]]) -> list[GitResult]:
        """Run commands in order like `a && b && c`; raise on the first non-zero exit."""
        results: list[GitResult] = []
        for args in commands:
            result = await self.run(workdir, *args)
            if not result.ok:
                raise GitCommandError(result)
            results.append(result)
        return results

    async def create_branch(self, workdir: Path, branch: str) -> None:
        await self.run_chain(workdir, [("checkout", "-b", branch)])
        logger.info("git: checked out new branch %s in %s", branch, workdir)

    async def commit_and_push(self, workdir: Path, *, message: str, branch: str) -> None:
        await self.run_chain(
            workdir,
            [
                ("add", "."),
                ("commit", "-m", message),
                ("push", self._remote, branch),
            ],
        )
        logger.info("git: pushed %s to %s", branch, self._remote)

    async def remote_url(self, workdir: Path) -> str:
        (result,) = await self.run_chain(workdir, [("remote", "get-url", self._remote)])
        return result.stdout.strip()
