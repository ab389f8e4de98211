# src/testsmith/tasks/errors.py

"""
Pipeline error kinds.

Each step of the enhancement pipeline raises exactly one of these. The pipeline
runner stops at the first one and turns it into a failed PipelineResult.
"""

from __future__ import annotations


class PipelineError(Exception):
    kind = "PipelineError"
    stage = "unknown"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind} at {self.stage}: {self.message}"


class RepoNotFound(PipelineError):
    kind = "RepoNotFound"
    stage = "resolve-repo"


class InvalidRepoUrl(PipelineError):
    kind = "InvalidRepoUrl"
    stage = "repo-name"


class WorkspaceError(PipelineError):
    kind = "WorkspaceError"
    stage = "workspace"


class VCSError(PipelineError):
    kind = "VCSError"
    stage = "vcs"


class FileNotFound(PipelineError):
    kind = "FileNotFound"
    stage = "read-files"


class GenerationError(PipelineError):
    kind = "GenerationError"
    stage = "generate-suggestions"


class PRSubmissionError(PipelineError):
    kind = "PRSubmissionError"
    stage = "create-pr"


class InvalidTransition(Exception):
    """Raised by the store when a status change would move a task backwards."""
