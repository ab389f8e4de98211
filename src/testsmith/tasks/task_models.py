# src/testsmith/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Transitions only move forward:
      queued -> processing -> processed | error
    """

    QUEUED = "queued"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ERROR = "error"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.QUEUED
        return cls(raw)

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.PROCESSED, TaskStatus.ERROR)

    @staticmethod
    def can_transition(old: TaskStatus, new: TaskStatus) -> bool:
        return new in _ALLOWED_TRANSITIONS.get(old, ())


_ALLOWED_TRANSITIONS: dict[TaskStatus, tuple[TaskStatus, ...]] = {
    TaskStatus.QUEUED: (TaskStatus.PROCESSING,),
    TaskStatus.PROCESSING: (TaskStatus.PROCESSED, TaskStatus.ERROR),
}


@dataclass(slots=True)
class Task:
    id: int
    repo_id: int
    path: str
    status: TaskStatus
    created_at: float
    updated_at: float
    last_error: str | None = None


@dataclass(slots=True)
class Repo:
    id: int
    url: str
    created_at: float

    @property
    def name(self) -> str:
        """Short repository name; raises InvalidRepoUrl if the url cannot be parsed."""
        from .repo_names import get_repo_name_from_url

        return get_repo_name_from_url(self.url)
