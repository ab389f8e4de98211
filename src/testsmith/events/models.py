# src/testsmith/events/models.py

"""
Push channel wire contract.

Every event is a named SSE message whose data is a JSON object. Field names on
the wire are camelCase:

  task-progress / task-started / task-completed / task-error:
    taskId, repoId, filePath, repoName, eventType, message, timestamp, metadata?
  heartbeat:
    timestamp

The is_* helpers are structural checks only: they look at presence and type of
the required fields. They may accept odd-but-shape-matching data; they must not
reject a well-formed payload.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Callable, Union


class EventKind(StrEnum):
    TASK_PROGRESS = "task-progress"
    TASK_STARTED = "task-started"
    TASK_COMPLETED = "task-completed"
    TASK_ERROR = "task-error"
    HEARTBEAT = "heartbeat"


class TaskEventType(StrEnum):
    SETUP_REPO = "setup-repo"
    GENERATE_SUGGESTIONS = "generate-suggestions"
    CREATE_PR = "create-pr"
    COMPLETE = "complete"
    ERROR = "error"


class EventParseError(ValueError):
    """Incoming event data is not JSON or does not match its kind's shape."""


@dataclass(slots=True, frozen=True)
class PushEvent:
    kind: EventKind
    data: dict[str, Any]


# ---- shape checks ----

_TASK_STRING_FIELDS = ("taskId", "repoId", "filePath", "repoName")


def is_task_started_event(data: Any) -> bool:
    return isinstance(data, dict) and all(isinstance(data.get(f), str) for f in _TASK_STRING_FIELDS)


def is_task_progress_event(data: Any) -> bool:
    return (
        is_task_started_event(data)
        and data.get("eventType") is not None
        and isinstance(data.get("message"), str)
    )


def is_task_completed_event(data: Any) -> bool:
    return is_task_progress_event(data) and data.get("eventType") == TaskEventType.COMPLETE.value


def is_task_error_event(data: Any) -> bool:
    if not (is_task_progress_event(data) and data.get("eventType") == TaskEventType.ERROR.value):
        return False
    metadata = data.get("metadata")
    if not isinstance(metadata, dict):
        return False
    error = metadata.get("error")
    return isinstance(error, str) and bool(error)


def is_heartbeat_event(data: Any) -> bool:
    return isinstance(data, dict) and bool(data.get("timestamp"))


SHAPE_CHECKS: dict[EventKind, Callable[[Any], bool]] = {
    EventKind.TASK_PROGRESS: is_task_progress_event,
    EventKind.TASK_STARTED: is_task_started_event,
    EventKind.TASK_COMPLETED: is_task_completed_event,
    EventKind.TASK_ERROR: is_task_error_event,
    EventKind.HEARTBEAT: is_heartbeat_event,
}


def parse_push_event(kind: EventKind | str, raw: str) -> PushEvent:
    """Decode one event's text payload into a PushEvent, or raise EventParseError."""
    try:
        event_kind = EventKind(kind)
    except ValueError as e:
        raise EventParseError(f"unknown event kind {kind!r}") from e

    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise EventParseError(f"{event_kind}: payload is not JSON: {e}") from e

    if not SHAPE_CHECKS[event_kind](data):
        raise EventParseError(f"{event_kind}: payload does not match the expected shape")
    return PushEvent(kind=event_kind, data=data)


# ---- typed payloads ----


@dataclass(slots=True, frozen=True)
class TaskStartedEvent:
    task_id: str
    repo_id: str
    file_path: str
    repo_name: str
    timestamp: str | None = None


@dataclass(slots=True, frozen=True)
class TaskProgressEvent:
    task_id: str
    repo_id: str
    file_path: str
    repo_name: str
    event_type: str
    message: str
    timestamp: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def pr_url(self) -> str | None:
        value = self.metadata.get("prUrl")
        return value if isinstance(value, str) else None

    @property
    def error(self) -> str | None:
        value = self.metadata.get("error")
        return None if value is None else str(value)


@dataclass(slots=True, frozen=True)
class TaskCompletedEvent(TaskProgressEvent):
    pass


@dataclass(slots=True, frozen=True)
class TaskErrorEvent(TaskProgressEvent):
    pass


@dataclass(slots=True, frozen=True)
class HeartbeatEvent:
    timestamp: str


TypedPayload = Union[TaskStartedEvent, TaskProgressEvent, HeartbeatEvent]

_PROGRESS_VARIANTS: dict[EventKind, type[TaskProgressEvent]] = {
    EventKind.TASK_PROGRESS: TaskProgressEvent,
    EventKind.TASK_COMPLETED: TaskCompletedEvent,
    EventKind.TASK_ERROR: TaskErrorEvent,
}


def typed_payload(event: PushEvent) -> TypedPayload:
    """Map an already-validated PushEvent onto its typed variant."""
    d = event.data
    if event.kind == EventKind.HEARTBEAT:
        return HeartbeatEvent(timestamp=str(d["timestamp"]))

    ts = d.get("timestamp")
    timestamp = None if ts is None else str(ts)

    if event.kind == EventKind.TASK_STARTED:
        return TaskStartedEvent(
            task_id=d["taskId"],
            repo_id=d["repoId"],
            file_path=d["filePath"],
            repo_name=d["repoName"],
            timestamp=timestamp,
        )

    metadata = d.get("metadata")
    return _PROGRESS_VARIANTS[event.kind](
        task_id=d["taskId"],
        repo_id=d["repoId"],
        file_path=d["filePath"],
        repo_name=d["repoName"],
        event_type=str(d["eventType"]),
        message=d["message"],
        timestamp=timestamp,
        metadata=dict(metadata) if isinstance(metadata, dict) else {},
    )


# ---- payload builders (server side) ----


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def build_task_payload(
    *,
    task_id: int | str,
    repo_id: int | str,
    file_path: str,
    repo_name: str,
    event_type: TaskEventType | None = None,
    message: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "taskId": str(task_id),
        "repoId": str(repo_id),
        "filePath": file_path,
        "repoName": repo_name,
        "timestamp": _now_iso(),
    }
    if event_type is not None:
        payload["eventType"] = event_type.value
    if message is not None:
        payload["message"] = message
    if metadata:
        payload["metadata"] = dict(metadata)
    return payload


def build_heartbeat_payload() -> dict[str, Any]:
    return {"timestamp": _now_iso()}
