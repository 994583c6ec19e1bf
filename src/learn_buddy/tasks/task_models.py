# src/learn_buddy/tasks/task_models.py

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(slots=True, frozen=True)
class SubTask:
    id: str
    description: str
    parent_id: str
    created_at: datetime
    completed: bool = False


@dataclass(slots=True, frozen=True)
class Task:
    id: str
    description: str
    created_at: datetime
    completed: bool = False
    story_points: int = 0
    subtasks: tuple[SubTask, ...] = ()

    # Display-only marker for freshly inserted tasks; never persisted.
    is_new: bool = False


@dataclass(slots=True, frozen=True)
class TaskDraft:
    """
    Data for a task that does not exist in a store yet.

    `id` is a client-side hint: the local store reuses it, the remote store
    always assigns its own.
    """

    description: str
    created_at: datetime
    completed: bool = False
    story_points: int = 0
    subtasks: tuple[SubTask, ...] = ()
    id: str | None = None

    @classmethod
    def from_task(cls, task: Task) -> TaskDraft:
        return cls(
            description=task.description,
            created_at=task.created_at,
            completed=task.completed,
            story_points=task.story_points,
            subtasks=task.subtasks,
            id=task.id,
        )


def build_task(draft: TaskDraft, task_id: str) -> Task:
    """Materialize a draft under its assigned id (subtasks point at that id)."""
    return Task(
        id=task_id,
        description=draft.description,
        created_at=draft.created_at,
        completed=draft.completed,
        story_points=draft.story_points,
        subtasks=tuple(replace(s, parent_id=task_id) for s in draft.subtasks),
    )


# ---- wire format ----
#
# Documents use the camelCase field names of the stored entity. `isNew` is
# transient and never written.


def _format_ts(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC).isoformat()


def _parse_ts(raw: Any) -> datetime:
    if not isinstance(raw, str) or not raw:
        raise ValueError(f"bad timestamp: {raw!r}")
    ts = datetime.fromisoformat(raw)
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=UTC)


def _require_str(data: dict[str, Any], key: str) -> str:
    val = data.get(key)
    if not isinstance(val, str) or not val.strip():
        raise ValueError(f"field {key!r} must be a non-empty string")
    return val


def subtask_to_doc(sub: SubTask) -> dict[str, Any]:
    return {
        "id": sub.id,
        "description": sub.description,
        "completed": sub.completed,
        "parentId": sub.parent_id,
        "createdAt": _format_ts(sub.created_at),
    }


def subtask_from_doc(data: Any) -> SubTask:
    if not isinstance(data, dict):
        raise ValueError("subtask must be an object")
    return SubTask(
        id=_require_str(data, "id"),
        description=_require_str(data, "description"),
        parent_id=_require_str(data, "parentId"),
        created_at=_parse_ts(data.get("createdAt")),
        completed=bool(data.get("completed", False)),
    )


def task_to_doc(task: Task) -> dict[str, Any]:
    """Document body for a task (without its id)."""
    return {
        "description": task.description,
        "completed": task.completed,
        "storyPoints": task.story_points,
        "createdAt": _format_ts(task.created_at),
        "subtasks": [subtask_to_doc(s) for s in task.subtasks],
    }


def task_from_doc(task_id: str, data: Any) -> Task:
    """
    Decode a stored document.

    Raises ValueError on anything malformed; callers decide whether that is a
    store failure or a degraded load.
    """
    if not isinstance(data, dict):
        raise ValueError("task must be an object")

    points = data.get("storyPoints", 0)
    if isinstance(points, bool) or not isinstance(points, int) or points < 0:
        raise ValueError(f"bad storyPoints: {points!r}")

    raw_subs = data.get("subtasks") or []
    if not isinstance(raw_subs, list):
        raise ValueError("subtasks must be a list")

    # Embedding decides ownership; a stale parentId is re-pointed at the owning task.
    subtasks = tuple(
        sub if sub.parent_id == task_id else replace(sub, parent_id=task_id)
        for sub in map(subtask_from_doc, raw_subs)
    )

    return Task(
        id=task_id,
        description=_require_str(data, "description"),
        created_at=_parse_ts(data.get("createdAt")),
        completed=bool(data.get("completed", False)),
        story_points=points,
        subtasks=subtasks,
    )


def encode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Translate a partial update (model names) into document field names."""
    out: dict[str, Any] = {}
    for key, val in fields.items():
        if key == "description":
            out["description"] = val
        elif key == "completed":
            out["completed"] = bool(val)
        elif key == "story_points":
            out["storyPoints"] = int(val)
        elif key == "subtasks":
            out["subtasks"] = [subtask_to_doc(s) for s in val]
        else:
            raise ValueError(f"field is not writable: {key}")
    return out
