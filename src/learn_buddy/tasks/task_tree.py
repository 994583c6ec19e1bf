# src/learn_buddy/tasks/task_tree.py

"""
Task tree transforms.

Every function takes a sequence of tasks and returns a new list; inputs are
never mutated (tasks are frozen). Lookups are total: an unknown task or
subtask id turns the operation into a no-op instead of raising.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from datetime import datetime
from typing import Any

from ..core.errors import InvariantError
from .task_models import SubTask, Task, new_id, utc_now


def find_task(seq: Sequence[Task], task_id: str) -> Task | None:
    for task in seq:
        if task.id == task_id:
            return task
    return None


def index_of(seq: Sequence[Task], task_id: str) -> int:
    for i, task in enumerate(seq):
        if task.id == task_id:
            return i
    return -1


def _map_task(seq: Sequence[Task], task_id: str, fn: Callable[[Task], Task]) -> list[Task]:
    return [fn(t) if t.id == task_id else t for t in seq]


def parse_story_points(points: Any) -> int | None:
    """
    Coerce user input to a non-negative integer, or None if it is not one.

    Accepts ints, integral floats and digit strings. Rejects bools, negatives,
    fractions and anything else.
    """
    if isinstance(points, bool):
        return None
    if isinstance(points, int):
        return points if points >= 0 else None
    if isinstance(points, float):
        if not math.isfinite(points) or not points.is_integer() or points < 0:
            return None
        return int(points)
    if isinstance(points, str):
        s = points.strip()
        # ASCII only: str.isdigit also accepts superscripts and other digits int() rejects.
        if not (s.isascii() and s.isdigit()):
            return None
        try:
            return int(s)
        except ValueError:
            # Longer than the interpreter's int string conversion limit.
            return None
    return None


# ---- tasks ----


def add_task(
    seq: Sequence[Task],
    description: str,
    *,
    task_id: str | None = None,
    now: datetime | None = None,
) -> list[Task]:
    task = Task(
        id=task_id or new_id(),
        description=description,
        created_at=now or utc_now(),
        is_new=True,
    )
    return [task, *seq]


def insert_tasks(seq: Sequence[Task], tasks: Iterable[Task]) -> list[Task]:
    """Prepend a batch, keeping the batch's own order."""
    return [*tasks, *seq]


def toggle_complete(seq: Sequence[Task], task_id: str) -> list[Task]:
    return _map_task(seq, task_id, lambda t: replace(t, completed=not t.completed))


def set_story_points(seq: Sequence[Task], task_id: str, points: Any) -> list[Task]:
    value = parse_story_points(points)
    if value is None:
        return list(seq)
    return _map_task(seq, task_id, lambda t: replace(t, story_points=value))


def delete_task(seq: Sequence[Task], task_id: str) -> list[Task]:
    return [t for t in seq if t.id != task_id]


def delete_completed(seq: Sequence[Task]) -> list[Task]:
    return [t for t in seq if not t.completed]


def clear_new_flag(seq: Sequence[Task], ids: Iterable[str]) -> list[Task]:
    wanted = set(ids)
    return [replace(t, is_new=False) if t.id in wanted and t.is_new else t for t in seq]


def replace_task_id(seq: Sequence[Task], old_id: str, new_task_id: str) -> list[Task]:
    """Re-key a task (placeholder id -> store id), keeping subtasks attached."""

    def rekey(t: Task) -> Task:
        subs = tuple(replace(s, parent_id=new_task_id) for s in t.subtasks)
        return replace(t, id=new_task_id, subtasks=subs)

    return _map_task(seq, old_id, rekey)


# ---- subtasks ----


def add_subtask(
    seq: Sequence[Task],
    parent_id: str,
    description: str,
    *,
    subtask_id: str | None = None,
    now: datetime | None = None,
) -> list[Task]:
    def append(t: Task) -> Task:
        sub = SubTask(
            id=subtask_id or new_id(),
            description=description,
            parent_id=t.id,
            created_at=now or utc_now(),
        )
        return replace(t, subtasks=(*t.subtasks, sub))

    return _map_task(seq, parent_id, append)


def toggle_subtask_complete(seq: Sequence[Task], parent_id: str, subtask_id: str) -> list[Task]:
    def toggle(t: Task) -> Task:
        subs = tuple(
            replace(s, completed=not s.completed) if s.id == subtask_id else s for s in t.subtasks
        )
        return replace(t, subtasks=subs)

    return _map_task(seq, parent_id, toggle)


def delete_subtask(seq: Sequence[Task], parent_id: str, subtask_id: str) -> list[Task]:
    def drop(t: Task) -> Task:
        return replace(t, subtasks=tuple(s for s in t.subtasks if s.id != subtask_id))

    return _map_task(seq, parent_id, drop)


# ---- views ----


def pending(seq: Sequence[Task]) -> list[Task]:
    return [t for t in seq if not t.completed]


def completed(seq: Sequence[Task]) -> list[Task]:
    return [t for t in seq if t.completed]


def check_invariants(seq: Sequence[Task]) -> None:
    seen: set[str] = set()
    for task in seq:
        if task.id in seen:
            raise InvariantError(f"duplicate task id: {task.id}")
        seen.add(task.id)
        if task.story_points < 0:
            raise InvariantError(f"negative story points on task {task.id}")
        for sub in task.subtasks:
            if sub.parent_id != task.id:
                raise InvariantError(
                    f"subtask {sub.id} has parent_id={sub.parent_id}, owned by {task.id}"
                )


def restore(current: Sequence[Task], before: Sequence[Task], ids: Iterable[str]) -> list[Task]:
    """
    Put the given task ids back the way they were in `before`.

    Tasks that existed before are restored in place (or reinserted at their old
    index if they were removed); tasks that did not exist before are dropped.
    Tasks not named in `ids` are left as they are in `current`.
    """
    out = list(current)
    wanted = list(dict.fromkeys(ids))

    for task_id in wanted:
        if find_task(before, task_id) is None:
            out = delete_task(out, task_id)

    # Reinsert in ascending original index so earlier inserts don't shift later ones.
    originals = sorted(
        ((index_of(before, tid), tid) for tid in wanted if find_task(before, tid) is not None),
    )
    for old_index, task_id in originals:
        old = before[old_index]
        pos = index_of(out, task_id)
        if pos >= 0:
            out[pos] = old
        else:
            out.insert(min(old_index, len(out)), old)
    return out
