# src/learn_buddy/tasks/local_store.py

"""
Local task store for the signed-out mode.

The whole collection is one JSON blob under a fixed key and is rewritten on
every mutation. There is a single implicit identity, so `owner` is ignored.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path
from typing import Any

from ..core.errors import LoadError, StoreError, TaskNotFoundError
from ..core.ports import KeyValueStorage
from .task_models import Task, TaskDraft, build_task, new_id, task_from_doc, task_to_doc
from .task_tree import find_task, parse_story_points

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "learn_buddy.tasks"


class JsonFileStorage:
    """
    KeyValueStorage backed by a single JSON object on disk.

    Writes go to a temp file first and are moved into place, so a crash never
    leaves a half-written file behind.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        data = json.loads(self._path.read_text("utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"{self._path} does not hold a JSON object")
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def get_item(self, key: str) -> str | None:
        return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        try:
            data = self._read_all()
        except ValueError:
            logger.warning("Storage file %s is unreadable; starting a fresh one", self._path)
            data = {}
        data[key] = value

        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), "utf-8")
        os.replace(tmp, self._path)
        with contextlib.suppress(OSError):
            # Task text is personal data; keep the file private on disk.
            os.chmod(self._path, 0o600)


def encode_collection(tasks: Sequence[Task]) -> str:
    return json.dumps([{"id": t.id, **task_to_doc(t)} for t in tasks], ensure_ascii=False)


def decode_collection(raw: str) -> list[Task]:
    """Strict decode; raises LoadError on anything malformed."""
    try:
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError("snapshot is not a list")
        tasks: list[Task] = []
        seen: set[str] = set()
        for entry in data:
            if not isinstance(entry, dict) or not isinstance(entry.get("id"), str):
                raise ValueError("snapshot entry without an id")
            task = task_from_doc(entry["id"], entry)
            if task.id in seen:
                raise ValueError(f"duplicate task id {task.id}")
            seen.add(task.id)
            tasks.append(task)
        return tasks
    except (TypeError, ValueError) as e:
        raise LoadError(f"Malformed local task snapshot: {e}") from e


class LocalTaskStore:
    """TaskStore over a KeyValueStorage snapshot."""

    def __init__(self, storage: KeyValueStorage, key: str = DEFAULT_STORAGE_KEY) -> None:
        self._storage = storage
        self._key = key
        self._tasks: list[Task] | None = None
        self._lock = asyncio.Lock()

    # ---- snapshot I/O ----

    def _load(self) -> list[Task]:
        try:
            raw = self._storage.get_item(self._key)
        except (OSError, ValueError):
            logger.warning("Local task storage unreadable; starting empty", exc_info=True)
            return []
        if raw is None:
            return []

        try:
            tasks = decode_collection(raw)
        except LoadError:
            logger.warning("Local task snapshot is malformed; starting empty", exc_info=True)
            self._preserve_corrupt(raw)
            return []

        logger.info("Loaded %d local tasks", len(tasks))
        return tasks

    def _preserve_corrupt(self, raw: str) -> None:
        try:
            self._storage.set_item(f"{self._key}.corrupt", raw)
        except OSError:
            logger.exception("Could not preserve malformed snapshot under %s.corrupt", self._key)

    async def _snapshot(self) -> list[Task]:
        if self._tasks is None:
            self._tasks = await asyncio.to_thread(self._load)
        return list(self._tasks)

    async def _persist(self, tasks: list[Task]) -> None:
        blob = encode_collection(tasks)
        try:
            await asyncio.to_thread(self._storage.set_item, self._key, blob)
        except Exception as e:
            logger.exception("Failed to write local task snapshot")
            raise StoreError(f"Could not save tasks locally: {e}") from e
        self._tasks = tasks

    @staticmethod
    def _apply(task: Task, fields: dict[str, Any]) -> Task:
        for key, val in fields.items():
            if key == "description":
                task = replace(task, description=str(val))
            elif key == "completed":
                task = replace(task, completed=bool(val))
            elif key == "story_points":
                points = parse_story_points(val)
                if points is None:
                    raise StoreError(f"Invalid story points: {val!r}")
                task = replace(task, story_points=points)
            elif key == "subtasks":
                task = replace(task, subtasks=tuple(val))
            else:
                raise StoreError(f"Field is not writable: {key}")
        return task

    # ---- TaskStore ----

    async def list_tasks(self, owner: str | None) -> list[Task]:
        async with self._lock:
            tasks = await self._snapshot()
        return sorted(tasks, key=lambda t: t.created_at, reverse=True)

    async def create_task(self, owner: str | None, draft: TaskDraft) -> Task:
        created = await self.bulk_create(owner, [draft])
        return created[0]

    async def update_task(self, owner: str | None, task_id: str, fields: dict[str, Any]) -> None:
        async with self._lock:
            tasks = await self._snapshot()
            current = find_task(tasks, task_id)
            if current is None:
                raise TaskNotFoundError(task_id)
            updated = self._apply(current, fields)
            await self._persist([updated if t.id == task_id else t for t in tasks])

    async def delete_task(self, owner: str | None, task_id: str) -> None:
        async with self._lock:
            tasks = await self._snapshot()
            if find_task(tasks, task_id) is None:
                raise TaskNotFoundError(task_id)
            await self._persist([t for t in tasks if t.id != task_id])

    async def bulk_delete_completed(self, owner: str | None) -> int:
        async with self._lock:
            tasks = await self._snapshot()
            kept = [t for t in tasks if not t.completed]
            removed = len(tasks) - len(kept)
            if removed:
                await self._persist(kept)
            return removed

    async def bulk_create(self, owner: str | None, drafts: Sequence[TaskDraft]) -> list[Task]:
        async with self._lock:
            tasks = await self._snapshot()
            taken = {t.id for t in tasks}
            created: list[Task] = []
            for draft in drafts:
                task_id = draft.id if draft.id and draft.id not in taken else new_id()
                taken.add(task_id)
                created.append(build_task(draft, task_id))
            if created:
                await self._persist([*created, *tasks])
            return created
