# src/learn_buddy/tasks/sync_controller.py

from __future__ import annotations

"""
Sync controller.

Every mutating intent goes through the same steps:
- apply the task tree transform to local state right away (optimistic),
- issue the matching store call,
- on success keep the optimistic state (re-keying placeholder ids to the ids
  the store assigned),
- on StoreError put the touched tasks back the way they were, notify the user
  once and re-raise. Nothing is retried.

Intents are serialized per task id, so two updates of the same task apply in
the order they were issued. Generation calls run outside the locks; their
results are validated before they touch any state.
"""

import asyncio
import contextlib
import logging
import math
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any, TypeVar

from ..core.errors import GenerationError, StoreError, ValidationError
from ..core.ports import NoticeLevel, Notifier, TaskStore
from ..llm.flows import StructuredGenerator
from ..llm.schemas import EstimateEffortOutput, GeneratePathwayOutput
from . import task_tree
from .task_models import SubTask, Task, TaskDraft, new_id, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_NEW_FLAG_DELAY = 0.6


class IntentState(StrEnum):
    OPTIMISTIC_APPLIED = "optimistic_applied"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


@dataclass(slots=True, frozen=True)
class IntentOutcome:
    intent: str
    task_ids: tuple[str, ...]
    state: IntentState


class SyncController:
    """
    Owns the in-memory task collection of one identity.

    `owner` is the identity the store calls are made for (None for the local
    backend). It is fixed for the controller's lifetime; an identity change
    means a new controller.
    """

    def __init__(
        self,
        store: TaskStore,
        owner: str | None,
        *,
        generator: StructuredGenerator,
        notifier: Notifier,
        new_flag_delay: float = DEFAULT_NEW_FLAG_DELAY,
    ) -> None:
        self._store = store
        self._owner = owner
        self._generator = generator
        self._notifier = notifier
        self._new_flag_delay = max(0.0, float(new_flag_delay))

        self._tasks: list[Task] = []
        self._locks: dict[str, asyncio.Lock] = {}
        self._aliases: dict[str, str] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._closed = False

        self.outcomes: deque[IntentOutcome] = deque(maxlen=64)

    # ---- read side ----

    @property
    def owner(self) -> str | None:
        return self._owner

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    def pending(self) -> list[Task]:
        return task_tree.pending(self._tasks)

    def completed(self) -> list[Task]:
        return task_tree.completed(self._tasks)

    def get(self, task_id: str) -> Task | None:
        return task_tree.find_task(self._tasks, self._resolve(task_id))

    # ---- lifecycle ----

    async def load(self) -> list[Task]:
        """Replace local state with the store's view of the collection."""
        async with self._locked(lambda: [t.id for t in self._tasks]):
            try:
                tasks = await self._store.list_tasks(self._owner)
            except StoreError:
                logger.exception("Loading tasks failed owner=%s", self._owner)
                self._tasks = []
                self._notifier.notify("Error", "Could not fetch tasks.", NoticeLevel.ERROR)
                raise
            task_tree.check_invariants(tasks)
            self._cancel_timers(list(self._timers))
            self._tasks = list(tasks)
            self._aliases.clear()
        logger.info("Loaded %d tasks owner=%s", len(self._tasks), self._owner)
        return self.tasks

    def close(self) -> None:
        """Cancel pending new-flag timers. The controller must not be used afterwards."""
        self._closed = True
        self._cancel_timers(list(self._timers))

    # ---- internals ----

    def _resolve(self, task_id: str) -> str:
        seen: set[str] = set()
        while task_id in self._aliases and task_id not in seen:
            seen.add(task_id)
            task_id = self._aliases[task_id]
        return task_id

    @contextlib.asynccontextmanager
    async def _locked(self, keys_fn: Callable[[], Iterable[str]]) -> AsyncIterator[None]:
        """
        Hold the locks of every task id returned by keys_fn.

        Locks are taken in sorted order. If the id set changed while waiting
        (placeholder re-keyed, task added), start over with the new set.
        """
        while True:
            keys = sorted(set(keys_fn()))
            locks = [self._locks.setdefault(k, asyncio.Lock()) for k in keys]
            held: list[asyncio.Lock] = []
            try:
                for lock in locks:
                    await lock.acquire()
                    held.append(lock)
            except BaseException:
                for lock in reversed(held):
                    lock.release()
                raise
            if sorted(set(keys_fn())) == keys:
                break
            for lock in reversed(held):
                lock.release()

        try:
            yield
        finally:
            for lock in reversed(held):
                lock.release()

    def _locked_ids(self, *task_ids: str) -> contextlib.AbstractAsyncContextManager[None]:
        return self._locked(lambda: [self._resolve(t) for t in task_ids])

    def _record(self, intent: str, ids: Iterable[str], state: IntentState) -> None:
        self.outcomes.append(IntentOutcome(intent=intent, task_ids=tuple(ids), state=state))

    async def _write(
        self,
        intent: str,
        before: list[Task],
        ids: list[str],
        call: Awaitable[T],
        *,
        failure: str,
    ) -> T:
        self._record(intent, ids, IntentState.OPTIMISTIC_APPLIED)
        try:
            result = await call
        except StoreError:
            logger.warning("%s failed; rolling back tasks=%s", intent, ids, exc_info=True)
            self._rollback(before, ids)
            self._record(intent, ids, IntentState.ROLLED_BACK)
            self._notifier.notify("Error", failure, NoticeLevel.ERROR)
            raise
        self._record(intent, ids, IntentState.CONFIRMED)
        return result

    def _rollback(self, before: list[Task], ids: list[str]) -> None:
        self._tasks = task_tree.restore(self._tasks, before, ids)
        # A flag restored to True whose timer already ran (or was cancelled) must not stick.
        stale = [i for i in ids if i not in self._timers]
        self._tasks = task_tree.clear_new_flag(self._tasks, stale)

    def _confirm_created(self, created: dict[str, Task]) -> list[Task]:
        """Swap optimistic placeholders for the tasks the store returned."""
        out: list[Task] = []
        for placeholder_id, task in created.items():
            task = replace(task, is_new=True)
            self._tasks = task_tree.replace_task_id(self._tasks, placeholder_id, task.id)
            pos = task_tree.index_of(self._tasks, task.id)
            if pos >= 0:
                self._tasks[pos] = task
            if task.id != placeholder_id:
                self._aliases[placeholder_id] = task.id
            out.append(task)
        task_tree.check_invariants(self._tasks)
        self._schedule_clear([t.id for t in out])
        return out

    def _schedule_clear(self, ids: list[str]) -> None:
        if self._closed:
            return
        loop = asyncio.get_running_loop()
        for task_id in ids:
            self._cancel_timers([task_id])
            self._timers[task_id] = loop.call_later(self._new_flag_delay, self._clear_new, task_id)

    def _clear_new(self, task_id: str) -> None:
        self._timers.pop(task_id, None)
        if self._closed:
            return
        self._tasks = task_tree.clear_new_flag(self._tasks, [task_id])

    def _cancel_timers(self, ids: Iterable[str]) -> None:
        for task_id in ids:
            handle = self._timers.pop(task_id, None)
            if handle is not None:
                handle.cancel()

    def _reject(self, title: str, description: str) -> ValidationError:
        self._notifier.notify(title, description)
        return ValidationError(description)

    def _require_text(self, text: str, what: str) -> str:
        text = (text or "").strip()
        if not text:
            raise self._reject(f"Empty {what}", f"Please enter a {what}.")
        return text

    # ---- task intents ----

    async def add_task(self, description: str) -> Task:
        description = self._require_text(description, "task description")
        placeholder = new_id()

        async with self._locked_ids(placeholder):
            before = list(self._tasks)
            self._tasks = task_tree.add_task(self._tasks, description, task_id=placeholder)
            draft = TaskDraft.from_task(self._tasks[0])

            created = await self._write(
                "add_task",
                before,
                [placeholder],
                self._store.create_task(self._owner, draft),
                failure="Could not add task.",
            )
            (task,) = self._confirm_created({placeholder: created})

        logger.info("Task added id=%s", task.id)
        self._notifier.notify("Task Added", "Your new task has been saved.")
        return task

    async def toggle_complete(self, task_id: str) -> None:
        async with self._locked_ids(task_id):
            task_id = self._resolve(task_id)
            task = task_tree.find_task(self._tasks, task_id)
            if task is None:
                return
            completed = not task.completed
            before = list(self._tasks)
            self._tasks = task_tree.toggle_complete(self._tasks, task_id)

            await self._write(
                "toggle_complete",
                before,
                [task_id],
                self._store.update_task(self._owner, task_id, {"completed": completed}),
                failure="Could not update task status.",
            )
        logger.debug("Task %s completed=%s", task_id, completed)

    async def set_story_points(self, task_id: str, points: Any) -> None:
        value = task_tree.parse_story_points(points)
        if value is None:
            raise self._reject(
                "Invalid Story Points", "Story points must be a non-negative whole number."
            )

        async with self._locked_ids(task_id):
            task_id = self._resolve(task_id)
            if task_tree.find_task(self._tasks, task_id) is None:
                return
            before = list(self._tasks)
            self._tasks = task_tree.set_story_points(self._tasks, task_id, value)

            await self._write(
                "set_story_points",
                before,
                [task_id],
                self._store.update_task(self._owner, task_id, {"story_points": value}),
                failure="Could not update story points.",
            )
        logger.debug("Task %s story_points=%s", task_id, value)

    async def delete_task(self, task_id: str) -> None:
        async with self._locked_ids(task_id):
            task_id = self._resolve(task_id)
            if task_tree.find_task(self._tasks, task_id) is None:
                return
            before = list(self._tasks)
            self._tasks = task_tree.delete_task(self._tasks, task_id)
            self._cancel_timers([task_id])

            await self._write(
                "delete_task",
                before,
                [task_id],
                self._store.delete_task(self._owner, task_id),
                failure="Could not delete task.",
            )
        logger.info("Task deleted id=%s", task_id)
        self._notifier.notify("Task Deleted", "The task has been removed.")

    async def delete_all_completed(self) -> int:
        if not task_tree.completed(self._tasks):
            self._notifier.notify("No completed tasks to delete.")
            return 0

        # Whole-collection lock: a completion toggle in flight must land first.
        async with self._locked(lambda: [t.id for t in self._tasks]):
            before = list(self._tasks)
            ids = [t.id for t in task_tree.completed(before)]
            if not ids:
                self._notifier.notify("No completed tasks to delete.")
                return 0
            self._tasks = task_tree.delete_completed(self._tasks)
            self._cancel_timers(ids)

            count = await self._write(
                "delete_all_completed",
                before,
                ids,
                self._store.bulk_delete_completed(self._owner),
                failure="Could not delete completed tasks.",
            )
        logger.info("Deleted %d completed tasks", count)
        self._notifier.notify("All Completed Tasks Deleted", f"{count} completed task(s) removed.")
        return count

    # ---- subtask intents ----

    async def add_subtask(self, parent_id: str, description: str) -> SubTask | None:
        description = self._require_text(description, "subtask description")
        subtask_id = new_id()

        async with self._locked_ids(parent_id):
            parent_id = self._resolve(parent_id)
            if task_tree.find_task(self._tasks, parent_id) is None:
                return None
            before = list(self._tasks)
            self._tasks = task_tree.add_subtask(
                self._tasks, parent_id, description, subtask_id=subtask_id
            )
            parent = task_tree.find_task(self._tasks, parent_id)
            if parent is None:
                return None

            await self._write(
                "add_subtask",
                before,
                [parent_id],
                self._store.update_task(self._owner, parent_id, {"subtasks": parent.subtasks}),
                failure="Could not add subtask.",
            )
        return parent.subtasks[-1]

    async def toggle_subtask_complete(self, parent_id: str, subtask_id: str) -> None:
        await self._rewrite_subtasks(
            "toggle_subtask_complete",
            parent_id,
            subtask_id,
            task_tree.toggle_subtask_complete,
            failure="Could not update subtask status.",
        )

    async def delete_subtask(self, parent_id: str, subtask_id: str) -> None:
        changed = await self._rewrite_subtasks(
            "delete_subtask",
            parent_id,
            subtask_id,
            task_tree.delete_subtask,
            failure="Could not delete subtask.",
        )
        if changed:
            self._notifier.notify("Subtask Deleted", "The subtask has been removed.")

    async def _rewrite_subtasks(
        self,
        intent: str,
        parent_id: str,
        subtask_id: str,
        transform: Callable[[list[Task], str, str], list[Task]],
        *,
        failure: str,
    ) -> bool:
        async with self._locked_ids(parent_id):
            parent_id = self._resolve(parent_id)
            parent = task_tree.find_task(self._tasks, parent_id)
            if parent is None or not any(s.id == subtask_id for s in parent.subtasks):
                return False
            before = list(self._tasks)
            self._tasks = transform(self._tasks, parent_id, subtask_id)
            parent = task_tree.find_task(self._tasks, parent_id)
            if parent is None:
                self._tasks = before
                return False

            await self._write(
                intent,
                before,
                [parent_id],
                self._store.update_task(self._owner, parent_id, {"subtasks": parent.subtasks}),
                failure=failure,
            )
        return True

    # ---- AI-assisted intents ----

    async def estimate_effort(self, task_id: str) -> EstimateEffortOutput | None:
        task = self.get(task_id)
        if task is None:
            return None

        try:
            result = await self._generator.estimate_task_effort(task.description)
        except GenerationError as e:
            self._notifier.notify("Estimation Failed", str(e), NoticeLevel.ERROR)
            raise

        points = max(1, math.ceil(result.story_points))
        await self.set_story_points(task.id, points)
        self._notifier.notify(
            "Effort Estimated",
            f"AI suggested {points} story points. Justification: {result.justification}",
        )
        return result

    async def suggest_organization(self) -> str:
        if not self._tasks:
            raise self._reject(
                "No Tasks", "Add some tasks before asking for organization suggestions."
            )

        try:
            result = await self._generator.suggest_task_organization(
                [t.description for t in self._tasks]
            )
        except GenerationError as e:
            self._notifier.notify("Error", f"Failed to get organization suggestion. {e}", NoticeLevel.ERROR)
            raise
        return result.suggestion

    async def generate_pathway(self, learning_goal: str) -> GeneratePathwayOutput:
        if not learning_goal or not learning_goal.strip():
            raise self._reject("No Learning Goal", "Please enter what you want to learn.")

        try:
            return await self._generator.generate_learning_pathway(learning_goal.strip())
        except GenerationError as e:
            self._notifier.notify("Error Generating Pathway", str(e), NoticeLevel.ERROR)
            raise

    async def add_pathway(self, pathway: GeneratePathwayOutput) -> list[Task]:
        """Insert every step (with its subtasks) as one all-or-nothing batch."""
        if pathway.is_empty:
            self._notifier.notify("Empty Pathway", "The pathway has no steps; nothing was added.")
            return []

        now = utc_now()
        placeholders: list[Task] = []
        for step in pathway.steps:
            task_id = new_id()
            subtasks = tuple(
                SubTask(id=new_id(), description=desc, parent_id=task_id, created_at=now)
                for desc in step.subtasks or []
            )
            placeholders.append(
                Task(
                    id=task_id,
                    description=step.task_description,
                    created_at=now,
                    subtasks=subtasks,
                    is_new=True,
                )
            )
        ids = [t.id for t in placeholders]

        async with self._locked_ids(*ids):
            before = list(self._tasks)
            self._tasks = task_tree.insert_tasks(self._tasks, placeholders)

            created = await self._write(
                "add_pathway",
                before,
                ids,
                self._store.bulk_create(self._owner, [TaskDraft.from_task(t) for t in placeholders]),
                failure="Could not add pathway tasks.",
            )
            tasks = self._confirm_created(dict(zip(ids, created, strict=True)))

        logger.info("Pathway %r added as %d tasks", pathway.pathway_title, len(tasks))
        self._notifier.notify(
            "Learning Pathway Added", f"{len(tasks)} task(s) from '{pathway.pathway_title}' added."
        )
        return tasks
