# tests/test_sync_controller.py

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from learn_buddy.core.errors import GenerationError, StoreError, ValidationError
from learn_buddy.core.ports import NoticeLevel
from learn_buddy.llm.flows import ESTIMATE_EFFORT, GENERATE_PATHWAY, SUGGEST_ORGANIZATION
from learn_buddy.tasks import task_tree
from learn_buddy.tasks.local_store import DEFAULT_STORAGE_KEY, LocalTaskStore
from learn_buddy.tasks.sync_controller import IntentState, SyncController
from learn_buddy.tasks.task_models import TaskDraft
from learn_buddy.tasks.task_store import RemoteTaskStore

from .fakes import FakeGenerationBackend, InMemoryDocumentClient, InMemoryStorage, RecordingNotifier

T0 = datetime(2024, 1, 1, tzinfo=UTC)
COLL = "users/u1/tasks"


async def _seed(store: RemoteTaskStore, controller: SyncController, *specs: tuple[str, bool]) -> None:
    drafts = [
        TaskDraft(description=desc, created_at=T0 - timedelta(minutes=i), completed=done)
        for i, (desc, done) in enumerate(specs)
    ]
    await store.bulk_create("u1", drafts)
    await controller.load()


class SlowFirstUpdateStore:
    """Delegating store whose first update_task call is slow."""

    def __init__(self, inner: RemoteTaskStore) -> None:
        self._inner = inner
        self.updates: list[dict[str, Any]] = []

    def __getattr__(self, name: str) -> Any:
        return getattr(self._inner, name)

    async def update_task(self, owner, task_id, fields) -> None:
        self.updates.append(dict(fields))
        if len(self.updates) == 1:
            await asyncio.sleep(0.05)
        await self._inner.update_task(owner, task_id, fields)


# ---- load ----


@pytest.mark.asyncio
async def test_load_failure_empties_state_and_notifies(
    controller: SyncController, doc_client: InMemoryDocumentClient, notifier: RecordingNotifier
) -> None:
    doc_client.fail_on.add("list_documents")
    with pytest.raises(StoreError):
        await controller.load()
    assert controller.tasks == []
    assert notifier.errors[-1].description == "Could not fetch tasks."


@pytest.mark.asyncio
async def test_load_repoints_stale_subtask_parents(
    controller: SyncController, remote_store: RemoteTaskStore, doc_client: InMemoryDocumentClient
) -> None:
    await _seed(remote_store, controller, ("Learn Go", False))
    (task,) = controller.tasks
    await controller.add_subtask(task.id, "Install the toolchain")
    doc_client.collections[COLL][task.id]["subtasks"][0]["parentId"] = "OTHER"

    (loaded,) = await controller.load()
    assert loaded.subtasks[0].parent_id == task.id

    await controller.add_task("Learn Rust")
    sub = await controller.add_subtask(task.id, "Write hello world")
    assert sub is not None
    task_tree.check_invariants(controller.tasks)


# ---- add / toggle / points / delete ----


@pytest.mark.asyncio
async def test_add_task_confirms_with_store_id(
    controller: SyncController, doc_client: InMemoryDocumentClient, notifier: RecordingNotifier
) -> None:
    task = await controller.add_task("  Learn recursion  ")

    assert controller.tasks[0] == task
    assert task.description == "Learn recursion"
    assert task.is_new is True
    assert task.id in doc_client.collections[COLL]
    assert notifier.titles == ["Task Added"]
    assert controller.outcomes[-1].state == IntentState.CONFIRMED


@pytest.mark.asyncio
async def test_add_task_rolls_back_on_store_failure(
    controller: SyncController, doc_client: InMemoryDocumentClient, notifier: RecordingNotifier
) -> None:
    await controller.add_task("first")
    before = controller.tasks

    doc_client.fail_on.add("commit")
    with pytest.raises(StoreError):
        await controller.add_task("second")

    assert controller.tasks == before
    assert notifier.errors[-1].description == "Could not add task."
    assert controller.outcomes[-1].state == IntentState.ROLLED_BACK


@pytest.mark.asyncio
async def test_empty_description_is_rejected_locally(
    controller: SyncController, doc_client: InMemoryDocumentClient, notifier: RecordingNotifier
) -> None:
    with pytest.raises(ValidationError):
        await controller.add_task("   ")
    assert doc_client.commits == []
    assert controller.tasks == []
    assert notifier.titles == ["Empty task description"]


@pytest.mark.asyncio
async def test_toggle_complete_failure_restores_task(
    controller: SyncController, remote_store: RemoteTaskStore, doc_client: InMemoryDocumentClient
) -> None:
    await _seed(remote_store, controller, ("a", False))
    (task,) = controller.tasks

    await controller.toggle_complete(task.id)
    assert controller.get(task.id).completed is True
    assert doc_client.collections[COLL][task.id]["completed"] is True

    doc_client.fail_on.add("commit")
    with pytest.raises(StoreError):
        await controller.toggle_complete(task.id)
    assert controller.get(task.id).completed is True


@pytest.mark.asyncio
async def test_set_story_points_validates_before_writing(
    controller: SyncController,
    remote_store: RemoteTaskStore,
    doc_client: InMemoryDocumentClient,
    notifier: RecordingNotifier,
) -> None:
    await _seed(remote_store, controller, ("a", False))
    (task,) = controller.tasks
    commits = len(doc_client.commits)

    with pytest.raises(ValidationError):
        await controller.set_story_points(task.id, -2)
    assert notifier.titles[-1] == "Invalid Story Points"
    assert len(doc_client.commits) == commits

    await controller.set_story_points(task.id, "8")
    assert controller.get(task.id).story_points == 8
    assert doc_client.collections[COLL][task.id]["storyPoints"] == 8

    # only ASCII digits count as a number
    with pytest.raises(ValidationError):
        await controller.set_story_points(task.id, "\u00b2")
    assert controller.get(task.id).story_points == 8


@pytest.mark.asyncio
async def test_concurrent_updates_apply_in_issue_order(
    remote_store: RemoteTaskStore,
    generator,
    notifier: RecordingNotifier,
    doc_client: InMemoryDocumentClient,
) -> None:
    store = SlowFirstUpdateStore(remote_store)
    controller = SyncController(store, "u1", generator=generator, notifier=notifier)
    await _seed(remote_store, controller, ("a", False))
    (task,) = controller.tasks

    await asyncio.gather(
        controller.set_story_points(task.id, 3),
        controller.set_story_points(task.id, 5),
    )

    assert store.updates == [{"story_points": 3}, {"story_points": 5}]
    assert controller.get(task.id).story_points == 5
    assert doc_client.collections[COLL][task.id]["storyPoints"] == 5


@pytest.mark.asyncio
async def test_delete_task_failure_reinserts_at_old_position(
    controller: SyncController, remote_store: RemoteTaskStore, doc_client: InMemoryDocumentClient
) -> None:
    await _seed(remote_store, controller, ("a", False), ("b", False), ("c", False))
    before = controller.tasks

    doc_client.fail_on.add("commit")
    with pytest.raises(StoreError):
        await controller.delete_task(before[1].id)
    assert controller.tasks == before

    doc_client.fail_on.clear()
    await controller.delete_task(before[1].id)
    assert [t.description for t in controller.tasks] == ["a", "c"]


@pytest.mark.asyncio
async def test_delete_all_completed_reports_store_count(
    controller: SyncController, remote_store: RemoteTaskStore, notifier: RecordingNotifier
) -> None:
    await _seed(
        remote_store,
        controller,
        ("a", True),
        ("b", False),
        ("c", True),
        ("d", False),
        ("e", True),
    )

    assert await controller.delete_all_completed() == 3
    assert [t.description for t in controller.tasks] == ["b", "d"]
    assert notifier.titles[-1] == "All Completed Tasks Deleted"

    assert await controller.delete_all_completed() == 0
    assert notifier.titles[-1] == "No completed tasks to delete."


@pytest.mark.asyncio
async def test_delete_all_completed_failure_restores_everything(
    controller: SyncController, remote_store: RemoteTaskStore, doc_client: InMemoryDocumentClient
) -> None:
    await _seed(remote_store, controller, ("a", True), ("b", False), ("c", True), ("d", False))
    before = controller.tasks

    doc_client.fail_on.add("commit")
    with pytest.raises(StoreError):
        await controller.delete_all_completed()
    assert controller.tasks == before


# ---- subtasks ----


@pytest.mark.asyncio
async def test_subtask_intents_rewrite_parent(
    controller: SyncController, remote_store: RemoteTaskStore, doc_client: InMemoryDocumentClient
) -> None:
    await _seed(remote_store, controller, ("Learn recursion", False))
    (task,) = controller.tasks

    first = await controller.add_subtask(task.id, "Read about base cases")
    second = await controller.add_subtask(task.id, "Solve three exercises")
    assert first is not None and second is not None
    assert first.parent_id == task.id
    assert [s["description"] for s in doc_client.collections[COLL][task.id]["subtasks"]] == [
        "Read about base cases",
        "Solve three exercises",
    ]

    await controller.toggle_subtask_complete(task.id, second.id)
    assert [s.completed for s in controller.get(task.id).subtasks] == [False, True]

    doc_client.fail_on.add("commit")
    with pytest.raises(StoreError):
        await controller.delete_subtask(task.id, first.id)
    assert len(controller.get(task.id).subtasks) == 2

    doc_client.fail_on.clear()
    await controller.delete_subtask(task.id, first.id)
    assert [s.id for s in controller.get(task.id).subtasks] == [second.id]


@pytest.mark.asyncio
async def test_add_subtask_to_missing_parent_is_noop(controller: SyncController) -> None:
    assert await controller.add_subtask("missing", "x") is None


# ---- new-flag timer ----


@pytest.mark.asyncio
async def test_new_flag_clears_after_delay(
    remote_store: RemoteTaskStore, generator, notifier: RecordingNotifier
) -> None:
    controller = SyncController(remote_store, "u1", generator=generator, notifier=notifier, new_flag_delay=0.01)
    task = await controller.add_task("Learn recursion")
    assert controller.get(task.id).is_new is True

    await asyncio.sleep(0.05)
    assert controller.get(task.id).is_new is False


@pytest.mark.asyncio
async def test_new_flag_timer_cancelled_on_delete(controller: SyncController) -> None:
    task = await controller.add_task("Learn recursion")
    await controller.delete_task(task.id)

    assert controller.tasks == []
    assert task.id not in controller._timers
    controller.close()


# ---- AI-assisted intents ----


@pytest.mark.asyncio
async def test_estimate_effort_rounds_up_and_saves_points(
    controller: SyncController,
    remote_store: RemoteTaskStore,
    backend: FakeGenerationBackend,
    notifier: RecordingNotifier,
    doc_client: InMemoryDocumentClient,
) -> None:
    await _seed(remote_store, controller, ("Learn recursion", False))
    (task,) = controller.tasks
    backend.responses[ESTIMATE_EFFORT] = json.dumps(
        {"storyPoints": 2.5, "justification": "Concept is small but needs practice."}
    )

    result = await controller.estimate_effort(task.id)

    assert result is not None
    assert controller.get(task.id).story_points == 3
    assert doc_client.collections[COLL][task.id]["storyPoints"] == 3
    assert notifier.notices[-1].title == "Effort Estimated"
    assert "needs practice" in notifier.notices[-1].description


@pytest.mark.asyncio
async def test_empty_estimate_changes_nothing(
    controller: SyncController,
    remote_store: RemoteTaskStore,
    backend: FakeGenerationBackend,
    notifier: RecordingNotifier,
    doc_client: InMemoryDocumentClient,
) -> None:
    await _seed(remote_store, controller, ("Learn recursion", False))
    before = controller.tasks
    commits = len(doc_client.commits)
    backend.responses[ESTIMATE_EFFORT] = None

    with pytest.raises(GenerationError):
        await controller.estimate_effort(before[0].id)

    assert controller.tasks == before
    assert len(doc_client.commits) == commits
    assert notifier.errors[-1].title == "Estimation Failed"


@pytest.mark.asyncio
async def test_suggest_organization(
    controller: SyncController, backend: FakeGenerationBackend, notifier: RecordingNotifier
) -> None:
    with pytest.raises(ValidationError):
        await controller.suggest_organization()
    assert notifier.titles[-1] == "No Tasks"
    assert backend.calls == []

    await controller.add_task("Learn Go")
    backend.responses[SUGGEST_ORGANIZATION] = json.dumps({"suggestion": "Start with the tour."})
    assert await controller.suggest_organization() == "Start with the tour."
    assert backend.calls[-1] == (SUGGEST_ORGANIZATION, {"tasks": ["Learn Go"]})


@pytest.mark.asyncio
async def test_generate_pathway_requires_goal(
    controller: SyncController, backend: FakeGenerationBackend, notifier: RecordingNotifier
) -> None:
    with pytest.raises(ValidationError):
        await controller.generate_pathway("  ")
    assert notifier.titles[-1] == "No Learning Goal"
    assert backend.calls == []


GO_PATHWAY = json.dumps(
    {
        "pathwayTitle": "Go Basics",
        "steps": [
            {"taskDescription": "Install Go", "subtasks": ["Download the toolchain", "Set GOPATH"]},
            {"taskDescription": "Write hello world"},
        ],
    }
)


@pytest.mark.asyncio
async def test_pathway_is_added_as_one_batch(
    controller: SyncController,
    remote_store: RemoteTaskStore,
    backend: FakeGenerationBackend,
    doc_client: InMemoryDocumentClient,
) -> None:
    await _seed(remote_store, controller, ("existing", False))
    commits = len(doc_client.commits)
    backend.responses[GENERATE_PATHWAY] = GO_PATHWAY

    pathway = await controller.generate_pathway("learn Go")
    added = await controller.add_pathway(pathway)

    assert len(doc_client.commits) == commits + 1
    assert [t.description for t in controller.tasks] == ["Install Go", "Write hello world", "existing"]
    install = added[0]
    assert [s.description for s in install.subtasks] == ["Download the toolchain", "Set GOPATH"]
    assert all(s.parent_id == install.id for s in install.subtasks)
    assert install.id in doc_client.collections[COLL]
    assert added[1].subtasks == ()

    # the store returns the batch in the same order
    await controller.load()
    assert [t.description for t in controller.tasks] == ["Install Go", "Write hello world", "existing"]


@pytest.mark.asyncio
async def test_pathway_batch_failure_adds_nothing(
    controller: SyncController,
    remote_store: RemoteTaskStore,
    backend: FakeGenerationBackend,
    doc_client: InMemoryDocumentClient,
    notifier: RecordingNotifier,
) -> None:
    await _seed(remote_store, controller, ("existing", False))
    before = controller.tasks
    backend.responses[GENERATE_PATHWAY] = GO_PATHWAY
    pathway = await controller.generate_pathway("learn Go")

    doc_client.fail_on.add("commit")
    with pytest.raises(StoreError):
        await controller.add_pathway(pathway)

    assert controller.tasks == before
    assert len(doc_client.collections[COLL]) == 1
    assert notifier.errors[-1].level == NoticeLevel.ERROR


@pytest.mark.asyncio
async def test_empty_pathway_adds_nothing(
    controller: SyncController, backend: FakeGenerationBackend, notifier: RecordingNotifier
) -> None:
    backend.responses[GENERATE_PATHWAY] = json.dumps({"pathwayTitle": "Nothing", "steps": []})
    pathway = await controller.generate_pathway("learn nothing")

    assert await controller.add_pathway(pathway) == []
    assert controller.tasks == []
    assert notifier.titles[-1] == "Empty Pathway"


@pytest.mark.asyncio
async def test_non_finite_estimate_is_rejected(
    controller: SyncController,
    remote_store: RemoteTaskStore,
    backend: FakeGenerationBackend,
    doc_client: InMemoryDocumentClient,
) -> None:
    await _seed(remote_store, controller, ("Learn recursion", False))
    before = controller.tasks
    commits = len(doc_client.commits)
    backend.responses[ESTIMATE_EFFORT] = '{"storyPoints": Infinity, "justification": "Unbounded scope."}'

    with pytest.raises(GenerationError):
        await controller.estimate_effort(before[0].id)

    assert controller.tasks == before
    assert len(doc_client.commits) == commits


# ---- local backend ----


def _local_controller(storage: InMemoryStorage, generator, notifier: RecordingNotifier) -> SyncController:
    return SyncController(
        LocalTaskStore(storage), None, generator=generator, notifier=notifier, new_flag_delay=30.0
    )


@pytest.mark.asyncio
async def test_local_store_keeps_placeholder_id(
    storage: InMemoryStorage, generator, notifier: RecordingNotifier, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr("learn_buddy.tasks.sync_controller.new_id", lambda: "local-1")
    controller = _local_controller(storage, generator, notifier)

    task = await controller.add_task("Learn recursion")

    assert task.id == "local-1"
    assert controller.get("local-1") == task
    assert [t.id for t in await LocalTaskStore(storage).list_tasks(None)] == ["local-1"]
    controller.close()


@pytest.mark.asyncio
async def test_local_write_failure_rolls_back_memory_and_snapshot(
    storage: InMemoryStorage, generator, notifier: RecordingNotifier
) -> None:
    controller = _local_controller(storage, generator, notifier)
    task = await controller.add_task("Learn recursion")
    sub = await controller.add_subtask(task.id, "Read about base cases")
    before = controller.tasks

    storage.fail_writes = True
    with pytest.raises(StoreError):
        await controller.toggle_complete(task.id)
    with pytest.raises(StoreError):
        await controller.delete_subtask(task.id, sub.id)

    assert controller.tasks == before
    assert notifier.errors[-1].description == "Could not delete subtask."

    storage.fail_writes = False
    (stored,) = await LocalTaskStore(storage).list_tasks(None)
    assert stored.completed is False
    assert [(s.id, s.parent_id, s.completed) for s in stored.subtasks] == [(sub.id, task.id, False)]
    controller.close()


@pytest.mark.asyncio
async def test_malformed_local_snapshot_loads_empty(generator, notifier: RecordingNotifier) -> None:
    storage = InMemoryStorage({DEFAULT_STORAGE_KEY: "[{broken"})
    controller = _local_controller(storage, generator, notifier)

    assert await controller.load() == []
    assert notifier.errors == []

    await controller.add_task("Start over")
    assert storage.items[f"{DEFAULT_STORAGE_KEY}.corrupt"] == "[{broken"
    assert [t.description for t in await LocalTaskStore(storage).list_tasks(None)] == ["Start over"]
    controller.close()
