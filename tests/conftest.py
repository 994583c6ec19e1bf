# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from learn_buddy.llm.flows import StructuredGenerator
from learn_buddy.tasks.local_store import LocalTaskStore
from learn_buddy.tasks.sync_controller import SyncController
from learn_buddy.tasks.task_store import RemoteTaskStore

from .fakes import FakeGenerationBackend, InMemoryDocumentClient, InMemoryStorage, RecordingNotifier


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="Learn Buddy",
        log_level="INFO",
        # No key: the offline backend is used.
        openrouter_api_key=None,
        openrouter_base_url="https://openrouter.ai/api/v1",
        llm_model="test-model",
        extra_headers={},
        llm_connect_timeout_seconds=1.0,
        llm_read_timeout_seconds=1.0,
        user_id=None,
        local_mode=True,
        data_dir=tmp_path,
        documents_db_path=tmp_path / "documents.sqlite3",
        local_storage_path=tmp_path / "local_storage.json",
        local_storage_key="learn_buddy.tasks",
        new_flag_delay_seconds=0.01,
    )


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def backend() -> FakeGenerationBackend:
    return FakeGenerationBackend()


@pytest.fixture()
def generator(backend: FakeGenerationBackend) -> StructuredGenerator:
    return StructuredGenerator(backend)


@pytest.fixture()
def doc_client() -> InMemoryDocumentClient:
    return InMemoryDocumentClient()


@pytest.fixture()
def remote_store(doc_client: InMemoryDocumentClient) -> RemoteTaskStore:
    return RemoteTaskStore(doc_client)


@pytest.fixture()
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture()
def local_store(storage: InMemoryStorage) -> LocalTaskStore:
    return LocalTaskStore(storage)


@pytest.fixture()
def controller(
    remote_store: RemoteTaskStore,
    generator: StructuredGenerator,
    notifier: RecordingNotifier,
) -> SyncController:
    """
    Controller for identity "u1" over the in-memory document store.

    The new-flag delay is long so tests see `is_new` unless they wait for it
    explicitly with a controller of their own.
    """
    return SyncController(
        remote_store, "u1", generator=generator, notifier=notifier, new_flag_delay=30.0
    )
