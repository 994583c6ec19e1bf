# src/learn_buddy/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The sync controller depends on Protocols instead of concrete implementations.
This keeps stores, generation backends and the identity source swappable and
makes testing easier.
"""

from collections.abc import Callable, Sequence
from enum import StrEnum
from typing import Any, Protocol

from ..tasks.task_models import Task, TaskDraft

JsonDict = dict[str, Any]
IdentityListener = Callable[[str | None], None]


class TaskStore(Protocol):
    """
    Persistence of one identity's task collection.

    `owner` is the signed-in identity (None for the local backend).
    Failures raise StoreError (TaskNotFoundError for unknown ids).
    """

    async def list_tasks(self, owner: str | None) -> list[Task]: ...
    async def create_task(self, owner: str | None, draft: TaskDraft) -> Task: ...
    async def update_task(self, owner: str | None, task_id: str, fields: dict[str, Any]) -> None: ...
    async def delete_task(self, owner: str | None, task_id: str) -> None: ...
    async def bulk_delete_completed(self, owner: str | None) -> int: ...
    async def bulk_create(self, owner: str | None, drafts: Sequence[TaskDraft]) -> list[Task]: ...


class DocumentClient(Protocol):
    """
    Minimal document-database transport (one collection per path).

    Writes passed to `commit` apply all-or-nothing. Each write is a tuple:
    ("set", doc_id, body) or ("delete", doc_id, None).
    """

    def new_id(self) -> str: ...
    def list_documents(self, collection: str) -> list[tuple[str, JsonDict]]: ...
    def get_document(self, collection: str, doc_id: str) -> JsonDict | None: ...
    def commit(self, collection: str, writes: Sequence[tuple[str, str, JsonDict | None]]) -> None: ...


class KeyValueStorage(Protocol):
    """Durable string storage keyed by a fixed key (browser localStorage-alike)."""

    def get_item(self, key: str) -> str | None: ...
    def set_item(self, key: str, value: str) -> None: ...


class GenerationBackend(Protocol):
    """
    Raw text generation. Returns the model's text (expected to be JSON for
    `output_schema`), or None when the model produced nothing.

    `payload` is the already-validated input, for backends that do not need
    the rendered prompt.
    """

    async def generate(
        self,
        *,
        operation: str,
        system_prompt: str,
        user_prompt: str,
        output_schema: JsonDict,
        payload: JsonDict,
    ) -> str | None: ...


class NoticeLevel(StrEnum):
    INFO = "info"
    ERROR = "error"


class Notifier(Protocol):
    """User-facing notices (toasts in a UI, printed lines in the console)."""

    def notify(self, title: str, description: str = "", level: NoticeLevel = NoticeLevel.INFO) -> None: ...


class IdentityProvider(Protocol):
    def current_identity(self) -> str | None: ...

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """Register for sign-in/sign-out transitions. Returns an unsubscribe callable."""
        ...
