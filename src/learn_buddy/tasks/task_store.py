# src/learn_buddy/tasks/task_store.py

"""
Remote task store.

Each identity owns the document collection `users/{owner}/tasks`. A task is one
document; its subtasks are an embedded list, so subtask changes rewrite the
parent's `subtasks` field. Ids are always assigned here, never by the client.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, TypeVar

from ..core.errors import OwnershipError, StoreError, TaskNotFoundError
from ..core.ports import DocumentClient, JsonDict
from .task_models import Task, TaskDraft, build_task, encode_fields, task_from_doc, task_to_doc

logger = logging.getLogger(__name__)

T = TypeVar("T")

OWNER_FIELD = "ownerId"


class SqliteDocumentClient:
    """
    Document collections on top of SQLite.

    Documents are JSON bodies keyed by (collection, doc_id). The insertion
    sequence is kept so a batch lists back in the order it was written.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "documents.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("SqliteDocumentClient ready db=%s", self._db_path)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    body TEXT NOT NULL DEFAULT '{}',
                    updated_at REAL NOT NULL DEFAULT 0,
                    UNIQUE (collection, doc_id)
                )
                """
            )

            cur.execute("PRAGMA table_info(documents)")
            cols = {row["name"] for row in cur.fetchall()}
            if "updated_at" not in cols:
                cur.execute("ALTER TABLE documents ADD COLUMN updated_at REAL NOT NULL DEFAULT 0")
                logger.info("SqliteDocumentClient migration: added column updated_at")

            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection, seq)"
            )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _decode(raw: str | None) -> JsonDict:
        if not raw:
            return {}
        val = json.loads(raw)
        return val if isinstance(val, dict) else {}

    # ---- DocumentClient ----

    def new_id(self) -> str:
        return uuid.uuid4().hex[:20]

    def list_documents(self, collection: str) -> list[tuple[str, JsonDict]]:
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "SELECT doc_id, body FROM documents WHERE collection = ? ORDER BY seq ASC",
                (collection,),
            )
            return [(str(r["doc_id"]), self._decode(r["body"])) for r in cur.fetchall()]
        finally:
            conn.close()

    def get_document(self, collection: str, doc_id: str) -> JsonDict | None:
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "SELECT body FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            )
            row = cur.fetchone()
            return self._decode(row["body"]) if row else None
        finally:
            conn.close()

    def commit(self, collection: str, writes: Sequence[tuple[str, str, JsonDict | None]]) -> None:
        """Apply a batch in one transaction."""
        now = time.time()
        conn = self._get_conn()
        try:
            with conn:
                for kind, doc_id, body in writes:
                    if kind == "set":
                        conn.execute(
                            """
                            INSERT INTO documents(collection, doc_id, body, updated_at)
                            VALUES (?, ?, ?, ?)
                            ON CONFLICT(collection, doc_id)
                            DO UPDATE SET body = excluded.body, updated_at = excluded.updated_at
                            """,
                            (collection, doc_id, json.dumps(body or {}, ensure_ascii=False), now),
                        )
                    elif kind == "delete":
                        conn.execute(
                            "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                            (collection, doc_id),
                        )
                    else:
                        raise ValueError(f"unknown write kind: {kind}")
            logger.debug("Committed %d writes to %s", len(writes), collection)
        finally:
            conn.close()


class RemoteTaskStore:
    """TaskStore over a DocumentClient, namespaced per identity."""

    def __init__(self, client: DocumentClient) -> None:
        self._client = client

    @staticmethod
    def namespace(owner: str | None) -> tuple[str, str]:
        """Return (owner, collection path) or raise if there is no identity."""
        if not owner or not owner.strip():
            raise StoreError("Remote task store requires a signed-in identity.")
        return owner, f"users/{owner}/tasks"

    async def _call(self, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except StoreError:
            raise
        except Exception as e:
            logger.exception("Document client call %s failed", getattr(fn, "__name__", fn))
            raise StoreError(f"Document store request failed: {e}") from e

    async def _get_owned(self, owner: str, collection: str, task_id: str) -> JsonDict:
        doc = await self._call(self._client.get_document, collection, task_id)
        if doc is None:
            raise TaskNotFoundError(task_id)
        if doc.get(OWNER_FIELD) != owner:
            raise OwnershipError(f"Task {task_id} does not belong to the current user.")
        return doc

    def _to_body(self, owner: str, task: Task) -> JsonDict:
        body = task_to_doc(task)
        body[OWNER_FIELD] = owner
        return body

    async def list_tasks(self, owner: str | None) -> list[Task]:
        owner, collection = self.namespace(owner)
        docs = await self._call(self._client.list_documents, collection)

        tasks: list[Task] = []
        for doc_id, body in docs:
            if body.get(OWNER_FIELD) != owner:
                logger.warning("Skipping document %s/%s with foreign owner tag", collection, doc_id)
                continue
            try:
                tasks.append(task_from_doc(doc_id, body))
            except ValueError:
                logger.warning("Skipping malformed document %s/%s", collection, doc_id, exc_info=True)

        # Newest first; the sort is stable so a batch keeps its write order.
        tasks.sort(key=lambda t: t.created_at, reverse=True)
        logger.debug("Listed %d tasks for owner=%s", len(tasks), owner)
        return tasks

    async def create_task(self, owner: str | None, draft: TaskDraft) -> Task:
        created = await self.bulk_create(owner, [draft])
        return created[0]

    async def update_task(self, owner: str | None, task_id: str, fields: dict[str, Any]) -> None:
        owner, collection = self.namespace(owner)
        try:
            patch = encode_fields(fields)
        except (TypeError, ValueError) as e:
            raise StoreError(str(e)) from e

        doc = await self._get_owned(owner, collection, task_id)
        await self._call(self._client.commit, collection, [("set", task_id, {**doc, **patch})])
        logger.debug("Updated task %s fields=%s", task_id, sorted(patch))

    async def delete_task(self, owner: str | None, task_id: str) -> None:
        owner, collection = self.namespace(owner)
        await self._get_owned(owner, collection, task_id)
        await self._call(self._client.commit, collection, [("delete", task_id, None)])
        logger.debug("Deleted task %s", task_id)

    async def bulk_delete_completed(self, owner: str | None) -> int:
        owner, collection = self.namespace(owner)
        docs = await self._call(self._client.list_documents, collection)
        doomed = [
            doc_id
            for doc_id, body in docs
            if body.get(OWNER_FIELD) == owner and bool(body.get("completed"))
        ]
        if not doomed:
            return 0
        await self._call(
            self._client.commit, collection, [("delete", doc_id, None) for doc_id in doomed]
        )
        logger.info("Deleted %d completed tasks for owner=%s", len(doomed), owner)
        return len(doomed)

    async def bulk_create(self, owner: str | None, drafts: Sequence[TaskDraft]) -> list[Task]:
        owner, collection = self.namespace(owner)
        if not drafts:
            return []

        tasks = [build_task(d, self._client.new_id()) for d in drafts]
        writes = [("set", t.id, self._to_body(owner, t)) for t in tasks]
        await self._call(self._client.commit, collection, writes)
        logger.debug("Created %d tasks for owner=%s", len(tasks), owner)
        return tasks
