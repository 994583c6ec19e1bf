# src/learn_buddy/core/session.py

"""
Task session: picks the active backend for the current identity.

The backend is chosen once per identity state, never per call:
- signed in  -> remote store, namespaced by the identity,
- signed out -> local snapshot store (when local mode is enabled),
  otherwise no controller at all and every intent is refused.

On each identity transition the old controller is closed, the visible task
list is reset to empty, and the new controller is loaded.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from ..llm.flows import StructuredGenerator
from ..tasks.sync_controller import DEFAULT_NEW_FLAG_DELAY, SyncController
from ..tasks.task_models import Task
from .errors import NotSignedInError, StoreError
from .ports import IdentityProvider, NoticeLevel, Notifier, TaskStore

logger = logging.getLogger(__name__)


class TaskSession:
    def __init__(
        self,
        identity: IdentityProvider,
        *,
        remote_store: TaskStore,
        local_store: TaskStore | None,
        generator: StructuredGenerator,
        notifier: Notifier,
        new_flag_delay: float = DEFAULT_NEW_FLAG_DELAY,
    ) -> None:
        self._identity = identity
        self._remote_store = remote_store
        self._local_store = local_store
        self._generator = generator
        self._notifier = notifier
        self._new_flag_delay = new_flag_delay

        self._controller: SyncController | None = None
        self._active_identity: str | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._reload: asyncio.Task[None] | None = None

    # ---- lifecycle ----

    async def start(self) -> None:
        self._unsubscribe = self._identity.subscribe(self._on_identity_change)
        await self._activate(self._identity.current_identity())

    async def wait_ready(self) -> None:
        """Wait for a reload triggered by an identity change, if one is running."""
        reload = self._reload
        if reload is not None:
            await reload

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._reload is not None and not self._reload.done():
            self._reload.cancel()
        if self._controller is not None:
            self._controller.close()
            self._controller = None

    def _build(self, identity: str | None) -> SyncController | None:
        if identity:
            store, owner = self._remote_store, identity
        elif self._local_store is not None:
            store, owner = self._local_store, None
        else:
            return None
        return SyncController(
            store,
            owner,
            generator=self._generator,
            notifier=self._notifier,
            new_flag_delay=self._new_flag_delay,
        )

    def _reset(self, identity: str | None) -> None:
        if self._controller is not None:
            self._controller.close()
        self._active_identity = identity
        self._controller = self._build(identity)
        logger.info(
            "Session backend: %s (identity=%s)",
            "remote" if identity else ("local" if self._controller else "none"),
            identity,
        )

    async def _activate(self, identity: str | None) -> None:
        self._reset(identity)
        if self._controller is not None:
            await self._load(self._controller)

    def _on_identity_change(self, identity: str | None) -> None:
        if identity == self._active_identity:
            return
        if self._reload is not None and not self._reload.done():
            self._reload.cancel()
        # Nothing from the previous identity may stay visible while the reload runs.
        self._reset(identity)
        controller = self._controller
        if controller is not None:
            self._reload = asyncio.get_running_loop().create_task(self._load(controller))

    async def _load(self, controller: SyncController) -> None:
        try:
            await controller.load()
        except StoreError:
            # Already reported by the controller; the session stays usable with an empty list.
            logger.debug("Load failed for identity=%s", controller.owner)

    # ---- access ----

    @property
    def identity(self) -> str | None:
        return self._active_identity

    @property
    def backend_name(self) -> str:
        if self._controller is None:
            return "none"
        return "remote" if self._active_identity else "local"

    @property
    def tasks(self) -> list[Task]:
        return self._controller.tasks if self._controller is not None else []

    @property
    def controller(self) -> SyncController:
        if self._controller is None:
            self._notifier.notify(
                "Not Logged In", "You must be logged in to manage tasks.", NoticeLevel.ERROR
            )
            raise NotSignedInError("No signed-in identity and local mode is disabled.")
        return self._controller
