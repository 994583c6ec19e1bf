# src/learn_buddy/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (generation backend, stores,
  identity, session).
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.identity import LocalIdentityProvider
from ..core.ports import GenerationBackend, Notifier
from ..core.session import TaskSession
from ..core.state import AppState
from ..llm.client import OpenRouterLLMClient
from ..llm.flows import StructuredGenerator
from ..llm.offline import OfflineLLMClient
from ..tasks.local_store import JsonFileStorage, LocalTaskStore
from ..tasks.task_store import RemoteTaskStore, SqliteDocumentClient

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.documents_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.local_storage_path.parent.mkdir(parents=True, exist_ok=True)


def build_llm_client(settings) -> GenerationBackend:
    try:
        return OpenRouterLLMClient(settings)
    except RuntimeError as e:
        # Fallback for demos / local runs without external services.
        logger.warning("LLM client unavailable (%s); using the offline backend.", e)
        return OfflineLLMClient()


def create_initial_state(*, notifier: Notifier, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    If settings is None, falls back to get_settings(). The session is built
    but not started; call `await state.session.start()` inside the event loop.
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    llm_client = build_llm_client(settings)
    generator = StructuredGenerator(llm_client)

    local_store = None
    if settings.local_mode:
        local_store = LocalTaskStore(
            JsonFileStorage(settings.local_storage_path), key=settings.local_storage_key
        )

    identity = LocalIdentityProvider(settings.user_id)
    session = TaskSession(
        identity,
        remote_store=RemoteTaskStore(SqliteDocumentClient(settings.documents_db_path)),
        local_store=local_store,
        generator=generator,
        notifier=notifier,
        new_flag_delay=settings.new_flag_delay_seconds,
    )

    return AppState(
        settings=settings,
        identity=identity,
        session=session,
        notifier=notifier,
        generator=generator,
        llm=llm_client,
    )
