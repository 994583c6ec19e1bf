# tests/test_session.py

from __future__ import annotations

import pytest

from learn_buddy.core.errors import NotSignedInError, ValidationError
from learn_buddy.core.identity import LocalIdentityProvider
from learn_buddy.core.session import TaskSession
from learn_buddy.tasks.local_store import LocalTaskStore
from learn_buddy.tasks.task_store import RemoteTaskStore

from .fakes import InMemoryDocumentClient, RecordingNotifier


def _session(identity, remote_store, local_store, generator, notifier) -> TaskSession:
    return TaskSession(
        identity,
        remote_store=remote_store,
        local_store=local_store,
        generator=generator,
        notifier=notifier,
        new_flag_delay=30.0,
    )


@pytest.mark.asyncio
async def test_backend_follows_identity(
    remote_store: RemoteTaskStore,
    local_store: LocalTaskStore,
    generator,
    notifier: RecordingNotifier,
) -> None:
    identity = LocalIdentityProvider()
    session = _session(identity, remote_store, local_store, generator, notifier)
    await session.start()

    assert session.backend_name == "local"
    await session.controller.add_task("offline task")

    identity.sign_in("u1")
    # nothing from the signed-out list stays visible
    assert session.tasks == []
    await session.wait_ready()
    assert session.backend_name == "remote"
    assert session.identity == "u1"
    await session.controller.add_task("remote task")
    assert [t.description for t in session.tasks] == ["remote task"]

    identity.sign_out()
    await session.wait_ready()
    assert session.backend_name == "local"
    assert [t.description for t in session.tasks] == ["offline task"]

    identity.sign_in("u2")
    await session.wait_ready()
    assert session.tasks == []

    await session.close()


@pytest.mark.asyncio
async def test_signed_out_without_local_mode_refuses_intents(
    remote_store: RemoteTaskStore, generator, notifier: RecordingNotifier
) -> None:
    session = _session(LocalIdentityProvider(), remote_store, None, generator, notifier)
    await session.start()

    assert session.backend_name == "none"
    assert session.tasks == []
    with pytest.raises(NotSignedInError):
        session.controller
    assert notifier.titles == ["Not Logged In"]


@pytest.mark.asyncio
async def test_failed_load_leaves_session_usable(
    remote_store: RemoteTaskStore,
    doc_client: InMemoryDocumentClient,
    generator,
    notifier: RecordingNotifier,
) -> None:
    doc_client.fail_on.add("list_documents")
    session = _session(LocalIdentityProvider("u1"), remote_store, None, generator, notifier)
    await session.start()

    assert session.tasks == []
    assert notifier.errors[-1].description == "Could not fetch tasks."

    doc_client.fail_on.clear()
    await session.controller.add_task("after outage")
    assert len(session.tasks) == 1


def test_identity_provider_notifies_on_transitions() -> None:
    identity = LocalIdentityProvider(" ")
    seen: list[str | None] = []
    unsubscribe = identity.subscribe(seen.append)

    assert identity.current_identity() is None
    with pytest.raises(ValidationError):
        identity.sign_in("  ")

    identity.sign_in("u1")
    identity.sign_in("u1")
    identity.sign_out()
    identity.sign_out()
    unsubscribe()
    identity.sign_in("u2")

    assert seen == ["u1", None]
