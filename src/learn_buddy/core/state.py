# src/learn_buddy/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..llm.flows import StructuredGenerator
from ..llm.schemas import GeneratePathwayOutput
from .identity import LocalIdentityProvider
from .ports import GenerationBackend, Notifier
from .session import TaskSession


@dataclass(slots=True)
class AppState:
    # Settings live on the state so commands can read them without a global lookup.
    settings: Any

    identity: LocalIdentityProvider
    session: TaskSession
    notifier: Notifier
    generator: StructuredGenerator
    llm: GenerationBackend

    # Last generated pathway, waiting for /accept.
    pending_pathway: GeneratePathwayOutput | None = None
