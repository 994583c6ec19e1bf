# src/learn_buddy/core/errors.py

"""
Error taxonomy.

Every failure that crosses a component boundary is one of these, so callers can
decide between "reject the intent" (ValidationError), "roll back"
(StoreError) and "show a generation failure" (GenerationError).
"""

from __future__ import annotations


class LearnBuddyError(Exception):
    """Base class for all application errors."""


class ValidationError(LearnBuddyError):
    """Local input rejection. Never reaches a backend and never changes state."""


class NotSignedInError(ValidationError):
    """An intent needs a signed-in identity and there is none."""


class StoreError(LearnBuddyError):
    """A task store read or write failed."""


class TaskNotFoundError(StoreError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class OwnershipError(StoreError):
    """The document exists but belongs to a different identity."""


class GenerationError(LearnBuddyError):
    """The generation backend returned nothing, or something that failed validation."""


class LoadError(LearnBuddyError):
    """Persisted local data could not be decoded. Logged, then degraded to empty."""


class InvariantError(LearnBuddyError):
    """The task tree violates one of its structural invariants (a defect)."""
