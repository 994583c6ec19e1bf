# src/learn_buddy/core/identity.py

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable

from .errors import ValidationError
from .ports import IdentityListener

logger = logging.getLogger(__name__)


class LocalIdentityProvider:
    """
    In-process identity source.

    Stands in for a real auth session: whoever calls sign_in/sign_out is the
    login flow. Listeners are called synchronously on every transition.
    """

    def __init__(self, initial: str | None = None) -> None:
        initial = (initial or "").strip()
        self._identity: str | None = initial or None
        self._listeners: list[IdentityListener] = []

    def current_identity(self) -> str | None:
        return self._identity

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, user_id: str) -> None:
        user_id = (user_id or "").strip()
        if not user_id:
            raise ValidationError("User id must not be empty.")
        if user_id == self._identity:
            return
        self._identity = user_id
        logger.info("Signed in as %s", user_id)
        self._emit()

    def sign_out(self) -> None:
        if self._identity is None:
            return
        logger.info("Signed out %s", self._identity)
        self._identity = None
        self._emit()

    def _emit(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._identity)
            except Exception:
                logger.exception("Identity listener failed")
