# src/learn_buddy/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, starts the task session, then runs the
console REPL until /exit or EOF.
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import ConsoleNotifier, run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        await state.session.close()
    except Exception:
        logger.exception("Session close failed.")

    close = getattr(state.llm, "close", None)
    if close is not None:
        try:
            await close()
        except Exception:
            logger.debug("LLM client close failed.", exc_info=True)


async def _run(state: AppState) -> None:
    await state.session.start()
    try:
        await run_console_loop(state)
    finally:
        await _shutdown(state)


def main() -> None:
    settings = get_settings()

    log_file = setup_logging(log_dir=settings.data_dir, console_level=settings.log_level)

    logger.info("Starting %s (log file: %s)...", settings.app_name, log_file)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(notifier=ConsoleNotifier(), settings=settings)

    try:
        asyncio.run(_run(state))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    logger.info("Bye.")


if __name__ == "__main__":
    main()
