# src/learn_buddy/logging_setup.py

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path

APP_LOGGER = "learn_buddy"

# Modules that log on every store/LLM call; on the console they would interleave
# with the REPL prompt, so only their warnings are shown there.
_PER_CALL_LOGGERS = (
    "learn_buddy.tasks.task_store",
    "learn_buddy.tasks.local_store",
    "learn_buddy.llm.client",
)


class _ConsoleFilter(logging.Filter):
    """
    Keep the interactive console readable:
    - app logs pass (per-call store/LLM chatter only from WARNING)
    - captured Python warnings and third-party logs only from ERROR
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name == APP_LOGGER or name.startswith(APP_LOGGER + "."):
            if name.startswith(_PER_CALL_LOGGERS):
                return record.levelno >= logging.WARNING
            return True
        return record.levelno >= logging.ERROR


def level_from_name(name: str | None, default: int = logging.INFO) -> int:
    """Map "debug"/"INFO"/... to a logging level; unknown names give `default`."""
    level = logging.getLevelName(str(name or "").strip().upper())
    return level if isinstance(level, int) else default


def setup_logging(
    *,
    log_dir: str | Path = ".local/learn_buddy",
    console_level: int | str = logging.INFO,
    file_level: int = logging.DEBUG,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
) -> Path:
    """
    Configure the root logger once, before the first log call:
    - stderr handler, filtered for interactive use
    - rotating file handler with everything at `file_level`

    Returns the path of the log file.
    """
    if isinstance(console_level, str):
        console_level = level_from_name(console_level)

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "learn_buddy.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    ch.addFilter(_ConsoleFilter())
    root.addHandler(ch)

    fh = logging.handlers.RotatingFileHandler(
        str(log_file), maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    fh.setLevel(file_level)
    fh.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(fh)

    logging.captureWarnings(True)

    # SDK request logs are noise even in the file log.
    for noisy in ("httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return log_file
