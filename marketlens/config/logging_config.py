# marketlens/config/logging_config.py

"""Logging for a marketlens run.

Everything under ``marketlens.*`` goes to ``logs/run_<timestamp>.log`` at
DEBUG.  The console only shows ``Settings.LOG_LEVEL`` and above (raised by
``-v`` on the CLI), so stdout stays clean for JSON output.  Chatty
third-party loggers (asyncio, Playwright's driver) are held at WARNING,
and old run logs beyond ``Settings.LOG_RETENTION`` are removed.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from marketlens.config.settings import Settings

_FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | "
    "%(funcName)s:%(lineno)d | %(message)s"
)
_CONSOLE_FORMAT = "%(levelname)-8s %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(
    name: str | int | None, default: int = logging.WARNING,
) -> int:
    """Map ``"info"``, ``"DEBUG"``, ``20`` ... to a logging level."""
    if isinstance(name, int):
        return name
    if not name:
        return default
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else default


def prune_run_logs(logs_dir: Path, keep: int) -> int:
    """Delete all but the newest *keep* ``run_*.log`` files."""
    if keep < 0:
        return 0
    runs = sorted(logs_dir.glob("run_*.log"), reverse=True)
    removed = 0
    for stale in runs[keep:]:
        try:
            stale.unlink()
            removed += 1
        except OSError:
            continue
    return removed


def setup_logging(
    logs_dir: Path | None = None,
    console_level: str | int | None = None,
) -> Path:
    """Attach the run-log and console handlers to ``marketlens``.

    Safe to call twice: a second call only adjusts the console level.
    """
    directory = logs_dir or Settings.LOGS_DIR
    directory.mkdir(parents=True, exist_ok=True)
    level = resolve_level(console_level or Settings.LOG_LEVEL)

    for name in Settings.QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    app_logger = logging.getLogger("marketlens")
    app_logger.setLevel(logging.DEBUG)

    existing = [
        h for h in app_logger.handlers if isinstance(h, logging.FileHandler)
    ]
    if existing:
        for handler in app_logger.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(level)
        return Path(existing[0].baseFilename)

    if Settings.LOG_RETENTION > 0:
        prune_run_logs(directory, Settings.LOG_RETENTION - 1)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = directory / f"run_{stamp}.log"

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, _DATE_FORMAT))

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))

    app_logger.addHandler(file_handler)
    app_logger.addHandler(console)
    app_logger.debug(
        "Run log %s (console level %s)", log_file, logging.getLevelName(level),
    )
    return log_file
