"""Operational log setup: rotating file log, optional Rich console handler."""

import logging
import logging.handlers
import os
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_BACKUPS = 5
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def data_dir() -> Path:
    """Return the data directory, respecting XDG_DATA_HOME."""
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "zesbe"
    return Path.home() / ".local" / "share" / "zesbe"


def default_log_path() -> Path:
    return data_dir() / "logs" / "zesbe.log"


def setup_logging(
    level: str = "INFO", path: str | Path | None = None, *, debug: bool = False
) -> logging.Logger:
    """Attach handlers to the ``zesbe`` package logger.

    Safe to call more than once; previous handlers are replaced.
    """
    logger = logging.getLogger("zesbe")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    numeric = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(numeric)
    logger.propagate = False

    log_path = Path(path).expanduser() if path else default_log_path()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
        )
    except OSError:
        file_handler = None
    if file_handler is not None:
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    if debug:
        logger.addHandler(
            RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
        )
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    return logger
