import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = Path(os.getenv("FUEL_STATION_LOG_DIR", PROJECT_ROOT / ".logs"))
LOG_FILE = LOG_DIR / "fuel_station.log"
LOG_LEVEL = os.getenv("FUEL_STATION_LOG_LEVEL", "INFO").upper()

# Receipts and reports go to stdout; only problems reach stderr by default.
CONSOLE_LEVEL = logging.WARNING

_FORMATTER = logging.Formatter(
    fmt="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def _station_file_handler() -> logging.Handler | None:
    """Return a rotating handler for the station log, or ``None`` if unwritable."""

    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(LOG_FILE, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
    except OSError as exc:
        print(f"Warning: unable to initialize log file at '{LOG_FILE}': {exc}", file=sys.stderr)
        return None
    handler.setLevel(LOG_LEVEL)
    handler.setFormatter(_FORMATTER)
    return handler


def _configure_logging() -> logging.Logger:
    """Attach the station log file and the operator console to the package logger."""

    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    file_handler = _station_file_handler()
    if file_handler is not None:
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.set_name("console")
    console_handler.setLevel(CONSOLE_LEVEL)
    console_handler.setFormatter(_FORMATTER)
    logger.addHandler(console_handler)
    return logger


def set_console_level(level: int) -> None:
    """Change how much of the station log the operator sees on stderr."""

    for handler in log.handlers:
        if handler.get_name() == "console":
            handler.setLevel(level)


log = _configure_logging()
log.debug("Logging to '%s' at level %s", LOG_FILE, LOG_LEVEL)
