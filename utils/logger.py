import logging
import os
from typing import Optional

LOGGER_NAME = "spotify_session"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_console = logging.getLogger(LOGGER_NAME)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Configure the root logger once: plain console output plus an optional log file.

    Library modules (spotify_api.*) log through their own module loggers and
    end up here too.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    for handler in list(root.handlers):
        if getattr(handler, "_spotify_session", False):
            root.removeHandler(handler)

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter("%(message)s"))
    console._spotify_session = True
    # Library chatter only reaches the console at WARNING and above.
    console.addFilter(lambda record: record.name == LOGGER_NAME or record.levelno >= logging.WARNING)
    root.addHandler(console)

    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler._spotify_session = True
        root.addHandler(file_handler)

    return _console


def log_debug(message: str) -> None:
    _console.debug(message)


def log_info(message: str) -> None:
    _console.info(message)


def log_success(message: str) -> None:
    _console.info(f"✅ {message}")


def log_warning(message: str) -> None:
    _console.warning(f"⚠️ {message}")


def log_error(message: str) -> None:
    _console.error(f"❌ {message}")
