# src/testsmith/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries that talk to GitHub / the LLM API; their INFO lines repeat every request.
_CHATTY_LIBRARIES = ("httpx", "httpcore", "openai")


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console filter for a long-running worker.

    The event client logs on every reconnect attempt and git logs every
    command at DEBUG; both stay in the file log but only reach the console
    at WARNING+ unless verbose_events is set. Anything outside testsmith
    needs ERROR+.
    """

    def __init__(self, *, verbose_events: bool = False) -> None:
        super().__init__()
        self._verbose_events = verbose_events

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if not name.startswith("testsmith."):
            return record.levelno >= logging.ERROR
        if name.startswith(("testsmith.events.", "testsmith.vcs.")) and not self._verbose_events:
            return record.levelno >= logging.WARNING
        return True


def setup_logging(
    *,
    log_dir: str | Path = ".local/testsmith",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    verbose_events: bool = False,
) -> Path:
    """
    Route all logging to stderr (filtered) and to <log_dir>/testsmith.log (unfiltered).

    Safe to call more than once: existing root handlers are replaced.
    Returns the log file path.
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = log_path / "testsmith.log"

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(formatter)
    console.addFilter(_ConsoleNoiseFilter(verbose_events=verbose_events))

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(formatter)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(logging.DEBUG)
    root.addHandler(console)
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    for name in _CHATTY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_file
