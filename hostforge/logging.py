"""Logging configuration for the hostforge package."""
import logging
import logging.handlers
import threading
from pathlib import Path
from typing import List, Optional

from hostforge.config import Config

# Libraries that log too much below WARNING
NOISY_LOGGERS = ('paramiko',)


class HistoryHandler(logging.Handler):
    """Keeps every formatted record of the process in memory.

    Records are kept at every level, so the full trail of a failed run can be
    shown even when the console only printed INFO.
    """

    def __init__(self, level: int = logging.DEBUG):
        super().__init__(level)
        self._records: List[str] = []
        self._history_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
        except Exception:
            self.handleError(record)
            return
        with self._history_lock:
            self._records.append(message)

    def history(self) -> List[str]:
        with self._history_lock:
            return list(self._records)

    def clear(self) -> None:
        with self._history_lock:
            self._records.clear()


_history = HistoryHandler()


def get_history() -> List[str]:
    """Messages recorded since logging was set up."""
    return _history.history()


def setup_logging(debug: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    """Configure the root logger for a CLI run.

    Args:
        debug: Log at DEBUG on the console and keep library loggers verbose
        log_file: Rotating log file; ``None`` uses Config.LOG_FILE, ``''`` disables it

    Returns:
        The root logger
    """
    root = logging.getLogger()
    level = logging.DEBUG if debug else getattr(logging, Config.LOG_LEVEL, logging.INFO)
    formatter = logging.Formatter(Config.LOG_FORMAT)

    # Re-running setup replaces the handlers installed by a previous call
    for handler in list(root.handlers):
        if getattr(handler, '_hostforge', False):
            root.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    console_handler._hostforge = True
    root.addHandler(console_handler)

    log_file = Config.LOG_FILE if log_file is None else log_file
    if log_file:
        path = Path(log_file).expanduser().absolute()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=path,
            maxBytes=Config.LOG_MAX_SIZE_MB * 1024 * 1024,
            backupCount=Config.LOG_BACKUP_COUNT,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        file_handler._hostforge = True
        root.addHandler(file_handler)

    _history.setFormatter(formatter)
    if _history not in root.handlers:
        root.addHandler(_history)

    root.setLevel(logging.DEBUG)

    # Disable debug logging for noisy libraries
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)

    return root
