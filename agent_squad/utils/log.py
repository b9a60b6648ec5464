"""Logging setup and helpers."""

import logging
import sys
import tempfile
import threading
import time
from pathlib import Path
from typing import Optional

from ..core.constants import LOG_FILE_NAME

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def get_log_file() -> Path:
    """Location of the log file, shared by every agent-squad process."""
    return Path(tempfile.gettempdir()) / LOG_FILE_NAME


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> Path:
    """Configure root logging for the CLI.

    Records go to a file so they never interleave with an attached session;
    warnings and errors are also echoed on stderr.

    Returns:
        Path of the log file in use
    """
    log_file = log_file or get_log_file()
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.INFO if verbose else logging.WARNING)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=[file_handler, stderr_handler],
        force=True,
    )
    return log_file


class Every:
    """Allow something, typically a log line, at most once per interval."""

    def __init__(self, interval: float):
        self.interval = interval
        self._last: Optional[float] = None
        self._lock = threading.Lock()

    def should_log(self) -> bool:
        with self._lock:
            now = time.monotonic()
            if self._last is None or now - self._last >= self.interval:
                self._last = now
                return True
            return False
