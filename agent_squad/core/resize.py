"""Window-size change notifications and their debouncing."""

import logging
import queue
import signal
import threading
from typing import Callable, Optional

from ..services.exceptions import ServiceError
from ..utils.log import Every
from .constants import IO_POLL_INTERVAL, RESIZE_DEBOUNCE_WINDOW, RESIZE_ERROR_LOG_INTERVAL

logger = logging.getLogger(__name__)


class ResizeDebouncer:
    """Coalesce bursts of resize notifications into one applied resize.

    Each notification restarts the quiet window; when it elapses without a
    new one, the current size is read once and pushed once.
    """

    def __init__(
        self,
        get_size: Callable[[], tuple[int, int]],
        set_size: Callable[[int, int], None],
        window: float = RESIZE_DEBOUNCE_WINDOW,
    ):
        self.get_size = get_size
        self.set_size = set_size
        self.window = window
        self._events: "queue.SimpleQueue[None]" = queue.SimpleQueue()
        self._error_log = Every(RESIZE_ERROR_LOG_INTERVAL)

    def notify(self) -> None:
        """Record a window-size change; safe to call from a signal handler."""
        self._events.put(None)

    def sync(self) -> None:
        """Push the current size right now. Failures are logged, never raised."""
        try:
            cols, rows = self.get_size()
            self.set_size(cols, rows)
        except (OSError, ValueError, ServiceError) as e:
            if self._error_log.should_log():
                logger.error(f"failed to update window size: {e}")

    def run(self, cancel: threading.Event) -> None:
        """Process notifications until ``cancel`` is set."""
        while not cancel.is_set():
            try:
                self._events.get(timeout=IO_POLL_INTERVAL)
            except queue.Empty:
                continue
            while not cancel.is_set():
                try:
                    self._events.get(timeout=self.window)
                except queue.Empty:
                    break
            if cancel.is_set():
                return
            self.sync()


class WinchListener:
    """Forward SIGWINCH to a callback for the duration of an attachment.

    Signal handlers can only be installed from the main thread. When that is
    not possible the listener stays inactive and the attachment simply keeps
    its initial size.
    """

    def __init__(self, callback: Callable[[], None]):
        self.callback = callback
        self._active = False
        self._previous = None

    def _handle(self, signum, frame) -> None:
        if self._active:
            self.callback()
        elif callable(self._previous):
            self._previous(signum, frame)

    def install(self) -> bool:
        try:
            self._previous = signal.signal(signal.SIGWINCH, self._handle)
        except ValueError as e:
            logger.warning(f"not watching window size changes: {e}")
            return False
        self._active = True
        return True

    def uninstall(self) -> None:
        """Stop forwarding; restores the previous handler when on the main thread."""
        if not self._active:
            return
        self._active = False
        previous: Optional[object] = self._previous
        try:
            signal.signal(signal.SIGWINCH, previous if previous is not None else signal.SIG_DFL)
        except ValueError:
            # Not on the main thread: _handle now just chains to the old handler.
            pass
