"""tmux-backed terminal for a single session.

The backend keeps one PTY per session. While detached it runs a tmux client
whose only purpose is to give the pane a size (``resize``) and a place to
type into (``send_keys``); pane content is read with ``capture-pane`` and
never from the PTY. While attached, three threads bridge the PTY with the
caller's own terminal:

- output: PTY -> local stdout, until the PTY is closed
- input: local stdin -> PTY; a lone ESC byte detaches
- resize: SIGWINCH, debounced, -> PTY window size
"""

import logging
import os
import re
import select
import sys
import termios
import threading
import time
import tty
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..services.exceptions import (
    ConflictError,
    InvalidStateError,
    NoActiveSessionError,
    NotFoundError,
    PartialCleanupError,
    ServiceError,
    SessionTimeoutError,
    TerminalStateError,
    TmuxServiceError,
    UnsupportedOperationError,
)
from ..services.tmux_service import TmuxService
from .constants import (
    DETACH_KEY,
    INPUT_GRACE_PERIOD,
    IO_POLL_INTERVAL,
    READ_CHUNK_SIZE,
    SESSION_START_POLL_INTERVAL,
    SESSION_START_TIMEOUT,
    TMUX_SESSION_PREFIX,
)
from .pty_handle import PtyHandle
from .resize import ResizeDebouncer, WinchListener

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def to_session_name(title: str) -> str:
    """tmux session name for a session title."""
    name = _WHITESPACE.sub("", title)
    # tmux rewrites "." and ":" to "_", and ":" would also split the target.
    name = name.replace(".", "_").replace(":", "_")
    return f"{TMUX_SESSION_PREFIX}{name}"


class DetachSignal:
    """Completion signal handed out by :meth:`TerminalBackend.attach`."""

    def __init__(self):
        self._event = threading.Event()
        self.error: Optional[Exception] = None

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    def is_set(self) -> bool:
        return self._event.is_set()

    def raise_for_error(self) -> None:
        """Re-raise the error the detach finished with, if any."""
        if self.error is not None:
            raise self.error

    def _finish(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self._event.set()


@dataclass
class AttachState:
    """Everything that only exists while a terminal is attached."""

    pty: PtyHandle
    stdin_fd: int
    stdout_fd: int
    saved_mode: list
    signal: DetachSignal
    cancel: threading.Event = field(default_factory=threading.Event)
    output_thread: Optional[threading.Thread] = None
    input_thread: Optional[threading.Thread] = None
    resize_thread: Optional[threading.Thread] = None
    listener: Optional[WinchListener] = None
    detaching: bool = False


class TerminalBackend:
    """Owns the PTY and the tmux session of one agent session."""

    def __init__(
        self,
        title: str,
        tmux: Optional[TmuxService] = None,
        pty_factory: Callable[..., PtyHandle] = PtyHandle.spawn,
        stdin_fd: Optional[int] = None,
        stdout_fd: Optional[int] = None,
    ):
        """Initialize the backend without starting anything.

        Args:
            title: Session title; the tmux session name is derived from it
            tmux: Multiplexer service (defaults to the tmux binary on PATH)
            pty_factory: Callable spawning an argument list on a fresh PTY
            stdin_fd: Local terminal input used by attach (defaults to stdin)
            stdout_fd: Local terminal output used by attach (defaults to stdout)
        """
        self.title = title
        self.session_name = to_session_name(title)
        self.tmux = tmux or TmuxService()
        self._pty_factory = pty_factory
        self._stdin_fd = stdin_fd
        self._stdout_fd = stdout_fd
        self._pty: Optional[PtyHandle] = None
        self._attach_state: Optional[AttachState] = None
        self._lock = threading.RLock()

    @property
    def pty(self) -> Optional[PtyHandle]:
        return self._pty

    @property
    def is_attached(self) -> bool:
        return self._attach_state is not None

    def exists(self) -> bool:
        """Whether the tmux session is alive."""
        return self.tmux.has_session(self.session_name)

    def start(self, program: str, work_dir: str) -> None:
        """Create the tmux session running ``program`` and connect to it.

        Raises:
            ConflictError: If a session with this name is already live
            SessionTimeoutError: If tmux did not report the session in time
            TmuxServiceError: If tmux could not be started
        """
        if self.exists():
            raise ConflictError(f"tmux session already exists: {self.session_name}")

        args = self.tmux.new_session_args(self.session_name, work_dir, program)
        try:
            creator = self._pty_factory(args, cwd=work_dir)
        except OSError as e:
            error = TmuxServiceError(f"error starting tmux session: {e}")
            self._cleanup_failed_start(error)
            raise error from e

        try:
            deadline = time.monotonic() + SESSION_START_TIMEOUT
            while not self.exists():
                if time.monotonic() >= deadline:
                    error = SessionTimeoutError(f"timed out waiting for tmux session {self.session_name}")
                    self._cleanup_failed_start(error)
                    raise error
                time.sleep(SESSION_START_POLL_INTERVAL)
        finally:
            # "new-session -d" exits on its own; its PTY only sized the new pane.
            creator.close()

        try:
            self.restore()
        except (ServiceError, OSError) as e:
            error = TmuxServiceError(f"error restoring tmux session: {e}")
            self._cleanup_failed_start(error)
            raise error from e
        logger.info(f"Started tmux session {self.session_name} in {work_dir}")

    def _cleanup_failed_start(self, error: Exception) -> None:
        try:
            self.close()
        except ServiceError as cleanup_error:
            error.args = (f"{error} (cleanup error: {cleanup_error})",)

    def restore(self) -> None:
        """Connect a new PTY to the already existing tmux session.

        Raises:
            NotFoundError: If the tmux session does not exist
            OSError: If the PTY cannot be allocated
        """
        if not self.exists():
            raise NotFoundError(f"tmux session not found: {self.session_name}")
        handle = self._pty_factory(self.tmux.attach_session_args(self.session_name))
        with self._lock:
            previous = self._pty
            attached = self._attach_state.pty if self._attach_state is not None else None
            self._pty = handle
            if previous is not None and previous is not attached and not previous.closed:
                try:
                    previous.close()
                except OSError as e:
                    logger.warning(f"error closing previous PTY of {self.session_name}: {e}")
        logger.debug(f"Restored PTY for {self.session_name}")

    def attach(self) -> DetachSignal:
        """Hand the local terminal over to the session until detach.

        Returns:
            Signal set once detaching has fully completed

        Raises:
            ConflictError: If already attached
            NoActiveSessionError: If there is no PTY to attach to
            UnsupportedOperationError: If stdin is not a terminal
            TerminalStateError: If raw mode could not be entered cleanly
        """
        stdin_fd = self._stdin_fd if self._stdin_fd is not None else sys.stdin.fileno()
        stdout_fd = self._stdout_fd if self._stdout_fd is not None else sys.stdout.fileno()
        if not os.isatty(stdin_fd):
            raise UnsupportedOperationError("attaching requires an interactive terminal")

        with self._lock:
            if self._attach_state is not None:
                raise ConflictError(f"already attached to {self.session_name}")
            if self._pty is None or self._pty.closed:
                raise NoActiveSessionError(f"no active PTY for {self.session_name}")

            saved_mode = termios.tcgetattr(stdin_fd)
            try:
                tty.setraw(stdin_fd)
            except termios.error as e:
                self._restore_mode(stdin_fd, saved_mode)
                raise TerminalStateError(f"could not enter raw mode: {e}") from e

            state = AttachState(
                pty=self._pty,
                stdin_fd=stdin_fd,
                stdout_fd=stdout_fd,
                saved_mode=saved_mode,
                signal=DetachSignal(),
            )
            self._attach_state = state

        debouncer = ResizeDebouncer(
            get_size=lambda: tuple(os.get_terminal_size(stdin_fd)),
            set_size=self.resize,
        )
        state.listener = WinchListener(debouncer.notify)
        state.listener.install()

        state.output_thread = threading.Thread(
            target=self._copy_output, args=(state,), name=f"{self.session_name}-output", daemon=True
        )
        state.input_thread = threading.Thread(
            target=self._forward_input, args=(state,), name=f"{self.session_name}-input", daemon=True
        )
        state.resize_thread = threading.Thread(
            target=debouncer.run, args=(state.cancel,), name=f"{self.session_name}-resize", daemon=True
        )
        state.output_thread.start()
        state.input_thread.start()
        state.resize_thread.start()

        debouncer.sync()
        logger.info(f"Attached to {self.session_name}")
        return state.signal

    def _copy_output(self, state: AttachState) -> None:
        while True:
            try:
                data = state.pty.read(READ_CHUNK_SIZE, IO_POLL_INTERVAL)
            except OSError as e:
                logger.error(f"error reading from PTY: {e}")
                return
            if data is None:
                continue
            if not data:
                return
            try:
                os.write(state.stdout_fd, data)
            except OSError as e:
                logger.error(f"error writing session output: {e}")
                return

    def _forward_input(self, state: AttachState) -> None:
        started = time.monotonic()
        while not state.cancel.is_set():
            try:
                ready, _, _ = select.select([state.stdin_fd], [], [], IO_POLL_INTERVAL)
                if not ready:
                    continue
                data = os.read(state.stdin_fd, READ_CHUNK_SIZE)
            except OSError as e:
                logger.error(f"error reading local input: {e}")
                return
            if not data:
                return

            # Terminals answer attach-time queries (e.g. "\x1b[?62c") right away;
            # anything arriving that early is not the user typing.
            if time.monotonic() - started < INPUT_GRACE_PERIOD:
                logger.debug(f"discarded early input: {data!r}")
                continue

            if data == bytes([DETACH_KEY]):
                try:
                    self.detach()
                except ServiceError as e:
                    logger.error(f"error detaching from {self.session_name}: {e}")
                return

            try:
                state.pty.write(data)
            except OSError as e:
                logger.error(f"error forwarding input to PTY: {e}")

    def detach(self) -> None:
        """Give the local terminal back and reconnect a detached PTY.

        Safe to call from the input thread itself. Returns only once the
        terminal mode is restored and no attach thread can write to it.

        Raises:
            InvalidStateError: If not attached
            TerminalStateError: If the terminal mode could not be restored
            PartialCleanupError: If closing or restoring the PTY failed
        """
        with self._lock:
            state = self._attach_state
            if state is None:
                raise InvalidStateError(f"not attached to {self.session_name}")
            if state.detaching:
                wait_for = state.signal
            else:
                state.detaching = True
                wait_for = None
        if wait_for is not None:
            # Another thread is already detaching; finish when it does.
            if threading.current_thread() is not state.input_thread:
                wait_for.wait()
            return

        errors: list[Exception] = []

        try:
            state.pty.close()
        except OSError as e:
            errors.append(TmuxServiceError(f"error closing attached PTY: {e}"))
        self._join(state.output_thread)

        try:
            self.restore()
        except (ServiceError, OSError) as e:
            with self._lock:
                self._pty = None
            errors.append(e)

        terminal_error = None
        if not self._restore_mode(state.stdin_fd, state.saved_mode):
            terminal_error = TerminalStateError(
                "could not restore the terminal mode; run 'reset' to repair the terminal"
            )

        state.cancel.set()
        if state.listener:
            state.listener.uninstall()
        self._join(state.resize_thread)
        self._join(state.input_thread)

        with self._lock:
            self._attach_state = None

        error: Optional[Exception] = terminal_error
        if error is None and errors:
            error = errors[0] if len(errors) == 1 else PartialCleanupError(errors, "errors while detaching")
        state.signal._finish(error)
        logger.info(f"Detached from {self.session_name}")
        if error is not None:
            raise error

    @staticmethod
    def _join(thread: Optional[threading.Thread]) -> None:
        if thread is None or thread is threading.current_thread() or not thread.is_alive():
            return
        thread.join()

    @staticmethod
    def _restore_mode(fd: int, mode: list) -> bool:
        try:
            termios.tcsetattr(fd, termios.TCSAFLUSH, mode)
            return True
        except (termios.error, OSError) as e:
            logger.critical(f"failed to restore terminal mode: {e}")
            return False

    def close(self) -> None:
        """Close the PTY and kill the tmux session.

        An attached terminal is detached first, so the local terminal mode
        is restored and the detach signal fires. Every step is always
        attempted. A session that is already gone is not an error.

        Raises:
            PartialCleanupError: Aggregate of the failed steps
        """
        errors: list[Exception] = []
        if self.is_attached:
            try:
                self.detach()
            except NotFoundError:
                logger.info(f"tmux session {self.session_name} vanished while attached")
            except ServiceError as e:
                errors.append(e)

        with self._lock:
            if self._pty is not None:
                try:
                    self._pty.close()
                except OSError as e:
                    errors.append(TmuxServiceError(f"error closing PTY: {e}"))
                self._pty = None

        try:
            self.tmux.kill_session(self.session_name)
        except NotFoundError:
            logger.info(f"tmux session {self.session_name} already gone")
        except TmuxServiceError as e:
            errors.append(TmuxServiceError(f"error killing tmux session: {e}"))

        if errors:
            raise PartialCleanupError(errors, f"errors closing {self.session_name}")

    def disconnect(self) -> None:
        """Close the local PTY but leave the tmux session running."""
        with self._lock:
            if self._pty is not None:
                self._pty.close()
                self._pty = None

    def snapshot(self) -> str:
        """Current pane content with escape sequences; never touches the PTY.

        Raises:
            NotFoundError: If the tmux session is gone
            TmuxServiceError: If capturing failed for another reason
        """
        return self.capture_history()

    def capture_history(self, start: Optional[str] = None, end: Optional[str] = None) -> str:
        """Pane content between two lines; ``"-"`` means start/end of history."""
        try:
            return self.tmux.capture_pane(self.session_name, start=start, end=end)
        except TmuxServiceError as e:
            if not self.exists():
                raise NotFoundError(f"tmux session not found: {self.session_name}") from e
            raise

    def resize(self, cols: int, rows: int) -> None:
        """Apply new dimensions to the PTY.

        Raises:
            NoActiveSessionError: If there is no PTY
            OSError: If the ioctl fails
        """
        with self._lock:
            if self._pty is None or self._pty.closed:
                raise NoActiveSessionError(f"no active PTY for {self.session_name}")
            self._pty.set_size(cols, rows)

    def send_keys(self, text: str) -> None:
        """Type ``text`` into the session without attaching.

        Raises:
            NoActiveSessionError: If there is no PTY
            TmuxServiceError: If the write fails
        """
        with self._lock:
            if self._pty is None or self._pty.closed:
                raise NoActiveSessionError(f"no active PTY for {self.session_name}")
            try:
                self._pty.write(text.encode())
            except OSError as e:
                raise TmuxServiceError(f"error sending keys to {self.session_name}: {e}") from e

    def tap_enter(self) -> None:
        self.send_keys("\r")

    def pane_pids(self) -> list[int]:
        return self.tmux.pane_pids(self.session_name)
