"""Pseudo-terminal handles for processes talking to tmux."""

import errno
import fcntl
import logging
import os
import pty
import select
import struct
import subprocess
import termios
import threading
from typing import Optional

logger = logging.getLogger(__name__)


def _make_controlling_tty() -> None:
    # Runs in the child after stdin was dup'ed onto the PTY slave.
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class PtyHandle:
    """A child process whose stdio is the slave side of a fresh PTY.

    The parent keeps the master side. Closing the handle is how readers
    blocked in :meth:`read` are told to stop: once closed, ``read`` returns
    ``b""`` (EOF) instead of touching the file descriptor again.
    """

    def __init__(self, master_fd: int, process: subprocess.Popen):
        self.master_fd = master_fd
        self.process = process
        self._closed = False
        self._lock = threading.Lock()

    @classmethod
    def spawn(cls, args: list[str], cwd: Optional[str] = None) -> "PtyHandle":
        """Start ``args`` as a session leader attached to a new PTY.

        Raises:
            OSError: If the PTY cannot be allocated or the process cannot start
        """
        master_fd, slave_fd = pty.openpty()
        try:
            process = subprocess.Popen(
                args,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=cwd,
                start_new_session=True,
                preexec_fn=_make_controlling_tty,
                close_fds=True,
            )
        except BaseException:
            os.close(master_fd)
            raise
        finally:
            os.close(slave_fd)
        logger.debug(f"Spawned {args[0]} (pid {process.pid}) on PTY fd {master_fd}")
        return cls(master_fd, process)

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int, timeout: float) -> Optional[bytes]:
        """Read up to ``size`` bytes.

        Returns:
            The bytes read, ``None`` if nothing arrived within ``timeout``,
            or ``b""`` once the PTY is closed or the child hung up.
        """
        if self._closed:
            return b""
        try:
            ready, _, _ = select.select([self.master_fd], [], [], timeout)
        except (OSError, ValueError):
            return b""
        if not ready:
            return None
        with self._lock:
            if self._closed:
                return b""
            try:
                return os.read(self.master_fd, size)
            except OSError as e:
                # EIO is how Linux reports that the slave side went away.
                if e.errno in (errno.EIO, errno.EBADF):
                    return b""
                raise

    def write(self, data: bytes) -> int:
        """Write all of ``data`` to the PTY.

        Raises:
            OSError: If the handle is closed or the write fails
        """
        with self._lock:
            if self._closed:
                raise OSError(errno.EBADF, "PTY is closed")
            view = memoryview(data)
            while view:
                written = os.write(self.master_fd, view)
                view = view[written:]
            return len(data)

    def set_size(self, cols: int, rows: int) -> None:
        """Apply new window dimensions to the PTY."""
        winsize = struct.pack("HHHH", rows, cols, 0, 0)
        with self._lock:
            if self._closed:
                raise OSError(errno.EBADF, "PTY is closed")
            fcntl.ioctl(self.master_fd, termios.TIOCSWINSZ, winsize)

    def close(self) -> None:
        """Close the master side and reap the child.

        Closing the master hangs up the child (a tmux client detaches); the
        tmux server and the program inside it are left alone.

        Raises:
            OSError: If closing the file descriptor fails
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                os.close(self.master_fd)
            finally:
                self._reap()

    def _reap(self) -> None:
        try:
            self.process.wait(timeout=1)
        except subprocess.TimeoutExpired:
            logger.warning(f"PTY child {self.process.pid} ignored hangup, killing it")
            self.process.kill()
            self.process.wait()
