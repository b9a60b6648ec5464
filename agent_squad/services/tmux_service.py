"""tmux service for abstracting terminal-multiplexer operations."""

import logging
import subprocess
from typing import Optional

from .exceptions import NotFoundError, TmuxServiceError

logger = logging.getLogger(__name__)


class TmuxService:
    """Service for tmux operations with clean abstractions.

    Only commands that do not need a terminal are run here. Commands that
    must own a PTY (``new-session`` and ``attach-session``) are exposed as
    argument lists for the caller to spawn.
    """

    def __init__(self, binary: str = "tmux"):
        self.binary = binary

    def _run_tmux_command(
        self, args: list[str], check: bool = True
    ) -> subprocess.CompletedProcess:
        """Run a tmux command with proper error handling.

        Args:
            args: tmux command arguments
            check: Check return code

        Returns:
            Completed process result

        Raises:
            TmuxServiceError: If command fails
        """
        cmd = [self.binary] + args
        try:
            return subprocess.run(
                cmd,
                check=check,
                capture_output=True,
                text=True,
            )
        except subprocess.CalledProcessError as e:
            error_msg = e.stderr.strip() if e.stderr else str(e)
            raise TmuxServiceError(f"tmux command failed: {error_msg}") from e
        except FileNotFoundError as e:
            raise TmuxServiceError(f"{self.binary} is not installed") from e
        except Exception as e:
            raise TmuxServiceError(f"Unexpected error running tmux command: {e}") from e

    def new_session_args(self, name: str, work_dir: str, program: str) -> list[str]:
        """Arguments creating a detached session running ``program`` in ``work_dir``.

        The pane outlives the program so its final output can still be
        captured; the session only ends when it is killed.
        """
        return [
            self.binary, "new-session", "-d", "-s", name, "-c", work_dir, program,
            ";", "set-option", "-w", "-t", f"={name}:", "remain-on-exit", "on",
        ]

    def attach_session_args(self, name: str) -> list[str]:
        """Arguments attaching a client to an existing session."""
        return [self.binary, "attach-session", "-t", f"={name}"]

    def has_session(self, name: str) -> bool:
        """Check if a session exists."""
        # "-t name" does a prefix match, "-t=name" an exact one.
        try:
            result = self._run_tmux_command(["has-session", f"-t={name}"], check=False)
        except TmuxServiceError:
            return False
        return result.returncode == 0

    def kill_session(self, name: str) -> None:
        """Kill a session and every process running in it.

        Raises:
            NotFoundError: If the session does not exist
            TmuxServiceError: If tmux fails
        """
        if not self.has_session(name):
            raise NotFoundError(f"tmux session not found: {name}")
        self._run_tmux_command(["kill-session", "-t", f"={name}"])
        logger.info(f"Killed tmux session: {name}")

    def capture_pane(
        self, name: str, start: Optional[str] = None, end: Optional[str] = None
    ) -> str:
        """Capture pane content, escape sequences included.

        Args:
            name: Session name
            start: First line to capture ("-" for the start of history)
            end: Last line to capture ("-" for the end of the visible pane)

        Returns:
            Pane content
        """
        args = ["capture-pane", "-p", "-e", "-J"]
        if start is not None:
            args.extend(["-S", start])
        if end is not None:
            args.extend(["-E", end])
        # "=name:" is the exact session, never a longer name sharing its prefix.
        args.extend(["-t", f"={name}:"])
        return self._run_tmux_command(args).stdout

    def list_sessions(self, prefix: str = "") -> list[str]:
        """List session names, optionally restricted to a prefix."""
        try:
            result = self._run_tmux_command(["ls", "-F", "#{session_name}"])
        except TmuxServiceError as e:
            # tmux exits 1 when no server is running, which means no sessions.
            cause = e.__cause__
            if isinstance(cause, subprocess.CalledProcessError) and cause.returncode == 1:
                return []
            raise
        return [line for line in result.stdout.splitlines() if line.startswith(prefix)]

    def pane_pids(self, name: str) -> list[int]:
        """PIDs of the processes running in every pane of a session."""
        result = self._run_tmux_command(["list-panes", "-s", "-t", f"={name}", "-F", "#{pane_pid}"])
        return [int(pid) for pid in result.stdout.split() if pid.isdigit()]

    def cleanup_sessions(self, prefix: str) -> list[str]:
        """Kill every session whose name starts with ``prefix``.

        Returns:
            Names of the sessions that were killed
        """
        killed = []
        for name in self.list_sessions(prefix):
            logger.info(f"Cleaning up session: {name}")
            self._run_tmux_command(["kill-session", "-t", f"={name}"])
            killed.append(name)
        return killed
