"""Agent session lifecycle."""

import hashlib
import logging
import os
import signal
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from ..models.session import DiffStatsData, SessionData, SessionStatus, WorktreeData
from ..services.exceptions import (
    InvalidStateError,
    NoActiveSessionError,
    NotFoundError,
    PartialCleanupError,
    ServiceError,
    UnsupportedOperationError,
)
from ..services.git_service import GitService
from ..services.tmux_service import TmuxService
from ..services.worktree import DiffStats, GitWorktree
from .constants import DEFAULT_BRANCH_PREFIX, PAUSE_COMMIT_TEMPLATE, WORKTREES_DIR_NAME, get_config_dir
from .prompt import PromptDetector, resolve_detector, tail
from .terminal import DetachSignal, TerminalBackend

logger = logging.getLogger(__name__)


class AgentSession:
    """A coding agent running in tmux inside its own git worktree.

    State machine::

        LOADING --start--> RUNNING --pause--> PAUSED --resume--> RUNNING
           any state --kill--> KILLED

    In-place sessions run directly in ``path`` with no branch or worktree and
    cannot be paused.
    """

    def __init__(
        self,
        title: str,
        path: str,
        program: str,
        auto_approve: bool = False,
        in_place: bool = False,
        branch_prefix: str = DEFAULT_BRANCH_PREFIX,
        worktrees_dir: Optional[Path] = None,
        tmux: Optional[TmuxService] = None,
        git_service_factory: Callable[[Path], GitService] = GitService,
        terminal_factory: Callable[..., TerminalBackend] = TerminalBackend,
        prompt_detector: Optional[PromptDetector] = None,
    ):
        """Create a session in the LOADING state; nothing is started yet.

        Args:
            title: Unique session title
            path: Repository root (or working directory for in-place sessions)
            program: Command line run inside the session
            auto_approve: Whether prompts may be answered automatically
            in_place: Run in ``path`` without workspace isolation
            branch_prefix: Prefix of the session branch name
            worktrees_dir: Parent directory of session worktrees
            tmux: Multiplexer service shared with the terminal backend
            git_service_factory: Callable building a GitService for a path
            terminal_factory: Callable building the terminal backend
            prompt_detector: Predicate telling whether the pane waits for input
        """
        if not title or not title.strip():
            raise ValueError("session title cannot be empty")

        self.title = title
        self.path = str(Path(path).expanduser().absolute())
        self.program = program
        self.auto_approve = auto_approve
        self.in_place = in_place
        self.branch_prefix = branch_prefix
        self.worktrees_dir = worktrees_dir or get_config_dir() / WORKTREES_DIR_NAME
        self.status = SessionStatus.LOADING
        self.created_at = datetime.now()
        self.updated_at = self.created_at
        self.width = 0
        self.height = 0
        self.last_content_hash: Optional[bytes] = None
        self.last_prompt_flag = False
        self.diff_stats = DiffStats()

        self._tmux = tmux
        self._git_service_factory = git_service_factory
        self._terminal_factory = terminal_factory
        self._prompt_detector = resolve_detector(program, prompt_detector)
        self._worktree: Optional[GitWorktree] = None
        self._terminal: Optional[TerminalBackend] = None
        self._started = False
        self._lock = threading.RLock()
        self._update_lock = threading.Lock()

    def __repr__(self) -> str:
        return f"AgentSession(title={self.title!r}, status={self.status.value})"

    @property
    def worktree(self) -> Optional[GitWorktree]:
        return self._worktree

    @property
    def terminal(self) -> Optional[TerminalBackend]:
        return self._terminal

    @property
    def started(self) -> bool:
        return self._started

    @property
    def branch(self) -> str:
        return self._worktree.branch_name if self._worktree else ""

    @property
    def work_dir(self) -> str:
        if self._worktree is not None:
            return str(self._worktree.worktree_path)
        return self.path

    def _touch(self) -> None:
        self.updated_at = datetime.now()

    def _new_terminal(self) -> TerminalBackend:
        return self._terminal_factory(self.title, tmux=self._tmux)

    def start(self) -> None:
        """Set up the workspace and start the program.

        On failure the workspace is torn down again and the error raised;
        the session stays unusable and should be discarded.

        Raises:
            InvalidStateError: If the session was already started
            ServiceError: If the worktree or tmux session cannot be created
        """
        with self._lock:
            if self._started or self.status != SessionStatus.LOADING:
                raise InvalidStateError(f"session '{self.title}' was already started")

            if not self.in_place:
                self._worktree = GitWorktree.create(
                    self.path,
                    self.title,
                    branch_prefix=self.branch_prefix,
                    worktrees_dir=self.worktrees_dir,
                    git_service_factory=self._git_service_factory,
                )
                self._worktree.setup()

            terminal = self._new_terminal()
            try:
                terminal.start(self.program, self.work_dir)
            except ServiceError as e:
                self._discard_worktree(e, keep_branch=False)
                raise

            self._terminal = terminal
            self._started = True
            self.status = SessionStatus.RUNNING
            self._touch()
            logger.info(f"Session '{self.title}' running in {self.work_dir}")

    def _discard_worktree(self, error: Exception, keep_branch: bool) -> None:
        if self._worktree is None or not self._worktree.is_active:
            return
        try:
            self._worktree.teardown(keep_branch=keep_branch)
        except ServiceError as cleanup_error:
            error.args = (f"{error} (cleanup error: {cleanup_error})",)

    def pause(self) -> None:
        """Commit the work, stop the program and remove the worktree.

        The branch is kept so :meth:`resume` can pick up where this left off.

        Raises:
            UnsupportedOperationError: For in-place sessions
            InvalidStateError: If not running or currently attached
            PartialCleanupError: If stopping or removing the worktree failed;
                the session is paused regardless
        """
        with self._lock:
            if self.in_place:
                raise UnsupportedOperationError("pausing is not supported for in-place sessions")
            if self.status != SessionStatus.RUNNING:
                raise InvalidStateError(f"cannot pause session '{self.title}' in state {self.status.value}")
            if self._terminal is not None and self._terminal.is_attached:
                raise InvalidStateError(f"detach from '{self.title}' before pausing it")

            message = PAUSE_COMMIT_TEMPLATE.format(
                title=self.title, timestamp=datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            )
            self._worktree.commit(message)

            errors: list[Exception] = []
            if self._terminal is not None:
                try:
                    self._terminal.close()
                except ServiceError as e:
                    errors.append(e)
                self._terminal = None
            try:
                self._worktree.teardown(keep_branch=True)
            except ServiceError as e:
                errors.append(e)

            self.status = SessionStatus.PAUSED
            self._touch()
            logger.info(f"Session '{self.title}' paused on branch {self.branch}")
            PartialCleanupError.raise_for(errors, f"errors pausing session '{self.title}'")

    def resume(self) -> None:
        """Recreate the worktree from the preserved branch and restart.

        Raises:
            InvalidStateError: If not paused
            ServiceError: If the worktree or tmux session cannot be created;
                the session stays paused
        """
        with self._lock:
            if self.status != SessionStatus.PAUSED:
                raise InvalidStateError(f"cannot resume session '{self.title}' in state {self.status.value}")

            self._worktree.setup(resume=True)
            terminal = self._new_terminal()
            try:
                terminal.start(self.program, self.work_dir)
            except ServiceError as e:
                self._discard_worktree(e, keep_branch=True)
                raise

            self._terminal = terminal
            self.status = SessionStatus.RUNNING
            self._touch()
            logger.info(f"Session '{self.title}' resumed in {self.work_dir}")

    def kill(self) -> None:
        """Release every resource of the session. Idempotent.

        An attached terminal is detached first. A session whose start failed
        only cleans up its own worktree.

        Raises:
            PartialCleanupError: Aggregate of the cleanup steps that failed;
                the session is KILLED regardless
        """
        with self._lock:
            if self.status == SessionStatus.KILLED:
                return

            errors: list[Exception] = []
            terminal = self._terminal
            if terminal is None and self._started:
                # Paused, or reloaded after its PTY was lost; the tmux name is still ours.
                terminal = self._new_terminal()

            pane_pids: list[int] = []
            if terminal is not None and self.in_place:
                try:
                    pane_pids = terminal.pane_pids()
                except ServiceError as e:
                    logger.debug(f"no pane processes to terminate for '{self.title}': {e}")

            # Never started: a tmux session with this name belongs to someone else.
            if terminal is not None:
                try:
                    terminal.close()
                except ServiceError as e:
                    errors.append(e)
            self._terminal = None

            if self.in_place:
                self._terminate(pane_pids)
            elif self._worktree is not None and (self._worktree.is_active or self.status != SessionStatus.LOADING):
                try:
                    self._worktree.teardown(keep_branch=False)
                except ServiceError as e:
                    errors.append(e)

            self.status = SessionStatus.KILLED
            self._touch()
            logger.info(f"Session '{self.title}' killed")
            PartialCleanupError.raise_for(errors, f"errors killing session '{self.title}'")

    @staticmethod
    def _terminate(pids: list[int]) -> None:
        for pid in pids:
            try:
                os.kill(pid, signal.SIGTERM)
            except ProcessLookupError:
                continue
            except PermissionError as e:
                logger.warning(f"could not terminate process {pid}: {e}")

    def restore(self) -> None:
        """Reconnect a RUNNING session loaded from storage to its tmux session.

        Raises:
            InvalidStateError: If the session is not running
            NotFoundError: If the tmux session is gone
        """
        with self._lock:
            if self.status != SessionStatus.RUNNING:
                raise InvalidStateError(f"cannot restore session '{self.title}' in state {self.status.value}")
            terminal = self._terminal or self._new_terminal()
            terminal.restore()
            self._terminal = terminal
            if self.width and self.height:
                self.resize(self.width, self.height)

    def _require_terminal(self) -> TerminalBackend:
        if self.status != SessionStatus.RUNNING or self._terminal is None:
            raise InvalidStateError(f"session '{self.title}' is not running")
        return self._terminal

    def attach(self) -> DetachSignal:
        """Attach the local terminal; see :meth:`TerminalBackend.attach`."""
        return self._require_terminal().attach()

    def detach(self) -> None:
        self._require_terminal().detach()

    def snapshot(self) -> str:
        """Current pane content, or an empty string when not running."""
        if self.status != SessionStatus.RUNNING or self._terminal is None:
            return ""
        return self._terminal.snapshot()

    def capture_history(self, start: str = "-", end: str = "-") -> str:
        return self._require_terminal().capture_history(start=start, end=end)

    def resize(self, cols: int, rows: int) -> None:
        """Resize the detached pane, e.g. to fit a preview window."""
        self._require_terminal().resize(cols, rows)
        self.width, self.height = cols, rows

    def send_keys(self, text: str) -> None:
        """Type into the session without attaching.

        Raises:
            NoActiveSessionError: If there is no live PTY
        """
        if self._terminal is None:
            raise NoActiveSessionError(f"session '{self.title}' has no active terminal")
        self._terminal.send_keys(text)

    def tap_enter(self) -> None:
        self.send_keys("\r")

    def check_for_updates(self) -> tuple[bool, bool]:
        """Compare the pane with the previous poll.

        Only reads the pane; safe to call frequently and concurrently with
        an attachment.

        Returns:
            Tuple of (content_changed, prompt_detected)
        """
        if self.status != SessionStatus.RUNNING or self._terminal is None:
            return False, False
        try:
            content = self._terminal.snapshot()
        except ServiceError as e:
            logger.error(f"error capturing pane content of '{self.title}': {e}")
            return False, False

        digest = hashlib.sha256(content.encode("utf-8", "surrogateescape")).digest()
        with self._update_lock:
            if digest == self.last_content_hash:
                return False, self.last_prompt_flag
            self.last_content_hash = digest
            self.last_prompt_flag = self._prompt_detector(tail(content))
            self._touch()
            return True, self.last_prompt_flag

    def compute_diff_stats(self) -> DiffStats:
        """Refresh and return the change statistics of the worktree.

        In-place and paused sessions report the last known statistics.
        """
        if self.in_place or self.status != SessionStatus.RUNNING or self._worktree is None:
            return self.diff_stats
        try:
            self.diff_stats = self._worktree.compute_change_stats()
        except NotFoundError as e:
            logger.warning(f"cannot compute diff for '{self.title}': {e}")
        return self.diff_stats

    def to_data(self) -> SessionData:
        """Serializable record of the session."""
        worktree = None
        if self._worktree is not None:
            worktree = WorktreeData(
                repo_path=str(self._worktree.repo_path),
                worktree_path=str(self._worktree.worktree_path),
                session_name=self._worktree.session_name,
                branch_name=self._worktree.branch_name,
                base_commit_sha=self._worktree.base_commit_sha,
            )
        return SessionData(
            title=self.title,
            path=self.path,
            program=self.program,
            created_at=self.created_at,
            updated_at=self.updated_at,
            status=self.status,
            branch=self.branch,
            auto_approve=self.auto_approve,
            in_place=self.in_place,
            width=self.width,
            height=self.height,
            worktree=worktree,
            diff_stats=DiffStatsData(
                added=self.diff_stats.added,
                removed=self.diff_stats.removed,
                content=self.diff_stats.content,
            ),
        )

    @classmethod
    def from_data(cls, data: SessionData, **kwargs) -> "AgentSession":
        """Rebuild a session from its record without touching tmux.

        Call :meth:`restore` afterwards to reconnect a running session.
        """
        session = cls(
            title=data.title,
            path=data.path,
            program=data.program,
            auto_approve=data.auto_approve,
            in_place=data.in_place,
            **kwargs,
        )
        session.status = data.status
        session.created_at = data.created_at
        session.updated_at = data.updated_at
        session.width = data.width
        session.height = data.height
        session.diff_stats = DiffStats(
            added=data.diff_stats.added,
            removed=data.diff_stats.removed,
            content=data.diff_stats.content,
        )
        session._started = data.status != SessionStatus.LOADING
        if data.worktree is not None:
            session._worktree = GitWorktree(
                repo_path=Path(data.worktree.repo_path),
                session_name=data.worktree.session_name,
                branch_name=data.worktree.branch_name,
                worktree_path=Path(data.worktree.worktree_path),
                base_commit_sha=data.worktree.base_commit_sha,
                git_service_factory=session._git_service_factory,
                active=data.status == SessionStatus.RUNNING,
            )
        return session
