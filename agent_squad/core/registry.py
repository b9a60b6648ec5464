"""Registry of the sessions managed by this process."""

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from ..models.session import SessionStatus
from ..services.exceptions import (
    ConflictError,
    NotFoundError,
    PartialCleanupError,
    ServiceError,
)
from ..services.git_service import GitService
from ..services.tmux_service import TmuxService
from ..utils.session_store import SessionStore
from .constants import DEFAULT_BRANCH_PREFIX
from .prompt import PromptDetector
from .session import AgentSession
from .terminal import DetachSignal, TerminalBackend

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Creates, looks up and persists sessions by title.

    Titles are unique within a registry. Every mutating operation saves the
    records of all sessions to the store afterwards.
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        branch_prefix: str = DEFAULT_BRANCH_PREFIX,
        worktrees_dir: Optional[Path] = None,
        tmux: Optional[TmuxService] = None,
        git_service_factory: Callable[[Path], GitService] = GitService,
        terminal_factory: Callable[..., TerminalBackend] = TerminalBackend,
        prompt_detector: Optional[PromptDetector] = None,
    ):
        self.store = store or SessionStore()
        self.tmux = tmux or TmuxService()
        self._session_kwargs = {
            "branch_prefix": branch_prefix,
            "worktrees_dir": worktrees_dir,
            "tmux": self.tmux,
            "git_service_factory": git_service_factory,
            "terminal_factory": terminal_factory,
            "prompt_detector": prompt_detector,
        }
        self._sessions: Dict[str, AgentSession] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, title: str) -> bool:
        return title in self._sessions

    def create(
        self,
        title: str,
        path: str,
        program: str,
        auto_approve: bool = False,
        in_place: bool = False,
    ) -> AgentSession:
        """Create and start a new session.

        Raises:
            ConflictError: If a session with this title already exists
            ServiceError: If the session could not be started; it is not added
        """
        with self._lock:
            if title in self._sessions:
                raise ConflictError(f"session '{title}' already exists")
            session = AgentSession(
                title=title,
                path=path,
                program=program,
                auto_approve=auto_approve,
                in_place=in_place,
                **self._session_kwargs,
            )
            session.start()
            self._sessions[title] = session
            self.save()
            return session

    def get(self, title: str) -> AgentSession:
        """Look up a session.

        Raises:
            NotFoundError: If no session has this title
        """
        try:
            return self._sessions[title]
        except KeyError:
            raise NotFoundError(f"session not found: {title}") from None

    def list(self) -> List[AgentSession]:
        """All sessions, oldest first."""
        with self._lock:
            return sorted(self._sessions.values(), key=lambda s: s.created_at)

    def pause(self, title: str) -> AgentSession:
        session = self.get(title)
        try:
            session.pause()
        finally:
            self.save()
        return session

    def resume(self, title: str) -> AgentSession:
        session = self.get(title)
        try:
            session.resume()
        finally:
            self.save()
        return session

    def kill(self, title: str) -> None:
        """Kill a session and forget it. Unknown titles are ignored.

        The session is removed even when cleanup partially fails; the
        aggregated error is raised afterwards.
        """
        with self._lock:
            session = self._sessions.pop(title, None)
        errors: list[Exception] = []
        if session is not None:
            try:
                session.kill()
            except PartialCleanupError as e:
                errors.extend(e.errors)
            except ServiceError as e:
                errors.append(e)
        try:
            self.store.delete(title)
        except NotFoundError:
            logger.debug(f"session '{title}' was not stored")
        PartialCleanupError.raise_for(errors, f"errors killing session '{title}'")

    def attach(self, title: str) -> DetachSignal:
        return self.get(title).attach()

    def resize(self, title: str, cols: int, rows: int) -> None:
        self.get(title).resize(cols, rows)

    def send_keys(self, title: str, text: str) -> None:
        self.get(title).send_keys(text)

    def check_for_updates(self, title: str) -> Tuple[bool, bool]:
        return self.get(title).check_for_updates()

    def poll_all(self) -> Dict[str, Tuple[bool, bool]]:
        """Check every running session for new content.

        Sessions in auto-approve mode get their pending prompt confirmed.
        """
        results = {}
        for session in self.list():
            if session.status != SessionStatus.RUNNING:
                continue
            changed, prompt = session.check_for_updates()
            results[session.title] = (changed, prompt)
            if prompt and session.auto_approve:
                try:
                    session.tap_enter()
                    logger.info(f"Auto-approved prompt in '{session.title}'")
                except ServiceError as e:
                    logger.error(f"error auto-approving '{session.title}': {e}")
        return results

    def load(self) -> List[AgentSession]:
        """Load stored sessions and reconnect the running ones.

        A running session whose tmux session disappeared is still loaded
        and can be killed to clean up its worktree and branch.
        """
        loaded = []
        with self._lock:
            for data in self.store.load_all():
                if data.title in self._sessions:
                    continue
                session = AgentSession.from_data(data, **self._session_kwargs)
                if session.status == SessionStatus.RUNNING:
                    try:
                        session.restore()
                    except (ServiceError, OSError) as e:
                        logger.warning(f"could not reconnect session '{data.title}': {e}")
                self._sessions[data.title] = session
                loaded.append(session)
        logger.debug(f"Loaded {len(loaded)} sessions")
        return loaded

    def save(self) -> None:
        """Persist every session that is not killed."""
        with self._lock:
            records = [
                session.to_data() for session in self.list() if session.status != SessionStatus.KILLED
            ]
            self.store.save_all(records)

    def shutdown(self) -> None:
        """Save state and release local PTYs; tmux sessions keep running."""
        with self._lock:
            self.save()
            for session in self._sessions.values():
                terminal = session.terminal
                if terminal is None:
                    continue
                try:
                    terminal.disconnect()
                except OSError as e:
                    logger.warning(f"error disconnecting '{session.title}': {e}")
