"""Git worktree isolation for a single session."""

import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .exceptions import (
    BranchNotFoundError,
    ConflictError,
    GitServiceError,
    NotFoundError,
    PartialCleanupError,
)
from .git_service import GitService

logger = logging.getLogger(__name__)

_UNSAFE_BRANCH_CHARS = re.compile(r"[^a-z0-9\-_/.]+")
_REPEATED_DASHES = re.compile(r"-+")


def sanitize_branch_name(name: str) -> str:
    """Turn an arbitrary title into a git-friendly branch name fragment."""
    name = name.lower().replace(" ", "-")
    name = _UNSAFE_BRANCH_CHARS.sub("", name)
    name = _REPEATED_DASHES.sub("-", name)
    return name.strip("-/")


@dataclass
class DiffStats:
    """Line statistics of a worktree compared to its branch point."""

    added: int = 0
    removed: int = 0
    content: str = ""

    def is_empty(self) -> bool:
        return self.added == 0 and self.removed == 0 and not self.content


class GitWorktree:
    """Branch plus working directory dedicated to one session.

    The worktree is always removed before its branch, so git never ends up
    with a branch whose worktree metadata points at a deleted directory.
    """

    def __init__(
        self,
        repo_path: Path,
        session_name: str,
        branch_name: str,
        worktree_path: Path,
        base_commit_sha: Optional[str] = None,
        git_service_factory=GitService,
        active: bool = False,
    ):
        """Initialize a worktree handle without touching the filesystem.

        Args:
            repo_path: Root of the origin repository
            session_name: Title of the owning session
            branch_name: Branch checked out in the worktree
            worktree_path: Directory the worktree lives in
            base_commit_sha: Commit the branch was created from, once known
            git_service_factory: Callable building a GitService for a path
            active: Whether the worktree directory already exists (restored sessions)
        """
        self.repo_path = Path(repo_path)
        self.session_name = session_name
        self.branch_name = branch_name
        self.worktree_path = Path(worktree_path)
        self.base_commit_sha = base_commit_sha
        self._git_service_factory = git_service_factory
        self._active = active

    @classmethod
    def create(
        cls,
        repo_path: Path,
        session_name: str,
        branch_prefix: str,
        worktrees_dir: Path,
        **kwargs,
    ) -> "GitWorktree":
        """Build a handle with a deterministic branch and a fresh, unique path."""
        sanitized = sanitize_branch_name(session_name)
        # Branch names may contain "/", directory names must not.
        dir_name = sanitized.replace("/", "-") or "session"
        worktree_path = worktrees_dir / f"{dir_name}_{time.time_ns():x}"
        return cls(
            repo_path=Path(repo_path).expanduser().absolute(),
            session_name=session_name,
            branch_name=f"{branch_prefix}{sanitized}",
            worktree_path=worktree_path,
            **kwargs,
        )

    @property
    def repo_name(self) -> str:
        return self.repo_path.name

    @property
    def is_active(self) -> bool:
        """Whether this handle has a materialized worktree it is responsible for."""
        return self._active

    def _git(self) -> GitService:
        return self._git_service_factory(self.repo_path)

    def setup(self, resume: bool = False) -> None:
        """Create the branch (unless resuming) and materialize the worktree.

        Args:
            resume: Re-materialize the worktree from the preserved branch

        Raises:
            GitServiceError: If the repository path is not a repository root
            ConflictError: If the branch or path already exists, or setup already ran
            BranchNotFoundError: If resuming and the preserved branch is gone
        """
        if self._active:
            raise ConflictError(f"Worktree for '{self.session_name}' is already set up")

        git = self._git()
        if not git.is_repo_root():
            raise GitServiceError(f"{self.repo_path} is not the root of a git repository")

        if self.worktree_path.exists():
            raise ConflictError(f"Worktree path already exists: {self.worktree_path}")

        branch_exists = git.branch_exists_local(self.branch_name)
        self.worktree_path.parent.mkdir(parents=True, exist_ok=True)

        if resume:
            if not branch_exists:
                raise BranchNotFoundError(f"Branch '{self.branch_name}' no longer exists; cannot resume")
            git.add_worktree(self.worktree_path, self.branch_name)
            if not self.base_commit_sha:
                self.base_commit_sha = git.get_commit_hash(self.branch_name)
        else:
            if branch_exists:
                raise ConflictError(f"Branch '{self.branch_name}' already exists")
            self.base_commit_sha = git.get_commit_hash("HEAD")
            git.add_worktree(
                self.worktree_path, self.branch_name, new_branch=True, start_point=self.base_commit_sha
            )

        self._active = True
        logger.info(f"Worktree ready for '{self.session_name}' at {self.worktree_path}")

    def compute_change_stats(self) -> DiffStats:
        """Diff the worktree against the commit the branch was created from.

        Raises:
            NotFoundError: If the worktree directory no longer exists
            GitServiceError: If the base commit is unknown or git fails
        """
        if not self.worktree_path.is_dir():
            raise NotFoundError(f"Worktree no longer exists: {self.worktree_path}")
        if not self.base_commit_sha:
            raise GitServiceError("Base commit SHA not set")

        git = self._git()
        added, removed = git.diff_numstat(self.base_commit_sha, cwd=self.worktree_path)
        if added == 0 and removed == 0:
            return DiffStats()
        content = git.diff(self.base_commit_sha, cwd=self.worktree_path)
        return DiffStats(added=added, removed=removed, content=content)

    def commit(self, message: str) -> bool:
        """Stage and commit everything in the worktree; no-op when clean."""
        if not self.worktree_path.is_dir():
            raise NotFoundError(f"Worktree no longer exists: {self.worktree_path}")
        return self._git().commit_all_changes(message, cwd=self.worktree_path)

    def teardown(self, keep_branch: bool) -> None:
        """Remove the worktree and, unless ``keep_branch``, the branch.

        Every step is attempted even if an earlier one fails.

        Raises:
            PartialCleanupError: Aggregate of the steps that failed
        """
        errors: list[Exception] = []
        try:
            git = self._git()
        except GitServiceError as e:
            # Origin repository itself is gone; nothing left to clean up in git.
            self._active = False
            raise PartialCleanupError([e], f"failed to tear down worktree for '{self.session_name}'") from e

        if self.worktree_path.exists():
            try:
                git.remove_worktree(self.worktree_path)
            except GitServiceError as e:
                errors.append(e)
        else:
            logger.warning(f"Worktree {self.worktree_path} already removed, pruning metadata")
            try:
                git.prune_worktrees()
            except GitServiceError as e:
                errors.append(e)

        if not keep_branch:
            if errors:
                # Deleting the branch now would orphan the worktree metadata.
                errors.append(
                    GitServiceError(f"Kept branch '{self.branch_name}' because its worktree could not be removed")
                )
            elif git.branch_exists_local(self.branch_name):
                try:
                    git.delete_branch(self.branch_name, force=True)
                except GitServiceError as e:
                    errors.append(e)

        self._active = False
        if errors:
            raise PartialCleanupError(errors, f"failed to tear down worktree for '{self.session_name}'")
