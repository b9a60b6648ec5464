"""Service layer for abstracting tmux and Git operations."""

from .git_service import GitService
from .tmux_service import TmuxService
from .worktree import DiffStats, GitWorktree, sanitize_branch_name
from .exceptions import (
    ServiceError,
    GitServiceError,
    TmuxServiceError,
    ConflictError,
    NotFoundError,
    BranchNotFoundError,
    NoActiveSessionError,
    SessionTimeoutError,
    TerminalStateError,
    UnsupportedOperationError,
    InvalidStateError,
    PartialCleanupError,
)

__all__ = [
    "GitService",
    "TmuxService",
    "GitWorktree",
    "DiffStats",
    "sanitize_branch_name",
    "ServiceError",
    "GitServiceError",
    "TmuxServiceError",
    "ConflictError",
    "NotFoundError",
    "BranchNotFoundError",
    "NoActiveSessionError",
    "SessionTimeoutError",
    "TerminalStateError",
    "UnsupportedOperationError",
    "InvalidStateError",
    "PartialCleanupError",
]
