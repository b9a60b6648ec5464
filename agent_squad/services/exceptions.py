"""Custom exceptions for service layer."""


class ServiceError(Exception):
    """Base exception for all service-related errors."""

    pass


class GitServiceError(ServiceError):
    """Exception raised for Git service operations."""

    pass


class TmuxServiceError(ServiceError):
    """Exception raised for tmux service operations."""

    pass


class ConflictError(ServiceError):
    """Exception raised when a resource already exists."""

    pass


class NotFoundError(ServiceError):
    """Exception raised when a session, worktree or branch is gone."""

    pass


class BranchNotFoundError(GitServiceError, NotFoundError):
    """Exception raised when a Git branch is not found."""

    pass


class NoActiveSessionError(NotFoundError):
    """Exception raised when a terminal has no live PTY to talk to."""

    pass


class SessionTimeoutError(ServiceError):
    """Exception raised when an OS-level operation did not finish in time."""

    pass


class TerminalStateError(ServiceError):
    """Exception raised when the caller's terminal mode could not be restored.

    The terminal is most likely still in raw mode when this is raised, so
    callers should tell the user loudly (e.g. suggest running ``reset``).
    """

    pass


class UnsupportedOperationError(ServiceError):
    """Exception raised when an operation makes no sense in the current mode."""

    pass


class InvalidStateError(ServiceError):
    """Exception raised for a lifecycle transition from the wrong state."""

    pass


class PartialCleanupError(ServiceError):
    """Exception aggregating every failure from a multi-step teardown."""

    def __init__(self, errors: list[Exception], message: str = "multiple errors occurred during cleanup"):
        self.errors = list(errors)
        lines = [message + ":"]
        lines.extend(f"  - {err}" for err in self.errors)
        super().__init__("\n".join(lines))

    @classmethod
    def raise_for(cls, errors: list[Exception], message: str = "multiple errors occurred during cleanup") -> None:
        """Raise the aggregate for ``errors``; do nothing if the list is empty.

        A single error is re-raised as is so callers can still match its type.
        """
        if not errors:
            return
        if len(errors) == 1:
            raise errors[0]
        raise cls(errors, message)
