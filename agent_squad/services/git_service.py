"""Git service for abstracting Git operations."""

import logging
import subprocess
from pathlib import Path
from typing import Optional

from .exceptions import BranchNotFoundError, GitServiceError

logger = logging.getLogger(__name__)


class GitService:
    """Service for Git operations with clean abstractions."""

    def __init__(self, repo_path: Optional[Path] = None):
        """Initialize Git service.

        Args:
            repo_path: Path to the git repository (defaults to current directory)
        """
        self.repo_path = Path(repo_path) if repo_path else Path.cwd()
        if not self._is_git_repo():
            raise GitServiceError(f"{self.repo_path} is not a git repository")

    def _is_git_repo(self) -> bool:
        """Check if the current path is a git repository."""
        if not self.repo_path.is_dir():
            return False
        try:
            self._run_git_command(["rev-parse", "--git-dir"])
            return True
        except GitServiceError:
            return False

    def _run_git_command(
        self,
        args: list[str],
        check: bool = True,
        capture_output: bool = True,
        cwd: Optional[Path] = None,
    ) -> subprocess.CompletedProcess:
        """Run a git command with proper error handling.

        Args:
            args: Git command arguments
            check: Check return code
            capture_output: Capture stdout and stderr
            cwd: Directory to run in (defaults to the repository path)

        Returns:
            Completed process result

        Raises:
            GitServiceError: If command fails
        """
        cmd = ["git"] + args
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd or self.repo_path,
                check=check,
                capture_output=capture_output,
                text=True,
            )
            return result
        except subprocess.CalledProcessError as e:
            error_msg = e.stderr.strip() if e.stderr else str(e)
            raise GitServiceError(f"Git command failed: {error_msg}") from e
        except Exception as e:
            raise GitServiceError(f"Unexpected error running git command: {e}") from e

    def get_toplevel(self) -> Path:
        """Get the root of the working tree containing the repository path."""
        result = self._run_git_command(["rev-parse", "--show-toplevel"])
        return Path(result.stdout.strip()).resolve()

    def is_repo_root(self) -> bool:
        """Check whether the repository path is the root of its working tree."""
        try:
            return self.get_toplevel() == self.repo_path.resolve()
        except GitServiceError:
            return False

    def commit_all_changes(self, message: str, cwd: Optional[Path] = None) -> bool:
        """Stage all changes and commit.

        Args:
            message: Commit message
            cwd: Working tree to commit in (defaults to the repository path)

        Returns:
            True if a commit was created, False if there was nothing to commit

        Raises:
            GitServiceError: If commit fails
        """
        if not self.has_uncommitted_changes(cwd=cwd):
            logger.info("No changes to commit")
            return False

        self._run_git_command(["add", "-A"], cwd=cwd)
        # Hooks belong to the user's own workflow, not to automatic snapshots.
        self._run_git_command(["commit", "-m", message, "--no-verify"], cwd=cwd)
        logger.info(f"Committed changes: {message}")
        return True

    def has_uncommitted_changes(self, cwd: Optional[Path] = None) -> bool:
        """Check if the working tree has staged, unstaged or untracked changes."""
        result = self._run_git_command(["status", "--porcelain"], cwd=cwd)
        return bool(result.stdout.strip())

    def branch_exists_local(self, branch_name: str) -> bool:
        """Check if a branch exists locally.

        Args:
            branch_name: Name of the branch

        Returns:
            True if branch exists locally
        """
        try:
            result = self._run_git_command(
                ["branch", "--list", branch_name], check=False
            )
            return bool(result.stdout.strip())
        except GitServiceError:
            return False

    def delete_branch(self, branch_name: str, force: bool = False) -> None:
        """Delete a local branch.

        Args:
            branch_name: Name of the branch
            force: Force delete even if not merged

        Raises:
            BranchNotFoundError: If branch doesn't exist
            GitServiceError: If deletion fails
        """
        if not self.branch_exists_local(branch_name):
            raise BranchNotFoundError(f"Branch '{branch_name}' not found locally")

        args = ["branch", "-d" if not force else "-D", branch_name]
        self._run_git_command(args)
        logger.info(f"Deleted branch: {branch_name}")

    def get_commit_hash(self, ref: str = "HEAD") -> str:
        """Get the commit hash of a reference.

        Args:
            ref: Git reference (default: HEAD)

        Returns:
            Commit hash

        Raises:
            GitServiceError: If unable to get hash
        """
        result = self._run_git_command(["rev-parse", ref])
        return result.stdout.strip()

    def add_worktree(
        self,
        worktree_path: Path,
        branch_name: str,
        new_branch: bool = False,
        start_point: str = "HEAD",
    ) -> None:
        """Materialize a worktree for a branch.

        Args:
            worktree_path: Directory to create the worktree in
            branch_name: Branch to check out in the worktree
            new_branch: Create the branch at ``start_point`` first
            start_point: Commit the new branch starts from

        Raises:
            GitServiceError: If git refuses to create the worktree
        """
        args = ["worktree", "add"]
        if new_branch:
            args.extend(["-b", branch_name, str(worktree_path), start_point])
        else:
            args.extend([str(worktree_path), branch_name])
        self._run_git_command(args)
        logger.info(f"Created worktree {worktree_path} on branch {branch_name}")

    def remove_worktree(self, worktree_path: Path, force: bool = True) -> None:
        """Remove a worktree directory and its administrative files."""
        args = ["worktree", "remove"]
        if force:
            args.append("-f")
        args.append(str(worktree_path))
        self._run_git_command(args)
        logger.info(f"Removed worktree: {worktree_path}")

    def prune_worktrees(self) -> None:
        """Drop metadata of worktrees whose directories no longer exist."""
        self._run_git_command(["worktree", "prune"])

    def diff_numstat(self, base: str, cwd: Optional[Path] = None) -> tuple[int, int]:
        """Count added and removed lines between ``base`` and the working tree.

        Untracked files are marked intent-to-add first so new files count too.

        Returns:
            Tuple of (added, removed)
        """
        self._run_git_command(["add", "-N", "."], cwd=cwd)
        result = self._run_git_command(["diff", "--numstat", base], cwd=cwd)

        added = removed = 0
        for line in result.stdout.splitlines():
            parts = line.split("\t")
            if len(parts) < 3:
                continue
            # Binary files report "-" for both columns
            if parts[0].isdigit():
                added += int(parts[0])
            if parts[1].isdigit():
                removed += int(parts[1])
        return added, removed

    def diff(self, base: str, cwd: Optional[Path] = None) -> str:
        """Get the full unified diff between ``base`` and the working tree."""
        result = self._run_git_command(["diff", base], cwd=cwd)
        return result.stdout
