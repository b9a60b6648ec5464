"""Session models for persisted agent sessions."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class SessionStatus(Enum):
    """Lifecycle states of an agent session."""
    LOADING = "loading"
    RUNNING = "running"
    PAUSED = "paused"
    KILLED = "killed"


@dataclass
class WorktreeData:
    """Serializable form of a session's git worktree."""

    repo_path: str
    worktree_path: str
    session_name: str
    branch_name: str
    base_commit_sha: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert worktree data to dictionary."""
        return {
            'repo_path': self.repo_path,
            'worktree_path': self.worktree_path,
            'session_name': self.session_name,
            'branch_name': self.branch_name,
            'base_commit_sha': self.base_commit_sha,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'WorktreeData':
        """Create worktree data from dictionary."""
        return cls(
            repo_path=data['repo_path'],
            worktree_path=data['worktree_path'],
            session_name=data['session_name'],
            branch_name=data['branch_name'],
            base_commit_sha=data.get('base_commit_sha'),
        )


@dataclass
class DiffStatsData:
    """Last computed change statistics."""

    added: int = 0
    removed: int = 0
    content: str = ""

    def to_dict(self) -> dict:
        return {'added': self.added, 'removed': self.removed, 'content': self.content}

    @classmethod
    def from_dict(cls, data: dict) -> 'DiffStatsData':
        return cls(
            added=data.get('added', 0),
            removed=data.get('removed', 0),
            content=data.get('content', ""),
        )


@dataclass
class SessionData:
    """Represents a persisted agent session."""

    title: str
    path: str
    program: str
    created_at: datetime
    updated_at: datetime
    status: SessionStatus = SessionStatus.LOADING
    branch: str = ""
    auto_approve: bool = False
    in_place: bool = False
    width: int = 0
    height: int = 0
    worktree: Optional[WorktreeData] = None
    diff_stats: DiffStatsData = field(default_factory=DiffStatsData)

    def to_dict(self) -> dict:
        """Convert session to dictionary."""
        return {
            'title': self.title,
            'path': self.path,
            'program': self.program,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'status': self.status.value,
            'branch': self.branch,
            'auto_approve': self.auto_approve,
            'in_place': self.in_place,
            'width': self.width,
            'height': self.height,
            'worktree': self.worktree.to_dict() if self.worktree else None,
            'diff_stats': self.diff_stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'SessionData':
        """Create session from dictionary."""
        return cls(
            title=data['title'],
            path=data['path'],
            program=data['program'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            status=SessionStatus(data.get('status', SessionStatus.LOADING.value)),
            branch=data.get('branch', ""),
            auto_approve=data.get('auto_approve', False),
            in_place=data.get('in_place', False),
            width=data.get('width', 0),
            height=data.get('height', 0),
            worktree=WorktreeData.from_dict(data['worktree']) if data.get('worktree') else None,
            diff_stats=DiffStatsData.from_dict(data.get('diff_stats') or {}),
        )
