"""Models for Agent Squad."""

from .config import AppConfig
from .session import DiffStatsData, SessionData, SessionStatus, WorktreeData

__all__ = [
    'AppConfig',
    'DiffStatsData',
    'SessionData',
    'SessionStatus',
    'WorktreeData',
]
