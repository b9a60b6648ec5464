"""Utilities for Agent Squad."""

from .config_manager import ConfigManager
from .log import Every, setup_logging
from .session_store import SessionStore

__all__ = [
    'ConfigManager',
    'Every',
    'SessionStore',
    'setup_logging',
]
