"""Agent Squad - Run several coding agents side by side in isolated git worktrees."""

__version__ = "0.1.0"

# Export main CLI for convenience
from .cli.main import cli

__all__ = ['cli']
