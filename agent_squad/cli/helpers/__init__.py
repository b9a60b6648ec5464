"""CLI helper functions for Agent Squad.

Shared by the commands so they all build the registry the same way and
report errors consistently.
"""

import sys
from datetime import datetime
from typing import List, Optional, Tuple

import click
from tabulate import tabulate

from agent_squad.core.registry import SessionRegistry
from agent_squad.core.session import AgentSession
from agent_squad.models.config import AppConfig
from agent_squad.models.session import SessionStatus
from agent_squad.services.exceptions import ServiceError
from agent_squad.utils.config_manager import ConfigManager
from agent_squad.utils.session_store import SessionStore

STATUS_COLORS = {
    SessionStatus.LOADING: 'blue',
    SessionStatus.RUNNING: 'green',
    SessionStatus.PAUSED: 'yellow',
    SessionStatus.KILLED: 'red',
}


def get_registry() -> Tuple[SessionRegistry, AppConfig]:
    """Build the session registry from the user configuration and load it.

    Exits with an error if the stored sessions cannot be read.

    Returns:
        Tuple of (registry, config)
    """
    config_manager = ConfigManager()
    config = config_manager.load_config()
    registry = SessionRegistry(
        store=SessionStore(config_manager.data_dir),
        branch_prefix=config.branch_prefix,
        worktrees_dir=config_manager.worktrees_dir,
    )
    try:
        registry.load()
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        click.echo("Run 'agent-squad reset' to discard the stored sessions.", err=True)
        sys.exit(1)
    return registry, config


def get_session(registry: SessionRegistry, title: str) -> AgentSession:
    """Look up a session, exit with an error if there is none."""
    try:
        return registry.get(title)
    except ServiceError as e:
        fail(registry, e)


def fail(registry: Optional[SessionRegistry], error: Exception) -> None:
    """Report ``error``, save what is left and exit."""
    click.echo(f"Error: {error}", err=True)
    if registry is not None:
        registry.shutdown()
    sys.exit(1)


def format_age(timestamp: datetime) -> str:
    """Human friendly age like '5m ago'."""
    seconds = int((datetime.now() - timestamp).total_seconds())
    if seconds < 60:
        return f"{max(seconds, 0)}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    return f"{seconds // 86400}d ago"


def format_session_table(sessions: List[AgentSession], prompts: Optional[dict] = None) -> str:
    """Format sessions as a table for display.

    Args:
        sessions: Sessions to show
        prompts: Optional mapping of title to (changed, prompt_detected)

    Returns:
        Formatted table string
    """
    prompts = prompts or {}
    rows = []
    for session in sessions:
        status = session.status.value.upper()
        if prompts.get(session.title, (False, False))[1]:
            status += " (waiting)"
        stats = session.diff_stats
        rows.append([
            session.title,
            click.style(status, fg=STATUS_COLORS[session.status]),
            session.branch or "-",
            session.program,
            f"+{stats.added} -{stats.removed}",
            format_age(session.updated_at),
        ])

    headers = ["TITLE", "STATUS", "BRANCH", "PROGRAM", "DIFF", "UPDATED"]
    return tabulate(rows, headers=headers, tablefmt="simple")
