"""Reset command for Agent Squad."""

import shutil

import click

from ...core.constants import TMUX_SESSION_PREFIX
from ...services.exceptions import ServiceError
from ...services.git_service import GitService
from ...services.tmux_service import TmuxService
from ...utils.config_manager import ConfigManager
from ...utils.session_store import SessionStore


@click.command()
@click.confirmation_option(prompt='This kills every session and deletes all worktrees. Continue?')
def reset():
    """Kill all sessions, delete their worktrees and forget them"""
    config_manager = ConfigManager()
    store = SessionStore(config_manager.data_dir)

    try:
        records = store.load_all()
    except ValueError as e:
        click.echo(f"Warning: {e}", err=True)
        records = []

    try:
        killed = TmuxService().cleanup_sessions(TMUX_SESSION_PREFIX)
        click.echo(f"Killed {len(killed)} tmux session(s)")
    except ServiceError as e:
        click.echo(f"Warning: could not clean up tmux sessions: {e}", err=True)

    worktrees_dir = config_manager.worktrees_dir
    if worktrees_dir.exists():
        shutil.rmtree(worktrees_dir)
        click.echo(f"Removed {worktrees_dir}")

    repos = {record.worktree.repo_path for record in records if record.worktree}
    for repo in sorted(repos):
        try:
            GitService(repo).prune_worktrees()
        except ServiceError as e:
            click.echo(f"Warning: could not prune worktrees of {repo}: {e}", err=True)

    store.delete_all()
    click.echo("✅ All sessions reset")
