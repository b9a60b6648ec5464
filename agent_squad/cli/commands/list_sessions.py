"""List sessions command."""

import click

from ..helpers import format_session_table, get_registry


@click.command()
@click.option('--status', type=click.Choice(['running', 'paused']), help='Filter by session status')
def list(status):
    """List all sessions"""
    registry, _ = get_registry()
    prompts = registry.poll_all()
    sessions = registry.list()
    if status:
        sessions = [s for s in sessions if s.status.value == status]

    if not sessions:
        click.echo("No sessions found")
    else:
        click.echo(format_session_table(sessions, prompts))
    registry.shutdown()
