"""Pause, resume and kill commands."""

import click

from ...models.session import SessionStatus
from ...services.exceptions import ServiceError
from ..helpers import fail, get_registry, get_session


@click.command()
@click.argument('title')
def pause(title):
    """Commit the work, stop the agent and remove its worktree"""
    registry, _ = get_registry()
    session = get_session(registry, title)
    try:
        registry.pause(title)
    except ServiceError as e:
        if session.status != SessionStatus.PAUSED:
            fail(registry, e)
        click.echo(f"Warning: session paused with errors:\n{e}", err=True)
    registry.shutdown()
    click.echo(f"⏸  Session '{title}' paused, work kept on branch {session.branch}")


@click.command()
@click.argument('title')
def resume(title):
    """Recreate the worktree of a paused session and restart the agent"""
    registry, _ = get_registry()
    get_session(registry, title)
    try:
        session = registry.resume(title)
    except ServiceError as e:
        fail(registry, e)
    registry.shutdown()
    click.echo(f"▶  Session '{title}' resumed in {session.work_dir}")


@click.command()
@click.argument('title')
@click.confirmation_option(prompt='Are you sure you want to kill this session? Its branch will be deleted.')
def kill(title):
    """Kill a session and delete its worktree and branch"""
    registry, _ = get_registry()
    get_session(registry, title)
    try:
        registry.kill(title)
    except ServiceError as e:
        # The session is forgotten regardless; only report what was left behind.
        click.echo(f"Warning: session removed, but cleanup failed:\n{e}", err=True)
        registry.shutdown()
        raise SystemExit(1)
    registry.shutdown()
    click.echo(f"✅ Session '{title}' killed")
