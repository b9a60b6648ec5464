"""Inspect a session without attaching."""

import click
from rich.console import Console
from rich.syntax import Syntax

from ...services.exceptions import ServiceError
from ..helpers import fail, get_registry, get_session


@click.command()
@click.argument('title')
@click.option('--history', is_flag=True, help='Include the scrollback history')
@click.option('--width', type=click.IntRange(min=1), help='Resize the pane before capturing')
@click.option('--height', type=click.IntRange(min=1), help='Resize the pane before capturing')
def preview(title, history, width, height):
    """Print the current screen of a session"""
    registry, _ = get_registry()
    session = get_session(registry, title)
    try:
        if width and height:
            session.resize(width, height)
        content = session.capture_history("-", "-") if history else session.snapshot()
    except (ServiceError, OSError) as e:
        fail(registry, e)
    registry.shutdown()

    if not content:
        click.echo(f"Session '{title}' is {session.status.value}, nothing to show")
        return
    click.echo(content)


@click.command()
@click.argument('title')
@click.option('--stat', is_flag=True, help='Only show the line counts')
def diff(title, stat):
    """Show the changes a session made since it started"""
    console = Console()
    registry, _ = get_registry()
    session = get_session(registry, title)
    try:
        stats = session.compute_diff_stats()
    except ServiceError as e:
        fail(registry, e)
    registry.shutdown()

    console.print(f"[green]+{stats.added}[/green] [red]-{stats.removed}[/red] {session.branch or session.path}")
    if stat or not stats.content:
        return
    console.print(Syntax(stats.content, "diff", background_color="default"))
