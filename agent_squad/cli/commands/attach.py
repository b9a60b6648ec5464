"""Attach the terminal to a session."""

import click
from rich.console import Console

from ...services.exceptions import ServiceError, TerminalStateError
from ..helpers import fail, get_registry, get_session


@click.command()
@click.argument('title')
def attach(title):
    """Attach to a session (press ESC to detach)"""
    console = Console(stderr=True)
    registry, _ = get_registry()
    session = get_session(registry, title)

    try:
        signal = session.attach()
    except ServiceError as e:
        fail(registry, e)

    signal.wait()
    registry.shutdown()
    try:
        signal.raise_for_error()
    except TerminalStateError as e:
        console.print(f"[bold red]Terminal may be unusable: {e}[/bold red]")
        raise SystemExit(1)
    except ServiceError as e:
        console.print(f"[yellow]Detached with errors: {e}[/yellow]")
        raise SystemExit(1)
    console.print(f"[green]Detached from '{title}'[/green]")
