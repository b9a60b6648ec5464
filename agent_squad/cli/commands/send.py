"""Send input to a session without attaching."""

import time

import click

from ...services.exceptions import ServiceError
from ..helpers import fail, get_registry, get_session

# The tmux client has to read the input before its PTY is closed.
SETTLE_DELAY = 0.5


@click.command()
@click.argument('title')
@click.argument('text', required=False, default='')
@click.option('--enter/--no-enter', default=True, help='Press Enter after the text')
def send(title, text, enter):
    """Type TEXT into a session"""
    registry, _ = get_registry()
    session = get_session(registry, title)
    if not text and not enter:
        click.echo("Nothing to send", err=True)
        registry.shutdown()
        return
    try:
        if text:
            session.send_keys(text)
        if enter:
            session.tap_enter()
    except ServiceError as e:
        fail(registry, e)
    time.sleep(SETTLE_DELAY)
    registry.shutdown()
    click.echo(f"Sent input to '{title}'")
