"""Main CLI entry point for Agent Squad."""

import click

from ..utils.log import setup_logging
from .commands.attach import attach
from .commands.config import config
from .commands.lifecycle import kill, pause, resume
from .commands.list_sessions import list
from .commands.new import new
from .commands.preview import diff, preview
from .commands.reset import reset
from .commands.send import send


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Log debug output')
def cli(verbose):
    """Agent Squad - Run coding agents side by side in isolated git worktrees"""
    setup_logging(verbose)


# Register commands
cli.add_command(new)
cli.add_command(list)
cli.add_command(attach)
cli.add_command(pause)
cli.add_command(resume)
cli.add_command(kill)
cli.add_command(preview)
cli.add_command(diff)
cli.add_command(send)
cli.add_command(reset)
cli.add_command(config)


if __name__ == '__main__':
    cli()
