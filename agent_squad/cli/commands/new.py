"""Create a new session."""

from pathlib import Path

import click

from ...services.exceptions import ServiceError
from ..helpers import fail, get_registry


@click.command()
@click.argument('title')
@click.option('--program', '-p', help='Program to run (defaults to the configured program)')
@click.option('--path', 'repo_path', type=click.Path(exists=True, file_okay=False),
              help='Repository root (defaults to the current directory)')
@click.option('--in-place', is_flag=True, help='Run in the repository itself without a worktree')
@click.option('--auto-yes', '-y', is_flag=True, help='Auto-approve prompts (also enabled by the auto_yes setting)')
def new(title, program, repo_path, in_place, auto_yes):
    """Start a new agent session in its own worktree"""
    registry, config = get_registry()
    program = program or config.default_program
    auto_yes = auto_yes or config.auto_yes
    repo_path = Path(repo_path) if repo_path else Path.cwd()

    click.echo(f"Starting '{title}' with {program}...")
    try:
        session = registry.create(
            title,
            str(repo_path),
            program,
            auto_approve=auto_yes,
            in_place=in_place,
        )
    except ServiceError as e:
        fail(registry, e)

    registry.shutdown()
    click.echo(f"✅ Session '{title}' started")
    if session.branch:
        click.echo(f"   Branch: {session.branch}")
    click.echo(f"   Directory: {session.work_dir}")
    click.echo(f"Attach with: agent-squad attach {title!r}")
