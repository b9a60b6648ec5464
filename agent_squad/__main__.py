"""Allow running as ``python -m agent_squad``."""

from .cli.main import cli

if __name__ == '__main__':
    cli()
