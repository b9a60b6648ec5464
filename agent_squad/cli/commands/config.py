"""Configuration management commands for Agent Squad."""

import json

import click
from pydantic import ValidationError

from ...utils.config_manager import ConfigManager


@click.group()
def config():
    """Manage Agent Squad configuration"""
    pass


@config.command()
def show():
    """Display the current configuration"""
    config_manager = ConfigManager()
    app_config = config_manager.load_config()

    click.echo(f"Configuration ({config_manager.config_file}):")
    click.echo(json.dumps(app_config.model_dump(), indent=2))


@config.command(name='set')
@click.argument('key')
@click.argument('value')
def set_value(key, value):
    """Set a configuration value"""
    config_manager = ConfigManager()
    try:
        config_manager.set_value(key, value)
    except KeyError:
        click.echo(f"Error: unknown setting '{key}'", err=True)
        raise SystemExit(1)
    except ValidationError as e:
        click.echo(f"Error: invalid value for '{key}': {e.errors()[0]['msg']}", err=True)
        raise SystemExit(1)
    click.echo(f"Set {key}={value}")
