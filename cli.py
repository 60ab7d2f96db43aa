#!/usr/bin/env python3
"""
ApiKit CLI

Command-line interface for serving the configured API, validating
configuration files and querying endpoints without starting the server.
"""

import json
import sys
from typing import Optional

import click
import colorama
from colorama import Fore, Style

# Initialize colorama for cross-platform colored output
colorama.init()

from config import VERSION, config, configure_logging, load_server_config
from errors import ApiKitError, ConfigurationError


def print_success(message: str):
    """Print success message in green"""
    click.echo(f"{Fore.GREEN}✓ {message}{Style.RESET_ALL}")


def print_error(message: str):
    """Print error message in red"""
    click.echo(f"{Fore.RED}✗ {message}{Style.RESET_ALL}", err=True)


def print_info(message: str):
    """Print info message in blue"""
    click.echo(f"{Fore.BLUE}ℹ {message}{Style.RESET_ALL}")


def print_json(data: dict, title: Optional[str] = None):
    """Print JSON data"""
    if title:
        print_info(title)
    click.echo(json.dumps(data, indent=2, default=str))


def fatal(message: str):
    """Report a failure and exit with status 1"""
    print_error(message)
    sys.exit(1)


config_option = click.option(
    '--config', '-c', 'config_path', default=None,
    help=f'Configuration file (defaults to APIKIT_CONFIG_PATH or {config.CONFIG_PATH})'
)


@click.group()
@click.version_option(version=VERSION)
def cli():
    """
    ApiKit CLI - compose JSON APIs from remote HTML documents

    Values are scraped with XPath from configured sources and exposed on
    configured endpoints.
    """
    pass


@cli.command()
@config_option
@click.option('--host', default=None, help='Bind host (overrides the config file)')
@click.option('--port', type=int, default=None, help='Bind port (overrides the config file)')
def run(config_path: Optional[str], host: Optional[str], port: Optional[int]):
    """Start the API server"""
    from api import serve

    try:
        server_config = load_server_config(config_path)
    except ConfigurationError as e:
        fatal(str(e))

    configure_logging(server_config.verbose_mode, config.LOG_FILE or None)

    try:
        serve(server_config, host, port)
    except ApiKitError as e:
        fatal(f"Server runtime failure: {e}")


@cli.command()
def version():
    """Print the ApiKit version"""
    click.echo(VERSION)


@cli.command('validate-config')
@config_option
def validate_config(config_path: Optional[str]):
    """Validate a configuration file"""
    try:
        server_config = load_server_config(config_path)
    except ConfigurationError as e:
        fatal(str(e))

    general = server_config.general
    print_success("Configuration is valid")
    click.echo(f"Sources: {len(general.sources)} "
               f"({sum(len(source.values) for source in general.sources)} values)")
    click.echo(f"Endpoints: {len(general.endpoints)}")
    click.echo(f"Bound paths: {len(server_config.endpoints)}")
    click.echo(f"API keys: {len(server_config.api_keys)}")


@cli.command()
@click.argument('endpoint')
@config_option
@click.option('--json', 'output_json', is_flag=True, help='Output results as JSON')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
def get(endpoint: str, config_path: Optional[str], output_json: bool, verbose: bool):
    """Compose the values of ENDPOINT once and print them"""
    from services.client import ApiKitClient

    try:
        server_config = load_server_config(config_path)
    except ConfigurationError as e:
        fatal(str(e))

    configure_logging(verbose or server_config.verbose_mode)

    with ApiKitClient.from_config(server_config.general) as client:
        try:
            values = client.get(endpoint)
        except ApiKitError as e:
            fatal(f"Failed to get endpoint {endpoint}: {e}")

    if output_json:
        print_json(values)
        return

    print_success(f"Endpoint {endpoint}: {len(values)} values")
    for name, value in values.items():
        click.echo(f"  {name}: {value}")


@cli.command('config-info')
def config_info():
    """Show current process settings"""
    print_info("ApiKit Configuration:")
    click.echo(f"Config Path: {config.CONFIG_PATH}")
    click.echo(f"Host: {config.HOST}")
    click.echo(f"Port: {config.PORT}")
    click.echo(f"Log Level: {config.LOG_LEVEL}")
    click.echo(f"Log File: {config.LOG_FILE or 'disabled'}")
    click.echo(f"User Agent: {config.USER_AGENT}")


if __name__ == '__main__':
    cli()
