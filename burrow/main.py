"""
Main entry point for the Burrow server.

This module provides the command-line interface: starting the server,
managing the local password store and handling configuration files.
"""

import asyncio
import signal
import sys
from typing import Optional

import typer
from loguru import logger

from .application.startup import ApplicationStartup, build_password_store
from .core.exceptions import BurrowError
from .infrastructure.config.loader import ConfigLoader
from .infrastructure.config.models import ApplicationConfig
from .infrastructure.logging.setup import setup_logging

# Create CLI application
cli = typer.Typer(
    name="burrow",
    help="Remote-access SSH server with a local password store"
)


@cli.command()
def start(
    config_file: Optional[str] = typer.Option(
        None, "--config", "-c", help="Configuration file path"
    ),
    host: Optional[str] = typer.Option(
        None, "--host", help="Address to listen on"
    ),
    port: Optional[int] = typer.Option(
        None, "--port", "-p", help="Port to listen on"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Logging level"
    ),
    debug: bool = typer.Option(
        False, "--debug", help="Enable debug mode"
    )
) -> None:
    """Start the Burrow SSH server."""

    try:
        config = ConfigLoader().load_config(config_file)
    except (OSError, ValueError, TypeError) as e:
        typer.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)

    # Override with command line arguments
    if host:
        config.server.host = host
    if port is not None:
        config.server.port = port
    if log_level:
        config.logging.level = log_level.upper()
    if debug:
        config.debug = True
        config.logging.level = "DEBUG"

    setup_logging(config.logging)

    logger.info(f"Starting {config.name} v{config.version}")
    logger.info(f"Environment: {config.environment}")
    logger.info(f"Debug mode: {config.debug}")

    try:
        asyncio.run(run_application(config))
    except KeyboardInterrupt:
        logger.info("Application interrupted by user")
    except (BurrowError, OSError, ValueError) as e:
        logger.error(f"Application failed to start: {e}")
        sys.exit(1)


@cli.command()
def passwd(
    username: str = typer.Argument(..., help="User to create or update"),
    config_file: Optional[str] = typer.Option(
        None, "--config", "-c", help="Configuration file path"
    )
) -> None:
    """Set a user's password in the local password store."""

    try:
        config = ConfigLoader().load_config(config_file)
    except (OSError, ValueError, TypeError) as e:
        typer.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)

    password = typer.prompt("New password", hide_input=True, confirmation_prompt=True)

    try:
        build_password_store(config).set_password(username, password)
    except BurrowError as e:
        typer.echo(f"Error setting password: {e}", err=True)
        sys.exit(1)

    typer.echo(f"Password for {username} saved to {config.auth.password_file}")


@cli.command()
def init_config(
    output: str = typer.Option(
        "burrow.yaml", "--output", "-o", help="Output configuration file"
    ),
    format: str = typer.Option(
        "yaml", "--format", "-f", help="Configuration format (yaml/json)"
    )
) -> None:
    """Generate a default configuration file."""

    config = ApplicationConfig()
    config_loader = ConfigLoader()

    try:
        config_loader.save_config(config, output, format)
        typer.echo(f"Default configuration saved to {output}")
    except ValueError as e:
        typer.echo(f"Error saving configuration: {e}", err=True)
        sys.exit(1)


@cli.command()
def validate_config(
    config_file: str = typer.Argument(...,
                                      help="Configuration file to validate")
) -> None:
    """Validate a configuration file."""

    config_loader = ConfigLoader()

    try:
        config = config_loader.load_config(config_file)
        typer.echo(f"Configuration file {config_file} is valid")
        typer.echo(f"Application: {config.name} v{config.version}")
        typer.echo(f"Listening on: {config.server.host}:{config.server.port}")
        typer.echo(f"Auth backend: {config.auth.backend}")
    except (OSError, ValueError, TypeError) as e:
        typer.echo(f"Configuration validation failed: {e}", err=True)
        sys.exit(1)


async def run_application(config: ApplicationConfig) -> None:
    """
    Run the server until SIGINT or SIGTERM.

    Args:
        config: Application configuration
    """
    startup = ApplicationStartup(config)
    stop_requested = asyncio.Event()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, _request_stop, signum, stop_requested)

    try:
        config.ensure_directories()
        await startup.start_application()
        await stop_requested.wait()
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)
        await startup.stop_application()


def _request_stop(signum: int, stop_requested: asyncio.Event) -> None:
    logger.info(f"Received signal {signal.Signals(signum).name}, initiating shutdown...")
    stop_requested.set()


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
