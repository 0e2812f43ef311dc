"""CLI handling for lanqueue.

This module provides the command-line interface for lanqueue, handling
argument parsing via click, merging with a saved settings file, logging
configuration, and dispatching to host or client mode.

Usage:
    lanqueue --serve --port PORT --password PASSWORD [--queue-name NAME] [--name NAME]
    lanqueue --join HOST --port PORT --password PASSWORD [--name NAME] [--reconnect]
    lanqueue --config settings.json [--verbose] [--log-file FILE]
"""

import sys
from dataclasses import replace

import click

from lanqueue.main_logging import configure_logging
from lanqueue.main_options import MutuallyExclusiveOption, parse_port
from lanqueue.settings import QueueSettings, SettingsError, load_settings


@click.command()
@click.option(
    "--serve",
    is_flag=True,
    cls=MutuallyExclusiveOption,
    exclusive_with=["join"],
    help="Host a queue on this machine",
)
@click.option(
    "--join",
    metavar="HOST",
    cls=MutuallyExclusiveOption,
    exclusive_with=["serve"],
    help="Join the queue hosted at HOST",
)
@click.option("--port", type=click.IntRange(0, 65535), help="TCP port of the queue")
@click.option(
    "--password",
    envvar="LANQUEUE_PASSWORD",
    help="Queue password (or LANQUEUE_PASSWORD)",
)
@click.option("--queue-name", help="Name of the hosted queue")
@click.option("--name", "member_name", help="Display name of this member")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Read settings from a JSON file; options override it",
)
@click.option(
    "--reconnect",
    is_flag=True,
    help="Rejoin with backoff when the host is unreachable or lost",
)
@click.option(
    "--verbose",
    is_flag=True,
    help="Enable DEBUG-level logging",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False),
    help="Also write logs to FILE, rotated by size",
)
def main(
    serve: bool,
    join: str | None,
    port: int | None,
    password: str | None,
    queue_name: str | None,
    member_name: str | None,
    config_path: str | None,
    reconnect: bool,
    verbose: bool,
    log_file: str | None,
) -> None:
    """Share clipboard text between machines on the local network."""
    settings = _load_settings(config_path)
    if serve:
        settings = replace(settings, role="host")
    if join is not None:
        settings = replace(settings, role="client", host=join)
    overrides = {
        "port": port,
        "password": password,
        "queue_name": queue_name,
        "member_name": member_name,
    }
    settings = replace(settings, **{k: v for k, v in overrides.items() if v is not None})

    if settings.role == "off":
        raise click.UsageError("Either --serve or --join must be specified")
    if settings.role == "client" and not settings.host:
        raise click.UsageError("--join HOST is required (or set host in --config)")
    parse_port(settings.port)

    configure_logging(verbose, log_file)

    _run_mode(settings, reconnect)


def _load_settings(config_path: str | None) -> QueueSettings:
    """Read the settings file, or start from defaults without one.

    Args:
        config_path: Path given with --config, if any.
    """
    if config_path is None:
        return QueueSettings()
    try:
        return load_settings(config_path)
    except SettingsError as e:
        raise click.BadParameter(str(e), param_hint="--config") from e


def _run_mode(settings: QueueSettings, reconnect: bool) -> None:
    """Run the appropriate mode (host or client).

    Args:
        settings: Merged settings; role is "host" or "client".
        reconnect: Rejoin with backoff in client mode.
    """
    import asyncio

    from lanqueue.client import run_client
    from lanqueue.errors import QueueError
    from lanqueue.server import run_server

    try:
        if settings.role == "host":
            asyncio.run(run_server(settings))
        else:
            asyncio.run(run_client(settings, reconnect=reconnect))
    except QueueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
