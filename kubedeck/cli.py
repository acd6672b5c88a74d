"""Main CLI entry point for kubedeck."""

from __future__ import annotations

from pathlib import Path

import click

from kubedeck.commands import auth, connections, containers
from kubedeck.commands.common import CliState, print_session_expired
from kubedeck.config import load_settings
from kubedeck.dependencies import build_runtime, get_settings
from kubedeck.logging_config import configure_application_logging


@click.group()
@click.version_option(version="0.1.0")
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="YAML settings file (overrides KUBEDECK_CONFIG_FILE)",
)
@click.pass_context
def main(ctx: click.Context, config_file: Path | None):
    """kubedeck - operate containers across cluster connections."""
    if ctx.obj is not None:
        return
    try:
        settings = load_settings(config_file=config_file) if config_file else get_settings()
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    configure_application_logging(settings)
    ctx.obj = CliState(
        runtime_factory=lambda: build_runtime(settings, on_session_expired=print_session_expired)
    )


main.add_command(auth.login)
main.add_command(auth.logout)
main.add_command(auth.whoami)
main.add_command(connections.connections)
main.add_command(containers.containers)


if __name__ == "__main__":
    main()
