from __future__ import annotations

from typing import Annotated

import typer

from casetalink.utils.logging import setup_logging

from .commands import config as config_cmd
from .commands.devices import register as register_devices
from .commands.discover import register as register_discover
from .commands.init import register as register_init
from .commands.pair import register as register_pair
from .commands.status import register as register_status

app = typer.Typer(
    help="casetalink - pair with and connect to Lutron Caseta bridges",
    no_args_is_help=True,
)

app.add_typer(config_cmd.app, name="config")

register_init(app)
register_discover(app)
register_pair(app)
register_devices(app)
register_status(app)


@app.callback(invoke_without_command=True)
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-v", help="Show version and exit"),
    ] = False,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", "-l", help="Log level (default: $LOGLEVEL)"),
    ] = None,
) -> None:
    """casetalink CLI."""
    setup_logging(log_level)

    if version:
        from importlib.metadata import version as get_version

        typer.echo(f"casetalink version {get_version('casetalink')}")
        raise typer.Exit()
