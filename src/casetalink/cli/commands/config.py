from __future__ import annotations

import typer

from casetalink.cli.common import (
    build_database,
    load_settings_or_exit,
    resolve_config_path_or_exit,
)
from casetalink.config import render_settings_toml

app = typer.Typer(no_args_is_help=True)


@app.command("show")
def show_config() -> None:
    """Show effective settings and where bridge state is kept."""
    settings = load_settings_or_exit()
    path, exists = resolve_config_path_or_exit(allow_missing=True)
    db = build_database(settings)

    typer.echo(f"# settings: {path if exists else 'defaults'}")
    typer.echo(f"# bridge config: {db.config_path}")
    typer.echo(f"# credentials: {db.secrets_path}")
    typer.echo(render_settings_toml(settings))
