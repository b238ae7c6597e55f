"""Initialization and version commands for the worktrack CLI."""

from __future__ import annotations

from pathlib import Path

import typer

from worktrack.config import config_to_dict, get_work_dir, init_tracker
from worktrack.errors import TrackerError

from ._json_state import echo_error, echo_json, is_json_output


def register(app: typer.Typer) -> None:
    """Register init and version commands."""

    @app.command()
    def init(
        root: str | None = typer.Option(
            None,
            "--root",
            help="Project directory (default: current directory)",
        ),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    ) -> None:
        """Initialize an issue tracker in the project directory.

        Creates .work/ with an issues directory and a default config.json.
        An existing config is left untouched.
        """
        project = Path(root) if root else Path.cwd()
        try:
            config = init_tracker(project)
        except TrackerError as e:
            echo_error(str(e))
            raise typer.Exit(1) from None

        if is_json_output(json_output):
            echo_json(
                {"path": str(get_work_dir(project)), "config": config_to_dict(config)},
            )
            return

        typer.echo(f"✓ Initialized work tracker in {get_work_dir(project)}")
        typer.echo("")
        typer.echo("For compact git diffs, run:")
        typer.echo("  git config diff.work.textconv 'jq -c .'")

    @app.command()
    def version() -> None:
        """Show the worktrack version."""
        from worktrack._version import version as v

        typer.echo(f"work {v}")
