"""worktrack CLI commands for issue tracking."""

from __future__ import annotations

import typer

from ._helpers import SortedGroup

app = typer.Typer(
    help="work - a local, file-backed issue tracker",
    no_args_is_help=True,
    cls=SortedGroup,
)


@app.callback(invoke_without_command=True)
def _global_options(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON for all commands",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log storage operations to stderr",
    ),
) -> None:
    from ._helpers import configure_logging
    from ._json_state import set_json_flag

    set_json_flag(json_output)
    configure_logging(verbose)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(0)


from . import (  # noqa: E402
    _cmd_create,
    _cmd_init,
    _cmd_maintenance,
    _cmd_read,
    _cmd_update,
    _cmd_workflow,
)

for _mod in (
    _cmd_create,
    _cmd_init,
    _cmd_maintenance,
    _cmd_read,
    _cmd_update,
    _cmd_workflow,
):
    _mod.register(app)


def main() -> None:
    """Run the worktrack CLI application."""
    app()
