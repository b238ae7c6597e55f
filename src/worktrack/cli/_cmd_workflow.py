"""Status commands for the worktrack CLI: status, its shortcuts and reject."""

from __future__ import annotations

import typer

from worktrack.constants import TERMINAL_STATUSES
from worktrack.errors import TrackerError
from worktrack.identity import resolve_user
from worktrack.models import issue_to_dict

from ._helpers import get_compactor, get_store, resolve_id
from ._json_state import echo_error, echo_json, echo_warning, is_json_output

# (command, target status, help)
SHORTCUTS: tuple[tuple[str, str, str], ...] = (
    ("start", "active", "Start working on an issue (status → active)."),
    ("review", "review", "Submit an issue for review (status → review)."),
    ("approve", "done", "Approve a reviewed issue (status → done)."),
    ("close", "done", "Close an issue (status → done)."),
    ("cancel", "cancelled", "Cancel an issue (status → cancelled)."),
    ("reopen", "open", "Reopen an issue (status → open)."),
)


def _transition(
    issue_prefix: str,
    new_status: str,
    *,
    no_compact: bool,
    json_output: bool,
    root: str | None,
) -> None:
    """Change status and auto-compact when the issue becomes terminal.

    A failed auto-compaction only warns; the status change already stands.
    """
    try:
        store = get_store(root)
        issue_id = resolve_id(store, issue_prefix)
        old_status = store.load_issue(issue_id).status
        issue = store.set_status(issue_id, new_status, actor=resolve_user())
    except TrackerError as e:
        echo_error(str(e))
        raise typer.Exit(1) from None

    if new_status in TERMINAL_STATUSES and not no_compact:
        try:
            issue = get_compactor(store).compact_issue(issue_id)
        except TrackerError as e:
            echo_warning(f"compact failed: {e}")

    if is_json_output(json_output):
        echo_json(issue_to_dict(issue))
    else:
        typer.echo(f"{issue_id}: {old_status} → {new_status}")


def _add_shortcut(app: typer.Typer, name: str, target: str, doc: str) -> None:
    """Register ``work <name> <id>`` as ``work status <id> <target>``."""

    def shortcut(
        issue_id: str = typer.Argument(..., help="Issue ID or prefix"),
        no_compact: bool = typer.Option(
            False,
            "--no-compact",
            help="Skip auto-compaction when the issue is closed",
        ),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        root: str | None = typer.Option(None, "--root", help="Project directory"),
    ) -> None:
        _transition(
            issue_id,
            target,
            no_compact=no_compact,
            json_output=json_output,
            root=root,
        )

    app.command(name=name, help=doc)(shortcut)


def register(app: typer.Typer) -> None:
    """Register status and workflow commands."""

    @app.command()
    def status(
        issue_id: str = typer.Argument(..., help="Issue ID or prefix"),
        new_status: str = typer.Argument(..., help="Target status"),
        no_compact: bool = typer.Option(
            False,
            "--no-compact",
            help="Skip auto-compaction when the issue is closed",
        ),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        root: str | None = typer.Option(None, "--root", help="Project directory"),
    ) -> None:
        """Change an issue's status.

        Moving to done or cancelled compacts the issue unless --no-compact.
        """
        _transition(
            issue_id,
            new_status,
            no_compact=no_compact,
            json_output=json_output,
            root=root,
        )

    for name, target, doc in SHORTCUTS:
        _add_shortcut(app, name, target, doc)

    @app.command()
    def reject(
        issue_id: str = typer.Argument(..., help="Issue ID or prefix"),
        reason: str = typer.Argument(..., help="Why the issue was rejected"),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        root: str | None = typer.Option(None, "--root", help="Project directory"),
    ) -> None:
        """Send an issue back to active with a rejection comment."""
        actor = resolve_user()
        try:
            store = get_store(root)
            resolved = resolve_id(store, issue_id)
            old_status = store.load_issue(resolved).status
            store.set_status(resolved, "active", actor=actor)
            issue = store.add_comment(resolved, f"Rejected: {reason}", actor=actor)
        except TrackerError as e:
            echo_error(str(e))
            raise typer.Exit(1) from None

        if is_json_output(json_output):
            echo_json(issue_to_dict(issue))
        else:
            typer.echo(f"{resolved}: {old_status} → active (rejected: {reason})")
