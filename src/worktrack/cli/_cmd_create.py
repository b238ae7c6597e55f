"""Create command for the worktrack CLI."""

from __future__ import annotations

import typer

from worktrack.errors import TrackerError
from worktrack.identity import resolve_user
from worktrack.models import issue_to_dict

from ._helpers import get_store, parse_labels, resolve_id
from ._json_state import echo_error, echo_json, is_json_output


def register(app: typer.Typer) -> None:
    """Register create command."""

    @app.command()
    def create(
        title: str = typer.Argument(..., help="Issue title"),
        description: str = typer.Option(
            "",
            "--description",
            "-d",
            help="Issue description",
        ),
        priority: int = typer.Option(0, "--priority", "-p", help="Priority level"),
        labels: str = typer.Option("", "--labels", "-l", help="Comma-separated labels"),
        assignee: str = typer.Option("", "--assignee", "-a", help="Assignee name"),
        issue_type: str = typer.Option(
            "",
            "--type",
            "-t",
            help="Issue type (default from config)",
        ),
        parent: str = typer.Option("", "--parent", help="Parent issue ID or prefix"),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        root: str | None = typer.Option(None, "--root", help="Project directory"),
    ) -> None:
        """Create a new issue and print its ID.

        Examples:
            work create "Fix login bug" --type bug --priority 1
            work create "Add search" --labels ui,search --assignee alice
        """
        try:
            store = get_store(root)
            parent_id = resolve_id(store, parent) if parent else ""
            issue = store.create_issue(
                title,
                description=description,
                assignee=assignee,
                priority=priority,
                labels=parse_labels(labels),
                issue_type=issue_type,
                parent_id=parent_id,
                actor=resolve_user(),
            )
        except TrackerError as e:
            echo_error(str(e))
            raise typer.Exit(1) from None

        if is_json_output(json_output):
            echo_json(issue_to_dict(issue))
        else:
            typer.echo(issue.id)
