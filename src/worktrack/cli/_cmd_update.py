"""Update commands for the worktrack CLI: edit, comment, link and unlink."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import typer

from worktrack.editor import EditAborted, marshal_issue, unmarshal_issue
from worktrack.errors import TrackerError
from worktrack.identity import resolve_user
from worktrack.models import EditField, issue_to_dict

from . import _helpers
from ._helpers import get_store, parse_labels, resolve_id
from ._json_state import echo_error, echo_json, is_json_output

if TYPE_CHECKING:
    from worktrack.models import Issue
    from worktrack.storage import IssueStore


def _changes_from_editor(issue: Issue) -> dict[EditField, Any] | None:
    """Round-trip ``issue`` through the editor; None if the user aborted."""
    try:
        result = _helpers.get_editor().edit(marshal_issue(issue), "work-edit")
    except EditAborted:
        return None
    parsed = unmarshal_issue(result)
    return {
        EditField.TITLE: parsed.title,
        EditField.DESCRIPTION: parsed.description,
        EditField.TYPE: parsed.type,
        EditField.ASSIGNEE: parsed.assignee,
        EditField.PRIORITY: parsed.priority,
        EditField.LABELS: parsed.labels,
    }


def _echo_issue(issue: Issue, message: str, json_output: bool) -> None:
    """Print either the issue as JSON or a one-line confirmation."""
    if is_json_output(json_output):
        echo_json(issue_to_dict(issue))
    else:
        typer.echo(message)


def _load_resolved(store: IssueStore, prefix: str) -> Issue:
    return store.load_issue(resolve_id(store, prefix))


def register(app: typer.Typer) -> None:
    """Register update commands."""

    @app.command()
    def edit(
        issue_id: str = typer.Argument(..., help="Issue ID or prefix"),
        title: str | None = typer.Option(None, "--title", help="New title"),
        description: str | None = typer.Option(
            None,
            "--description",
            "-d",
            help="New description",
        ),
        priority: int | None = typer.Option(
            None,
            "--priority",
            "-p",
            help="New priority",
        ),
        labels: str | None = typer.Option(
            None,
            "--labels",
            "-l",
            help="Replace labels (comma-separated)",
        ),
        assignee: str | None = typer.Option(None, "--assignee", help="New assignee"),
        issue_type: str | None = typer.Option(None, "--type", "-t", help="New type"),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        root: str | None = typer.Option(None, "--root", help="Project directory"),
    ) -> None:
        """Update fields on an issue.

        With no field options, opens the issue in $VISUAL / $EDITOR.
        """
        changes: dict[EditField, Any] = {}
        if title is not None:
            changes[EditField.TITLE] = title
        if description is not None:
            changes[EditField.DESCRIPTION] = description
        if issue_type is not None:
            changes[EditField.TYPE] = issue_type
        if assignee is not None:
            changes[EditField.ASSIGNEE] = assignee
        if priority is not None:
            changes[EditField.PRIORITY] = priority
        if labels is not None:
            changes[EditField.LABELS] = parse_labels(labels)

        try:
            store = get_store(root)
            issue = _load_resolved(store, issue_id)
            if not changes:
                from_editor = _changes_from_editor(issue)
                if from_editor is None:
                    typer.echo("Edit cancelled")
                    return
                changes = from_editor
            updated = store.edit_issue(issue.id, changes, actor=resolve_user())
        except TrackerError as e:
            echo_error(str(e))
            raise typer.Exit(1) from None

        if updated.updated == issue.updated:
            typer.echo(f"No changes to {issue.id}")
            return
        _echo_issue(updated, f"✓ Updated {updated.id}", json_output)

    @app.command()
    def comment(
        issue_id: str = typer.Argument(..., help="Issue ID or prefix"),
        text: str = typer.Argument(..., help="Comment text"),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        root: str | None = typer.Option(None, "--root", help="Project directory"),
    ) -> None:
        """Add a comment to an issue."""
        try:
            store = get_store(root)
            resolved = resolve_id(store, issue_id)
            issue = store.add_comment(resolved, text, actor=resolve_user())
        except TrackerError as e:
            echo_error(str(e))
            raise typer.Exit(1) from None
        _echo_issue(issue, f"✓ Commented on {issue.id}", json_output)

    @app.command()
    def link(
        child_id: str = typer.Argument(..., help="Child issue ID or prefix"),
        parent: str = typer.Option(..., "--parent", help="Parent issue ID or prefix"),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        root: str | None = typer.Option(None, "--root", help="Project directory"),
    ) -> None:
        """Make an issue the child of another issue."""
        try:
            store = get_store(root)
            child = resolve_id(store, child_id)
            parent_id = resolve_id(store, parent)
            issue = store.link_issue(child, parent_id, actor=resolve_user())
        except TrackerError as e:
            echo_error(str(e))
            raise typer.Exit(1) from None
        _echo_issue(issue, f"✓ Linked {issue.id} → {parent_id}", json_output)

    @app.command()
    def unlink(
        child_id: str = typer.Argument(..., help="Child issue ID or prefix"),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        root: str | None = typer.Option(None, "--root", help="Project directory"),
    ) -> None:
        """Remove the parent link from a child issue."""
        try:
            store = get_store(root)
            resolved = resolve_id(store, child_id)
            issue = store.unlink_issue(resolved, actor=resolve_user())
        except TrackerError as e:
            echo_error(str(e))
            raise typer.Exit(1) from None
        _echo_issue(issue, f"✓ Unlinked {issue.id}", json_output)
