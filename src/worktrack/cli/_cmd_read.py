"""Read-only commands for the worktrack CLI: list, show, export and logs."""

from __future__ import annotations

import typer

from worktrack.errors import TrackerError
from worktrack.hierarchy import children_of
from worktrack.idgen import min_prefixes
from worktrack.models import event_to_dict, issue_to_dict, log_entry_to_dict
from worktrack.query import (
    FilterOptions,
    filter_events_by_time,
    filter_issues,
    filter_log_entries,
    sort_issues,
)

from ._formatting import (
    format_event_line,
    format_issue_event_line,
    format_issue_full,
    format_issue_table,
    format_log_entry,
)
from ._helpers import get_store, parse_time_flag, resolve_id
from ._json_state import echo_error, echo_json, is_json_output

DEFAULT_HISTORY_LIMIT = 20


def register(app: typer.Typer) -> None:
    """Register read-only commands."""

    @app.command("list")
    def list_issues(
        status: str = typer.Option("", "--status", "-s", help="Filter by status"),
        label: str = typer.Option("", "--label", "-l", help="Filter by label"),
        assignee: str = typer.Option("", "--assignee", "-a", help="Filter by assignee"),
        issue_type: str = typer.Option("", "--type", "-t", help="Filter by type"),
        priority: int | None = typer.Option(
            None,
            "--priority",
            "-p",
            help="Filter by priority",
        ),
        parent: str = typer.Option("", "--parent", help="Show children of this issue"),
        roots: bool = typer.Option(False, "--roots", help="Show only root issues"),
        sort: str | None = typer.Option(
            None,
            "--sort",
            help="Sort by created, updated, priority or title",
        ),
        output_format: str = typer.Option(
            "table",
            "--format",
            "-f",
            help="Output format: table, short or json",
        ),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        root: str | None = typer.Option(None, "--root", help="Project directory"),
    ) -> None:
        """List issues with optional filtering and sorting.

        Examples:
            work list --status active
            work list --label backend --sort priority
        """
        try:
            store = get_store(root)
            all_issues = store.list_issues()
            options = FilterOptions(
                status=status,
                label=label,
                assignee=assignee,
                priority=priority,
                type=issue_type,
                parent_id=resolve_id(store, parent) if parent else "",
                roots_only=roots,
            )
            issues = sort_issues(filter_issues(all_issues, options), sort)
        except (TrackerError, ValueError) as e:
            echo_error(str(e))
            raise typer.Exit(1) from None

        if is_json_output(json_output) or output_format == "json":
            echo_json([issue_to_dict(i) for i in issues])
            return

        if output_format == "short":
            for issue in issues:
                typer.echo(f"{issue.id} {issue.title}")
            return

        if not issues:
            typer.echo("No issues found")
            return

        prefixes = min_prefixes(i.id for i in all_issues)
        typer.echo(format_issue_table(issues, all_issues, prefixes))

    @app.command()
    def show(
        issue_id: str = typer.Argument(..., help="Issue ID or prefix"),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        root: str | None = typer.Option(None, "--root", help="Project directory"),
    ) -> None:
        """Show full details for an issue, including comments and children."""
        try:
            store = get_store(root)
            issue = store.load_issue(resolve_id(store, issue_id))
            children = children_of(issue.id, store.list_issues())
        except TrackerError as e:
            echo_error(str(e))
            raise typer.Exit(1) from None

        if is_json_output(json_output):
            echo_json(issue_to_dict(issue))
        else:
            typer.echo(format_issue_full(issue, children))

    @app.command()
    def export(
        root: str | None = typer.Option(None, "--root", help="Project directory"),
    ) -> None:
        """Export all issues as a JSON array."""
        try:
            issues = get_store(root).list_issues()
        except TrackerError as e:
            echo_error(str(e))
            raise typer.Exit(1) from None
        echo_json([issue_to_dict(i) for i in issues])

    @app.command()
    def log(
        issue_id: str = typer.Argument(..., help="Issue ID or prefix"),
        since: str | None = typer.Option(
            None,
            "--since",
            help="Show events at or after this date (YYYY-MM-DD or ISO-8601)",
        ),
        until: str | None = typer.Option(
            None,
            "--until",
            help="Show events before this date",
        ),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        root: str | None = typer.Option(None, "--root", help="Project directory"),
    ) -> None:
        """Show the event history of a single issue."""
        since_dt = parse_time_flag(since) if since else None
        until_dt = parse_time_flag(until) if until else None
        try:
            store = get_store(root)
            events = store.load_events(resolve_id(store, issue_id))
        except TrackerError as e:
            echo_error(str(e))
            raise typer.Exit(1) from None

        events = filter_events_by_time(events, since_dt, until_dt)
        if is_json_output(json_output):
            echo_json([event_to_dict(ev) for ev in events])
            return
        if not events:
            typer.echo("No events")
            return
        for event in events:
            typer.echo(format_event_line(event))

    @app.command()
    def history(
        label: str = typer.Option("", "--label", "-l", help="Only issues with label"),
        since: str | None = typer.Option(
            None,
            "--since",
            help="Show events at or after this date (YYYY-MM-DD or ISO-8601)",
        ),
        until: str | None = typer.Option(
            None,
            "--until",
            help="Show events before this date",
        ),
        last: int = typer.Option(
            DEFAULT_HISTORY_LIMIT,
            "--last",
            "-n",
            help="Number of events to show",
        ),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        root: str | None = typer.Option(None, "--root", help="Project directory"),
    ) -> None:
        """Show recent events across all issues, newest first."""
        since_dt = parse_time_flag(since) if since else None
        until_dt = parse_time_flag(until) if until else None
        try:
            store = get_store(root)
            all_events = store.load_all_events()
            if label:
                labelled = {i.id for i in store.list_issues() if label in i.labels}
                all_events = [ev for ev in all_events if ev.issue_id in labelled]
        except TrackerError as e:
            echo_error(str(e))
            raise typer.Exit(1) from None

        events = filter_events_by_time(all_events, since_dt, until_dt)
        events.sort(key=lambda ev: ev.timestamp, reverse=True)
        events = events[: last if last > 0 else DEFAULT_HISTORY_LIMIT]

        if is_json_output(json_output):
            echo_json(
                [{"issue_id": ev.issue_id, **event_to_dict(ev.event)} for ev in events],
            )
            return
        if not events:
            typer.echo("No events")
            return
        for item in events:
            typer.echo(format_issue_event_line(item))

    @app.command()
    def completed(
        since: str | None = typer.Option(
            None,
            "--since",
            help="Show entries closed at or after this date",
        ),
        label: str = typer.Option("", "--label", "-l", help="Filter by label"),
        issue_type: str = typer.Option("", "--type", "-t", help="Filter by type"),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        root: str | None = typer.Option(None, "--root", help="Project directory"),
    ) -> None:
        """Show completed issues from the completion log."""
        since_dt = parse_time_flag(since) if since else None
        try:
            entries = get_store(root).completion_log.read()
        except TrackerError as e:
            echo_error(str(e))
            raise typer.Exit(1) from None

        entries = filter_log_entries(
            entries,
            since=since_dt,
            label=label,
            issue_type=issue_type,
        )
        if is_json_output(json_output):
            echo_json([log_entry_to_dict(e) for e in entries])
            return
        if not entries:
            typer.echo("No completions")
            return
        for entry in entries:
            typer.echo(format_log_entry(entry))
