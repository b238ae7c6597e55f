"""Display and formatting functions for the worktrack CLI."""

from __future__ import annotations

from io import StringIO
from typing import TYPE_CHECKING

import typer
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from worktrack.constants import EVENT_SYMBOLS, STATUS_COLORS, TYPE_COLORS
from worktrack.models import EventOp

if TYPE_CHECKING:
    from worktrack.models import Event, Issue, IssueEvent, LogEntry

DT_FMT = "%Y-%m-%d %H:%M:%S"
COMMENT_PREVIEW_MAX = 60


def format_event_detail(event: Event) -> str:
    """Describe a single event in one short line."""
    if event.op is EventOp.STATUS:
        return f"status: {event.from_} → {event.to}"
    if event.op is EventOp.EDIT:
        return f"edit: {', '.join(f.value for f in event.fields)}"
    if event.op is EventOp.COMMENT:
        if not event.text:
            return "comment"
        text = event.text
        if len(text) > COMMENT_PREVIEW_MAX:
            text = text[: COMMENT_PREVIEW_MAX - 3] + "..."
        return f"comment: {text}"
    if event.op is EventOp.LINK:
        return f"link: parent={event.to}"
    if event.op is EventOp.UNLINK:
        return f"unlink: was parent={event.from_}"
    return event.op.value


def format_event_line(event: Event, issue_id: str = "") -> str:
    """Format an event for ``log`` / ``history`` output."""
    symbol = EVENT_SYMBOLS.get(event.op.value, " ")
    ts = event.timestamp.strftime(DT_FMT)
    issue_str = f"{typer.style(issue_id, fg='cyan')}  " if issue_id else ""
    by = f"  ({event.by})" if event.by else ""
    return f"{ts}  {symbol} {issue_str}{format_event_detail(event)}{by}"


def format_issue_event_line(item: IssueEvent) -> str:
    """Format an event that carries its issue ID."""
    return format_event_line(item.event, item.issue_id)


def _styled_key(label: str) -> str:
    """Style a field label as bold cyan."""
    return typer.style(label, fg="cyan", bold=True)


def child_progress(issue_id: str, issues: list[Issue]) -> tuple[int, int]:
    """Return (completed, total) counts of the children of ``issue_id``."""
    children = [i for i in issues if i.parent_id == issue_id]
    return sum(1 for c in children if c.is_terminal()), len(children)


def format_issue_full(issue: Issue, children: list[Issue]) -> str:
    """Format issue for full display, including children and comments."""
    key = _styled_key
    lines = [
        f"{key('ID:')}          {issue.id}",
        f"{key('Title:')}       {issue.title}",
        f"{key('Status:')}      {issue.status}",
        f"{key('Type:')}        {issue.type}",
        f"{key('Priority:')}    {issue.priority}",
    ]
    if issue.labels:
        lines.append(f"{key('Labels:')}      {', '.join(issue.labels)}")
    if issue.assignee:
        lines.append(f"{key('Assignee:')}    {issue.assignee}")
    if issue.parent_id:
        lines.append(f"{key('Parent:')}      {issue.parent_id}")
    if issue.description:
        lines.append(f"{key('Description:')} {issue.description}")
    lines.append(f"{key('Created:')}     {issue.created.strftime(DT_FMT)}")
    lines.append(f"{key('Updated:')}     {issue.updated.strftime(DT_FMT)}")

    if children:
        done = sum(1 for c in children if c.is_terminal())
        lines.append(f"\n{key('Children:')} {done}/{len(children)} done")
        for child in children:
            lines.append(f"  {child.id:<8} {child.status:<10} {child.title}")

    if issue.comments:
        lines.append(f"\n{key('Comments:')}")
        for comment in issue.comments:
            ts = comment.created.strftime(DT_FMT)
            lines.append(f"  [{ts}] ({comment.by}): {comment.text}")

    return "\n".join(lines)


def format_issue_table(
    issues: list[Issue],
    all_issues: list[Issue],
    prefixes: dict[str, str] | None = None,
) -> str:
    """Format issues as an aligned table using Rich.

    Args:
        issues: Issues to show, already filtered and sorted.
        all_issues: Every issue, used for child progress counts.
        prefixes: Optional shortest unique prefix per ID, highlighted in bold.

    Returns:
        Formatted table string (rendered by Rich)
    """
    if not issues:
        return ""

    table = Table(
        show_header=True,
        header_style="bold",
        box=box.ROUNDED,
        pad_edge=False,
        show_edge=False,
    )
    table.add_column("ID", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Type", no_wrap=True)
    table.add_column("Pri", no_wrap=True)
    table.add_column("Children", no_wrap=True)
    table.add_column("Title", overflow="fold")
    table.add_column("Labels", no_wrap=False)

    for issue in issues:
        id_str = issue.id
        if prefixes and issue.id in prefixes:
            short = prefixes[issue.id]
            id_str = f"[bold]{short}[/]{issue.id[len(short):]}"
        status_color = STATUS_COLORS.get(issue.status, "white")
        type_color = TYPE_COLORS.get(issue.type, "white")
        done, total = child_progress(issue.id, all_issues)
        labels_str = ", ".join(escape(lbl) for lbl in issue.labels)
        table.add_row(
            id_str,
            f"[{status_color}]{issue.status}[/]",
            f"[{type_color}]{issue.type}[/]",
            str(issue.priority),
            f"{done}/{total}" if total else "",
            escape(issue.title),
            f"[cyan]{labels_str}[/]" if labels_str else "",
        )

    string_io = StringIO()
    console = Console(file=string_io, force_terminal=True, width=None)
    console.print(table)
    return string_io.getvalue().rstrip()


def format_log_entry(entry: LogEntry) -> str:
    """Format a completion-log entry for ``completed`` output."""
    labels = f" [{','.join(entry.labels)}]" if entry.labels else ""
    closed = entry.closed.date().isoformat()
    return f"{closed}  {entry.id}  {entry.status}  {entry.title}{labels}"
