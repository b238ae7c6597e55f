"""In-memory filtering and sorting over materialized issues and events."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime

    from worktrack.models import Issue, LogEntry


class _Timestamped(Protocol):
    @property
    def timestamp(self) -> datetime: ...


T = TypeVar("T", bound=_Timestamped)

SORT_KEYS = ("created", "updated", "priority", "title")


@dataclass(frozen=True)
class FilterOptions:
    """Criteria for filtering issues; all set fields combine with AND.

    ``priority=None`` means "no priority filter", so ``priority=0`` still
    filters.
    """

    status: str = ""
    label: str = ""
    assignee: str = ""
    priority: int | None = None
    type: str = ""
    parent_id: str = ""
    roots_only: bool = False

    def matches(self, issue: Issue) -> bool:
        """Check whether ``issue`` satisfies every set criterion."""
        if self.status and issue.status != self.status:
            return False
        if self.label and self.label not in issue.labels:
            return False
        if self.assignee and issue.assignee != self.assignee:
            return False
        if self.priority is not None and issue.priority != self.priority:
            return False
        if self.type and issue.type != self.type:
            return False
        if self.parent_id and issue.parent_id != self.parent_id:
            return False
        return not (self.roots_only and issue.parent_id)


def filter_issues(issues: Iterable[Issue], options: FilterOptions) -> list[Issue]:
    """Return the issues matching ``options``, preserving input order."""
    return [issue for issue in issues if options.matches(issue)]


def sort_issues(issues: Iterable[Issue], sort_by: str | None = None) -> list[Issue]:
    """Return ``issues`` sorted by the given key.

    Supported keys:
    - ``priority``: ascending
    - ``updated``: newest first
    - ``created``: newest first (default)
    - ``title``: case-insensitive, alphabetical

    Raises:
        ValueError: If ``sort_by`` is not a supported key.
    """
    key = sort_by or "created"
    if key == "priority":
        return sorted(issues, key=lambda i: i.priority)
    if key == "updated":
        return sorted(issues, key=lambda i: i.updated, reverse=True)
    if key == "title":
        return sorted(issues, key=lambda i: i.title.lower())
    if key == "created":
        return sorted(issues, key=lambda i: i.created, reverse=True)
    msg = f"Unknown sort key '{sort_by}' (allowed: {', '.join(SORT_KEYS)})"
    raise ValueError(msg)


def filter_events_by_time(
    events: Iterable[T],
    since: datetime | None = None,
    until: datetime | None = None,
) -> list[T]:
    """Keep events with ``since <= timestamp < until``; None means unbounded."""
    return [
        ev
        for ev in events
        if (since is None or ev.timestamp >= since)
        and (until is None or ev.timestamp < until)
    ]


def filter_log_entries(
    entries: Iterable[LogEntry],
    *,
    since: datetime | None = None,
    label: str = "",
    issue_type: str = "",
) -> list[LogEntry]:
    """Filter completion-log entries by close date, label and type."""
    checks: list[Callable[[LogEntry], bool]] = []
    if since is not None:
        checks.append(lambda e: e.closed >= since)
    if label:
        checks.append(lambda e: label in e.labels)
    if issue_type:
        checks.append(lambda e: e.type == issue_type)
    return [e for e in entries if all(check(e) for check in checks)]
