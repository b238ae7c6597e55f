"""Data models for worktrack issues, events and completion-log entries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from typing_extensions import Self

from worktrack.constants import DEFAULT_PRIORITY, TERMINAL_STATUSES


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Serialize a datetime as ISO-8601 in UTC."""
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(raw: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing ``Z``.

    Naive timestamps are assumed to be UTC.
    """
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class EventOp(str, Enum):
    """Kinds of history events."""

    CREATE = "create"
    STATUS = "status"
    EDIT = "edit"
    COMMENT = "comment"
    LINK = "link"
    UNLINK = "unlink"


class EditField(str, Enum):
    """Issue fields that an ``edit`` event can report as changed.

    Declaration order is the canonical order used in events.
    """

    TITLE = "title"
    DESCRIPTION = "description"
    TYPE = "type"
    ASSIGNEE = "assignee"
    PRIORITY = "priority"
    LABELS = "labels"

    @classmethod
    def ordered(cls, fields: set[EditField] | list[EditField]) -> list[EditField]:
        """Return ``fields`` in canonical order without duplicates."""
        wanted = set(fields)
        return [f for f in cls if f in wanted]


@dataclass
class Comment:
    """A comment on an issue."""

    text: str
    by: str = ""
    created: datetime = field(default_factory=utcnow)


@dataclass
class Issue:
    """An issue in the tracker."""

    id: str
    title: str
    status: str
    type: str
    priority: int = DEFAULT_PRIORITY
    labels: list[str] = field(default_factory=list[str])
    assignee: str = ""
    parent_id: str = ""
    created: datetime = field(default_factory=utcnow)
    updated: datetime = field(default_factory=utcnow)
    description: str = ""
    comments: list[Comment] = field(default_factory=list[Comment])

    def is_terminal(self) -> bool:
        """Check if the issue is done or cancelled."""
        return self.status in TERMINAL_STATUSES

    def is_root(self) -> bool:
        """Check if the issue has no parent."""
        return not self.parent_id


@dataclass(frozen=True)
class Event:
    """An immutable fact appended to an issue's history."""

    op: EventOp
    timestamp: datetime = field(default_factory=utcnow)
    from_: str = ""
    to: str = ""
    fields: tuple[EditField, ...] = ()
    text: str = ""
    by: str = ""


@dataclass(frozen=True)
class IssueEvent:
    """An event paired with the ID of the issue it belongs to."""

    issue_id: str
    event: Event

    @property
    def timestamp(self) -> datetime:
        """Timestamp of the wrapped event."""
        return self.event.timestamp


@dataclass(frozen=True)
class LogEntry:
    """Permanent summary of a compacted or purged issue."""

    id: str
    title: str
    type: str
    status: str
    labels: tuple[str, ...]
    created: datetime
    closed: datetime

    @classmethod
    def from_issue(cls, issue: Issue) -> Self:
        """Summarize an issue; ``closed`` is its last update time."""
        return cls(
            id=issue.id,
            title=issue.title,
            type=issue.type,
            status=issue.status,
            labels=tuple(issue.labels),
            created=issue.created,
            closed=issue.updated,
        )


def validate_priority(priority: Any) -> None:
    """Validate that priority is an integer (any range)."""
    if isinstance(priority, bool) or not isinstance(priority, int):
        msg = f"Priority must be an integer, got {priority!r}"
        raise TypeError(msg)


def issue_to_dict(issue: Issue) -> dict[str, Any]:
    """Convert an Issue to a dictionary, serializing datetimes.

    Optional text fields are omitted when empty.
    """
    data: dict[str, Any] = {
        "id": issue.id,
        "title": issue.title,
        "status": issue.status,
        "type": issue.type,
        "priority": issue.priority,
        "labels": list(issue.labels),
    }
    if issue.assignee:
        data["assignee"] = issue.assignee
    if issue.parent_id:
        data["parent_id"] = issue.parent_id
    data["created"] = format_timestamp(issue.created)
    data["updated"] = format_timestamp(issue.updated)
    if issue.description:
        data["description"] = issue.description
    if issue.comments:
        data["comments"] = [
            {
                "text": comment.text,
                "created": format_timestamp(comment.created),
                "by": comment.by,
            }
            for comment in issue.comments
        ]
    return data


def _require_mapping(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        msg = f"{what} must be a JSON object, got {type(data).__name__}"
        raise TypeError(msg)
    return data


def _str_field(data: dict[str, Any], key: str, default: str | None = None) -> str:
    """Return ``data[key]`` as a string, or ``default`` when it is absent."""
    if key not in data and default is not None:
        return default
    value = data[key]
    if not isinstance(value, str):
        msg = f"{key} must be a string, got {type(value).__name__}"
        raise TypeError(msg)
    return value


def _str_list_field(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        msg = f"{key} must be a list of strings"
        raise TypeError(msg)
    return list(value)


def _dict_to_comment(data: Any) -> Comment:
    data = _require_mapping(data, "comment")
    return Comment(
        text=_str_field(data, "text"),
        by=_str_field(data, "by", ""),
        created=parse_timestamp(_str_field(data, "created")),
    )


def dict_to_issue(data: dict[str, Any]) -> Issue:
    """Convert a dictionary to an Issue, deserializing datetimes.

    Every field present must have its documented JSON type.

    Raises:
        KeyError: If a required field is missing.
        TypeError: If a field has the wrong JSON type.
        ValueError: If a timestamp cannot be parsed or the title is empty.
    """
    data = _require_mapping(data, "issue")
    title = _str_field(data, "title")
    if not title.strip():
        msg = "title must not be empty"
        raise ValueError(msg)
    priority = data.get("priority", DEFAULT_PRIORITY)
    validate_priority(priority)
    raw_comments = data.get("comments") or []
    if not isinstance(raw_comments, list):
        msg = "comments must be a list"
        raise TypeError(msg)
    return Issue(
        id=_str_field(data, "id"),
        title=title,
        status=_str_field(data, "status"),
        type=_str_field(data, "type", ""),
        priority=priority,
        labels=_str_list_field(data, "labels"),
        assignee=_str_field(data, "assignee", ""),
        parent_id=_str_field(data, "parent_id", ""),
        created=parse_timestamp(_str_field(data, "created")),
        updated=parse_timestamp(_str_field(data, "updated")),
        description=_str_field(data, "description", ""),
        comments=[_dict_to_comment(c) for c in raw_comments],
    )


def event_to_dict(event: Event) -> dict[str, Any]:
    """Serialize an Event, omitting empty fields."""
    data: dict[str, Any] = {
        "ts": format_timestamp(event.timestamp),
        "op": event.op.value,
    }
    if event.fields:
        data["fields"] = [f.value for f in event.fields]
    if event.from_:
        data["from"] = event.from_
    if event.to:
        data["to"] = event.to
    if event.text:
        data["text"] = event.text
    if event.by:
        data["by"] = event.by
    return data


def dict_to_event(data: dict[str, Any]) -> Event:
    """Deserialize an Event from its JSONL form."""
    data = _require_mapping(data, "event")
    return Event(
        op=EventOp(data["op"]),
        timestamp=parse_timestamp(_str_field(data, "ts")),
        from_=_str_field(data, "from", ""),
        to=_str_field(data, "to", ""),
        fields=tuple(EditField(f) for f in _str_list_field(data, "fields")),
        text=_str_field(data, "text", ""),
        by=_str_field(data, "by", ""),
    )


def log_entry_to_dict(entry: LogEntry) -> dict[str, Any]:
    """Serialize a LogEntry for log.jsonl."""
    data: dict[str, Any] = {
        "id": entry.id,
        "title": entry.title,
        "type": entry.type,
        "status": entry.status,
    }
    if entry.labels:
        data["labels"] = list(entry.labels)
    data["created"] = format_timestamp(entry.created)
    data["closed"] = format_timestamp(entry.closed)
    return data


def dict_to_log_entry(data: dict[str, Any]) -> LogEntry:
    """Deserialize a LogEntry from log.jsonl."""
    data = _require_mapping(data, "log entry")
    return LogEntry(
        id=_str_field(data, "id"),
        title=_str_field(data, "title"),
        type=_str_field(data, "type", ""),
        status=_str_field(data, "status"),
        labels=tuple(_str_list_field(data, "labels")),
        created=parse_timestamp(_str_field(data, "created")),
        closed=parse_timestamp(_str_field(data, "closed")),
    )
