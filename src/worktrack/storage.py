"""Directory-per-issue storage with atomic record writes.

Layout under the project root::

    .work/config.json
    .work/issues/<id>/issue.json      current state, pretty-printed JSON
    .work/issues/<id>/history.jsonl   append-only events, oldest first
    .work/log.jsonl                   completion log

Every mutating method validates fully before touching the disk, writes the
issue record with a temp-file-and-rename, then appends exactly one event.
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from worktrack.config import get_work_dir, validate_transition, validate_type
from worktrack.constants import ISSUE_FILENAME, ISSUES_DIRNAME
from worktrack.errors import (
    BatchError,
    InvalidParentError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from worktrack.event_log import CompletionLog, EventLog
from worktrack.fileio import read_json, write_json
from worktrack.hierarchy import validate_link, validate_parent
from worktrack.idgen import generate_id, is_hex_id, resolve_prefix
from worktrack.models import (
    Comment,
    EditField,
    Event,
    EventOp,
    Issue,
    IssueEvent,
    LogEntry,
    dict_to_issue,
    issue_to_dict,
    utcnow,
    validate_priority,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from worktrack.config import TrackerConfig

logger = logging.getLogger(__name__)


class IssueStore:
    """Owns the on-disk issue directories and their event histories."""

    def __init__(self, root: str | Path, config: TrackerConfig) -> None:
        """Initialize the store.

        Args:
            root: Project root containing the ``.work`` directory.
            config: The process-wide tracker configuration.

        Raises:
            NotFoundError: If ``.work/issues`` does not exist.
        """
        self.root = Path(root)
        self.config = config
        self.work_dir = get_work_dir(self.root)
        self.issues_dir = self.work_dir / ISSUES_DIRNAME
        if not self.issues_dir.is_dir():
            msg = (
                f"Directory '{self.issues_dir}' does not exist. "
                f"Run 'work init' first to initialize the tracker."
            )
            raise NotFoundError(msg)
        self.completion_log = CompletionLog(self.work_dir)

    # -- Paths -------------------------------------------------------------

    def issue_dir(self, issue_id: str) -> Path:
        """Return the directory for ``issue_id``.

        Raises:
            NotFoundError: If the ID cannot name an issue directory.
        """
        if (
            not issue_id
            or issue_id in {".", ".."}
            or any(c in issue_id for c in "/\\")
        ):
            msg = f"Invalid issue ID '{issue_id}'"
            raise NotFoundError(msg)
        return self.issues_dir / issue_id

    def history(self, issue_id: str) -> EventLog:
        """Return the event log for ``issue_id``."""
        return EventLog(self.issue_dir(issue_id))

    # -- Raw persistence ---------------------------------------------------

    def issue_ids(self) -> list[str]:
        """Return every stored issue ID, sorted."""
        try:
            return sorted(p.name for p in self.issues_dir.iterdir() if p.is_dir())
        except OSError as e:
            msg = f"Failed to read issues directory: {e}"
            raise StorageError(msg) from e

    def exists(self, issue_id: str) -> bool:
        """Check if an issue record exists on disk."""
        return (self.issue_dir(issue_id) / ISSUE_FILENAME).is_file()

    def load_issue(self, issue_id: str) -> Issue:
        """Read an issue record.

        Raises:
            NotFoundError: If the issue was never written.
            StorageError: If the record is malformed.
        """
        path = self.issue_dir(issue_id) / ISSUE_FILENAME
        try:
            data = read_json(path)
        except FileNotFoundError:
            msg = f"Issue {issue_id} not found"
            raise NotFoundError(msg) from None
        try:
            return dict_to_issue(data)
        except (KeyError, ValueError, TypeError) as e:
            msg = f"Invalid issue record {path}: {e}"
            raise StorageError(msg) from e

    def save_issue(self, issue: Issue) -> None:
        """Write an issue record atomically, creating its directory."""
        directory = self.issue_dir(issue.id)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            msg = f"Failed to create issue directory {directory}: {e}"
            raise StorageError(msg) from e
        write_json(directory / ISSUE_FILENAME, issue_to_dict(issue))
        logger.debug("Saved issue %s", issue.id)

    def append_event(self, issue_id: str, event: Event) -> None:
        """Append one event to an issue's history."""
        self.history(issue_id).append(event)

    def load_events(self, issue_id: str) -> list[Event]:
        """Read an issue's history, oldest first.

        Returns an empty list when the issue has no history file yet.
        """
        return self.history(issue_id).read()

    def list_issues(self) -> list[Issue]:
        """Load every issue in the tracker, ordered by ID."""
        return [self.load_issue(issue_id) for issue_id in self.issue_ids()]

    def load_all_events(self) -> list[IssueEvent]:
        """Read every event of every issue, annotated with its issue ID."""
        return [
            IssueEvent(issue_id=issue_id, event=event)
            for issue_id in self.issue_ids()
            for event in self.load_events(issue_id)
        ]

    def resolve_prefix(self, prefix: str) -> str:
        """Resolve a (possibly short) prefix to a full issue ID."""
        return resolve_prefix(prefix, self.issue_ids())

    def find_purged(self, prefix: str) -> LogEntry | None:
        """Return the completion-log entry of a purged issue matching ``prefix``."""
        if not prefix:
            return None
        for entry in self.completion_log.read():
            if entry.id.startswith(prefix) and not self.exists(entry.id):
                return entry
        return None

    # -- Mutations -----------------------------------------------------------

    def _persist(self, issue: Issue, event: Event) -> Issue:
        """Save ``issue`` then append ``event`` to its history."""
        self.save_issue(issue)
        self.append_event(issue.id, event)
        return issue

    def create_issue(
        self,
        title: str,
        *,
        description: str = "",
        assignee: str = "",
        priority: int = 0,
        labels: list[str] | None = None,
        issue_type: str = "",
        parent_id: str = "",
        actor: str = "",
    ) -> Issue:
        """Create a new issue and record a ``create`` event.

        Nothing is written unless every check passes.

        Raises:
            ValidationError: If the title is empty or priority is not an int.
            InvalidTypeError: If the type is not configured.
            InvalidParentError: If the parent is missing or is itself a child.
        """
        if not title or not title.strip():
            msg = "Issue must have a non-empty title"
            raise ValidationError(msg)
        try:
            validate_priority(priority)
        except TypeError as e:
            raise ValidationError(str(e)) from None

        resolved_type = issue_type or self.config.default_type
        validate_type(self.config, resolved_type)

        if parent_id:
            parent = self.load_issue(parent_id) if self.exists(parent_id) else None
            validate_parent(parent_id, parent)

        issue_id = generate_id(self.config.id_length, set(self.issue_ids()))
        now = utcnow()
        issue = Issue(
            id=issue_id,
            title=title,
            status=self.config.default_state,
            type=resolved_type,
            priority=priority,
            labels=list(labels or []),
            assignee=assignee,
            parent_id=parent_id,
            created=now,
            updated=now,
            description=description,
        )
        self._persist(issue, Event(op=EventOp.CREATE, timestamp=now, by=actor))
        logger.debug("Created issue %s", issue_id)
        return issue

    def set_status(self, issue_id: str, new_status: str, actor: str = "") -> Issue:
        """Move an issue to ``new_status`` if the workflow allows it.

        Raises:
            NotFoundError: If the issue does not exist.
            InvalidTransitionError: If the transition is not permitted.
        """
        issue = self.load_issue(issue_id)
        validate_transition(self.config, issue.status, new_status)

        old_status = issue.status
        now = utcnow()
        issue.status = new_status
        issue.updated = now
        event = Event(
            op=EventOp.STATUS,
            timestamp=now,
            from_=old_status,
            to=new_status,
            by=actor,
        )
        return self._persist(issue, event)

    def add_comment(self, issue_id: str, text: str, actor: str = "") -> Issue:
        """Append a comment and record a ``comment`` event.

        The event does not carry the comment text; the issue record holds it.
        """
        if not text:
            msg = "Comment text must not be empty"
            raise ValidationError(msg)

        issue = self.load_issue(issue_id)
        now = utcnow()
        issue.comments.append(Comment(text=text, by=actor, created=now))
        issue.updated = now
        return self._persist(issue, Event(op=EventOp.COMMENT, timestamp=now, by=actor))

    def edit_issue(
        self,
        issue_id: str,
        changes: Mapping[EditField, Any],
        actor: str = "",
    ) -> Issue:
        """Apply field edits and record one ``edit`` event.

        Only fields whose value actually differs are applied.  With no
        effective change nothing is written and the issue is returned as is.

        Raises:
            ValidationError: If a value has the wrong shape or the title is empty.
            InvalidTypeError: If a new type is not configured.
        """
        issue = self.load_issue(issue_id)
        normalized = {EditField(f): v for f, v in changes.items()}
        updates = {f: v for f, v in normalized.items() if _field_value(issue, f) != v}
        for edit_field, value in updates.items():
            _check_edit_value(edit_field, value)
            if edit_field is EditField.TYPE:
                validate_type(self.config, value)

        if not updates:
            return issue

        for edit_field, value in updates.items():
            _apply_edit(issue, edit_field, value)

        now = utcnow()
        issue.updated = now
        event = Event(
            op=EventOp.EDIT,
            timestamp=now,
            fields=tuple(EditField.ordered(list(updates))),
            by=actor,
        )
        return self._persist(issue, event)

    def link_issue(self, child_id: str, parent_id: str, actor: str = "") -> Issue:
        """Make ``child_id`` a child of ``parent_id``.

        Raises:
            NotFoundError: If the child does not exist.
            InvalidParentError: If the link would break the two-level tree.
        """
        if child_id == parent_id:
            validate_link(child_id, parent_id, None, ())

        child = self.load_issue(child_id)
        parent = self.load_issue(parent_id) if self.exists(parent_id) else None
        validate_link(child_id, parent_id, parent, self.list_issues())

        now = utcnow()
        child.parent_id = parent_id
        child.updated = now
        event = Event(op=EventOp.LINK, timestamp=now, to=parent_id, by=actor)
        return self._persist(child, event)

    def unlink_issue(self, child_id: str, actor: str = "") -> Issue:
        """Detach ``child_id`` from its parent.

        Raises:
            InvalidParentError: If the issue has no parent.
        """
        child = self.load_issue(child_id)
        if not child.parent_id:
            msg = f"Issue {child_id} has no parent"
            raise InvalidParentError(msg)

        now = utcnow()
        old_parent = child.parent_id
        child.parent_id = ""
        child.updated = now
        event = Event(op=EventOp.UNLINK, timestamp=now, from_=old_parent, by=actor)
        return self._persist(child, event)

    # -- Migrations ----------------------------------------------------------

    def rewrite_all_issues(self) -> int:
        """Re-save every issue in the current on-disk format.

        Returns:
            Number of issues rewritten.
        """
        issues = self.list_issues()
        for issue in issues:
            self.save_issue(issue)
        logger.info("Rewrote %d issues", len(issues))
        return len(issues)

    def rehash_issue(self, issue_id: str) -> str:
        """Give an issue a fresh Crockford Base32 ID.

        Renames the issue directory and rewrites every reference to the old
        ID: the issue's own ``id``, children's ``parent_id``, ``link`` and
        ``unlink`` events, and completion-log entries.  No event is emitted.

        Returns:
            The new ID.
        """
        issue = self.load_issue(issue_id)
        all_ids = set(self.issue_ids())
        all_ids.update(entry.id for entry in self.completion_log.read())
        new_id = generate_id(self.config.id_length, all_ids)

        old_dir = self.issue_dir(issue_id)
        new_dir = self.issue_dir(new_id)
        try:
            old_dir.rename(new_dir)
        except OSError as e:
            msg = f"Failed to rename {old_dir} to {new_dir}: {e}"
            raise StorageError(msg) from e

        issue.id = new_id
        try:
            self.save_issue(issue)
        except (OSError, StorageError):
            # Put the directory back so issue.json keeps matching its path.
            new_dir.rename(old_dir)
            issue.id = issue_id
            raise

        for other_id in self.issue_ids():
            if other_id == new_id:
                continue
            other = self.load_issue(other_id)
            if other.parent_id == issue_id:
                other.parent_id = new_id
                self.save_issue(other)
            self._rewrite_event_refs(other_id, issue_id, new_id)

        entries = self.completion_log.read()
        if any(entry.id == issue_id for entry in entries):
            self.completion_log.rewrite(
                dataclasses.replace(entry, id=new_id) if entry.id == issue_id else entry
                for entry in entries
            )

        logger.info("Rehashed %s -> %s", issue_id, new_id)
        return new_id

    def rehash_all(self) -> dict[str, str]:
        """Rehash every issue that still uses a legacy hex ID.

        Returns:
            Mapping of old ID to new ID.
        """
        mapping: dict[str, str] = {}
        for issue_id in self.issue_ids():
            if not is_hex_id(issue_id):
                continue
            try:
                mapping[issue_id] = self.rehash_issue(issue_id)
            except Exception as e:
                logger.warning("Rehash stopped at %s: %s", issue_id, e)
                raise BatchError("rehash", issue_id, list(mapping)) from e
        return mapping

    def _rewrite_event_refs(self, issue_id: str, old_id: str, new_id: str) -> None:
        """Point ``link``/``unlink`` events of ``issue_id`` at ``new_id``."""
        history = self.history(issue_id)
        events = history.read()
        changed = False
        rewritten: list[Event] = []
        for event in events:
            if event.op in (EventOp.LINK, EventOp.UNLINK) and old_id in (
                event.from_,
                event.to,
            ):
                event = dataclasses.replace(
                    event,
                    from_=new_id if event.from_ == old_id else event.from_,
                    to=new_id if event.to == old_id else event.to,
                )
                changed = True
            rewritten.append(event)
        if changed:
            history.rewrite(rewritten)


def _field_value(issue: Issue, edit_field: EditField) -> Any:
    """Read the current value of an editable field."""
    return getattr(issue, edit_field.value)


def _check_edit_value(edit_field: EditField, value: Any) -> None:
    """Validate the shape of an edited value."""
    if edit_field is EditField.PRIORITY:
        try:
            validate_priority(value)
        except TypeError as e:
            raise ValidationError(str(e)) from None
    elif edit_field is EditField.LABELS:
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            msg = "Labels must be a list of strings"
            raise ValidationError(msg)
    elif not isinstance(value, str):
        msg = f"{edit_field.value.capitalize()} must be a string"
        raise ValidationError(msg)
    if edit_field is EditField.TITLE and not value.strip():
        msg = "Issue must have a non-empty title"
        raise ValidationError(msg)


def _apply_edit(issue: Issue, edit_field: EditField, value: Any) -> None:
    """Set an editable field on ``issue``."""
    if edit_field is EditField.LABELS:
        value = list(value)
    setattr(issue, edit_field.value, value)
