"""Compaction and garbage collection of completed issues.

Both operations are lossy for the issue itself but never for the record
that it was completed: a LogEntry is always appended to ``log.jsonl``
before anything is truncated or deleted.
"""

from __future__ import annotations

import logging
import shutil
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from worktrack.constants import (
    COMPACT_DESCRIPTION_MAX,
    DEFAULT_GC_DAYS,
    TERMINAL_STATUSES,
)
from worktrack.errors import BatchError, NotCompactableError, StorageError
from worktrack.hierarchy import has_children
from worktrack.models import EventOp, LogEntry, utcnow

if TYPE_CHECKING:
    from worktrack.models import Event, Issue
    from worktrack.storage import IssueStore

logger = logging.getLogger(__name__)


def truncate_description(description: str) -> str:
    """Keep only the first line, capped at ``COMPACT_DESCRIPTION_MAX`` chars."""
    first_line = description.split("\n", 1)[0]
    return first_line[:COMPACT_DESCRIPTION_MAX]


def compact_events(events: list[Event]) -> list[Event]:
    """Collapse a history to its create event and final terminal status event.

    The terminal event is the most recent ``status`` event whose ``to`` is
    done or cancelled; everything in between is dropped.
    """
    if not events:
        return []

    create = next((e for e in events if e.op is EventOp.CREATE), events[0])
    compacted = [create]
    for event in reversed(events):
        if event is create:
            break
        if event.op is EventOp.STATUS and event.to in TERMINAL_STATUSES:
            compacted.append(event)
            break
    return compacted


class Compactor:
    """Shrinks or removes storage for done/cancelled issues."""

    def __init__(self, store: IssueStore) -> None:
        self.store = store
        self.log = store.completion_log
        # Log entries collapsed by the last garbage_collect run.
        self.duplicates_removed = 0

    def compact_issue(self, issue_id: str) -> Issue:
        """Strip a completed issue down to minimal metadata.

        Appends a LogEntry first, then truncates the description, clears
        comments and collapses history to create + final status.

        Raises:
            NotFoundError: If the issue does not exist.
            NotCompactableError: If the issue is not done/cancelled.
        """
        issue = self.store.load_issue(issue_id)
        if not issue.is_terminal():
            msg = f"Can only compact done/cancelled issues (current: {issue.status})"
            raise NotCompactableError(msg)

        self.log.append(LogEntry.from_issue(issue))

        issue.description = truncate_description(issue.description)
        issue.comments = []
        self.store.save_issue(issue)

        history = self.store.history(issue_id)
        events = history.read()
        if events:
            history.rewrite(compact_events(events))

        logger.debug("Compacted %s", issue_id)
        return issue

    def compact_all_done(self) -> list[str]:
        """Compact every done/cancelled issue.

        Returns:
            IDs of the compacted issues.

        Raises:
            BatchError: If an issue fails; ``processed`` lists those
                compacted before it.
        """
        compacted: list[str] = []
        for issue in self.store.list_issues():
            if not issue.is_terminal():
                continue
            try:
                self.compact_issue(issue.id)
            except Exception as e:
                logger.warning("Compaction stopped at %s: %s", issue.id, e)
                raise BatchError("compact", issue.id, compacted) from e
            compacted.append(issue.id)

        logger.info("Compacted %d issues", len(compacted))
        return compacted

    def is_compacted(self, issue: Issue) -> bool:
        """Check if ``issue`` was already compacted and logged."""
        if issue.comments or len(issue.description) > COMPACT_DESCRIPTION_MAX:
            return False
        if "\n" in issue.description:
            return False
        events = self.store.load_events(issue.id)
        if compact_events(events) != events or len(events) != 2:
            return False
        return self.log.contains(issue.id)

    def purge_issue(self, issue: Issue) -> None:
        """Delete an issue's directory, logging it first unless already logged.

        Raises:
            NotCompactableError: If the issue is not done/cancelled.
        """
        if not issue.is_terminal():
            msg = f"Can only purge done/cancelled issues (current: {issue.status})"
            raise NotCompactableError(msg)

        if not self.is_compacted(issue):
            self.log.append(LogEntry.from_issue(issue))

        directory = self.store.issue_dir(issue.id)
        try:
            shutil.rmtree(directory)
        except OSError as e:
            msg = f"Failed to remove {directory}: {e}"
            raise StorageError(msg) from e
        logger.debug("Purged %s", issue.id)

    def select_for_gc(
        self,
        max_age_days: int | None = DEFAULT_GC_DAYS,
        keep: int | None = None,
        now: datetime | None = None,
    ) -> list[Issue]:
        """Choose which completed issues ``garbage_collect`` would purge.

        - only ``max_age_days``: purge issues last updated before the cutoff
        - only ``keep``: retain the ``keep`` most recently updated, purge the rest
        - both: purge only issues beyond ``keep`` *and* older than the cutoff

        A ``keep`` of zero or less counts as unset; with neither threshold the
        default age applies.  A parent is never selected while one of its
        children would stay behind.
        """
        if keep is not None and keep <= 0:
            keep = None
        if max_age_days is None and keep is None:
            max_age_days = DEFAULT_GC_DAYS

        issues = self.store.list_issues()
        completed = sorted(
            (i for i in issues if i.is_terminal()),
            key=lambda i: i.updated,
            reverse=True,
        )
        current = now or utcnow()
        cutoff = (
            current - timedelta(days=max_age_days) if max_age_days is not None else None
        )
        kept_by_count = {i.id for i in completed[:keep]} if keep is not None else None

        selected: list[Issue] = []
        for issue in completed:
            old_enough = cutoff is not None and issue.updated < cutoff
            beyond_keep = kept_by_count is not None and issue.id not in kept_by_count
            if kept_by_count is not None and cutoff is not None:
                purge = old_enough and beyond_keep
            elif kept_by_count is not None:
                purge = beyond_keep
            else:
                purge = old_enough
            if purge:
                selected.append(issue)

        # Children cannot have children, so dropping a parent strands no one.
        selected_ids = {i.id for i in selected}
        survivors = [i for i in issues if i.id not in selected_ids]
        protected = {i.id for i in selected if has_children(i.id, survivors)}
        for parent_id in sorted(protected):
            logger.debug("Keeping %s: it still has children", parent_id)
        return [i for i in selected if i.id not in protected]

    def garbage_collect(
        self,
        max_age_days: int | None = DEFAULT_GC_DAYS,
        keep: int | None = None,
        now: datetime | None = None,
    ) -> list[str]:
        """Remove on-disk state of old completed issues.

        Each issue gets a LogEntry (unless already compacted and logged)
        before its directory is removed.  Duplicate log entries are
        collapsed afterwards.

        Returns:
            IDs of the purged issues.

        Raises:
            BatchError: If an issue fails; ``processed`` lists those purged
                before it.
        """
        purged: list[str] = []
        for issue in self.select_for_gc(max_age_days, keep, now):
            try:
                self.purge_issue(issue)
            except Exception as e:
                logger.warning("Garbage collection stopped at %s: %s", issue.id, e)
                raise BatchError("gc", issue.id, purged) from e
            purged.append(issue.id)

        logger.info("Purged %d issues", len(purged))
        self.duplicates_removed = self.deduplicate_log() if purged else 0
        return purged

    def deduplicate_log(self) -> int:
        """Collapse repeated log entries for the same issue to one.

        The surviving entry is the one with the latest ``closed`` time (the
        later line wins ties), placed where that ID first appeared.

        Returns:
            Number of entries removed.
        """
        entries = self.log.read()
        best: dict[str, LogEntry] = {}
        order: list[str] = []
        for entry in entries:
            current = best.get(entry.id)
            if current is None:
                order.append(entry.id)
                best[entry.id] = entry
            elif entry.closed >= current.closed:
                best[entry.id] = entry

        removed = len(entries) - len(order)
        if removed:
            self.log.rewrite(best[issue_id] for issue_id in order)
            logger.info("Removed %d duplicate log entries", removed)
        return removed
