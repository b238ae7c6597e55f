"""Append-only logs: per-issue history and the tracker-wide completion log."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from worktrack.constants import HISTORY_FILENAME, LOG_FILENAME
from worktrack.errors import StorageError
from worktrack.fileio import append_jsonl, read_jsonl, rewrite_jsonl
from worktrack.models import (
    dict_to_event,
    dict_to_log_entry,
    event_to_dict,
    log_entry_to_dict,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from worktrack.models import Event, LogEntry

logger = logging.getLogger(__name__)


class EventLog:
    """Append-only event history stored in ``issues/<id>/history.jsonl``."""

    def __init__(self, issue_dir: str | Path) -> None:
        self.issue_dir = Path(issue_dir)
        self.path = self.issue_dir / HISTORY_FILENAME

    def append(self, event: Event) -> None:
        """Append a single event record to history.jsonl."""
        append_jsonl(self.path, [event_to_dict(event)])
        logger.debug("Appended %s event to %s", event.op.value, self.path)

    def read(self) -> list[Event]:
        """Read events in append order (oldest first).

        Returns an empty list if the history file does not exist yet.
        """
        events: list[Event] = []
        for line_idx, data in enumerate(read_jsonl(self.path)):
            try:
                events.append(dict_to_event(data))
            except (KeyError, ValueError, TypeError) as e:
                msg = f"Invalid event in {self.path} (record {line_idx + 1}): {e}"
                raise StorageError(msg) from e
        return events

    def rewrite(self, events: Iterable[Event]) -> None:
        """Atomically replace the history with ``events``.

        Only compaction and rehash may call this; everything else appends.
        """
        rewrite_jsonl(self.path, [event_to_dict(e) for e in events])


class CompletionLog:
    """Permanent summaries of compacted/purged issues in ``.work/log.jsonl``."""

    def __init__(self, work_dir: str | Path) -> None:
        self.work_dir = Path(work_dir)
        self.path = self.work_dir / LOG_FILENAME

    def append(self, entry: LogEntry) -> None:
        """Append one entry to log.jsonl."""
        append_jsonl(self.path, [log_entry_to_dict(entry)])
        logger.debug("Logged completion of %s", entry.id)

    def read(self) -> list[LogEntry]:
        """Read all entries in append order.

        Returns an empty list if the log does not exist yet.
        """
        entries: list[LogEntry] = []
        for line_idx, data in enumerate(read_jsonl(self.path)):
            try:
                entries.append(dict_to_log_entry(data))
            except (KeyError, ValueError, TypeError) as e:
                msg = f"Invalid log entry in {self.path} (record {line_idx + 1}): {e}"
                raise StorageError(msg) from e
        return entries

    def contains(self, issue_id: str) -> bool:
        """Check if any entry exists for ``issue_id``."""
        return any(entry.id == issue_id for entry in self.read())

    def rewrite(self, entries: Iterable[LogEntry]) -> None:
        """Atomically replace the log with ``entries``."""
        rewrite_jsonl(self.path, [log_entry_to_dict(e) for e in entries])
