"""Shared infrastructure for worktrack CLI commands."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from typer.core import TyperGroup

from worktrack.compaction import Compactor
from worktrack.config import find_tracker_root, load_config
from worktrack.editor import ExternalEditor
from worktrack.errors import NotFoundError
from worktrack.storage import IssueStore

if TYPE_CHECKING:
    import click

    from worktrack.editor import EditorStrategy


class SortedGroup(TyperGroup):
    """Typer group that lists commands in alphabetical order."""

    def list_commands(self, ctx: click.Context) -> list[str]:
        """Return commands sorted alphabetically."""
        return sorted(super().list_commands(ctx))


def configure_logging(verbose: bool) -> None:
    """Send library log records to stderr when ``--verbose`` is given."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(levelname)s %(name)s: %(message)s",
        )


def get_store(root: str | None = None) -> IssueStore:
    """Open the tracker for ``root``, or search upward from the cwd.

    Raises:
        NotFoundError: If no initialized tracker is found.
    """
    tracker_root = Path(root) if root else find_tracker_root()
    return IssueStore(tracker_root, load_config(tracker_root))


def get_compactor(store: IssueStore) -> Compactor:
    """Return a compactor bound to ``store``."""
    return Compactor(store)


def get_editor() -> EditorStrategy:
    """Return the editor used for interactive ``edit``."""
    return ExternalEditor()


def resolve_id(store: IssueStore, prefix: str) -> str:
    """Resolve a prefix, mentioning purged issues in the not-found error."""
    try:
        return store.resolve_prefix(prefix)
    except NotFoundError:
        purged = store.find_purged(prefix)
        if purged is None:
            raise
        msg = (
            f"Issue {purged.id} was purged (completed "
            f"{purged.closed.date().isoformat()}). "
            "Use 'work completed' to view completion history"
        )
        raise NotFoundError(msg) from None


def parse_time_flag(value: str) -> datetime:
    """Parse a ``--since``/``--until`` value (YYYY-MM-DD or ISO-8601).

    Raises:
        typer.BadParameter: If the value matches neither format.
    """
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        msg = f"Invalid time {value!r} (use YYYY-MM-DD or ISO-8601)"
        raise typer.BadParameter(msg) from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_labels(raw: str) -> list[str]:
    """Split a comma-separated label list, dropping blanks."""
    return [label.strip() for label in raw.split(",") if label.strip()]
