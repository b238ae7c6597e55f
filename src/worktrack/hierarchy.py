"""Two-level parent/child hierarchy rules.

An issue is either a root or the child of a root.  Enforcing that locally
on every link means the tree can never grow deeper than two levels, so no
cycle detection is needed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from worktrack.errors import InvalidParentError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from worktrack.models import Issue


def children_of(parent_id: str, issues: Iterable[Issue]) -> list[Issue]:
    """Return every issue whose parent is ``parent_id``."""
    return [issue for issue in issues if issue.parent_id == parent_id]


def has_children(issue_id: str, issues: Iterable[Issue]) -> bool:
    """Check if any issue names ``issue_id`` as its parent."""
    return any(issue.parent_id == issue_id for issue in issues)


def validate_parent(parent_id: str, parent: Issue | None) -> None:
    """Check that ``parent`` exists and is itself a root.

    Raises:
        InvalidParentError: If the parent is missing or is already a child.
    """
    if parent is None:
        msg = f"Parent issue not found: {parent_id}"
        raise InvalidParentError(msg)
    if parent.parent_id:
        msg = f"Parent {parent_id} is itself a child (no grandchildren allowed)"
        raise InvalidParentError(msg)


def validate_link(
    child_id: str,
    parent_id: str,
    parent: Issue | None,
    issues: Iterable[Issue],
) -> None:
    """Check that ``child_id`` may be placed under ``parent_id``.

    Args:
        child_id: The issue that would gain a parent.
        parent_id: The prospective parent.
        parent: The loaded parent issue, or None if it does not exist.
        issues: Every issue in the tracker.

    Raises:
        InvalidParentError: On a self-link, a missing parent, a parent that
            is itself a child, or a child that already has children.
    """
    if child_id == parent_id:
        msg = "Cannot link issue to itself"
        raise InvalidParentError(msg)

    validate_parent(parent_id, parent)

    if has_children(child_id, issues):
        msg = f"Issue {child_id} has children and cannot become a child"
        raise InvalidParentError(msg)
