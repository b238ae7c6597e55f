"""Plain-text round-trip of an issue through the user's editor.

The text format is a block of ``Key: value`` headers, a blank line, then the
description.  Lines starting with ``#`` are ignored on the way back in.
"""

from __future__ import annotations

import os
import shlex
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from worktrack.errors import TrackerError, ValidationError

if TYPE_CHECKING:
    from worktrack.models import Issue

DEFAULT_EDITOR = "vi"


class EditAborted(TrackerError):
    """The editor exited with a non-zero status."""


@dataclass
class ParsedIssue:
    """Fields recovered from an edited issue text."""

    title: str
    description: str = ""
    type: str = ""
    assignee: str = ""
    priority: int = 0
    labels: list[str] = field(default_factory=list[str])


def marshal_issue(issue: Issue) -> str:
    """Render ``issue`` as editable text."""
    lines = [
        f"Title: {issue.title}",
        f"Type: {issue.type}",
        f"Priority: {issue.priority}",
        f"Labels: {', '.join(issue.labels)}",
        f"Assignee: {issue.assignee}",
        "",
    ]
    if issue.description:
        lines.append(issue.description)
    lines.extend(
        [
            "",
            f"# ID: {issue.id} | Status: {issue.status} | "
            f"Created: {issue.created.date().isoformat()}",
            "# Lines starting with '#' are ignored.",
            "# Leave the description section empty to clear it.",
        ],
    )
    return "\n".join(lines) + "\n"


def unmarshal_issue(text: str) -> ParsedIssue:
    """Parse text produced by :func:`marshal_issue` after editing.

    Headers end at the first blank line; everything after it (minus ``#``
    lines) is the description.  An unparseable priority becomes 0.

    Raises:
        ValidationError: If the title header is missing or empty.
    """
    header_lines: list[str] = []
    body_lines: list[str] = []
    past_header = False
    for line in text.split("\n"):
        if line.startswith("#"):
            continue
        if past_header:
            body_lines.append(line)
        elif line == "":
            past_header = True
        else:
            header_lines.append(line)

    headers: dict[str, str] = {}
    for line in header_lines:
        key, sep, value = line.partition(":")
        if sep:
            headers[key.strip()] = value.strip()

    title = headers.get("Title", "")
    if not title:
        msg = "Title is required"
        raise ValidationError(msg)

    try:
        priority = int(headers.get("Priority", "0"))
    except ValueError:
        priority = 0

    labels = [
        label.strip() for label in headers.get("Labels", "").split(",") if label.strip()
    ]

    return ParsedIssue(
        title=title,
        description="\n".join(body_lines).strip(),
        type=headers.get("Type", ""),
        assignee=headers.get("Assignee", ""),
        priority=priority,
        labels=labels,
    )


class EditorStrategy(Protocol):
    """Something that lets a human edit ``content`` and returns the result."""

    def edit(self, content: str, prefix: str) -> str: ...


def get_editor_command() -> list[str]:
    """Return the editor command from ``$VISUAL``/``$EDITOR``, else ``vi``."""
    raw = os.environ.get("VISUAL") or os.environ.get("EDITOR") or DEFAULT_EDITOR
    return shlex.split(raw)


class ExternalEditor:
    """Edit content in the user's editor via a temporary file."""

    def __init__(self, command: list[str] | None = None) -> None:
        self.command = command or get_editor_command()

    def edit(self, content: str, prefix: str) -> str:
        """Open the editor on a temp file seeded with ``content``.

        Raises:
            EditAborted: If the editor exits with a non-zero status.
            TrackerError: If the editor cannot be started.
        """
        with tempfile.NamedTemporaryFile(
            mode="w",
            prefix=f"{prefix}-",
            suffix=".md",
            delete=False,
        ) as tmp_file:
            tmp_file.write(content)
            tmp_path = Path(tmp_file.name)

        try:
            try:
                result = subprocess.run([*self.command, str(tmp_path)], check=False)
            except OSError as e:
                msg = (
                    f"Editor {self.command[0]!r} could not be started; "
                    f"set $EDITOR to your preferred editor ({e})"
                )
                raise TrackerError(msg) from e
            if result.returncode != 0:
                msg = f"Editor exited with status {result.returncode}"
                raise EditAborted(msg)
            return tmp_path.read_text()
        finally:
            tmp_path.unlink(missing_ok=True)
