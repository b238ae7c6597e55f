"""Process-wide ``--json`` switch and the output helpers that honour it."""

from __future__ import annotations

import sys
from typing import Any

import orjson
import typer

_json_mode: bool = False


def set_json_flag(value: bool) -> None:
    """Record the global ``--json`` option for this invocation."""
    global _json_mode  # noqa: PLW0603
    _json_mode = value


def is_json_output(local_flag: bool = False) -> bool:
    """Return True if either the global or the command's ``--json`` is set.

    A set local flag switches the whole process into JSON mode, so errors
    raised later in the same command come out as JSON too.
    """
    global _json_mode  # noqa: PLW0603
    if local_flag:
        _json_mode = True
    return _json_mode


def echo_json(data: Any) -> None:
    """Print ``data`` as indented JSON on stdout."""
    typer.echo(orjson.dumps(data, option=orjson.OPT_INDENT_2).decode())


def _echo_stderr(kind: str, message: str) -> None:
    if _json_mode:
        sys.stderr.write(orjson.dumps({kind: message}).decode() + "\n")
    else:
        typer.echo(f"{kind.capitalize()}: {message}", err=True)


def echo_error(message: str) -> None:
    """Write ``Error: ...`` (or ``{"error": ...}`` in JSON mode) to stderr."""
    _echo_stderr("error", message)


def echo_warning(message: str) -> None:
    """Write a non-fatal ``Warning: ...`` to stderr."""
    _echo_stderr("warning", message)
