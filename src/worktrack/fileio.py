"""Low-level file helpers: atomic rewrites and append-only JSONL."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

import orjson

from worktrack.errors import StorageError

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)


def atomic_write(path: Path, payload: bytes) -> None:
    """Replace ``path`` with ``payload`` via a temp file and rename.

    The temp file lives in the same directory so the final ``replace`` is an
    atomic rename on POSIX filesystems.  A crash leaves either the old file
    or the new one, never a half-written mix.
    """
    with tempfile.NamedTemporaryFile(
        mode="wb",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    ) as tmp_file:
        tmp_path = Path(tmp_file.name)
        try:
            tmp_file.write(payload)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            msg = f"Failed to write temporary file for {path}: {e}"
            raise StorageError(msg) from e

    try:
        tmp_path.replace(path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        msg = f"Failed to write {path}: {e}"
        raise StorageError(msg) from e


def write_json(path: Path, data: dict[str, Any]) -> None:
    """Atomically write ``data`` as pretty-printed JSON."""
    payload = orjson.dumps(data, option=orjson.OPT_INDENT_2) + b"\n"
    atomic_write(path, payload)


def read_json(path: Path) -> dict[str, Any]:
    """Read a JSON object from ``path``.

    Raises:
        FileNotFoundError: If the file does not exist.
        StorageError: If the file cannot be read or is not a JSON object.
    """
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        raise
    except OSError as e:
        msg = f"Failed to read {path}: {e}"
        raise StorageError(msg) from e

    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        msg = f"Invalid JSON in {path}: {e}"
        raise StorageError(msg) from e
    if not isinstance(data, dict):
        msg = f"Invalid JSON in {path}: expected an object"
        raise StorageError(msg)
    return data


def append_jsonl(path: Path, records: Iterable[dict[str, Any]]) -> None:
    """Append records to a JSONL file in a single write.

    The payload is built in memory first so a partial write never leaves a
    truncated JSON line.  If the file doesn't end with a newline (e.g. from a
    prior truncated write), one is prepended.
    """
    payload = b"".join(orjson.dumps(r) + b"\n" for r in records)
    if not payload:
        return

    try:
        if path.exists() and path.stat().st_size > 0:
            with path.open("rb") as check:
                check.seek(-1, os.SEEK_END)
                if check.read(1) != b"\n":
                    payload = b"\n" + payload

        with path.open("ab") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        msg = f"Failed to append to {path}: {e}"
        raise StorageError(msg) from e


def read_jsonl(path: Path) -> list[dict[str, Any]]:
    """Read every JSON object from a JSONL file, oldest first.

    Returns an empty list if the file does not exist.  Blank lines are
    skipped; any malformed line is a :class:`StorageError`.
    """
    try:
        with path.open("rb") as f:
            lines = f.readlines()
    except FileNotFoundError:
        return []
    except OSError as e:
        msg = f"Failed to read {path}: {e}"
        raise StorageError(msg) from e

    records: list[dict[str, Any]] = []
    for line_idx, raw_line in enumerate(lines):
        line = raw_line.strip()
        if not line:
            continue
        try:
            data = orjson.loads(line)
        except orjson.JSONDecodeError as e:
            msg = f"Invalid JSONL record in {path} at line {line_idx + 1}: {e}"
            raise StorageError(msg) from e
        if not isinstance(data, dict):
            msg = f"Invalid JSONL record in {path} at line {line_idx + 1}"
            raise StorageError(msg)
        records.append(data)
    return records


def rewrite_jsonl(path: Path, records: Iterable[dict[str, Any]]) -> None:
    """Atomically replace a JSONL file with ``records``."""
    payload = b"".join(orjson.dumps(r) + b"\n" for r in records)
    atomic_write(path, payload)
    logger.debug("Rewrote %s", path)
