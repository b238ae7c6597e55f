"""Random ID generation and prefix resolution for issues."""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING

from worktrack.constants import CROCKFORD_ALPHABET, DEFAULT_ID_LENGTH, HEX_DIGITS
from worktrack.errors import AmbiguousPrefixError, NotFoundError

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable

MAX_RETRIES = 100


def _crockford_encode(data: bytes, length: int) -> str:
    """Encode bytes as ``length`` Crockford Base32 characters (5 bits each)."""
    num = int.from_bytes(data, byteorder="big")
    chars: list[str] = []
    for _ in range(length):
        chars.append(CROCKFORD_ALPHABET[num & 0x1F])
        num >>= 5
    return "".join(reversed(chars))


def is_hex_id(issue_id: str) -> bool:
    """Check if an ID uses the legacy lower-case hex encoding."""
    return bool(issue_id) and all(c in HEX_DIGITS for c in issue_id)


def generate_id(
    length: int = DEFAULT_ID_LENGTH,
    existing_ids: Collection[str] | None = None,
) -> str:
    """Generate a random Crockford Base32 issue ID.

    Candidates that collide with ``existing_ids`` or that would read as a
    legacy hex ID are discarded, so ``rehash`` never mistakes a new ID for
    an old one.

    Args:
        length: Number of characters in the ID.
        existing_ids: IDs already in use.

    Returns:
        A new, unused ID.

    Raises:
        ValueError: If ``length`` is not positive.
        RuntimeError: If no unused ID was found after ``MAX_RETRIES`` attempts.
    """
    if length < 1:
        msg = f"ID length must be positive, got {length}"
        raise ValueError(msg)

    taken = existing_ids or ()
    n_bytes = (length * 5 + 7) // 8
    for _ in range(MAX_RETRIES):
        candidate = _crockford_encode(secrets.token_bytes(n_bytes), length)
        if candidate in taken or is_hex_id(candidate):
            continue
        return candidate

    msg = f"Could not generate a unique ID of length {length}"
    raise RuntimeError(msg)


def resolve_prefix(prefix: str, issue_ids: Iterable[str]) -> str:
    """Resolve a prefix to the unique issue ID it identifies.

    An exact match always wins, even when other IDs start with the same
    string.

    Raises:
        NotFoundError: If no ID starts with ``prefix``.
        AmbiguousPrefixError: If several IDs start with ``prefix``; the error
            lists every match.
    """
    if not prefix:
        msg = "No issue found with empty prefix"
        raise NotFoundError(msg)

    matches: list[str] = []
    for issue_id in issue_ids:
        if issue_id == prefix:
            return issue_id
        if issue_id.startswith(prefix):
            matches.append(issue_id)

    if not matches:
        msg = f"No issue found with prefix '{prefix}'"
        raise NotFoundError(msg)
    if len(matches) > 1:
        raise AmbiguousPrefixError(prefix, matches)
    return matches[0]


def min_prefix(issue_id: str, all_ids: Iterable[str]) -> str:
    """Return the shortest prefix of ``issue_id`` that resolves back to it."""
    others = [other for other in set(all_ids) if other != issue_id]
    for length in range(1, len(issue_id) + 1):
        candidate = issue_id[:length]
        if not any(other.startswith(candidate) for other in others):
            return candidate
    return issue_id


def min_prefixes(issue_ids: Iterable[str]) -> dict[str, str]:
    """Map each ID to its shortest unambiguous prefix among ``issue_ids``."""
    unique = sorted(set(issue_ids))
    return {issue_id: min_prefix(issue_id, unique) for issue_id in unique}
