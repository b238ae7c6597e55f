"""Exception hierarchy for worktrack.

Every error raised by the core derives from :class:`TrackerError`.  The
concrete classes also derive from the builtin that best describes them, so
callers that only care about ``ValueError`` / ``LookupError`` /
``RuntimeError`` keep working.
"""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for all worktrack errors."""


class NotFoundError(TrackerError, LookupError):
    """No issue (or tracker) matches the request."""


class AmbiguousPrefixError(TrackerError, ValueError):
    """A prefix matches more than one issue."""

    def __init__(self, prefix: str, matches: list[str]) -> None:
        self.prefix = prefix
        self.matches = sorted(matches)
        msg = f"Ambiguous prefix '{prefix}', matches: {', '.join(self.matches)}"
        super().__init__(msg)


class InvalidTransitionError(TrackerError, ValueError):
    """A status change is not permitted by the configured workflow."""


class InvalidTypeError(TrackerError, ValueError):
    """An issue type is not in the configured set."""


class InvalidParentError(TrackerError, ValueError):
    """A parent/child link would break the two-level hierarchy."""


class ValidationError(TrackerError, ValueError):
    """A field value is invalid (e.g. empty title)."""


class StorageError(TrackerError, RuntimeError):
    """Reading, writing or parsing on-disk state failed."""


class NotCompactableError(TrackerError, ValueError):
    """Compaction was requested for an issue that is not done/cancelled."""


class BatchError(TrackerError):
    """A batch operation stopped partway through.

    ``processed`` lists the IDs that were handled before the failure, and
    ``failed_id`` names the issue that failed.  The underlying error is
    chained as ``__cause__``.
    """

    def __init__(self, operation: str, failed_id: str, processed: list[str]) -> None:
        self.operation = operation
        self.failed_id = failed_id
        self.processed = list(processed)
        msg = (
            f"{operation} failed on {failed_id} after "
            f"{len(self.processed)} issue(s) succeeded"
        )
        super().__init__(msg)
