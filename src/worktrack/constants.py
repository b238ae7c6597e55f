"""Constants for worktrack."""

from __future__ import annotations

# Tracker directory and on-disk layout
WORK_DIRNAME = ".work"
CONFIG_FILENAME = "config.json"
ISSUES_DIRNAME = "issues"
ISSUE_FILENAME = "issue.json"
HISTORY_FILENAME = "history.jsonl"
LOG_FILENAME = "log.jsonl"
GITATTRIBUTES_FILENAME = ".gitattributes"
GITATTRIBUTES_CONTENT = "* linguist-generated\n"

# Default workflow
DEFAULT_STATES = ("open", "active", "review", "done", "cancelled")
DEFAULT_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "open": ("active", "done", "cancelled"),
    "active": ("review", "done", "cancelled", "open"),
    "review": ("done", "active", "cancelled"),
    "done": ("open",),
    "cancelled": ("open",),
}
DEFAULT_STATE = "open"
DEFAULT_TYPES = ("feature", "bug", "chore")
DEFAULT_TYPE = "feature"
DEFAULT_ID_LENGTH = 6
DEFAULT_PRIORITY = 0

# Only issues in one of these states may be compacted or garbage-collected
TERMINAL_STATUSES: frozenset[str] = frozenset({"done", "cancelled"})

# Compaction limits
COMPACT_DESCRIPTION_MAX = 120
DEFAULT_GC_DAYS = 30

# Crockford Base32, lower-cased (no i, l, o, u)
CROCKFORD_ALPHABET = "0123456789abcdefghjkmnpqrstvwxyz"
HEX_DIGITS = frozenset("0123456789abcdef")

# Identity resolution
USER_ENV_VAR = "WORK_USER"
FALLBACK_USER = "system"

# Symbols for history/log output
EVENT_SYMBOLS: dict[str, str] = {
    "create": "+",
    "status": "→",
    "edit": "~",
    "comment": "✎",
    "link": "↑",
    "unlink": "↓",
}

STATUS_COLORS = {
    "open": "bright_green",
    "active": "bright_blue",
    "review": "bright_yellow",
    "done": "white",
    "cancelled": "bright_black",
}

TYPE_COLORS = {
    "feature": "bright_green",
    "bug": "bright_red",
    "chore": "bright_black",
}
