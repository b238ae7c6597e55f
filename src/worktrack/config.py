"""Tracker configuration and the status/type state machine."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from worktrack.constants import (
    CONFIG_FILENAME,
    DEFAULT_ID_LENGTH,
    DEFAULT_STATE,
    DEFAULT_STATES,
    DEFAULT_TRANSITIONS,
    DEFAULT_TYPE,
    DEFAULT_TYPES,
    GITATTRIBUTES_CONTENT,
    GITATTRIBUTES_FILENAME,
    ISSUES_DIRNAME,
    WORK_DIRNAME,
)
from worktrack.errors import (
    InvalidTransitionError,
    InvalidTypeError,
    NotFoundError,
    StorageError,
)
from worktrack.fileio import read_json, write_json

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackerConfig:
    """Workflow configuration, loaded once per process and never mutated."""

    states: tuple[str, ...] = DEFAULT_STATES
    transitions: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_TRANSITIONS)),
    )
    default_state: str = DEFAULT_STATE
    types: tuple[str, ...] = DEFAULT_TYPES
    default_type: str = DEFAULT_TYPE
    id_length: int = DEFAULT_ID_LENGTH

    def __post_init__(self) -> None:
        # Frozen only guards attribute assignment; freeze the graph too.
        frozen = MappingProxyType(
            {status: tuple(targets) for status, targets in self.transitions.items()},
        )
        object.__setattr__(self, "transitions", frozen)

    def allowed_from(self, status: str) -> tuple[str, ...]:
        """Return the statuses reachable from ``status`` (empty if unknown)."""
        return self.transitions.get(status, ())


def default_config() -> TrackerConfig:
    """Return the configuration written by a fresh ``init``."""
    return TrackerConfig()


def config_to_dict(config: TrackerConfig) -> dict[str, Any]:
    """Serialize a TrackerConfig for config.json."""
    return {
        "states": list(config.states),
        "transitions": {k: list(v) for k, v in config.transitions.items()},
        "default_state": config.default_state,
        "types": list(config.types),
        "default_type": config.default_type,
        "id_length": config.id_length,
    }


def _str_list(value: Any, key: str) -> tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        msg = f"{key} must be a list of strings"
        raise TypeError(msg)
    return tuple(value)


def _str_value(value: Any, key: str) -> str:
    if not isinstance(value, str) or not value:
        msg = f"{key} must be a non-empty string"
        raise TypeError(msg)
    return value


def _parse_transitions(value: Any) -> dict[str, tuple[str, ...]]:
    if not isinstance(value, dict):
        msg = "transitions must be an object of status lists"
        raise TypeError(msg)
    return {
        _str_value(k, "transitions key"): _str_list(v, f"transitions[{k}]")
        for k, v in value.items()
    }


def _parse_id_length(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        msg = "id_length must be an integer"
        raise TypeError(msg)
    if value <= 0:
        msg = f"id_length must be positive, got {value}"
        raise ValueError(msg)
    return value


def dict_to_config(data: dict[str, Any]) -> TrackerConfig:
    """Build a TrackerConfig from config.json contents.

    Keys missing from ``data`` fall back to their defaults. Keys that are
    present must have the right JSON type.
    """
    defaults = default_config()
    try:
        if not isinstance(data, dict):
            msg = "expected a JSON object"
            raise TypeError(msg)
        return TrackerConfig(
            states=(
                _str_list(data["states"], "states")
                if "states" in data
                else defaults.states
            ),
            transitions=(
                _parse_transitions(data["transitions"])
                if "transitions" in data
                else defaults.transitions
            ),
            default_state=(
                _str_value(data["default_state"], "default_state")
                if "default_state" in data
                else defaults.default_state
            ),
            types=(
                _str_list(data["types"], "types") if "types" in data else defaults.types
            ),
            default_type=(
                _str_value(data["default_type"], "default_type")
                if "default_type" in data
                else defaults.default_type
            ),
            id_length=(
                _parse_id_length(data["id_length"])
                if "id_length" in data
                else defaults.id_length
            ),
        )
    except (TypeError, ValueError) as e:
        msg = f"Invalid {CONFIG_FILENAME}: {e}"
        raise StorageError(msg) from e


def get_work_dir(root: str | Path) -> Path:
    """Return the ``.work`` directory for a project root."""
    return Path(root) / WORK_DIRNAME


def get_config_path(root: str | Path) -> Path:
    """Return the path to config.json for a project root."""
    return get_work_dir(root) / CONFIG_FILENAME


def find_tracker_root(start: str | Path | None = None) -> Path:
    """Find the project root by searching upward for a ``.work`` directory.

    Args:
        start: Directory to start searching from (default: current directory)

    Returns:
        The directory containing ``.work``.

    Raises:
        NotFoundError: If no ``.work`` directory exists above ``start``.
    """
    current = Path.cwd() if start is None else Path(start).resolve()
    while True:
        if (current / WORK_DIRNAME).is_dir():
            return current
        parent = current.parent
        if parent == current:
            msg = f"No {WORK_DIRNAME} directory found. Run 'work init' first."
            raise NotFoundError(msg)
        current = parent


def load_config(root: str | Path) -> TrackerConfig:
    """Load configuration from ``.work/config.json``.

    Raises:
        NotFoundError: If the tracker has not been initialized.
        StorageError: If the config file is unreadable or malformed.
    """
    config_path = get_config_path(root)
    try:
        data = read_json(config_path)
    except FileNotFoundError:
        msg = f"Tracker not initialized at {root}. Run 'work init' first."
        raise NotFoundError(msg) from None
    return dict_to_config(data)


def init_tracker(root: str | Path) -> TrackerConfig:
    """Create the ``.work`` directory structure and default config.

    An existing config.json is loaded and preserved verbatim.

    Returns:
        The active configuration.
    """
    work_dir = get_work_dir(root)
    try:
        (work_dir / ISSUES_DIRNAME).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        msg = f"Failed to create {work_dir}: {e}"
        raise StorageError(msg) from e

    config_path = get_config_path(root)
    if config_path.exists():
        logger.debug("Preserving existing config at %s", config_path)
        return load_config(root)

    config = default_config()
    write_json(config_path, config_to_dict(config))
    try:
        (work_dir / GITATTRIBUTES_FILENAME).write_text(GITATTRIBUTES_CONTENT)
    except OSError as e:
        msg = f"Failed to write {GITATTRIBUTES_FILENAME}: {e}"
        raise StorageError(msg) from e
    logger.debug("Initialized tracker at %s", work_dir)
    return config


def validate_transition(config: TrackerConfig, from_status: str, to_status: str) -> None:
    """Check that moving from one status to another is allowed.

    Same-state transitions are always rejected.

    Raises:
        InvalidTransitionError: If the transition is not in the graph.
    """
    if from_status == to_status:
        msg = f"Invalid transition: already in state '{from_status}'"
        raise InvalidTransitionError(msg)

    if from_status not in config.transitions:
        msg = f"Invalid transition: unknown state '{from_status}'"
        raise InvalidTransitionError(msg)

    allowed = config.allowed_from(from_status)
    if to_status not in allowed:
        msg = (
            f"Invalid transition: cannot move from '{from_status}' to "
            f"'{to_status}' (allowed: {', '.join(allowed)})"
        )
        raise InvalidTransitionError(msg)


def validate_type(config: TrackerConfig, issue_type: str) -> None:
    """Check that ``issue_type`` is one of the configured types.

    Raises:
        InvalidTypeError: If the type is not allowed.
    """
    if issue_type not in config.types:
        msg = f"Invalid type '{issue_type}' (allowed: {', '.join(config.types)})"
        raise InvalidTypeError(msg)
