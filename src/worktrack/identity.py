"""Resolve the actor name recorded on events and comments."""

from __future__ import annotations

import os
import subprocess

from worktrack.constants import FALLBACK_USER, USER_ENV_VAR


def git_user_name() -> str:
    """Return ``git config user.name``, or an empty string if unavailable."""
    try:
        result = subprocess.run(
            ["git", "config", "user.name"],
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        # git not installed
        return ""
    if result.returncode == 0:
        return result.stdout.strip()
    return ""


def resolve_user() -> str:
    """Get the actor for tracker operations.

    Checks ``$WORK_USER`` first, then the git user name, and falls back to
    ``"system"``.
    """
    env_user = os.environ.get(USER_ENV_VAR, "").strip()
    if env_user:
        return env_user
    return git_user_name() or FALLBACK_USER
