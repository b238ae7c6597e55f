"""Pytest configuration and shared fixtures."""

from datetime import timedelta
from pathlib import Path
from typing import Any

import pytest

from worktrack.compaction import Compactor
from worktrack.config import init_tracker, load_config
from worktrack.models import Issue, utcnow
from worktrack.storage import IssueStore


@pytest.fixture(autouse=True)
def _fixed_user(monkeypatch: pytest.MonkeyPatch) -> None:
    """Pin the actor name so tests never shell out to git."""
    monkeypatch.setenv("WORK_USER", "tester")


@pytest.fixture
def tracker_root(tmp_path: Path) -> Path:
    """Create a project directory with an initialized .work tracker."""
    init_tracker(tmp_path)
    return tmp_path


@pytest.fixture
def store(tracker_root: Path) -> IssueStore:
    """Create an IssueStore over a fresh tracker with the default config."""
    return IssueStore(tracker_root, load_config(tracker_root))


@pytest.fixture
def compactor(store: IssueStore) -> Compactor:
    """Create a Compactor bound to the store fixture."""
    return Compactor(store)


def make_done(
    store: IssueStore,
    title: str,
    status: str = "done",
    **kwargs: Any,
) -> Issue:
    """Create an issue and move it straight to a terminal status."""
    issue = store.create_issue(title, actor="tester", **kwargs)
    return store.set_status(issue.id, status, actor="tester")


def backdate(store: IssueStore, issue_id: str, days: int) -> Issue:
    """Rewrite an issue's ``updated`` time to ``days`` ago."""
    issue = store.load_issue(issue_id)
    issue.updated = utcnow() - timedelta(days=days)
    store.save_issue(issue)
    return issue
