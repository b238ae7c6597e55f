"""Tests for the directory-per-issue store."""

import itertools
from pathlib import Path

import orjson
import pytest

from worktrack.config import TrackerConfig, default_config
from worktrack.constants import DEFAULT_STATES, DEFAULT_TRANSITIONS
from worktrack.errors import (
    BatchError,
    InvalidParentError,
    InvalidTransitionError,
    InvalidTypeError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from worktrack.models import EditField, EventOp, LogEntry, utcnow
from worktrack.storage import IssueStore


_PATH_FROM_OPEN = {
    "open": (),
    "active": ("active",),
    "review": ("active", "review"),
    "done": ("done",),
    "cancelled": ("cancelled",),
}


def _issue_files(root: Path) -> list[str]:
    return sorted(p.name for p in (root / ".work" / "issues").iterdir())


class TestStoreInitialization:
    """Test store construction."""

    def test_requires_initialized_tracker(self, tmp_path: Path) -> None:
        """Test that a missing .work/issues directory is NotFoundError."""
        with pytest.raises(NotFoundError, match="work init"):
            IssueStore(tmp_path, default_config())

    def test_rejects_path_like_ids(self, store: IssueStore) -> None:
        """Test that IDs cannot escape the issues directory."""
        for bad in ("", ".", "..", "a/b", "a\\b"):
            with pytest.raises(NotFoundError):
                store.issue_dir(bad)


class TestCreateIssue:
    """Test issue creation."""

    def test_defaults(self, store: IssueStore) -> None:
        """Test that a new issue gets the configured default state and type."""
        issue = store.create_issue("First", actor="alice")
        assert issue.status == "open"
        assert issue.type == "feature"
        assert issue.priority == 0
        assert issue.created == issue.updated
        assert len(issue.id) == 6

    def test_writes_issue_and_create_event(self, store: IssueStore) -> None:
        """Test that issue.json and a single create event are written."""
        issue = store.create_issue("First", actor="alice")
        assert store.load_issue(issue.id) == issue
        events = store.load_events(issue.id)
        assert len(events) == 1
        assert events[0].op is EventOp.CREATE
        assert events[0].by == "alice"
        assert events[0].timestamp == issue.created

    def test_issue_json_is_pretty_printed(self, store: IssueStore) -> None:
        """Test that issue.json is indented for human editing."""
        issue = store.create_issue("First")
        raw = (store.issue_dir(issue.id) / "issue.json").read_text()
        assert raw.startswith("{\n  ")
        assert orjson.loads(raw)["title"] == "First"

    def test_all_fields(self, store: IssueStore) -> None:
        """Test that optional fields are stored."""
        issue = store.create_issue(
            "Full",
            description="details",
            assignee="bob",
            priority=3,
            labels=["ui"],
            issue_type="bug",
        )
        loaded = store.load_issue(issue.id)
        assert loaded.description == "details"
        assert loaded.assignee == "bob"
        assert loaded.priority == 3
        assert loaded.labels == ["ui"]
        assert loaded.type == "bug"

    def test_ids_are_unique(self, store: IssueStore) -> None:
        """Test that many creations never reuse an ID."""
        ids = {store.create_issue(f"Issue {n}").id for n in range(50)}
        assert len(ids) == 50

    def test_configured_id_length(self, tracker_root: Path) -> None:
        """Test that the id_length setting is used."""
        store = IssueStore(tracker_root, TrackerConfig(id_length=9))
        assert len(store.create_issue("Long").id) == 9

    @pytest.mark.parametrize("title", ["", "   "])
    def test_empty_title(self, store: IssueStore, tracker_root: Path, title: str) -> None:
        """Test that an empty title is rejected without writing anything."""
        with pytest.raises(ValidationError, match="title"):
            store.create_issue(title)
        assert _issue_files(tracker_root) == []

    def test_invalid_type(self, store: IssueStore, tracker_root: Path) -> None:
        """Test that an unknown type is rejected without writing anything."""
        with pytest.raises(InvalidTypeError):
            store.create_issue("Typed", issue_type="epic")
        assert _issue_files(tracker_root) == []

    def test_non_int_priority(self, store: IssueStore) -> None:
        """Test that a non-integer priority is a ValidationError."""
        with pytest.raises(ValidationError, match="integer"):
            store.create_issue("P", priority="high")  # type: ignore[arg-type]

    def test_with_parent(self, store: IssueStore) -> None:
        """Test that a child can be created under a root."""
        parent = store.create_issue("Parent")
        child = store.create_issue("Child", parent_id=parent.id)
        assert store.load_issue(child.id).parent_id == parent.id

    def test_missing_parent(self, store: IssueStore, tracker_root: Path) -> None:
        """Test that a nonexistent parent is rejected."""
        with pytest.raises(InvalidParentError, match="not found"):
            store.create_issue("Orphan", parent_id="nope00")
        assert _issue_files(tracker_root) == []

    def test_grandchild_rejected(self, store: IssueStore) -> None:
        """Test that a child cannot itself have children."""
        parent = store.create_issue("Parent")
        child = store.create_issue("Child", parent_id=parent.id)
        with pytest.raises(InvalidParentError, match="grandchildren"):
            store.create_issue("Grandchild", parent_id=child.id)


class TestLoadAndList:
    """Test reading issues back."""

    def test_load_missing(self, store: IssueStore) -> None:
        """Test that loading an unknown ID is NotFoundError."""
        with pytest.raises(NotFoundError):
            store.load_issue("zzzzzz")

    def test_load_corrupt(self, store: IssueStore) -> None:
        """Test that a malformed issue.json is a StorageError."""
        issue = store.create_issue("Broken")
        (store.issue_dir(issue.id) / "issue.json").write_text("{oops")
        with pytest.raises(StorageError):
            store.load_issue(issue.id)

    def test_load_record_missing_fields(self, store: IssueStore) -> None:
        """Test that a record without required fields is a StorageError."""
        issue = store.create_issue("Thin")
        (store.issue_dir(issue.id) / "issue.json").write_text('{"id": "x"}')
        with pytest.raises(StorageError, match="Invalid issue record"):
            store.load_issue(issue.id)

    @pytest.mark.parametrize(
        ("key", "value"),
        [("labels", "bug"), ("priority", "high"), ("title", "")],
    )
    def test_load_record_wrong_types(
        self,
        store: IssueStore,
        key: str,
        value: object,
    ) -> None:
        """Test that a hand-edited field of the wrong type is a StorageError."""
        issue = store.create_issue("Hand edited")
        path = store.issue_dir(issue.id) / "issue.json"
        data = orjson.loads(path.read_bytes())
        data[key] = value
        path.write_bytes(orjson.dumps(data))
        with pytest.raises(StorageError, match="Invalid issue record"):
            store.load_issue(issue.id)

    def test_list_sorted_and_ignores_files(
        self,
        store: IssueStore,
        tracker_root: Path,
    ) -> None:
        """Test that list_issues is ordered by ID and skips stray files."""
        created = [store.create_issue(f"Issue {n}").id for n in range(5)]
        (tracker_root / ".work" / "issues" / "README").write_text("not an issue")
        assert [i.id for i in store.list_issues()] == sorted(created)

    def test_missing_history_is_empty(self, store: IssueStore) -> None:
        """Test that an issue without history.jsonl has no events."""
        issue = store.create_issue("No history")
        (store.issue_dir(issue.id) / "history.jsonl").unlink()
        assert store.load_events(issue.id) == []

    def test_corrupt_history(self, store: IssueStore) -> None:
        """Test that a malformed history line is a StorageError."""
        issue = store.create_issue("Bad history")
        with (store.issue_dir(issue.id) / "history.jsonl").open("a") as f:
            f.write("not json\n")
        with pytest.raises(StorageError, match="line 2"):
            store.load_events(issue.id)

    def test_load_all_events(self, store: IssueStore) -> None:
        """Test that every event is returned paired with its issue."""
        a = store.create_issue("A")
        b = store.create_issue("B")
        store.set_status(a.id, "active")
        pairs = [(e.issue_id, e.event.op) for e in store.load_all_events()]
        assert sorted(pairs) == sorted(
            [(a.id, EventOp.CREATE), (a.id, EventOp.STATUS), (b.id, EventOp.CREATE)],
        )

    def test_resolve_prefix(self, store: IssueStore) -> None:
        """Test that a stored issue resolves from a prefix of its ID."""
        issue = store.create_issue("Resolve me")
        assert store.resolve_prefix(issue.id[:4]) == issue.id

    def test_find_purged(self, store: IssueStore) -> None:
        """Test that a logged issue without a directory is reported as purged."""
        now = utcnow()
        store.completion_log.append(
            LogEntry("gone00", "Gone", "bug", "done", (), now, now),
        )
        entry = store.find_purged("gone")
        assert entry is not None
        assert entry.id == "gone00"
        assert store.find_purged("nothing") is None


class TestSetStatus:
    """Test status transitions."""

    def test_valid_transition(self, store: IssueStore) -> None:
        """Test that a permitted transition updates status and history."""
        issue = store.create_issue("Work")
        updated = store.set_status(issue.id, "active", actor="bob")
        assert updated.status == "active"
        assert updated.updated >= issue.updated
        event = store.load_events(issue.id)[-1]
        assert event.op is EventOp.STATUS
        assert (event.from_, event.to, event.by) == ("open", "active", "bob")
        assert event.timestamp == updated.updated

    def test_invalid_transition_writes_nothing(self, store: IssueStore) -> None:
        """Test that a rejected transition leaves issue and history untouched."""
        issue = store.create_issue("Work")
        with pytest.raises(InvalidTransitionError):
            store.set_status(issue.id, "review")
        assert store.load_issue(issue.id) == issue
        assert len(store.load_events(issue.id)) == 1

    def test_same_state(self, store: IssueStore) -> None:
        """Test that moving to the current state is rejected."""
        issue = store.create_issue("Work")
        with pytest.raises(InvalidTransitionError):
            store.set_status(issue.id, "open")

    def test_full_lifecycle(self, store: IssueStore) -> None:
        """Test a reopen after completion."""
        issue = store.create_issue("Cycle")
        for status in ("active", "review", "done", "open"):
            store.set_status(issue.id, status)
        ops = [(e.from_, e.to) for e in store.load_events(issue.id)[1:]]
        assert ops == [
            ("open", "active"),
            ("active", "review"),
            ("review", "done"),
            ("done", "open"),
        ]

    def test_missing_issue(self, store: IssueStore) -> None:
        """Test that an unknown ID is NotFoundError."""
        with pytest.raises(NotFoundError):
            store.set_status("zzzzzz", "active")

    @pytest.mark.parametrize(
        ("from_status", "to_status"),
        list(itertools.product(DEFAULT_STATES, DEFAULT_STATES)),
    )
    def test_transition_graph(
        self,
        store: IssueStore,
        from_status: str,
        to_status: str,
    ) -> None:
        """Test every status pair against the default transition graph."""
        issue = store.create_issue("Graph")
        for step in _PATH_FROM_OPEN[from_status]:
            store.set_status(issue.id, step)
        before = store.load_issue(issue.id)
        events_before = len(store.load_events(issue.id))

        if to_status in DEFAULT_TRANSITIONS[from_status]:
            updated = store.set_status(issue.id, to_status)
            assert updated.status == to_status
            new_events = store.load_events(issue.id)[events_before:]
            assert [(e.op, e.from_, e.to) for e in new_events] == [
                (EventOp.STATUS, from_status, to_status),
            ]
        else:
            with pytest.raises(InvalidTransitionError):
                store.set_status(issue.id, to_status)
            assert store.load_issue(issue.id) == before
            assert len(store.load_events(issue.id)) == events_before


class TestAddComment:
    """Test comments."""

    def test_comment_stored_on_issue(self, store: IssueStore) -> None:
        """Test that the comment lives on the issue record."""
        issue = store.create_issue("Talk")
        updated = store.add_comment(issue.id, "Looks good", actor="carol")
        assert [(c.text, c.by) for c in updated.comments] == [("Looks good", "carol")]
        assert store.load_issue(issue.id).comments[0].text == "Looks good"

    def test_comment_event_has_no_text(self, store: IssueStore) -> None:
        """Test that the history event does not duplicate the comment text."""
        issue = store.create_issue("Talk")
        store.add_comment(issue.id, "secret words")
        event = store.load_events(issue.id)[-1]
        assert event.op is EventOp.COMMENT
        assert event.text == ""
        raw = (store.issue_dir(issue.id) / "history.jsonl").read_text()
        assert "secret words" not in raw

    def test_empty_comment(self, store: IssueStore) -> None:
        """Test that empty text is rejected."""
        issue = store.create_issue("Talk")
        with pytest.raises(ValidationError):
            store.add_comment(issue.id, "")


class TestEditIssue:
    """Test field edits."""

    def test_records_only_changed_fields(self, store: IssueStore) -> None:
        """Test that unchanged values are not reported in the event."""
        issue = store.create_issue("Old", priority=1)
        store.edit_issue(
            issue.id,
            {EditField.LABELS: ["x"], EditField.TITLE: "New", EditField.PRIORITY: 1},
            actor="dave",
        )
        event = store.load_events(issue.id)[-1]
        assert event.op is EventOp.EDIT
        assert event.fields == (EditField.TITLE, EditField.LABELS)
        assert event.by == "dave"
        loaded = store.load_issue(issue.id)
        assert loaded.title == "New"
        assert loaded.labels == ["x"]

    def test_accepts_string_keys(self, store: IssueStore) -> None:
        """Test that plain field names work as keys."""
        issue = store.create_issue("Keys")
        updated = store.edit_issue(issue.id, {"assignee": "erin"})  # type: ignore[dict-item]
        assert updated.assignee == "erin"

    def test_no_effective_change_is_noop(self, store: IssueStore) -> None:
        """Test that identical values write nothing."""
        issue = store.create_issue("Same")
        result = store.edit_issue(issue.id, {EditField.TITLE: "Same"})
        assert result.updated == issue.updated
        assert len(store.load_events(issue.id)) == 1

    def test_invalid_type(self, store: IssueStore) -> None:
        """Test that the new type is validated."""
        issue = store.create_issue("Type")
        with pytest.raises(InvalidTypeError):
            store.edit_issue(issue.id, {EditField.TYPE: "epic"})
        assert store.load_issue(issue.id).type == "feature"

    def test_empty_title(self, store: IssueStore) -> None:
        """Test that the title cannot be cleared."""
        issue = store.create_issue("Title")
        with pytest.raises(ValidationError):
            store.edit_issue(issue.id, {EditField.TITLE: " "})

    def test_bad_labels(self, store: IssueStore) -> None:
        """Test that labels must be a list of strings."""
        issue = store.create_issue("Labels")
        with pytest.raises(ValidationError, match="Labels"):
            store.edit_issue(issue.id, {EditField.LABELS: "a,b"})


class TestLinking:
    """Test parent/child links."""

    def test_link_and_unlink(self, store: IssueStore) -> None:
        """Test that link sets and unlink clears the parent, with events."""
        parent = store.create_issue("Parent")
        child = store.create_issue("Child")

        linked = store.link_issue(child.id, parent.id, actor="fay")
        assert linked.parent_id == parent.id
        unlinked = store.unlink_issue(child.id, actor="fay")
        assert unlinked.parent_id == ""

        link_event, unlink_event = store.load_events(child.id)[1:]
        assert (link_event.op, link_event.to) == (EventOp.LINK, parent.id)
        assert (unlink_event.op, unlink_event.from_) == (EventOp.UNLINK, parent.id)

    def test_relink_after_unlink(self, store: IssueStore) -> None:
        """Test that an unlinked child can be linked to a new parent."""
        first = store.create_issue("First parent")
        second = store.create_issue("Second parent")
        child = store.create_issue("Child", parent_id=first.id)

        store.unlink_issue(child.id)
        relinked = store.link_issue(child.id, second.id)

        assert relinked.parent_id == second.id
        assert store.load_issue(child.id).parent_id == second.id
        ops = [(e.op, e.from_, e.to) for e in store.load_events(child.id)[1:]]
        assert ops == [
            (EventOp.UNLINK, first.id, ""),
            (EventOp.LINK, "", second.id),
        ]

    def test_unlink_root(self, store: IssueStore) -> None:
        """Test that unlinking an issue without a parent fails."""
        issue = store.create_issue("Root")
        with pytest.raises(InvalidParentError, match="has no parent"):
            store.unlink_issue(issue.id)

    def test_self_link(self, store: IssueStore) -> None:
        """Test that an issue cannot be its own parent."""
        issue = store.create_issue("Self")
        with pytest.raises(InvalidParentError, match="itself"):
            store.link_issue(issue.id, issue.id)

    def test_parent_must_be_root(self, store: IssueStore) -> None:
        """Test that a child cannot become a parent."""
        root = store.create_issue("Root")
        child = store.create_issue("Child", parent_id=root.id)
        other = store.create_issue("Other")
        with pytest.raises(InvalidParentError):
            store.link_issue(other.id, child.id)

    def test_issue_with_children_cannot_become_child(self, store: IssueStore) -> None:
        """Test that linking a parent under another root is rejected."""
        root = store.create_issue("Root")
        store.create_issue("Child", parent_id=root.id)
        other = store.create_issue("Other")
        with pytest.raises(InvalidParentError, match="has children"):
            store.link_issue(root.id, other.id)
        assert store.load_issue(root.id).parent_id == ""

    def test_missing_parent(self, store: IssueStore) -> None:
        """Test that a nonexistent parent is rejected."""
        child = store.create_issue("Child")
        with pytest.raises(InvalidParentError, match="not found"):
            store.link_issue(child.id, "nope00")


class TestRehash:
    """Test migrating legacy hex IDs."""

    def _plant_hex_issue(self, store: IssueStore, hex_id: str, **kwargs: str) -> None:
        issue = store.create_issue(kwargs.pop("title", "Legacy"), **kwargs)
        store.issue_dir(issue.id).rename(store.issue_dir(hex_id))
        legacy = store.load_issue(hex_id)
        legacy.id = hex_id
        store.save_issue(legacy)

    def test_rehash_rewrites_all_references(self, store: IssueStore) -> None:
        """Test that children, link events and log entries follow the new ID."""
        self._plant_hex_issue(store, "abc123", title="Parent")
        child = store.create_issue("Child")
        store.link_issue(child.id, "abc123")
        store.unlink_issue(child.id)
        store.link_issue(child.id, "abc123")
        now = utcnow()
        store.completion_log.append(
            LogEntry("abc123", "Parent", "feature", "done", (), now, now),
        )

        new_id = store.rehash_issue("abc123")

        assert not store.exists("abc123")
        assert store.load_issue(new_id).id == new_id
        assert store.load_issue(new_id).title == "Parent"
        assert store.load_issue(child.id).parent_id == new_id
        refs = [
            (e.from_, e.to)
            for e in store.load_events(child.id)
            if e.op in (EventOp.LINK, EventOp.UNLINK)
        ]
        assert refs == [("", new_id), (new_id, ""), ("", new_id)]
        assert [e.id for e in store.completion_log.read()] == [new_id]

    def test_rehash_emits_no_event(self, store: IssueStore) -> None:
        """Test that rehashing leaves history length and updated time alone."""
        self._plant_hex_issue(store, "def456")
        before = store.load_issue("def456")
        new_id = store.rehash_issue("def456")
        after = store.load_issue(new_id)
        assert after.updated == before.updated
        assert len(store.load_events(new_id)) == 1

    def test_rehash_rolls_back_when_save_fails(
        self,
        store: IssueStore,
        tracker_root: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that a failed record write moves the directory back."""
        self._plant_hex_issue(store, "abc123")

        def failing_save(issue: object) -> None:
            raise StorageError("disk full")

        monkeypatch.setattr(store, "save_issue", failing_save)
        with pytest.raises(StorageError, match="disk full"):
            store.rehash_issue("abc123")

        assert _issue_files(tracker_root) == ["abc123"]
        assert store.load_issue("abc123").id == "abc123"

    def test_rehash_all_only_touches_hex(self, store: IssueStore) -> None:
        """Test that rehash_all maps every hex ID and is idempotent."""
        modern = store.create_issue("Modern")
        self._plant_hex_issue(store, "aaa111")
        self._plant_hex_issue(store, "bbb222")

        mapping = store.rehash_all()

        assert set(mapping) == {"aaa111", "bbb222"}
        assert store.exists(modern.id)
        assert store.rehash_all() == {}

    def test_rehash_all_reports_partial_progress(
        self,
        store: IssueStore,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that a failure mid-batch exposes what was already rehashed."""
        self._plant_hex_issue(store, "aaa111")
        self._plant_hex_issue(store, "bbb222")
        original = store.rehash_issue

        def flaky(issue_id: str) -> str:
            if issue_id == "bbb222":
                raise StorageError("disk full")
            return original(issue_id)

        monkeypatch.setattr(store, "rehash_issue", flaky)
        with pytest.raises(BatchError) as exc_info:
            store.rehash_all()
        assert exc_info.value.processed == ["aaa111"]
        assert exc_info.value.failed_id == "bbb222"
        assert isinstance(exc_info.value.__cause__, StorageError)

    def test_rewrite_all_issues(self, store: IssueStore) -> None:
        """Test that every issue is re-saved in the current format."""
        issue = store.create_issue("Compact json")
        path = store.issue_dir(issue.id) / "issue.json"
        path.write_bytes(orjson.dumps(orjson.loads(path.read_bytes())))
        assert store.rewrite_all_issues() == 1
        assert path.read_text().startswith("{\n  ")
