"""Maintenance commands for the worktrack CLI: compact, gc and rehash."""

from __future__ import annotations

from typing import NoReturn

import typer

from worktrack.constants import DEFAULT_GC_DAYS
from worktrack.errors import BatchError, TrackerError

from ._helpers import get_compactor, get_store, resolve_id
from ._json_state import echo_error, echo_json, is_json_output


def _fail_batch(e: BatchError, verb: str) -> NoReturn:
    """Report a partially completed batch and exit."""
    if e.processed:
        typer.echo(f"{verb} {len(e.processed)} issues before the failure:")
        for issue_id in e.processed:
            typer.echo(f"  {issue_id}")
    echo_error(f"{e}: {e.__cause__}")
    raise typer.Exit(1)


def register(app: typer.Typer) -> None:
    """Register maintenance commands."""

    @app.command()
    def compact(
        issue_id: str | None = typer.Argument(None, help="Issue ID or prefix"),
        all_done: bool = typer.Option(
            False,
            "--all-done",
            help="Compact all done/cancelled issues",
        ),
        rewrite: bool = typer.Option(
            False,
            "--rewrite",
            help="Rewrite all issues in the current on-disk format",
        ),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        root: str | None = typer.Option(None, "--root", help="Project directory"),
    ) -> None:
        """Strip completed issues down to minimal metadata.

        Examples:
            work compact abc123
            work compact --all-done
        """
        try:
            store = get_store(root)
            compactor = get_compactor(store)

            if rewrite:
                count = store.rewrite_all_issues()
                if is_json_output(json_output):
                    echo_json({"rewritten": count})
                else:
                    typer.echo(f"Rewrote {count} issues")
                return

            if all_done:
                compacted = compactor.compact_all_done()
                if is_json_output(json_output):
                    echo_json({"compacted": compacted})
                elif not compacted:
                    typer.echo("No done/cancelled issues to compact")
                else:
                    typer.echo(f"Compacted {len(compacted)} issues")
                return

            if not issue_id:
                echo_error("Usage: work compact <id> or work compact --all-done")
                raise typer.Exit(1)

            issue = compactor.compact_issue(resolve_id(store, issue_id))
        except BatchError as e:
            _fail_batch(e, "Compacted")
        except TrackerError as e:
            echo_error(str(e))
            raise typer.Exit(1) from None

        if is_json_output(json_output):
            echo_json({"compacted": [issue.id]})
        else:
            typer.echo(f"Compacted {issue.id}")

    @app.command()
    def gc(
        days: int | None = typer.Option(
            None,
            "--days",
            help=f"Age threshold in days (default {DEFAULT_GC_DAYS})",
        ),
        keep: int | None = typer.Option(
            None,
            "--keep",
            help="Keep only the N most recently updated completed issues",
        ),
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        root: str | None = typer.Option(None, "--root", help="Project directory"),
    ) -> None:
        """Delete the directories of old completed issues.

        With both --days and --keep an issue is purged only if it exceeds
        both thresholds.  A --keep of 0 or less is ignored.  Parents are kept
        while any child remains.  Metadata is preserved in .work/log.jsonl.
        """
        if keep is not None and keep <= 0:
            keep = None
        if days is None and keep is None:
            days = DEFAULT_GC_DAYS
        try:
            compactor = get_compactor(get_store(root))
            purged = compactor.garbage_collect(max_age_days=days, keep=keep)
        except BatchError as e:
            _fail_batch(e, "Purged")
        except TrackerError as e:
            echo_error(str(e))
            raise typer.Exit(1) from None

        if is_json_output(json_output):
            echo_json(
                {"purged": purged, "duplicates_removed": compactor.duplicates_removed},
            )
            return
        if not purged:
            typer.echo("No issues to purge")
            return
        typer.echo(f"Purged {len(purged)} issues")
        for issue_id in purged:
            typer.echo(f"  {issue_id}")
        if compactor.duplicates_removed:
            typer.echo(
                f"Removed {compactor.duplicates_removed} duplicate log entries",
            )
        typer.echo("Use 'work completed' to view completion history")

    @app.command()
    def rehash(
        json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
        root: str | None = typer.Option(None, "--root", help="Project directory"),
    ) -> None:
        """Replace legacy hex IDs with Crockford Base32 IDs.

        Parent links, link/unlink events and completion-log entries are
        updated to the new IDs.
        """
        try:
            mapping = get_store(root).rehash_all()
        except BatchError as e:
            _fail_batch(e, "Rehashed")
        except TrackerError as e:
            echo_error(str(e))
            raise typer.Exit(1) from None

        if is_json_output(json_output):
            echo_json(mapping)
            return
        if not mapping:
            typer.echo("No hex IDs to rehash")
            return
        for old_id, new_id in mapping.items():
            typer.echo(f"{old_id} → {new_id}")
        typer.echo(f"\nRehashed {len(mapping)} issues")
