"""Plain-text output rendering for the rehearsal CLI.

Everything goes to stdout; logs go to stderr through structlog.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from deploy_rehearsal.domain.models import Commit, PullRequest, SimulationOutcome


class CLIRenderer:
    """Thin CLI output renderer producing deterministic plain text."""

    def __init__(self, *, verbose: bool = False) -> None:
        self.verbose = verbose

    def kv(self, key: str, value: object) -> None:
        print(f"{key}: {value}")

    def text(self, line: str) -> None:
        print(line)

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        print(f"\n{title}")

    def emit_json(self, payload: Mapping[str, object] | Sequence[object]) -> None:
        print(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False))

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print a formatted ASCII table."""

        if title:
            self.section(title)
        if not rows:
            print("  (none)")
            return

        col_count = len(headers)
        widths = [len(h) for h in headers]
        for row in rows:
            for i in range(min(len(row), col_count)):
                widths[i] = max(widths[i], len(str(row[i])))

        def _pad(cells: Sequence[str]) -> str:
            parts: list[str] = []
            for i in range(col_count):
                cell = str(cells[i]) if i < len(cells) else ""
                parts.append(cell.ljust(widths[i]))
            return "  ".join(parts).rstrip()

        print(f"  {_pad(list(headers))}")
        print(f"  {'  '.join('-' * w for w in widths)}")
        for row in rows:
            print(f"  {_pad(list(row))}")

    def commits(self, commits: Sequence[Commit], *, title: str | None = None) -> None:
        rows = [
            [
                commit.abbreviated_sha,
                _flags(commit),
                commit.title,
                commit.author.name,
                commit.branch or "",
            ]
            for commit in commits
        ]
        self.table(["SHA", "KIND", "TITLE", "AUTHOR", "BRANCH"], rows, title=title)

    def pull_requests(self, pull_requests: Sequence[PullRequest], *, title: str | None = None) -> None:
        rows = [
            [f"#{pr.number}", pr.source_branch, pr.target_branch, pr.title]
            for pr in pull_requests
        ]
        self.table(["PR", "SOURCE", "TARGET", "TITLE"], rows, title=title)

    def outcome(self, outcome: SimulationOutcome) -> None:
        merge_type = outcome.merge_type.value if outcome.merge_type is not None else "none"
        self.section(f"[{merge_type}]")
        self.kv("  Starting branch", outcome.starting_branch)
        self.kv("  Final branch", outcome.final_branch)
        if self.verbose:
            self.pull_requests(outcome.pull_requests, title="  Pull requests:")
        self.commits(outcome.synthetic_commits, title="  Synthetic commits (newest first):")


def _flags(commit: Commit) -> str:
    if commit.is_merge_commit:
        return "merge"
    if commit.is_revert_commit:
        return "revert"
    return ""


def create_renderer(*, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
