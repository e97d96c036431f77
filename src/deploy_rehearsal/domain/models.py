"""Immutable domain models for commits, branches, pull requests, and simulation results."""

from __future__ import annotations

import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, StrEnum
from typing import overload

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_REVERT_TITLE_RE = re.compile(r"^revert", re.IGNORECASE)
_ABBREVIATED_SHA_LENGTH = 8


class MergeStrategy(StrEnum):
    """Pull-request merge methods that can be simulated."""

    MERGE = "merge"
    REBASE = "rebase"
    SQUASH = "squash"

    @classmethod
    def parse(cls, raw: str) -> MergeStrategy:
        """Parse a user-supplied merge type, tolerating case and surrounding whitespace."""

        normalized = raw.strip().lower()
        try:
            return cls(normalized)
        except ValueError as exc:
            allowed = ", ".join(member.value for member in cls)
            raise ValueError(f"unknown merge type {raw!r} (expected one of: {allowed})") from exc


class FastForwardPolicy(Enum):
    """How ``git merge`` may resolve the merge."""

    ALLOW = "allow"
    FORCE_MERGE_COMMIT = "force_merge_commit"
    REQUIRE_FAST_FORWARD = "require_fast_forward"


@dataclass(frozen=True, slots=True)
class Identity:
    name: str
    email: str


@dataclass(frozen=True, slots=True)
class FileStat:
    """Per-file line counts. Binary files report zero for both columns."""

    filename: str
    additions: int
    deletions: int


@dataclass(frozen=True, slots=True)
class ChangeStats:
    additions: int = 0
    deletions: int = 0

    @property
    def total(self) -> int:
        return self.additions + self.deletions


@dataclass(frozen=True, slots=True)
class Commit:
    """
    Read-only snapshot of one commit as parsed from ``git log``.

    Identity is the SHA. ``is_merge_commit`` and ``is_revert_commit`` are derived from
    ``parents`` and ``title`` so they can never disagree with them.
    """

    sha: str
    title: str
    message: str
    message_lines: tuple[str, ...]
    author: Identity
    committer: Identity
    date: datetime
    parents: tuple[str, ...] = ()
    files_changed: tuple[str, ...] = ()
    file_stats: tuple[FileStat, ...] = ()
    stats: ChangeStats = field(default_factory=ChangeStats)
    branch: str | None = None
    tags: tuple[str, ...] = ()
    refs: tuple[str, ...] = ()

    @property
    def is_merge_commit(self) -> bool:
        return len(self.parents) > 1

    @property
    def is_revert_commit(self) -> bool:
        return _REVERT_TITLE_RE.match(self.title) is not None

    @property
    def abbreviated_sha(self) -> str:
        return self.sha[:_ABBREVIATED_SHA_LENGTH]

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "sha": self.sha,
            "abbreviated_sha": self.abbreviated_sha,
            "title": self.title,
            "message": self.message,
            "message_lines": list(self.message_lines),
            "author": {"name": self.author.name, "email": self.author.email},
            "committer": {"name": self.committer.name, "email": self.committer.email},
            "date": self.date.isoformat(),
            "parents": list(self.parents),
            "is_merge_commit": self.is_merge_commit,
            "is_revert_commit": self.is_revert_commit,
            "files_changed": list(self.files_changed),
            "file_stats": [
                {
                    "filename": stat.filename,
                    "additions": stat.additions,
                    "deletions": stat.deletions,
                }
                for stat in self.file_stats
            ],
            "stats": {
                "additions": self.stats.additions,
                "deletions": self.stats.deletions,
                "total": self.stats.total,
            },
            "branch": self.branch,
            "tags": list(self.tags),
            "refs": list(self.refs),
        }


@dataclass(frozen=True, slots=True)
class BranchRef:
    """
    A branch name and the ref that resolves it.

    ``ref`` is the bare name for local branches and ``<remote>/<name>`` for
    remote-tracking branches.
    """

    name: str
    ref: str

    @property
    def is_remote(self) -> bool:
        return self.ref != self.name


@dataclass(frozen=True, slots=True)
class PullRequest:
    number: int
    source_branch: str
    target_branch: str
    title: str
    description: str = ""

    def __post_init__(self) -> None:
        if self.number <= 0:
            raise ValueError(f"PullRequest.number must be > 0, got {self.number}")
        if not self.source_branch.strip():
            raise ValueError("PullRequest.source_branch must not be empty")
        if not self.target_branch.strip():
            raise ValueError("PullRequest.target_branch must not be empty")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "number": self.number,
            "source_branch": self.source_branch,
            "target_branch": self.target_branch,
            "title": self.title,
            "description": self.description,
        }


@dataclass(frozen=True, slots=True)
class PullRequestStack(Sequence[PullRequest]):
    """
    Ordered chain of stacked pull requests.

    Index 0 is the pull request whose source branch is the branch under test; each
    following entry targets a branch closer to the integration branch.
    """

    pull_requests: tuple[PullRequest, ...]

    def __post_init__(self) -> None:
        if not self.pull_requests:
            raise ValueError("PullRequestStack must contain at least one pull request")
        for lower, upper in zip(self.pull_requests, self.pull_requests[1:], strict=False):
            if upper.source_branch != lower.target_branch:
                raise ValueError(
                    f"pull request #{upper.number} does not continue the stack: source "
                    f"{upper.source_branch!r} != target {lower.target_branch!r} of "
                    f"#{lower.number}"
                )

    @overload
    def __getitem__(self, index: int) -> PullRequest: ...

    @overload
    def __getitem__(self, index: slice) -> tuple[PullRequest, ...]: ...

    def __getitem__(self, index: int | slice) -> PullRequest | tuple[PullRequest, ...]:
        return self.pull_requests[index]

    def __len__(self) -> int:
        return len(self.pull_requests)

    def __iter__(self) -> Iterator[PullRequest]:
        return iter(self.pull_requests)

    @property
    def starting_branch(self) -> str:
        return self.pull_requests[0].source_branch

    @property
    def final_branch(self) -> str:
        return self.pull_requests[-1].target_branch


@dataclass(frozen=True, slots=True)
class MergeSimulationResult:
    """Commits one simulated merge created (newest first) and the branch it ended on."""

    strategy: MergeStrategy
    commits: tuple[Commit, ...]
    branch: str


@dataclass(frozen=True, slots=True)
class SimulationOutcome:
    """
    Per-merge-type result handed to release-decision logic.

    ``merge_type`` is ``None`` when nothing was simulated and the working repository is
    reported as-is.
    """

    merge_type: MergeStrategy | None
    starting_branch: str
    final_branch: str
    synthetic_commits: tuple[Commit, ...]
    pull_requests: tuple[PullRequest, ...] = ()

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "merge_type": self.merge_type.value if self.merge_type is not None else None,
            "starting_branch": self.starting_branch,
            "final_branch": self.final_branch,
            "pull_requests": [pr.to_dict() for pr in self.pull_requests],
            "synthetic_commits": [commit.to_dict() for commit in self.synthetic_commits],
        }


@dataclass(frozen=True, slots=True)
class RepoMergeSettings:
    allow_merge_commit: bool
    allow_squash_merge: bool
    allow_rebase_merge: bool

    def enabled_strategies(self) -> tuple[MergeStrategy, ...]:
        enabled: list[MergeStrategy] = []
        if self.allow_merge_commit:
            enabled.append(MergeStrategy.MERGE)
        if self.allow_squash_merge:
            enabled.append(MergeStrategy.SQUASH)
        if self.allow_rebase_merge:
            enabled.append(MergeStrategy.REBASE)
        return tuple(enabled)


__all__ = [
    "BranchRef",
    "ChangeStats",
    "Commit",
    "FastForwardPolicy",
    "FileStat",
    "Identity",
    "JSONScalar",
    "JSONValue",
    "MergeSimulationResult",
    "MergeStrategy",
    "PullRequest",
    "PullRequestStack",
    "RepoMergeSettings",
    "SimulationOutcome",
]
