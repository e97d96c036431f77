"""Rebuild the chain of stacked pull requests that leads from a branch to its integration branch."""

from __future__ import annotations

from typing import TYPE_CHECKING

from deploy_rehearsal.domain.models import PullRequest, PullRequestStack

if TYPE_CHECKING:
    from collections.abc import Iterable


class PullRequestStackError(ValueError):
    """Raised when the open pull requests cannot form a stack for the starting branch."""


def resolve_pull_request_stack(
    open_pull_requests: Iterable[PullRequest],
    starting_branch: str,
) -> PullRequestStack:
    """
    Order open pull requests into a stack starting at ``starting_branch``.

    Entry 0 is the pull request whose source is ``starting_branch``. Each following
    entry is the pull request whose source is the previous entry's target. The walk
    stops when no open pull request starts at the current target; that target is the
    integration branch.
    """

    by_source: dict[str, list[PullRequest]] = {}
    for pull_request in open_pull_requests:
        by_source.setdefault(pull_request.source_branch, []).append(pull_request)

    first = _single_pull_request_from(by_source, starting_branch)
    if first is None:
        raise PullRequestStackError(
            f"No open pull request found with source branch {starting_branch!r}"
        )

    chain = [first]
    visited = {first.source_branch}
    while True:
        branch = chain[-1].target_branch
        if branch in visited:
            raise PullRequestStackError(
                "Open pull requests form a cycle: "
                + " -> ".join([*(pr.source_branch for pr in chain), branch])
            )
        following = _single_pull_request_from(by_source, branch)
        if following is None:
            return PullRequestStack(tuple(chain))
        visited.add(branch)
        chain.append(following)


def _single_pull_request_from(
    by_source: dict[str, list[PullRequest]],
    branch: str,
) -> PullRequest | None:
    candidates = by_source.get(branch, [])
    if len(candidates) > 1:
        numbers = ", ".join(f"#{pr.number}" for pr in sorted(candidates, key=lambda pr: pr.number))
        raise PullRequestStackError(
            f"Multiple open pull requests have source branch {branch!r}: {numbers}"
        )
    return candidates[0] if candidates else None


__all__ = ["PullRequestStackError", "resolve_pull_request_stack"]
