from __future__ import annotations

import random

import pytest
from hypothesis import given
from hypothesis import strategies as st

from deploy_rehearsal.control_plane.pr_stack import (
    PullRequestStackError,
    resolve_pull_request_stack,
)
from deploy_rehearsal.domain.models import PullRequest


def _pr(number: int, source: str, target: str) -> PullRequest:
    return PullRequest(number=number, source_branch=source, target_branch=target, title=f"PR {number}")


def test_two_level_stack_resolves_from_top_branch() -> None:
    open_prs = [
        _pr(123, "feature-1", "main"),
        _pr(124, "feature-2", "feature-1"),
        _pr(200, "unrelated", "main"),
    ]

    stack = resolve_pull_request_stack(open_prs, "feature-2")

    assert [pr.number for pr in stack] == [124, 123]
    assert stack.starting_branch == "feature-2"
    assert stack.final_branch == "main"


def test_single_pull_request_stack() -> None:
    stack = resolve_pull_request_stack([_pr(7, "topic", "develop")], "topic")

    assert len(stack) == 1
    assert stack[0].number == 7
    assert stack.final_branch == "develop"


def test_resolving_from_middle_of_stack_ignores_branches_above() -> None:
    open_prs = [
        _pr(1, "a", "main"),
        _pr(2, "b", "a"),
        _pr(3, "c", "b"),
    ]

    stack = resolve_pull_request_stack(open_prs, "b")

    assert [pr.number for pr in stack] == [2, 1]


def test_missing_pull_request_for_starting_branch_is_fatal() -> None:
    with pytest.raises(PullRequestStackError, match="No open pull request found with source branch 'lonely'"):
        resolve_pull_request_stack([_pr(1, "a", "main")], "lonely")


def test_no_open_pull_requests_is_fatal() -> None:
    with pytest.raises(PullRequestStackError):
        resolve_pull_request_stack([], "main")


def test_two_pull_requests_from_same_branch_are_ambiguous() -> None:
    open_prs = [_pr(5, "topic", "main"), _pr(4, "topic", "release")]

    with pytest.raises(PullRequestStackError, match="#4, #5"):
        resolve_pull_request_stack(open_prs, "topic")


def test_ambiguity_further_down_the_stack_is_fatal() -> None:
    open_prs = [
        _pr(1, "top", "middle"),
        _pr(2, "middle", "main"),
        _pr(3, "middle", "release"),
    ]

    with pytest.raises(PullRequestStackError, match="'middle'"):
        resolve_pull_request_stack(open_prs, "top")


def test_cycle_is_detected() -> None:
    open_prs = [_pr(1, "a", "b"), _pr(2, "b", "a")]

    with pytest.raises(PullRequestStackError, match="cycle: a -> b -> a"):
        resolve_pull_request_stack(open_prs, "a")


@given(
    depth=st.integers(min_value=1, max_value=12),
    seed=st.integers(min_value=0, max_value=10_000),
)
def test_chain_resolves_in_order_regardless_of_listing_order(depth: int, seed: int) -> None:
    branches = [f"layer-{index}" for index in range(depth)] + ["main"]
    chain = [_pr(100 + index, branches[index], branches[index + 1]) for index in range(depth)]
    shuffled = list(chain)
    random.Random(seed).shuffle(shuffled)

    stack = resolve_pull_request_stack(shuffled, "layer-0")

    assert list(stack) == chain
    assert stack.final_branch == "main"
