"""
deploy-rehearsal — rehearsal orchestrator.

File: src/deploy_rehearsal/control_plane/orchestrator.py

Purpose
- For each merge type under test, simulate merging the whole pull-request stack of the
  starting branch inside its own disposable clone.
- Report the branch the simulation ends on and every synthetic commit it created,
  newest first.

Behavior
- Merge types run one after another; each owns its clone and git engine.
- Open pull requests are listed once per run and shared by all merge types.
- Clone removal is always attempted. A removal failure is logged and never changes the
  reported outcome.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog
from structlog.contextvars import bound_contextvars

from deploy_rehearsal.control_plane.pr_stack import resolve_pull_request_stack
from deploy_rehearsal.domain.models import MergeStrategy, SimulationOutcome
from deploy_rehearsal.integration_plane.merge_simulator import (
    DEFAULT_SIMULATION_COMMITTER,
    MergeSimulator,
    SimulationConfigError,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from deploy_rehearsal.domain.models import Commit, Identity, PullRequest
    from deploy_rehearsal.integration_plane.clone_manager import CloneManager, IsolatedClone


class PullRequestSource(Protocol):
    """Anything that can list a repository's open pull requests."""

    def get_open_pull_requests(self, owner: str, repo: str) -> Sequence[PullRequest]: ...


class SimulationOrchestrator:
    """Runs stacked pull-request merge simulations in isolated clones."""

    def __init__(
        self,
        clone_manager: CloneManager,
        pull_request_source: PullRequestSource,
        owner: str,
        repo: str,
        *,
        committer: Identity = DEFAULT_SIMULATION_COMMITTER,
        logger: Any | None = None,
    ) -> None:
        self._clone_manager = clone_manager
        self._pull_request_source = pull_request_source
        self._owner = owner
        self._repo = repo
        self._committer = committer
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def run(
        self,
        merge_types: Iterable[MergeStrategy | str],
        starting_branch: str | None = None,
    ) -> tuple[SimulationOutcome, ...]:
        strategies = [_as_strategy(merge_type) for merge_type in merge_types]
        if not strategies:
            return ()

        open_pull_requests = self.list_open_pull_requests()
        return tuple(
            self.run_merge_type(
                strategy,
                starting_branch,
                open_pull_requests=open_pull_requests,
            )
            for strategy in strategies
        )

    def run_merge_type(
        self,
        merge_type: MergeStrategy | str,
        starting_branch: str | None = None,
        *,
        open_pull_requests: Sequence[PullRequest] | None = None,
    ) -> SimulationOutcome:
        strategy = _as_strategy(merge_type)
        with bound_contextvars(merge_type=strategy.value):
            clone = self._clone_manager.provision_clone()
            try:
                return self._simulate_stack(clone, strategy, starting_branch, open_pull_requests)
            finally:
                self._discard_clone(clone)

    def list_open_pull_requests(self) -> tuple[PullRequest, ...]:
        pull_requests = tuple(
            self._pull_request_source.get_open_pull_requests(self._owner, self._repo)
        )
        self._logger.debug(
            "open_pull_requests_listed",
            owner=self._owner,
            repo=self._repo,
            count=len(pull_requests),
        )
        return pull_requests

    def current_branch_outcome(self) -> SimulationOutcome:
        """Outcome for a run without simulation: the working repository's branch, nothing synthetic."""
        engine = self._clone_manager.current_repository()
        branch = engine.get_current_branch_name()
        if branch is None:
            raise SimulationConfigError(
                f"Working repository {engine.repo_path} has a detached HEAD; check out a branch"
            )
        return SimulationOutcome(
            merge_type=None,
            starting_branch=branch,
            final_branch=branch,
            synthetic_commits=(),
        )

    def _simulate_stack(
        self,
        clone: IsolatedClone,
        strategy: MergeStrategy,
        starting_branch: str | None,
        open_pull_requests: Sequence[PullRequest] | None,
    ) -> SimulationOutcome:
        engine = clone.engine
        engine.fetch_all()

        branch = starting_branch if starting_branch else engine.get_current_branch_name()
        if branch is None:
            raise SimulationConfigError(
                "Cannot determine the starting branch: the clone has a detached HEAD and no "
                "branch was given"
            )

        pull_requests = (
            open_pull_requests
            if open_pull_requests is not None
            else self.list_open_pull_requests()
        )
        stack = resolve_pull_request_stack(pull_requests, branch)
        self._logger.info(
            "pull_request_stack_resolved",
            starting_branch=branch,
            pull_requests=[pull_request.number for pull_request in stack],
            final_branch=stack.final_branch,
        )

        simulator = MergeSimulator(engine, committer=self._committer)
        synthetic: tuple[Commit, ...] = ()
        for pull_request in stack:
            engine.create_local_tracking_branch(pull_request.source_branch)
            engine.create_local_tracking_branch(pull_request.target_branch)
            result = simulator.perform_simulation(
                strategy,
                base_branch=pull_request.source_branch,
                target_branch=pull_request.target_branch,
                pr_number=pull_request.number,
                pr_title=pull_request.title,
                pr_description=pull_request.description,
            )
            synthetic = prepend_commits(result.commits, synthetic)

        return SimulationOutcome(
            merge_type=strategy,
            starting_branch=branch,
            final_branch=stack.final_branch,
            synthetic_commits=synthetic,
            pull_requests=tuple(stack),
        )

    def _discard_clone(self, clone: IsolatedClone) -> None:
        try:
            self._clone_manager.remove_clone(clone.directory)
        except Exception as exc:  # noqa: BLE001 - cleanup never changes the outcome
            self._logger.warning(
                "clone_removal_failed",
                clone=clone.directory.as_posix(),
                error=str(exc),
            )


def prepend_commits(
    newer: Sequence[Commit],
    older: Sequence[Commit],
) -> tuple[Commit, ...]:
    """``newer + older`` keeping each SHA only at its first (newest) position."""

    seen: set[str] = set()
    combined: list[Commit] = []
    for commit in (*newer, *older):
        if commit.sha in seen:
            continue
        seen.add(commit.sha)
        combined.append(commit)
    return tuple(combined)


def _as_strategy(merge_type: MergeStrategy | str) -> MergeStrategy:
    if isinstance(merge_type, MergeStrategy):
        return merge_type
    return MergeStrategy.parse(merge_type)


__all__ = [
    "PullRequestSource",
    "SimulationOrchestrator",
    "prepend_commits",
]
