"""Simulate merging a pull request with each of GitHub's merge methods."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Final

import structlog

from deploy_rehearsal.domain.models import (
    FastForwardPolicy,
    Identity,
    MergeSimulationResult,
    MergeStrategy,
)

if TYPE_CHECKING:
    from deploy_rehearsal.domain.models import Commit
    from deploy_rehearsal.integration_plane.git_engine import GitEngine

# Never pushed anywhere; git only needs some identity to create commits.
DEFAULT_SIMULATION_COMMITTER: Final[Identity] = Identity(
    name="Deployment Test",
    email="test@test.com",
)


class SimulationConfigError(ValueError):
    """Raised when a simulation cannot run against the repository as configured."""


def merge_commit_title(pr_number: int, base_branch: str) -> str:
    return f"Merge pull request #{pr_number} from {base_branch}"


class MergeSimulator:
    """
    Runs one simulated pull-request merge inside a disposable working copy.

    ``base_branch`` is the pull request's source branch and ``target_branch`` the branch
    it merges into. The returned commits are exactly those the simulated merge added to
    ``target_branch``, newest first.
    """

    def __init__(
        self,
        engine: GitEngine,
        *,
        committer: Identity = DEFAULT_SIMULATION_COMMITTER,
        logger: Any | None = None,
    ) -> None:
        self._engine = engine
        self._committer = committer
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def perform_simulation(
        self,
        strategy: MergeStrategy | str,
        *,
        base_branch: str,
        target_branch: str,
        pr_number: int,
        pr_title: str,
        pr_description: str = "",
    ) -> MergeSimulationResult:
        merge_strategy = (
            strategy if isinstance(strategy, MergeStrategy) else MergeStrategy.parse(strategy)
        )
        reference = self._engine.get_latest_commit_on_branch(target_branch)
        if reference is None and merge_strategy is not MergeStrategy.MERGE:
            raise SimulationConfigError(
                f"Cannot {merge_strategy.value} {base_branch!r} onto {target_branch!r}: "
                "target branch has no commits"
            )

        self._prepare(base_branch, target_branch)

        if merge_strategy is MergeStrategy.MERGE:
            self._merge(base_branch, target_branch, pr_number)
        elif merge_strategy is MergeStrategy.SQUASH:
            self._squash(base_branch, target_branch, pr_title, pr_description)
        else:
            self._rebase(base_branch, target_branch, pr_title, pr_description)

        commits = self._created_commits(target_branch, reference)
        self._logger.info(
            "merge_simulation_completed",
            strategy=merge_strategy.value,
            pr_number=pr_number,
            base_branch=base_branch,
            target_branch=target_branch,
            commits_created=[commit.abbreviated_sha for commit in commits],
        )
        return MergeSimulationResult(
            strategy=merge_strategy,
            commits=commits,
            branch=target_branch,
        )

    def _prepare(self, base_branch: str, target_branch: str) -> None:
        engine = self._engine
        engine.checkout_branch(base_branch)
        engine.pull_current_branch()
        engine.checkout_branch(target_branch)
        engine.pull_current_branch()
        engine.set_committer_identity(self._committer.name, self._committer.email)

    def _merge(self, base_branch: str, target_branch: str, pr_number: int) -> None:
        self._engine.checkout_branch(target_branch)
        self._engine.merge_into(
            target_branch,
            base_branch,
            title=merge_commit_title(pr_number, base_branch),
            message="",
            policy=FastForwardPolicy.FORCE_MERGE_COMMIT,
        )

    def _squash(self, base_branch: str, target_branch: str, title: str, message: str) -> None:
        engine = self._engine
        engine.checkout_branch(base_branch)
        # Linearize first so the squash only absorbs commits unique to base_branch.
        engine.rebase(base_branch, target_branch)
        engine.squash_branch(base_branch, target_branch, title=title, message=message)
        engine.checkout_branch(target_branch)
        engine.merge_into(
            target_branch,
            base_branch,
            title=title,
            message=message,
            policy=FastForwardPolicy.REQUIRE_FAST_FORWARD,
        )

    def _rebase(self, base_branch: str, target_branch: str, title: str, message: str) -> None:
        engine = self._engine
        engine.checkout_branch(base_branch)
        engine.rebase(base_branch, target_branch)
        engine.checkout_branch(target_branch)
        engine.merge_into(
            target_branch,
            base_branch,
            title=title,
            message=message,
            policy=FastForwardPolicy.REQUIRE_FAST_FORWARD,
        )

    def _created_commits(self, target_branch: str, reference: Commit | None) -> tuple[Commit, ...]:
        if reference is None:
            return self._engine.get_commits(target_branch)
        return self._engine.get_latest_commits_since(reference)


__all__ = [
    "DEFAULT_SIMULATION_COMMITTER",
    "MergeSimulator",
    "SimulationConfigError",
    "merge_commit_title",
]
