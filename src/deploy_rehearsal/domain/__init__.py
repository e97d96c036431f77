"""Domain types shared across planes: commits, branches, pull requests, simulation results."""

from deploy_rehearsal.domain.models import (
    BranchRef,
    ChangeStats,
    Commit,
    FastForwardPolicy,
    FileStat,
    Identity,
    MergeSimulationResult,
    MergeStrategy,
    PullRequest,
    PullRequestStack,
    RepoMergeSettings,
    SimulationOutcome,
)

__all__ = [
    "BranchRef",
    "ChangeStats",
    "Commit",
    "FastForwardPolicy",
    "FileStat",
    "Identity",
    "MergeSimulationResult",
    "MergeStrategy",
    "PullRequest",
    "PullRequestStack",
    "RepoMergeSettings",
    "SimulationOutcome",
]
