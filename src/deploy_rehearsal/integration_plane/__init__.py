"""Integration plane: git plumbing, merge simulation, disposable clones, and GitHub access."""

from deploy_rehearsal.integration_plane.clone_manager import CloneManager, IsolatedClone
from deploy_rehearsal.integration_plane.commit_log import LogFormat, parse_log_output
from deploy_rehearsal.integration_plane.git_engine import (
    BranchStateError,
    GitCommandError,
    GitEngine,
    GitEngineError,
)
from deploy_rehearsal.integration_plane.github_api import GitHubApiError, GitHubClient
from deploy_rehearsal.integration_plane.merge_simulator import MergeSimulator, SimulationConfigError

__all__ = [
    "BranchStateError",
    "CloneManager",
    "GitCommandError",
    "GitEngine",
    "GitEngineError",
    "GitHubApiError",
    "GitHubClient",
    "IsolatedClone",
    "LogFormat",
    "MergeSimulator",
    "SimulationConfigError",
    "parse_log_output",
]
