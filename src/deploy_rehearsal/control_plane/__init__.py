"""Control-plane public API."""

from deploy_rehearsal.control_plane.merge_types import (
    DEFAULT_MERGE_TYPES,
    parse_merge_types,
    resolve_merge_types,
)
from deploy_rehearsal.control_plane.orchestrator import (
    PullRequestSource,
    SimulationOrchestrator,
    prepend_commits,
)
from deploy_rehearsal.control_plane.pr_stack import (
    PullRequestStackError,
    resolve_pull_request_stack,
)

__all__ = [
    "DEFAULT_MERGE_TYPES",
    "PullRequestSource",
    "PullRequestStackError",
    "SimulationOrchestrator",
    "parse_merge_types",
    "prepend_commits",
    "resolve_merge_types",
    "resolve_pull_request_stack",
]
