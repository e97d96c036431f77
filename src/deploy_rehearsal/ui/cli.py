"""Command-line interface router for deploy-rehearsal."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from deploy_rehearsal.config import dump_effective_config, load_config, resolve_github_token
from deploy_rehearsal.control_plane import (
    SimulationOrchestrator,
    resolve_merge_types,
    resolve_pull_request_stack,
)
from deploy_rehearsal.domain.models import Identity
from deploy_rehearsal.integration_plane import CloneManager, GitEngine, GitHubClient, LogFormat
from deploy_rehearsal.observability.logging import configure_logging
from deploy_rehearsal.ui.render import CLIRenderer, create_renderer


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 2

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rehearsal",
        description=(
            "deploy-rehearsal — simulate merging stacked pull requests before deploying.\n\n"
            "Common workflows:\n"
            "  rehearsal simulate                 Simulate every allowed merge method\n"
            "  rehearsal simulate -m squash       Simulate a squash merge only\n"
            "  rehearsal stack                    Show the pull-request stack of this branch\n"
            "  rehearsal commits --limit 10       Show recent commits as parsed\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--repo-root",
        default=".",
        help="Repository root directory (default: current working directory).",
    )
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to rehearsal TOML config (default: <repo-root>/rehearsal.toml if present).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Debug logging and detailed output.",
    )

    github = argparse.ArgumentParser(add_help=False)
    github.add_argument("--owner", default=None, help="GitHub repository owner.")
    github.add_argument("--repo", dest="repo_name", default=None, help="GitHub repository name.")

    subparsers = parser.add_subparsers(dest="command", required=True)

    simulate_parser = subparsers.add_parser(
        "simulate",
        parents=[common, github],
        help="Simulate merging the pull-request stack of a branch",
    )
    simulate_parser.add_argument(
        "--branch",
        default=None,
        help="Starting branch (default: the branch checked out in --repo-root).",
    )
    simulate_parser.add_argument(
        "--merge-type",
        "-m",
        dest="merge_types",
        action="append",
        default=None,
        help="merge, squash or rebase. Repeatable or comma separated.",
    )
    simulate_parser.add_argument("--json", action="store_true", default=False)
    simulate_parser.set_defaults(handler=_cmd_simulate)

    stack_parser = subparsers.add_parser(
        "stack",
        parents=[common, github],
        help="Print the resolved pull-request stack",
    )
    stack_parser.add_argument("--branch", default=None, help="Starting branch.")
    stack_parser.add_argument("--json", action="store_true", default=False)
    stack_parser.set_defaults(handler=_cmd_stack)

    commits_parser = subparsers.add_parser(
        "commits",
        parents=[common],
        help="Print parsed commits of the working repository",
    )
    commits_parser.add_argument("--ref", default="HEAD", help="Branch or ref (default: HEAD).")
    commits_parser.add_argument("--limit", type=_positive_int, default=None)
    commits_parser.add_argument("--json", action="store_true", default=False)
    commits_parser.set_defaults(handler=_cmd_commits)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_simulate(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    owner, repo = _require_repository(config)
    simulation = config["simulation"]

    with _github_client(config) as client:
        merge_types = resolve_merge_types(
            simulation["merge_types"],
            settings_lookup=lambda: client.get_repo_merge_settings(owner, repo),
        )
        orchestrator = SimulationOrchestrator(
            _clone_manager(args, config),
            client,
            owner,
            repo,
            committer=Identity(
                name=simulation["committer_name"],
                email=simulation["committer_email"],
            ),
        )
        outcomes = orchestrator.run(merge_types, starting_branch=args.branch)

    renderer = _get_renderer(args)
    if args.json:
        renderer.emit_json({"outcomes": [outcome.to_dict() for outcome in outcomes]})
        return 0
    for outcome in outcomes:
        renderer.outcome(outcome)
    return 0


def _cmd_stack(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    owner, repo = _require_repository(config)

    branch = args.branch
    if not branch:
        branch = _engine(args, config).get_current_branch_name()
        if branch is None:
            raise CLIError("HEAD is detached; pass --branch")

    with _github_client(config) as client:
        open_pull_requests = client.get_open_pull_requests(owner, repo)
    stack = resolve_pull_request_stack(open_pull_requests, branch)

    renderer = _get_renderer(args)
    if args.json:
        renderer.emit_json(
            {
                "starting_branch": stack.starting_branch,
                "final_branch": stack.final_branch,
                "pull_requests": [pull_request.to_dict() for pull_request in stack],
            }
        )
        return 0
    renderer.kv("Starting branch", stack.starting_branch)
    renderer.kv("Final branch", stack.final_branch)
    renderer.pull_requests(list(stack), title="Stack (closest to the starting branch first):")
    return 0


def _cmd_commits(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    commits = _engine(args, config).get_commits(args.ref, limit=args.limit)

    renderer = _get_renderer(args)
    if args.json:
        renderer.emit_json({"ref": args.ref, "commits": [commit.to_dict() for commit in commits]})
        return 0
    renderer.commits(commits, title=f"Commits on {args.ref} (newest first):")
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, object] = {
        "repository.owner": getattr(args, "owner", None),
        "repository.name": getattr(args, "repo_name", None),
    }
    merge_types = getattr(args, "merge_types", None)
    if merge_types:
        overrides["simulation.merge_types"] = [
            item.strip() for raw in merge_types for item in raw.split(",") if item.strip()
        ]

    config = load_config(
        args.config_path,
        cli_overrides=overrides,
        base_dir=_repo_root(args),
    )
    observability = config["observability"]
    configure_logging(
        "DEBUG" if args.verbose else observability["log_level"],
        observability["log_format"],
    )
    structlog.get_logger(__name__).debug(
        "config_loaded",
        config_path=args.config_path,
        effective_config=dump_effective_config(config),
    )
    return config


def _repo_root(args: argparse.Namespace) -> Path:
    return Path(args.repo_root).expanduser().resolve()


def _require_repository(config: Mapping[str, Any]) -> tuple[str, str]:
    repository = config["repository"]
    owner = repository["owner"]
    name = repository["name"]
    if not owner or not name:
        raise CLIError(
            "GitHub repository is not configured; pass --owner/--repo, set "
            "[repository] owner/name, or GITHUB_REPOSITORY=owner/name"
        )
    return owner, name


def _log_format(config: Mapping[str, Any]) -> LogFormat:
    git = config["git"]
    return LogFormat(
        record_separator=git["record_separator"],
        field_separator=git["field_separator"],
    )


def _engine(args: argparse.Namespace, config: Mapping[str, Any]) -> GitEngine:
    return GitEngine(
        _repo_root(args),
        remote=config["repository"]["remote"],
        log_format=_log_format(config),
    )


def _clone_manager(args: argparse.Namespace, config: Mapping[str, Any]) -> CloneManager:
    simulation = config["simulation"]
    return CloneManager(
        _repo_root(args),
        clone_root=simulation["clone_root"] or None,
        clone_prefix=simulation["clone_prefix"],
        remote=config["repository"]["remote"],
        log_format=_log_format(config),
    )


def _github_client(config: Mapping[str, Any]) -> GitHubClient:
    github = config["github"]
    return GitHubClient(
        resolve_github_token(config),
        api_url=github["api_url"],
        page_size=github["page_size"],
        timeout_seconds=github["timeout_seconds"],
    )


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(verbose=bool(args.verbose))


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {raw!r}") from exc
    if value <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {raw!r}")
    return value


__all__ = ["CLIError", "build_parser", "run_cli"]
