"""
deploy-rehearsal — CLI routing and exit-code tests.

Purpose
- Argument parsing, command output, and mapping of failures to process exit codes.
"""

from __future__ import annotations

import json
import os
import subprocess
from typing import TYPE_CHECKING, Any

import pytest
import structlog

from deploy_rehearsal.domain.models import MergeStrategy, PullRequest, RepoMergeSettings
from deploy_rehearsal.main import ExitCode, cli_entrypoint
from deploy_rehearsal.ui import cli as cli_module
from deploy_rehearsal.ui.cli import build_parser

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


def _git(cwd: Path, *args: str) -> str:
    completed = subprocess.run(
        ["git", *args],
        cwd=cwd,
        env=os.environ.copy(),
        text=True,
        capture_output=True,
        check=False,
    )
    if completed.returncode != 0:
        raise AssertionError(f"git {' '.join(args)} failed:\n{completed.stderr}")
    return completed.stdout.strip()


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")
    for name in list(os.environ):
        if name.startswith("REHEARSAL_") or name in {"GITHUB_REPOSITORY", "GITHUB_TOKEN"}:
            monkeypatch.delenv(name)
    _git(home, "config", "--global", "user.name", "Test Developer")
    _git(home, "config", "--global", "user.email", "dev@example.com")
    _git(home, "config", "--global", "init.defaultBranch", "main")
    yield
    structlog.reset_defaults()


def _repo(tmp_path: Path) -> Path:
    repo = tmp_path / "repo"
    _git(tmp_path, "init", "--initial-branch=main", str(repo))
    for index in range(3):
        (repo / f"file{index}.txt").write_text(f"{index}\n", encoding="utf-8")
        _git(repo, "add", "--all")
        _git(repo, "commit", "-m", f"Commit {index}")
    return repo


class FakeGitHubClient:
    def __init__(self, token: str, **kwargs: Any) -> None:
        self.token = token

    def __enter__(self) -> FakeGitHubClient:
        return self

    def __exit__(self, *args: Any) -> None:
        return None

    def get_open_pull_requests(self, owner: str, repo: str) -> tuple[PullRequest, ...]:
        assert (owner, repo) == ("octo", "app")
        return (
            PullRequest(123, "feature-1", "main", "Feature one"),
            PullRequest(124, "feature-2", "feature-1", "Feature two"),
        )

    def get_repo_merge_settings(self, owner: str, repo: str) -> RepoMergeSettings:
        return RepoMergeSettings(True, False, False)


def test_parser_collects_repeated_merge_types() -> None:
    args = build_parser().parse_args(
        ["simulate", "-m", "merge", "--merge-type", "squash,rebase", "--owner", "octo", "--repo", "app"]
    )

    assert args.merge_types == ["merge", "squash,rebase"]
    assert args.owner == "octo"
    assert args.repo_name == "app"
    assert args.handler is cli_module._cmd_simulate


def test_parser_rejects_non_positive_limit(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["commits", "--limit", "0"])
    assert "positive integer" in capsys.readouterr().err


def test_commits_json_output(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    repo = _repo(tmp_path)

    exit_code = cli_entrypoint(["commits", "--repo-root", str(repo), "--limit", "2", "--json"])

    assert exit_code == ExitCode.SUCCESS
    payload = json.loads(capsys.readouterr().out)
    assert payload["ref"] == "HEAD"
    assert [commit["title"] for commit in payload["commits"]] == ["Commit 2", "Commit 1"]
    assert payload["commits"][0]["refs"] == ["HEAD -> main"]
    assert payload["commits"][0]["branch"] is None


def test_commits_table_output(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    repo = _repo(tmp_path)

    assert cli_entrypoint(["commits", "--repo-root", str(repo)]) == ExitCode.SUCCESS

    out = capsys.readouterr().out
    assert "Commits on HEAD (newest first):" in out
    assert "Commit 0" in out


def test_stack_command_renders_resolved_stack(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setattr(cli_module, "GitHubClient", FakeGitHubClient)
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
    monkeypatch.setenv("GITHUB_REPOSITORY", "octo/app")
    repo = _repo(tmp_path)

    exit_code = cli_entrypoint(["stack", "--repo-root", str(repo), "--branch", "feature-2", "--json"])

    assert exit_code == ExitCode.SUCCESS
    payload = json.loads(capsys.readouterr().out)
    assert payload["final_branch"] == "main"
    assert [pr["number"] for pr in payload["pull_requests"]] == [124, 123]


def test_stack_without_matching_pull_request_is_config_error(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setattr(cli_module, "GitHubClient", FakeGitHubClient)
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
    repo = _repo(tmp_path)

    exit_code = cli_entrypoint(
        ["stack", "--repo-root", str(repo), "--owner", "octo", "--repo", "app"]
    )

    assert exit_code == ExitCode.CONFIG_ERROR
    assert "No open pull request found with source branch 'main'" in capsys.readouterr().err


def test_simulate_uses_repository_settings_and_renders_outcomes(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    seen: dict[str, Any] = {}

    class FakeOrchestrator:
        def __init__(self, clone_manager: Any, source: Any, owner: str, repo: str, **kwargs: Any) -> None:
            seen["clone_root"] = clone_manager.clone_root
            seen["committer"] = kwargs["committer"]

        def run(self, merge_types: Any, starting_branch: str | None = None) -> tuple[Any, ...]:
            seen["merge_types"] = merge_types
            seen["starting_branch"] = starting_branch
            return ()

    monkeypatch.setattr(cli_module, "GitHubClient", FakeGitHubClient)
    monkeypatch.setattr(cli_module, "SimulationOrchestrator", FakeOrchestrator)
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
    monkeypatch.setenv("REHEARSAL_SIMULATION_CLONE_ROOT", str(tmp_path / "clones"))
    repo = _repo(tmp_path)

    exit_code = cli_entrypoint(
        ["simulate", "--repo-root", str(repo), "--owner", "octo", "--repo", "app", "--json"]
    )

    assert exit_code == ExitCode.SUCCESS
    assert json.loads(capsys.readouterr().out) == {"outcomes": []}
    assert seen["merge_types"] == (MergeStrategy.MERGE,)
    assert seen["starting_branch"] is None
    assert seen["committer"].name == "Deployment Test"
    assert seen["clone_root"] == (tmp_path / "clones").resolve()


def test_missing_token_is_config_error(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    repo = _repo(tmp_path)

    exit_code = cli_entrypoint(["stack", "--repo-root", str(repo), "--owner", "octo", "--repo", "app"])

    assert exit_code == ExitCode.CONFIG_ERROR
    assert "GITHUB_TOKEN" in capsys.readouterr().err


def test_missing_repository_is_reported(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    repo = _repo(tmp_path)

    exit_code = cli_entrypoint(["stack", "--repo-root", str(repo), "--branch", "x"])

    assert exit_code == ExitCode.CONFIG_ERROR
    assert "GitHub repository is not configured" in capsys.readouterr().err


def test_git_failure_maps_to_git_exit_code(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    plain = tmp_path / "plain"
    plain.mkdir()

    exit_code = cli_entrypoint(["commits", "--repo-root", str(plain)])

    assert exit_code == ExitCode.GIT_ERROR
    assert "git command failed" in capsys.readouterr().err


def test_invalid_config_file_maps_to_config_exit_code(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    (repo / "rehearsal.toml").write_text("[github]\npage_size = 1000\n", encoding="utf-8")

    assert cli_entrypoint(["commits", "--repo-root", str(repo)]) == ExitCode.CONFIG_ERROR


def test_unknown_command_exits_with_usage_error(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["deploy"]) == 2
    assert "invalid choice" in capsys.readouterr().err


def test_verbose_run_logs_effective_config(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    repo = _repo(tmp_path)

    assert cli_entrypoint(["commits", "--repo-root", str(repo), "--verbose"]) == ExitCode.SUCCESS

    err = capsys.readouterr().err
    assert "config_loaded" in err
    assert "effective_config" in err
    assert "merge_types" in err
