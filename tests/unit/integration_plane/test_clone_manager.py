"""
deploy-rehearsal — unit tests for isolated clone provisioning.

Purpose
- Clones start on the source repository's branch and talk to the source's real remote.
- Removal is confined to the clone root.
"""

from __future__ import annotations

import os
import subprocess
from typing import TYPE_CHECKING

import pytest

from deploy_rehearsal.integration_plane.clone_manager import CloneManager
from deploy_rehearsal.integration_plane.git_engine import GitCommandError

if TYPE_CHECKING:
    from pathlib import Path


def _git(cwd: Path, *args: str) -> str:
    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"
    completed = subprocess.run(
        ["git", *args], cwd=cwd, env=env, text=True, capture_output=True, check=False
    )
    if completed.returncode != 0:
        raise AssertionError(f"git {' '.join(args)} failed:\n{completed.stderr}")
    return completed.stdout.strip()


@pytest.fixture(autouse=True)
def isolated_git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    _git(home, "config", "--global", "user.name", "Test Developer")
    _git(home, "config", "--global", "user.email", "dev@example.com")
    _git(home, "config", "--global", "init.defaultBranch", "main")


def _source_repo(tmp_path: Path, *, with_remote: bool = True) -> Path:
    work = tmp_path / "work"
    _git(tmp_path, "init", "--initial-branch=main", str(work))
    (work / "README.md").write_text("hello\n", encoding="utf-8")
    _git(work, "add", "README.md")
    _git(work, "commit", "-m", "Initial commit")
    if with_remote:
        origin = tmp_path / "origin.git"
        _git(tmp_path, "init", "--bare", "--initial-branch=main", str(origin))
        _git(work, "remote", "add", "origin", str(origin))
        _git(work, "push", "--quiet", "-u", "origin", "main")
    _git(work, "checkout", "--quiet", "-b", "feature-2")
    (work / "feature.txt").write_text("feature\n", encoding="utf-8")
    _git(work, "add", "feature.txt")
    _git(work, "commit", "-m", "Feature two")
    return work


def test_provision_clone_checks_out_source_branch_and_remote(tmp_path: Path) -> None:
    work = _source_repo(tmp_path)
    clone_root = tmp_path / "clones"
    manager = CloneManager(work, clone_root=clone_root)

    clone = manager.provision_clone()

    assert clone.directory.parent == clone_root.resolve()
    assert clone.directory.name.startswith("rehearsal-clone-")
    assert clone.engine.repo_path == clone.directory
    assert clone.engine.get_current_branch_name() == "feature-2"
    assert clone.engine.rev_parse("HEAD") == _git(work, "rev-parse", "HEAD")
    assert clone.engine.remote_url() == str(tmp_path / "origin.git")

    manager.remove_clone(clone.directory)
    assert not clone.directory.exists()
    assert _git(work, "rev-parse", "--abbrev-ref", "HEAD") == "feature-2"


def test_clones_are_independent_working_copies(tmp_path: Path) -> None:
    work = _source_repo(tmp_path)
    manager = CloneManager(work, clone_root=tmp_path / "clones")

    with manager.provision_clone() as first, manager.provision_clone() as second:
        assert first.directory != second.directory
        first.engine.checkout_branch("scratch", create_if_missing=True)
        assert second.engine.get_current_branch_name() == "feature-2"
        assert not second.engine.branch_exists("scratch")

    assert not first.directory.exists()
    assert not second.directory.exists()


def test_provision_clone_of_detached_head_checks_out_same_commit(tmp_path: Path) -> None:
    work = _source_repo(tmp_path)
    _git(work, "checkout", "--quiet", "--detach", "main")
    manager = CloneManager(work, clone_root=tmp_path / "clones")

    with manager.provision_clone() as clone:
        assert clone.engine.get_current_branch_name() is None
        assert clone.engine.rev_parse("HEAD") == _git(work, "rev-parse", "main")


def test_provision_clone_without_remote_keeps_source_as_remote(tmp_path: Path) -> None:
    work = _source_repo(tmp_path, with_remote=False)
    manager = CloneManager(work, clone_root=tmp_path / "clones")

    with manager.provision_clone() as clone:
        assert clone.engine.remote_url() == str(work.resolve())
        assert clone.engine.get_current_branch_name() == "feature-2"


def test_failed_provisioning_leaves_no_scratch_directory(tmp_path: Path) -> None:
    not_a_repo = tmp_path / "plain"
    not_a_repo.mkdir()
    clone_root = tmp_path / "clones"
    manager = CloneManager(not_a_repo, clone_root=clone_root)

    with pytest.raises(GitCommandError):
        manager.provision_clone()

    assert not clone_root.exists() or list(clone_root.iterdir()) == []


def test_remove_clone_refuses_paths_outside_clone_root(tmp_path: Path) -> None:
    work = _source_repo(tmp_path)
    clone_root = tmp_path / "clones"
    clone_root.mkdir()
    manager = CloneManager(work, clone_root=clone_root)

    with pytest.raises(ValueError, match="outside scratch root"):
        manager.remove_clone(work)
    with pytest.raises(ValueError, match="outside scratch root"):
        manager.remove_clone(clone_root)
    assert (work / "README.md").exists()


def test_current_repository_is_bound_to_repo_root(tmp_path: Path) -> None:
    work = _source_repo(tmp_path)
    manager = CloneManager(work / ".", clone_root=tmp_path / "clones")

    engine = manager.current_repository()

    assert engine.repo_path == work.resolve()
    assert engine.get_current_branch_name() == "feature-2"
