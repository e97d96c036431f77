"""
deploy-rehearsal — git plumbing adapter.

File: src/deploy_rehearsal/integration_plane/git_engine.py

Purpose
- Issue the version-control operations a simulated merge needs (fetch, checkout, pull,
  merge, rebase, squash, branch listing) against one bound working copy.
- Return typed commits via the custom log format in ``commit_log``.

Each engine owns exactly one working directory. "Current branch" is whatever that
directory has checked out; mutating operations take the branch the caller expects to be
on and refuse to run anywhere else.
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import structlog

from deploy_rehearsal.domain.models import BranchRef, Commit, FastForwardPolicy
from deploy_rehearsal.integration_plane.commit_log import LogFormat, parse_log_output

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

DEFAULT_REMOTE: Final[str] = "origin"

_PULL_REQUEST_REF_PREFIX: Final[str] = "pull/"

_FAST_FORWARD_FLAGS: Final[dict[FastForwardPolicy, tuple[str, ...]]] = {
    FastForwardPolicy.ALLOW: (),
    FastForwardPolicy.FORCE_MERGE_COMMIT: ("--no-ff",),
    FastForwardPolicy.REQUIRE_FAST_FORWARD: ("--ff-only",),
}


class GitEngineError(RuntimeError):
    """Base error for git engine failures."""


class BranchStateError(GitEngineError):
    """Raised when the working copy is not on the branch an operation expects."""


class GitCommandError(GitEngineError):
    """Raised when a git subprocess command exits non-zero."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = f"git command failed ({returncode}): {' '.join(command)}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Normalized subprocess result."""

    command: tuple[str, ...]
    cwd: str
    returncode: int
    stdout: str
    stderr: str


class GitEngine:
    """Git CLI wrapper bound to a single working directory."""

    def __init__(
        self,
        repo_path: Path | str,
        *,
        remote: str = DEFAULT_REMOTE,
        log_format: LogFormat | None = None,
        env_overrides: Mapping[str, str] | None = None,
        logger: Any | None = None,
    ) -> None:
        self.repo_path = Path(repo_path).resolve()
        self.remote = remote
        self.log_format = log_format if log_format is not None else LogFormat()
        self._env_overrides = dict(env_overrides or {})
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    # ------------------------------------------------------------------ remote sync

    def fetch_all(self) -> None:
        """Fetch every remote with tags, unshallowing first when the clone is shallow."""
        args = ["fetch", "--tags", "--all"]
        if self.is_shallow():
            self._logger.debug("git_fetch_unshallow", repo=self.repo_path.as_posix())
            args.insert(1, "--unshallow")
        self._run_git(args)

    def pull_current_branch(self) -> None:
        current = self._require_attached_branch("pull")
        self._run_git(["pull", "--no-rebase", self.remote, current])

    # ------------------------------------------------------------------ branch state

    def get_current_branch_name(self) -> str | None:
        """Return the checked-out branch name, or ``None`` when HEAD is detached."""
        result = self._run_git(["symbolic-ref", "--quiet", "--short", "HEAD"], check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def checkout_branch(self, name: str, *, create_if_missing: bool = False) -> None:
        if create_if_missing and not self.branch_exists(name):
            self._run_git(["checkout", "-b", name])
            return
        self._run_git(["checkout", name])

    def branch_exists(self, name: str) -> bool:
        return self._ref_exists(f"refs/heads/{name}")

    def remote_branch_exists(self, name: str) -> bool:
        return self._ref_exists(f"refs/remotes/{self.remote}/{name}")

    def create_local_tracking_branch(self, name: str) -> None:
        """
        Ensure local branch ``name`` exists and is caught up with the remote.

        The branch checked out before the call (or the detached commit) is restored on
        exit, including when the pull fails.
        """
        has_remote = self.remote_branch_exists(name)
        if not self.branch_exists(name):
            if not has_remote:
                raise GitEngineError(
                    f"Branch {name!r} exists neither locally nor on remote {self.remote!r}"
                )
            self._run_git(["branch", "--track", name, f"{self.remote}/{name}"])

        previous = self.get_current_branch_name() or self.rev_parse("HEAD")
        try:
            self.checkout_branch(name)
            if has_remote:
                self._run_git(["pull", "--no-rebase", self.remote, name])
        except GitEngineError:
            restore = self._run_git(["checkout", previous], check=False)
            if restore.returncode != 0:
                self._logger.warning(
                    "git_checkout_restore_failed",
                    repo=self.repo_path.as_posix(),
                    target=previous,
                    stderr=restore.stderr.strip(),
                )
            raise
        self._run_git(["checkout", previous])

    def list_all_branches(self) -> tuple[BranchRef, ...]:
        """
        List local and remote-tracking branches.

        A remote-tracking branch is dropped when a local branch of the same name exists.
        HEAD markers, detached entries and pull-request refs are excluded.
        """
        remotes = tuple(
            line.strip() for line in self._run_git(["remote"]).stdout.splitlines() if line.strip()
        )
        listing = self._run_git(["branch", "--all", "--format=%(refname:short)"]).stdout

        local: dict[str, BranchRef] = {}
        remote: dict[str, BranchRef] = {}
        for raw in listing.splitlines():
            ref = raw.strip()
            if not ref or ref.startswith("(") or ref in remotes:
                continue
            if ref == "HEAD" or ref.endswith("/HEAD"):
                continue
            remote_name, _, short_name = ref.partition("/")
            if short_name and remote_name in remotes:
                if short_name.startswith(_PULL_REQUEST_REF_PREFIX):
                    continue
                remote.setdefault(short_name, BranchRef(name=short_name, ref=ref))
            else:
                if ref.startswith(_PULL_REQUEST_REF_PREFIX):
                    continue
                local.setdefault(ref, BranchRef(name=ref, ref=ref))

        merged = list(local.values())
        merged.extend(branch for name, branch in remote.items() if name not in local)
        return tuple(merged)

    def set_committer_identity(self, name: str, email: str) -> None:
        """Write repository-local author/committer identity."""
        self._run_git(["config", "user.name", name])
        self._run_git(["config", "user.email", email])

    # ------------------------------------------------------------------ history rewriting

    def merge_into(
        self,
        current_branch: str,
        other_branch: str,
        *,
        title: str,
        message: str = "",
        policy: FastForwardPolicy = FastForwardPolicy.ALLOW,
    ) -> None:
        """Merge ``other_branch`` into the checked-out ``current_branch``."""
        self._require_on_branch(current_branch, action="merge")
        args = ["merge", other_branch, "--no-edit", *_FAST_FORWARD_FLAGS[policy], "-m", title]
        if message.strip():
            args.extend(["-m", message])
        try:
            self._run_git(args)
        except GitCommandError:
            self._run_git(["merge", "--abort"], check=False)
            raise

    def rebase(self, current_branch: str, onto_branch: str) -> None:
        """Replay the checked-out branch's unique commits onto ``onto_branch``."""
        self._require_on_branch(current_branch, action="rebase")
        try:
            self._run_git(["rebase", onto_branch])
        except GitCommandError:
            self._run_git(["rebase", "--abort"], check=False)
            raise

    def squash_branch(
        self,
        branch_to_squash: str,
        branch_merging_into: str,
        *,
        title: str,
        message: str = "",
    ) -> None:
        """Collapse the commits ``branch_to_squash`` has ahead of ``branch_merging_into``."""
        self._require_on_branch(branch_to_squash, action="squash")
        ahead = self.count_commits_ahead(branch_to_squash, branch_merging_into)
        if ahead == 0:
            self._logger.info(
                "git_squash_nothing_to_squash",
                branch=branch_to_squash,
                onto=branch_merging_into,
            )
            return

        self._run_git(["reset", "--soft", f"HEAD~{ahead}"])
        args = ["commit", "--allow-empty", "-m", title]
        if message.strip():
            args.extend(["-m", message])
        self._run_git(args)

    def count_commits_ahead(self, branch: str, base: str) -> int:
        output = self._run_git(["rev-list", "--count", f"{base}..{branch}"]).stdout.strip()
        return int(output)

    # ------------------------------------------------------------------ history queries

    def get_commits(self, ref: str, limit: int | None = None) -> tuple[Commit, ...]:
        """Commits reachable from ``ref``, newest first."""
        result = self._run_git(self.log_format.log_args(ref, limit=limit), check=False)
        if result.returncode != 0:
            if self._is_unborn_current_branch(ref):
                return ()
            raise GitCommandError(
                command=result.command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return parse_log_output(result.stdout, self.log_format)

    def get_latest_commit_on_branch(self, ref: str) -> Commit | None:
        commits = self.get_commits(ref, limit=1)
        return commits[0] if commits else None

    def get_latest_commits_since(self, reference: Commit | str) -> tuple[Commit, ...]:
        """
        Commits on the current branch that ``reference`` cannot reach, newest first.

        This is ancestry-based rather than date-based: a merged-in commit authored before
        ``reference`` still counts as new. When ``reference`` is not part of the current
        branch's history every commit is returned.
        """
        sha = reference.sha if isinstance(reference, Commit) else reference
        if not self.is_ancestor(sha, "HEAD"):
            return self.get_commits("HEAD")
        return self.get_commits(f"{sha}..HEAD")

    def is_ancestor(self, maybe_ancestor: str, ref: str) -> bool:
        """True when ``maybe_ancestor`` is reachable from ``ref``; unknown objects are not ancestors."""
        result = self._run_git(
            ["merge-base", "--is-ancestor", maybe_ancestor, ref],
            check=False,
        )
        return result.returncode == 0

    # ------------------------------------------------------------------ repository setup

    def clone_from(self, source: Path | str) -> None:
        """Clone ``source`` into this engine's (empty) directory, naming the remote ``self.remote``."""
        self.repo_path.mkdir(parents=True, exist_ok=True)
        self._run_git(["clone", "--quiet", "--origin", self.remote, "--", str(source), "."])

    def set_remote_url(self, url: str) -> None:
        self._run_git(["remote", "set-url", self.remote, url])

    # ------------------------------------------------------------------ repository facts

    def rev_parse(self, ref: str) -> str:
        return self._run_git(["rev-parse", "--verify", ref]).stdout.strip()

    def is_shallow(self) -> bool:
        result = self._run_git(["rev-parse", "--is-shallow-repository"])
        return result.stdout.strip() == "true"

    def show_toplevel(self) -> Path:
        return Path(self._run_git(["rev-parse", "--show-toplevel"]).stdout.strip())

    def remote_url(self, remote: str | None = None) -> str | None:
        name = remote if remote is not None else self.remote
        result = self._run_git(["config", "--get", f"remote.{name}.url"], check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    # ------------------------------------------------------------------ internals

    def _ref_exists(self, full_ref: str) -> bool:
        result = self._run_git(["rev-parse", "--verify", "--quiet", full_ref], check=False)
        return result.returncode == 0

    def _is_unborn_current_branch(self, ref: str) -> bool:
        current = self.get_current_branch_name()
        if current is None or ref not in ("HEAD", current):
            return False
        return not self._ref_exists("HEAD")

    def _require_attached_branch(self, action: str) -> str:
        current = self.get_current_branch_name()
        if current is None:
            raise BranchStateError(f"Cannot {action}: HEAD is detached in {self.repo_path}")
        return current

    def _require_on_branch(self, expected: str, *, action: str) -> None:
        current = self._require_attached_branch(action)
        if current != expected:
            raise BranchStateError(
                f"Cannot {action}: expected {expected!r} to be checked out, found {current!r}"
            )

    def _run_git(
        self,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        check: bool = True,
    ) -> CommandResult:
        command = ("git", *args)
        run_cwd = (cwd if cwd is not None else self.repo_path).resolve()
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.setdefault("GIT_CONFIG_NOSYSTEM", "1")
        env.update(self._env_overrides)

        self._logger.debug("git_command", command=list(command), cwd=run_cwd.as_posix())
        completed = subprocess.run(
            command,
            cwd=run_cwd,
            env=env,
            text=True,
            encoding="utf-8",
            capture_output=True,
            check=False,
        )

        result = CommandResult(
            command=command,
            cwd=run_cwd.as_posix(),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )

        if check and result.returncode != 0:
            raise GitCommandError(
                command=result.command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )

        return result


__all__ = [
    "DEFAULT_REMOTE",
    "BranchStateError",
    "CommandResult",
    "GitCommandError",
    "GitEngine",
    "GitEngineError",
]
