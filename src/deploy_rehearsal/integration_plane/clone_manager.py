"""
deploy-rehearsal — isolated clone lifecycle.

File: src/deploy_rehearsal/integration_plane/clone_manager.py

Purpose
- Provision one disposable clone of the working repository per merge type under test.
- Bind a fresh ``GitEngine`` to each clone so simulations never share a working copy.
- Remove clones with guarded deletion confined to the clone root.
"""

from __future__ import annotations

import contextlib
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import structlog

from deploy_rehearsal.integration_plane.git_engine import DEFAULT_REMOTE, GitEngine
from deploy_rehearsal.utils.fs import make_scratch_directory, safe_delete

if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType

    from deploy_rehearsal.integration_plane.commit_log import LogFormat

DEFAULT_CLONE_PREFIX: Final[str] = "rehearsal-clone-"


@dataclass(frozen=True, slots=True)
class IsolatedClone:
    """A provisioned clone and the engine bound to it. Removes itself when used as a context."""

    engine: GitEngine
    directory: Path
    _manager: CloneManager = field(repr=False, compare=False)

    def __enter__(self) -> IsolatedClone:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self._manager.remove_clone(self.directory)


class CloneManager:
    """Creates and removes isolated clones of the repository at ``repo_root``."""

    def __init__(
        self,
        repo_root: Path | str,
        *,
        clone_root: Path | str | None = None,
        clone_prefix: str = DEFAULT_CLONE_PREFIX,
        remote: str = DEFAULT_REMOTE,
        log_format: LogFormat | None = None,
        env_overrides: Mapping[str, str] | None = None,
        logger: Any | None = None,
    ) -> None:
        self.repo_root = Path(repo_root).resolve()
        self.clone_root = (
            Path(clone_root).resolve() if clone_root else Path(tempfile.gettempdir()).resolve()
        )
        self.clone_prefix = clone_prefix
        self.remote = remote
        self._log_format = log_format
        self._env_overrides = dict(env_overrides or {})
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def current_repository(self) -> GitEngine:
        """Engine bound to the working repository itself."""
        return self._engine_for(self.repo_root)

    def provision_clone(self) -> IsolatedClone:
        source = self.current_repository()
        top_level = source.show_toplevel()
        remote_url = source.remote_url()
        branch = source.get_current_branch_name()
        head = source.rev_parse("HEAD")

        directory = make_scratch_directory(self.clone_prefix, self.clone_root)
        engine = self._engine_for(directory)
        try:
            engine.clone_from(top_level)
            if remote_url is None:
                self._logger.warning(
                    "clone_remote_missing",
                    repo=top_level.as_posix(),
                    remote=self.remote,
                    clone=directory.as_posix(),
                )
            else:
                engine.set_remote_url(remote_url)
            engine.checkout_branch(branch if branch is not None else head)
        except Exception:
            with contextlib.suppress(OSError, ValueError):
                safe_delete(directory, self.clone_root)
            raise

        self._logger.info(
            "clone_provisioned",
            clone=directory.as_posix(),
            source=top_level.as_posix(),
            branch=branch,
            head=head,
        )
        return IsolatedClone(engine=engine, directory=directory, _manager=self)

    def remove_clone(self, directory: Path | str) -> None:
        """Delete a clone directory. Raises when the path is outside ``clone_root`` or removal fails."""
        safe_delete(directory, self.clone_root)
        self._logger.debug("clone_removed", clone=Path(directory).as_posix())

    def _engine_for(self, path: Path) -> GitEngine:
        return GitEngine(
            path,
            remote=self.remote,
            log_format=self._log_format,
            env_overrides=self._env_overrides,
        )


__all__ = ["DEFAULT_CLONE_PREFIX", "CloneManager", "IsolatedClone"]
