"""Decide which merge methods a rehearsal run simulates."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Final

import structlog

from deploy_rehearsal.domain.models import MergeStrategy

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from deploy_rehearsal.domain.models import RepoMergeSettings

DEFAULT_MERGE_TYPES: Final[tuple[MergeStrategy, ...]] = (
    MergeStrategy.MERGE,
    MergeStrategy.SQUASH,
    MergeStrategy.REBASE,
)


def parse_merge_types(
    configured: str | Sequence[str] | None,
    *,
    logger: Any | None = None,
) -> tuple[MergeStrategy, ...]:
    """
    Parse a comma separated string or a sequence of merge type names.

    Unknown names are logged and skipped; duplicates keep their first position.
    """

    log = logger if logger is not None else structlog.get_logger(__name__)
    if configured is None:
        return ()
    raw_items = configured.split(",") if isinstance(configured, str) else list(configured)

    parsed: list[MergeStrategy] = []
    for raw in raw_items:
        if not raw.strip():
            continue
        try:
            strategy = MergeStrategy.parse(raw)
        except ValueError:
            log.warning("merge_type_ignored", merge_type=raw.strip())
            continue
        if strategy not in parsed:
            parsed.append(strategy)
    return tuple(parsed)


def resolve_merge_types(
    configured: str | Sequence[str] | None,
    settings_lookup: Callable[[], RepoMergeSettings] | None = None,
    *,
    logger: Any | None = None,
) -> tuple[MergeStrategy, ...]:
    """Explicit configuration first, then the repository's enabled methods, then all three."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    explicit = parse_merge_types(configured, logger=log)
    if explicit:
        return explicit

    if settings_lookup is not None:
        try:
            enabled = settings_lookup().enabled_strategies()
        except Exception as exc:  # noqa: BLE001 - repository settings are optional input
            log.debug("merge_settings_lookup_failed", error=str(exc))
        else:
            if enabled:
                return enabled

    return DEFAULT_MERGE_TYPES


__all__ = ["DEFAULT_MERGE_TYPES", "parse_merge_types", "resolve_merge_types"]
