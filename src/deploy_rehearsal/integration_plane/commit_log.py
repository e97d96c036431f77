"""
Custom ``git log`` format and parser producing typed :class:`Commit` snapshots.

Commit bodies may contain arbitrary newlines, so records and fields are split on
sentinel strings instead of line breaks. A commit message that itself contains one
of the sentinels will corrupt the parse of that record; the sentinels are therefore
configurable (``[git]`` section) rather than fixed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Final

from deploy_rehearsal.domain.models import ChangeStats, Commit, FileStat, Identity

DEFAULT_RECORD_SEPARATOR: Final[str] = "[[⬛]]"
DEFAULT_FIELD_SEPARATOR: Final[str] = "[⬛]"

TAG_PREFIX: Final[str] = "tag: "

# %H sha, %s subject, %B raw body, %an/%ae author, %cn/%ce committer,
# %cI strict ISO-8601 committer date, %P parents, %D ref names.
_PLACEHOLDERS: Final[tuple[str, ...]] = (
    "%H",
    "%s",
    "%B",
    "%an",
    "%ae",
    "%cn",
    "%ce",
    "%cI",
    "%P",
    "%D",
)
_FIELD_COUNT: Final[int] = len(_PLACEHOLDERS)


class CommitLogParseError(ValueError):
    """Raised when a log record does not have the expected field layout."""


@dataclass(frozen=True, slots=True)
class LogFormat:
    """Record/field sentinels used to frame ``git log`` output."""

    record_separator: str = DEFAULT_RECORD_SEPARATOR
    field_separator: str = DEFAULT_FIELD_SEPARATOR

    def __post_init__(self) -> None:
        if not self.record_separator or not self.field_separator:
            raise ValueError("log separators must not be empty")
        if self.record_separator == self.field_separator:
            raise ValueError("record and field separators must differ")
        if "\n" in self.record_separator or "\n" in self.field_separator:
            raise ValueError("log separators must not contain newlines")

    def pretty_format(self) -> str:
        """Return the ``--pretty=format:`` argument for this framing."""

        return self.record_separator + self.field_separator.join(_PLACEHOLDERS)

    def log_args(self, ref: str, *, limit: int | None = None) -> list[str]:
        args = ["log"]
        if limit is not None:
            if limit <= 0:
                raise ValueError(f"limit must be > 0, got {limit}")
            args.append(f"--max-count={limit}")
        args.extend([f"--pretty=format:{self.pretty_format()}", "--numstat", ref, "--"])
        return args


def parse_log_output(output: str, log_format: LogFormat | None = None) -> tuple[Commit, ...]:
    """Parse raw ``git log`` output produced with :meth:`LogFormat.log_args`, newest first."""

    fmt = log_format if log_format is not None else LogFormat()
    records = [
        record for record in output.strip().split(fmt.record_separator) if record.strip()
    ]
    return tuple(_parse_record(record, fmt) for record in records)


def _parse_record(record: str, fmt: LogFormat) -> Commit:
    parts = record.split(fmt.field_separator)
    if len(parts) < _FIELD_COUNT:
        raise CommitLogParseError(
            f"expected {_FIELD_COUNT} fields in log record, got {len(parts)}: {record[:80]!r}"
        )
    if len(parts) > _FIELD_COUNT:
        # A sentinel leaked into a message; keep the positional tail intact.
        raise CommitLogParseError(
            f"log record contains the field separator {fmt.field_separator!r} inside a field"
        )

    (
        sha,
        title,
        message,
        author_name,
        author_email,
        committer_name,
        committer_email,
        date_text,
        parents_text,
        refs_and_stats,
    ) = parts

    tail_lines = refs_and_stats.split("\n")
    refs = parse_refs(tail_lines[0])
    file_stats = tuple(
        stat for stat in (_parse_numstat_line(line) for line in tail_lines[1:]) if stat
    )

    body = message.strip()
    return Commit(
        sha=sha.strip(),
        title=title.strip(),
        message=body,
        message_lines=tuple(body.split("\n")),
        author=Identity(name=author_name.strip(), email=author_email.strip()),
        committer=Identity(name=committer_name.strip(), email=committer_email.strip()),
        date=datetime.fromisoformat(date_text.strip()),
        parents=tuple(parents_text.split()),
        files_changed=tuple(stat.filename for stat in file_stats),
        file_stats=file_stats,
        stats=ChangeStats(
            additions=sum(stat.additions for stat in file_stats),
            deletions=sum(stat.deletions for stat in file_stats),
        ),
        branch=resolve_branch(refs),
        tags=tuple(ref.removeprefix(TAG_PREFIX) for ref in refs if ref.startswith(TAG_PREFIX)),
        refs=refs,
    )


def parse_refs(raw: str) -> tuple[str, ...]:
    return tuple(ref.strip() for ref in raw.split(",") if ref.strip())


def resolve_branch(refs: tuple[str, ...]) -> str | None:
    """
    Pick the branch a commit is attributed to.

    Local branch names (no slash) win over remote-qualified names. Tags and HEAD
    markers, including ``HEAD -> name`` and ``<remote>/HEAD``, are never chosen.
    """

    candidates: list[str] = []
    for ref in refs:
        if not ref or ref.startswith((TAG_PREFIX, "HEAD")) or ref.endswith("/HEAD"):
            continue
        candidates.append(ref)

    for candidate in candidates:
        if "/" not in candidate:
            return candidate
    return candidates[0] if candidates else None


def _parse_numstat_line(line: str) -> FileStat | None:
    columns = line.strip().split("\t")
    if len(columns) != 3:
        return None
    additions, deletions, filename = columns
    return FileStat(
        filename=filename,
        additions=_parse_count(additions),
        deletions=_parse_count(deletions),
    )


def _parse_count(raw: str) -> int:
    if raw == "-":
        return 0
    return int(raw)


__all__ = [
    "DEFAULT_FIELD_SEPARATOR",
    "DEFAULT_RECORD_SEPARATOR",
    "CommitLogParseError",
    "LogFormat",
    "parse_log_output",
    "parse_refs",
    "resolve_branch",
]
