"""
Unit tests for the custom git log format and its parser.

Coverage:
- field framing with multi-line bodies, binary numstat rows and merge parents
- ref/tag extraction and two-tier branch attribution
- configurable sentinels
- property checks over generated bodies, parents and numstat rows
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from deploy_rehearsal.integration_plane.commit_log import (
    CommitLogParseError,
    LogFormat,
    parse_log_output,
    parse_refs,
    resolve_branch,
)

RS = "[[⬛]]"
FS = "[⬛]"

SHA_A = "a" * 40
SHA_B = "b" * 40
SHA_C = "c" * 40


def make_record(
    *,
    sha: str = SHA_A,
    title: str = "Add feature",
    body: str = "Add feature\n",
    author: tuple[str, str] = ("Ada", "ada@example.com"),
    committer: tuple[str, str] = ("Bob", "bob@example.com"),
    date: str = "2024-03-01T12:30:00+02:00",
    parents: str = SHA_B,
    refs: str = "",
    numstat: tuple[str, ...] = (),
    fmt: LogFormat | None = None,
) -> str:
    log_format = fmt or LogFormat()
    fields = [
        sha,
        title,
        body,
        author[0],
        author[1],
        committer[0],
        committer[1],
        date,
        parents,
        refs,
    ]
    record = log_format.record_separator + log_format.field_separator.join(fields)
    if numstat:
        record += "\n\n" + "\n".join(numstat)
    return record


def test_pretty_format_lists_every_field_in_order() -> None:
    assert LogFormat().pretty_format() == (
        "[[⬛]]%H[⬛]%s[⬛]%B[⬛]%an[⬛]%ae[⬛]%cn[⬛]%ce[⬛]%cI[⬛]%P[⬛]%D"
    )


def test_log_args_include_limit_numstat_and_ref() -> None:
    args = LogFormat().log_args("main", limit=3)

    assert args[0] == "log"
    assert "--max-count=3" in args
    assert "--numstat" in args
    assert args[-2:] == ["main", "--"]


def test_log_args_reject_non_positive_limit() -> None:
    with pytest.raises(ValueError, match="limit"):
        LogFormat().log_args("main", limit=0)


@pytest.mark.parametrize(
    ("record", "field"),
    [("", "[⬛]"), ("[⬛]", "[⬛]"), ("a\nb", "|")],
)
def test_log_format_rejects_unusable_separators(record: str, field: str) -> None:
    with pytest.raises(ValueError):
        LogFormat(record_separator=record, field_separator=field)


def test_parses_merge_commit_with_multiline_body_and_binary_file() -> None:
    body = "Merge branch 'feature'\n\nFirst paragraph line.\nSecond line.\n"
    output = make_record(
        title="Merge branch 'feature'",
        body=body,
        parents=f"{SHA_B} {SHA_C}",
        refs="HEAD -> main, origin/main, tag: v1.2.0",
        numstat=("3\t1\tsrc/app.py", "-\t-\tassets/logo.png"),
    )

    (commit,) = parse_log_output(output)

    assert commit.sha == SHA_A
    assert commit.title == "Merge branch 'feature'"
    assert commit.message == body.strip()
    assert len(commit.message_lines) == len(body.strip().split("\n"))
    assert commit.parents == (SHA_B, SHA_C)
    assert commit.is_merge_commit is True
    assert commit.files_changed == ("src/app.py", "assets/logo.png")
    binary = commit.file_stats[1]
    assert (binary.filename, binary.additions, binary.deletions) == ("assets/logo.png", 0, 0)
    assert commit.stats.additions == 3
    assert commit.stats.deletions == 1
    assert commit.stats.total == 4
    assert commit.tags == ("v1.2.0",)
    assert commit.refs == ("HEAD -> main", "origin/main", "tag: v1.2.0")
    assert commit.branch == "origin/main"


def test_parses_identities_and_timezone_aware_date() -> None:
    (commit,) = parse_log_output(make_record())

    assert commit.author.name == "Ada"
    assert commit.author.email == "ada@example.com"
    assert commit.committer.name == "Bob"
    assert commit.committer.email == "bob@example.com"
    assert commit.date == datetime(2024, 3, 1, 12, 30, tzinfo=timezone(timedelta(hours=2)))


def test_parses_multiple_records_newest_first() -> None:
    output = "\n".join(
        [
            make_record(sha=SHA_A, title="third", body="third\n", parents=SHA_B),
            make_record(sha=SHA_B, title="second", body="second\n", parents=SHA_C),
            make_record(sha=SHA_C, title="first", body="first\n", parents=""),
        ]
    )

    commits = parse_log_output(output)

    assert [commit.title for commit in commits] == ["third", "second", "first"]
    assert commits[-1].parents == ()
    assert commits[-1].is_merge_commit is False


def test_empty_output_yields_no_commits() -> None:
    assert parse_log_output("") == ()
    assert parse_log_output("\n\n") == ()


def test_double_spaces_between_parents_are_ignored() -> None:
    (commit,) = parse_log_output(make_record(parents=f" {SHA_B}   {SHA_C} "))

    assert commit.parents == (SHA_B, SHA_C)


@pytest.mark.parametrize(
    ("title", "expected"),
    [
        ('Revert "Add feature"', True),
        ("revert: drop flag", True),
        ("REVERTED nothing", True),
        ("Do not revert", False),
    ],
)
def test_revert_detection_uses_title_prefix(title: str, expected: bool) -> None:
    (commit,) = parse_log_output(make_record(title=title, body=f"{title}\n"))

    assert commit.is_revert_commit is expected


def test_numstat_lines_without_three_columns_are_ignored() -> None:
    (commit,) = parse_log_output(
        make_record(numstat=("1\t2\tok.txt", "garbage line", "4\t5"))
    )

    assert commit.files_changed == ("ok.txt",)


def test_record_with_missing_fields_is_rejected() -> None:
    with pytest.raises(CommitLogParseError):
        parse_log_output(RS + FS.join([SHA_A, "title", "body"]))


def test_record_with_leaked_field_separator_is_rejected() -> None:
    with pytest.raises(CommitLogParseError):
        parse_log_output(make_record(body=f"body mentions {FS} sentinel"))


def test_custom_separators_round_through_parser() -> None:
    fmt = LogFormat(record_separator="<<REC>>", field_separator="<<F>>")
    output = make_record(fmt=fmt, body="uses [⬛] freely\n")

    (commit,) = parse_log_output(output, fmt)

    assert commit.message == "uses [⬛] freely"


def test_parse_refs_trims_and_drops_empty_entries() -> None:
    assert parse_refs(" HEAD -> main ,  origin/main,, tag: v1 ") == (
        "HEAD -> main",
        "origin/main",
        "tag: v1",
    )
    assert parse_refs("") == ()


@pytest.mark.parametrize(
    ("refs", "expected"),
    [
        (("origin/feature", "feature"), "feature"),
        (("origin/feature",), "origin/feature"),
        (("tag: v1.0.0",), None),
        (("HEAD",), None),
        (("origin/HEAD", "origin/main"), "origin/main"),
        (("HEAD -> main", "origin/main"), "origin/main"),
        (("HEAD -> release",), None),
        (("HEAD -> main", "release", "origin/main"), "release"),
        ((), None),
    ],
)
def test_resolve_branch_prefers_local_names(refs: tuple[str, ...], expected: str | None) -> None:
    assert resolve_branch(refs) == expected


_SAFE_TEXT = st.characters(
    exclude_characters="⬛\r",
    exclude_categories=("Cs",),
)
_FILENAME = st.text(
    alphabet=st.characters(
        categories=("Ll", "Lu", "Nd"),
        include_characters="._-/",
    ),
    min_size=1,
    max_size=20,
)
_COUNT = st.one_of(st.just("-"), st.integers(min_value=0, max_value=10_000).map(str))


@settings(max_examples=75)
@given(body=st.text(alphabet=_SAFE_TEXT, max_size=200))
def test_property_message_lines_follow_stripped_body(body: str) -> None:
    (commit,) = parse_log_output(make_record(body=body))

    assert commit.message == body.strip()
    assert commit.message_lines == tuple(body.strip().split("\n"))


@settings(max_examples=75)
@given(
    parents=st.lists(st.text(alphabet="0123456789abcdef", min_size=40, max_size=40), max_size=4),
    gaps=st.lists(st.integers(min_value=1, max_value=3), min_size=5, max_size=5),
)
def test_property_parents_survive_irregular_spacing(parents: list[str], gaps: list[int]) -> None:
    raw = "".join(sha + " " * gaps[index] for index, sha in enumerate(parents))

    (commit,) = parse_log_output(make_record(parents=raw))

    assert commit.parents == tuple(parents)
    assert commit.is_merge_commit is (len(parents) > 1)


@settings(max_examples=75)
@given(rows=st.lists(st.tuples(_COUNT, _COUNT, _FILENAME), max_size=8))
def test_property_aggregate_stats_sum_file_stats(rows: list[tuple[str, str, str]]) -> None:
    numstat = tuple(f"{adds}\t{dels}\t{name}" for adds, dels, name in rows)

    (commit,) = parse_log_output(make_record(numstat=numstat))

    expected_adds = sum(0 if adds == "-" else int(adds) for adds, _, _ in rows)
    expected_dels = sum(0 if dels == "-" else int(dels) for _, dels, _ in rows)
    assert commit.stats.additions == expected_adds
    assert commit.stats.deletions == expected_dels
    assert commit.stats.total == expected_adds + expected_dels
    assert commit.files_changed == tuple(name for _, _, name in rows)
