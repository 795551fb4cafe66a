"""Tests for the user list parser."""
from __future__ import annotations

from collections.abc import Iterator

import pytest

from userprov.parser import Record, RecordParseError, iter_records, parse_line


def test_parse_line_splits_username_and_groups() -> None:
    """A well-formed line yields the username and ordered groups."""
    record = parse_line("light; sudo,dev,www-data", line_number=3)

    assert record == Record(username="light", groups=("sudo", "dev", "www-data"), line_number=3)


@pytest.mark.parametrize(
    ("line", "username"),
    [
        ("  idimma ; sudo", "idimma"),
        ("mayowa;", "mayowa"),
        ("jo hn ; dev", "john"),
        ("\tbob\t;\tdev , qa ", "bob"),
    ],
)
def test_username_has_all_whitespace_removed(line: str, username: str) -> None:
    """The username is the text before the first separator without whitespace."""
    record = parse_line(line)

    assert record is not None
    assert record.username == username


def test_groups_ignore_whitespace_and_empty_tokens() -> None:
    """Spacing around commas and empty group tokens are discarded."""
    record = parse_line("alice ;  dev ,, qa ,  , ops ,")

    assert record is not None
    assert record.groups == ("dev", "qa", "ops")


def test_groups_keep_duplicates_in_order() -> None:
    """Duplicate groups are kept; they are harmless downstream."""
    record = parse_line("alice; dev,qa,dev")

    assert record is not None
    assert record.groups == ("dev", "qa", "dev")


def test_only_first_separator_splits_fields() -> None:
    """Semicolons after the first stay in the groups remainder."""
    record = parse_line("alice; dev;qa")

    assert record is not None
    assert record.username == "alice"
    assert record.groups == ("dev;qa",)


def test_user_without_groups_has_empty_tuple() -> None:
    """A trailing separator with nothing after it yields no groups."""
    record = parse_line("carol;   ")

    assert record is not None
    assert record.groups == ()


@pytest.mark.parametrize("line", ["", "   ", "\n", "# comment", "   # indented; comment"])
def test_blank_and_comment_lines_are_ignored(line: str) -> None:
    """Blank and comment lines produce no record."""
    assert parse_line(line) is None


def test_line_without_separator_raises() -> None:
    """A line lacking ';' is rejected."""
    with pytest.raises(RecordParseError):
        parse_line("no-semicolon-here")


def test_line_without_username_raises() -> None:
    """A line naming no user is rejected."""
    with pytest.raises(RecordParseError):
        parse_line("   ; sudo")


def test_iter_records_skips_invalid_lines_and_reports_them() -> None:
    """Invalid lines are reported with their line number and never stop iteration."""
    lines = [
        "# users\n",
        "light; sudo,dev\n",
        "\n",
        "no-semicolon-here\n",
        "idimma; sudo\n",
    ]
    reported: list[tuple[int, str, str]] = []

    def _report(number: int, line: str, reason: str) -> None:
        reported.append((number, line, reason))

    records = list(iter_records(lines, on_invalid=_report))

    assert [record.username for record in records] == ["light", "idimma"]
    assert [record.line_number for record in records] == [2, 5]
    assert len(reported) == 1
    assert reported[0][:2] == (4, "no-semicolon-here")


def test_iter_records_logs_when_no_handler(caplog: pytest.LogCaptureFixture) -> None:
    """Without a handler, invalid lines are logged as warnings."""
    with caplog.at_level("WARNING", logger="userprov.parser"):
        records = list(iter_records(["broken line", "ok; dev"]))

    assert [record.username for record in records] == ["ok"]
    assert "broken line" in caplog.text


def test_iter_records_is_lazy() -> None:
    """Records are produced one line at a time."""
    consumed: list[str] = []

    def _lines() -> Iterator[str]:
        for line in ["a; x", "b; y"]:
            consumed.append(line)
            yield line

    iterator = iter_records(_lines())
    first = next(iterator)

    assert first.username == "a"
    assert consumed == ["a; x"]
