"""Parsing helpers for the ``username; group1,group2`` user list format."""
from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

FIELD_SEPARATOR = ";"
GROUP_SEPARATOR = ","
COMMENT_PREFIX = "#"

_WHITESPACE = re.compile(r"\s+")
_GROUP_SEPARATOR_SPACING = re.compile(r"\s*,\s*")

InvalidLineHandler = Callable[[int, str, str], None]


class RecordParseError(ValueError):
    """Raised when a user list line cannot be turned into a record."""


@dataclass(frozen=True, slots=True)
class Record:
    """One parsed line of the user list."""

    username: str
    groups: tuple[str, ...] = ()
    line_number: int = 0


def parse_line(line: str, line_number: int = 0) -> Record | None:
    """Parse a single raw *line*.

    Returns ``None`` for blank lines and comments. Raises
    :class:`RecordParseError` when the line has no field separator or names no
    user.
    """
    stripped = line.strip()
    if not stripped or stripped.startswith(COMMENT_PREFIX):
        return None
    if FIELD_SEPARATOR not in stripped:
        raise RecordParseError(f"no '{FIELD_SEPARATOR}' separator")

    raw_username, raw_groups = stripped.split(FIELD_SEPARATOR, 1)
    username = _WHITESPACE.sub("", raw_username)
    if not username:
        raise RecordParseError("empty username")

    normalized = _GROUP_SEPARATOR_SPACING.sub(GROUP_SEPARATOR, raw_groups).strip()
    normalized = _WHITESPACE.sub("", normalized)
    groups = tuple(token for token in normalized.split(GROUP_SEPARATOR) if token)
    return Record(username=username, groups=groups, line_number=line_number)


def iter_records(
    lines: Iterable[str],
    *,
    on_invalid: InvalidLineHandler | None = None,
) -> Iterator[Record]:
    """Yield records from *lines*, skipping blanks, comments and invalid lines.

    Invalid lines are reported through *on_invalid* (or the module logger) and
    never stop iteration.
    """
    for line_number, line in enumerate(lines, start=1):
        try:
            record = parse_line(line, line_number)
        except RecordParseError as exc:
            if on_invalid is not None:
                on_invalid(line_number, line.strip(), str(exc))
            else:
                LOGGER.warning("Skipping invalid line %d (%s): %s", line_number, exc, line.strip())
            continue
        if record is not None:
            yield record


__all__ = [
    "Record",
    "RecordParseError",
    "iter_records",
    "parse_line",
]
