"""
Plain-text parsing of migration files.

A migration file holds its forward SQL, then optionally a line reading
``-- ROLLBACK`` followed by the SQL that undoes it. Nothing here
understands SQL beyond quoting and comments: the marker is a line
convention and statement splitting is lexical.
"""

from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

ROLLBACK_MARKER = "-- ROLLBACK"

COMMENT, QUOTED, CODE, TERMINATOR = "comment", "quoted", "code", "terminator"


@dataclass(frozen=True)
class ParsedMigration:
    """Forward and rollback segments of a migration file."""

    forward: str
    rollback: str


def parse_migration(content: str) -> ParsedMigration:
    """
    Split migration file content into forward and rollback scripts.

    The first line equal to ``-- ROLLBACK`` (ignoring case and surrounding
    whitespace) ends the forward segment; every later line belongs to the
    rollback segment, including any further marker lines. Both segments
    are stripped.

    Args:
        content: Raw file content

    Returns:
        The parsed segments; ``rollback`` is empty when there is no marker
    """
    forward_lines: List[str] = []
    rollback_lines: List[str] = []
    in_rollback = False

    for line in content.splitlines():
        if not in_rollback and line.strip().upper() == ROLLBACK_MARKER:
            in_rollback = True
            continue

        if in_rollback:
            rollback_lines.append(line)
        else:
            forward_lines.append(line)

    return ParsedMigration(
        forward="\n".join(forward_lines).strip(),
        rollback="\n".join(rollback_lines).strip(),
    )


def split_statements(script: str) -> List[str]:
    """
    Split a script into individual statements on ``;`` terminators.

    Semicolons inside single-quoted strings, double-quoted identifiers,
    dollar-quoted bodies (``$$ ... $$``, ``$tag$ ... $tag$``) and comments
    do not terminate a statement. Statements that contain nothing but
    whitespace and comments are dropped.

    Args:
        script: SQL text

    Returns:
        Statements without their trailing terminator, stripped
    """
    statements: List[str] = []
    current: List[str] = []

    for kind, text in _tokens(script):
        if kind == TERMINATOR:
            _flush(current, statements)
            current = []
        else:
            current.append(text)

    _flush(current, statements)
    return statements


def mask_comments_and_literals(script: str) -> str:
    """
    Return ``script`` with every comment and quoted section replaced by a space.

    What remains is the SQL the server parses as keywords, so keyword
    searches on the result ignore text like ``-- no VACUUM needed``.
    """
    return "".join(" " if kind in (COMMENT, QUOTED) else text for kind, text in _tokens(script))


def _tokens(script: str) -> Iterator[Tuple[str, str]]:
    """Lex ``script`` into comment, quoted, terminator and plain code pieces."""
    i = 0
    code_start = 0
    length = len(script)

    while i < length:
        kind, end = _token_at(script, i)
        if kind is None:
            i += 1
            continue
        if code_start < i:
            yield CODE, script[code_start:i]
        yield kind, script[i:end]
        i = code_start = end

    if code_start < length:
        yield CODE, script[code_start:]


def _token_at(script: str, start: int) -> Tuple[Optional[str], int]:
    """Kind and end index of a comment, quote or terminator opening at ``start``."""
    char = script[start]
    length = len(script)

    if script.startswith("--", start):
        end = script.find("\n", start)
        return COMMENT, length if end == -1 else end

    if script.startswith("/*", start):
        end = script.find("*/", start + 2)
        return COMMENT, length if end == -1 else end + 2

    if char in ("'", '"'):
        return QUOTED, _find_closing_quote(script, start)

    if char == "$":
        tag = _dollar_tag_at(script, start)
        if tag:
            end = script.find(tag, start + len(tag))
            return QUOTED, length if end == -1 else end + len(tag)

    if char == ";":
        return TERMINATOR, start + 1

    return None, start


def _find_closing_quote(script: str, start: int) -> int:
    """Index just past the quote closing the one at ``start``; doubled quotes are escapes."""
    quote = script[start]
    i = start + 1
    while i < len(script):
        if script[i] == quote:
            if script.startswith(quote * 2, i):
                i += 2
                continue
            return i + 1
        i += 1
    return len(script)


def _dollar_tag_at(script: str, start: int) -> str:
    """Return the dollar-quote tag opening at ``start`` (e.g. ``$body$``), or ``""``."""
    end = start + 1
    while end < len(script) and (script[end].isalnum() or script[end] == "_"):
        end += 1
    if end < len(script) and script[end] == "$":
        tag = script[start:end + 1]
        # $1, $2 ... are parameter placeholders, not quotes
        if not tag[1:-1].isdigit() or tag == "$$":
            return tag
    return ""


def _flush(parts: List[str], statements: List[str]) -> None:
    statement = "".join(parts).strip()
    if statement and not _is_comment_only(statement):
        statements.append(statement)


def _is_comment_only(statement: str) -> bool:
    remaining = statement
    while remaining:
        remaining = remaining.lstrip()
        if remaining.startswith("--"):
            newline = remaining.find("\n")
            remaining = "" if newline == -1 else remaining[newline + 1:]
        elif remaining.startswith("/*"):
            end = remaining.find("*/")
            remaining = "" if end == -1 else remaining[end + 2:]
        else:
            return not remaining
    return True
