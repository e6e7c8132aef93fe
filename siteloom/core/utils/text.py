"""Exact-match text helpers used by source mapping and diff generation."""

from typing import Optional, Tuple


def count_occurrences(haystack: str, needle: str) -> int:
    """Exact, overlapping occurrence count (``"aa"`` occurs twice in ``"aaa"``)."""
    if not needle:
        return 0
    count = 0
    start = haystack.find(needle)
    while start != -1:
        count += 1
        start = haystack.find(needle, start + 1)
    return count


def line_column(content: str, offset: int) -> Tuple[int, int]:
    """1-based (line, column) of a character offset."""
    line = content.count("\n", 0, offset) + 1
    column = offset - (content.rfind("\n", 0, offset) + 1) + 1
    return line, column


def locate_unique(content: str, value: str) -> Optional[Tuple[int, int]]:
    """(line, column) of the single occurrence of ``value``, else None."""
    if count_occurrences(content, value) != 1:
        return None
    return line_column(content, content.find(value))
