"""Shared utilities."""

from .ids import parse_uuid
from .text import count_occurrences, line_column, locate_unique

__all__ = ["parse_uuid", "count_occurrences", "line_column", "locate_unique"]
