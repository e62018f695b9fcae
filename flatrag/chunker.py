"""Positional line-window chunking.

A document body is split into non-empty trimmed lines, which are grouped
into consecutive, non-overlapping windows of ``chunk_size`` lines. The
chunker is not semantically aware: a window may cut a paragraph in two.
"""
from typing import List

from . import config


def split_lines(body: str) -> List[str]:
    """Non-empty lines of ``body`` with surrounding whitespace removed."""
    return [line.strip() for line in body.split("\n") if line.strip()]


def chunk_lines(body: str, chunk_size: int = config.CHUNK_SIZE) -> List[str]:
    """Group the body's lines into windows of ``chunk_size`` lines.

    The last window holds the remainder and may be shorter.

    Example:
        >>> chunk_lines("cats are mammals\\ndogs are mammals\\nbirds can fly", 2)
        ['cats are mammals\\ndogs are mammals', 'birds can fly']
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    lines = split_lines(body)
    return ["\n".join(lines[i:i + chunk_size]) for i in range(0, len(lines), chunk_size)]
