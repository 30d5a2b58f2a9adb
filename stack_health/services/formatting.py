"""Byte, memory-limit and uptime formatting helpers."""

from __future__ import annotations

import re

UNITS = ("B", "KB", "MB", "GB")

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")

_MULTIPLIERS = {
    "k": 1024,
    "m": 1024 ** 2,
    "g": 1024 ** 3,
}


def format_bytes(num_bytes: float) -> str:
    """Render a byte count using the largest unit up to GB.

    >>> format_bytes(0)
    '0 B'
    >>> format_bytes(1536)
    '1.5 KB'
    """
    num_bytes = max(num_bytes or 0, 0)
    index = 0
    while index < len(UNITS) - 1 and num_bytes >= 1024 ** (index + 1):
        index += 1
    value = round(num_bytes / (1024 ** index), 2)
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {UNITS[index]}"


def parse_memory_limit(value: str) -> int:
    """Convert a php.ini size string such as ``256M`` to bytes.

    ``-1`` stays ``-1`` (no limit). Strings without a leading integer
    parse to 0.
    """
    value = (value or "").strip()
    match = _LEADING_INT.match(value)
    if not match:
        return 0
    number = int(match.group(1))
    return number * _MULTIPLIERS.get(value[-1].lower(), 1)


def format_uptime(seconds: int) -> str:
    """Coarse uptime label: 45s, 12m, 5h, 3d."""
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    if seconds < 86400:
        return f"{seconds // 3600}h"
    return f"{seconds // 86400}d"
