"""
guildkeeper.constants — Shared Constants & Helpers
===================================================

Duration and number parsing/formatting used by query filters and the bot's
leaderboard output.  Import from here instead of duplicating in cogs and
services.
"""

from __future__ import annotations

import re

# ---------------------------------------------------------------------------
# Time units
# ---------------------------------------------------------------------------
SECONDS_PER_UNIT: dict[str, int] = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
}

_DURATION_PART = re.compile(r"(\d+)([a-z])")


def parse_duration(text: str) -> int:
    """Parse ``"1h30m"`` / ``"2d,4h"`` into seconds.

    Commas are ignored.  Raises :class:`ValueError` on empty input, unknown
    units, or stray characters.
    """
    cleaned = text.replace(",", "").strip().lower()
    if not cleaned:
        raise ValueError("Empty duration")

    seconds = 0
    pos = 0
    for match in _DURATION_PART.finditer(cleaned):
        if match.start() != pos:
            raise ValueError(f"Invalid duration {text!r}")
        amount, unit = match.groups()
        if unit not in SECONDS_PER_UNIT:
            raise ValueError(f"Unknown time unit {unit!r}")
        seconds += int(amount) * SECONDS_PER_UNIT[unit]
        pos = match.end()
    if pos != len(cleaned):
        raise ValueError(f"Invalid duration {text!r}")
    return seconds


def format_duration(seconds: int) -> str:
    """Inverse of :func:`parse_duration`, e.g. ``5400`` → ``"1h 30m"``."""
    if seconds == 0:
        return "0s"
    parts = []
    remaining = seconds
    for unit in ("w", "d", "h", "m", "s"):
        amount, remaining = divmod(remaining, SECONDS_PER_UNIT[unit])
        if amount:
            parts.append(f"{amount}{unit}")
    return " ".join(parts)


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------
def parse_number(text: str) -> int:
    """Parse ``"1,200"`` / ``"3m"`` / ``"2b"`` into an integer."""
    cleaned = text.replace(",", "").strip().lower()
    if not cleaned:
        raise ValueError("Empty number")
    multiplier = 1
    if cleaned.endswith("b"):
        cleaned, multiplier = cleaned[:-1], 1_000_000_000
    elif cleaned.endswith("m"):
        cleaned, multiplier = cleaned[:-1], 1_000_000
    elif cleaned.endswith("k"):
        cleaned, multiplier = cleaned[:-1], 1_000
    return int(cleaned) * multiplier


def format_number(num: int, shorthand: bool = True) -> str:
    """``1234`` → ``"1,234"``; with *shorthand*, ``2_500_000`` → ``"2.5M"``."""
    if shorthand and num >= 1_000_000_000:
        return f"{num // 10_000_000 / 100:g}B"
    if shorthand and num >= 1_000_000:
        return f"{num // 10_000 / 100:g}M"
    return f"{num:,}"
