"""
Helper utilities for the log shipper.

Common functions used across domains.
"""

import re
from datetime import datetime, timezone
from pathlib import Path


# Java/ICU date pattern letters understood by ``to_strptime_format``.
_DATE_TOKENS = {
    "yyyy": "%Y",
    "yy": "%y",
    "MM": "%m",
    "dd": "%d",
    "HH": "%H",
    "mm": "%M",
    "ss": "%S",
    "SSS": "%f",
}

_DATE_TOKEN_RE = re.compile(r"'([^']*)'|yyyy|yy|MM|dd|HH|mm|ss|SSS|([A-Za-z])")


def to_strptime_format(pattern: str) -> str:
    """
    Translate a date pattern into a ``strptime`` format.

    Patterns that already contain ``%`` directives are returned unchanged.
    Otherwise the pattern is read as a Java/ICU style pattern such as
    ``yyyyMMddHHmmss``, with single-quoted literals (``'T'``) kept verbatim.

    Args:
        pattern: Date pattern in either style

    Returns:
        Equivalent ``strptime`` format string

    Raises:
        ValueError: On a pattern letter with no ``strptime`` equivalent
    """
    if "%" in pattern:
        return pattern

    def _replace(match: re.Match) -> str:
        if match.group(1) is not None:
            # '' is an escaped single quote
            return match.group(1) or "'"
        if match.group(2) is not None:
            raise ValueError(f"Unsupported letter '{match.group(2)}' in date pattern '{pattern}'")
        return _DATE_TOKENS[match.group(0)]

    return _DATE_TOKEN_RE.sub(_replace, pattern)


def parse_iso_timestamp(ts_str: str) -> datetime:
    """Parse ISO timestamp string to an aware UTC datetime."""
    parsed = datetime.fromisoformat(ts_str.strip().replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalise_path(path: Path) -> Path:
    """Return a resolved version of ``path`` without forcing existence."""

    try:
        return path.expanduser().resolve()
    except (FileNotFoundError, RuntimeError):
        return path.expanduser().absolute()


def format_duration(seconds: float) -> str:
    """Format elapsed seconds as ``H:MM:SS.mmm``."""
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(int(minutes), 60)
    return f"{hours}:{minutes:02d}:{secs:06.3f}"
