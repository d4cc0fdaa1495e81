"""
Order keys for backup files.

Backup tools stamp each file name with the time the backup was taken
(``db_20230101010000.trn``). The timestamp is pulled out of a regex capture
group and parsed in UTC.
"""

import re
from datetime import datetime, timezone
from pathlib import Path
from re import Pattern
from typing import Optional, Union

from loguru import logger

from app.utils.helpers import to_strptime_format


def compile_pattern(pattern: Union[str, Pattern[str]]) -> Pattern[str]:
    """Compile ``pattern`` unless it already is a compiled regex."""
    if isinstance(pattern, str):
        return re.compile(pattern)
    return pattern


def parse_timestamp(text: str, date_format: str) -> datetime:
    """
    Parse ``text`` with ``date_format`` as a UTC instant.

    Raises:
        ValueError: If the text does not match the format
    """
    parsed = datetime.strptime(text, to_strptime_format(date_format))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def extract_order_key(
    file_pattern: Union[str, Pattern[str]],
    date_format: str,
    group_index: int,
    path: Path,
) -> Optional[datetime]:
    """
    Parse a timestamp from a file name.

    The whole base name must match ``file_pattern``. The text captured by
    group ``group_index`` (1-based) is parsed with ``date_format``.

    Args:
        file_pattern: Regex the file name must fully match
        date_format: strptime format or Java-style pattern (``yyyyMMddHHmmss``)
        group_index: Capture group holding the timestamp
        path: File whose name is inspected

    Returns:
        UTC datetime, or None if the name does not match or cannot be parsed
    """
    regex = compile_pattern(file_pattern)
    name = Path(path).name

    match = regex.fullmatch(name)
    if match is None:
        logger.debug(f"File name '{name}' does not match pattern '{regex.pattern}'")
        return None

    if group_index < 1 or regex.groups < group_index:
        logger.error(
            f"Invalid file regex pattern. There should be at least {group_index} "
            f"date group(s) in '{regex.pattern}'"
        )
        return None

    captured = match.group(group_index)
    if captured is None:
        logger.warning(f"Date group {group_index} of '{regex.pattern}' did not participate in '{name}'")
        return None

    try:
        return parse_timestamp(captured, date_format)
    except ValueError as e:
        logger.warning(f"Error parsing timestamp '{captured}' from '{name}' with '{date_format}': {e}")
        return None
