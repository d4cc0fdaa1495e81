"""
Segment selection for the log shipping domain.

Turns a backup directory into the ordered list of log backups that still
need to be restored.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from loguru import logger

from domains.log_shipping.exceptions import SegmentSelectionError
from domains.log_shipping.models import OrderKeySource, Segment, SelectionCriteria
from domains.log_shipping.timestamps import compile_pattern, extract_order_key


def modification_time(path: Path) -> datetime:
    """File-system 'last modified' time of ``path`` in UTC."""
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def resolve_order_key(
    path: Path,
    criteria: SelectionCriteria,
    order_key_source: OrderKeySource,
) -> Optional[datetime]:
    """
    Order key for one candidate, or None if it cannot be determined.

    Raises:
        OSError: If the file cannot be stat'ed in modification-time mode
    """
    if order_key_source is OrderKeySource.FROM_MODIFICATION_TIME:
        return modification_time(path)

    if not criteria.date_format:
        logger.error("Ordering by file name requires a date pattern")
        return None

    return extract_order_key(
        criteria.name_pattern,
        criteria.date_format,
        criteria.group_index,
        path,
    )


def select_segments(
    directory: Path,
    criteria: SelectionCriteria,
    order_key_source: OrderKeySource = OrderKeySource.FROM_FILENAME,
) -> List[Segment]:
    """
    List the log backups in ``directory`` that are due for restore.

    A file qualifies when its name fully matches the pattern, it is not in
    the exclusion set, its order key can be determined, and that key is
    strictly later than the cutoff. Problems with a single file only drop
    that file.

    Args:
        directory: Backup directory (not searched recursively)
        criteria: Pattern, cutoff and exclusions to apply
        order_key_source: Take order keys from file names or mtimes

    Returns:
        Segments sorted by order key, then by path

    Raises:
        SegmentSelectionError: If the directory itself cannot be listed
    """
    name_regex = compile_pattern(criteria.name_pattern)

    try:
        candidates = list(directory.iterdir())
    except OSError as e:
        raise SegmentSelectionError(directory, str(e)) from e

    segments: List[Segment] = []

    for path in candidates:
        if name_regex.fullmatch(path.name) is None:
            continue

        if path in criteria.excluded:
            continue

        try:
            order_key = resolve_order_key(path, criteria, order_key_source)
        except (OSError, ValueError) as e:
            logger.warning(f"Error filtering '{path}': {e}")
            continue

        if order_key is None:
            logger.warning(f"Skipping '{path}': no timestamp could be determined")
            continue

        if order_key <= criteria.cutoff:
            continue

        segments.append(Segment(path=path, order_key=order_key))

    segments.sort(key=lambda segment: (segment.order_key, str(segment.path)))

    logger.debug(f"Selected {len(segments)} of {len(candidates)} entries in '{directory}'")
    return segments
