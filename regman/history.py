"""
Layer history analysis: find when a tag's most recent layer was created
"""

import json
import re
from datetime import datetime, timezone
from typing import Any, Optional

from .base import HistoryAnalysis
from .errors import ShapeError, TimestampParseError

# 2019-02-17T10:10:13.132136671Z, fractions of any length, Z or +hh:mm
TIMESTAMP_PATTERN = re.compile(
    r'^(?P<base>\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2})'
    r'(?:\.(?P<fraction>\d+))?'
    r'(?P<offset>Z|z|[+-]\d{2}:?\d{2})?$'
)


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime

    Fractions beyond microseconds are truncated. A missing offset means UTC.

    Raises:
        TimestampParseError: If the value is not a timestamp
    """
    if not isinstance(value, str):
        raise TimestampParseError(f"timestamp is not a string: {value!r}")

    match = TIMESTAMP_PATTERN.match(value.strip())
    if not match:
        raise TimestampParseError(f"unrecognised timestamp: {value!r}")

    text = match.group('base').replace(' ', 'T')
    fraction = match.group('fraction')
    if fraction:
        text += '.' + fraction[:6].ljust(6, '0')

    offset = match.group('offset')
    if not offset or offset in ('Z', 'z'):
        offset = '+00:00'
    elif ':' not in offset:
        offset = f"{offset[:3]}:{offset[3:]}"

    try:
        parsed = datetime.fromisoformat(text + offset)
    except ValueError as e:
        raise TimestampParseError(f"invalid timestamp {value!r}: {e}") from e

    return parsed.astimezone(timezone.utc)


def _entry_created(entry: Any) -> datetime:
    if not isinstance(entry, dict):
        raise ShapeError("history entry is not an object")

    compat = entry.get('v1Compatibility')
    if not isinstance(compat, str):
        raise ShapeError("history entry has no v1Compatibility string")

    try:
        layer = json.loads(compat)
    except (ValueError, RecursionError) as e:
        raise ShapeError(f"v1Compatibility is not valid JSON: {e}") from e

    if not isinstance(layer, dict) or 'created' not in layer:
        raise ShapeError("v1Compatibility has no 'created' field")

    return parse_timestamp(layer['created'])


def analyze_history(manifest: Any) -> HistoryAnalysis:
    """
    Scan every history entry of a schema 1 manifest

    Entries are unordered, so the newest layer is the maximum over all of them.
    Malformed entries are recorded in the result and skipped.

    Args:
        manifest: Decoded manifest document

    Returns:
        HistoryAnalysis whose created is None when no entry could be parsed

    Raises:
        ShapeError: If the manifest has no history list
    """
    history = manifest.get('history') if isinstance(manifest, dict) else None
    if not isinstance(history, list):
        raise ShapeError("manifest has no history list")

    analysis = HistoryAnalysis()
    for index, entry in enumerate(history):
        try:
            created = _entry_created(entry)
        except (ShapeError, TimestampParseError) as e:
            analysis.skipped.append((index, str(e)))
            continue

        analysis.parsed += 1
        if analysis.created is None or created > analysis.created:
            analysis.created = created

    return analysis


def latest_creation(manifest: Any) -> Optional[datetime]:
    """Creation time of the newest layer, or None when unavailable"""
    return analyze_history(manifest).created
