"""
Ordering and serialization of the final report
"""

import json
from datetime import timezone
from typing import Any, Dict, Iterable, List

import yaml

from .base import ResultSet, TagDetail

CREATED_FORMAT = '%Y-%m-%d %H:%M:%S'
OUTPUT_FORMATS = ('json', 'yaml')


def order_tags(details: Iterable[TagDetail]) -> List[TagDetail]:
    """
    Sort tags newest first

    Tags with equal creation times are ordered by name. Tags whose creation
    time is unavailable go to the end, also by name.
    """
    details = list(details)
    with_dates = sorted((d for d in details if d.created is not None), key=lambda d: d.tag)
    without_dates = sorted((d for d in details if d.created is None), key=lambda d: d.tag)

    # sort() is stable, so name order survives among equal timestamps
    with_dates.sort(key=lambda d: d.created, reverse=True)

    return with_dates + without_dates


def assemble(result: ResultSet) -> ResultSet:
    """Return a new result set with repositories by name and tags newest first"""
    return {repo: order_tags(result[repo]) for repo in sorted(result)}


def format_created(detail: TagDetail):
    if detail.created is None:
        return None
    return detail.created.astimezone(timezone.utc).strftime(CREATED_FORMAT)


def to_report(result: ResultSet) -> Dict[str, List[Dict[str, Any]]]:
    """Convert an assembled result set to plain, serializable data"""
    return {
        repo: [
            {'Tag': detail.tag, 'Created': format_created(detail)}
            for detail in details
        ]
        for repo, details in result.items()
    }


def render(report: Dict[str, Any], output_format: str = 'json') -> str:
    if output_format == 'json':
        return json.dumps(report, indent=3)
    if output_format == 'yaml':
        return yaml.safe_dump(report, default_flow_style=False, sort_keys=False)
    raise ValueError(f"Unsupported output format: {output_format}")
