"""
Client for the registry catalog, tag list and manifest endpoints
"""

import logging
from typing import Any, List

from .base import TagDetail
from .errors import ShapeError
from .fetcher import RegistryContext, fetch_json
from .history import analyze_history

log = logging.getLogger(__name__)

# Schema 1 manifests are the ones that carry the v1Compatibility history
MANIFEST_V1_HEADERS = {
    'Accept': ', '.join([
        'application/vnd.docker.distribution.manifest.v1+prettyjws',
        'application/vnd.docker.distribution.manifest.v1+json',
        'application/json',
    ]),
}


def _registry_errors(document: Any) -> str:
    """Pull the messages out of a registry error document, if it is one"""
    if not isinstance(document, dict):
        return ''
    errors = document.get('errors')
    if not isinstance(errors, list):
        return ''
    messages = []
    for error in errors:
        if isinstance(error, dict):
            messages.append(error.get('message') or error.get('code') or str(error))
        else:
            messages.append(str(error))
    return '; '.join(messages)


def _string_list(document: Any, key: str, url: str, allow_null: bool = False) -> List[str]:
    if not isinstance(document, dict) or key not in document:
        detail = _registry_errors(document)
        if detail:
            raise ShapeError(f"registry error: {detail}", url)
        raise ShapeError(f"response has no '{key}' field", url)

    values = document[key]
    if values is None and allow_null:
        return []
    if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
        raise ShapeError(f"'{key}' is not a list of strings", url)
    return values


class RegistryClient:
    """Issues the three registry API calls for one endpoint"""

    def __init__(self, context: RegistryContext):
        self.context = context

    def list_repositories(self) -> List[str]:
        """
        List every repository in the registry catalog

        Returns:
            Repository names as returned by /v2/_catalog
        """
        url = self.context.url('v2/_catalog')
        document = fetch_json(self.context, url)
        return _string_list(document, 'repositories', url)

    def list_tags(self, repository: str) -> List[str]:
        """
        List all tags of a repository

        Args:
            repository: Repository name, possibly with a namespace ("team/app")

        Returns:
            Tag names; empty when the registry reports null
        """
        url = self.context.url(f'v2/{repository}/tags/list')
        document = fetch_json(self.context, url)
        return _string_list(document, 'tags', url, allow_null=True)

    def get_tag_detail(self, repository: str, tag: str) -> TagDetail:
        """
        Fetch a tag's manifest and compute its newest layer creation time

        Args:
            repository: Repository name
            tag: Tag name

        Returns:
            TagDetail; created is None when no history entry could be parsed
        """
        url = self.context.url(f'v2/{repository}/manifests/{tag}')
        document = fetch_json(self.context, url, headers=MANIFEST_V1_HEADERS)

        if not isinstance(document, dict) or 'history' not in document:
            detail = _registry_errors(document)
            if detail:
                raise ShapeError(f"registry error: {detail}", url)

        try:
            analysis = analyze_history(document)
        except ShapeError as e:
            e.url = url
            raise

        for index, reason in analysis.skipped:
            log.warning("Skipping history entry %d of %s:%s: %s", index, repository, tag, reason)
        if analysis.created is None:
            log.warning("No usable layer history for %s:%s", repository, tag)

        return TagDetail(tag=tag, created=analysis.created)
