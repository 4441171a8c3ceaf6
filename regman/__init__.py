"""
regman - Registry Manager

Concurrent walker for container registries: lists every repository and tag,
with the creation time of each tag's most recent layer.
"""

from .assembler import assemble, order_tags, to_report
from .base import RegistryEndpoint, TagDetail
from .dispatcher import Dispatcher, WorkGroup
from .fetcher import RegistryContext, fetch_json
from .history import latest_creation
from .registry import RegistryClient

__all__ = [
    'RegistryEndpoint',
    'TagDetail',
    'RegistryContext',
    'fetch_json',
    'latest_creation',
    'RegistryClient',
    'Dispatcher',
    'WorkGroup',
    'assemble',
    'order_tags',
    'to_report',
]

__version__ = '0.1.0'
