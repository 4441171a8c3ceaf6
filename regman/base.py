"""
Data model shared by the fetcher, the dispatcher and the assembler
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlsplit


DEFAULT_SCHEME = 'http'


@dataclass(frozen=True)
class RegistryEndpoint:
    """Resolved base address of a registry"""
    scheme: str
    host: str
    port: Optional[int] = None

    @property
    def base_url(self) -> str:
        if self.port:
            return f"{self.scheme}://{self.host}:{self.port}"
        return f"{self.scheme}://{self.host}"

    @classmethod
    def from_address(cls, address: str) -> 'RegistryEndpoint':
        """
        Build an endpoint from a raw address

        Args:
            address: "host", "host:port" or "scheme://host[:port]"

        Returns:
            RegistryEndpoint, with an http scheme when none was given

        Raises:
            ValueError: If no host can be extracted
        """
        address = address.strip()
        if '://' not in address:
            address = f"{DEFAULT_SCHEME}://{address}"

        parts = urlsplit(address)
        if not parts.hostname:
            raise ValueError(f"No host in registry address: {address!r}")

        return cls(
            scheme=parts.scheme.lower(),
            host=parts.hostname,
            port=parts.port,
        )

    def __str__(self) -> str:
        return self.base_url


@dataclass
class TagDetail:
    """A tag and the creation time of its most recent layer"""
    tag: str
    created: Optional[datetime] = None

    @property
    def available(self) -> bool:
        return self.created is not None

    def __repr__(self) -> str:
        created_str = self.created.isoformat() if self.created else 'unavailable'
        return f"TagDetail(tag='{self.tag}', created='{created_str}')"


# Messages flowing from pool tasks to the dispatcher's owner thread.

@dataclass(frozen=True)
class RepoList:
    repos: Tuple[str, ...]


@dataclass(frozen=True)
class TagList:
    repo: str
    tags: Tuple[str, ...]


@dataclass(frozen=True)
class TagDetailMessage:
    repo: str
    tag: str
    created: Optional[datetime] = None

    def to_detail(self) -> TagDetail:
        return TagDetail(tag=self.tag, created=self.created)


@dataclass(frozen=True)
class Done:
    """Sentinel posted once by the watcher when no work remains"""
    timed_out: bool = False
    abandoned: int = 0


ResultSet = Dict[str, List[TagDetail]]


@dataclass
class HistoryAnalysis:
    """Outcome of scanning a manifest's layer history"""
    created: Optional[datetime] = None
    parsed: int = 0
    skipped: List[Tuple[int, str]] = field(default_factory=list)
