"""
Registry alias table and run settings, read from a YAML (or JSON) file
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Tuple

import yaml

from .base import DEFAULT_SCHEME, RegistryEndpoint
from .dispatcher import DEFAULT_DEADLINE
from .errors import ConfigError
from .fetcher import DEFAULT_CONNECT_TIMEOUT, DEFAULT_READ_TIMEOUT, DEFAULT_WORKERS

log = logging.getLogger(__name__)

CONFIG_ENV_VAR = 'REGMAN_CONFIG'
CONFIG_DIR = Path('~/.regman')
CONFIG_NAMES = ('config.yaml', 'config.json')

DEFAULT_CONFIG = """\
# regman registry aliases
registries:
  - alias: local
    host: 127.0.0.1
    port: 5000
    schema: http
  - alias: reg01
    host: reg01.example.org
    port: 443
    schema: https
    # insecure: true    # accept self-signed certificates

settings:
  workers: 16
  connect_timeout: 5
  read_timeout: 10
  deadline: 300
"""


@dataclass
class Registry:
    """A configured registry alias"""
    alias: str
    host: str
    port: Optional[int] = None
    schema: str = DEFAULT_SCHEME
    insecure: bool = False

    @property
    def endpoint(self) -> RegistryEndpoint:
        return RegistryEndpoint(scheme=self.schema.lower(), host=self.host, port=self.port)

    @property
    def addr(self) -> str:
        return self.endpoint.base_url


@dataclass
class Settings:
    """Run settings; command-line flags override these"""
    workers: int = DEFAULT_WORKERS
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    deadline: Optional[float] = DEFAULT_DEADLINE
    insecure: bool = False


@dataclass
class Config:
    registries: List[Registry] = field(default_factory=list)
    settings: Settings = field(default_factory=Settings)
    path: Optional[Path] = None

    def find_registry(self, alias: str) -> Optional[Registry]:
        """Look up a registry by alias, ignoring case"""
        for registry in self.registries:
            if registry.alias.lower() == alias.lower():
                return registry
        return None


def default_config_path() -> Path:
    """
    Pick the configuration file to use

    $REGMAN_CONFIG wins; otherwise the first existing file among
    ~/.regman/config.yaml and ~/.regman/config.json, else config.yaml.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()

    config_dir = CONFIG_DIR.expanduser()
    for name in CONFIG_NAMES:
        candidate = config_dir / name
        if candidate.exists():
            return candidate
    return config_dir / CONFIG_NAMES[0]


def _parse_registry(index: int, data: Any) -> Registry:
    if not isinstance(data, dict):
        raise ConfigError(f"registries[{index}] is not a mapping")

    alias = data.get('alias')
    host = data.get('host')
    if not alias or not host:
        raise ConfigError(f"registries[{index}] needs both 'alias' and 'host'")

    port = data.get('port')
    if port is not None:
        try:
            port = int(port)
        except (TypeError, ValueError):
            raise ConfigError(f"registries[{index}].port is not a number: {port!r}")

    return Registry(
        alias=str(alias),
        host=str(host),
        port=port,
        schema=str(data.get('schema') or DEFAULT_SCHEME),
        insecure=bool(data.get('insecure', False)),
    )


def _parse_settings(data: Any) -> Settings:
    if data is None:
        return Settings()
    if not isinstance(data, dict):
        raise ConfigError("'settings' is not a mapping")

    settings = Settings()
    try:
        if 'workers' in data:
            settings.workers = int(data['workers'])
        if 'connect_timeout' in data:
            settings.connect_timeout = float(data['connect_timeout'])
        if 'read_timeout' in data:
            settings.read_timeout = float(data['read_timeout'])
        if 'deadline' in data:
            deadline = data['deadline']
            settings.deadline = float(deadline) if deadline else None
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid settings value: {e}")
    settings.insecure = bool(data.get('insecure', False))

    if settings.workers < 1:
        raise ConfigError("settings.workers must be at least 1")
    return settings


def parse_config(data: Any, path: Optional[Path] = None) -> Config:
    """
    Build a Config from decoded YAML/JSON data

    Raises:
        ConfigError: If the data has the wrong shape
    """
    if data is None:
        return Config(path=path)
    if not isinstance(data, dict):
        raise ConfigError("configuration root is not a mapping")

    entries = data.get('registries') or []
    if not isinstance(entries, list):
        raise ConfigError("'registries' is not a list")

    registries = [_parse_registry(i, entry) for i, entry in enumerate(entries)]
    return Config(
        registries=registries,
        settings=_parse_settings(data.get('settings')),
        path=path,
    )


def read_config(path: Path) -> Config:
    """
    Read and parse a configuration file

    Raises:
        ConfigError: If the file is missing, unreadable or malformed
    """
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"cannot read {path}: {e}")
    except yaml.YAMLError as e:
        raise ConfigError(f"cannot parse {path}: {e}")

    return parse_config(data, path)


def load_config(path: Optional[Path] = None) -> Config:
    """
    Load the configuration, falling back to an empty one on any error

    The error is logged; raw addresses still resolve without aliases. A
    missing default file is the normal first-run state and only logged at
    debug level.
    """
    explicit = path is not None
    path = Path(path).expanduser() if path else default_config_path()
    if not explicit and not path.exists():
        log.debug("No configuration at %s, using built-in defaults", path)
        return Config()

    try:
        config = read_config(path)
    except ConfigError as e:
        log.warning("Ignoring configuration: %s", e)
        return Config()

    log.debug("Loaded %d registry aliases from %s", len(config.registries), path)
    return config


def init_config(path: Optional[Path] = None) -> Tuple[Path, bool]:
    """
    Write the example configuration if no file exists yet

    Returns:
        The path and whether a file was written
    """
    path = Path(path).expanduser() if path else default_config_path()
    if path.exists():
        return path, False

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        f.write(DEFAULT_CONFIG)
    return path, True


def resolve_target(target: str, config: Config) -> Tuple[RegistryEndpoint, bool]:
    """
    Resolve a command-line target to an endpoint

    Args:
        target: A configured alias, or a raw "host[:port]" / "scheme://host[:port]"
        config: Loaded configuration

    Returns:
        Tuple of (endpoint, insecure) where insecure comes from the alias entry

    Raises:
        ValueError: If the target is neither an alias nor a usable address
    """
    registry = config.find_registry(target)
    if registry is not None:
        log.debug("Resolved alias %s to %s", target, registry.addr)
        return registry.endpoint, registry.insecure

    return RegistryEndpoint.from_address(target), False

