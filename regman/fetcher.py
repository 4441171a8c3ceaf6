"""
HTTP fetch helper with an explicit, per-run execution context
"""

import logging
from threading import Lock
from typing import Any, Dict, Optional

import requests
import urllib3
from requests.adapters import HTTPAdapter

from .base import RegistryEndpoint
from .errors import DecodeError, HTTPStatusError, NetworkError

log = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_READ_TIMEOUT = 10.0
DEFAULT_WORKERS = 16
USER_AGENT = 'regman/0.1.0'


class RegistryContext:
    """Everything a fetch needs: endpoint, timeouts, TLS mode and the shared session"""

    def __init__(
        self,
        endpoint: RegistryEndpoint,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        verify_tls: bool = True,
        max_workers: int = DEFAULT_WORKERS,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the context

        Args:
            endpoint: Registry base address
            connect_timeout: Seconds allowed for connect and TLS handshake
            read_timeout: Seconds allowed between bytes of a response
            verify_tls: Verify server certificates (False for self-signed registries)
            max_workers: Concurrency limit; also sizes the connection pool
            session: Session to use instead of a fresh one (tests inject fakes here)
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        self.endpoint = endpoint
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.verify_tls = verify_tls
        self.max_workers = max_workers

        self._count_lock = Lock()
        self._request_count = 0

        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=1, pool_maxsize=max_workers)
            session.mount('http://', adapter)
            session.mount('https://', adapter)
        session.headers.update({'User-Agent': USER_AGENT})
        session.verify = verify_tls
        self.session = session

        if not verify_tls:
            log.warning("TLS certificate verification is disabled for %s", endpoint)
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @property
    def timeout(self):
        return (self.connect_timeout, self.read_timeout)

    @property
    def request_count(self) -> int:
        with self._count_lock:
            return self._request_count

    def url(self, path: str) -> str:
        return f"{self.endpoint.base_url}/{path.lstrip('/')}"

    def _count_request(self):
        with self._count_lock:
            self._request_count += 1

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


def fetch_json(context: RegistryContext, url: str, headers: Optional[Dict[str, str]] = None) -> Any:
    """
    GET a URL and decode its body as JSON

    A JSON body is returned whatever the status code, since registries report
    failures as JSON error documents. A non-2xx response without a usable body
    raises HTTPStatusError.

    Args:
        context: Execution context for this run
        url: Fully qualified URL
        headers: Extra request headers

    Returns:
        The decoded JSON document

    Raises:
        NetworkError: Connection, DNS, TLS or timeout failure
        HTTPStatusError: Non-2xx status with an empty or undecodable body
        DecodeError: 2xx status with an empty or undecodable body
    """
    context._count_request()
    log.debug("GET %s", url)

    try:
        response = context.session.get(
            url,
            headers=headers,
            timeout=context.timeout,
            verify=context.verify_tls,
        )
    except requests.exceptions.RequestException as e:
        raise NetworkError(str(e), url) from e

    ok = 200 <= response.status_code < 300

    if not response.content:
        if not ok:
            raise HTTPStatusError(url, response.status_code, response.reason or '')
        raise DecodeError("empty response body", url)

    try:
        return response.json()
    except ValueError as e:
        if not ok:
            raise HTTPStatusError(url, response.status_code, response.reason or '') from e
        raise DecodeError(f"invalid JSON: {e}", url) from e
