"""
Exceptions raised by regman
"""

from typing import Optional


class RegmanError(Exception):
    """Base class for all regman errors"""


class ConfigError(RegmanError):
    """The configuration file could not be read or has the wrong shape"""


class MissingTargetError(RegmanError):
    """No registry alias or address was given on the command line"""

    def __init__(self, message: str = "registry alias or address not given"):
        super().__init__(message)


class RegistryError(RegmanError):
    """Base class for errors raised while talking to a registry"""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url

    def __str__(self) -> str:
        message = super().__str__()
        if self.url:
            return f"{message} ({self.url})"
        return message


class NetworkError(RegistryError):
    """Connection, DNS, TLS or timeout failure"""


class HTTPStatusError(RegistryError):
    """Non-2xx response whose body is empty or not JSON"""

    def __init__(self, url: str, status: int, reason: str = ''):
        message = f"HTTP {status}"
        if reason:
            message = f"{message} {reason}"
        super().__init__(message, url)
        self.status = status


class DecodeError(RegistryError):
    """Response body is not valid JSON"""


class ShapeError(RegistryError):
    """A document lacks an expected field, or the field has the wrong type"""


class TimestampParseError(RegistryError):
    """A layer creation timestamp could not be parsed"""
