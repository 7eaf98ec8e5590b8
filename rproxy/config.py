"""Proxy settings, error types and the diagnostic log writer."""

import sys
import time

DEFAULT_IP = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_REMOTE_PORT = 8083

BACKLOG = 10
BUFFER_SIZE = 8192
MAX_HEADER_SIZE = 8192

_TIMESTAMP_FORMAT = "%b %d %Y %H:%M:%S"


class ProxyError(Exception):
    """Base class for errors raised by the proxy."""


class BadHttpProtocolError(ProxyError):
    """A request or response does not follow the HTTP message layout."""


class FieldNotExistError(ProxyError, LookupError):
    """A header field the proxy needs is missing."""


def log(message):
    """Write a timestamped diagnostic line to standard error."""
    stamp = time.strftime(_TIMESTAMP_FORMAT)
    sys.stderr.write(f"{stamp} {message}\n")
    sys.stderr.flush()