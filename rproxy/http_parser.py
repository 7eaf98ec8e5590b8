"""Parsing, editing and serialising HTTP request and response heads."""

import re
from dataclasses import dataclass, field

from rproxy.config import (
    DEFAULT_IP,
    DEFAULT_REMOTE_PORT,
    BadHttpProtocolError,
    FieldNotExistError,
)

SERVER_NAME = "rps/1.0.0"
_LINE_BREAKS = re.compile(r"[\r\n]+")
_CHUNK_SIZE = 1024


def canonical_header_key(key):
    """Upper-case the first letter and every letter following a hyphen."""
    out = []
    capitalize = True
    for ch in key:
        if capitalize and "a" <= ch <= "z":
            ch = ch.upper()
        out.append(ch)
        capitalize = ch == "-"
    return "".join(out)


class Headers:
    """An ordered collection of header fields with canonical keys."""

    def __init__(self, fields=()):
        self._fields = [[canonical_header_key(k), v] for k, v in fields]

    def _field(self, key):
        wanted = canonical_header_key(key)
        return next((f for f in self._fields if f[0] == wanted), None)

    def find(self, key):
        """Return the value of the first field named ``key``, or None."""
        found = self._field(key)
        return None if found is None else found[1]

    def set(self, key, value):
        """Replace the value of an existing field."""
        found = self._field(key)
        if found is None:
            raise FieldNotExistError(canonical_header_key(key))
        found[1] = value

    def prepend(self, key, value):
        """Insert a new field in front of all others."""
        self._fields.insert(0, [canonical_header_key(key), value])

    def __iter__(self):
        return iter([(k, v) for k, v in self._fields])

    def __len__(self):
        return len(self._fields)

    def __eq__(self, other):
        if not isinstance(other, Headers):
            return NotImplemented
        return list(self) == list(other)

    def __repr__(self):
        return f"Headers({list(self)!r})"


def parse_headers(text):
    """Parse header lines; each new field goes in front, so order is reversed."""
    headers = Headers()
    if not text:
        return headers
    for line in _LINE_BREAKS.split(text):
        key, colon, value = line.partition(":")
        if colon:
            headers.prepend(key, value.lstrip(" "))
    return headers


def _as_text(data):
    if isinstance(data, (bytes, bytearray)):
        return bytes(data).decode("latin-1")
    return data


def _split_message(data, what):
    text = _as_text(data)
    first_line, sep, rest = text.partition("\r\n")
    if not sep:
        raise BadHttpProtocolError(f"{what} line is not terminated by CRLF")
    parts = [token for token in first_line.split(" ") if token]
    if len(parts) < 3:
        raise BadHttpProtocolError(f"malformed {what} line: {first_line!r}")
    headers = parse_headers(rest)
    if not headers:
        raise BadHttpProtocolError(f"{what} carries no header fields")
    return parts[:3], headers


def _serialize(start_line, headers, payload):
    lines = [start_line]
    lines.extend(f"{k}: {v}" for k, v in headers)
    head = ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")
    if payload is None:
        return head
    if isinstance(payload, str):
        payload = payload.encode("latin-1")
    return head + bytes(payload)


@dataclass
class Request:
    """The head of an HTTP request."""

    method: str
    url: str
    version: str
    headers: Headers = field(default_factory=Headers)

    def apply_proxy_headers(self, host=f"{DEFAULT_IP}:{DEFAULT_REMOTE_PORT}"):
        """Point Host at the upstream server and ask for the connection to close."""
        self.headers.set("Host", host)
        self.headers.set("Connection", "close")

    def to_bytes(self, payload=None):
        """Serialise the request line, headers and optional payload."""
        return _serialize(
            f"{self.method} {self.url} {self.version}", self.headers, payload
        )


@dataclass
class Response:
    """The head of an HTTP response."""

    version: str
    status_code: str
    status_message: str
    headers: Headers = field(default_factory=Headers)

    def apply_proxy_headers(self, keep_alive):
        """Add the proxy's Server field and restore keep-alive if it was requested."""
        self.headers.prepend("Server", SERVER_NAME)
        if keep_alive:
            if self.headers.find("Connection") is not None:
                self.headers.set("Connection", "keep-alive")
            else:
                self.headers.prepend("Connection", "keep-alive")

    def to_bytes(self, payload=None):
        """Serialise the status line, headers and optional payload."""
        return _serialize(
            f"{self.version} {self.status_code} {self.status_message}",
            self.headers,
            payload,
        )


def parse_request(data):
    """Parse a request head given as text or bytes."""
    (method, url, version), headers = _split_message(data, "request")
    return Request(method, url, version, headers)


def parse_response(data):
    """Parse a response head given as text or bytes."""
    (version, code, message), headers = _split_message(data, "status")
    return Response(version, code, message, headers)


def read_payload(sock, length):
    """Receive exactly ``length`` bytes from ``sock``."""
    chunks = []
    received = 0
    while received < length:
        chunk = sock.recv(min(length - received, _CHUNK_SIZE))
        if not chunk:
            raise ConnectionError(
                f"connection closed after {received} of {length} payload bytes"
            )
        chunks.append(chunk)
        received += len(chunk)
    return b"".join(chunks)