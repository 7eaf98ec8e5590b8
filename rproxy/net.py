"""Listening and connecting sockets, and SIGINT-driven shutdown."""

import signal
import socket
import sys
import threading

from rproxy.config import DEFAULT_IP


class ShutdownFlag:
    """A flag set once SIGINT has been received."""

    def __init__(self):
        self._event = threading.Event()

    def is_set(self):
        return self._event.is_set()

    def set(self):
        self._event.set()

    def __bool__(self):
        return self.is_set()

    def _handle(self, signum, frame):
        print("[srv] SIGINT received, shutting down...", flush=True)
        self.set()

    def install(self):
        """Install this flag as the SIGINT handler."""
        signal.signal(signal.SIGINT, self._handle)
        return self


def create_ipv4_server(ip, port):
    """Create a listening TCP socket bound to ``ip``:``port``."""
    try:
        socket.inet_aton(ip)
    except OSError:
        raise ValueError(f"invalid IP address: {ip!r}") from None
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((ip, port))
        sock.listen(socket.SOMAXCONN)
    except OSError:
        sock.close()
        raise
    return sock


def safe_close(sock):
    """Close ``sock`` if it is open, reporting rather than raising on failure."""
    if sock is None or sock.fileno() < 0:
        return
    try:
        sock.close()
    except OSError as exc:
        print(f"close socket failed: {exc}", file=sys.stderr)


def connect_to_server(port):
    """Open a TCP connection to the default address on ``port``."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.connect((DEFAULT_IP, port))
    except OSError:
        sock.close()
        raise
    return sock