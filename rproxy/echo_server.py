"""A standalone WebSocket echo server used as the proxy's backend."""

import argparse
import base64
import hashlib
import re
import socket
import sys
import time

from rproxy.frames import FrameError, Opcode, build_frame, describe_frame, parse_frame
from rproxy.ws_proxy import WS_KEY_LENGTH, HandshakeError

BUFFER_SIZE = 4096
LISTEN_BACKLOG = 10
WS_GUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"

_LINE_BREAKS = re.compile(r"[\r\n]+")
_ERROR_LINGER = 0.1
_BAD_REQUEST = (
    b"HTTP/1.1 400 Bad Request\r\n"
    b"Content-Type: text/plain\r\n"
    b"Connection: close\r\n\r\n"
    b"WebSocket handshake failed"
)


def _field_value(line, name):
    """Return the value of ``line`` if it is the header ``name``, else None."""
    prefix = name + ":"
    if line[: len(prefix)].casefold() != prefix.casefold():
        return None
    return line[len(prefix):].lstrip(" ")


def parse_handshake(data):
    """Validate an upgrade request and return its Sec-WebSocket-Key.

    Raises HandshakeError when the Upgrade or Connection header is missing
    or invalid, or when no key is given.
    """
    if isinstance(data, (bytes, bytearray)):
        data = bytes(data).decode("latin-1")
    has_upgrade = False
    has_connection_upgrade = False
    client_key = ""
    for line in _LINE_BREAKS.split(data):
        if not line:
            continue
        value = _field_value(line, "Upgrade")
        if value is not None:
            if value.casefold() == "websocket":
                has_upgrade = True
            continue
        value = _field_value(line, "Connection")
        if value is not None:
            if "upgrade" in value.casefold():
                has_connection_upgrade = True
            continue
        value = _field_value(line, "Sec-WebSocket-Key")
        if value is not None:
            client_key = value[:WS_KEY_LENGTH]
    if not has_upgrade:
        raise HandshakeError("Missing or invalid Upgrade header")
    if not has_connection_upgrade:
        raise HandshakeError("Missing or invalid Connection header")
    if not client_key:
        raise HandshakeError("Missing Sec-WebSocket-Key header")
    return client_key


def compute_accept_key(client_key):
    """Derive the Sec-WebSocket-Accept value for ``client_key``."""
    digest = hashlib.sha1((client_key + WS_GUID).encode("latin-1")).digest()
    return base64.b64encode(digest).decode("ascii")


def handshake_response(accept_key):
    """Build the 101 Switching Protocols response."""
    return (
        "HTTP/1.1 101 Switching Protocols\r\n"
        "Upgrade: websocket\r\n"
        "Connection: Upgrade\r\n"
        f"Sec-WebSocket-Accept: {accept_key}\r\n\r\n"
    ).encode("latin-1")


def _peer(addr):
    return f"{addr[0]}:{addr[1]}"


def serve_connection(sock, addr):
    """Perform the handshake on ``sock`` and echo text frames until the end.

    Returns when the client disconnects, sends a Close frame or sends a frame
    that cannot be parsed. Raises HandshakeError, after answering with
    400 Bad Request, when the upgrade request is invalid.
    """
    data = sock.recv(BUFFER_SIZE)
    if not data:
        print("client exit")
        return
    print("ws handshaking..")
    try:
        client_key = parse_handshake(data)
    except HandshakeError as exc:
        print(exc)
        sock.sendall(_BAD_REQUEST)
        print(f"[srv] client({_peer(addr)}) websocket handshake failed")
        time.sleep(_ERROR_LINGER)
        raise
    sock.sendall(handshake_response(compute_accept_key(client_key)))
    print("handshake succeeded!")

    while True:
        try:
            data = sock.recv(BUFFER_SIZE)
        except OSError:
            data = b""
        if not data:
            print(f"[srv] client({_peer(addr)}) disconnected!")
            return
        print("[srv] received ws frame:")
        try:
            header, payload = parse_frame(data)
        except FrameError as exc:
            print(f"parse ws frame failed: {exc}")
            return
        print(describe_frame(header, payload))
        if header.opcode == Opcode.CLOSE:
            print("client exit")
            return
        try:
            sock.sendall(build_frame(payload))
        except OSError as exc:
            print(f"send failed: {exc}")


def main(argv=None):
    """Listen on the given port and serve WebSocket echo clients one at a time."""
    parser = argparse.ArgumentParser(
        prog="rproxy-echo", description="WebSocket echo server."
    )
    parser.add_argument("port", type=int)
    args = parser.parse_args(argv)

    server_sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        server_sock.bind(("", args.port))
        server_sock.listen(LISTEN_BACKLOG)
    except OSError as exc:
        print(f"listen failed: {exc}", file=sys.stderr)
        server_sock.close()
        return 1

    print(f"WebSocket server listening on port {args.port}")
    with server_sock:
        try:
            while True:
                try:
                    client_sock, addr = server_sock.accept()
                except InterruptedError:
                    continue
                except OSError:
                    break
                print(f"[srv] client({_peer(addr)}) is accepted!")
                with client_sock:
                    try:
                        serve_connection(client_sock, addr)
                    except (HandshakeError, OSError):
                        pass
        except KeyboardInterrupt:
            pass
    return 0