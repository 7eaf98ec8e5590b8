"""Relaying a WebSocket upgrade and its frames to the backend server."""

import socket
import time

from rproxy.config import BUFFER_SIZE, ProxyError, log
from rproxy.frames import (
    FrameError,
    Opcode,
    close_frame,
    describe_frame,
    parse_frame,
)

BACKEND_HOST = "127.0.0.1"
BACKEND_PORT = 9090
WS_KEY_LENGTH = 24
NORMAL_CLOSURE = 1000

_SWITCHING = b"101 Switching Protocols"
_ERROR_LINGER = 0.1
_DRAIN_SIZE = 128
_BAD_REQUEST = (
    b"HTTP/1.1 400 Bad Request\r\n"
    b"Content-Type: text/plain\r\n"
    b"Connection: close\r\n\r\n"
    b"WebSocket handshake failed"
)


class HandshakeError(ProxyError):
    """The WebSocket upgrade could not be completed."""


def validate_upgrade(request):
    """Check the upgrade headers of ``request`` and return its WebSocket key."""
    has_upgrade = False
    has_connection_upgrade = False
    client_key = ""
    for key, value in request.headers:
        name = key.casefold()
        if name == "upgrade":
            if value.casefold() == "websocket":
                has_upgrade = True
        elif name == "connection":
            if "upgrade" in value.casefold():
                has_connection_upgrade = True
        elif name == "sec-websocket-key":
            client_key = value[:WS_KEY_LENGTH]
    if not has_upgrade:
        raise HandshakeError("Missing or invalid Upgrade header")
    if not has_connection_upgrade:
        raise HandshakeError("Missing or invalid Connection header")
    if not client_key:
        raise HandshakeError("Missing Sec-WebSocket-Key header")
    return client_key


def build_upstream_request(request, client_key, client_ip):
    """Build the upgrade request forwarded to the backend server."""
    return (
        f"GET {request.url} HTTP/1.1\r\n"
        f"Host: {BACKEND_HOST}:{BACKEND_PORT}\r\n"
        "Connection: Upgrade\r\n"
        "Upgrade: websocket\r\n"
        "Sec-WebSocket-Version: 13\r\n"
        f"Sec-WebSocket-Key: {client_key}\r\n"
        f"X-Real-IP: {client_ip} \r\n"
        "X-Forwarded-Proto : http \r\n"
        "\r\n"
    ).encode("latin-1")


def connect_to_backend(host=BACKEND_HOST, port=BACKEND_PORT):
    """Open a TCP connection to the backend server."""
    try:
        sock = socket.create_connection((host, port))
    except OSError:
        log("[rps] backend connect failed")
        raise
    log(f"[rps] connected to server({host}:{port})!")
    return sock


def send_close_frame(sock, code=NORMAL_CLOSURE):
    """Send a Close frame carrying ``code``."""
    sock.sendall(close_frame(code))


def _drain(sock):
    try:
        while sock.recv(_DRAIN_SIZE):
            pass
    except OSError:
        pass


def safe_ws_close(client_sock, backend_sock):
    """Half-close both sides, drain what is left, then close the backend socket."""
    for sock in (client_sock, backend_sock):
        try:
            sock.shutdown(socket.SHUT_WR)
        except OSError:
            pass
    _drain(client_sock)
    _drain(backend_sock)
    backend_sock.close()


def _relay(client_sock, backend_sock):
    while True:
        try:
            data = client_sock.recv(BUFFER_SIZE)
        except OSError as exc:
            log(f"[rps] recv from client failed: {exc}")
            break
        if not data:
            log("[rps] Client exit")
            break

        log("[rps] received client websocket frame:")
        try:
            header, payload = parse_frame(data)
        except FrameError as exc:
            log(f"[rps] parse ws frame failed: {exc}")
            continue
        log(describe_frame(header, payload))

        if header.opcode == Opcode.CLOSE:
            log("[rps] client closed websocket connection")
            code = NORMAL_CLOSURE
            if len(payload) >= 2:
                code = int.from_bytes(payload[:2], "big")
            try:
                send_close_frame(backend_sock, code)
            except OSError as exc:
                log(f"[rps] forwarding close frame failed: {exc}")
            safe_ws_close(client_sock, backend_sock)
            return True

        try:
            backend_sock.sendall(data)
        except OSError as exc:
            log(f"Backend forward error: {exc}")
            break

        try:
            reply = backend_sock.recv(BUFFER_SIZE)
        except OSError:
            reply = b""
        if not reply:
            log("Backend disconnected")
            break

        log("[rps] received server websocket frame:")
        try:
            header, payload = parse_frame(reply)
        except FrameError as exc:
            log(f"[rps] parse ws frame failed: {exc}")
            break
        log(describe_frame(header, payload))

        try:
            client_sock.sendall(reply)
        except OSError as exc:
            log(f"Client forward error: {exc}")
            break

    log("WebSocket connection closed")
    return False


def handle_websocket(
    client_sock, client_addr, request, backend_address=(BACKEND_HOST, BACKEND_PORT)
):
    """Complete the upgrade through the backend and relay frames both ways.

    Returns True when the client ended the session with a Close frame and
    False when the relay stopped because a peer disconnected or failed.
    Raises HandshakeError when the upgrade is invalid or refused, and
    OSError when the backend cannot be reached.
    """
    client_ip, client_port = client_addr[0], client_addr[1]
    log(f"New WebSocket connection from {client_ip}:{client_port}")

    try:
        client_key = validate_upgrade(request)
    except HandshakeError as exc:
        log(str(exc))
        client_sock.sendall(_BAD_REQUEST)
        log(f"[srv] client({client_ip}:{client_port}) websocket handshake failed")
        time.sleep(_ERROR_LINGER)
        raise

    upstream = build_upstream_request(request, client_key, client_ip)
    backend_host, backend_port = backend_address
    backend_sock = connect_to_backend(backend_host, backend_port)
    try:
        backend_sock.sendall(upstream)
        response = backend_sock.recv(BUFFER_SIZE)
        if not response:
            log("[rps] recv backend response error")
            raise HandshakeError("backend closed the connection during the upgrade")
        if _SWITCHING not in response:
            log("[rps]Backend refused WebSocket upgrade")
            raise HandshakeError("backend refused WebSocket upgrade")
        log(
            f"[rps] server({backend_host}:{backend_port}) "
            "websocket handshake succeeded!"
        )
        client_sock.sendall(response)
        log(f"[rps] client({client_ip}:{client_port}) websocket handshake succeeded!")
        return _relay(client_sock, backend_sock)
    finally:
        backend_sock.close()