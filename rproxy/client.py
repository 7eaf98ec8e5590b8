"""An interactive WebSocket client that sends lines and prints their echoes."""

import argparse
import os
import random
import socket
import string
import sys

from rproxy.frames import FrameError, build_frame, parse_frame

BUFFER_SIZE = 4096
WS_KEY_LENGTH = 24

_SWITCHING = b"101 Switching Protocols"
_PROMPT = "Enter message (q to quit): "


def generate_client_key():
    """Return a random key of upper-case letters for the upgrade request."""
    return "".join(random.choices(string.ascii_uppercase, k=WS_KEY_LENGTH - 1))


def build_handshake(host, port, key):
    """Build the HTTP upgrade request sent to the server."""
    return (
        "GET / HTTP/1.1\r\n"
        f"Host: {host}:{port}\r\n"
        "Upgrade: websocket\r\n"
        "Connection: Upgrade\r\n"
        "Sec-WebSocket-Version: 13\r\n"
        f"Sec-WebSocket-Key: {key}\r\n\r\n"
    ).encode("latin-1")


def exchange(sock, message):
    """Send ``message`` as a masked text frame and return the echoed text.

    Raises ConnectionError when the server closes the connection and
    FrameError when its reply is not a valid unmasked frame.
    """
    sock.sendall(build_frame(message, os.urandom(4)))
    data = sock.recv(BUFFER_SIZE)
    if not data:
        raise ConnectionError("server closed the connection")
    _, payload = parse_frame(data, allow_masked=False)
    return payload.decode("utf-8", errors="replace")


def _message_loop(sock):
    while True:
        try:
            message = input(_PROMPT)
        except EOFError:
            print("[cli] exit")
            return
        if message.startswith("q"):
            print("[cli] exit")
            return
        try:
            echo = exchange(sock, message)
        except FrameError as exc:
            print(f"parse ws frame failed: {exc}")
            return
        except OSError as exc:
            print(f"ws frame exchange failed: {exc}", file=sys.stderr)
            return
        print(f"Received echo: {echo}")


def main(argv=None):
    """Connect to a WebSocket server and echo lines read from standard input."""
    parser = argparse.ArgumentParser(
        prog="rproxy-client", description="Interactive WebSocket echo client."
    )
    parser.add_argument("server_ip")
    parser.add_argument("port", type=int)
    args = parser.parse_args(argv)

    try:
        sock = socket.create_connection((args.server_ip, args.port))
    except OSError as exc:
        print(f"Connect failed: {exc}", file=sys.stderr)
        return 1

    with sock:
        print(f"[cli] connected to server({args.server_ip}:{args.port})!")
        print("ws handshaking...")
        handshake = build_handshake(args.server_ip, args.port, generate_client_key())
        print("sending handshake request")
        print("Handshake request:\n" + handshake.decode("latin-1"), end="")
        try:
            sock.sendall(handshake)
            print("receive response!")
            response = sock.recv(BUFFER_SIZE)
        except OSError as exc:
            print(f"ws handshake failed: {exc}", file=sys.stderr)
            return 1
        if _SWITCHING not in response:
            print("Handshake failed", file=sys.stderr)
            return 1
        print("Connected to WebSocket server")
        _message_loop(sock)
    return 0