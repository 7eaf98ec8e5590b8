"""The reverse proxy's accept loop and per-connection request handling."""

import argparse

from rproxy.config import (
    DEFAULT_IP,
    DEFAULT_PORT,
    MAX_HEADER_SIZE,
    BadHttpProtocolError,
    log,
)
from rproxy.http_parser import parse_request
from rproxy.net import ShutdownFlag, create_ipv4_server, safe_close
from rproxy.ws_proxy import HandshakeError, handle_websocket


def _recv_up_to(sock, count):
    """Receive ``count`` bytes, or fewer if the peer closes first."""
    data = b""
    while len(data) < count:
        chunk = sock.recv(count - len(data))
        if not chunk:
            break
        data += chunk
    return data


def read_head(sock):
    """Read one message head from ``sock``, up to and including its blank line.

    Returns None when the peer closes the connection before the head is
    complete. Raises BadHttpProtocolError when the head grows beyond
    MAX_HEADER_SIZE bytes.
    """
    head = bytearray()
    while True:
        byte = sock.recv(1)
        if not byte:
            return None
        head += byte
        if byte == b"\n":
            tail = _recv_up_to(sock, 2)
            head += tail
            if len(tail) < 2 or tail[1:] == b"\n":
                break
        if len(head) > MAX_HEADER_SIZE:
            raise BadHttpProtocolError(
                f"message head exceeds {MAX_HEADER_SIZE} bytes"
            )
    return bytes(head)


def handle_client(sock, addr):
    """Serve requests arriving on ``sock`` until the client is done."""
    keep_alive = True
    while keep_alive:
        try:
            head = read_head(sock)
        except BadHttpProtocolError as exc:
            log(f"ERROR: {exc}")
            return
        except OSError as exc:
            log(f"recv failed: {exc}")
            return
        if head is None:
            log("Client closed connection")
            return

        try:
            request = parse_request(head)
        except BadHttpProtocolError as exc:
            log(f"ERROR: {exc}")
            return

        connection = request.headers.find("Connection") or ""
        if connection == "close":
            keep_alive = False

        if connection.casefold() == "upgrade":
            try:
                closed_by_client = handle_websocket(sock, addr, request)
            except (HandshakeError, OSError) as exc:
                log(f"[rps] websocket connection closed: {exc}")
                return
            if closed_by_client:
                log("[rps] websocket connection closed")
                return


def serve(server_sock, shutdown):
    """Accept and serve clients one at a time until ``shutdown`` is set."""
    while not shutdown:
        try:
            sock, addr = server_sock.accept()
        except InterruptedError:
            continue
        except OSError as exc:
            log(f"accept failed: {exc}")
            break

        client_ip, client_port = addr[0], addr[1]
        log(f"[srv] Client connected: {client_ip}:{client_port}")
        try:
            handle_client(sock, addr)
        finally:
            safe_close(sock)
        log(f"[srv] Client closed: {client_ip}:{client_port}")


def main(argv=None):
    """Start the reverse proxy and serve until interrupted."""
    parser = argparse.ArgumentParser(
        prog="rproxy", description="Reverse proxy for HTTP and WebSocket traffic."
    )
    parser.add_argument("--ip", default=DEFAULT_IP, help="address to listen on")
    parser.add_argument(
        "--port", type=int, default=DEFAULT_PORT, help="port to listen on"
    )
    args = parser.parse_args(argv)

    try:
        server_sock = create_ipv4_server(args.ip, args.port)
    except (OSError, ValueError) as exc:
        log(f"[srv] Server start failed: {exc}")
        return 1

    log(f"[srv] Server started on {args.ip}:{args.port}")
    try:
        serve(server_sock, ShutdownFlag())
    except KeyboardInterrupt:
        log("[srv] SIGINT received, shutting down...")
    finally:
        safe_close(server_sock)
    log("[srv] Server shutdown complete")
    return 0