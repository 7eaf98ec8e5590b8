import socket
import threading

import pytest

from rproxy.config import MAX_HEADER_SIZE, BadHttpProtocolError
from rproxy.http_parser import parse_request
from rproxy.net import ShutdownFlag, create_ipv4_server
from rproxy.server import handle_client, main, read_head, serve


@pytest.fixture
def pair():
    left, right = socket.socketpair()
    left.settimeout(5)
    right.settimeout(5)
    yield left, right
    left.close()
    right.close()


def test_read_head_stops_at_blank_line(pair):
    server_side, peer = pair
    head = b"GET / HTTP/1.1\r\nHost: x\r\n\r\n"
    peer.sendall(head + b"EXTRA")
    assert read_head(server_side) == head
    assert server_side.recv(16) == b"EXTRA"


def test_read_head_output_parses_as_request(pair):
    server_side, peer = pair
    peer.sendall(b"POST /submit HTTP/1.1\r\nContent-Length: 0\r\nHost: h\r\n\r\n")
    request = parse_request(read_head(server_side))
    assert request.method == "POST"
    assert request.url == "/submit"
    assert request.headers.find("Host") == "h"


def test_read_head_returns_none_on_close(pair):
    server_side, peer = pair
    peer.close()
    assert read_head(server_side) is None


def test_read_head_returns_none_on_partial_head(pair):
    server_side, peer = pair
    peer.sendall(b"GET / HTT")
    peer.close()
    assert read_head(server_side) is None


def test_read_head_rejects_oversized_head(pair):
    server_side, peer = pair
    peer.sendall(b"a" * (MAX_HEADER_SIZE + 10))
    with pytest.raises(BadHttpProtocolError):
        read_head(server_side)


def test_handle_client_stops_after_connection_close(pair):
    server_side, peer = pair
    peer.sendall(b"GET / HTTP/1.1\r\nConnection: close\r\n\r\nLEFTOVER")
    handle_client(server_side, ("127.0.0.1", 40000))
    assert server_side.recv(16) == b"LEFTOVER"


def test_handle_client_keeps_alive_until_close(pair):
    server_side, peer = pair
    peer.sendall(
        b"GET /a HTTP/1.1\r\nConnection: keep-alive\r\n\r\n"
        b"GET /b HTTP/1.1\r\nConnection: close\r\n\r\n"
        b"LEFTOVER"
    )
    handle_client(server_side, ("127.0.0.1", 40000))
    assert server_side.recv(16) == b"LEFTOVER"


def test_handle_client_returns_on_malformed_request(pair):
    server_side, peer = pair
    peer.sendall(b"garbage\r\n\r\nLEFT")
    handle_client(server_side, ("127.0.0.1", 40000))
    assert server_side.recv(16) == b"LEFT"


def test_handle_client_rejects_bad_websocket_upgrade(pair):
    server_side, peer = pair
    peer.sendall(
        b"GET /chat HTTP/1.1\r\n"
        b"Connection: Upgrade\r\n"
        b"Sec-WebSocket-Key: dGhl\r\n\r\n"
    )
    handle_client(server_side, ("127.0.0.1", 40000))
    head = read_head(peer)
    assert head.startswith(b"HTTP/1.1 400 Bad Request\r\n")
    assert head.endswith(b"\r\n\r\n")
    assert peer.recv(4096) == b"WebSocket handshake failed"


def test_serve_handles_client_and_honours_shutdown():
    server = create_ipv4_server("127.0.0.1", 0)
    port = server.getsockname()[1]
    flag = ShutdownFlag()
    thread = threading.Thread(target=serve, args=(server, flag), daemon=True)
    thread.start()
    try:
        with socket.create_connection(("127.0.0.1", port), timeout=5) as client:
            client.sendall(b"GET / HTTP/1.1\r\nConnection: close\r\n\r\n")
            assert client.recv(1024) == b""
        flag.set()
        socket.create_connection(("127.0.0.1", port), timeout=5).close()
        thread.join(5)
        assert not thread.is_alive()
    finally:
        server.close()


def test_main_reports_start_failure():
    assert main(["--ip", "not-an-ip", "--port", "0"]) == 1