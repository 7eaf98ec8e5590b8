import socket

import pytest

from rproxy.config import BadHttpProtocolError, FieldNotExistError
from rproxy.http_parser import (
    Headers,
    Request,
    Response,
    canonical_header_key,
    parse_headers,
    parse_request,
    parse_response,
    read_payload,
)

REQUEST = (
    "GET /index.html HTTP/1.1\r\n"
    "Host: example.com\r\n"
    "Connection: keep-alive\r\n"
    "Accept: */*\r\n"
    "\r\n"
)

RESPONSE = (
    "HTTP/1.1 200 OK\r\n"
    "Content-Length: 5\r\n"
    "Connection: close\r\n"
    "\r\n"
)


def test_canonical_key_capitalizes_after_hyphens():
    assert canonical_header_key("content-length") == "Content-Length"


def test_canonical_key_keeps_uppercase_and_is_idempotent():
    assert canonical_header_key("HOST") == "HOST"
    once = canonical_header_key("sec-websocket-key")
    assert canonical_header_key(once) == once


def test_parse_headers_reverses_order_and_strips_spaces():
    headers = parse_headers("A: 1\r\nB:    2\r\n")
    assert list(headers) == [("B", "2"), ("A", "1")]


def test_parse_headers_ignores_lines_without_colon():
    headers = parse_headers("garbage line\r\nHost: x\r\n")
    assert list(headers) == [("Host", "x")]
    assert len(headers) == 1


def test_parse_headers_empty_text():
    assert len(parse_headers("")) == 0
    assert len(parse_headers(None)) == 0


def test_headers_find_uses_canonical_key():
    headers = Headers([("x-real-ip", "10.0.0.1")])
    assert headers.find("X-Real-Ip") == "10.0.0.1"
    assert headers.find("missing") is None


def test_headers_set_missing_raises():
    headers = Headers([("Host", "a")])
    with pytest.raises(FieldNotExistError):
        headers.set("Connection", "close")


def test_headers_prepend_goes_first():
    headers = Headers([("Host", "a")])
    headers.prepend("Server", "rps/1.0.0")
    assert list(headers)[0] == ("Server", "rps/1.0.0")
    assert len(headers) == 2


def test_parse_request_fields():
    request = parse_request(REQUEST)
    assert request.method == "GET"
    assert request.url == "/index.html"
    assert request.version == "HTTP/1.1"
    assert request.headers.find("Host") == "example.com"
    assert request.headers.find("Connection") == "keep-alive"
    assert len(request.headers) == 3


def test_parse_request_accepts_bytes():
    request = parse_request(REQUEST.encode())
    assert request.headers.find("Accept") == "*/*"


def test_parse_request_without_crlf_fails():
    with pytest.raises(BadHttpProtocolError):
        parse_request("GET / HTTP/1.1")


def test_parse_request_without_headers_fails():
    with pytest.raises(BadHttpProtocolError):
        parse_request("GET / HTTP/1.1\r\n\r\n")


def test_parse_request_short_line_fails():
    with pytest.raises(BadHttpProtocolError):
        parse_request("GET /\r\nHost: a\r\n\r\n")


def test_request_apply_proxy_headers_defaults():
    request = parse_request(REQUEST)
    request.apply_proxy_headers()
    assert request.headers.find("Host") == "0.0.0.0:8083"
    assert request.headers.find("Connection") == "close"


def test_request_apply_proxy_headers_requires_host():
    request = parse_request("GET / HTTP/1.1\r\nConnection: close\r\n\r\n")
    with pytest.raises(FieldNotExistError):
        request.apply_proxy_headers("127.0.0.1:9000")


def test_request_apply_proxy_headers_requires_connection():
    request = parse_request("GET / HTTP/1.1\r\nHost: a\r\n\r\n")
    with pytest.raises(FieldNotExistError):
        request.apply_proxy_headers("127.0.0.1:9000")
    assert request.headers.find("Host") == "127.0.0.1:9000"


def test_request_to_bytes_layout():
    request = Request("GET", "/", "HTTP/1.1", Headers([("Host", "a")]))
    data = request.to_bytes()
    assert data.startswith(b"GET / HTTP/1.1\r\n")
    assert data.endswith(b"Host: a\r\n\r\n")


def test_parse_response_fields():
    response = parse_response(RESPONSE)
    assert response.version == "HTTP/1.1"
    assert response.status_code == "200"
    assert response.status_message == "OK"
    assert response.headers.find("Content-Length") == "5"


def test_parse_response_without_crlf_fails():
    with pytest.raises(BadHttpProtocolError):
        parse_response("HTTP/1.1 200 OK")


def test_response_keep_alive_replaces_connection():
    response = parse_response(RESPONSE)
    response.apply_proxy_headers(True)
    assert list(response.headers)[0] == ("Server", "rps/1.0.0")
    assert response.headers.find("Connection") == "keep-alive"


def test_response_keep_alive_adds_missing_connection():
    response = parse_response("HTTP/1.1 200 OK\r\nContent-Length: 0\r\n\r\n")
    response.apply_proxy_headers(True)
    fields = list(response.headers)
    assert fields[0] == ("Connection", "keep-alive")
    assert fields[1] == ("Server", "rps/1.0.0")


def test_response_without_keep_alive_leaves_connection():
    response = parse_response(RESPONSE)
    response.apply_proxy_headers(False)
    assert response.headers.find("Connection") == "close"
    assert response.headers.find("Server") == "rps/1.0.0"


def test_response_direct_construction():
    response = Response("HTTP/1.1", "204", "No", Headers([("Server", "x")]))
    assert response.to_bytes().startswith(b"HTTP/1.1 204 No\r\n")


def test_read_payload_exact_length():
    left, right = socket.socketpair()
    with left, right:
        data = bytes(range(256)) * 12
        left.sendall(data)
        assert read_payload(right, len(data)) == data


def test_read_payload_leaves_extra_bytes():
    left, right = socket.socketpair()
    with left, right:
        left.sendall(b"abcdef")
        assert read_payload(right, 4) == b"abcd"
        assert right.recv(10) == b"ef"


def test_read_payload_zero_length():
    left, right = socket.socketpair()
    with left, right:
        assert read_payload(right, 0) == b""


def test_read_payload_short_stream_raises():
    left, right = socket.socketpair()
    with right:
        left.sendall(b"abc")
        left.close()
        with pytest.raises(ConnectionError):
            read_payload(right, 10)