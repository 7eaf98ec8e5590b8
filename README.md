# rproxy

A small blocking reverse proxy for WebSocket traffic, together with a
WebSocket echo server and an interactive client for trying it out.

## Installation

```
pip install .
```

## Commands

### `rproxy` — the proxy

```
rproxy [--ip IP] [--port PORT]
```

Listens on `0.0.0.0:8080` by default and serves one client at a time. For
each connection it reads HTTP request heads one after another. When a
request's `Connection` header is `Upgrade` (in any letter case), the proxy:

1. checks that `Upgrade` is `websocket`, that `Connection` contains
   `upgrade` and that a `Sec-WebSocket-Key` is present; if not, it answers
   `400 Bad Request` and closes the connection;
2. connects to the backend at `127.0.0.1:9090` and sends its own upgrade
   request carrying the client's key, `X-Real-IP` and `X-Forwarded-Proto`;
3. relays the backend's answer to the client if it contains
   `101 Switching Protocols`, and gives up otherwise;
4. passes frames back and forth, one client frame then one backend frame,
   logging a description of each.

A close frame from the client is forwarded to the backend with its status
code (1000 when none is given), both sockets are half-closed and drained, and
the connection ends. A request with `Connection: close` ends the connection
after it is read. The proxy stops on Ctrl-C. Diagnostics go to standard error.

### `rproxy-echo` — a WebSocket echo backend

```
rproxy-echo 9090
```

Listens on all interfaces on the given port, completes the WebSocket
handshake (computing `Sec-WebSocket-Accept`), prints a description of every
frame it receives and sends each payload back as an unmasked text frame. A
close frame or an unparsable frame ends the connection; an invalid handshake
is answered with `400 Bad Request`.

### `rproxy-client` — an interactive client

```
rproxy-client 127.0.0.1 8080
```

Connects, sends an upgrade request with a random key and, once the answer
contains `101 Switching Protocols`, reads lines from standard input. Each
line is sent as a masked text frame and the echoed reply is printed. A line
starting with `q`, or end of input, quits.

## What it does not do

The proxy does not forward plain HTTP requests. A request that is not a
WebSocket upgrade is read and parsed, and nothing is sent upstream or back to
the client. The backend address is fixed at `127.0.0.1:9090`; there is no
configuration file. Frames are relayed one `recv` at a time, so a frame split
across reads, or several frames in one read, is not reassembled.

## Using the library

`rproxy.http_parser` parses and serialises HTTP heads:

```python
from rproxy.http_parser import parse_request

request = parse_request(
    b"GET /chat HTTP/1.1\r\nhost: example.com\r\nconnection: Upgrade\r\n\r\n"
)
print(request.method, request.url, request.headers.find("Host"))
request.apply_proxy_headers("127.0.0.1:8083")
print(request.to_bytes(b"body"))
```

Header names are stored in canonical form (`content-length` becomes
`Content-Length`), and `parse_headers` stores fields in the reverse of the
order they arrive in. `Headers` offers `find`, `set` and `prepend`, and can
be iterated as `(key, value)` pairs. `parse_response`, `Response` with
`apply_proxy_headers(keep_alive)` and `to_bytes`, and
`read_payload(sock, length)` complete the module.

`rproxy.frames` encodes and decodes WebSocket frames:

```python
from rproxy.frames import build_frame, close_frame, describe_frame, parse_frame

frame = build_frame(b"hello", mask_key=b"\x01\x02\x03\x04")
header, payload = parse_frame(frame)
print(payload)                     # b'hello'
print(describe_frame(header, payload))
print(close_frame(1000))
```

`build_frame` always builds a final text frame; `parse_frame(data,
allow_masked=False)` rejects masked frames.

Errors are raised as `BadHttpProtocolError`, `FieldNotExistError`
(both from `rproxy.config`), `FrameError` (`rproxy.frames`) or
`HandshakeError` (`rproxy.ws_proxy`); network failures surface as `OSError`.

## Tests

```
pip install .[test]
pytest
```