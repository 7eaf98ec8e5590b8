"""WebSocket frame parsing, construction and diagnostic description."""

import enum
from dataclasses import dataclass

from rproxy.config import ProxyError

_FIN_BIT = 0x80
_MASK_BIT = 0x80
_OPCODE_BITS = 0x0F
_LENGTH_BITS = 0x7F
_LEN_16 = 126
_LEN_64 = 127
_MAX_SHORT = 125
_MAX_16 = 0xFFFF
_NO_MASK = bytes(4)
_SEPARATOR = "-" * 40
_HEX_ROW = 16


class Opcode(enum.IntEnum):
    """Frame opcodes defined by the WebSocket protocol."""

    CONTINUATION = 0x0
    TEXT = 0x1
    BINARY = 0x2
    CLOSE = 0x8
    PING = 0x9
    PONG = 0xA


_OPCODE_NAMES = {
    Opcode.TEXT: "Text Frame",
    Opcode.BINARY: "Binary Frame",
    Opcode.CLOSE: "Close Frame",
    Opcode.PING: "Ping",
    Opcode.PONG: "Pong",
}


class FrameError(ProxyError, ValueError):
    """A WebSocket frame is incomplete or not acceptable."""


@dataclass
class FrameHeader:
    """The decoded header of one WebSocket frame."""

    fin: bool
    opcode: int
    mask: bool
    payload_len: int
    masking_key: bytes = _NO_MASK
    base_len: int = 0


def _as_opcode(value):
    try:
        return Opcode(value)
    except ValueError:
        return value


def _apply_mask(data, key):
    if not data:
        return b""
    stream = (key * (len(data) // 4 + 1))[: len(data)]
    mixed = int.from_bytes(data, "big") ^ int.from_bytes(stream, "big")
    return mixed.to_bytes(len(data), "big")


def parse_frame(data, allow_masked=True):
    """Decode one frame from ``data``; return its header and unmasked payload."""
    data = bytes(data)
    if len(data) < 2:
        raise FrameError("frame is shorter than two bytes")
    first, second = data[0], data[1]
    fin = bool(first & _FIN_BIT)
    opcode = _as_opcode(first & _OPCODE_BITS)
    masked = bool(second & _MASK_BIT)
    base_len = second & _LENGTH_BITS

    offset = 2
    length = base_len
    if base_len == _LEN_16:
        if len(data) < 4:
            raise FrameError("16-bit extended length is incomplete")
        length = int.from_bytes(data[2:4], "big")
        offset = 4
    elif base_len == _LEN_64:
        if len(data) < 10:
            raise FrameError("64-bit extended length is incomplete")
        length = int.from_bytes(data[2:10], "big")
        offset = 10

    key = _NO_MASK
    if masked:
        if not allow_masked:
            raise FrameError("frame must not be masked")
        if len(data) < offset + 4:
            raise FrameError("masking key is incomplete")
        key = data[offset:offset + 4]
        offset += 4

    if len(data) < offset + length:
        raise FrameError(
            f"payload is incomplete: need {length} bytes, have {len(data) - offset}"
        )
    payload = data[offset:offset + length]
    if masked:
        payload = _apply_mask(payload, key)
    header = FrameHeader(fin, opcode, masked, length, key, base_len)
    return header, payload


def build_frame(payload, mask_key=None):
    """Build a final text frame carrying ``payload``, masked when a key is given."""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    payload = bytes(payload)
    length = len(payload)
    mask_bit = 0
    if mask_key is not None:
        mask_key = bytes(mask_key)
        if len(mask_key) != 4:
            raise ValueError("masking key must be exactly four bytes")
        mask_bit = _MASK_BIT

    head = bytearray([_FIN_BIT | Opcode.TEXT])
    if length <= _MAX_SHORT:
        head.append(mask_bit | length)
    elif length <= _MAX_16:
        head.append(mask_bit | _LEN_16)
        head += length.to_bytes(2, "big")
    else:
        head.append(mask_bit | _LEN_64)
        head += length.to_bytes(8, "big")

    if mask_key is None:
        return bytes(head) + payload
    return bytes(head) + mask_key + _apply_mask(payload, mask_key)


def close_frame(code=1000):
    """Build an unmasked Close frame carrying a two-byte status code."""
    if not 0 <= code <= _MAX_16:
        raise ValueError(f"close code out of range: {code}")
    return bytes([_FIN_BIT | Opcode.CLOSE, 0x02]) + code.to_bytes(2, "big")


def describe_frame(header, payload):
    """Return a multi-line, human-readable description of a frame."""
    opcode = int(header.opcode)
    name = _OPCODE_NAMES.get(header.opcode, "Unknown")
    lines = [
        "[Frame Header]",
        f"  FIN: {int(header.fin)} ({'Final Frame' if header.fin else 'Fragment'})",
        f"  Opcode: 0x{opcode:X} ({name})",
        f"  Mask: {int(header.mask)} ({'Masked' if header.mask else 'Unmasked'})",
        f"  Base Payload Len: {header.base_len} (0x{header.base_len:02X})",
    ]
    if header.base_len == _LEN_16:
        lines.append(f"  Extended 16-bit Payload Len: {header.payload_len}")
    elif header.base_len == _LEN_64:
        lines.append(f"  Extended 64-bit Payload Len: {header.payload_len}")
    if header.mask:
        key_hex = " ".join(f"{b:02X}" for b in header.masking_key)
        lines.append(f"  Masking Key: {key_hex}")

    lines.append("[Payload Data]")
    if header.opcode == Opcode.TEXT:
        lines.append(f"  Text: {bytes(payload).decode('utf-8', errors='replace')}")
    elif header.opcode == Opcode.BINARY:
        lines.append(f"  Binary ({len(payload)} bytes):")
        for start in range(0, len(payload), _HEX_ROW):
            row = payload[start:start + _HEX_ROW]
            lines.append(f"    {start:04X}: " + "".join(f"{b:02X} " for b in row))
    lines.append(_SEPARATOR)
    return "\n".join(lines)