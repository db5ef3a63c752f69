"""Packet framing, checksums and escaping for the GDB remote serial protocol.

Packet layout::

    $<escaped payload>#<checksum>      command / reply packet
    %<escaped payload>#<checksum>      asynchronous notification
    +  or  -                           acknowledgement (no framing)

The checksum is the sum of the escaped payload bytes modulo 256, written as
two lowercase hexadecimal digits.  Inside a payload the bytes ``#$}*`` are
sent as ``}`` followed by the byte XOR 0x20, and servers may run-length
encode replies as ``X*n`` (``X`` repeated a further ``n - 29`` times).

Everything in this module is a pure transform over ``bytes``.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

ACK = b"+"
NAK = b"-"
ESCAPE = 0x7D
ESCAPE_XOR = 0x20
RLE_MARKER = 0x2A
RLE_BIAS = 29
CHECKSUM_DELIMITER = b"#"

# Bytes that must be escaped inside a payload.
_ESCAPED_CHARS = frozenset(b"#$}*")


class RSPError(Exception):
    """Base class for malformed traffic on the remote protocol."""


class FramingError(RSPError):
    """Raised when a packet is missing a delimiter or ends prematurely."""


class ChecksumError(RSPError):
    """Raised when a packet's checksum does not match its payload."""

    def __init__(self, received: bytes, computed: bytes) -> None:
        super().__init__(
            f"checksum mismatch: packet carries {received!r}, payload sums to {computed!r}"
        )
        self.received = received
        self.computed = computed


class PacketKind(enum.Enum):
    """Kinds of protocol units, valued by their leading wire byte."""

    NOTIFICATION = "%"
    COMMAND = "$"
    ACKNOWLEDGEMENT = "+"

    @property
    def delimiter(self) -> bytes:
        return self.value.encode("ascii")


_START_DELIMITERS = {
    ord(PacketKind.COMMAND.value): PacketKind.COMMAND,
    ord(PacketKind.NOTIFICATION.value): PacketKind.NOTIFICATION,
}
_ACK_BYTES = frozenset(ACK + NAK)


@dataclass(frozen=True)
class Packet:
    """A decoded protocol unit."""

    kind: PacketKind
    payload: bytes = b""

    @property
    def is_nak(self) -> bool:
        """Return ``True`` for a ``-`` acknowledgement requesting a resend."""
        return self.kind is PacketKind.ACKNOWLEDGEMENT and self.payload == NAK

    def __repr__(self) -> str:
        return f"Packet({self.kind.name}, {self.payload!r})"


def checksum(data: bytes) -> int:
    """Return the modulo-256 sum of ``data``."""
    return sum(data) & 0xFF


def _format_checksum(data: bytes) -> bytes:
    return f"{checksum(data):02x}".encode("ascii")


def escape(data: bytes) -> bytes:
    """Escape the bytes of ``data`` that collide with packet delimiters."""
    result = bytearray()
    for c in data:
        if c in _ESCAPED_CHARS:
            result += bytes((ESCAPE, c ^ ESCAPE_XOR))
        else:
            result.append(c)
    return bytes(result)


def unescape(data: bytes) -> bytes:
    """Undo escaping and expand run-length encoded runs in a packet body."""
    result = bytearray()
    idx = 0
    while idx < len(data):
        c = data[idx]
        if c == ESCAPE:
            if idx + 1 >= len(data):
                raise FramingError("packet body ends inside an escape sequence")
            result.append(data[idx + 1] ^ ESCAPE_XOR)
            idx += 2
        elif c == RLE_MARKER:
            if not result or idx + 1 >= len(data):
                raise FramingError("run-length marker without a byte to repeat")
            repeat = data[idx + 1] - RLE_BIAS
            if repeat < 0:
                raise FramingError(f"invalid run-length count {data[idx + 1]:#04x}")
            result += result[-1:] * repeat
            idx += 2
        else:
            result.append(c)
            idx += 1
    return bytes(result)


def encode(kind: PacketKind, payload: bytes = b"") -> bytes:
    """Frame ``payload`` as a packet of ``kind`` ready to write to the wire."""
    if kind is PacketKind.ACKNOWLEDGEMENT:
        if payload in (b"", ACK):
            return ACK
        if payload == NAK:
            return NAK
        raise ValueError(f"acknowledgements carry no payload, got {payload!r}")
    body = escape(payload)
    return kind.delimiter + body + CHECKSUM_DELIMITER + _format_checksum(body)


def split_packet(buffer: bytes) -> tuple[Packet | None, int]:
    """Frame the first packet in ``buffer``.

    Returns ``(packet, consumed)``.  ``packet`` is ``None`` while ``buffer``
    only holds noise or the beginning of a packet; ``consumed`` then counts
    the leading noise bytes the caller may drop.
    """
    start = 0
    while start < len(buffer):
        c = buffer[start]
        if c in _ACK_BYTES:
            return Packet(PacketKind.ACKNOWLEDGEMENT, bytes((c,))), start + 1
        if c in _START_DELIMITERS:
            break
        start += 1
    else:
        return None, len(buffer)

    end = buffer.find(CHECKSUM_DELIMITER, start + 1)
    if end < 0 or end + 3 > len(buffer):
        return None, start

    body = buffer[start + 1 : end]
    if PacketKind.COMMAND.delimiter in body:
        raise FramingError("packet start delimiter inside packet body")
    received = bytes(buffer[end + 1 : end + 3])
    computed = _format_checksum(body)
    if received != computed:
        raise ChecksumError(received, computed)
    return Packet(_START_DELIMITERS[buffer[start]], unescape(body)), end + 3


def decode(wire: bytes) -> Packet:
    """Decode the first packet contained in ``wire``."""
    packet, consumed = split_packet(wire)
    if packet is not None:
        return packet
    if consumed >= len(wire):
        raise FramingError("no packet start delimiter found")
    raise FramingError("stream ended in the middle of a packet")
