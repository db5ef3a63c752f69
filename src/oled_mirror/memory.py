"""Target memory reads over the remote protocol, plus halt/continue hooks."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Protocol

from .rsp import Packet, PacketKind

logger = logging.getLogger(__name__)

MAX_U32 = 0xFFFFFFFF
POINTER_SIZE = 4
ERROR_REPLY = re.compile(rb"E([0-9A-Fa-f]{2})")


class ReadError(Exception):
    """Raised when a memory read reply cannot be turned into bytes."""


class PacketChannel(Protocol):
    """The subset of :class:`~oled_mirror.transport.RSPTransport` used here."""

    def send(self, packet: Packet) -> None:
        """Write a packet to the server."""

    def send_interrupt(self) -> None:
        """Write the break byte."""

    def receive_next(self) -> Packet | None:
        """Return the next packet, or ``None`` once the stream is closed."""


@dataclass(frozen=True)
class MemoryReadRequest:
    """An ``m`` command for ``length`` bytes starting at ``address``."""

    address: int
    length: int

    def __post_init__(self) -> None:
        for name in ("address", "length"):
            value = getattr(self, name)
            if not 0 <= value <= MAX_U32:
                raise ValueError(f"{name} must be a 32-bit unsigned value, got {value!r}")

    @property
    def payload(self) -> bytes:
        return f"m{self.address:x},{self.length:x}".encode("ascii")


def _await_reply(channel: PacketChannel) -> Packet | None:
    """Skip acknowledgements and notifications until a reply arrives."""
    while True:
        packet = channel.receive_next()
        if packet is None:
            return None
        if packet.kind is PacketKind.ACKNOWLEDGEMENT:
            if packet.is_nak:
                raise ReadError("GDB server rejected the request (NAK)")
            continue
        if packet.kind is PacketKind.NOTIFICATION:
            logger.debug("Ignoring notification %r", packet.payload)
            continue
        return packet


def _decode_reply(payload: bytes, request: MemoryReadRequest) -> bytes:
    error = ERROR_REPLY.fullmatch(payload)
    if error:
        code = int(error.group(1), 16)
        raise ReadError(
            f"target reported error 0x{code:02X} reading "
            f"{request.length} bytes at 0x{request.address:08X}"
        )
    if not payload and request.length:
        raise ReadError("GDB server does not support memory reads")
    try:
        return bytes.fromhex(payload.decode("ascii"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise ReadError(f"malformed hex in memory read reply: {payload[:32]!r}") from exc


def read_memory(channel: PacketChannel, address: int, length: int) -> bytes:
    """Read ``length`` bytes of target memory at ``address``.

    Returns ``b""`` if the server closes the stream instead of answering, and
    whatever was received when the reply is short, so the caller can keep
    showing its previous frame.
    """
    request = MemoryReadRequest(address, length)
    channel.send(Packet(PacketKind.COMMAND, request.payload))
    reply = _await_reply(channel)
    if reply is None:
        logger.warning(
            "Stream closed while reading %d bytes at 0x%08X", length, address
        )
        return b""

    data = _decode_reply(reply.payload, request)
    if len(data) < length:
        logger.warning(
            "Short read at 0x%08X: got %d of %d bytes", address, len(data), length
        )
    elif len(data) > length:
        logger.warning(
            "Oversized read at 0x%08X: got %d bytes, keeping %d",
            address,
            len(data),
            length,
        )
        data = data[:length]
    return data


def read_pointer(channel: PacketChannel, address: int) -> int | None:
    """Read a little-endian 32-bit pointer, or ``None`` if the reply was short."""
    data = read_memory(channel, address, POINTER_SIZE)
    if len(data) < POINTER_SIZE:
        return None
    return int.from_bytes(data, "little")


def halt(channel: PacketChannel) -> Packet | None:
    """Interrupt the target and wait for its stop reply."""
    channel.send_interrupt()
    reply = _await_reply(channel)
    logger.debug("Target halted: %r", reply)
    return reply


def resume(channel: PacketChannel) -> None:
    """Let the target continue; the stop reply arrives at the next :func:`halt`."""
    channel.send(Packet(PacketKind.COMMAND, b"c"))
