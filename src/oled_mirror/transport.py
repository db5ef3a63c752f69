"""Blocking TCP transport for talking to a GDB server."""

from __future__ import annotations

import logging
import socket
from types import TracebackType

from .rsp import ACK, Packet, PacketKind, encode, split_packet

logger = logging.getLogger(__name__)

INTERRUPT = b"\x03"
RECV_CHUNK = 4096


class ConnectError(ConnectionError):
    """Raised when the GDB server cannot be reached."""


class RSPTransport:
    """Owns the socket to a GDB server and reassembles packets read from it.

    The protocol is strictly request/response: callers send one packet and
    then call :meth:`receive_next` until the reply arrives.
    """

    def __init__(self, sock: socket.socket, *, acks: bool = True) -> None:
        """Wrap a connected ``sock``; ``acks`` controls ``+`` replies to packets."""
        self.sock = sock
        self.acks = acks
        self.buf = b""
        self._closed = False

    @classmethod
    def connect(
        cls, host: str, port: int, timeout: float = 5.0, *, acks: bool = True,
    ) -> RSPTransport:
        """Open a TCP connection to ``host:port``."""
        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except OSError as exc:
            msg = f"failed to connect to GDB server at {host}:{port}: {exc}"
            raise ConnectError(msg) from exc
        # Reads block for as long as the target takes to answer.
        sock.settimeout(None)
        logger.info("Connected to GDB server at %s:%d", host, port)
        return cls(sock, acks=acks)

    def send(self, packet: Packet) -> None:
        """Write ``packet`` to the server, blocking until it is accepted."""
        data = encode(packet.kind, packet.payload)
        logger.debug("-> %r", data)
        self.sock.sendall(data)

    def send_interrupt(self) -> None:
        """Send the out-of-band break byte that asks the target to halt."""
        logger.debug("-> interrupt")
        self.sock.sendall(INTERRUPT)

    def receive_next(self) -> Packet | None:
        """Block until the next packet is framed, or return ``None`` on EOF.

        Checksum and framing errors propagate to the caller; no resend is
        requested.
        """
        while True:
            packet, consumed = split_packet(self.buf)
            self.buf = self.buf[consumed:]
            if packet is not None:
                logger.debug("<- %r", packet)
                if self.acks and packet.kind is PacketKind.COMMAND:
                    self.sock.sendall(ACK)
                return packet
            chunk = self.sock.recv(RECV_CHUNK)
            if not chunk:
                if self.buf:
                    logger.warning(
                        "GDB server closed the stream with %d unframed bytes pending",
                        len(self.buf),
                    )
                    self.buf = b""
                else:
                    logger.debug("GDB server closed the stream")
                return None
            self.buf += chunk

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.sock.close()

    def __enter__(self) -> RSPTransport:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
