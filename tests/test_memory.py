import socket

import pytest

import oled_mirror.memory as memory
from oled_mirror.rsp import Packet, PacketKind
from oled_mirror.transport import RSPTransport

ACK = Packet(PacketKind.ACKNOWLEDGEMENT, b"+")
NAK = Packet(PacketKind.ACKNOWLEDGEMENT, b"-")


def reply(payload: bytes) -> Packet:
    return Packet(PacketKind.COMMAND, payload)


class DummyChannel:
    def __init__(self, *replies: Packet | None) -> None:
        self.replies = list(replies)
        self.sent: list[Packet] = []
        self.interrupts = 0

    def send(self, packet: Packet) -> None:
        self.sent.append(packet)

    def send_interrupt(self) -> None:
        self.interrupts += 1

    def receive_next(self) -> Packet | None:
        if not self.replies:
            return None
        return self.replies.pop(0)


def test_request_payload_uses_lowercase_hex() -> None:
    request = memory.MemoryReadRequest(address=0x2000ABCD, length=0x300)

    assert request.payload == b"m2000abcd,300"


@pytest.mark.parametrize("address,length", [(-1, 4), (0x1_0000_0000, 4), (0, -4)])
def test_request_rejects_values_outside_32_bits(address: int, length: int) -> None:
    with pytest.raises(ValueError):
        memory.MemoryReadRequest(address, length)


def test_read_memory_skips_acks_and_notifications() -> None:
    channel = DummyChannel(
        ACK,
        Packet(PacketKind.NOTIFICATION, b"Stop:T05"),
        reply(b"deadbeef"),
    )

    data = memory.read_memory(channel, 0x20000000, 4)

    assert data == b"\xde\xad\xbe\xef"
    assert channel.sent == [reply(b"m20000000,4")]


def test_read_memory_returns_empty_block_on_closed_stream() -> None:
    channel = DummyChannel(ACK, None)

    assert memory.read_memory(channel, 0x1000, 16) == b""


def test_read_memory_keeps_short_reply() -> None:
    channel = DummyChannel(reply(b"0102"))

    assert memory.read_memory(channel, 0x1000, 4) == b"\x01\x02"


def test_read_memory_truncates_oversized_reply() -> None:
    channel = DummyChannel(reply(b"010203040506"))

    assert memory.read_memory(channel, 0x1000, 4) == b"\x01\x02\x03\x04"


def test_read_memory_error_reply_raises() -> None:
    channel = DummyChannel(reply(b"E0e"))

    with pytest.raises(memory.ReadError, match="error 0x0E"):
        memory.read_memory(channel, 0x1000, 4)


@pytest.mark.parametrize("payload", [b"zz", b"abc", b"\xff\xfe"])
def test_read_memory_malformed_hex_raises(payload: bytes) -> None:
    with pytest.raises(memory.ReadError, match="malformed hex"):
        memory.read_memory(DummyChannel(reply(payload)), 0x1000, 4)


def test_read_memory_empty_reply_means_unsupported() -> None:
    with pytest.raises(memory.ReadError, match="not support"):
        memory.read_memory(DummyChannel(reply(b"")), 0x1000, 4)


def test_read_memory_nak_raises() -> None:
    with pytest.raises(memory.ReadError, match="NAK"):
        memory.read_memory(DummyChannel(NAK), 0x1000, 4)


def test_read_pointer_is_little_endian() -> None:
    channel = DummyChannel(reply(b"00a00020"))

    assert memory.read_pointer(channel, 0x20001000) == 0x2000A000
    assert channel.sent == [reply(b"m20001000,4")]


def test_read_pointer_returns_none_on_short_reply() -> None:
    assert memory.read_pointer(DummyChannel(reply(b"00a0")), 0x0) is None
    assert memory.read_pointer(DummyChannel(None), 0x0) is None


def test_halt_and_resume() -> None:
    channel = DummyChannel(reply(b"S02"))

    stop = memory.halt(channel)
    memory.resume(channel)

    assert channel.interrupts == 1
    assert stop == reply(b"S02")
    assert channel.sent == [reply(b"c")]


def test_server_that_never_answers_yields_empty_block() -> None:
    ours, server = socket.socketpair()
    server.shutdown(socket.SHUT_WR)
    with RSPTransport(ours) as transport:
        assert memory.read_memory(transport, 0x20000000, 768) == b""
    assert server.recv(64).startswith(b"$m20000000,300#")
    server.close()
