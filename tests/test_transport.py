from __future__ import annotations

import io
import struct
from typing import Any

import pytest


class _FailingWriter:
    """Fails (or writes short) on the n-th write call."""

    def __init__(self, fail_on: int, *, short: bool = False) -> None:
        self.fail_on = fail_on
        self.short = short
        self.count = 0
        self.content = bytearray()

    def write(self, buf: bytes) -> int:
        self.count += 1
        if self.count == self.fail_on:
            if self.short:
                return len(buf) - 1
            raise OSError("write error")
        self.content.extend(buf)
        return len(buf)


def _frame(body: bytes, *, order: str = "<") -> bytes:
    return struct.pack(f"{order}I", len(body)) + body


@pytest.mark.parametrize(
    "value",
    [
        {},
        {"key": "value"},
        {"nested": {"list": [1, 2.5, True, None], "text": "héllo ✓"}},
        ["a", 1, {"b": []}],
        "plain string",
        42,
    ],
)
def test_send_then_receive_roundtrip(value: Any) -> None:
    from native_hosts.host.transport import FrameKind, MessageChannel

    channel = MessageChannel()
    buf = io.BytesIO()
    channel.send(buf, value)
    buf.seek(0)

    result = channel.receive(buf)
    assert result.kind is FrameKind.MESSAGE
    assert result.message == value


def test_send_writes_little_endian_header_by_default() -> None:
    from native_hosts.host.transport import MessageChannel

    buf = io.BytesIO()
    MessageChannel().send(buf, {"key": "value"})
    assert buf.getvalue() == b'\x0f\x00\x00\x00{"key":"value"}'


def test_big_endian_channel_uses_big_endian_header() -> None:
    from native_hosts.host.transport import FrameKind, MessageChannel

    channel = MessageChannel("big")
    buf = io.BytesIO()
    channel.send(buf, {"key": "value"})
    assert buf.getvalue()[:4] == b"\x00\x00\x00\x0f"

    buf.seek(0)
    assert channel.receive(buf).kind is FrameKind.MESSAGE
    result = channel.receive(io.BytesIO(_frame(b'{"a":1}', order=">")))
    assert result.message == {"a": 1}


def test_zero_length_frame_is_empty_not_closed() -> None:
    from native_hosts.host.transport import FrameKind, MessageChannel

    result = MessageChannel().receive(io.BytesIO(struct.pack("<I", 0)))
    assert result.kind is FrameKind.EMPTY
    assert result.message is None
    assert not result.is_closed


def test_exhausted_reader_reports_closed() -> None:
    from native_hosts.host.transport import MessageChannel

    result = MessageChannel().receive(io.BytesIO(b""))
    assert result.is_closed


def test_frames_are_read_in_arrival_order() -> None:
    from native_hosts.host.transport import MessageChannel

    reader = io.BytesIO(_frame(b'{"n":1}') + _frame(b"") + _frame(b'{"n":2}'))
    channel = MessageChannel()
    assert channel.receive(reader).message == {"n": 1}
    assert channel.receive(reader).message is None
    assert channel.receive(reader).message == {"n": 2}
    assert channel.receive(reader).is_closed


def test_partial_header_is_an_error_not_a_close() -> None:
    from native_hosts.host.transport import FrameError, MessageChannel

    with pytest.raises(FrameError):
        MessageChannel().receive(io.BytesIO(b"\x05\x00"))


def test_short_body_is_an_error() -> None:
    from native_hosts.host.transport import FrameError, MessageChannel

    with pytest.raises(FrameError):
        MessageChannel().receive(io.BytesIO(struct.pack("<I", 10) + b'{"a":'))


def test_malformed_body_is_a_decode_error() -> None:
    from native_hosts.host.transport import FrameDecodeError, MessageChannel

    channel = MessageChannel()
    reader = io.BytesIO(_frame(b'{"key":"value}') + _frame(b'{"key":"value"}'))
    with pytest.raises(FrameDecodeError):
        channel.receive(reader)
    # The bad frame is fully consumed; the next one decodes normally.
    assert channel.receive(reader).message == {"key": "value"}


def test_oversized_frame_is_rejected() -> None:
    from native_hosts.host.transport import FrameError, MessageChannel

    channel = MessageChannel(max_frame_bytes=8)
    with pytest.raises(FrameError, match="too large"):
        channel.receive(io.BytesIO(_frame(b'{"key":"value"}')))


def test_unreadable_source_is_a_frame_error() -> None:
    from native_hosts.host.transport import FrameError, MessageChannel

    class _Broken:
        def read(self, n: int) -> bytes:
            raise OSError("read error")

    with pytest.raises(FrameError):
        MessageChannel().receive(_Broken())  # type: ignore[arg-type]


@pytest.mark.parametrize("fail_on", [1, 2])
def test_send_write_errors_surface(fail_on: int) -> None:
    from native_hosts.host.transport import FrameError, MessageChannel

    with pytest.raises(FrameError):
        MessageChannel().send(_FailingWriter(fail_on), {})  # type: ignore[arg-type]


@pytest.mark.parametrize("fail_on", [1, 2])
def test_send_short_writes_surface(fail_on: int) -> None:
    from native_hosts.host.transport import FrameError, MessageChannel

    with pytest.raises(FrameError, match="short"):
        MessageChannel().send(_FailingWriter(fail_on, short=True), {"key": "value"})  # type: ignore[arg-type]


def test_send_rejects_unserializable_value() -> None:
    from native_hosts.host.transport import FrameError, MessageChannel

    writer = _FailingWriter(fail_on=0)
    with pytest.raises(FrameError):
        MessageChannel().send(writer, {"value": object()})  # type: ignore[arg-type]
    assert writer.count == 0


def test_unknown_byte_order_is_rejected() -> None:
    from native_hosts.host.transport import MessageChannel

    with pytest.raises(ValueError):
        MessageChannel("middle")
