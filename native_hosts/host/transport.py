"""Native messaging framing: a 4-byte unsigned length followed by UTF-8 JSON.

The channel only frames and decodes; it never decides what happens when the
browser closes stdin. ``receive`` reports that as ``FrameKind.CLOSED`` and the
caller (``host.Host``) runs the update check and ends the process.
"""

from __future__ import annotations

import enum
import json
import struct
from dataclasses import dataclass
from typing import Any, BinaryIO

from .config import DEFAULT_MAX_FRAME_BYTES

_HEADER_SIZE = 4


class FrameError(Exception):
    pass


class FrameDecodeError(FrameError):
    pass


class FrameKind(enum.Enum):
    MESSAGE = "message"
    EMPTY = "empty"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class ReadResult:
    kind: FrameKind
    message: Any = None

    @classmethod
    def closed(cls) -> ReadResult:
        return cls(FrameKind.CLOSED)

    @classmethod
    def empty(cls) -> ReadResult:
        return cls(FrameKind.EMPTY)

    @property
    def is_closed(self) -> bool:
        return self.kind is FrameKind.CLOSED


def _read_exact(reader: BinaryIO, n: int) -> bytes:
    buf = bytearray()
    while len(buf) < n:
        chunk = reader.read(n - len(buf))
        if not chunk:
            break
        buf.extend(chunk)
    return bytes(buf)


class MessageChannel:
    def __init__(self, byte_order: str = "little", *, max_frame_bytes: int = DEFAULT_MAX_FRAME_BYTES) -> None:
        if byte_order not in {"little", "big"}:
            raise ValueError(f"unsupported byte order: {byte_order!r}")
        self.byte_order = byte_order
        self.max_frame_bytes = int(max_frame_bytes)
        self._header = struct.Struct("<I" if byte_order == "little" else ">I")

    def receive(self, reader: BinaryIO) -> ReadResult:
        try:
            header = _read_exact(reader, _HEADER_SIZE)
        except OSError as exc:
            raise FrameError(f"header read failed: {exc}") from exc
        if not header:
            return ReadResult.closed()
        if len(header) < _HEADER_SIZE:
            raise FrameError(f"unexpected end of input in header ({len(header)} of {_HEADER_SIZE} bytes)")

        (length,) = self._header.unpack(header)
        if length == 0:
            return ReadResult.empty()
        if length > self.max_frame_bytes:
            raise FrameError(f"frame too large: {length} > {self.max_frame_bytes}")

        try:
            raw = _read_exact(reader, length)
        except OSError as exc:
            raise FrameError(f"body read failed: {exc}") from exc
        if len(raw) < length:
            raise FrameError(f"unexpected end of input in body ({len(raw)} of {length} bytes)")

        try:
            message = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise FrameDecodeError(f"invalid JSON message: {exc}") from exc
        return ReadResult(FrameKind.MESSAGE, message)

    def encode(self, message: Any) -> bytes:
        try:
            body = json.dumps(message, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise FrameError(f"message is not JSON serializable: {exc}") from exc
        if len(body) > 0xFFFFFFFF:
            raise FrameError(f"message too large for a frame: {len(body)} bytes")
        return self._header.pack(len(body)) + body

    def send(self, writer: BinaryIO, message: Any) -> None:
        frame = self.encode(message)
        header, body = frame[:_HEADER_SIZE], frame[_HEADER_SIZE:]
        for label, chunk in (("header", header), ("body", body)):
            try:
                written = writer.write(chunk)
            except OSError as exc:
                raise FrameError(f"{label} write failed: {exc}") from exc
            if written is not None and written != len(chunk):
                raise FrameError(f"short {label} write: {written} of {len(chunk)} bytes")
        flush = getattr(writer, "flush", None)
        if callable(flush):
            try:
                flush()
            except OSError as exc:
                raise FrameError(f"flush failed: {exc}") from exc
