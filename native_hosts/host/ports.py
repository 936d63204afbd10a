"""OS capabilities used by the host, passed in explicitly so tests can stub them.

- ``FileSystem``: rename/open/copy/remove plus small whole-file reads and writes.
- ``ProcessControl``: process termination.

The HTTP capability lives in ``http_client`` (``HttpClient``).
"""

from __future__ import annotations

import os
import sys
from typing import BinaryIO, NoReturn, Protocol


class FileSystem(Protocol):
    def rename(self, src: str, dst: str) -> None: ...

    def open_executable(self, path: str) -> BinaryIO: ...

    def copy_stream(self, src: BinaryIO, dst: BinaryIO) -> int: ...

    def remove(self, path: str) -> None: ...

    def read_bytes(self, path: str) -> bytes: ...

    def write_bytes(self, path: str, data: bytes, mode: int = 0o644) -> None: ...


class ProcessControl(Protocol):
    def exit(self, code: int = 0) -> None: ...


class OsFileSystem:
    CHUNK_SIZE = 64 * 1024

    def rename(self, src: str, dst: str) -> None:
        os.replace(src, dst)

    def open_executable(self, path: str) -> BinaryIO:
        # O_CREAT|O_TRUNC|O_WRONLY with rwxr-xr-x; the mode only applies when the file is created.
        fd = os.open(path, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, 0o755)
        if os.name != "nt":
            try:
                os.fchmod(fd, 0o755)
            except OSError:
                os.close(fd)
                raise
        return os.fdopen(fd, "wb")

    def copy_stream(self, src: BinaryIO, dst: BinaryIO) -> int:
        total = 0
        while True:
            chunk = src.read(self.CHUNK_SIZE)
            if not chunk:
                break
            dst.write(chunk)
            total += len(chunk)
        dst.flush()
        return total

    def remove(self, path: str) -> None:
        os.remove(path)

    def read_bytes(self, path: str) -> bytes:
        with open(path, "rb") as fp:
            return fp.read()

    def write_bytes(self, path: str, data: bytes, mode: int = 0o644) -> None:
        fd = os.open(path, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, mode)
        with os.fdopen(fd, "wb") as fp:
            fp.write(data)


class SystemProcess:
    def exit(self, code: int = 0) -> NoReturn:
        sys.exit(code)

