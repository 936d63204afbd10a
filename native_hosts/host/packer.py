"""Archive extraction for payloads shipped next to the host (gzip tar and zip).

Typical use streams a download straight into the extractor::

    with HttpClient.from_config(config).get(url) as resp:
        untar(resp.body, "/path/to/extract")
"""

from __future__ import annotations

import io
import logging
import os
import shutil
import tarfile
import zipfile
from pathlib import Path
from typing import BinaryIO

_LOGGER = logging.getLogger("native_host.packer")


class PackerError(Exception):
    pass


def valid_rel_path(name: str) -> bool:
    if not name or "\\" in name or name.startswith("/") or "../" in name:
        return False
    return True


def _remove_link(path: Path) -> None:
    if os.path.lexists(path):
        try:
            path.unlink()
        except OSError as exc:
            raise PackerError(f"untar rm {path}: {exc}") from exc


def _untar_entry(tr: tarfile.TarFile, member: tarfile.TarInfo, dest: Path) -> None:
    name = dest / member.name
    mode = member.mode & 0o7777

    if member.isdir():
        name.mkdir(mode=mode or 0o755, parents=True, exist_ok=True)
    elif member.isreg():
        src = tr.extractfile(member)
        if src is None:
            raise PackerError(f"untar read {member.name}: no data")
        name.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(name, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, mode or 0o644)
            with os.fdopen(fd, "wb") as dst:
                shutil.copyfileobj(src, dst)
                written = dst.tell()
        except OSError as exc:
            raise PackerError(f"untar write {name}: {exc}") from exc
        if written != member.size:
            raise PackerError(f"wrote {name} only {written} bytes of {member.size}")
    elif member.islnk():
        _remove_link(name)
        try:
            os.link(dest / member.linkname, name)
        except OSError as exc:
            raise PackerError(f"untar ln {name}: {exc}") from exc
    elif member.issym():
        _remove_link(name)
        try:
            os.symlink(member.linkname, name)
        except OSError as exc:
            raise PackerError(f"untar ln -s {name}: {exc}") from exc
    else:
        raise PackerError(f"untar unknown type {member.type!r}: {member.name}")


def untar(stream: BinaryIO, dir: str | os.PathLike[str]) -> None:
    """Extract a gzip-compressed tar read sequentially from ``stream`` into ``dir``."""
    dest = Path(dir)
    dest.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(fileobj=stream, mode="r|gz") as tr:
            for member in tr:
                if not valid_rel_path(member.name):
                    raise PackerError(f"untar invalid name: {member.name!r}")
                if member.ischr() or member.isblk() or member.isfifo():
                    continue
                # Rejects link targets and paths that resolve outside dest, existing symlinks included.
                try:
                    tarfile.data_filter(member, str(dest))
                except tarfile.FilterError as exc:
                    raise PackerError(f"untar unsafe entry {member.name!r}: {exc}") from exc
                _untar_entry(tr, member, dest)
    except (tarfile.TarError, EOFError, OSError) as exc:
        raise PackerError(f"untar error: {exc}") from exc
    _LOGGER.info("untar_ok dir=%s", dest)


def unzip(stream: BinaryIO, dir: str | os.PathLike[str]) -> None:
    """Extract a zip archive read from ``stream`` into ``dir`` (buffered, zip needs random access)."""
    dest = Path(dir)
    try:
        dest.mkdir(mode=0o755, parents=True, exist_ok=True)
    except OSError as exc:
        raise PackerError(f"unzip mkdir -p {dest}: {exc}") from exc

    try:
        buf = io.BytesIO(stream.read())
        zr = zipfile.ZipFile(buf)
    except (zipfile.BadZipFile, OSError) as exc:
        raise PackerError(f"open zip error: {exc}") from exc

    with zr:
        for info in zr.infolist():
            if not valid_rel_path(info.filename):
                raise PackerError(f"unzip invalid name: {info.filename!r}")
            name = dest / info.filename
            mode = (info.external_attr >> 16) & 0o7777
            try:
                if info.is_dir():
                    name.mkdir(mode=mode or 0o755, parents=True, exist_ok=True)
                    continue
                name.parent.mkdir(parents=True, exist_ok=True)
                fd = os.open(name, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, mode or 0o644)
                with zr.open(info) as src, os.fdopen(fd, "wb") as dst:
                    shutil.copyfileobj(src, dst)
            except (OSError, zipfile.BadZipFile) as exc:
                raise PackerError(f"unzip write {name}: {exc}") from exc
    _LOGGER.info("unzip_ok dir=%s", dest)
