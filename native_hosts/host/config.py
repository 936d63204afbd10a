from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from packaging.version import InvalidVersion, Version

DEFAULT_APP_TYPE = "stdio"
DEFAULT_BYTE_ORDER = "little"
DEFAULT_HTTP_TIMEOUT = 15.0
DEFAULT_CONNECT_TIMEOUT = 10.0
# Chrome refuses messages to the host larger than 64 MiB.
DEFAULT_MAX_FRAME_BYTES = 64 * 1024 * 1024


def current_executable() -> Path:
    """Absolute, symlink-free path of the running executable."""
    # Frozen builds run as a standalone binary; otherwise the script itself is the "executable".
    raw = sys.executable if getattr(sys, "frozen", False) else (sys.argv[0] or sys.executable)
    return Path(raw).expanduser().resolve()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off"}


def _env_list(name: str) -> list[str]:
    raw = os.environ.get(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True, slots=True)
class HostConfig:
    app_name: str
    app_desc: str
    exec_name: str
    app_type: str = DEFAULT_APP_TYPE
    allowed_exts: list[str] = field(default_factory=list)
    auto_update: bool = False
    byte_order: str = DEFAULT_BYTE_ORDER
    update_url: str = ""
    version: str = ""
    verify_tls: bool = True
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    max_frame_bytes: int = DEFAULT_MAX_FRAME_BYTES

    def __post_init__(self) -> None:
        if self.byte_order not in {"little", "big"}:
            raise ValueError(f"unsupported byte order: {self.byte_order!r}")
        if self.auto_update != bool(self.update_url and self.version):
            raise ValueError("auto_update requires both update_url and version")
        if self.auto_update:
            try:
                Version(self.version)
            except InvalidVersion as exc:
                raise ValueError(f"version is not a semantic version: {self.version!r}") from exc

    @staticmethod
    def normalize_byte_order(raw: str | None) -> str:
        order = (raw or "").strip().lower()
        if order in {"big", "be", "big-endian", "network"}:
            return "big"
        return DEFAULT_BYTE_ORDER

    @classmethod
    def create(
        cls,
        *,
        app_name: str = "",
        app_desc: str = "",
        exec_name: str | os.PathLike[str] | None = None,
        app_type: str = "",
        allowed_exts: list[str] | None = None,
        byte_order: str | None = None,
        update_url: str = "",
        version: str = "",
        verify_tls: bool = True,
        http_timeout: float = DEFAULT_HTTP_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        max_frame_bytes: int = DEFAULT_MAX_FRAME_BYTES,
    ) -> HostConfig:
        """Build a config, filling every unset field with its default.

        * ``exec_name`` is resolved to an absolute path with symlinks evaluated.
        * ``app_name`` defaults to the executable file name without extension.
        * ``app_desc`` defaults to ``app_name``; ``app_type`` to ``"stdio"``.
        * ``auto_update`` is on only when both ``update_url`` and ``version`` are given.
        """
        exec_path = Path(exec_name).expanduser().resolve() if exec_name else current_executable()
        name = app_name or exec_path.stem
        return cls(
            app_name=name,
            app_desc=app_desc or name,
            exec_name=str(exec_path),
            app_type=app_type or DEFAULT_APP_TYPE,
            allowed_exts=list(allowed_exts or []),
            auto_update=bool(update_url and version),
            byte_order=cls.normalize_byte_order(byte_order),
            update_url=update_url,
            version=version,
            verify_tls=verify_tls,
            http_timeout=float(http_timeout),
            connect_timeout=float(connect_timeout),
            max_frame_bytes=int(max_frame_bytes),
        )

    @classmethod
    def from_env(cls, **overrides: Any) -> HostConfig:
        kwargs: dict[str, Any] = {
            "app_name": os.environ.get("NATIVE_HOST_NAME", "").strip(),
            "app_desc": os.environ.get("NATIVE_HOST_DESCRIPTION", "").strip(),
            "app_type": os.environ.get("NATIVE_HOST_TYPE", "").strip(),
            "allowed_exts": _env_list("NATIVE_HOST_ALLOWED_ORIGINS"),
            "byte_order": os.environ.get("NATIVE_HOST_BYTE_ORDER"),
            "update_url": os.environ.get("NATIVE_HOST_UPDATE_URL", "").strip(),
            "version": os.environ.get("NATIVE_HOST_VERSION", "").strip(),
            "verify_tls": _env_bool("NATIVE_HOST_VERIFY_TLS", True),
            "http_timeout": float(os.environ.get("NATIVE_HOST_HTTP_TIMEOUT", str(DEFAULT_HTTP_TIMEOUT))),
            "connect_timeout": float(os.environ.get("NATIVE_HOST_CONNECT_TIMEOUT", str(DEFAULT_CONNECT_TIMEOUT))),
            "max_frame_bytes": int(os.environ.get("NATIVE_HOST_MAX_FRAME_BYTES", str(DEFAULT_MAX_FRAME_BYTES))),
        }
        kwargs.update(overrides)
        return cls.create(**kwargs)

    @property
    def check_path(self) -> str:
        return self.exec_name + ".chk"

    @property
    def backup_path(self) -> str:
        return self.exec_name + ".bak"

    def manifest(self) -> dict[str, object]:
        """Native messaging host manifest (the JSON file browsers look up)."""
        return {
            "name": self.app_name,
            "description": self.app_desc,
            "path": self.exec_name,
            "type": self.app_type,
            "allowed_origins": list(self.allowed_exts),
        }
