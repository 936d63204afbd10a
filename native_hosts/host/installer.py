from __future__ import annotations

import contextlib
import json
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from .config import HostConfig
from .ports import ProcessControl, SystemProcess
from .update_manifest import host_platform

_LOGGER = logging.getLogger("native_host.installer")

# See https://developer.chrome.com/docs/extensions/develop/concepts/native-messaging#native-messaging-host-location
_REGISTRY_PARENT = r"Software\Google\Chrome\NativeMessagingHosts"


@dataclass(slots=True)
class InstallReport:
    ok: bool = False
    wrote: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    manifest_path: str | None = None


def _is_root() -> bool:
    getuid = getattr(os, "getuid", None)
    return bool(getuid is not None and getuid() == 0)


def _write_manifest(path: Path, manifest: dict[str, object]) -> None:
    path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
    path.write_text(json.dumps(manifest, indent=2) + "\n", encoding="utf-8")
    if os.name != "nt":
        with contextlib.suppress(OSError):
            path.chmod(0o644)


class ManifestInstaller:
    """Install/uninstall the host manifest where the browser looks for it.

    Subclasses only supply locations (and, on Windows, the registry entry).
    Uninstall is best-effort: every failure is logged and collected in the
    report, then the process ends.
    """

    platform = ""

    def __init__(
        self,
        config: HostConfig,
        *,
        process: ProcessControl | None = None,
        home: Path | None = None,
        is_root: bool | None = None,
    ) -> None:
        self.config = config
        self.process = process or SystemProcess()
        self.home = home or Path.home()
        self.is_root = _is_root() if is_root is None else bool(is_root)

    def target_dir(self) -> Path:
        raise NotImplementedError

    def target_path(self) -> Path:
        return self.target_dir() / f"{self.config.app_name}.json"

    def _register(self, manifest_path: Path, report: InstallReport) -> None:
        return None

    def _unregister(self, report: InstallReport) -> None:
        return None

    def install(self) -> InstallReport:
        report = InstallReport()
        target = self.target_path()
        try:
            _write_manifest(target, self.config.manifest())
        except OSError as exc:
            report.errors.append(f"failed to write native host manifest {target}: {exc}")
            _LOGGER.warning("native_host_install_failed errors=%s", report.errors)
            return report
        report.wrote.append(str(target))
        report.manifest_path = str(target)

        self._register(target, report)
        report.ok = not report.errors
        if report.ok:
            _LOGGER.info("native_host_installed targets=%s", report.wrote)
        else:
            _LOGGER.warning("native_host_install_failed errors=%s", report.errors)
        return report

    def uninstall(self) -> InstallReport:
        report = InstallReport(manifest_path=str(self.target_path()))
        self._unregister(report)
        for path in (str(self.target_path()), self.config.exec_name, self.config.check_path):
            try:
                os.remove(path)
                report.wrote.append(path)
            except OSError as exc:
                # It might never have been installed, or the executable may be locked by this process.
                report.errors.append(f"remove {path}: {exc}")
                _LOGGER.info("native_host_uninstall_skip path=%s error=%s", path, exc)
        report.ok = True
        _LOGGER.info("native_host_uninstalled manifest=%s", report.manifest_path)
        self.process.exit(0)
        return report


class LinuxInstaller(ManifestInstaller):
    platform = "linux"

    def target_dir(self) -> Path:
        if self.is_root:
            return Path("/etc/opt/chrome/native-messaging-hosts")
        return self.home / ".config" / "google-chrome" / "NativeMessagingHosts"


class DarwinInstaller(ManifestInstaller):
    platform = "darwin"

    def target_dir(self) -> Path:
        if self.is_root:
            return Path("/Library/Google/Chrome/NativeMessagingHosts")
        return self.home / "Library" / "Application Support" / "Google" / "Chrome" / "NativeMessagingHosts"


class WindowsInstaller(ManifestInstaller):
    platform = "windows"

    def target_dir(self) -> Path:
        return Path(self.config.exec_name).parent

    @property
    def registry_key(self) -> str:
        return f"{_REGISTRY_PARENT}\\{self.config.app_name}"

    def _register(self, manifest_path: Path, report: InstallReport) -> None:
        try:
            import winreg  # type: ignore[import-not-found]
        except ImportError as exc:
            report.errors.append(f"winreg unavailable: {exc}")
            return
        try:
            with winreg.CreateKey(winreg.HKEY_CURRENT_USER, self.registry_key) as key_handle:
                winreg.SetValueEx(key_handle, "", 0, winreg.REG_SZ, str(manifest_path))
        except OSError as exc:
            report.errors.append(f"registry write failed HKCU\\{self.registry_key}: {exc}")
            return
        report.wrote.append(f"HKCU\\{self.registry_key}")

    def _unregister(self, report: InstallReport) -> None:
        try:
            import winreg  # type: ignore[import-not-found]
        except ImportError as exc:
            report.errors.append(f"winreg unavailable: {exc}")
            return
        try:
            with winreg.OpenKey(winreg.HKEY_CURRENT_USER, self.registry_key, 0, winreg.KEY_SET_VALUE) as key_handle:
                winreg.DeleteValue(key_handle, "")
            report.wrote.append(f"HKCU\\{self.registry_key}")
        except OSError as exc:
            # It might never have been installed.
            report.errors.append(f"registry delete failed HKCU\\{self.registry_key}: {exc}")
            _LOGGER.info("native_host_uninstall_skip registry=%s error=%s", self.registry_key, exc)


_INSTALLERS: dict[str, type[ManifestInstaller]] = {
    "linux": LinuxInstaller,
    "darwin": DarwinInstaller,
    "windows": WindowsInstaller,
}


def installer_for(config: HostConfig, *, platform: str | None = None, **kwargs: object) -> ManifestInstaller:
    name = host_platform(platform or sys.platform)
    # Other unixes follow the Linux layout.
    cls = _INSTALLERS.get(name, LinuxInstaller)
    return cls(config, **kwargs)  # type: ignore[arg-type]


__all__ = [
    "DarwinInstaller",
    "InstallReport",
    "LinuxInstaller",
    "ManifestInstaller",
    "WindowsInstaller",
    "installer_for",
]
