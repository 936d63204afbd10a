from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime

from packaging.version import InvalidVersion, Version

from .config import HostConfig
from .download import AtomicDownloader, DownloadError
from .http_client import HttpClientError, HttpGetter
from .ports import FileSystem
from .update_manifest import ManifestDecodeError, decode_manifest

_LOGGER = logging.getLogger("native_host.update_check")


def _now_ns() -> int:
    return time.time_ns()


class UpdateChecker:
    """Daily self-update check, run once when the browser closes the channel.

    Everything here is fire-and-log: there is no caller left to report to by the
    time the check runs, so no runtime failure escapes ``auto_update_check``.
    """

    def __init__(
        self,
        config: HostConfig,
        *,
        http: HttpGetter,
        fs: FileSystem,
        downloader: AtomicDownloader | None = None,
        clock: Callable[[], int] = _now_ns,
        platform: str | None = None,
    ) -> None:
        self._config = config
        self._http = http
        self._fs = fs
        self._downloader = downloader or AtomicDownloader(config, http=http, fs=fs)
        self._clock = clock
        self._platform = platform

    def auto_update_check(self) -> None:
        if not self._config.auto_update:
            return
        try:
            needed, url = self.need_update()
        except Exception:
            _LOGGER.exception("update_check_failed url=%s", self._config.update_url)
            return
        if not needed:
            return
        try:
            self._downloader.download_latest(url)
        except (DownloadError, HttpClientError) as exc:
            _LOGGER.error("update_download_failed url=%s error=%s", url, exc)
        except Exception:
            _LOGGER.exception("update_download_failed url=%s", url)
        else:
            _LOGGER.info("update_downloaded url=%s", url)

    def read_check_timestamp(self) -> int:
        """Previous check time in nanoseconds since epoch; 0 when never checked."""
        try:
            raw = self._fs.read_bytes(self._config.check_path)
        except OSError:
            return 0
        try:
            return int(raw.decode("ascii").strip())
        except (UnicodeDecodeError, ValueError):
            return 0

    def write_check_timestamp(self) -> None:
        self._fs.write_bytes(self._config.check_path, str(self._clock()).encode("ascii"), 0o644)

    def is_checked_today(self) -> bool:
        now = datetime.fromtimestamp(self._clock() / 1e9)
        try:
            last = datetime.fromtimestamp(self.read_check_timestamp() / 1e9)
        except (OverflowError, OSError, ValueError):
            # Out-of-range sidecar values count as never checked.
            return False
        return last.date() == now.date()

    def need_update(self) -> tuple[bool, str]:
        """Whether a newer version is advertised, and where to download it.

        The timestamp is written before the network check so a failing
        manifest endpoint is hit at most once per day.
        """
        if self.is_checked_today():
            _LOGGER.info("update_already_checked_today")
            return False, ""

        try:
            self.write_check_timestamp()
        except OSError as exc:
            _LOGGER.warning("update_timestamp_failed path=%s error=%s", self._config.check_path, exc)

        # HostConfig refuses unparseable versions when auto-update is on.
        local_version = Version(self._config.version)

        try:
            url, raw_remote = self.get_download_url_and_version()
        except (HttpClientError, ManifestDecodeError) as exc:
            _LOGGER.warning("update_check_failed url=%s error=%s", self._config.update_url, exc)
            return False, ""

        try:
            remote_version = Version(raw_remote)
        except InvalidVersion:
            _LOGGER.warning("update_check_no_version app=%s remote=%r", self._config.app_name, raw_remote)
            return False, ""

        if local_version < remote_version:
            _LOGGER.info("update_found local=%s remote=%s", local_version, remote_version)
            return True, url
        _LOGGER.info("update_up_to_date local=%s remote=%s", local_version, remote_version)
        return False, url

    def get_download_url_and_version(self) -> tuple[str, str]:
        with self._http.get(self._config.update_url) as resp:
            if not resp.ok:
                raise HttpClientError(f"manifest fetch returned {resp.status} {resp.reason}".rstrip())
            payload = resp.read()
        return decode_manifest(payload).get_url_and_version(self._config.app_name, self._platform)
