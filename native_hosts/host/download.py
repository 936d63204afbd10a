from __future__ import annotations

import logging

from .config import HostConfig
from .http_client import HttpGetter
from .ports import FileSystem

_LOGGER = logging.getLogger("native_host.download")


class DownloadError(Exception):
    pass


class UpdateNotFoundError(DownloadError):
    def __init__(self, status: int, reason: str = "") -> None:
        super().__init__(f"Unable to find the update: {status} {reason}".rstrip())
        self.status = status


class RollbackError(DownloadError):
    """Replacement failed and restoring the backup failed as well."""

    def __init__(self, cause: BaseException, rollback_error: BaseException) -> None:
        super().__init__(f"{cause} (rollback failed: {rollback_error})")
        self.cause = cause
        self.rollback_error = rollback_error


class AtomicDownloader:
    """Replace the running executable with the content behind a URL.

    Sequence: GET → rename ``exec`` to ``exec.bak`` → write the new ``exec``
    (mode 0755) → remove the backup. Any failure after the backup rename puts
    the backup back; if that also fails, ``RollbackError`` carries both causes.
    """

    def __init__(self, config: HostConfig, *, http: HttpGetter, fs: FileSystem) -> None:
        self._config = config
        self._http = http
        self._fs = fs

    def download_latest(self, url: str) -> None:
        exec_name = self._config.exec_name
        backup_name = self._config.backup_path

        with self._http.get(url) as resp:
            if not resp.ok:
                raise UpdateNotFoundError(resp.status, resp.reason)

            try:
                self._fs.rename(exec_name, backup_name)
            except OSError as exc:
                raise DownloadError(f"backup {exec_name} failed: {exc}") from exc

            try:
                fp = self._fs.open_executable(exec_name)
            except Exception as exc:  # noqa: BLE001
                self._rollback(exc)
                raise DownloadError(f"open {exec_name} failed: {exc}") from exc

            try:
                with fp:
                    written = self._fs.copy_stream(resp.body, fp)
            except Exception as exc:  # noqa: BLE001
                self._rollback(exc)
                raise DownloadError(f"write {exec_name} failed: {exc}") from exc

        _LOGGER.info("update_written path=%s bytes=%s", exec_name, written)
        try:
            self._fs.remove(backup_name)
        except OSError as exc:
            _LOGGER.warning("backup_remove_failed path=%s error=%s", backup_name, exc)

    def _rollback(self, cause: BaseException) -> None:
        try:
            self._fs.rename(self._config.backup_path, self._config.exec_name)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("rollback_failed path=%s cause=%s error=%s", self._config.exec_name, cause, exc)
            raise RollbackError(cause, exc) from cause
        _LOGGER.warning("rollback_ok path=%s cause=%s", self._config.exec_name, cause)
