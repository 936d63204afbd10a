"""Native messaging host: framing, lifecycle and daily self-update.

Receiving::

    host = Host(HostConfig.create(app_name="tld.domain.app"))
    message = host.on_message(sys.stdin.buffer)

Sending::

    host.post_message(sys.stdout.buffer, {"key": "value"})

Auto update (checked at most once a day, when the browser closes stdin)::

    host = Host(
        HostConfig.create(
            app_name="tld.domain.app",
            update_url="https://sub.domain.tld/updates.xml",
            version="1.0.0",
        )
    )
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, BinaryIO

from .config import HostConfig
from .http_client import HttpClient, HttpGetter
from .installer import InstallReport, ManifestInstaller, installer_for
from .ports import FileSystem, OsFileSystem, ProcessControl, SystemProcess
from .transport import FrameDecodeError, FrameKind, MessageChannel
from .update_check import UpdateChecker

_LOGGER = logging.getLogger("native_host.host")

Handler = Callable[[Any], Any]


class Host:
    def __init__(
        self,
        config: HostConfig,
        *,
        http: HttpGetter | None = None,
        fs: FileSystem | None = None,
        process: ProcessControl | None = None,
        channel: MessageChannel | None = None,
        checker: UpdateChecker | None = None,
        installer: ManifestInstaller | None = None,
    ) -> None:
        self.config = config
        self.process = process or SystemProcess()
        self.channel = channel or MessageChannel(config.byte_order, max_frame_bytes=config.max_frame_bytes)
        if checker is None:
            checker = UpdateChecker(
                config,
                http=http or HttpClient.from_config(config),
                fs=fs or OsFileSystem(),
            )
        self.checker = checker
        self._installer = installer

    @property
    def installer(self) -> ManifestInstaller:
        if self._installer is None:
            self._installer = installer_for(self.config, process=self.process)
        return self._installer

    def on_message(self, reader: BinaryIO) -> Any:
        """Read one message; ``None`` for an empty frame.

        When the browser has closed the channel, the update check runs and the
        process ends, whatever the check's outcome.
        """
        result = self.channel.receive(reader)
        if result.kind is FrameKind.CLOSED:
            self.shutdown()
            return None
        return result.message

    def post_message(self, writer: BinaryIO, message: Any) -> None:
        self.channel.send(writer, message)

    def shutdown(self) -> None:
        _LOGGER.info("channel_closed app=%s", self.config.app_name)
        self.checker.auto_update_check()
        self.process.exit(0)

    def run(self, handler: Handler, reader: BinaryIO, writer: BinaryIO) -> None:
        """Serve frames one at a time until the browser closes the channel."""
        while True:
            try:
                result = self.channel.receive(reader)
            except FrameDecodeError as exc:
                _LOGGER.warning("frame_dropped error=%s", exc)
                continue
            if result.kind is FrameKind.CLOSED:
                self.shutdown()
                return
            if result.kind is FrameKind.EMPTY:
                continue
            response = handler(result.message)
            if response is not None:
                self.post_message(writer, response)

    def install(self) -> InstallReport:
        return self.installer.install()

    def uninstall(self) -> InstallReport:
        return self.installer.uninstall()
