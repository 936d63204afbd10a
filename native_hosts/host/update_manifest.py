"""Update manifest decoding and download selection.

The manifest follows the Chrome extension autoupdate format (borrowed from
Omaha), extended with an optional ``os`` attribute so a single document can
advertise one binary per platform::

    <?xml version='1.0' encoding='UTF-8'?>
    <gupdate xmlns='http://www.google.com/update2/response' protocol='2.0'>
      <app appid='tld.domain.sub.app.name'>
        <updatecheck codebase='https://sub.domain.tld/app.download.linux' os='linux' version='1.0.0' />
        <updatecheck codebase='https://sub.domain.tld/app.download.exe' os='windows' version='1.0.0' />
      </app>
    </gupdate>

Documents without ``os`` attributes describe a single cross-platform binary:
the first ``updatecheck`` is used for every platform.
"""

from __future__ import annotations

import sys
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field

UPDATE_NAMESPACE = "http://www.google.com/update2/response"
_ROOT_TAG = "gupdate"


class ManifestDecodeError(ValueError):
    pass


def host_platform(platform: str | None = None) -> str:
    """Platform identifier used by the manifest ``os`` attribute."""
    raw = platform or sys.platform
    if raw.startswith("win"):
        return "windows"
    if raw.startswith("linux"):
        return "linux"
    if raw.startswith("freebsd"):
        return "freebsd"
    return raw


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


@dataclass(frozen=True, slots=True)
class UpdateRecord:
    os: str = ""
    url: str = ""
    version: str = ""


@dataclass(frozen=True, slots=True)
class App:
    app_id: str = ""
    updates: list[UpdateRecord] = field(default_factory=list)

    def get_url_and_version(self, platform: str | None = None) -> tuple[str, str]:
        target = host_platform(platform)
        url = version = ""
        for update in self.updates:
            if update.os == target:
                url, version = update.url, update.version
                break
        if (not url or not version) and self.updates:
            first = self.updates[0]
            url, version = first.url, first.version
        return url, version


@dataclass(frozen=True, slots=True)
class UpdateCheckResponse:
    apps: list[App] = field(default_factory=list)

    def get_url_and_version(self, app_name: str, platform: str | None = None) -> tuple[str, str]:
        """Download URL and version advertised for ``app_name``, or ``("", "")`` if absent."""
        for app in self.apps:
            if app.app_id == app_name:
                return app.get_url_and_version(platform)
        return "", ""


def decode_manifest(data: bytes | str) -> UpdateCheckResponse:
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise ManifestDecodeError(f"malformed update manifest: {exc}") from exc

    if _local_name(root.tag) != _ROOT_TAG:
        raise ManifestDecodeError(f"unexpected root element: {_local_name(root.tag)!r}")

    apps: list[App] = []
    for app_el in root:
        if _local_name(app_el.tag) != "app":
            continue
        updates = [
            UpdateRecord(
                os=el.get("os", ""),
                url=el.get("codebase", ""),
                version=el.get("version", ""),
            )
            for el in app_el
            if _local_name(el.tag) == "updatecheck"
        ]
        apps.append(App(app_id=app_el.get("appid", ""), updates=updates))
    return UpdateCheckResponse(apps=apps)
