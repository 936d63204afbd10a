from __future__ import annotations

import logging
import ssl
import time
import urllib.parse
from dataclasses import dataclass, field
from http.client import HTTPException
from typing import Any, BinaryIO, Protocol
from urllib.error import HTTPError, URLError
from urllib.request import HTTPRedirectHandler, HTTPSHandler, Request, build_opener

from .config import HostConfig

_LOGGER = logging.getLogger("native_host.http_client")
_USER_AGENT = "native-messaging-host/1.0"
_READ_CHUNK = 64 * 1024


class HttpClientError(Exception):
    pass


class _SafeRedirectHandler(HTTPRedirectHandler):
    def redirect_request(self, req, fp, code, msg, headers, newurl):  # noqa: ANN001
        # urllib may pass relative URLs here; normalize against the previous URL.
        absolute = urllib.parse.urljoin(req.full_url, str(newurl))
        parsed = urllib.parse.urlparse(absolute)
        if parsed.scheme not in ("http", "https"):
            raise HttpClientError("Only http/https are supported (redirect)")
        return super().redirect_request(req, fp, code, msg, headers, absolute)


class _DeadlineReader:
    """File-like wrapper that fails reads once the overall request deadline has passed.

    Unbounded reads are split into chunks so the deadline is checked between
    socket reads; a single chunk is still bounded by the socket timeout only.
    """

    def __init__(self, raw: Any, deadline: float) -> None:
        self._raw = raw
        self._deadline = deadline

    def read(self, size: int | None = -1) -> bytes:
        if size is not None and size >= 0:
            return self._read_chunk(size)
        buf = bytearray()
        while chunk := self._read_chunk(_READ_CHUNK):
            buf.extend(chunk)
        return bytes(buf)

    def _read_chunk(self, size: int) -> bytes:
        if time.monotonic() > self._deadline:
            raise HttpClientError("request deadline exceeded while reading body")
        try:
            return self._raw.read(size)
        except (TimeoutError, OSError, HTTPException) as exc:
            raise HttpClientError(f"body read failed: {exc}") from exc

    def close(self) -> None:
        self._raw.close()


@dataclass(slots=True)
class HttpResponse:
    status: int
    reason: str
    body: BinaryIO
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == 200

    def read(self) -> bytes:
        return self.body.read()

    def close(self) -> None:
        try:
            self.body.close()
        except Exception:  # noqa: BLE001
            _LOGGER.debug("http_response_close_failed", exc_info=True)

    def __enter__(self) -> HttpResponse:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class HttpGetter(Protocol):
    def get(self, url: str) -> HttpResponse: ...


def _ssl_context(verify: bool) -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    if not verify:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return ctx


class HttpClient:
    """Blocking GET client shared by the manifest fetch and the binary download.

    Every request is bounded by ``connect_timeout`` per socket operation and by
    ``http_timeout`` overall, body streaming included. Non-2xx responses are
    returned as-is; only transport failures raise ``HttpClientError``.
    """

    def __init__(
        self,
        *,
        timeout: float,
        connect_timeout: float | None = None,
        verify_tls: bool = True,
    ) -> None:
        self.timeout = float(timeout)
        self.connect_timeout = float(connect_timeout if connect_timeout is not None else timeout)
        self.verify_tls = bool(verify_tls)
        if not self.verify_tls:
            _LOGGER.warning("tls_verification_disabled")
        self._opener = build_opener(_SafeRedirectHandler(), HTTPSHandler(context=_ssl_context(self.verify_tls)))

    @classmethod
    def from_config(cls, config: HostConfig) -> HttpClient:
        return cls(timeout=config.http_timeout, connect_timeout=config.connect_timeout, verify_tls=config.verify_tls)

    def get(self, url: str) -> HttpResponse:
        parsed = urllib.parse.urlparse(url)
        if parsed.scheme not in ("http", "https"):
            raise HttpClientError(f"Only http/https are supported: {url!r}")
        _LOGGER.info("GET %s", url)
        deadline = time.monotonic() + self.timeout
        req = Request(url, headers={"User-Agent": _USER_AGENT})
        try:
            resp = self._opener.open(req, timeout=min(self.connect_timeout, self.timeout))
        except HTTPError as exc:
            # Error statuses still carry a readable body; hand them back as responses.
            return HttpResponse(
                status=int(exc.code),
                reason=str(exc.reason or ""),
                body=_DeadlineReader(exc, deadline),  # type: ignore[arg-type]
                headers=dict(exc.headers or {}),
            )
        except (TimeoutError, URLError, HTTPException, OSError) as exc:
            _LOGGER.warning("GET %s failed: %s", url, exc)
            raise HttpClientError(str(exc)) from exc
        return HttpResponse(
            status=int(resp.status),
            reason=str(resp.reason or ""),
            body=_DeadlineReader(resp, deadline),  # type: ignore[arg-type]
            headers=dict(resp.headers),
        )
