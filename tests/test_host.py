from __future__ import annotations

import io
import struct
from pathlib import Path

import pytest


class _Process:
    def __init__(self) -> None:
        self.exits: list[int] = []

    def exit(self, code: int = 0) -> None:
        self.exits.append(code)


class _Checker:
    def __init__(self, process: _Process) -> None:
        self.process = process
        self.calls = 0
        self.exits_seen: list[int] = []

    def auto_update_check(self) -> None:
        self.calls += 1
        self.exits_seen = list(self.process.exits)


def _frame(body: bytes) -> bytes:
    return struct.pack("<I", len(body)) + body


def _host(tmp_path: Path):  # noqa: ANN202
    from native_hosts.host.config import HostConfig
    from native_hosts.host.host import Host

    process = _Process()
    checker = _Checker(process)
    config = HostConfig.create(app_name="tld.domain.sub.app.name", exec_name=tmp_path / "host")
    host = Host(config, process=process, checker=checker)  # type: ignore[arg-type]
    return host, process, checker


def test_on_message_returns_decoded_message(tmp_path: Path) -> None:
    host, process, checker = _host(tmp_path)

    assert host.on_message(io.BytesIO(_frame(b'{"key":"value"}'))) == {"key": "value"}
    assert process.exits == []
    assert checker.calls == 0


def test_on_message_end_of_input_checks_then_exits(tmp_path: Path) -> None:
    host, process, checker = _host(tmp_path)

    assert host.on_message(io.BytesIO(b"")) is None
    assert checker.calls == 1
    # The check ran before the exit was requested.
    assert checker.exits_seen == []
    assert process.exits == [0]


def test_on_message_empty_frame_does_not_exit(tmp_path: Path) -> None:
    host, process, checker = _host(tmp_path)

    assert host.on_message(io.BytesIO(_frame(b""))) is None
    assert process.exits == []
    assert checker.calls == 0


def test_post_message_frames_json(tmp_path: Path) -> None:
    host, _process, _checker = _host(tmp_path)
    out = io.BytesIO()

    host.post_message(out, {"key": "value"})

    assert out.getvalue() == b'\x0f\x00\x00\x00{"key":"value"}'


def test_run_answers_in_order_and_skips_bad_frames(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    from native_hosts.host.transport import MessageChannel

    host, process, checker = _host(tmp_path)
    reader = io.BytesIO(
        _frame(b'{"n":1}') + _frame(b"") + _frame(b'{"n":') + _frame(b'{"n":2}') + _frame(b'"quiet"')
    )
    out = io.BytesIO()

    def handler(message):  # noqa: ANN001, ANN202
        if message == "quiet":
            return None
        return {"seen": message["n"]}

    host.run(handler, reader, out)

    out.seek(0)
    channel = MessageChannel()
    assert channel.receive(out).message == {"seen": 1}
    assert channel.receive(out).message == {"seen": 2}
    assert channel.receive(out).is_closed
    assert "frame_dropped" in caplog.text
    assert checker.calls == 1
    assert process.exits == [0]


def test_run_stops_on_truncated_stream(tmp_path: Path) -> None:
    from native_hosts.host.transport import FrameError

    host, process, checker = _host(tmp_path)

    with pytest.raises(FrameError):
        host.run(lambda m: m, io.BytesIO(struct.pack("<I", 10) + b"{"), io.BytesIO())
    assert process.exits == []
    assert checker.calls == 0


def test_host_uses_configured_byte_order(tmp_path: Path) -> None:
    from native_hosts.host.config import HostConfig
    from native_hosts.host.host import Host

    process = _Process()
    config = HostConfig.create(exec_name=tmp_path / "host", byte_order="big")
    host = Host(config, process=process, checker=_Checker(process))  # type: ignore[arg-type]
    out = io.BytesIO()

    host.post_message(out, {})

    assert out.getvalue() == b"\x00\x00\x00\x02{}"


def test_system_process_exit_raises_system_exit() -> None:
    from native_hosts.host.ports import SystemProcess

    with pytest.raises(SystemExit) as excinfo:
        SystemProcess().exit(0)
    assert excinfo.value.code == 0


def test_default_checker_without_update_config_never_touches_network(tmp_path: Path) -> None:
    from native_hosts.host.config import HostConfig
    from native_hosts.host.host import Host

    class _NoHttp:
        def get(self, url: str):  # noqa: ANN201
            raise AssertionError(f"unexpected GET {url}")

    process = _Process()
    host = Host(HostConfig.create(exec_name=tmp_path / "host"), http=_NoHttp(), process=process)  # type: ignore[arg-type]

    host.on_message(io.BytesIO(b""))

    assert process.exits == [0]
    assert not (tmp_path / "host.chk").exists()
