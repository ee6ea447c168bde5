import os
import socket
from pathlib import Path

import pytest

from handoff.utils import custom_atexit, parse_int_optional
from handoff.utils.async_utils import reap_child
from handoff.utils.pidfile import read_pidfile, write_pidfile
from handoff.utils.systemd_notify import systemd_notify
from handoff.utils.which import which


@pytest.mark.parametrize("value,expected", [("42", 42), (" 7\n", 7), ("", None), (None, None), ("x", None)])
def test_parse_int_optional(value, expected):
    assert parse_int_optional(value) == expected


def test_which():
    assert which("sh").is_absolute()
    with pytest.raises(RuntimeError):
        which("handoff-surely-not-installed")


def test_custom_atexit_order():
    calls = []
    custom_atexit.register(lambda: calls.append(1))
    custom_atexit.register(lambda: calls.append(2))
    custom_atexit.run_callbacks()
    custom_atexit.run_callbacks()

    assert calls == [2, 1]


def test_pidfile(tmp_path: Path):
    path = tmp_path / "handoff.pid"
    assert read_pidfile(path) is None

    path.write_text("1\n")
    write_pidfile(path)
    assert read_pidfile(path) == os.getpid()
    assert [p.name for p in tmp_path.iterdir()] == ["handoff.pid"]

    custom_atexit.run_callbacks()
    assert not path.exists()


def test_pidfile_taken_over(tmp_path: Path):
    path = tmp_path / "handoff.pid"
    write_pidfile(path)
    # a successor replaced the file
    path.write_text("1\n")

    custom_atexit.run_callbacks()
    assert read_pidfile(path) == 1


def test_systemd_notify_without_socket(monkeypatch):
    monkeypatch.delenv("NOTIFY_SOCKET", raising=False)
    assert not systemd_notify(READY="1")


def test_systemd_notify(monkeypatch, tmp_path: Path):
    path = tmp_path / "notify.sock"
    with socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM) as sock:
        sock.bind(str(path))
        monkeypatch.setenv("NOTIFY_SOCKET", str(path))

        assert systemd_notify(READY="1", MAINPID=str(os.getpid()))
        assert sock.recv(4096).decode() == f"READY=1\nMAINPID={os.getpid()}"


def test_systemd_notify_unreachable(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("NOTIFY_SOCKET", str(tmp_path / "nobody.sock"))
    assert not systemd_notify(STOPPING="1")


@pytest.mark.asyncio
async def test_reap_child(python):
    pid = os.spawnv(os.P_NOWAIT, python, [python, "-c", "raise SystemExit(5)"])

    status = await reap_child(pid)
    assert status is not None
    assert os.WEXITSTATUS(status) == 5
    # already reaped
    assert await reap_child(pid) is None
