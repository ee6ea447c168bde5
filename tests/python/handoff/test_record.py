import signal

import pytest

from handoff.errors import EnvironmentMalformedError
from handoff.record import HandoffRecord


def test_environ_round_trip():
    record = HandoffRecord(fd=5, name="tcp:127.0.0.1:48879->", predecessor_pid=100, handshake_signal=signal.SIGUSR2)
    env = record.to_environ()

    assert env == {
        "HANDOFF_FD": "5",
        "HANDOFF_NAME": "tcp:127.0.0.1:48879->",
        "HANDOFF_PID": "",
        "HANDOFF_PPID": "100",
        "HANDOFF_SIGNAL": str(int(signal.SIGUSR2)),
    }
    assert HandoffRecord.from_environ(env) == record


def test_with_successor_returns_new_record():
    record = HandoffRecord(fd=3, name="unix:/tmp/s->", predecessor_pid=10)
    updated = record.with_successor(11)

    assert record.successor_pid is None
    assert updated.successor_pid == 11
    assert updated.fd == record.fd and updated.name == record.name


def test_child_environ_replaces_all_fields():
    stale = {"HANDOFF_PID": "999", "HANDOFF_FD": "42", "PATH": "/bin"}
    env = HandoffRecord(fd=3, name="tcp:[::1]:80->", predecessor_pid=7).child_environ(stale)

    assert env["PATH"] == "/bin"
    assert env["HANDOFF_FD"] == "3"
    assert env["HANDOFF_PID"] == ""


@pytest.mark.parametrize("value", [None, "", "nonsense", "99999"])
def test_handshake_signal_defaults_to_graceful_exit(value):
    env = {"HANDOFF_FD": "3", "HANDOFF_NAME": "tcp:127.0.0.1:1->", "HANDOFF_PPID": "1"}
    if value is not None:
        env["HANDOFF_SIGNAL"] = value

    assert HandoffRecord.from_environ(env).handshake_signal == signal.SIGQUIT


@pytest.mark.parametrize(
    "env",
    [
        {},
        {"HANDOFF_FD": "three", "HANDOFF_NAME": "tcp:127.0.0.1:1->"},
        {"HANDOFF_FD": "-1", "HANDOFF_NAME": "tcp:127.0.0.1:1->"},
        {"HANDOFF_FD": "3"},
        {"HANDOFF_FD": "3", "HANDOFF_NAME": "127.0.0.1:1"},
        {"HANDOFF_FD": "3", "HANDOFF_NAME": "tcp:127.0.0.1:1->", "HANDOFF_PPID": "abc"},
        {"HANDOFF_FD": "3", "HANDOFF_NAME": "tcp:127.0.0.1:1->", "HANDOFF_PID": "0"},
    ],
)
def test_malformed_environment(env):
    with pytest.raises(EnvironmentMalformedError):
        HandoffRecord.from_environ(env)


def test_present():
    assert HandoffRecord.present({"HANDOFF_FD": "3"})
    assert not HandoffRecord.present({"HANDOFF_FD": ""})
    assert not HandoffRecord.present({})
