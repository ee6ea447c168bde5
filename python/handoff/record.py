from __future__ import annotations

import os
import signal
from dataclasses import dataclass, replace
from typing import Dict, Mapping, Optional

from handoff.constants import (
    ENV_FD,
    ENV_NAME,
    ENV_PREDECESSOR_PID,
    ENV_SIGNAL,
    ENV_SUCCESSOR_PID,
    GRACEFUL_EXIT_SIGNAL,
)
from handoff.errors import EnvironmentMalformedError
from handoff.utils import parse_int_optional


def _parse_signal_or_default(value: Optional[str]) -> signal.Signals:
    num = parse_int_optional(value)
    if num is None:
        return GRACEFUL_EXIT_SIGNAL
    try:
        return signal.Signals(num)
    except ValueError:
        return GRACEFUL_EXIT_SIGNAL


def _parse_pid(environ: Mapping[str, str], key: str) -> Optional[int]:
    raw = environ.get(key)
    if raw is None or raw.strip() == "":
        return None
    pid = parse_int_optional(raw)
    if pid is None or pid <= 0:
        msg = f"${key} holds '{raw}', expected a process ID"
        raise EnvironmentMalformedError(msg)
    return pid


@dataclass(frozen=True)
class HandoffRecord:
    """
    Everything a successor needs to adopt its predecessor's listener.

    The record is built once when spawning and passed to the child through its environment.
    It is parsed once in the child and never modified afterwards, use with_successor() to get
    an updated copy.
    """

    fd: int
    name: str
    predecessor_pid: Optional[int] = None
    successor_pid: Optional[int] = None
    handshake_signal: signal.Signals = GRACEFUL_EXIT_SIGNAL

    def with_successor(self, pid: int) -> HandoffRecord:
        return replace(self, successor_pid=pid)

    def to_environ(self) -> Dict[str, str]:
        return {
            ENV_FD: str(self.fd),
            ENV_NAME: self.name,
            ENV_SUCCESSOR_PID: "" if self.successor_pid is None else str(self.successor_pid),
            ENV_PREDECESSOR_PID: "" if self.predecessor_pid is None else str(self.predecessor_pid),
            ENV_SIGNAL: str(int(self.handshake_signal)),
        }

    def child_environ(self, base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Current (or given) environment with all handoff fields replaced by this record's."""

        env = dict(os.environ if base is None else base)
        env.update(self.to_environ())
        return env

    @staticmethod
    def present(environ: Optional[Mapping[str, str]] = None) -> bool:
        """Whether the process was started by a predecessor handing over its listener."""

        environ = os.environ if environ is None else environ
        return bool(environ.get(ENV_FD, "").strip())

    @staticmethod
    def from_environ(environ: Optional[Mapping[str, str]] = None) -> HandoffRecord:
        environ = os.environ if environ is None else environ

        raw_fd = environ.get(ENV_FD)
        if raw_fd is None:
            msg = f"${ENV_FD} is not set"
            raise EnvironmentMalformedError(msg)
        fd = parse_int_optional(raw_fd)
        if fd is None or fd < 0:
            msg = f"${ENV_FD} holds '{raw_fd}', expected a file descriptor number"
            raise EnvironmentMalformedError(msg)

        name = environ.get(ENV_NAME, "")
        if not name.endswith("->") or ":" not in name:
            msg = f"${ENV_NAME} holds '{name}', expected '<network>:<address>->'"
            raise EnvironmentMalformedError(msg)

        return HandoffRecord(
            fd=fd,
            name=name,
            predecessor_pid=_parse_pid(environ, ENV_PREDECESSOR_PID),
            successor_pid=_parse_pid(environ, ENV_SUCCESSOR_PID),
            handshake_signal=_parse_signal_or_default(environ.get(ENV_SIGNAL)),
        )
