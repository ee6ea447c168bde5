from __future__ import annotations

import asyncio
import logging
import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, NoReturn, Optional, Sequence, Tuple

from handoff.constants import ENV_PREDECESSOR_PID
from handoff.errors import EnvironmentMalformedError, ExecutableResolutionError, ProcessStartError, SelfReexecError
from handoff.listener import Listener, encode
from handoff.logging import get_logger
from handoff.record import HandoffRecord
from handoff.signals import DEFAULT_SIGNALS, SignalSet
from handoff.strategy import Strategy
from handoff.utils import custom_atexit as atexit
from handoff.utils import parse_int_optional
from handoff.utils.which import which

logger = get_logger(__name__)


def resolve_executable(program: str) -> Path:
    """
    Absolute path of an existing executable.

    Restarting must fail if the binary has been moved or deleted since we started, instead of
    starting something else or nothing at all.
    """

    try:
        path = which(program)
    except RuntimeError as e:
        raise ExecutableResolutionError(str(e)) from e

    try:
        if not path.is_file():
            msg = f"'{path}' is not a file"
            raise ExecutableResolutionError(msg)
    except OSError as e:
        msg = f"can't access '{path}': {e}"
        raise ExecutableResolutionError(msg) from e

    if not os.access(path, os.X_OK):
        msg = f"'{path}' is not executable"
        raise ExecutableResolutionError(msg)
    return path


def current_argv() -> List[str]:
    # sys.orig_argv (3.10+) keeps interpreter options such as '-m module'
    orig_argv: Optional[List[str]] = getattr(sys, "orig_argv", None)
    if orig_argv:
        return list(orig_argv)
    return [sys.executable, *sys.argv]


def _process_image(argv: Optional[Sequence[str]]) -> Tuple[Path, List[str]]:
    if argv is None:
        program = sys.executable
        args = current_argv()
    else:
        args = list(argv)
        program = args[0] if args else ""

    if not program:
        msg = "the path of the running executable is unknown"
        raise ExecutableResolutionError(msg)
    return resolve_executable(program), args


@dataclass(frozen=True)
class Successor:
    """A freshly spawned successor and the record it was started with (successor PID filled in)."""

    process: asyncio.subprocess.Process
    record: HandoffRecord

    @property
    def pid(self) -> int:
        return self.process.pid


async def fork_exec(
    listener: Listener,
    strategy: Strategy = Strategy.SINGLE,
    signals: SignalSet = DEFAULT_SIGNALS,
    argv: Optional[Sequence[str]] = None,
) -> Successor:
    """
    Start a new copy of the running program which inherits the listener.

    The child gets stdin, stdout, stderr and the listener's descriptor, nothing else. Any failure
    leaves the calling process untouched and still serving.
    """

    executable, args = _process_image(argv)
    try:
        cwd = os.getcwd()
    except OSError as e:
        msg = f"can't determine the working directory: {e}"
        raise ProcessStartError(msg) from e

    record = encode(
        listener,
        predecessor_pid=os.getpid(),
        handshake_signal=strategy.handshake_signal(signals),
    )

    logger.debug("Spawning '%s' with %s", executable, record)
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            executable=str(executable),
            cwd=cwd,
            env=record.child_environ(),
            pass_fds=(record.fd,),
            close_fds=True,
        )
    except (OSError, subprocess.SubprocessError) as e:
        msg = f"failed to spawn '{executable}': {e}"
        raise ProcessStartError(msg) from e

    logger.notice("Spawned successor process %d", process.pid)
    return Successor(process, record.with_successor(process.pid))


def recorded_predecessor(environ: Optional[Mapping[str, str]] = None) -> Optional[int]:
    environ = os.environ if environ is None else environ
    raw = environ.get(ENV_PREDECESSOR_PID, "")
    if raw.strip() == "":
        return None
    pid = parse_int_optional(raw)
    if pid is None:
        msg = f"${ENV_PREDECESSOR_PID} holds '{raw}', expected a process ID"
        raise EnvironmentMalformedError(msg)
    return pid


@dataclass(frozen=True)
class ExecRequest:
    """
    A prepared in-place re-exec.

    Nothing has happened yet when this is returned. The caller decides when to call execute(),
    which replaces the process image and never returns, except by raising ProcessStartError.
    """

    executable: Path
    argv: List[str]
    env: Dict[str, str]
    record: HandoffRecord

    def execute(self) -> NoReturn:
        logger.notice("Re-executing '%s' in place", self.executable)

        # exec() skips the interpreter's exit handlers
        atexit.run_callbacks()
        logging.shutdown()

        try:
            os.execve(self.executable, self.argv, self.env)
        except OSError as e:
            msg = f"exec of '{self.executable}' failed: {e}"
            raise ProcessStartError(msg) from e


def prepare_exec(
    listener: Listener,
    successor_pid: Optional[int] = None,
    signals: SignalSet = DEFAULT_SIGNALS,
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ExecRequest:
    """
    Prepare replacing the running image with a new one which inherits the listener.

    The new image is told to send the graceful-exit signal, to successor_pid when given (the
    interim child of the double strategy), otherwise to this process' recorded predecessor.

    A process which was spawned as a successor (its parent is the PID recorded as its predecessor)
    is refused with SelfReexecError.
    """

    environ = os.environ if environ is None else environ

    predecessor = recorded_predecessor(environ)
    if predecessor is not None and os.getppid() == predecessor:
        msg = f"process {os.getpid()} is a successor spawned by {predecessor}, it must not re-exec itself"
        raise SelfReexecError(msg)

    executable, args = _process_image(argv)
    record = encode(
        listener,
        predecessor_pid=os.getpid(),
        handshake_signal=signals.quit,
        successor_pid=successor_pid,
    )
    return ExecRequest(executable, args, record.child_environ(environ), record)


def exec_in_place(
    listener: Listener,
    successor_pid: Optional[int] = None,
    signals: SignalSet = DEFAULT_SIGNALS,
    argv: Optional[Sequence[str]] = None,
) -> NoReturn:
    """
    Replace the current process image, keeping the PID and handing the listener to the new image.

    Works with both strategies. The double strategy calls it with the interim successor's PID,
    which the new image then signals and reaps. The record always carries `signals.quit` as the
    handshake signal.
    """

    prepare_exec(listener, successor_pid=successor_pid, signals=signals, argv=argv).execute()
