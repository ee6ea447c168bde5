from __future__ import annotations

import errno
import os
import signal
import socket
from abc import ABC, abstractmethod
from pathlib import Path
from typing import ClassVar, Optional, Union

from handoff.constants import GRACEFUL_EXIT_SIGNAL
from handoff.errors import ListenerMismatchError, UnsupportedListenerError
from handoff.logging import get_logger
from handoff.record import HandoffRecord

logger = get_logger(__name__)

_STREAM_FAMILIES = (socket.AF_INET, socket.AF_INET6)


def _is_listening(sock: socket.socket) -> bool:
    so_acceptconn = getattr(socket, "SO_ACCEPTCONN", None)
    if so_acceptconn is None:
        # can't tell on this platform, trust the caller
        return True
    return bool(sock.getsockopt(socket.SOL_SOCKET, so_acceptconn))


class Listener(ABC):
    """
    A bound, listening socket that can be handed over to a successor process.

    There are exactly two kinds, StreamListener (TCP over IPv4/IPv6) and UnixListener
    (unix-domain stream socket). Use Listener.from_socket() to wrap an existing socket.
    """

    network: ClassVar[str]

    def __init__(self, sock: socket.socket) -> None:
        self._socket = sock

    @property
    def socket(self) -> socket.socket:
        return self._socket

    def fileno(self) -> int:
        return self._socket.fileno()

    @property
    @abstractmethod
    def address(self) -> str: ...

    @property
    def name(self) -> str:
        return f"{self.network}:{self.address}->"

    def dup_socket(self) -> socket.socket:
        """
        A new socket object over a duplicate of the descriptor.

        Servers which close their listening socket on shutdown should get a duplicate, so that the
        original descriptor stays open for the handoff.
        """
        return self._socket.dup()

    def close(self) -> None:
        self._socket.close()

    @property
    def closed(self) -> bool:
        return self._socket.fileno() == -1

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, fd={self._socket.fileno()})"

    @staticmethod
    def from_socket(sock: socket.socket) -> Listener:
        if sock.type != socket.SOCK_STREAM:
            msg = f"socket type {sock.type!r} is not SOCK_STREAM"
            raise UnsupportedListenerError(msg)

        listener: Listener
        if sock.family in _STREAM_FAMILIES:
            listener = StreamListener(sock)
        elif sock.family == socket.AF_UNIX:
            listener = UnixListener(sock)
        else:
            msg = f"socket family {sock.family!r} is neither AF_INET, AF_INET6 nor AF_UNIX"
            raise UnsupportedListenerError(msg)

        if not _is_listening(sock):
            msg = f"socket {listener.name} is not listening"
            raise UnsupportedListenerError(msg)
        return listener


class StreamListener(Listener):
    network = "tcp"

    @property
    def address(self) -> str:
        sockname = self._socket.getsockname()
        host, port = sockname[0], sockname[1]
        if self._socket.family == socket.AF_INET6:
            return f"[{host}]:{port}"
        return f"{host}:{port}"


class UnixListener(Listener):
    network = "unix"

    @property
    def address(self) -> str:
        sockname: Union[str, bytes] = self._socket.getsockname()
        if isinstance(sockname, bytes):
            # abstract namespace
            return "@" + sockname.lstrip(b"\0").decode("utf-8", errors="replace")
        return sockname


def bind_tcp(host: str, port: int, backlog: int = 128) -> StreamListener:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.create_server((host, port), family=family, backlog=backlog)
    listener = StreamListener(sock)
    logger.info("Listening on %s", listener.name)
    return listener


def bind_unix(path: Union[str, Path], backlog: int = 128) -> UnixListener:
    path = Path(path)
    if path.is_socket():
        logger.debug("Removing stale socket file '%s'", path)
        path.unlink()

    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.bind(str(path))
        sock.listen(backlog)
    except OSError:
        sock.close()
        raise
    listener = UnixListener(sock)
    logger.info("Listening on %s", listener.name)
    return listener


def encode(
    listener: Union[Listener, socket.socket],
    predecessor_pid: Optional[int] = None,
    handshake_signal: signal.Signals = GRACEFUL_EXIT_SIGNAL,
    successor_pid: Optional[int] = None,
) -> HandoffRecord:
    """
    Describe the listener for a process which is about to be spawned.

    The descriptor is made inheritable, so this should be called right before spawning.
    Nothing is written to the environment of the current process, the record is handed to the
    spawner which puts it into the child's environment.
    """

    if not isinstance(listener, Listener):
        listener = Listener.from_socket(listener)

    fd = listener.fileno()
    if fd < 0:
        msg = "the listener is closed"
        raise UnsupportedListenerError(msg)

    os.set_inheritable(fd, True)
    return HandoffRecord(
        fd=fd,
        name=listener.name,
        predecessor_pid=predecessor_pid,
        successor_pid=successor_pid,
        handshake_signal=handshake_signal,
    )


def decode(record: HandoffRecord) -> Listener:
    """
    Adopt the listener described by the record.

    The returned listener owns the descriptor. Anything that doesn't match the record is closed
    and reported as ListenerMismatchError.
    """

    try:
        sock = socket.socket(fileno=record.fd)
    except OSError as e:
        # the descriptor is ours even when it is not a socket
        try:
            os.close(record.fd)
        except OSError as ce:
            if ce.errno != errno.EBADF:
                raise
        msg = f"descriptor {record.fd} ({record.name}) is not a usable socket: {e}"
        raise ListenerMismatchError(msg) from e

    try:
        listener = Listener.from_socket(sock)
    except UnsupportedListenerError as e:
        sock.close()
        msg = f"descriptor {record.fd} was expected to be {record.name}: {e}"
        raise ListenerMismatchError(msg) from e

    if listener.name != record.name:
        actual = listener.name
        listener.close()
        msg = f"descriptor {record.fd} is {actual}, expected {record.name}"
        raise ListenerMismatchError(msg)

    # keep it away from unrelated children, encode() makes it inheritable for the next handoff
    os.set_inheritable(record.fd, False)
    logger.info("Inherited %r from process %s", listener, record.predecessor_pid)
    return listener


def is_closing_error(exc: BaseException) -> bool:
    """
    Tell an accept() failure caused by an intentionally closed listener from a genuine fault.

    Accept loops can use this to exit quietly during a graceful shutdown.
    """

    if not isinstance(exc, OSError):
        return False
    return exc.errno in (errno.EBADF, errno.EINVAL, errno.ENOTSOCK)
