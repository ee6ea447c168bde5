class HandoffError(Exception):
    """Base class for all errors raised by the handoff package."""

    prefix = "handoff error"

    def __init__(self, msg: str) -> None:
        super().__init__(msg)
        self._msg = f"{self.prefix}: {msg}"

    def __str__(self) -> str:
        return self._msg


class EnvironmentMalformedError(HandoffError):
    """A required handoff field is missing from the environment or can't be parsed."""

    prefix = "handoff environment error"


class UnsupportedListenerError(HandoffError):
    """The socket is neither a stream (TCP) nor a unix-domain listener."""

    prefix = "unsupported listener"


class ListenerMismatchError(HandoffError):
    """The inherited descriptor does not describe the listener recorded by the predecessor."""

    prefix = "inherited listener mismatch"


class ExecutableResolutionError(HandoffError):
    prefix = "executable resolution failed"


class ProcessStartError(HandoffError):
    prefix = "process start failed"


class HandshakeTimeoutError(HandoffError):
    prefix = "handshake timeout"

    def __init__(self, msg: str, successor_pid: int) -> None:
        super().__init__(msg)
        self.successor_pid = successor_pid


class SelfReexecError(HandoffError):
    """
    Raised when an in-place re-exec is requested by a process that is itself a spawned successor.

    Letting such a process exec would make it look like a fresh top-level server which would
    spawn again, and again.
    """

    prefix = "re-exec refused"
