from .config import LoggingConfig, RestartConfig, load_config
from .constants import VERSION
from .coordinator import Action, Coordinator, RestartSession, State, transition, wait
from .errors import (
    EnvironmentMalformedError,
    ExecutableResolutionError,
    HandoffError,
    HandshakeTimeoutError,
    ListenerMismatchError,
    ProcessStartError,
    SelfReexecError,
    UnsupportedListenerError,
)
from .kill import kill
from .listener import Listener, StreamListener, UnixListener, bind_tcp, bind_unix, decode, encode, is_closing_error
from .record import HandoffRecord
from .signals import SignalSet
from .spawn import ExecRequest, Successor, exec_in_place, fork_exec, prepare_exec
from .strategy import Strategy

__version__ = VERSION

__all__ = [
    "Action",
    "Coordinator",
    "EnvironmentMalformedError",
    "ExecRequest",
    "ExecutableResolutionError",
    "HandoffError",
    "HandoffRecord",
    "HandshakeTimeoutError",
    "Listener",
    "ListenerMismatchError",
    "LoggingConfig",
    "ProcessStartError",
    "RestartConfig",
    "RestartSession",
    "SelfReexecError",
    "SignalSet",
    "State",
    "Strategy",
    "StreamListener",
    "Successor",
    "UnixListener",
    "UnsupportedListenerError",
    "bind_tcp",
    "bind_unix",
    "decode",
    "encode",
    "exec_in_place",
    "fork_exec",
    "is_closing_error",
    "kill",
    "load_config",
    "prepare_exec",
    "transition",
    "wait",
]
