import signal
from enum import Enum

from handoff.signals import DEFAULT_SIGNALS, SignalSet


class Strategy(Enum):
    """
    How predecessor and successor agree that the predecessor may stop.

    SINGLE: the successor sends the graceful-exit signal to its predecessor, which drains and exits.
    At most two processes exist during a restart, the successor gets a new PID.

    DOUBLE: the successor sends the restart signal back to its predecessor as a "ready" message.
    The predecessor drains and re-execs itself in place, the new image then sends the graceful-exit
    signal to the interim successor and reaps it. The PID seen by a supervisor never changes.
    """

    SINGLE = "single"
    DOUBLE = "double"

    def handshake_signal(self, signals: SignalSet = DEFAULT_SIGNALS) -> signal.Signals:
        if self is Strategy.DOUBLE:
            return signals.restart
        return signals.quit

    @staticmethod
    def from_string(value: str) -> "Strategy":
        try:
            return Strategy(value.strip().lower())
        except ValueError as e:
            msg = f"unknown restart strategy '{value}', expected one of: {', '.join(s.value for s in Strategy)}"
            raise ValueError(msg) from e
