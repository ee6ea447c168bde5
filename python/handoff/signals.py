import signal
from dataclasses import dataclass
from typing import FrozenSet, Union

from handoff.constants import GRACEFUL_EXIT_SIGNAL


def parse_signal(value: Union[str, int, signal.Signals]) -> signal.Signals:
    """
    Turn 'SIGHUP', 'hup', '1' or 1 into signal.SIGHUP.

    Raises ValueError for anything that is not a valid signal on this platform.
    """

    if isinstance(value, signal.Signals):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return signal.Signals(value)
    if isinstance(value, str):
        text = value.strip().upper()
        if text.isdigit():
            return signal.Signals(int(text))
        if not text.startswith("SIG"):
            text = f"SIG{text}"
        try:
            return signal.Signals[text]
        except KeyError:
            pass
    msg = f"'{value}' is not a valid signal"
    raise ValueError(msg)


@dataclass(frozen=True)
class SignalSet:
    """
    Signals the coordinator listens to.

    ---
    reload: Reload configuration, the loop keeps running.
    interrupt: Stop right away.
    quit: Graceful exit, also the handshake a successor sends with the single strategy.
    terminate: Stop right away.
    reopen_logs: Reopen log files, the loop keeps running.
    restart: Spawn a successor. Received a second time, it is the successor's handshake (double strategy).
    """

    reload: signal.Signals = signal.SIGHUP
    interrupt: signal.Signals = signal.SIGINT
    quit: signal.Signals = GRACEFUL_EXIT_SIGNAL
    terminate: signal.Signals = signal.SIGTERM
    reopen_logs: signal.Signals = signal.SIGUSR1
    restart: signal.Signals = signal.SIGUSR2

    def __post_init__(self) -> None:
        values = [self.reload, self.interrupt, self.quit, self.terminate, self.reopen_logs, self.restart]
        if len(set(values)) != len(values):
            msg = f"signals must be distinct, got {', '.join(s.name for s in values)}"
            raise ValueError(msg)

    def handled(self) -> FrozenSet[signal.Signals]:
        return frozenset((self.reload, self.interrupt, self.quit, self.terminate, self.reopen_logs, self.restart))

    def terminal(self) -> FrozenSet[signal.Signals]:
        return frozenset((self.interrupt, self.quit, self.terminate))


DEFAULT_SIGNALS = SignalSet()
