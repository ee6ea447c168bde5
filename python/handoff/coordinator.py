from __future__ import annotations

import asyncio
import inspect
import signal
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Optional, Sequence, Tuple, Union

from handoff.errors import HandshakeTimeoutError, ProcessStartError
from handoff.listener import Listener
from handoff.logging import get_logger
from handoff.signals import DEFAULT_SIGNALS, SignalSet, parse_signal
from handoff.spawn import Successor, fork_exec
from handoff.strategy import Strategy
from handoff.utils.compat import asyncio as asyncio_compat

logger = get_logger(__name__)

Hook = Callable[[Listener], Union[None, Awaitable[None]]]
Spawner = Callable[[Listener, Strategy, SignalSet, Optional[Sequence[str]]], Awaitable[Successor]]


class State(Enum):
    IDLE = auto()
    AWAITING_SUCCESSOR = auto()
    DONE = auto()


class Action(Enum):
    RELOAD = auto()
    REOPEN_LOGS = auto()
    SPAWN = auto()
    RETURN = auto()
    IGNORE = auto()


def transition(state: State, sig: signal.Signals, signals: SignalSet = DEFAULT_SIGNALS) -> Tuple[State, Action]:
    """
    The restart state machine, free of any side effects.

    Returns the next state and what the loop has to do about the signal. A failing SPAWN moves the
    loop to DONE, that is up to the caller.
    """

    if state is State.DONE:
        return state, Action.IGNORE
    if sig == signals.reload:
        return state, Action.RELOAD
    if sig == signals.reopen_logs:
        return state, Action.REOPEN_LOGS
    if sig in signals.terminal():
        return State.DONE, Action.RETURN
    if sig == signals.restart:
        if state is State.IDLE:
            return State.AWAITING_SUCCESSOR, Action.SPAWN
        # the successor reporting in (double strategy), or we were told to hand off once more
        return State.DONE, Action.RETURN
    return state, Action.IGNORE


@dataclass
class RestartSession:
    successor: Successor
    deadline: Optional[float] = None
    completed: bool = False
    exit_watch: "Optional[asyncio.Future[int]]" = None

    def discard(self) -> None:
        if self.exit_watch is not None and not self.exit_watch.done():
            self.exit_watch.cancel()


class Coordinator:
    """
    Waits for signals and decides when to restart.

    Signals are queued and processed one at a time, hooks run inside the loop and delay any
    further signal until they return. The coordinator must be created with a running event loop.

    With a timeout, a spawned successor has that many seconds to send its handshake signal.
    If it doesn't, it is killed and HandshakeTimeoutError is raised, the caller keeps serving.
    A successor exiting before its handshake raises ProcessStartError, with or without a timeout.
    """

    # pylint: disable=too-many-instance-attributes

    def __init__(
        self,
        listener: Listener,
        strategy: Strategy = Strategy.SINGLE,
        signals: SignalSet = DEFAULT_SIGNALS,
        on_reload: Optional[Hook] = None,
        on_reopen_logs: Optional[Hook] = None,
        timeout: Optional[float] = None,
        argv: Optional[Sequence[str]] = None,
        spawner: Spawner = fork_exec,
    ) -> None:
        self.listener = listener
        self.strategy = strategy
        self.signals = signals
        self.on_reload = on_reload
        self.on_reopen_logs = on_reopen_logs
        self.timeout = timeout
        self._argv = argv
        self._spawner = spawner

        self._queue: "asyncio.Queue[signal.Signals]" = asyncio.Queue()
        self._state = State.IDLE
        self.session: Optional[RestartSession] = None

    @property
    def state(self) -> State:
        return self._state

    def feed(self, sig: Union[int, str, signal.Signals]) -> None:
        """Queue a signal as if it was delivered by the OS."""
        self._queue.put_nowait(parse_signal(sig))

    def bind_signal_handlers(self) -> None:
        for sig in self.signals.handled():
            asyncio_compat.add_signal_handler(sig, self.feed, sig)

    def unbind_signal_handlers(self) -> None:
        for sig in self.signals.handled():
            asyncio_compat.remove_signal_handler(sig)

    async def _run_hook(self, what: str, hook: Optional[Hook]) -> None:
        if hook is None:
            logger.debug("No %s hook registered", what)
            return
        try:
            res: Any = hook(self.listener)
            if inspect.isawaitable(res):
                await res
        except Exception:
            logger.exception("The %s hook failed, continuing", what)

    async def _spawn(self) -> RestartSession:
        successor = await self._spawner(self.listener, self.strategy, self.signals, self._argv)
        session = RestartSession(successor, exit_watch=asyncio.ensure_future(successor.process.wait()))
        if self.timeout is not None:
            session.deadline = asyncio.get_running_loop().time() + self.timeout
        return session

    async def _kill_successor(self, session: RestartSession) -> None:
        process = session.successor.process
        logger.warning("Killing successor %d which did not confirm the handoff", process.pid)
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()

    async def _next_signal(self) -> signal.Signals:
        session = self.session
        if self._state is not State.AWAITING_SUCCESSOR or session is None:
            return await self._queue.get()

        assert session.exit_watch is not None
        remaining = None
        if session.deadline is not None:
            remaining = max(session.deadline - asyncio.get_running_loop().time(), 0)
        getter = asyncio.ensure_future(self._queue.get())
        done, _ = await asyncio.wait(
            {getter, session.exit_watch}, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
        )
        if getter in done:
            return getter.result()
        getter.cancel()

        pid = session.successor.pid
        self._state = State.DONE
        if session.exit_watch in done:
            code = session.exit_watch.result()
            msg = f"successor {pid} exited with code {code} before confirming the handoff"
            raise ProcessStartError(msg)

        await self._kill_successor(session)
        session.discard()
        msg = f"successor {pid} did not confirm the handoff within {self.timeout} seconds"
        raise HandshakeTimeoutError(msg, pid)

    async def wait(self) -> signal.Signals:
        """
        Process signals until one of them ends the loop, and return that signal.

        Spawn failures, handshake timeouts and a successor dying before the handshake are raised.
        Every call starts a new cycle in the IDLE state.
        """

        self._state = State.IDLE
        if self.session is not None:
            self.session.discard()
        self.session = None

        logger.debug("Waiting for signals, %s strategy", self.strategy.value)
        while True:
            sig = await self._next_signal()
            state, action = transition(self._state, sig, self.signals)
            logger.debug("%s in %s: %s", sig.name, self._state.name, action.name)

            if action is Action.RELOAD:
                logger.info("Received %s, reloading", sig.name)
                await self._run_hook("reload", self.on_reload)
            elif action is Action.REOPEN_LOGS:
                logger.info("Received %s, reopening logs", sig.name)
                await self._run_hook("reopen-logs", self.on_reopen_logs)
            elif action is Action.SPAWN:
                logger.notice("Received %s, spawning a successor", sig.name)
                try:
                    self.session = await self._spawn()
                except BaseException:
                    self._state = State.DONE
                    raise
            elif action is Action.RETURN:
                if self.session is not None:
                    self.session.completed = sig == self.strategy.handshake_signal(self.signals)
                    self.session.discard()
                    if self.session.completed:
                        logger.notice("Successor %d confirmed the handoff", self.session.successor.pid)
                logger.info("Received %s, leaving the signal loop", sig.name)
                self._state = state
                return sig
            else:
                logger.debug("Ignoring %s", sig.name)

            self._state = state


async def wait(listener: Listener, **kwargs: Any) -> signal.Signals:
    """Bind the signal handlers, wait for a terminal signal and unbind them again."""

    coordinator = Coordinator(listener, **kwargs)
    coordinator.bind_signal_handlers()
    try:
        return await coordinator.wait()
    finally:
        coordinator.unbind_signal_handlers()
