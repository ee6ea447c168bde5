from __future__ import annotations

import os
import signal
from pathlib import Path
from time import time
from typing import Callable, Optional, Union

from aiohttp import web
from aiohttp.web_app import Application
from aiohttp.web_response import json_response
from aiohttp.web_runner import AppRunner, SockSite

from handoff.config import RestartConfig
from handoff.constants import DEFAULT_GREETING, DEFAULT_SHUTDOWN_TIMEOUT
from handoff.coordinator import Coordinator
from handoff.errors import HandoffError
from handoff.kill import kill
from handoff.listener import Listener, bind_tcp, bind_unix, decode
from handoff.logging import get_logger, reopen_logging, start_logging
from handoff.record import HandoffRecord
from handoff.spawn import prepare_exec
from handoff.strategy import Strategy
from handoff.utils import custom_atexit as atexit
from handoff.utils.compat import asyncio as asyncio_compat
from handoff.utils.pidfile import write_pidfile
from handoff.utils.systemd_notify import systemd_notify

logger = get_logger(__name__)

ConfigLoader = Callable[[], RestartConfig]


class DemoServer:
    """
    A tiny HTTP server answering a fixed greeting, served from a listener that survives restarts.

    aiohttp closes the socket it serves from when the site stops, so it gets a duplicate of the
    listener's descriptor. The listener itself stays open until the process is really done.
    """

    def __init__(
        self,
        listener: Listener,
        config: RestartConfig,
        loader: Optional[ConfigLoader] = None,
        greeting: str = DEFAULT_GREETING,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
    ) -> None:
        self.listener = listener
        self.config = config
        self.greeting = greeting
        self._loader = loader
        self._started = time()

        self.app = Application()
        self.runner = AppRunner(self.app, handle_signals=False, shutdown_timeout=shutdown_timeout)
        self.site: Optional[SockSite] = None

    async def _handler_index(self, _request: web.Request) -> web.Response:
        return web.Response(text=self.greeting)

    async def _handler_status(self, _request: web.Request) -> web.Response:
        return json_response(
            {
                "pid": os.getpid(),
                "ppid": os.getppid(),
                "listener": self.listener.name,
                "strategy": self.config.strategy.value,
                "uptime": round(time() - self._started, 3),
            }
        )

    def _setup_routes(self) -> None:
        self.app.add_routes(
            [
                web.get("/", self._handler_index),
                web.get("/status", self._handler_status),
            ]
        )

    async def start(self) -> None:
        self._setup_routes()
        await self.runner.setup()
        self.site = SockSite(self.runner, self.listener.dup_socket())
        await self.site.start()
        logger.notice("Serving on %s", self.listener.name)

    async def reload(self, _listener: Listener) -> None:
        systemd_notify(RELOADING="1")
        try:
            if self._loader is None:
                logger.warning("The server was started without a configuration file - nothing to reload")
                return
            config = self._loader()
            if config.strategy is not self.config.strategy or config.signals != self.config.signals:
                logger.warning("Strategy and signals can't change while running, they apply after a restart")
            start_logging("handoff-demo", config.logging.level, config.logging.target)
            self.config = config
            logger.info("Configuration file successfully reloaded")
        finally:
            systemd_notify(READY="1")

    def reopen_logs(self, _listener: Listener) -> None:
        reopen_logging()

    async def shutdown(self) -> None:
        """Stop accepting and wait for in-flight requests, the listener stays open."""

        logger.info("Stopping HTTP service on %s", self.listener.name)
        await self.runner.cleanup()


def _open_listener(listen: Union[str, Path], inherited: Optional[HandoffRecord]) -> Listener:
    if inherited is not None:
        return decode(inherited)
    if isinstance(listen, Path):
        return bind_unix(listen)
    host, _, port = listen.rpartition(":")
    return bind_tcp(host.strip("[]") or "127.0.0.1", int(port))


async def start_server(
    listen: Union[str, Path],
    config: RestartConfig,
    loader: Optional[ConfigLoader] = None,
    greeting: str = DEFAULT_GREETING,
    pidfile: Optional[Path] = None,
) -> int:
    # pylint: disable=too-many-statements

    signals = config.signals
    strategy = config.strategy

    # Block signals during initialization to force their processing once everything is ready
    signal.pthread_sigmask(signal.SIG_BLOCK, signals.handled())

    try:
        inherited = HandoffRecord.from_environ() if HandoffRecord.present() else None
        listener = _open_listener(listen, inherited)
    except HandoffError as e:
        logger.critical(e)
        return 1
    except (OSError, ValueError) as e:
        logger.critical(f"Failed to open listener '{listen}': {e}")
        return 1

    server = DemoServer(listener, config, loader, greeting)
    await server.start()
    if pidfile is not None:
        write_pidfile(pidfile)

    coordinator = Coordinator(
        listener,
        strategy=strategy,
        signals=signals,
        on_reload=server.reload,
        on_reopen_logs=server.reopen_logs,
        timeout=config.handshake_timeout,
    )
    coordinator.bind_signal_handlers()
    signal.pthread_sigmask(signal.SIG_UNBLOCK, signals.handled())

    # Now that we serve, tell the other side of the handoff
    if inherited is not None:
        try:
            await kill(inherited, strategy, signals)
        except (HandoffError, OSError) as e:
            logger.error(f"Failed to send the handshake signal: {e}")
        systemd_notify(MAINPID=str(os.getpid()), READY="1")
    else:
        systemd_notify(READY="1")

    while True:
        try:
            sig = await coordinator.wait()
        except HandoffError as e:
            # restarts fail safe, this process keeps serving
            logger.error(f"Restart failed, keep serving: {e}")
            continue
        session = coordinator.session
        if sig == signals.restart and (session is None or not session.completed):
            # a second restart request while the successor has not confirmed yet
            pid = session.successor.pid if session is not None else None
            logger.warning(f"Successor {pid} has not confirmed the handoff, keep serving")
            continue
        break

    systemd_notify(STOPPING="1")
    signal.pthread_sigmask(signal.SIG_BLOCK, signals.handled())
    coordinator.unbind_signal_handlers()

    await server.shutdown()

    session = coordinator.session
    if strategy is Strategy.DOUBLE and sig == signals.restart and session is not None and session.completed:
        # the successor serves now, come back in place and retire it
        try:
            prepare_exec(listener, successor_pid=session.successor.pid, signals=signals).execute()
        except HandoffError as e:
            logger.critical(f"Re-exec failed, successor {session.successor.pid} keeps serving: {e}")
            return 1

    listener.close()
    logger.notice(f"Stopped after {sig.name}")
    atexit.run_callbacks()
    return 0


def run(
    listen: Union[str, Path],
    config: RestartConfig,
    loader: Optional[ConfigLoader] = None,
    greeting: str = DEFAULT_GREETING,
    pidfile: Optional[Path] = None,
) -> int:
    start_logging("handoff-demo", config.logging.level, config.logging.target)
    return asyncio_compat.run(start_server(listen, config, loader, greeting, pidfile))
