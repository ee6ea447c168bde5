"""
Restarts of the demo server running in its own process, observed through HTTP.
"""

import asyncio
import os
import signal
import subprocess
import sys
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional

import aiohttp
import pytest

from handoff.utils.pidfile import read_pidfile

GREETING = "Hello from the test!"
TIMEOUT = 30.0


class Demo:
    def __init__(self, port: int, tmp_path: Path, env: Dict[str, str], *args: str) -> None:
        self.port = port
        self.pidfile = tmp_path / "demo.pid"
        self.url = f"http://127.0.0.1:{port}"
        self.process = subprocess.Popen(
            [
                sys.executable,
                "-m",
                "handoff.demo",
                "--listen",
                f"127.0.0.1:{port}",
                "--pidfile",
                str(self.pidfile),
                "--greeting",
                GREETING,
                *args,
            ],
            env=env,
        )

    def serving_pid(self) -> Optional[int]:
        return read_pidfile(self.pidfile)

    def stop(self) -> None:
        for pid in {self.process.pid, self.serving_pid()}:
            if pid is None:
                continue
            try:
                os.kill(pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
        self.process.wait()


@pytest.fixture
def start_demo(free_port: int, tmp_path: Path, child_env: Dict[str, str]) -> Iterator[Callable[..., Demo]]:
    started: List[Demo] = []

    def factory(*args: str) -> Demo:
        demo = Demo(free_port, tmp_path, child_env, *args)
        started.append(demo)
        return demo

    yield factory
    for demo in started:
        demo.stop()


async def get(session: aiohttp.ClientSession, url: str) -> str:
    async with session.get(url) as response:
        response.raise_for_status()
        return await response.text()


async def status(session: aiohttp.ClientSession, demo: Demo) -> dict:
    async with session.get(f"{demo.url}/status") as response:
        response.raise_for_status()
        return await response.json()


async def eventually(check, timeout: float = TIMEOUT, interval: float = 0.05):
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        try:
            result = await check()
            if result:
                return result
        except (aiohttp.ClientError, OSError):
            pass
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError(f"condition not met within {timeout} seconds")
        await asyncio.sleep(interval)


async def wait_ready(session: aiohttp.ClientSession, demo: Demo) -> None:
    async def ready():
        assert demo.process.poll() is None, "demo server exited"
        return demo.serving_pid() is not None and await get(session, demo.url) == GREETING

    await eventually(ready)


async def wait_exited(demo: Demo) -> int:
    async def exited():
        return demo.process.poll() is not None

    await eventually(exited)
    return demo.process.returncode


async def responses_from(demo: Demo, pid: int, count: int = 10) -> bool:
    connector = aiohttp.TCPConnector(force_close=True)
    async with aiohttp.ClientSession(connector=connector) as session:
        for _ in range(count):
            if (await status(session, demo))["pid"] != pid:
                return False
    return True


class ConnectionCounter:
    """Opens a fresh connection for every request until stopped, counting refused connections."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.served = 0
        self.refused = 0
        self._stop = asyncio.Event()
        self._task: "Optional[asyncio.Task[None]]" = None

    async def _run(self) -> None:
        connector = aiohttp.TCPConnector(force_close=True)
        async with aiohttp.ClientSession(connector=connector) as session:
            while not self._stop.is_set():
                try:
                    assert await get(session, self.url) == GREETING
                    self.served += 1
                except aiohttp.ClientConnectorError:
                    self.refused += 1
                except aiohttp.ServerDisconnectedError:
                    # accepted by a process which was already draining, not a refusal
                    pass
                await asyncio.sleep(0.005)

    def start(self) -> None:
        self._task = asyncio.ensure_future(self._run())

    async def stop(self) -> None:
        self._stop.set()
        assert self._task is not None
        await self._task


@pytest.mark.asyncio
async def test_reload_keeps_serving(start_demo):
    demo = start_demo()
    async with aiohttp.ClientSession() as session:
        await wait_ready(session, demo)

        for _ in range(2):
            os.kill(demo.process.pid, signal.SIGHUP)
            await asyncio.sleep(0.2)
            assert await get(session, demo.url) == GREETING

        assert demo.serving_pid() == demo.process.pid
        assert demo.process.poll() is None

    os.kill(demo.process.pid, signal.SIGTERM)
    assert await wait_exited(demo) == 0
    assert not demo.pidfile.exists()


@pytest.mark.asyncio
async def test_single_restart_without_refused_connections(start_demo):
    demo = start_demo("--strategy", "single", "--timeout", "20")
    async with aiohttp.ClientSession() as session:
        await wait_ready(session, demo)
        old_pid = demo.serving_pid()
        assert old_pid == demo.process.pid

        counter = ConnectionCounter(demo.url)
        counter.start()
        await asyncio.sleep(0.3)

        os.kill(old_pid, signal.SIGUSR2)
        assert await wait_exited(demo) == 0

        async def new_pid():
            return demo.serving_pid() not in (None, old_pid)

        await eventually(new_pid)
        await asyncio.sleep(0.3)
        await counter.stop()

        assert counter.refused == 0
        assert counter.served > 0

        # the pooled connections went away with the old process
        async with aiohttp.ClientSession() as fresh:
            current = await status(fresh, demo)
        assert current["pid"] == demo.serving_pid()
        assert current["ppid"] != old_pid
        assert current["listener"] == f"tcp:127.0.0.1:{demo.port}->"

    os.kill(current["pid"], signal.SIGTERM)

    async def refused():
        try:
            _, writer = await asyncio.open_connection("127.0.0.1", demo.port)
        except ConnectionRefusedError:
            return True
        writer.close()
        return False

    await eventually(refused)


@pytest.mark.asyncio
async def test_double_restart_keeps_pid(start_demo):
    demo = start_demo("--strategy", "double", "--timeout", "20")
    pid = demo.process.pid
    async with aiohttp.ClientSession() as session:
        await wait_ready(session, demo)
        await asyncio.sleep(1.0)
        before = await status(session, demo)
        assert before["pid"] == pid

        counter = ConnectionCounter(demo.url)
        counter.start()

        os.kill(pid, signal.SIGUSR2)

        async def reexecuted():
            current = await status(session, demo)
            return current["pid"] == pid and current["uptime"] < before["uptime"]

        await eventually(reexecuted)

        # the new image retires the interim successor, afterwards every answer comes from pid
        async def interim_retired():
            return await responses_from(demo, pid)

        await eventually(interim_retired)
        await counter.stop()

        assert demo.process.poll() is None
        assert demo.serving_pid() == pid
        assert counter.refused == 0

    os.kill(pid, signal.SIGTERM)
    assert await wait_exited(demo) == 0


@pytest.mark.asyncio
async def test_failed_restart_keeps_serving(start_demo, tmp_path: Path):
    config = tmp_path / "handoff.yaml"
    config.write_text("handshake-timeout: 20\n")
    demo = start_demo("--config", str(config))
    async with aiohttp.ClientSession() as session:
        await wait_ready(session, demo)

        # successors read the configuration file on start and exit on the broken one
        config.write_text("strategy: triple\n")
        os.kill(demo.process.pid, signal.SIGUSR2)
        await asyncio.sleep(2.0)

        assert demo.process.poll() is None
        assert demo.serving_pid() == demo.process.pid
        assert await responses_from(demo, demo.process.pid)

        # and the next restart works again
        config.write_text("handshake-timeout: 20\n")
        os.kill(demo.process.pid, signal.SIGUSR2)
        assert await wait_exited(demo) == 0

        async def new_pid():
            return demo.serving_pid() not in (None, demo.process.pid)

        await eventually(new_pid)
        new = demo.serving_pid()
        assert new is not None
        assert await responses_from(demo, new)


@pytest.mark.asyncio
async def test_crashed_successor_without_timeout_keeps_serving(start_demo, tmp_path: Path):
    config = tmp_path / "handoff.yaml"
    config.write_text("strategy: single\n")
    demo = start_demo("--config", str(config))
    async with aiohttp.ClientSession() as session:
        await wait_ready(session, demo)

        # nothing bounds the handshake, the successor's exit alone ends the attempt
        config.write_text("strategy: triple\n")
        os.kill(demo.process.pid, signal.SIGUSR2)
        await asyncio.sleep(2.0)

        assert demo.process.poll() is None
        assert await responses_from(demo, demo.process.pid)

        # a second restart spawns a fresh successor instead of being taken for its handshake
        config.write_text("strategy: single\n")
        os.kill(demo.process.pid, signal.SIGUSR2)
        assert await wait_exited(demo) == 0

        async def new_pid():
            return demo.serving_pid() not in (None, demo.process.pid)

        await eventually(new_pid)
        new = demo.serving_pid()
        assert new is not None
        assert await responses_from(demo, new)

        _, writer = await asyncio.open_connection("127.0.0.1", demo.port)
        writer.close()
        await writer.wait_closed()
