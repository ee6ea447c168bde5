import os
import socket
import sys
from pathlib import Path
from typing import Dict, Iterator

import pytest

import handoff

# directory containing the handoff package, child processes need to import it too
PACKAGE_ROOT = str(Path(handoff.__file__).absolute().parent.parent)


@pytest.fixture
def child_env() -> Dict[str, str]:
    """Environment for child processes, with the handoff package importable."""

    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [PACKAGE_ROOT, env.get("PYTHONPATH")]))
    return env


@pytest.fixture
def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def tcp_listener() -> Iterator[handoff.StreamListener]:
    listener = handoff.bind_tcp("127.0.0.1", 0)
    yield listener
    listener.close()


@pytest.fixture
def unix_listener(tmp_path: Path) -> Iterator[handoff.UnixListener]:
    listener = handoff.bind_unix(tmp_path / "handoff.sock")
    yield listener
    listener.close()


@pytest.fixture
def python() -> str:
    return sys.executable
