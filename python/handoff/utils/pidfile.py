import os
from pathlib import Path
from typing import Optional

from handoff.logging import get_logger
from handoff.utils import custom_atexit as atexit
from handoff.utils import parse_int_optional

logger = get_logger(__name__)


def read_pidfile(path: Path) -> Optional[int]:
    try:
        with path.open("r", encoding="utf-8") as f:
            return parse_int_optional(f.read())
    except FileNotFoundError:
        return None


def write_pidfile(path: Path) -> None:
    """
    Atomically replace the pid file with our own PID.

    Unlike a lock file, the pid file is expected to exist already: a successor takes it over
    from its predecessor while both are still running. The file is removed on exit only if it
    still holds our PID, so an exiting predecessor never deletes its successor's file.
    """

    pid = os.getpid()
    tmp = path.with_name(f".{path.name}.{pid}")
    with tmp.open("w", encoding="utf-8") as f:
        f.write(f"{pid}\n")
    os.replace(tmp, path)
    logger.debug("PID file '%s' now holds %d", path, pid)

    def cleanup() -> None:
        if read_pidfile(path) == pid:
            path.unlink()

    atexit.register(cleanup)
