import os
from pathlib import Path
from typing import Iterable, Optional


def _candidates(program: str, search_path: Optional[Iterable[str]]) -> Iterable[Path]:
    if os.sep in program:
        # relative to the working directory or absolute, $PATH does not apply
        yield Path(program)
        return
    for directory in os.get_exec_path() if search_path is None else search_path:
        yield Path(directory or os.curdir, program)


def which(program: str, search_path: Optional[Iterable[str]] = None) -> Path:
    """
    Absolute path of the program, looked up in $PATH unless the name has a directory part.

    Nothing is cached, a program which was removed since the last call is reported as missing.

    Raises:
        RuntimeError: If no such file exists.
    """

    for path in _candidates(program, search_path):
        if path.exists():
            return path.absolute()

    where = "does not exist" if os.sep in program else "was not found in $PATH"
    msg = f"The executable '{program}' {where}"
    raise RuntimeError(msg)
