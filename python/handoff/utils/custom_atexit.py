"""
Custom replacement for standard module `atexit`. We use `atexit` behind the scenes, we just add the option
to invoke the exit functions manually. An exec() replaces the process image without running the standard
exit functions, so anything that must happen before the image goes away has to be registered here.
"""

import atexit
from typing import Callable, List

_at_exit_functions: List[Callable[[], None]] = []


def register(func: Callable[[], None]) -> None:
    _at_exit_functions.append(func)
    atexit.register(func)


def run_callbacks() -> None:
    # callbacks run in reverse order of registration, same as the standard module
    while _at_exit_functions:
        func = _at_exit_functions.pop()
        atexit.unregister(func)
        func()
