import asyncio
import functools
import sys
from typing import Any, Callable, Coroutine, TypeVar

T = TypeVar("T")


async def to_thread(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    # version 3.9 and higher, call directly
    if sys.version_info >= (3, 9):
        return await asyncio.to_thread(func, *args, **kwargs)
    # earlier versions, run with default executor
    loop = asyncio.get_event_loop()
    pfunc = functools.partial(func, *args, **kwargs)
    return await loop.run_in_executor(None, pfunc)


def add_signal_handler(signal: int, callback: Callable[..., None], *args: Any) -> None:
    loop = asyncio.get_event_loop()
    loop.add_signal_handler(signal, callback, *args)


def remove_signal_handler(signal: int) -> bool:
    loop = asyncio.get_event_loop()
    return loop.remove_signal_handler(signal)


def run(coro: Coroutine[Any, Any, T], debug: bool = False) -> T:
    return asyncio.run(coro, debug=debug)
