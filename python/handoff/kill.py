from __future__ import annotations

import asyncio
import os
from typing import Optional, Set

from handoff.errors import EnvironmentMalformedError
from handoff.logging import get_logger
from handoff.record import HandoffRecord
from handoff.signals import DEFAULT_SIGNALS, SignalSet
from handoff.strategy import Strategy
from handoff.utils.async_utils import reap_child

logger = get_logger(__name__)

# keep references to running reapers, the event loop only holds weak ones
_reapers: Set["asyncio.Task[Optional[int]]"] = set()


def target_pid(record: HandoffRecord) -> int:
    """
    The process on the other side of the handshake.

    A predecessor which already knows its successor signals the successor, a successor signals
    the predecessor which spawned it.
    """

    if record.successor_pid is not None:
        return record.successor_pid
    if record.predecessor_pid is not None:
        return record.predecessor_pid
    msg = "neither successor nor predecessor PID is known"
    raise EnvironmentMalformedError(msg)


async def kill(
    record: Optional[HandoffRecord] = None,
    strategy: Strategy = Strategy.SINGLE,
    signals: SignalSet = DEFAULT_SIGNALS,
) -> "Optional[asyncio.Task[Optional[int]]]":
    """
    Send the handshake signal from the record to the other side of the handoff.

    With the double strategy, the graceful-exit signal of `signals` goes to our own child, which is
    reaped in the background. The reaper task is returned so that callers can wait for the child to be gone.
    """

    if record is None:
        record = HandoffRecord.from_environ()

    pid = target_pid(record)
    if pid == os.getpid():
        # re-executed in place without an interim successor, we are our own predecessor
        logger.debug("Handoff target is this very process, nothing to signal")
        return None

    sig = record.handshake_signal
    reaper: "Optional[asyncio.Task[Optional[int]]]" = None
    if strategy is Strategy.DOUBLE and sig == signals.quit:
        reaper = asyncio.create_task(reap_child(pid))
        _reapers.add(reaper)
        reaper.add_done_callback(_reapers.discard)

    logger.notice("Sending %s to process %d", sig.name, pid)
    try:
        os.kill(pid, sig)
    except OSError:
        if reaper is not None:
            reaper.cancel()
        raise
    return reaper
