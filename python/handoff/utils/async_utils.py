import os
from typing import Optional

from handoff.utils.compat.asyncio import to_thread


async def reap_child(pid: int) -> Optional[int]:
    """
    Wait for a child process to exit and collect its status so that it does not linger as a zombie.

    Returns the raw wait status, or None when the pid is not our child (anymore).
    """

    def reap_sync(pid: int) -> Optional[int]:
        try:
            _, status = os.waitpid(pid, 0)
        except ChildProcessError:
            return None
        return status

    return await to_thread(reap_sync, pid)
