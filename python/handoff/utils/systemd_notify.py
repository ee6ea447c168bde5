import os
import socket

from handoff.logging import get_logger

logger = get_logger(__name__)


def systemd_notify(**values: str) -> bool:
    """
    Send systemd notify message to notify socket.

    Notify socket location (unix socket) should be saved in $NOTIFY_SOCKET environment variable.
    It is set by the service manager only for services of Type=notify. When it is missing, there is no
    one to notify and the call is a no-op. Returns whether the message was delivered.

    After a handoff, the successor reports itself with MAINPID=<pid> so that the service manager keeps
    tracking the process which actually serves.
    """
    socket_addr = os.getenv("NOTIFY_SOCKET")
    if socket_addr is None:
        logger.debug("$NOTIFY_SOCKET is not set, not sending %s", ", ".join(values))
        return False

    if socket_addr.startswith("@"):
        socket_addr = socket_addr.replace("@", "\0", 1)

    payload = "\n".join((f"{key}={value}" for key, value in values.items()))
    with socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM) as notify_socket:
        try:
            notify_socket.connect(socket_addr)
            notify_socket.send(payload.encode("utf8"))
        except OSError:
            logger.exception("Failed to send systemd notification to $NOTIFY_SOCKET at '%s'", socket_addr)
            return False
    return True
