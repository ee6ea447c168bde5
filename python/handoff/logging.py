from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from enum import Enum
from typing import Any, Optional, cast

NOTICE = (logging.WARNING + logging.INFO) // 2


class LogTarget(str, Enum):
    STDOUT = "stdout"
    SYSLOG = "syslog"
    STDERR = "stderr"


LOG_LEVELS = ("critical", "error", "warning", "notice", "info", "debug")

_config_to_level = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "notice": NOTICE,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

_level_to_name = {
    logging.CRITICAL: "CRIT",
    logging.ERROR: "ERRO",
    logging.WARNING: "WARN",
    NOTICE: "NOTI",
    logging.INFO: "INFO",
    logging.DEBUG: "DEBG",
}


class HandoffLogger(logging.Logger):
    def notice(self, message: str, *args: Any, **kwargs: Any) -> None:
        if self.isEnabledFor(NOTICE):
            self._log(NOTICE, message, args, **kwargs)


logging.setLoggerClass(HandoffLogger)


for level, name in _level_to_name.items():
    logging.addLevelName(level, name)


def get_logger(name: str) -> HandoffLogger:
    return cast(HandoffLogger, logging.getLogger(name))


SERVICE_NAME_LEN = 13
NO_PREFIX_FORMAT_ENV_VAR = "HANDOFF_LOGGING_NO_PREFIX_FORMAT"

BASIC_FORMAT = "%(name)s: %(message)s"
NO_PREFIX_FORMAT = f"[%(levelname)s] {BASIC_FORMAT}"

# handler installed by start_logging(), replaced on every reopen
_active_handler: Optional[logging.Handler] = None
_active_service = "handoff"
_active_target = LogTarget.STDERR


def get_pretty_format(service: str, stream: str) -> str:
    service = service.rjust(SERVICE_NAME_LEN)
    return f"%(asctime)s {service}[%(process)d]{stream}: {BASIC_FORMAT}"


def get_formatter(service: str, target: LogTarget) -> logging.Formatter:
    no_prefix = bool(os.environ.get(NO_PREFIX_FORMAT_ENV_VAR) == "true")

    if target == LogTarget.SYSLOG:
        return logging.Formatter(BASIC_FORMAT)
    if no_prefix:
        return logging.Formatter(NO_PREFIX_FORMAT)

    stream = ""
    if target == LogTarget.STDERR:
        stream = "(stderr)"
    return logging.Formatter(get_pretty_format(service, stream))


def get_logging_handler(target: LogTarget) -> logging.Handler:
    if target == LogTarget.SYSLOG:
        return logging.handlers.SysLogHandler(address="/dev/log")
    if target == LogTarget.STDERR:
        return logging.StreamHandler(sys.stderr)
    return logging.StreamHandler(sys.stdout)


def _install_handler(handler: logging.Handler) -> None:
    global _active_handler

    root = logging.getLogger()

    # whatever was buffered during start-up goes to the new handler
    if isinstance(_active_handler, logging.handlers.MemoryHandler):
        _active_handler.setTarget(handler)

    if _active_handler is not None:
        _active_handler.flush()
        _active_handler.close()
        root.removeHandler(_active_handler)

    root.addHandler(handler)
    _active_handler = handler


def startup_logging(level: str = "notice") -> None:
    """
    Buffer log records in memory until the configuration is known.

    Errors are flushed right away to stderr so that a broken start-up is never silent.
    """

    err_handler = logging.StreamHandler(sys.stderr)
    err_handler.setFormatter(logging.Formatter(NO_PREFIX_FORMAT))

    root = logging.getLogger()
    root.setLevel(_config_to_level[level])
    _install_handler(logging.handlers.MemoryHandler(10_000, logging.ERROR, err_handler))


def start_logging(service: str, level: str, target: str) -> None:
    global _active_service, _active_target

    _active_service = service
    _active_target = LogTarget(target)

    handler = get_logging_handler(_active_target)
    handler.setFormatter(get_formatter(service, _active_target))

    logging.getLogger().setLevel(_config_to_level[level])
    _install_handler(handler)


def reopen_logging() -> None:
    """Close and re-create the active handler, e.g. after the output was rotated."""

    handler = get_logging_handler(_active_target)
    handler.setFormatter(get_formatter(_active_service, _active_target))
    _install_handler(handler)
    get_logger(__name__).info("Logging handler reopened")
