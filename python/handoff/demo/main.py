"""
Effectively the same as normal __main__.py. The content lives here so that it can be used as a console
script entry point as well.
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, NoReturn

from handoff.config import LoggingConfig, RestartConfig, load_config
from handoff.constants import DEFAULT_GREETING, DEFAULT_HOST, DEFAULT_PORT, VERSION
from handoff.demo.server import run
from handoff.errors import HandoffError
from handoff.logging import LOG_LEVELS, LogTarget, get_logger, startup_logging
from handoff.strategy import Strategy

logger = get_logger(__name__)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Example server handing its listening socket over to a new copy of itself on restart.",
    )
    parser.add_argument(
        "-V",
        "--version",
        help="Get version",
        action="version",
        version=VERSION,
    )
    listen = parser.add_mutually_exclusive_group()
    listen.add_argument(
        "-l",
        "--listen",
        help="TCP address to listen on, HOST:PORT.",
        type=str,
        default=f"{DEFAULT_HOST}:{DEFAULT_PORT}",
    )
    listen.add_argument(
        "-u",
        "--unix",
        help="Path of a unix-domain socket to listen on instead of TCP.",
        type=Path,
        default=None,
    )
    parser.add_argument(
        "-c",
        "--config",
        help="Optional, path to a configuration file (YAML/JSON). Reloaded on SIGHUP.",
        type=Path,
        default=None,
    )
    parser.add_argument(
        "-s",
        "--strategy",
        help="Restart strategy, overrides the configuration file.",
        choices=[s.value for s in Strategy],
        default=None,
    )
    parser.add_argument(
        "-t",
        "--timeout",
        help="Seconds a successor has to confirm the handoff, overrides the configuration file.",
        type=float,
        default=None,
    )
    parser.add_argument(
        "--greeting",
        help="Text served to every request.",
        type=str,
        default=DEFAULT_GREETING,
    )
    parser.add_argument(
        "--pidfile",
        help="Write PID of the serving process into this file.",
        type=Path,
        default=None,
    )
    parser.add_argument(
        "--loglevel",
        help="Logging level, overrides the configuration file.",
        choices=LOG_LEVELS,
        default=None,
    )
    parser.add_argument(
        "--logtarget",
        help="Logging target, overrides the configuration file.",
        choices=[t.value for t in LogTarget],
        default=None,
    )
    return parser


def main() -> NoReturn:
    # initial logging is to memory until we read the config
    startup_logging()

    args = create_parser().parse_args()

    config_path = args.config.absolute() if args.config else None
    overrides: Dict[str, Any] = {}
    if args.strategy is not None:
        overrides["strategy"] = Strategy(args.strategy)
    if args.timeout is not None:
        overrides["handshake_timeout"] = args.timeout

    def loader() -> RestartConfig:
        # command line options win over the configuration file, also after a reload
        config = load_config(config_path)
        logging_config = LoggingConfig(
            level=args.loglevel or config.logging.level,
            target=args.logtarget or config.logging.target,
        )
        return replace(config, logging=logging_config, **overrides)

    try:
        config = loader()
    except HandoffError as e:
        logger.critical(e)
        sys.exit(1)

    listen = args.unix.absolute() if args.unix is not None else args.listen
    pidfile = args.pidfile.absolute() if args.pidfile is not None else None
    exit_code = run(listen, config, loader if config_path else None, args.greeting, pidfile)
    sys.exit(exit_code)
