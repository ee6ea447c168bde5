from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from handoff.constants import ENV_STRATEGY, ENV_TIMEOUT
from handoff.logging import LOG_LEVELS, LogTarget
from handoff.signals import DEFAULT_SIGNALS, SignalSet, parse_signal
from handoff.strategy import Strategy
from handoff.utils.parsing import DataValidationError, parse_file

# configurable signals, the terminal ones are fixed
_SIGNAL_KEYS = {"reload": "reload", "reopen-logs": "reopen_logs", "restart": "restart"}


def _normalized(data: Mapping[str, Any], path: str) -> Dict[str, Any]:
    if not isinstance(data, Mapping):
        msg = f"expected a mapping, got {type(data).__name__}"
        raise DataValidationError(msg, path)
    return {str(k).replace("_", "-"): v for k, v in data.items()}


def _check_keys(data: Mapping[str, Any], allowed: Any, path: str) -> None:
    for key in data:
        if key not in allowed:
            msg = f"unknown option '{key}'"
            raise DataValidationError(msg, f"{path}/{key}")


@dataclass(frozen=True)
class LoggingConfig:
    """
    Logging configuration.

    ---
    level: Logging level.
    target: Where log records go, "stdout", "stderr" or "syslog".
    """

    level: str = "notice"
    target: str = LogTarget.STDERR.value

    @staticmethod
    def from_dict(data: Mapping[str, Any], path: str = "/logging") -> LoggingConfig:
        data = _normalized(data, path)
        _check_keys(data, ("level", "target"), path)

        level = str(data.get("level", "notice")).lower()
        if level not in LOG_LEVELS:
            msg = f"invalid level '{level}', expected one of: {', '.join(LOG_LEVELS)}"
            raise DataValidationError(msg, f"{path}/level")

        target = str(data.get("target", LogTarget.STDERR.value)).lower()
        if target not in {t.value for t in LogTarget}:
            msg = f"invalid target '{target}', expected one of: {', '.join(t.value for t in LogTarget)}"
            raise DataValidationError(msg, f"{path}/target")
        return LoggingConfig(level, target)


def _parse_timeout(value: Any, path: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        msg = f"expected number of seconds, got '{value}'"
        raise DataValidationError(msg, path)
    try:
        timeout = float(value)
    except (TypeError, ValueError) as e:
        msg = f"expected number of seconds, got '{value}'"
        raise DataValidationError(msg, path) from e
    if timeout <= 0:
        msg = f"timeout must be positive, got {timeout}"
        raise DataValidationError(msg, path)
    return timeout


def _parse_signals(data: Mapping[str, Any], path: str = "/signals") -> SignalSet:
    data = _normalized(data, path)
    _check_keys(data, _SIGNAL_KEYS, path)

    values = {}
    for key, attr in _SIGNAL_KEYS.items():
        if key not in data:
            continue
        try:
            values[attr] = parse_signal(data[key])
        except ValueError as e:
            raise DataValidationError(str(e), f"{path}/{key}") from e

    try:
        return replace(DEFAULT_SIGNALS, **values)
    except ValueError as e:
        raise DataValidationError(str(e), path) from e


@dataclass(frozen=True)
class RestartConfig:
    """
    Configuration of the restart protocol.

    ---
    strategy: "single" or "double", see handoff.strategy.Strategy.
    handshake_timeout: Seconds a successor has to confirm the handoff, None to wait forever.
    signals: Which signals reload, reopen logs and trigger a restart.
    logging: Logging configuration.
    """

    strategy: Strategy = Strategy.SINGLE
    handshake_timeout: Optional[float] = None
    signals: SignalSet = DEFAULT_SIGNALS
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @staticmethod
    def from_dict(data: Optional[Mapping[str, Any]]) -> RestartConfig:
        if data is None:
            return RestartConfig()
        data = _normalized(data, "")
        _check_keys(data, ("strategy", "handshake-timeout", "signals", "logging"), "")

        strategy = Strategy.SINGLE
        if "strategy" in data:
            try:
                strategy = Strategy.from_string(str(data["strategy"]))
            except ValueError as e:
                raise DataValidationError(str(e), "/strategy") from e

        return RestartConfig(
            strategy=strategy,
            handshake_timeout=_parse_timeout(data.get("handshake-timeout"), "/handshake-timeout"),
            signals=_parse_signals(data.get("signals") or {}),
            logging=LoggingConfig.from_dict(data.get("logging") or {}),
        )

    def with_environment(self, environ: Optional[Mapping[str, str]] = None) -> RestartConfig:
        """Apply $HANDOFF_STRATEGY and $HANDOFF_TIMEOUT on top of this configuration."""

        environ = os.environ if environ is None else environ
        config = self

        strategy = environ.get(ENV_STRATEGY)
        if strategy:
            try:
                config = replace(config, strategy=Strategy.from_string(strategy))
            except ValueError as e:
                raise DataValidationError(str(e), f"${ENV_STRATEGY}") from e

        timeout = environ.get(ENV_TIMEOUT)
        if timeout:
            config = replace(config, handshake_timeout=_parse_timeout(timeout, f"${ENV_TIMEOUT}"))
        return config


def load_config(path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> RestartConfig:
    """Load the configuration file (YAML or JSON), if any, and apply environment overrides."""

    config = RestartConfig() if path is None else RestartConfig.from_dict(parse_file(path))
    return config.with_environment(environ)
