import signal

VERSION = "1.0.0"

# environment variables forming the cross-process handoff contract
ENV_FD = "HANDOFF_FD"
ENV_NAME = "HANDOFF_NAME"
ENV_SUCCESSOR_PID = "HANDOFF_PID"
ENV_PREDECESSOR_PID = "HANDOFF_PPID"
ENV_SIGNAL = "HANDOFF_SIGNAL"

# configuration overrides
ENV_STRATEGY = "HANDOFF_STRATEGY"
ENV_TIMEOUT = "HANDOFF_TIMEOUT"

# signal that asks a process to stop accepting and drain
GRACEFUL_EXIT_SIGNAL = signal.SIGQUIT

# demo server defaults
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 48879
DEFAULT_GREETING = "Hello, world!"
DEFAULT_SHUTDOWN_TIMEOUT = 60.0
