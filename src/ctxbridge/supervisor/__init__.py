"""Server lifecycle supervision and port discovery."""

from .errors import (
    BindFailureError,
    InvalidConfigError,
    ServerCrashError,
    ServerStartError,
    SupervisorError,
)
from .port import FALLBACK_PORTS, find_available_port, is_port_available, loopback_host
from .supervisor import (
    ConnectionStatus,
    ProcessStats,
    ServerConfigUpdated,
    ServerStatusChanged,
    ServerSupervisor,
    SupervisorState,
)

__all__ = [
    "BindFailureError",
    "ConnectionStatus",
    "FALLBACK_PORTS",
    "InvalidConfigError",
    "ProcessStats",
    "ServerConfigUpdated",
    "ServerCrashError",
    "ServerStartError",
    "ServerStatusChanged",
    "ServerSupervisor",
    "SupervisorError",
    "SupervisorState",
    "find_available_port",
    "is_port_available",
    "loopback_host",
]
