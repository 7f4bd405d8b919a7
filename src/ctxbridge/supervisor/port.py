"""Free port discovery for the context server.

A port counts as available when a socket can be bound to it and closed
again. Another process may still take it before the server binds; that race
is reported by the supervisor as a bind failure.
"""

from __future__ import annotations

import asyncio
import socket
from typing import Iterable, Optional

from ..core.config_schema import DEFAULT_HOST
from ..util.log import Log

log = Log.create({"service": "supervisor.port"})

FALLBACK_PORTS = (3001, 3002, 3003, 3010, 8080, 8081)


def _probe(host: str, port: int) -> Optional[int]:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    with socket.socket(family, socket.SOCK_STREAM) as sock:
        # Same option the server socket uses, so the probe agrees with the real bind.
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError:
            return None
        return sock.getsockname()[1]


def is_port_available(port: int, host: str = DEFAULT_HOST) -> bool:
    return _probe(host, port) is not None


async def find_available_port(
    preferred: int,
    *,
    host: str = DEFAULT_HOST,
    candidates: Iterable[int] = FALLBACK_PORTS,
) -> int:
    """Return ``preferred`` if free, else the first free candidate, else an OS-assigned port.

    Probes run in a worker thread. A ``preferred`` of 0 asks the OS directly.
    """
    if preferred != 0:
        order = list(dict.fromkeys([preferred, *candidates]))
        for port in order:
            found = await asyncio.to_thread(_probe, host, port)
            if found is None:
                continue
            if port != preferred:
                log.info("preferred port busy, using fallback", {"preferred": preferred, "port": found})
            return found

    assigned = await asyncio.to_thread(_probe, host, 0)
    if assigned is None:
        # Even an ephemeral bind failed; let the server bind report why.
        log.warn("no port could be probed", {"host": host, "preferred": preferred})
        return preferred
    if preferred != 0:
        log.info("all candidate ports busy, using ephemeral port", {"preferred": preferred, "port": assigned})
    return assigned


def loopback_host(host: str) -> str:
    """Address a client should dial to reach a server bound to ``host``."""
    if host in ("0.0.0.0", ""):
        return "127.0.0.1"
    if host == "::":
        return "::1"
    return host
