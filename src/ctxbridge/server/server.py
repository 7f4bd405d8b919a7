"""uvicorn host for the context server application.

The listening socket is bound here rather than by uvicorn, so a bind failure
surfaces as an ``OSError`` to the caller instead of terminating the process.

Example:
    server = ContextServer(create_app(dispatcher), host="127.0.0.1", port=3001)
    info = await server.start()
    print(f"Context server running at {info.url}")
    await server.stop(grace_ms=3000)
"""

from __future__ import annotations

import asyncio
import contextlib
import socket
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..util.log import Log

log = Log.create({"service": "server"})

STARTUP_POLL_INTERVAL = 0.01
FORCE_EXIT_TIMEOUT = 1.0


@dataclass(frozen=True)
class ServerInfo:
    """Address of a running server."""
    host: str
    port: int

    @property
    def url(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"http://{host}:{self.port}"

    @property
    def rpc_url(self) -> str:
        return f"{self.url}/rpc"


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind a listening-ready TCP socket the way uvicorn does."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


class ContextServer:
    """Runs one ASGI app under uvicorn on a pre-bound socket."""

    def __init__(self, app: Any, *, host: str, port: int) -> None:
        self.app = app
        self.host = host
        self.port = port
        self._server: Optional[Any] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._socket: Optional[socket.socket] = None
        self._info: Optional[ServerInfo] = None

    @property
    def info(self) -> Optional[ServerInfo]:
        return self._info

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def add_exit_callback(self, callback: Callable[[asyncio.Task[None]], None]) -> None:
        """Call ``callback`` with the serve task once it finishes for any reason."""
        if self._task is None:
            raise RuntimeError("server is not started")
        self._task.add_done_callback(callback)

    async def start(self) -> ServerInfo:
        """Bind, serve and wait until uvicorn reports it is accepting connections.

        Raises:
            OSError: The socket could not be bound.
            RuntimeError: uvicorn stopped before finishing startup.
        """
        import uvicorn

        sock = bind_socket(self.host, self.port)
        self._socket = sock
        config = uvicorn.Config(
            self.app,
            log_level="warning",
            lifespan="off",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._server.serve(sockets=[sock]), name="ctxbridge-server")

        while not self._server.started:
            if self._task.done():
                error = None if self._task.cancelled() else self._task.exception()
                self._cleanup()
                raise RuntimeError("server exited during startup") from error
            await asyncio.sleep(STARTUP_POLL_INTERVAL)

        self._info = ServerInfo(host=self.host, port=sock.getsockname()[1])
        log.info("server started", {"url": self._info.url})
        return self._info

    async def stop(self, grace_ms: int) -> None:
        """Stop accepting, give in-flight requests ``grace_ms`` to finish, then force exit.

        Whatever is still open once the grace period and the force-exit window
        have passed is closed here: listeners, client connections, and the
        request tasks serving them. The same applies to a server whose serve
        task already ended on its own.
        """
        server, task = self._server, self._task
        if server is None or task is None:
            return

        server.should_exit = True
        try:
            if not task.done():
                await self._drain(server, task, grace_ms)
        finally:
            await self._abort(server)
            self._cleanup()
        if not task.cancelled() and task.exception() is not None:
            log.error("server exited with error", {"error": task.exception()})
        log.info("server stopped", {"host": self.host, "port": self.port})

    async def _drain(self, server: Any, task: asyncio.Task[None], grace_ms: int) -> None:
        done, _ = await asyncio.wait({task}, timeout=grace_ms / 1000)
        if done:
            return
        log.warn("grace period elapsed, forcing exit", {"grace_ms": grace_ms})
        server.force_exit = True
        done, _ = await asyncio.wait({task}, timeout=FORCE_EXIT_TIMEOUT)
        if done:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _abort(self, server: Any) -> None:
        for listener in getattr(server, "servers", []):
            listener.close()
        state = server.server_state
        for connection in list(state.connections):
            transport = getattr(connection, "transport", None)
            if transport is not None and not transport.is_closing():
                transport.close()
        pending = [t for t in list(state.tasks) if not t.done()]
        if not pending:
            return
        log.warn("abandoning in-flight requests", {"count": len(pending)})
        for t in pending:
            t.cancel()
        await asyncio.wait(pending, timeout=FORCE_EXIT_TIMEOUT)

    def _cleanup(self) -> None:
        if self._socket is not None:
            self._socket.close()
        self._socket = None
        self._server = None
        self._task = None
        self._info = None
