"""Shared test helpers."""

from __future__ import annotations

import asyncio
import socket
from typing import Any, Iterable

import httpx

from ctxbridge.core.config_schema import ServerConfig
from ctxbridge.rpc.client import ProtocolClient
from ctxbridge.server.app import create_app
from ctxbridge.server.context_manager import ContextManager
from ctxbridge.server.dispatcher import Dispatcher
from ctxbridge.server.server import ServerInfo
from ctxbridge.supervisor.supervisor import ServerSupervisor


def server_config(**overrides: Any) -> ServerConfig:
    """Snapshot suited to tests: OS-assigned port, short grace, no background probes."""
    values: dict[str, Any] = {
        "port": 0,
        "shutdown_grace_ms": 500,
        "health_check_interval_ms": 60_000,
    }
    values.update(overrides)
    return ServerConfig(**values)


def closed_port() -> int:
    """A port nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def asgi_client(dispatcher: Dispatcher | None = None, **kwargs: Any) -> ProtocolClient:
    """ProtocolClient wired to an in-process app, no sockets involved."""
    app = create_app(dispatcher or Dispatcher(ContextManager()), access_log=False)
    return ProtocolClient(host="testserver", port=80, transport=httpx.ASGITransport(app=app), **kwargs)


class FakeContextServer:
    """Stands in for ContextServer; serves nothing but follows the same lifecycle."""

    def __init__(self, app: Any, *, host: str, port: int, start_error: BaseException | None = None) -> None:
        self.app = app
        self.host = host
        self.port = port
        self.start_error = start_error
        self.stopped = False
        self.stop_grace_ms: int | None = None
        self._exit = asyncio.Event()
        self._crash: BaseException | None = None
        self._task: asyncio.Task[None] | None = None
        self._info: ServerInfo | None = None

    @property
    def info(self) -> ServerInfo | None:
        return self._info

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def add_exit_callback(self, callback: Any) -> None:
        assert self._task is not None
        self._task.add_done_callback(callback)

    async def _serve(self) -> None:
        await self._exit.wait()
        if self._crash is not None:
            raise self._crash

    async def start(self) -> ServerInfo:
        if self.start_error is not None:
            raise self.start_error
        self._task = asyncio.create_task(self._serve())
        self._info = ServerInfo(host=self.host, port=self.port or 40_000)
        return self._info

    async def stop(self, grace_ms: int) -> None:
        self.stopped = True
        self.stop_grace_ms = grace_ms
        self._exit.set()
        if self._task is not None:
            await asyncio.wait({self._task})
        self._info = None

    async def crash(self, error: BaseException) -> None:
        self._crash = error
        self._exit.set()
        assert self._task is not None
        await asyncio.wait({self._task})
        # done callbacks run on the next loop iteration
        await asyncio.sleep(0)


class FakeServerFactory:
    def __init__(self, start_errors: Iterable[BaseException | None] = ()) -> None:
        self.instances: list[FakeContextServer] = []
        self._start_errors = list(start_errors)

    def __call__(self, app: Any, *, host: str, port: int) -> FakeContextServer:
        error = self._start_errors.pop(0) if self._start_errors else None
        server = FakeContextServer(app, host=host, port=port, start_error=error)
        self.instances.append(server)
        return server

    @property
    def last(self) -> FakeContextServer:
        return self.instances[-1]


async def passthrough_port(preferred: int, *, host: str, candidates: Iterable[int]) -> int:
    return preferred


def fake_supervisor(config: ServerConfig | None = None, **kwargs: Any) -> tuple[ServerSupervisor, FakeServerFactory]:
    factory = kwargs.pop("server_factory", None) or FakeServerFactory()
    supervisor = ServerSupervisor(
        config or server_config(),
        server_factory=factory,
        port_finder=passthrough_port,
        **kwargs,
    )
    return supervisor, factory
