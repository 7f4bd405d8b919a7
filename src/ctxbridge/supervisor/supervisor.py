"""Lifecycle owner for the in-process context server.

State machine::

    Stopped -> Starting -> Running -> Stopping -> Stopped
                  |           |
                  +-> Error <-+

``Error`` is left only through an explicit :meth:`ServerSupervisor.start`,
:meth:`~ServerSupervisor.restart` or :meth:`~ServerSupervisor.stop`. The
supervisor never retries on its own; callers own the retry policy.

Every state change maps onto a :class:`ConnectionStatus` and listeners are
called synchronously, in order, once per status change. ``Stopping`` keeps the
previous status, so a start/stop cycle is reported as ``connecting``,
``connected``, ``disconnected``.

Bind and unbind work (start, stop, restart and port-changing config updates)
runs under one lock, so two binds are never in flight at once.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import time
import traceback
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, NoReturn, Optional

import psutil
from pydantic import BaseModel

from ..core.bus import Bus, BusEvent
from ..core.config_schema import ServerConfig
from ..rpc.client import ProtocolClient
from ..server.app import create_app
from ..server.context_manager import ContextManager
from ..server.dispatcher import Dispatcher
from ..server.mock_cache import MockCache
from ..server.server import ContextServer, ServerInfo
from ..util.log import Log
from .errors import (
    BindFailureError,
    InvalidConfigError,
    ServerCrashError,
    ServerStartError,
    SupervisorError,
)
from .port import FALLBACK_PORTS, find_available_port, loopback_host

log = Log.create({"service": "supervisor"})


class SupervisorState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


_STATUS_FOR_STATE = {
    SupervisorState.STARTING: ConnectionStatus.CONNECTING,
    SupervisorState.RUNNING: ConnectionStatus.CONNECTED,
    SupervisorState.STOPPED: ConnectionStatus.DISCONNECTED,
    SupervisorState.ERROR: ConnectionStatus.ERROR,
}


class ServerStatusProps(BaseModel):
    status: ConnectionStatus
    state: SupervisorState
    port: Optional[int] = None
    error: Optional[str] = None


class ConfigUpdatedProps(BaseModel):
    changed: List[str]
    restart: bool


ServerStatusChanged = BusEvent.define("server.status", ServerStatusProps)
ServerConfigUpdated = BusEvent.define("server.config.updated", ConfigUpdatedProps)


@dataclass(frozen=True)
class ProcessStats:
    is_running: bool
    uptime_ms: float
    last_error: Optional[BaseException]
    memory_usage_bytes: int
    state: SupervisorState
    port: Optional[int]
    pid: int
    healthy: bool


StatusListener = Callable[[ConnectionStatus], None]
ServerFactory = Callable[..., ContextServer]
PortFinder = Callable[..., Awaitable[int]]


class ServerSupervisor:
    """Starts, stops and watches one context server.

    Args:
        config: Initial snapshot. Validated when the server is started.
        bus: Receives ``server.status`` and ``server.config.updated`` events.
        cache_path: JSON file backing explicit context entries.
        server_factory: Builds the server for an app, host and port.
        port_finder: Resolves the port to bind from the configured one.
        fallback_ports: Candidates tried when the configured port is busy.
        access_log: Log one line per HTTP request.
    """

    def __init__(
        self,
        config: ServerConfig | None = None,
        *,
        bus: Bus | None = None,
        cache_path: str | None = None,
        server_factory: ServerFactory = ContextServer,
        port_finder: PortFinder = find_available_port,
        fallback_ports: Iterable[int] = FALLBACK_PORTS,
        access_log: bool = False,
    ) -> None:
        self._config = config or ServerConfig()
        self._bus = bus or Bus()
        self._server_factory = server_factory
        self._port_finder = port_finder
        self._fallback_ports = tuple(fallback_ports)
        self._access_log = access_log

        self._state = SupervisorState.STOPPED
        self._status = ConnectionStatus.DISCONNECTED
        self._listeners: List[StatusListener] = []
        self._lifecycle = asyncio.Lock()
        self._start_task: Optional[asyncio.Future[ServerInfo]] = None

        self._server: Optional[ContextServer] = None
        self._info: Optional[ServerInfo] = None
        self._started_at: Optional[float] = None
        self._last_error: Optional[BaseException] = None
        self._last_probe_ok: Optional[bool] = None
        self._health_task: Optional[asyncio.Task[None]] = None
        self._reaper: Optional[asyncio.Task[None]] = None
        self._process = psutil.Process()

        self.contexts = ContextManager(self._config.mock, mock_cache=MockCache(cache_path))
        self.dispatcher = Dispatcher(self.contexts, max_concurrent_requests=self._config.max_concurrent_requests)

    @property
    def config(self) -> ServerConfig:
        return self._config

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def info(self) -> Optional[ServerInfo]:
        return self._info

    @property
    def last_error(self) -> Optional[BaseException]:
        return self._last_error

    def on_status_change(self, listener: StatusListener) -> Callable[[], None]:
        """Register ``listener``; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: SupervisorState) -> None:
        previous = self._state
        self._state = state
        status = _STATUS_FOR_STATE.get(state)
        if status is None or status is self._status:
            log.debug("state changed", {"from": previous, "to": state})
            return

        self._status = status
        log.info("status changed", {"from": previous, "to": state, "status": status})
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as e:
                log.error("status listener failed", {
                    "error": str(e),
                    "status": status,
                    "traceback": traceback.format_exc(),
                })
        self._bus.publish(ServerStatusChanged, ServerStatusProps(
            status=status,
            state=state,
            port=self._info.port if self._info else None,
            error=str(self._last_error) if state is SupervisorState.ERROR and self._last_error else None,
        ))

    def _fail(self, error: BaseException) -> None:
        self._last_error = error
        log.error("server failure", {"state": self._state, "error": error})
        self._set_state(SupervisorState.ERROR)

    def _check(self, config: ServerConfig) -> None:
        problems = config.problems()
        if problems:
            error = InvalidConfigError(problems)
            self._fail(error)
            raise error

    async def start(self) -> ServerInfo:
        """Bring the server to Running and return its address.

        Concurrent callers share one start attempt. Raises
        :class:`InvalidConfigError` before doing any I/O when the config is out
        of range, and :class:`BindFailureError` or :class:`ServerStartError`
        when the server cannot be brought up.
        """
        if self._state is SupervisorState.RUNNING and self._info is not None:
            return self._info
        if self._start_task is None or self._start_task.done():
            self._check(self._config)
            self._start_task = asyncio.ensure_future(self._start_locked())
        return await asyncio.shield(self._start_task)

    async def _start_locked(self) -> ServerInfo:
        async with self._lifecycle:
            if self._state is SupervisorState.RUNNING and self._info is not None:
                return self._info
            return await self._bring_up()

    async def _bring_up(self) -> ServerInfo:
        config = self._config
        self._check(config)
        await self._await_reaper()
        self._set_state(SupervisorState.STARTING)
        port = config.port
        try:
            port = await self._port_finder(config.port, host=config.host, candidates=self._fallback_ports)
            self.contexts.mock_cache.load()
            app = create_app(self.dispatcher, access_log=self._access_log)
            server = self._server_factory(app, host=config.host, port=port)
            try:
                info = await server.start()
            except OSError as e:
                raise BindFailureError(config.host, port, e.strerror or str(e)) from e
        except asyncio.CancelledError:
            self._fail(ServerStartError("start was cancelled"))
            raise
        except SupervisorError as e:
            self._fail(e)
            raise
        except Exception as e:
            error = ServerStartError(f"server failed to start on {config.host}:{port}: {e}")
            self._fail(error)
            raise error from e

        self._server = server
        self._info = info
        self._started_at = time.perf_counter()
        self._last_error = None
        self._last_probe_ok = None
        server.add_exit_callback(lambda task: self._on_server_exit(server, task))
        self._set_state(SupervisorState.RUNNING)
        self._health_task = asyncio.create_task(self._health_loop(info), name="ctxbridge-health")
        return info

    def _on_server_exit(self, server: ContextServer, task: asyncio.Task[None]) -> None:
        if self._server is not server or self._state is not SupervisorState.RUNNING:
            return
        if task.cancelled():
            reason: BaseException | None = None
            message = "server task was cancelled"
        else:
            reason = task.exception()
            message = f"server exited unexpectedly: {reason}" if reason else "server exited unexpectedly"
        error = ServerCrashError(message)
        error.__cause__ = reason
        self._cancel_health_loop()
        self._server = None
        self._info = None
        self._started_at = None
        self._reaper = asyncio.get_running_loop().create_task(self._reap(server), name="ctxbridge-reap")
        self._fail(error)

    async def _reap(self, server: ContextServer) -> None:
        """Close what a crashed server left open so its port stops answering."""
        await server.stop(grace_ms=0)

    async def _await_reaper(self) -> None:
        task, self._reaper = self._reaper, None
        if task is not None:
            await task

    async def stop(self) -> None:
        """Drain and stop the server. A no-op when already stopped."""
        async with self._lifecycle:
            await self._tear_down()

    async def _tear_down(self) -> None:
        if self._state is SupervisorState.STOPPED:
            return
        server = self._server
        self._set_state(SupervisorState.STOPPING)
        await self._stop_health_loop()
        try:
            await self._await_reaper()
            if server is not None:
                grace_ms = self._config.shutdown_grace_ms
                with log.time("draining server", {"port": self._info.port if self._info else None, "grace_ms": grace_ms}):
                    await server.stop(grace_ms=grace_ms)
        finally:
            self._server = None
            self._info = None
            self._started_at = None
            self._last_probe_ok = None
            self._set_state(SupervisorState.STOPPED)

    async def restart(self) -> ServerInfo:
        """Stop then start under one lock hold. Concurrent :meth:`start` calls join it."""
        self._check(self._config)
        self._start_task = asyncio.ensure_future(self._restart_locked())
        return await asyncio.shield(self._start_task)

    async def _restart_locked(self) -> ServerInfo:
        async with self._lifecycle:
            await self._tear_down()
            return await self._bring_up()

    async def update_config(self, partial: Mapping[str, Any]) -> ServerConfig:
        """Merge ``partial`` into the active config.

        Fields with a restart reload policy (host, port) restart a running
        server; the rest apply to the live server. An invalid update is
        rejected and the previous snapshot stays active.
        """
        try:
            merged = self._config.merge(partial)
        except ValueError as e:
            self._reject(InvalidConfigError([str(e)]))
        problems = merged.problems()
        if problems:
            self._reject(InvalidConfigError(problems))

        previous = self._config
        changed = merged.changed_fields(previous)
        if not changed:
            return previous

        self._config = merged
        self._apply_hot(previous, merged)
        in_flight = self._start_task is not None and not self._start_task.done()
        restart = previous.requires_restart(merged) and (self._state is SupervisorState.RUNNING or in_flight)
        log.info("config updated", {"changed": changed, "restart": restart})
        self._bus.publish(ServerConfigUpdated, ConfigUpdatedProps(changed=changed, restart=restart))
        if restart:
            await self.restart()
        return merged

    def _reject(self, error: InvalidConfigError) -> NoReturn:
        self._last_error = error
        log.warn("config update rejected", {"error": error})
        if self._state not in (SupervisorState.RUNNING, SupervisorState.STARTING):
            self._set_state(SupervisorState.ERROR)
        raise error

    def _apply_hot(self, previous: ServerConfig, current: ServerConfig) -> None:
        if current.max_concurrent_requests != previous.max_concurrent_requests:
            self.dispatcher.set_limit(current.max_concurrent_requests)
        if current.mock != previous.mock:
            self.contexts.apply_mock_options(current.mock)

    def _alive(self) -> bool:
        return (
            self._state is SupervisorState.RUNNING
            and self._server is not None
            and self._server.running
        )

    def is_healthy(self) -> bool:
        """Running, serving, and the last health probe (if any) succeeded."""
        return self._alive() and self._last_probe_ok is not False

    def get_stats(self) -> ProcessStats:
        running = self._alive()
        uptime = (time.perf_counter() - self._started_at) * 1000 if running and self._started_at else 0.0
        return ProcessStats(
            is_running=running,
            uptime_ms=uptime,
            last_error=self._last_error,
            memory_usage_bytes=self._process.memory_info().rss,
            state=self._state,
            port=self._info.port if self._info else None,
            pid=os.getpid(),
            healthy=running and self._last_probe_ok is not False,
        )

    async def _health_loop(self, info: ServerInfo) -> None:
        client = ProtocolClient(host=loopback_host(info.host), port=info.port, timeout_ms=self._config.timeout_ms)
        try:
            while True:
                await asyncio.sleep(self._config.health_check_interval_ms / 1000)
                client.update_config(timeout_ms=self._config.timeout_ms)
                ok = await client.ping()
                if ok is not self._last_probe_ok:
                    (log.info if ok else log.warn)("health probe", {"ok": ok, "port": info.port})
                self._last_probe_ok = ok
                self.contexts.purge_expired()
        finally:
            await client.aclose()

    def _cancel_health_loop(self) -> None:
        if self._health_task is not None:
            self._health_task.cancel()
        self._health_task = None

    async def _stop_health_loop(self) -> None:
        task = self._health_task
        self._cancel_health_loop()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
