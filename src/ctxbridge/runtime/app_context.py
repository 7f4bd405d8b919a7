"""Application runtime context and lifecycle container."""

from __future__ import annotations

from typing import Any, Optional

from ..core.bus import Bus
from ..core.config import ConfigManager
from ..core.config_schema import Config
from ..core.global_paths import GlobalPath
from ..hybrid.client import HybridContextClient
from ..rpc.client import ProtocolClient
from ..server.server import ServerInfo
from ..supervisor.port import loopback_host
from ..supervisor.supervisor import ServerSupervisor
from ..util.log import Log
from .retry import ActivationRetry

log = Log.create({"service": "runtime"})


class AppContext:
    """Application-level service container.

    Created once per process (a CLI command or a long-running ``serve``) and
    passed to everything that needs the bus, the supervisor or the clients,
    never a freshly constructed instance.

    The local :class:`ProtocolClient` is retargeted at the supervised server
    every time it comes up, so consumers can hold on to ``local`` and
    ``hybrid`` across restarts.
    """

    __slots__ = (
        "config",
        "config_manager",
        "bus",
        "supervisor",
        "local",
        "hybrid",
        "activated",
    )

    def __init__(
        self,
        config: Config | None = None,
        *,
        directory: str = ".",
        bus: Bus | None = None,
        **supervisor_options: Any,
    ) -> None:
        self.config = config or Config()
        self.config_manager = ConfigManager(directory)
        self.bus = bus or Bus()
        server = self.config.server
        self.supervisor = ServerSupervisor(
            server,
            bus=self.bus,
            cache_path=self.config.cache_path or GlobalPath.mock_cache(),
            **supervisor_options,
        )
        self.local = ProtocolClient(host=loopback_host(server.host), port=server.port, timeout_ms=server.timeout_ms)
        self.hybrid = HybridContextClient(self.local)
        self.activated = False
        self.supervisor.on_status_change(lambda _status: self._follow_server(self.supervisor.info))

    @classmethod
    async def load(cls, directory: str = ".", **kwargs: Any) -> "AppContext":
        """Build a context from the config files visible from ``directory``."""
        manager = ConfigManager(directory)
        context = cls(await manager.get(), directory=directory, **kwargs)
        context.config_manager = manager
        return context

    async def activate(self) -> ServerInfo:
        """Start the server, retrying bind and startup failures with backoff.

        Attempts ``1 + retry_attempts`` starts in total. Invalid config is
        raised immediately.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                info = await self.supervisor.start()
                break
            except Exception as e:
                retries = self.supervisor.config.retry_attempts
                if not ActivationRetry.retryable(e) or attempt > retries:
                    log.error("activation failed", {"attempt": attempt, "error": e})
                    raise
                delay = ActivationRetry.delay_ms(attempt)
                log.warn("activation failed, retrying", {"attempt": attempt, "delay_ms": delay, "error": e})
                await ActivationRetry.sleep(delay)

        self._follow_server(info)
        remote = self.config.remote
        if remote.enabled and remote.url:
            await self.hybrid.configure_remote_server(remote.url, remote.api_key)
        self.activated = True
        log.info("activated", {"url": info.url, "attempts": attempt})
        return info

    def _follow_server(self, info: Optional[ServerInfo]) -> None:
        if info is None:
            return
        self.local.update_config(port=info.port, timeout_ms=self.supervisor.config.timeout_ms)

    async def shutdown(self) -> None:
        errors = []
        for step in (self.supervisor.stop, self.hybrid.aclose, self.local.aclose):
            try:
                await step()
            except Exception as e:
                errors.append(e)
        self.bus.clear()
        self.activated = False
        if errors:
            log.warn("shutdown completed with errors", {"errors": [str(e) for e in errors]})

