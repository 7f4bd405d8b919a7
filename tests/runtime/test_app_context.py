from __future__ import annotations

import pytest

from ctxbridge.core.config_schema import Config, RemoteConfig
from ctxbridge.runtime.app_context import AppContext
from ctxbridge.runtime.retry import ActivationRetry
from ctxbridge.supervisor import BindFailureError, InvalidConfigError, SupervisorState
from tests.helpers import FakeServerFactory, closed_port, passthrough_port, server_config


def _config(**server: object) -> Config:
    return Config(server=server_config(**server))


def _no_sleep(monkeypatch) -> list[int]:  # type: ignore[no-untyped-def]
    delays: list[int] = []

    async def fake_sleep(ms: int) -> None:
        delays.append(ms)

    monkeypatch.setattr(ActivationRetry, "sleep", staticmethod(fake_sleep))
    return delays


def test_retry_delays_back_off_to_a_cap() -> None:
    assert [ActivationRetry.delay_ms(n) for n in (1, 2, 3, 4, 5, 6)] == [500, 1000, 2000, 4000, 5000, 5000]
    assert ActivationRetry.retryable(BindFailureError("127.0.0.1", 3001, "in use")) is True
    assert ActivationRetry.retryable(InvalidConfigError(["bad"])) is False


@pytest.mark.anyio
async def test_activate_retries_start_failures(monkeypatch) -> None:  # type: ignore[no-untyped-def]
    delays = _no_sleep(monkeypatch)
    factory = FakeServerFactory(start_errors=[OSError(98, "Address already in use"), RuntimeError("boom")])
    app = AppContext(_config(port=4300), server_factory=factory, port_finder=passthrough_port)

    info = await app.activate()

    assert info.port == 4300
    assert len(factory.instances) == 3
    assert delays == [500, 1000]
    assert app.activated is True
    assert app.local.port == 4300
    await app.shutdown()
    assert app.activated is False


@pytest.mark.anyio
async def test_activate_gives_up_after_retry_attempts(monkeypatch) -> None:  # type: ignore[no-untyped-def]
    delays = _no_sleep(monkeypatch)
    factory = FakeServerFactory(start_errors=[OSError(98, "Address already in use")] * 5)
    app = AppContext(_config(retry_attempts=2), server_factory=factory, port_finder=passthrough_port)

    with pytest.raises(BindFailureError):
        await app.activate()

    assert len(factory.instances) == 3
    assert delays == [500, 1000]
    assert app.supervisor.state is SupervisorState.ERROR
    await app.shutdown()


@pytest.mark.anyio
async def test_invalid_config_is_not_retried(monkeypatch) -> None:  # type: ignore[no-untyped-def]
    delays = _no_sleep(monkeypatch)
    factory = FakeServerFactory()
    app = AppContext(_config(port=99999), server_factory=factory, port_finder=passthrough_port)

    with pytest.raises(InvalidConfigError):
        await app.activate()

    assert delays == []
    assert factory.instances == []


@pytest.mark.anyio
async def test_connectivity_against_real_server_with_unreachable_remote() -> None:
    config = _config().model_copy(update={"remote": RemoteConfig(url=f"http://127.0.0.1:{closed_port()}/rpc")})
    app = AppContext(config)

    info = await app.activate()
    report = await app.hybrid.test_connectivity()
    context = await app.hybrid.get_hybrid_context("src/auth/AuthService.ts", 1, 20)

    assert app.local.port == info.port
    assert app.hybrid.remote_url == config.remote.url
    assert report.local is True
    assert report.local_latency_ms is not None and report.local_latency_ms < 1000
    assert report.remote is False
    assert context.local.source == "local"
    assert context.remote.source == "fallback"
    await app.shutdown()


@pytest.mark.anyio
async def test_disabled_remote_is_not_configured() -> None:
    config = _config().model_copy(update={"remote": RemoteConfig(url="http://remote.example/rpc", enabled=False)})
    app = AppContext(config, server_factory=FakeServerFactory(), port_finder=passthrough_port)

    await app.activate()

    assert app.hybrid.remote is None
    await app.shutdown()


@pytest.mark.anyio
async def test_local_client_follows_restarts() -> None:
    app = AppContext(_config(port=4400), server_factory=FakeServerFactory(), port_finder=passthrough_port)
    await app.activate()

    await app.supervisor.update_config({"port": 4401, "timeoutMs": 1200})

    assert app.local.port == 4401
    assert app.local.timeout_ms == 1200
    await app.shutdown()


@pytest.mark.anyio
async def test_load_reads_project_config(tmp_path) -> None:  # type: ignore[no-untyped-def]
    (tmp_path / "ctxbridge.jsonc").write_text(
        '{\n  // project settings\n  "server": {"port": 4555, "timeoutMs": 900}\n}\n',
        encoding="utf-8",
    )

    app = await AppContext.load(str(tmp_path))

    assert app.config.server.port == 4555
    assert app.local.port == 4555
    assert app.local.timeout_ms == 900
    assert app.config_manager.directory == str(tmp_path)
