from __future__ import annotations

import asyncio
import socket
import time
from typing import Any, Mapping

import pytest

from ctxbridge.rpc.client import ProtocolClient
from ctxbridge.rpc.errors import RpcError
from ctxbridge.server.app import create_app
from ctxbridge.server.context_manager import ContextManager
from ctxbridge.server.dispatcher import Dispatcher
from ctxbridge.server.server import ContextServer, ServerInfo


def _server(port: int = 0, dispatcher: Dispatcher | None = None) -> ContextServer:
    app = create_app(dispatcher or Dispatcher(ContextManager()), access_log=False)
    return ContextServer(app, host="127.0.0.1", port=port)


def test_server_info_urls() -> None:
    assert ServerInfo("127.0.0.1", 3001).rpc_url == "http://127.0.0.1:3001/rpc"
    assert ServerInfo("::1", 3001).url == "http://[::1]:3001"


@pytest.mark.anyio
async def test_start_serves_requests_until_stopped() -> None:
    server = _server()
    info = await server.start()

    async with ProtocolClient(host=info.host, port=info.port, timeout_ms=2000) as client:
        assert await client.ping() is True
        context = await client.get_business_context("src/a.py", 1, 5)
        assert "requirements" in context

    await server.stop(grace_ms=500)

    assert server.running is False
    assert server.info is None
    async with ProtocolClient(host=info.host, port=info.port, timeout_ms=500) as client:
        assert await client.ping() is False


@pytest.mark.anyio
async def test_bind_failure_raises_oserror() -> None:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as held:
        held.bind(("127.0.0.1", 0))
        held.listen()
        server = _server(held.getsockname()[1])

        with pytest.raises(OSError):
            await server.start()

    assert server.running is False


@pytest.mark.anyio
async def test_exit_callback_fires_on_stop() -> None:
    server = _server()
    await server.start()
    exited = asyncio.Event()
    server.add_exit_callback(lambda _task: exited.set())

    await server.stop(grace_ms=500)
    await asyncio.wait_for(exited.wait(), timeout=1)


@pytest.mark.anyio
async def test_stop_without_start_is_a_no_op() -> None:
    server = _server()

    await server.stop(grace_ms=100)

    assert server.running is False


@pytest.mark.anyio
async def test_request_finishing_within_grace_is_answered() -> None:
    started = asyncio.Event()

    async def brief(params: Mapping[str, Any]) -> str:
        started.set()
        await asyncio.sleep(0.1)
        return "done"

    dispatcher = Dispatcher(ContextManager())
    dispatcher.register("brief", brief)
    server = _server(dispatcher=dispatcher)
    info = await server.start()

    async with ProtocolClient(host=info.host, port=info.port, timeout_ms=5000) as client:
        call = asyncio.create_task(client.call("brief"))
        await asyncio.wait_for(started.wait(), timeout=2)
        await server.stop(grace_ms=2000)

        assert await call == "done"
    assert server.running is False


@pytest.mark.anyio
async def test_straggler_is_abandoned_after_grace() -> None:
    started = asyncio.Event()
    cancelled = asyncio.Event()
    finished = asyncio.Event()

    async def stuck(params: Mapping[str, Any]) -> str:
        started.set()
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        finished.set()
        return "done"

    dispatcher = Dispatcher(ContextManager())
    dispatcher.register("stuck", stuck)
    server = _server(dispatcher=dispatcher)
    info = await server.start()

    async with ProtocolClient(host=info.host, port=info.port, timeout_ms=20_000) as client:
        call = asyncio.create_task(client.call("stuck"))
        await asyncio.wait_for(started.wait(), timeout=2)

        began = time.monotonic()
        await server.stop(grace_ms=200)
        assert time.monotonic() - began < 5

        assert cancelled.is_set()
        with pytest.raises(RpcError):
            await asyncio.wait_for(call, timeout=2)
    assert not finished.is_set()

    async with ProtocolClient(host=info.host, port=info.port, timeout_ms=500) as client:
        assert await client.ping() is False
