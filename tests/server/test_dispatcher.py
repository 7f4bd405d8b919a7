from __future__ import annotations

import asyncio
from typing import Any, Mapping

import pytest

from ctxbridge.core.config_schema import MockOptions
from ctxbridge.rpc.types import ErrorCode, RpcRequest
from ctxbridge.server.context_manager import ContextManager
from ctxbridge.server.dispatcher import BUSY_MESSAGE, Dispatcher


def _request(method: str, params: dict[str, Any] | None = None, request_id: int = 1) -> RpcRequest:
    return RpcRequest(method=method, params=params or {}, id=request_id)


@pytest.mark.anyio
async def test_ping() -> None:
    response = await Dispatcher(ContextManager()).handle(_request("ping"))

    assert response.to_wire() == {"jsonrpc": "2.0", "id": 1, "result": "pong"}


@pytest.mark.anyio
async def test_unknown_method_and_invalid_params() -> None:
    dispatcher = Dispatcher(ContextManager())

    missing = await dispatcher.handle(_request("nope"))
    reversed_range = await dispatcher.handle(
        _request("context/get", {"filePath": "a.py", "startLine": 10, "endLine": 2})
    )
    bool_line = await dispatcher.handle(
        _request("context/get", {"filePath": "a.py", "startLine": True, "endLine": 2})
    )
    bad_id = await dispatcher.handle(_request("requirement/get", {"requirementId": "REQ 1"}))

    assert missing.error is not None and missing.error.code == ErrorCode.METHOD_NOT_FOUND
    assert missing.error.message == "Method not found: nope"
    for response in (reversed_range, bool_line, bad_id):
        assert response.error is not None
        assert response.error.code == ErrorCode.INVALID_PARAMS


@pytest.mark.anyio
async def test_handler_failure_becomes_internal_error() -> None:
    dispatcher = Dispatcher(ContextManager())

    async def broken(params: Mapping[str, Any]) -> None:
        raise RuntimeError("database on fire")

    dispatcher.register("broken", broken)
    response = await dispatcher.handle(_request("broken"), request_id="abc")

    assert response.error is not None
    assert response.error.code == ErrorCode.INTERNAL_ERROR
    assert response.error.data == {"error": "database on fire"}
    assert dispatcher.active == 0


@pytest.mark.anyio
async def test_concurrency_limit_rejects_with_server_busy() -> None:
    dispatcher = Dispatcher(ContextManager(), max_concurrent_requests=2)
    release = asyncio.Event()
    entered = 0

    async def hold(params: Mapping[str, Any]) -> str:
        nonlocal entered
        entered += 1
        await release.wait()
        return "done"

    dispatcher.register("hold", hold)
    held = [asyncio.create_task(dispatcher.handle(_request("hold", request_id=i))) for i in range(2)]
    while entered < 2:
        await asyncio.sleep(0)

    rejected = await dispatcher.handle(_request("ping", request_id=99))
    release.set()
    finished = await asyncio.gather(*held)

    assert rejected.error is not None
    assert rejected.error.code == ErrorCode.SERVER_BUSY == -32000
    assert rejected.error.message == BUSY_MESSAGE
    assert [r.result for r in finished] == ["done", "done"]
    assert dispatcher.active == 0


@pytest.mark.anyio
async def test_raising_the_limit_applies_to_next_request() -> None:
    dispatcher = Dispatcher(ContextManager(), max_concurrent_requests=1)
    release = asyncio.Event()

    async def hold(params: Mapping[str, Any]) -> str:
        await release.wait()
        return "done"

    dispatcher.register("hold", hold)
    held = asyncio.create_task(dispatcher.handle(_request("hold")))
    while dispatcher.active < 1:
        await asyncio.sleep(0)

    busy = await dispatcher.handle(_request("ping", request_id=2))
    dispatcher.set_limit(2)
    accepted = await dispatcher.handle(_request("ping", request_id=3))
    release.set()
    await held

    assert busy.error is not None
    assert accepted.result == "pong"
    with pytest.raises(ValueError):
        dispatcher.set_limit(0)


@pytest.mark.anyio
async def test_context_upsert_get_and_clear() -> None:
    dispatcher = Dispatcher(ContextManager())
    location = {"filePath": "src/billing/invoice.py", "startLine": 5, "endLine": 15}
    pinned = {
        "requirements": [{"id": "REQ-900", "title": "Invoices are immutable"}],
        "implementationStatus": {"completionPercentage": 40},
    }

    upserted = await dispatcher.handle(_request("context/upsert", {**location, "context": pinned}))
    fetched = await dispatcher.handle(_request("context/get", {**location, "startLine": 7, "endLine": 7}))
    cleared = await dispatcher.handle(_request("context/clear", {"pattern": "billing"}))
    after = await dispatcher.handle(_request("context/get", location))

    assert upserted.result == {"ok": True}
    assert fetched.result["requirements"][0]["id"] == "REQ-900"
    assert fetched.result["implementationStatus"]["completionPercentage"] == 40
    assert cleared.result == {"ok": True, "removed": 1}
    assert after.result["requirements"][0]["id"] != "REQ-900"


@pytest.mark.anyio
async def test_requirement_sprint_patterns_and_knowledge() -> None:
    dispatcher = Dispatcher(ContextManager(MockOptions(data_size="small")))

    requirement = await dispatcher.handle(_request("requirement/get", {"requirementId": "REQ-001"}))
    unknown = await dispatcher.handle(_request("requirement/get", {"requirementId": "REQ-999"}))
    sprint = await dispatcher.handle(_request("sprint/get"))
    patterns = await dispatcher.handle(_request("patterns/get", {"technology": "Python"}))
    knowledge = await dispatcher.handle(_request("knowledge/query", {"domain": "payments"}))

    assert requirement.result["id"] == "REQ-001"
    assert unknown.result is None and unknown.error is None
    assert sprint.result["stories"]
    assert patterns.result["technology"] == "python"
    assert patterns.result["deliveryPatterns"][0]["id"] == "python-pattern-1"
    assert knowledge.result[0]["topic"] == "payments"


@pytest.mark.anyio
async def test_mock_disabled_serves_empty_context() -> None:
    dispatcher = Dispatcher(ContextManager(MockOptions(enabled=False)))

    context = await dispatcher.handle(_request("context/get", {"filePath": "a.py", "startLine": 1, "endLine": 3}))
    sprint = await dispatcher.handle(_request("sprint/get"))

    assert context.result["requirements"] == []
    assert "No business context found for a.py" in context.result["implementationStatus"]["notes"]
    assert sprint.result["sprint"]["id"] == "sprint-none"


@pytest.mark.anyio
async def test_tools_list_and_call() -> None:
    dispatcher = Dispatcher(ContextManager())

    listed = await dispatcher.handle(_request("tools/list"))
    called = await dispatcher.handle(
        _request("tools/call", {"name": "get_code_context", "arguments": {"filePath": "a.py", "startLine": 1, "endLine": 2}})
    )
    missing_name = await dispatcher.handle(_request("tools/call", {"arguments": {}}))

    names = [tool["name"] for tool in listed.result["tools"]]
    assert "get_business_context" in names and "mock_cache_clear" in names
    assert called.result["content"][0]["text"].startswith("## Business context for a.py:1-2")
    assert missing_name.error is not None and missing_name.error.code == ErrorCode.INVALID_PARAMS
