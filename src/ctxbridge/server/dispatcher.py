"""JSON-RPC method table for the context server."""

from __future__ import annotations

import traceback
from typing import Any, Awaitable, Callable, Dict, List, Mapping

from ..rpc.types import ErrorCode, RpcRequest, RpcResponse
from ..util.log import Log
from .context_manager import ContextManager
from .params import (
    InvalidParamsError,
    optional_str,
    parse_context,
    parse_location,
    parse_requirement_id,
)
from .tools import ToolRunner

log = Log.create({"service": "server.rpc"})

MethodHandler = Callable[[Mapping[str, Any]], Awaitable[Any]]

BUSY_MESSAGE = "Server busy - too many concurrent requests"


class Dispatcher:
    """Routes requests to handlers and enforces the concurrency limit.

    The limit is read on every request, so :meth:`set_limit` takes effect for
    the next request without touching requests already in flight.
    """

    def __init__(self, contexts: ContextManager, *, max_concurrent_requests: int = 10) -> None:
        self.contexts = contexts
        self.tools = ToolRunner(contexts)
        self._limit = max_concurrent_requests
        self._active = 0
        self._methods: Dict[str, MethodHandler] = {
            "ping": self._ping,
            "context/get": self._context_get,
            "context/upsert": self._context_upsert,
            "context/clear": self._context_clear,
            "requirement/get": self._requirement_get,
            "sprint/get": self._sprint_get,
            "patterns/get": self._patterns_get,
            "knowledge/query": self._knowledge_query,
            "tools/list": self._tools_list,
            "tools/call": self._tools_call,
        }

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def active(self) -> int:
        return self._active

    def set_limit(self, limit: int) -> None:
        if limit < 1:
            raise ValueError("concurrency limit must be at least 1")
        self._limit = limit

    def methods(self) -> List[str]:
        return sorted(self._methods)

    def register(self, method: str, handler: MethodHandler) -> None:
        self._methods[method] = handler

    async def handle(self, request: RpcRequest, *, request_id: str | None = None) -> RpcResponse:
        if self._active >= self._limit:
            log.warn("request rejected, server busy", {
                "method": request.method,
                "active": self._active,
                "limit": self._limit,
                "request_id": request_id,
            })
            return RpcResponse.failure(request.id, ErrorCode.SERVER_BUSY, BUSY_MESSAGE)

        handler = self._methods.get(request.method)
        if handler is None:
            return RpcResponse.failure(request.id, ErrorCode.METHOD_NOT_FOUND, f"Method not found: {request.method}")

        self._active += 1
        try:
            result = await handler(request.params)
        except InvalidParamsError as e:
            return RpcResponse.failure(request.id, ErrorCode.INVALID_PARAMS, str(e))
        except Exception as e:
            log.error("rpc handler failed", {
                "method": request.method,
                "request_id": request_id,
                "error_type": type(e).__name__,
                "error": str(e),
                "traceback": "".join(traceback.format_exception(type(e), e, e.__traceback__)),
            })
            return RpcResponse.failure(request.id, ErrorCode.INTERNAL_ERROR, "Internal error", {"error": str(e)})
        finally:
            self._active -= 1
        return RpcResponse.success(request.id, result)

    async def _ping(self, params: Mapping[str, Any]) -> str:
        return "pong"

    async def _context_get(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        return self.contexts.get_business_context(parse_location(params)).to_wire()

    async def _context_upsert(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        self.contexts.store(parse_location(params), parse_context(params))
        return {"ok": True}

    async def _context_clear(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        removed = self.contexts.clear_stored(optional_str(params, "pattern"))
        return {"ok": True, "removed": removed}

    async def _requirement_get(self, params: Mapping[str, Any]) -> Dict[str, Any] | None:
        requirement = self.contexts.get_requirement(parse_requirement_id(params))
        return requirement.to_wire() if requirement else None

    async def _sprint_get(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        return self.contexts.sprint_context().to_wire()

    async def _patterns_get(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        technology = optional_str(params, "technology") or "general"
        return self.contexts.intelligence(technology).to_wire()

    async def _knowledge_query(self, params: Mapping[str, Any]) -> List[Dict[str, Any]]:
        domain = optional_str(params, "domain") or "general"
        return [item.to_wire() for item in self.contexts.knowledge(domain)]

    async def _tools_list(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        return {"tools": self.tools.definitions()}

    async def _tools_call(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise InvalidParamsError("name must be a non-empty string")
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, Mapping):
            raise InvalidParamsError("arguments must be an object")
        return await self.tools.call(name, arguments)
