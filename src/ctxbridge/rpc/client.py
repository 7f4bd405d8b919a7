"""JSON-RPC client for a context server reachable over HTTP."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from ..core.config_schema import DEFAULT_HOST, DEFAULT_PORT
from ..core.id import Identifier
from ..util.log import Log
from .errors import (
    RpcConnectionError,
    RpcHttpError,
    RpcNetworkError,
    RpcProtocolError,
    RpcServerError,
    RpcTimeoutError,
)
from .types import RpcRequest

log = Log.create({"service": "rpc.client"})

DEFAULT_TIMEOUT_MS = 30000
PING_TIMEOUT_MS = 2000
RPC_PATH = "/rpc"


@dataclass(frozen=True)
class Endpoint:
    url: str
    timeout_ms: int


class ProtocolClient:
    """Issues JSON-RPC calls to one endpoint.

    The endpoint is either built from ``host``/``port`` or given verbatim as
    ``url`` (remote servers). Each call snapshots the endpoint when it starts,
    so :meth:`update_config` only affects calls made afterwards.
    """

    def __init__(
        self,
        *,
        port: int = DEFAULT_PORT,
        host: str = DEFAULT_HOST,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        path: str = RPC_PATH,
        url: str | None = None,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._path = path
        self._fixed_url = url
        self._endpoint = Endpoint(url=url or self._build_url(host, port, path), timeout_ms=timeout_ms)
        # The per-call deadline is enforced by asyncio.wait_for, not by httpx.
        self._client = httpx.AsyncClient(transport=transport, headers=headers, timeout=None)

    @staticmethod
    def _build_url(host: str, port: int, path: str) -> str:
        return f"http://{host}:{port}{path}"

    @property
    def url(self) -> str:
        return self._endpoint.url

    @property
    def port(self) -> int | None:
        return None if self._fixed_url else self._port

    @property
    def timeout_ms(self) -> int:
        return self._endpoint.timeout_ms

    def update_config(self, port: int | None = None, timeout_ms: int | None = None) -> None:
        """Point later calls at a new port and/or timeout."""
        if port is not None and self._fixed_url:
            raise ValueError("port cannot be changed for a client bound to a fixed url")
        if port is not None:
            self._port = port
        url = self._fixed_url or self._build_url(self._host, self._port, self._path)
        timeout = timeout_ms if timeout_ms is not None else self._endpoint.timeout_ms
        self._endpoint = Endpoint(url=url, timeout_ms=timeout)
        log.debug("client config updated", {"url": url, "timeout_ms": timeout})

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ProtocolClient":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def call(
        self,
        method: str,
        params: Mapping[str, Any] | None = None,
        timeout_ms: int | None = None,
    ) -> Any:
        """Send one request and return its ``result``.

        Raises :class:`RpcTimeoutError` when no response arrives in time; the
        outbound request is cancelled together with the wait.
        """
        endpoint = self._endpoint
        timeout = timeout_ms if timeout_ms is not None else endpoint.timeout_ms
        request = RpcRequest(method=method, params=dict(params or {}), id=Identifier.ascending("call"))
        try:
            return await asyncio.wait_for(self._exchange(endpoint.url, request), timeout / 1000)
        except asyncio.TimeoutError:
            raise RpcTimeoutError(method, timeout, url=endpoint.url) from None

    async def _exchange(self, url: str, request: RpcRequest) -> Any:
        method = request.method
        try:
            response = await self._client.post(url, json=request.model_dump())
        except httpx.ConnectError as e:
            raise RpcConnectionError(f"cannot connect to {url}: {e}", method=method, url=url) from e
        except httpx.TransportError as e:
            raise RpcNetworkError(f"{type(e).__name__} calling {url}: {e}", method=method, url=url) from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
            error = payload["error"]
            raise RpcServerError(
                int(error.get("code", 0)),
                str(error.get("message") or "unknown error"),
                data=error.get("data"),
                method=method,
                url=url,
            )
        if not response.is_success:
            raise RpcHttpError(
                response.status_code,
                f"HTTP {response.status_code} for {method}",
                method=method,
                url=url,
                payload=payload if payload is not None else response.text,
            )
        if not isinstance(payload, dict) or "result" not in payload:
            raise RpcProtocolError(f"malformed response to {method}", method=method, url=url)
        if payload.get("id") != request.id:
            raise RpcProtocolError(
                f"response id {payload.get('id')!r} does not match request id {request.id!r}",
                method=method,
                url=url,
            )
        return payload["result"]

    async def ping(self) -> bool:
        """Return True when the server answers ``ping``. Never raises."""
        timeout = min(PING_TIMEOUT_MS, self._endpoint.timeout_ms)
        try:
            await self.call("ping", timeout_ms=timeout)
        except Exception as e:
            log.debug("ping failed", {"url": self._endpoint.url, "error": e})
            return False
        return True

    async def get_business_context(
        self,
        file_path: str,
        start_line: int,
        end_line: int,
        symbol_name: str | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"filePath": file_path, "startLine": start_line, "endLine": end_line}
        if symbol_name:
            params["symbolName"] = symbol_name
        result = await self.call("context/get", params)
        return result if isinstance(result, dict) else {}

    async def get_requirement(self, requirement_id: str) -> dict[str, Any] | None:
        result = await self.call("requirement/get", {"requirementId": requirement_id})
        return result if isinstance(result, dict) else None

    async def get_sprint_context(self) -> dict[str, Any]:
        result = await self.call("sprint/get")
        return result if isinstance(result, dict) else {}

    async def upsert_context(
        self,
        file_path: str,
        start_line: int,
        end_line: int,
        context: Mapping[str, Any],
    ) -> None:
        await self.call(
            "context/upsert",
            {"filePath": file_path, "startLine": start_line, "endLine": end_line, "context": dict(context)},
        )

    async def clear_context(self, pattern: str | None = None) -> int:
        result = await self.call("context/clear", {"pattern": pattern} if pattern else {})
        return int(result.get("removed", 0)) if isinstance(result, dict) else 0

    async def list_tools(self) -> list[dict[str, Any]]:
        result = await self.call("tools/list")
        tools = result.get("tools") if isinstance(result, dict) else None
        return tools if isinstance(tools, list) else []

    async def call_tool(self, name: str, arguments: Mapping[str, Any] | None = None) -> dict[str, Any]:
        result = await self.call("tools/call", {"name": name, "arguments": dict(arguments or {})})
        return result if isinstance(result, dict) else {}

    async def get_intelligence(self, technology: str) -> dict[str, Any]:
        result = await self.call("patterns/get", {"technology": technology})
        return result if isinstance(result, dict) else {}

    async def query_knowledge(self, domain: str) -> list[dict[str, Any]]:
        result = await self.call("knowledge/query", {"domain": domain})
        return result if isinstance(result, list) else []
