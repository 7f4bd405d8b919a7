"""Errors raised by :class:`ctxbridge.rpc.client.ProtocolClient`."""

from __future__ import annotations

from typing import Any


class RpcError(RuntimeError):
    """Base class for failed RPC calls."""

    def __init__(self, message: str, *, method: str | None = None, url: str | None = None) -> None:
        super().__init__(message)
        self.method = method
        self.url = url


class RpcTimeoutError(RpcError):
    """No response arrived within the call timeout."""

    def __init__(self, method: str, timeout_ms: int, url: str | None = None) -> None:
        super().__init__(f"{method} timed out after {timeout_ms}ms", method=method, url=url)
        self.timeout_ms = timeout_ms


class RpcConnectionError(RpcError):
    """The endpoint refused or could not accept the connection."""


class RpcNetworkError(RpcError):
    """A transport failure other than a refused connection."""


class RpcHttpError(RpcError):
    """The endpoint answered with a non-success HTTP status and no RPC error body."""

    def __init__(
        self,
        status_code: int,
        message: str,
        *,
        method: str | None = None,
        url: str | None = None,
        payload: Any | None = None,
    ) -> None:
        super().__init__(message, method=method, url=url)
        self.status_code = status_code
        self.payload = payload


class RpcServerError(RpcError):
    """The server returned a JSON-RPC error object."""

    def __init__(
        self,
        code: int,
        message: str,
        *,
        data: Any | None = None,
        method: str | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message, method=method, url=url)
        self.code = code
        self.data = data


class RpcProtocolError(RpcError):
    """The response could not be parsed or did not match the request."""
