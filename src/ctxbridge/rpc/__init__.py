"""JSON-RPC envelopes and the HTTP protocol client."""

from .client import ProtocolClient
from .errors import (
    RpcConnectionError,
    RpcError,
    RpcHttpError,
    RpcNetworkError,
    RpcProtocolError,
    RpcServerError,
    RpcTimeoutError,
)
from .types import ErrorCode, RpcRequest, RpcResponse

__all__ = [
    "ErrorCode",
    "ProtocolClient",
    "RpcConnectionError",
    "RpcError",
    "RpcHttpError",
    "RpcNetworkError",
    "RpcProtocolError",
    "RpcRequest",
    "RpcResponse",
    "RpcServerError",
    "RpcTimeoutError",
]
