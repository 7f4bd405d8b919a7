"""JSON-RPC 2.0 envelopes shared by the context server and its clients."""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

RequestId = Union[str, int]


class ErrorCode(IntEnum):
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    SERVER_BUSY = -32000


class RpcRequest(BaseModel):
    """Request envelope. ``params`` is always an object."""
    jsonrpc: Literal["2.0"] = "2.0"
    method: str = Field(min_length=1)
    params: Dict[str, Any] = Field(default_factory=dict)
    id: RequestId

    model_config = ConfigDict(extra="forbid")


class RpcErrorObject(BaseModel):
    code: int
    message: str
    data: Optional[Any] = None


class RpcResponse(BaseModel):
    """Response envelope carrying exactly one of ``result`` or ``error``."""
    jsonrpc: Literal["2.0"] = "2.0"
    id: Optional[RequestId] = None
    result: Optional[Any] = None
    error: Optional[RpcErrorObject] = None

    @classmethod
    def success(cls, request_id: RequestId | None, result: Any) -> "RpcResponse":
        return cls(id=request_id, result=result)

    @classmethod
    def failure(
        cls,
        request_id: RequestId | None,
        code: int,
        message: str,
        data: Any | None = None,
    ) -> "RpcResponse":
        return cls(id=request_id, error=RpcErrorObject(code=int(code), message=message, data=data))

    def to_wire(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error.model_dump(exclude_none=True)
        else:
            payload["result"] = self.result
        return payload
