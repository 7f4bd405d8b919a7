"""Exception handlers for routes outside the JSON-RPC dispatcher.

RPC method failures never reach these handlers; the dispatcher turns them into
error envelopes itself. What is left is routing errors (unknown path, wrong
verb) and bugs in the transport code, which are reported with the plain
``{"error": {...}}`` body described by :class:`ErrorResponse`. A crash while
serving ``/rpc`` is still answered with a JSON-RPC envelope so that clients
only ever have to parse one shape from that endpoint.
"""

from __future__ import annotations

import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..rpc.types import ErrorCode, RpcResponse
from ..util.log import Log
from .schemas import ErrorInfo, ErrorResponse

log = Log.create({"service": "server.errors"})

RPC_PATHS = frozenset({"/rpc", "/"})

_HTTP_CODES = {
    400: "bad_request",
    404: "not_found",
    405: "method_not_allowed",
}


def _request_id(request: Request) -> str | None:
    rid = getattr(request.state, "request_id", None)
    return rid if isinstance(rid, str) and rid else None


def _tagged(response: JSONResponse, request: Request) -> JSONResponse:
    rid = _request_id(request)
    if rid:
        response.headers["X-Request-ID"] = rid
    return response


def error_body(status_code: int, message: str, details: object | None = None) -> dict[str, object]:
    info = ErrorInfo(code=_HTTP_CODES.get(status_code, "http_error"), message=message, details=details)
    return ErrorResponse(error=info).model_dump(exclude_none=True)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        response = JSONResponse(error_body(exc.status_code, str(exc.detail)), status_code=exc.status_code)
        if exc.headers:
            response.headers.update(exc.headers)
        return _tagged(response, request)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        log.error("transport failure", {
            "request_id": _request_id(request),
            "method": request.method,
            "path": request.url.path,
            "rpc_method": getattr(request.state, "rpc_method", None),
            "error_type": type(exc).__name__,
            "error": str(exc),
            "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        })
        if request.url.path in RPC_PATHS and request.method == "POST":
            failure = RpcResponse.failure(None, ErrorCode.INTERNAL_ERROR, "Internal error")
            return _tagged(JSONResponse(failure.to_wire(), status_code=500), request)
        body = ErrorResponse(error=ErrorInfo(code="internal_error", message="Internal server error"))
        return _tagged(JSONResponse(body.model_dump(exclude_none=True), status_code=500), request)
