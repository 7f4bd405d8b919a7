"""FastAPI application factory for the context server."""

from __future__ import annotations

import json
import secrets
import time
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .. import __version__
from ..rpc.types import ErrorCode, RpcRequest, RpcResponse
from ..util.log import Log
from .dispatcher import Dispatcher
from .errors import register_error_handlers
from .schemas import ErrorResponse, HealthResponse

access = Log.create({"service": "server.access"})


def _request_id_of(payload: Any) -> Any:
    if isinstance(payload, dict) and isinstance(payload.get("id"), (str, int)):
        return payload["id"]
    return None


def create_app(dispatcher: Dispatcher, *, access_log: bool = True) -> FastAPI:
    """Create the context server application.

    ``POST /rpc`` (and ``POST /``) accept one JSON-RPC request per body.
    Malformed bodies get HTTP 400 with a JSON-RPC error envelope; every
    well-formed request gets HTTP 200, including method-level errors.
    """
    app = FastAPI(
        title="ctxbridge context server",
        version=__version__,
        responses={500: {"model": ErrorResponse}},
    )

    @app.middleware("http")
    async def _access_log(request: Request, call_next):
        rid = request.headers.get("x-request-id") or secrets.token_hex(8)
        request.state.request_id = rid
        begin = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            if access_log:
                access.error(
                    "request failed",
                    {
                        "request_id": rid,
                        "method": request.method,
                        "path": request.url.path,
                        "client_ip": request.client.host if request.client else None,
                        "duration_ms": int((time.perf_counter() - begin) * 1000),
                        "error": str(e),
                    },
                )
            raise
        response.headers["X-Request-ID"] = rid
        if not access_log:
            return response
        access.info(
            "request",
            {
                "request_id": rid,
                "method": request.method,
                "path": request.url.path,
                "rpc_method": getattr(request.state, "rpc_method", None),
                "status": response.status_code,
                "client_ip": request.client.host if request.client else None,
                "duration_ms": int((time.perf_counter() - begin) * 1000),
            },
        )
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(
            active_requests=dispatcher.active,
            max_concurrent_requests=dispatcher.limit,
        )

    @app.post("/rpc")
    @app.post("/", include_in_schema=False)
    async def rpc(request: Request) -> JSONResponse:
        body = await request.body()
        try:
            payload = json.loads(body)
        except ValueError:
            failure = RpcResponse.failure(None, ErrorCode.PARSE_ERROR, "Parse error")
            return JSONResponse(failure.to_wire(), status_code=400)

        try:
            rpc_request = RpcRequest.model_validate(payload)
        except ValidationError as e:
            failure = RpcResponse.failure(
                _request_id_of(payload),
                ErrorCode.INVALID_REQUEST,
                "Invalid JSON-RPC request",
                {"errors": e.errors(include_url=False, include_context=False, include_input=False)},
            )
            return JSONResponse(failure.to_wire(), status_code=400)

        request.state.rpc_method = rpc_request.method
        response = await dispatcher.handle(rpc_request, request_id=request.state.request_id)
        return JSONResponse(response.to_wire())

    return app
