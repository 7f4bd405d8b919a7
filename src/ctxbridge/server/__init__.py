"""In-process JSON-RPC context server.

Example:
    from ctxbridge.server import ContextManager, ContextServer, Dispatcher, create_app

    dispatcher = Dispatcher(ContextManager())
    server = ContextServer(create_app(dispatcher), host="127.0.0.1", port=3001)
    info = await server.start()

Endpoints:
    POST /rpc - JSON-RPC 2.0 requests (also accepted on POST /)
    GET /health - liveness and current request load

RPC methods:
    ping, context/get, context/upsert, context/clear, requirement/get,
    sprint/get, patterns/get, knowledge/query, tools/list, tools/call
"""

from .app import create_app
from .context_manager import ContextManager
from .dispatcher import Dispatcher
from .mock_cache import MockCache
from .mock_data import MockDataProvider
from .server import ContextServer, ServerInfo

__all__ = [
    "ContextManager",
    "ContextServer",
    "Dispatcher",
    "MockCache",
    "MockDataProvider",
    "ServerInfo",
    "create_app",
]
