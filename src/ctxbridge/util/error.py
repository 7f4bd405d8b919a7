"""Error formatting for command-line output."""

import json
import traceback
from typing import Any

from ..core.config import ConfigError
from ..rpc.errors import (
    RpcConnectionError,
    RpcHttpError,
    RpcServerError,
    RpcTimeoutError,
)
from ..supervisor.errors import BindFailureError, InvalidConfigError


def format_error(error: Any) -> str | None:
    """Format known ctxbridge errors into one readable line.

    Returns None if the error type is not recognized, allowing
    fallback to format_unknown_error.
    """
    if isinstance(error, InvalidConfigError):
        return "Invalid server configuration:\n" + "\n".join(f"  - {p}" for p in error.problems)
    if isinstance(error, BindFailureError):
        return f"Could not listen on {error.host}:{error.port} ({error.reason})"
    if isinstance(error, ConfigError):
        return str(error)
    if isinstance(error, RpcTimeoutError):
        return f"Context server did not answer {error.method} within {error.timeout_ms}ms"
    if isinstance(error, RpcConnectionError):
        return f"Context server is not reachable at {error.url}"
    if isinstance(error, RpcServerError):
        return f"Context server error {error.code}: {error}"
    if isinstance(error, RpcHttpError):
        return f"Context server returned HTTP {error.status_code}: {error}"
    return None


def format_unknown_error(error: Any) -> str:
    """Format any error into a string representation."""
    if isinstance(error, BaseException):
        if error.__traceback__:
            return "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return f"{error.__class__.__name__}: {error}"

    if isinstance(error, (dict, list)):
        try:
            return json.dumps(error, indent=2)
        except (TypeError, ValueError):
            return "Unexpected error (unserializable)"

    return str(error)
