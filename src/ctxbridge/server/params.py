"""Parameter validation shared by RPC methods and tools."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import ValidationError

from .models import BusinessContext, CodeLocation

REQUIREMENT_ID = re.compile(r"^[A-Za-z0-9_-]+$")


class InvalidParamsError(ValueError):
    """Request parameters failed validation."""


def _positive_int(params: Mapping[str, Any], key: str) -> int:
    value = params.get(key)
    # bool is an int subclass and never a valid line number
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParamsError(f"{key} must be an integer")
    if value < 1:
        raise InvalidParamsError(f"{key} must be >= 1")
    return value


def parse_location(params: Mapping[str, Any]) -> CodeLocation:
    file_path = params.get("filePath")
    if not isinstance(file_path, str) or not file_path.strip():
        raise InvalidParamsError("filePath must be a non-empty string")
    start_line = _positive_int(params, "startLine")
    end_line = _positive_int(params, "endLine")
    if end_line < start_line:
        raise InvalidParamsError("endLine must be >= startLine")
    symbol = params.get("symbolName")
    if symbol is not None and not isinstance(symbol, str):
        raise InvalidParamsError("symbolName must be a string")
    return CodeLocation(file_path=file_path, start_line=start_line, end_line=end_line, symbol_name=symbol or None)


def parse_requirement_id(params: Mapping[str, Any]) -> str:
    value = params.get("requirementId")
    if not isinstance(value, str) or not REQUIREMENT_ID.match(value):
        raise InvalidParamsError("requirementId must match [A-Za-z0-9_-]+")
    return value


def parse_context(params: Mapping[str, Any]) -> BusinessContext:
    raw = params.get("context")
    if not isinstance(raw, Mapping):
        raise InvalidParamsError("context must be an object")
    data = dict(raw)
    if "lastUpdated" not in data and "last_updated" not in data:
        data["lastUpdated"] = datetime.now(timezone.utc).isoformat()
    try:
        return BusinessContext.model_validate(data)
    except ValidationError as e:
        raise InvalidParamsError(f"invalid context: {e.error_count()} validation error(s)") from e


def optional_str(params: Mapping[str, Any], key: str) -> str | None:
    value = params.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise InvalidParamsError(f"{key} must be a string")
    return value
