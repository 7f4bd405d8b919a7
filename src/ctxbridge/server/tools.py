"""MCP-style tools exposed through ``tools/list`` and ``tools/call``.

A tool result is ``{"content": [{"type": "text", "text": ...}]}``; failures
are reported in-band with ``"isError": true`` instead of as RPC errors.
"""

from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, Dict, List, Mapping

from ..util.log import Log
from .context_manager import ContextManager
from .models import BusinessContext
from .params import InvalidParamsError, optional_str, parse_context, parse_location, parse_requirement_id

log = Log.create({"service": "server.tools"})

_LOCATION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "filePath": {"type": "string", "description": "Path of the source file"},
        "startLine": {"type": "integer", "minimum": 1},
        "endLine": {"type": "integer", "minimum": 1},
        "symbolName": {"type": "string"},
    },
    "required": ["filePath", "startLine", "endLine"],
}

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "name": "get_business_context",
        "description": "Business requirements, implementation status and related changes for a code range",
        "inputSchema": _LOCATION_SCHEMA,
    },
    {
        "name": "get_code_context",
        "description": "Markdown summary of the business context for a code range",
        "inputSchema": _LOCATION_SCHEMA,
    },
    {
        "name": "get_requirement_details",
        "description": "Full details of one requirement",
        "inputSchema": {
            "type": "object",
            "properties": {"requirementId": {"type": "string", "pattern": "^[A-Za-z0-9_-]+$"}},
            "required": ["requirementId"],
        },
    },
    {
        "name": "get_sprint_context",
        "description": "Current sprint, its stories and the team's working patterns",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "mock_cache_upsert",
        "description": "Store explicit business context for a code range",
        "inputSchema": {
            "type": "object",
            "properties": {**_LOCATION_SCHEMA["properties"], "context": {"type": "object"}},
            "required": ["filePath", "startLine", "endLine", "context"],
        },
    },
    {
        "name": "mock_cache_clear",
        "description": "Remove explicit context entries for files whose path contains the pattern",
        "inputSchema": {"type": "object", "properties": {"pattern": {"type": "string"}}},
    },
]


def text_result(payload: Any, *, is_error: bool = False) -> Dict[str, Any]:
    text = payload if isinstance(payload, str) else json.dumps(payload, indent=2)
    result: Dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if is_error:
        result["isError"] = True
    return result


def render_markdown(context: BusinessContext, location_label: str) -> str:
    lines = [f"## Business context for {location_label}", ""]
    if not context.requirements:
        lines.append(context.implementation_status.notes or "No requirements linked to this code.")
    for requirement in context.requirements:
        lines.append(f"- **{requirement.id}** {requirement.title} ({requirement.priority.value}, {requirement.status.value})")
    status = context.implementation_status
    lines += ["", f"Implementation: {status.completion_percentage}% complete"]
    if context.related_changes:
        lines += ["", "Recent changes:"]
        lines += [f"- {c.id} {c.description} ({c.author})" for c in context.related_changes[:5]]
    return "\n".join(lines)


ToolHandler = Callable[[Mapping[str, Any]], Awaitable[Dict[str, Any]]]


class ToolRunner:
    def __init__(self, contexts: ContextManager) -> None:
        self.contexts = contexts
        self._handlers: Dict[str, ToolHandler] = {
            "get_business_context": self._business_context,
            "get_code_context": self._code_context,
            "get_requirement_details": self._requirement_details,
            "get_sprint_context": self._sprint_context,
            "mock_cache_upsert": self._mock_cache_upsert,
            "mock_cache_clear": self._mock_cache_clear,
        }

    def definitions(self) -> List[Dict[str, Any]]:
        return [tool for tool in TOOL_DEFINITIONS if tool["name"] in self._handlers]

    async def call(self, name: str, arguments: Mapping[str, Any]) -> Dict[str, Any]:
        handler = self._handlers.get(name)
        if handler is None:
            log.warn("unknown tool", {"tool": name})
            return text_result(f"Unknown tool: {name}", is_error=True)
        try:
            return await handler(arguments)
        except InvalidParamsError as e:
            log.info("tool arguments rejected", {"tool": name, "error": str(e)})
            return text_result(f"Invalid arguments for {name}: {e}", is_error=True)

    async def _business_context(self, arguments: Mapping[str, Any]) -> Dict[str, Any]:
        context = self.contexts.get_business_context(parse_location(arguments))
        return text_result(context.to_wire())

    async def _code_context(self, arguments: Mapping[str, Any]) -> Dict[str, Any]:
        location = parse_location(arguments)
        context = self.contexts.get_business_context(location)
        label = f"{location.file_path}:{location.start_line}-{location.end_line}"
        return text_result(render_markdown(context, label))

    async def _requirement_details(self, arguments: Mapping[str, Any]) -> Dict[str, Any]:
        requirement_id = parse_requirement_id(arguments)
        requirement = self.contexts.get_requirement(requirement_id)
        if requirement is None:
            return text_result(f"Requirement not found: {requirement_id}", is_error=True)
        return text_result(requirement.to_wire())

    async def _sprint_context(self, arguments: Mapping[str, Any]) -> Dict[str, Any]:
        return text_result(self.contexts.sprint_context().to_wire())

    async def _mock_cache_upsert(self, arguments: Mapping[str, Any]) -> Dict[str, Any]:
        self.contexts.store(parse_location(arguments), parse_context(arguments))
        return text_result({"ok": True})

    async def _mock_cache_clear(self, arguments: Mapping[str, Any]) -> Dict[str, Any]:
        removed = self.contexts.clear_stored(optional_str(arguments, "pattern"))
        return text_result({"ok": True, "removed": removed})
