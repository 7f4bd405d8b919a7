"""Client that merges the local context server with an optional remote one.

The local client always points at the supervised in-process server. A remote
server speaking the same JSON-RPC methods can be attached with
:meth:`HybridContextClient.configure_remote_server`.

Nothing here raises because a server is unreachable: local failures yield an
offline context, remote failures yield fallback intelligence, and both are
tagged ``source="fallback"``. Each call works on its own locals, so any number
of calls may run concurrently.
"""

from __future__ import annotations

import asyncio
import time
from typing import Dict, List, Optional, Tuple

from ..rpc.client import ProtocolClient
from ..server.models import (
    BusinessContext,
    InstitutionalKnowledge,
    SprintContext,
    Story,
)
from ..util.log import Log
from . import fallback
from .models import ConnectivityReport, HybridContext, LocalContext, RemoteIntelligence

log = Log.create({"service": "hybrid"})


class HybridContextClient:
    def __init__(self, local: ProtocolClient, *, remote_timeout_factor: int = 2) -> None:
        self.local = local
        self.remote: Optional[ProtocolClient] = None
        self._remote_timeout_factor = remote_timeout_factor

    @property
    def remote_url(self) -> Optional[str]:
        return self.remote.url if self.remote else None

    async def configure_remote_server(self, url: str, api_key: str | None = None) -> None:
        """Point the remote client at ``url``; replaces and closes any previous one."""
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else None
        previous = self.remote
        self.remote = ProtocolClient(
            url=url,
            headers=headers,
            timeout_ms=self.local.timeout_ms * self._remote_timeout_factor,
        )
        log.info("remote server configured", {"url": url, "authenticated": bool(api_key)})
        if previous is not None:
            await previous.aclose()

    async def clear_remote_server(self) -> None:
        previous, self.remote = self.remote, None
        if previous is not None:
            await previous.aclose()

    async def aclose(self) -> None:
        """Close the remote client. The local client belongs to the caller."""
        await self.clear_remote_server()

    async def test_connectivity(self) -> ConnectivityReport:
        remote = self.remote
        if remote is None:
            local_ok, local_ms = await _timed_ping(self.local)
            return ConnectivityReport(local=local_ok, local_latency_ms=local_ms if local_ok else None)

        (local_ok, local_ms), (remote_ok, remote_ms) = await asyncio.gather(
            _timed_ping(self.local), _timed_ping(remote)
        )
        return ConnectivityReport(
            local=local_ok,
            local_latency_ms=local_ms if local_ok else None,
            remote=remote_ok,
            remote_latency_ms=remote_ms if remote_ok else None,
            remote_configured=True,
        )

    async def get_local_context(
        self,
        file_path: str,
        start_line: int,
        end_line: int,
        symbol_name: str | None = None,
    ) -> LocalContext:
        context, sprint = await asyncio.gather(
            self.local.get_business_context(file_path, start_line, end_line, symbol_name),
            self.local.get_sprint_context(),
            return_exceptions=True,
        )
        for result in (context, sprint):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                log.warn("local context unavailable, using fallback", {"file": file_path, "error": result})
                return fallback.local_context(note=f"local server unavailable: {result}")
        try:
            return _build_local(BusinessContext.model_validate(context), SprintContext.model_validate(sprint))
        except ValueError as e:
            log.warn("local context malformed, using fallback", {"file": file_path, "error": e})
            return fallback.local_context(note=f"malformed local context: {e}")

    async def get_current_sprint_context(self) -> LocalContext:
        try:
            sprint = SprintContext.model_validate(await self.local.get_sprint_context())
        except Exception as e:
            log.warn("sprint context unavailable, using fallback", {"error": e})
            return fallback.local_context(note=f"local server unavailable: {e}")
        return _build_local(None, sprint)

    async def get_remote_intelligence(self, technology: str) -> RemoteIntelligence:
        remote = self.remote
        if remote is None:
            return fallback.remote_intelligence(technology, note="remote server not configured")
        try:
            payload = await remote.get_intelligence(technology)
            return RemoteIntelligence.model_validate({**payload, "source": "remote"})
        except Exception as e:
            log.warn("remote intelligence unavailable, using fallback", {
                "url": remote.url,
                "technology": technology,
                "error": e,
            })
            return fallback.remote_intelligence(technology, note=f"remote server unavailable: {e}")

    async def query_institutional_knowledge(self, domain: str) -> RemoteIntelligence:
        remote = self.remote
        if remote is None:
            return _knowledge_fallback(domain, "remote server not configured")
        try:
            items = [InstitutionalKnowledge.model_validate(item) for item in await remote.query_knowledge(domain)]
        except Exception as e:
            log.warn("remote knowledge unavailable, using fallback", {"url": remote.url, "domain": domain, "error": e})
            return _knowledge_fallback(domain, f"remote server unavailable: {e}")
        return RemoteIntelligence(source="remote", technology=fallback.slug(domain), institutional_knowledge=items)

    async def get_hybrid_context(
        self,
        file_path: str,
        start_line: int,
        end_line: int,
        technology: str | None = None,
    ) -> HybridContext:
        # Neither side raises for an unreachable server, so a plain gather is enough.
        local, remote = await asyncio.gather(
            self.get_local_context(file_path, start_line, end_line),
            self.get_remote_intelligence(technology or _guess_technology(file_path)),
        )
        return HybridContext(local=local, remote=remote, combined_insights=combine_insights(local, remote))


async def _timed_ping(client: ProtocolClient) -> Tuple[bool, float]:
    started = time.perf_counter()
    ok = await client.ping()
    return ok, round((time.perf_counter() - started) * 1000, 2)


def _knowledge_fallback(domain: str, note: str) -> RemoteIntelligence:
    return RemoteIntelligence(
        source="fallback",
        technology=fallback.slug(domain),
        institutional_knowledge=fallback.knowledge(domain),
        note=note,
    )


def _build_local(context: Optional[BusinessContext], sprint: SprintContext) -> LocalContext:
    requirements = context.requirements if context else []
    requirement_ids = {requirement.id for requirement in requirements}
    story = next((s for s in sprint.stories if s.requirement_id in requirement_ids), None)
    if story is None and requirements:
        first = requirements[0]
        story = Story(
            id=f"story-{first.id}",
            title=first.title,
            status=first.status.value,
            requirement_id=first.id,
            acceptance_criteria=first.acceptance_criteria,
        )
    if story is None:
        story = sprint.stories[0] if sprint.stories else Story(id="current-story", title="Current Story")
    return LocalContext(
        source="local",
        sprint_details=sprint.sprint,
        story_context=story,
        team_patterns=sprint.team_patterns,
        business_requirements=requirements,
    )


_EXTENSIONS: Dict[str, str] = {
    ".py": "python",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".go": "go",
    ".java": "java",
    ".rs": "rust",
    ".cs": "csharp",
    ".rb": "ruby",
}


def _guess_technology(file_path: str) -> str:
    dot = file_path.rfind(".")
    return _EXTENSIONS.get(file_path[dot:].lower(), "general") if dot >= 0 else "general"


def combine_insights(local: LocalContext, remote: RemoteIntelligence) -> List[str]:
    """Short merged observations; the first line always states which sources answered."""
    if remote.source == "remote" and local.source == "local":
        insights = [f"Hybrid context: local sprint data merged with remote {remote.technology} intelligence"]
    elif remote.source == "remote":
        insights = [f"Hybrid context: remote {remote.technology} intelligence with offline local context"]
    else:
        insights = [f"Local-only context: remote intelligence unavailable, using fallback {remote.technology} patterns"]

    if remote.delivery_patterns:
        insights.append(
            f'Sprint "{local.sprint_details.name}" can benefit from '
            f"{len(remote.delivery_patterns)} proven delivery patterns"
        )
    practices = sum(len(item.best_practices) for item in remote.institutional_knowledge)
    if practices:
        insights.append(f'Story "{local.story_context.title}" aligns with {practices} institutional best practices')
    if local.team_patterns and remote.cross_project_insights:
        insights.append(
            f'Team pattern "{local.team_patterns[0].name}" is supported by '
            f"{len(remote.cross_project_insights)} cross-project insights"
        )
    if local.business_requirements:
        insights.append(f"{len(local.business_requirements)} business requirements cover this code")
    return insights
