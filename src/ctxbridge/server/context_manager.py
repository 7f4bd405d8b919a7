"""Business context lookup with a TTL cache in front of the mock sources."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from ..core.config_schema import MockOptions
from ..util.log import Log
from .mock_cache import MockCache
from .mock_data import MockDataProvider
from .models import (
    BusinessContext,
    CodeLocation,
    ImplementationStatus,
    IntelligenceReport,
    InstitutionalKnowledge,
    Requirement,
    Sprint,
    SprintContext,
)

log = Log.create({"service": "server.context"})

DEFAULT_TTL_MS = 5 * 60 * 1000


@dataclass
class _CacheEntry:
    data: BusinessContext
    stored_at: float
    ttl_ms: int


class ContextManager:
    """Resolves business context for code locations.

    Lookup order: explicit mock cache entries, then the TTL cache, then the
    mock data provider (when mock data is enabled), else an empty context.
    """

    def __init__(
        self,
        options: MockOptions | None = None,
        *,
        mock_cache: MockCache | None = None,
        ttl_ms: int = DEFAULT_TTL_MS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.mock_cache = mock_cache or MockCache()
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._cache: Dict[str, _CacheEntry] = {}
        self._provider: Optional[MockDataProvider] = None
        self.apply_mock_options(options or MockOptions())

    @property
    def provider(self) -> Optional[MockDataProvider]:
        return self._provider

    def apply_mock_options(self, options: MockOptions) -> None:
        """Swap the data provider. Cached contexts came from the old one, so they are dropped."""
        self._provider = MockDataProvider(options) if options.enabled else None
        self._cache.clear()
        log.info("mock options applied", {
            "enabled": options.enabled,
            "data_size": options.data_size,
            "enterprise_patterns": options.enterprise_patterns,
        })

    def _valid(self, entry: _CacheEntry) -> bool:
        return (self._clock() - entry.stored_at) * 1000 < entry.ttl_ms

    def get_business_context(self, location: CodeLocation) -> BusinessContext:
        explicit = self.mock_cache.get(location.file_path, location.start_line)
        if explicit is not None:
            return explicit

        key = location.cache_key()
        entry = self._cache.get(key)
        if entry is not None and self._valid(entry):
            return entry.data

        if self._provider is not None:
            context = self._provider.context_for(location)
        else:
            context = self.empty_context(location)
        self._cache[key] = _CacheEntry(data=context, stored_at=self._clock(), ttl_ms=self.ttl_ms)
        return context

    @staticmethod
    def empty_context(location: CodeLocation) -> BusinessContext:
        now = datetime.now(timezone.utc)
        return BusinessContext(
            requirements=[],
            implementation_status=ImplementationStatus(
                completion_percentage=0,
                last_verified=now,
                verified_by="system",
                notes=(
                    f"No business context found for {location.file_path} "
                    f"lines {location.start_line}-{location.end_line}"
                ),
            ),
            related_changes=[],
            last_updated=now,
        )

    def get_requirement(self, requirement_id: str) -> Optional[Requirement]:
        if self._provider is None:
            return None
        return self._provider.get_requirement(requirement_id)

    def sprint_context(self) -> SprintContext:
        if self._provider is None:
            return SprintContext(sprint=Sprint(id="sprint-none", name="No active sprint"))
        return self._provider.sprint_context()

    def intelligence(self, technology: str) -> IntelligenceReport:
        if self._provider is None:
            return IntelligenceReport(technology=technology)
        return self._provider.intelligence(technology)

    def knowledge(self, domain: str) -> list[InstitutionalKnowledge]:
        if self._provider is None:
            return []
        return self._provider.knowledge(domain)

    def store(self, location: CodeLocation, context: BusinessContext) -> None:
        """Pin ``context`` to a code range in the mock cache and persist it."""
        self.mock_cache.upsert(location.file_path, location.start_line, location.end_line, context)
        self.mock_cache.save()
        self.invalidate(location.file_path)
        log.info("context stored", {"file": location.file_path, "lines": f"{location.start_line}-{location.end_line}"})

    def clear_stored(self, pattern: str | None = None) -> int:
        removed = self.mock_cache.clear(pattern)
        self.mock_cache.save()
        self.invalidate(pattern)
        return removed

    def invalidate(self, pattern: str | None = None) -> int:
        """Drop TTL cache entries whose key contains ``pattern`` (all when empty)."""
        if not pattern:
            removed = len(self._cache)
            self._cache.clear()
        else:
            doomed = [key for key in self._cache if pattern in key]
            for key in doomed:
                del self._cache[key]
            removed = len(doomed)
        log.debug("context cache invalidated", {"pattern": pattern, "removed": removed})
        return removed

    def purge_expired(self) -> int:
        doomed = [key for key, entry in self._cache.items() if not self._valid(entry)]
        for key in doomed:
            del self._cache[key]
        return len(doomed)

    def __len__(self) -> int:
        return len(self._cache)
