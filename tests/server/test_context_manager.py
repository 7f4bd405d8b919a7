from __future__ import annotations

from datetime import datetime, timezone

from ctxbridge.core.config_schema import MockOptions
from ctxbridge.server.context_manager import ContextManager
from ctxbridge.server.models import BusinessContext, CodeLocation, Requirement


class _Clock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _location(path: str = "src/auth/AuthService.ts", start: int = 10, end: int = 20) -> CodeLocation:
    return CodeLocation(file_path=path, start_line=start, end_line=end)


def test_lookups_are_cached_until_ttl_expires() -> None:
    clock = _Clock()
    manager = ContextManager(ttl_ms=1000, clock=clock)

    first = manager.get_business_context(_location())
    second = manager.get_business_context(_location())
    clock.now += 2

    assert first is second
    assert len(manager) == 1
    assert manager.purge_expired() == 1
    assert len(manager) == 0


def test_stored_context_wins_over_generated() -> None:
    manager = ContextManager()
    pinned = BusinessContext(
        requirements=[Requirement(id="REQ-PIN", title="Pinned")],
        last_updated=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    manager.get_business_context(_location())

    manager.store(_location(start=5, end=25), pinned)

    assert manager.get_business_context(_location()).requirements[0].id == "REQ-PIN"
    assert manager.clear_stored("AuthService") == 1
    assert manager.get_business_context(_location()).requirements[0].id != "REQ-PIN"


def test_applying_mock_options_swaps_provider_and_drops_cache() -> None:
    manager = ContextManager()
    manager.get_business_context(_location())

    manager.apply_mock_options(MockOptions(enabled=False))

    assert manager.provider is None
    assert len(manager) == 0
    assert manager.get_business_context(_location()).requirements == []
    assert manager.get_requirement("REQ-001") is None
    assert manager.intelligence("go").delivery_patterns == []
    assert manager.knowledge("go") == []


def test_invalidate_by_pattern() -> None:
    manager = ContextManager()
    manager.get_business_context(_location("src/a.py"))
    manager.get_business_context(_location("src/b.py"))

    assert manager.invalidate("a.py") == 1
    assert manager.invalidate() == 1
